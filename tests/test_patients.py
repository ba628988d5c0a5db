from datetime import date

import pytest

from medicab.models import Patient
from medicab.utils.dates import compute_age, normalize_date
from conftest import make_consultation, make_patient


@pytest.mark.parametrize("value, expected", [
    ("12/04/1985", "1985-04-12"),
    ("1985-04-12", "1985-04-12"),
    (" 01/01/2000 ", "2000-01-01"),
    ("31/02/2000", None),
    ("1985/04/12", None),
    ("", None),
    (None, None),
])
def test_normalize_date(value, expected):
    assert normalize_date(value) == expected


def test_normalize_datetime_only_when_allowed():
    assert normalize_date("2024-03-01T10:30:00Z") is None
    assert normalize_date("2024-03-01T10:30:00Z", allow_datetime=True) == "2024-03-01"


def test_compute_age():
    assert compute_age("1985-04-12", today=date(2025, 4, 11)) == 39
    assert compute_age("1985-04-12", today=date(2025, 4, 12)) == 40
    assert compute_age(None) is None


@pytest.fixture
def licensed(valid_licence, user_headers):
    return user_headers


def test_create_patient(client, db, licensed):
    response = client.post("/patients/", json={
        "last_name": " Mansouri ",
        "first_name": "Leila",
        "birth_date": "03/09/1990",
        "weight": 58.5,
        "history": "Cholecystectomy",
    }, headers=licensed)
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Patient created successfully"

    patient = db.get(Patient, body["insert_id"])
    assert patient.last_name == "Mansouri"
    assert patient.birth_date == "1990-09-03"
    assert patient.age == compute_age("1990-09-03")


def test_create_patient_rejects_bad_date(client, licensed):
    response = client.post("/patients/", json={
        "last_name": "A", "first_name": "B", "birth_date": "1990.09.03", "weight": 70,
    }, headers=licensed)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid date format"}


def test_create_patient_requires_weight(client, licensed):
    response = client.post("/patients/", json={
        "last_name": "A", "first_name": "B", "birth_date": "1990-09-03",
    }, headers=licensed)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request data"


def test_list_patients_with_last_visit(client, db, licensed):
    seen = make_patient(db, "Seen", "Recently")
    make_consultation(db, seen, "2024-01-01")
    make_consultation(db, seen, "2024-06-01")
    make_patient(db, "Never", "Seen")

    patients = client.get("/patients/", headers=licensed).json()
    assert [p["last_name"] for p in patients] == ["Seen", "Never"]
    assert patients[0]["last_visit"] == "2024-06-01"
    assert patients[1]["last_visit"] is None


def test_search_patients(client, db, licensed):
    make_patient(db, "Bouzid", "Amine")
    make_patient(db, "Boudiaf", "Sara")
    make_patient(db, "Kaci", "Amine")

    by_last = client.get("/patients/search", params={"last_name": "bou"}, headers=licensed).json()
    assert sorted(p["last_name"] for p in by_last) == ["Boudiaf", "Bouzid"]

    by_both = client.get(
        "/patients/search", params={"last_name": "Bou", "first_name": "Am"}, headers=licensed
    ).json()
    assert [p["last_name"] for p in by_both] == ["Bouzid"]

    assert client.get("/patients/search", headers=licensed).status_code == 400


def test_update_patient(client, db, licensed):
    patient = make_patient(db)
    response = client.put(f"/patients/{patient.id}", json={
        "last_name": "Benali", "first_name": "Samir", "birth_date": "1986-04-12", "weight": 75,
    }, headers=licensed)
    assert response.status_code == 200
    assert response.json()["affectedRows"] == 1

    db.expire_all()
    assert db.get(Patient, patient.id).weight == 75


def test_update_missing_patient_is_404(client, licensed):
    response = client.put("/patients/999", json={
        "last_name": "X", "first_name": "Y", "birth_date": "1986-04-12", "weight": 75,
    }, headers=licensed)
    assert response.status_code == 404
    assert response.json() == {"error": "Patient not found"}


def test_get_patient(client, db, licensed):
    patient = make_patient(db)
    assert client.get(f"/patients/{patient.id}", headers=licensed).json()["first_name"] == "Samir"
    assert client.get("/patients/999", headers=licensed).status_code == 404
