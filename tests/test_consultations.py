from datetime import date

import pytest

from medicab.models import Consultation, InvoiceStatus
from conftest import make_consultation, make_patient


@pytest.fixture
def headers(valid_licence, clinician_headers):
    return clinician_headers


def test_create_consultation_normalizes_date_and_defaults_reason(client, db, headers):
    patient = make_patient(db)
    response = client.post("/consultations/", json={"patient_id": patient.id, "date": "15/03/2024"}, headers=headers)
    assert response.status_code == 201

    consultation = db.get(Consultation, response.json()["insert_id"])
    assert consultation.date == "2024-03-15"
    assert consultation.reason == "Consultation in progress"
    assert consultation.price == 0


def test_create_consultation_accepts_iso_datetime(client, db, headers):
    patient = make_patient(db)
    response = client.post(
        "/consultations/", json={"patient_id": patient.id, "date": "2024-03-15T09:00:00.000Z"}, headers=headers
    )
    assert response.status_code == 201


def test_create_consultation_validation(client, db, headers):
    patient = make_patient(db)
    bad_date = client.post("/consultations/", json={"patient_id": patient.id, "date": "soon"}, headers=headers)
    assert bad_date.status_code == 400

    unknown = client.post("/consultations/", json={"patient_id": 999, "date": "2024-01-01"}, headers=headers)
    assert unknown.status_code == 404


def test_start_and_finish(client, db, headers):
    patient = make_patient(db)
    started = client.post("/consultations/start", json={"patient_id": patient.id}, headers=headers)
    assert started.status_code == 201
    consultation_id = started.json()["insert_id"]

    consultation = db.get(Consultation, consultation_id)
    assert consultation.date == date.today().isoformat()
    assert consultation.price is None
    assert not consultation.is_closed

    finished = client.post(f"/consultations/{consultation_id}/finish", json={"price": 3500}, headers=headers)
    assert finished.status_code == 200

    db.expire_all()
    consultation = db.get(Consultation, consultation_id)
    assert consultation.price == 3500
    assert consultation.is_closed


def test_finish_requires_price(client, db, headers):
    consultation = make_consultation(db, make_patient(db))
    response = client.post(f"/consultations/{consultation.id}/finish", json={}, headers=headers)
    assert response.status_code == 400


def test_update_coalesces_fields(client, db, headers):
    consultation = make_consultation(db, make_patient(db))
    response = client.put(f"/consultations/{consultation.id}", json={"conclusion": "GERD"}, headers=headers)
    assert response.status_code == 200

    db.expire_all()
    updated = db.get(Consultation, consultation.id)
    assert updated.conclusion == "GERD"
    assert updated.reason == "Epigastric pain"


def test_update_needs_a_field(client, db, headers):
    consultation = make_consultation(db, make_patient(db))
    response = client.put(f"/consultations/{consultation.id}", json={}, headers=headers)
    assert response.status_code == 400
    assert response.json() == {"error": "At least one of reason, price or conclusion must be provided"}


def test_update_missing_is_404(client, headers):
    assert client.put("/consultations/999", json={"reason": "x"}, headers=headers).status_code == 404


def test_list_by_patient_includes_payment_status(client, db, headers):
    patient = make_patient(db)
    older = make_consultation(db, patient, "2024-01-01")
    newer = make_consultation(db, patient, "2024-02-01")
    db.add(InvoiceStatus(consultation_id=older.id, status="partial", paid_amount=1000, total_amount=3000))
    db.commit()

    rows = client.get("/consultations/", params={"patient_id": patient.id}, headers=headers).json()
    assert [row["id"] for row in rows] == [newer.id, older.id]
    assert rows[0]["invoice_status"] is None
    assert rows[1]["invoice_status"] == "partial"
    assert rows[1]["paid_amount"] == 1000


def test_list_requires_patient_id(client, headers):
    response = client.get("/consultations/", headers=headers)
    assert response.status_code == 400


def test_list_all_has_patient_names(client, db, headers):
    make_consultation(db, make_patient(db, "Ziani", "Omar"))
    rows = client.get("/consultations/all", headers=headers).json()
    assert rows[0]["last_name"] == "Ziani"
    assert rows[0]["first_name"] == "Omar"
