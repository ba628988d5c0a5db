import pytest
from sqlalchemy import text

from medicab.errors import NotFoundError
from medicab.models import (
    Certificate, Consultation, InvoiceItem, InvoiceStatus, Patient, Prescription, PrescriptionLine
)
from medicab.services.deletion import CONSULTATION_DEPENDENTS, delete_consultation, delete_patient
from conftest import add_dependents, count_rows, make_consultation, make_patient


def fail_deletes_on(db, table):
    db.execute(text(
        f"CREATE TRIGGER block_{table} BEFORE DELETE ON {table} "
        "BEGIN SELECT RAISE(ABORT, 'locked'); END;"
    ))
    db.commit()


def drop_trigger(db, table):
    db.execute(text(f"DROP TRIGGER block_{table}"))
    db.commit()

# ----------------------------
# Consultation: best effort
# ----------------------------
def test_delete_consultation_removes_every_dependent(client, db):
    patient = make_patient(db)
    consultation = make_consultation(db, patient)
    other = make_consultation(db, patient, "2024-04-01")
    add_dependents(db, consultation)
    add_dependents(db, other)
    consultation_id, other_id, patient_id = consultation.id, other.id, patient.id

    result = delete_consultation(db, consultation_id)
    assert result.affected_rows == 1
    assert result.dependents_attempted == len(CONSULTATION_DEPENDENTS)
    assert result.dependents_failed == 0

    for model in CONSULTATION_DEPENDENTS:
        assert count_rows(db, model, consultation_id=consultation_id) == 0, model.__tablename__
        assert count_rows(db, model, consultation_id=other_id) == 1, model.__tablename__
    assert count_rows(db, Consultation, id=consultation_id) == 0
    assert count_rows(db, Patient, id=patient_id) == 1


def test_second_delete_of_consultation_is_404(client, db, valid_licence, clinician_headers):
    consultation = make_consultation(db, make_patient(db))
    add_dependents(db, consultation)
    consultation_id = consultation.id

    first = client.delete(f"/consultations/{consultation_id}", headers=clinician_headers)
    assert first.status_code == 200
    assert first.json() == {"message": "Consultation deleted successfully", "affectedRows": 1, "dependentsFailed": 0}

    second = client.delete(f"/consultations/{consultation_id}", headers=clinician_headers)
    assert second.status_code == 404
    assert second.json() == {"error": "Consultation not found"}


def test_failing_dependent_does_not_stop_consultation_delete(client, db):
    consultation = make_consultation(db, make_patient(db))
    add_dependents(db, consultation)
    consultation_id = consultation.id
    fail_deletes_on(db, "certificates")

    result = delete_consultation(db, consultation_id)
    assert result.dependents_failed == 1
    assert count_rows(db, Consultation, id=consultation_id) == 0
    assert count_rows(db, InvoiceItem, consultation_id=consultation_id) == 0
    # the failing table keeps its row
    assert count_rows(db, Certificate, consultation_id=consultation_id) == 1


def test_delete_missing_consultation(client, db):
    with pytest.raises(NotFoundError):
        delete_consultation(db, 999)

# ----------------------------
# Patient: all or nothing
# ----------------------------
def test_delete_patient_42_with_two_consultations(client, db, valid_licence, admin_headers):
    patient = Patient(id=42, last_name="Haddad", first_name="Nadia", age=51, birth_date="1973-02-02", weight=60)
    db.add(patient)
    db.commit()
    consultation_ids = []
    for consultation_date in ("2024-01-10", "2024-02-10"):
        consultation = make_consultation(db, patient, consultation_date)
        db.add(InvoiceItem(consultation_id=consultation.id, act="Consultation", price=2500))
        db.add(Prescription(
            consultation_id=consultation.id, article="Trimebutine", quantity="1", form="tablet", detail="100 mg"
        ))
        db.commit()
        consultation_ids.append(consultation.id)

    survivor = make_consultation(db, make_patient(db, "Other", "Patient"))
    add_dependents(db, survivor)

    response = client.delete("/patients/42", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Patient and all related data deleted successfully", "affectedRows": 1}

    assert count_rows(db, Consultation, patient_id=42) == 0
    for cid in consultation_ids:
        assert count_rows(db, InvoiceItem, consultation_id=cid) == 0
        assert count_rows(db, Prescription, consultation_id=cid) == 0
    assert count_rows(db, Patient, id=42) == 0

    # other patients are untouched
    assert count_rows(db, InvoiceItem, consultation_id=survivor.id) == 1
    assert count_rows(db, Consultation, id=survivor.id) == 1


def test_delete_patient_removes_all_dependent_tables(client, db):
    patient = make_patient(db)
    patient_id = patient.id
    first = make_consultation(db, patient)
    second = make_consultation(db, patient, "2024-05-05")
    add_dependents(db, first)
    add_dependents(db, second)

    delete_patient(db, patient_id)

    for model in CONSULTATION_DEPENDENTS:
        assert count_rows(db, model) == 0, model.__tablename__
    assert count_rows(db, Consultation) == 0
    assert count_rows(db, Patient) == 0


def test_failed_step_rolls_back_patient_delete(client, db, valid_licence, admin_headers):
    patient = make_patient(db)
    consultation = make_consultation(db, patient)
    add_dependents(db, consultation)
    patient_id, consultation_id = patient.id, consultation.id
    fail_deletes_on(db, "certificates")

    response = client.delete(f"/patients/{patient_id}", headers=admin_headers)
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Delete error"
    assert "locked" in body["detail"]

    # nothing was removed, including tables deleted before the failing one
    assert count_rows(db, Patient, id=patient_id) == 1
    assert count_rows(db, Consultation, id=consultation_id) == 1
    for model in (InvoiceItem, InvoiceStatus, PrescriptionLine, Prescription, Certificate):
        assert count_rows(db, model, consultation_id=consultation_id) == 1, model.__tablename__

    drop_trigger(db, "certificates")
    assert client.delete(f"/patients/{patient_id}", headers=admin_headers).status_code == 200
    assert count_rows(db, Patient, id=patient_id) == 0


def test_delete_missing_patient_is_404(client, valid_licence, admin_headers):
    response = client.delete("/patients/404", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Patient not found"}


def test_delete_patient_without_consultations(client, db):
    patient = make_patient(db)
    result = delete_patient(db, patient.id)
    assert result.affected_rows == 1
    assert count_rows(db, Patient) == 0
