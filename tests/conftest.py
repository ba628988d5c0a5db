from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from medicab.auth import get_password_hash
from medicab.config import DEFAULT_LICENCE_SECRET, Settings
from medicab.main import create_app
from medicab.models import (
    Billing, Certificate, Consultation, DopplerReport, ECGReport, EchographyReport,
    InvoiceItem, InvoiceStatus, License, Orientation, Patient, PrescribedExam,
    Prescription, PrescriptionLine, ThyroidReport, User
)
from medicab.services.licensing import build_licence_key


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret",
        database_url="sqlite://",
        licence_secret=DEFAULT_LICENCE_SECRET,
        log_dir=str(tmp_path),
        export_cleanup_delay=0,
        cors_origins=["*"],
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db(client, app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def tokens(app):
    return app.state.tokens


def make_user(db, username, role, password="secret"):
    user = User(username=username, password_hash=get_password_hash(password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_licence(db, start, expiry, secret=DEFAULT_LICENCE_SECRET):
    licence = License(start_date=start, expiry_date=expiry, key_value=build_licence_key(start, expiry, secret))
    db.add(licence)
    db.commit()
    return licence


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db):
    return make_user(db, "admin", "admin")


@pytest.fixture
def clinician(db):
    return make_user(db, "doctor", "clinician")


@pytest.fixture
def staff(db):
    return make_user(db, "desk", "user")


@pytest.fixture
def admin_headers(admin, tokens):
    return bearer(tokens.issue(admin.id, admin.role))


@pytest.fixture
def clinician_headers(clinician, tokens):
    return bearer(tokens.issue(clinician.id, clinician.role))


@pytest.fixture
def user_headers(staff, tokens):
    return bearer(tokens.issue(staff.id, staff.role))


@pytest.fixture
def valid_licence(db):
    today = date.today()
    return add_licence(db, today - timedelta(days=1), today + timedelta(days=30))


@pytest.fixture
def expired_licence(db):
    return add_licence(db, date(2019, 1, 1), date(2020, 1, 1))


def make_patient(db, last_name="Benali", first_name="Samir"):
    patient = Patient(last_name=last_name, first_name=first_name, age=40, birth_date="1985-04-12", weight=72.5)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


def make_consultation(db, patient, consultation_date="2024-03-01"):
    consultation = Consultation(patient_id=patient.id, date=consultation_date, reason="Epigastric pain", price=0)
    db.add(consultation)
    db.commit()
    db.refresh(consultation)
    return consultation


def add_dependents(db, consultation):
    """One row in every table hanging off a consultation"""
    cid = consultation.id
    prescription = Prescription(
        consultation_id=cid, article="Omeprazole", quantity="1", form="capsule", detail="20 mg", duration="30 days"
    )
    db.add(prescription)
    db.flush()
    db.add_all([
        Billing(consultation_id=cid, act="Consultation", amount=3000),
        InvoiceItem(consultation_id=cid, act="Gastroscopy", price=8000),
        InvoiceStatus(consultation_id=cid, status="paid", paid_amount=8000, total_amount=8000),
        PrescriptionLine(prescription_id=prescription.id, consultation_id=cid, medication="Omeprazole", dosage="20 mg"),
        PrescribedExam(consultation_id=cid, type="biological", group_name="Liver", detail="ALT"),
        EchographyReport(consultation_id=cid, findings=["Normal liver"], conclusion=["Normal"]),
        DopplerReport(consultation_id=cid, findings=["Portal vein patent"], conclusion=["Normal"]),
        ECGReport(consultation_id=cid, findings=["Sinus rhythm"], conclusion=["Normal"]),
        ThyroidReport(consultation_id=cid, findings=["Homogeneous"], conclusion=["Normal"]),
        Certificate(consultation_id=cid, sick_leave_days=3, start_date="2024-03-01"),
        Orientation(consultation_id=cid, history="GERD", presentation="Dysphagia", reason="Endoscopy"),
    ])
    db.commit()


def count_rows(db, model, **filters):
    db.expire_all()
    return db.query(model).filter_by(**filters).count()
