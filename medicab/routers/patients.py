"""Patient records"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import TokenIdentity, get_admin_or_clinician, get_current_user
from medicab.database import get_db
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import Consultation, Patient
from medicab.schemas import PatientCreate, PatientResponse, PatientUpdate
from medicab.services.deletion import delete_patient
from medicab.utils.dates import compute_age, normalize_date

logger = logging.getLogger("medicab.app")

router = APIRouter(
    prefix="/patients",
    tags=["patients"],
    dependencies=[Depends(get_current_user)]
)


def _patient_fields(data: PatientCreate) -> dict:
    """Validate form input and return the column values to store"""
    if not data.last_name.strip() or not data.first_name.strip():
        raise ValidationError("last_name, first_name, birth_date and weight are required")

    birth_date = normalize_date(data.birth_date)
    if not birth_date:
        raise ValidationError("Invalid date format")

    if data.weight <= 0:
        raise ValidationError("Weight must be a positive number")

    return {
        "last_name": data.last_name.strip(),
        "first_name": data.first_name.strip(),
        "age": compute_age(birth_date),
        "birth_date": birth_date,
        "weight": data.weight,
        "history": data.history.strip() if data.history and data.history.strip() else None,
    }


def _with_last_visit(rows) -> List[PatientResponse]:
    patients = []
    for patient, last_visit in rows:
        response = PatientResponse.model_validate(patient)
        response.last_visit = last_visit
        patients.append(response)
    return patients


def _patients_query(db: Session):
    last_visit = func.max(Consultation.date).label("last_visit")
    return (
        db.query(Patient, last_visit)
        .outerjoin(Consultation, Consultation.patient_id == Patient.id)
        .group_by(Patient.id)
    ), last_visit

# ----------------------------
# Read
# ----------------------------
@router.get("/", response_model=List[PatientResponse])
def list_patients(db: Session = Depends(get_db)):
    """All patients, most recently seen first"""
    query, last_visit = _patients_query(db)
    try:
        rows = query.order_by(last_visit.desc(), Patient.id.desc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching patients: {e}")
        raise DatabaseError("Fetch error", detail=str(e))
    return _with_last_visit(rows)

@router.get("/search", response_model=List[PatientResponse])
def search_patients(
    last_name: Optional[str] = Query(None),
    first_name: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Search patients by name prefix"""
    if not last_name and not first_name:
        raise ValidationError("last_name or first_name is required")

    query, last_visit = _patients_query(db)
    if last_name:
        query = query.filter(Patient.last_name.ilike(f"{last_name.strip()}%"))
    if first_name:
        query = query.filter(Patient.first_name.ilike(f"{first_name.strip()}%"))

    return _with_last_visit(query.order_by(Patient.last_name, Patient.first_name).limit(50).all())

@router.get("/{patient_id}", response_model=PatientResponse)
def get_patient(patient_id: int, db: Session = Depends(get_db)):
    query, _ = _patients_query(db)
    row = query.filter(Patient.id == patient_id).first()
    if not row:
        raise NotFoundError("Patient not found")
    return _with_last_visit([row])[0]

# ----------------------------
# Write
# ----------------------------
@router.post("/", status_code=status.HTTP_201_CREATED)
def create_patient(patient_data: PatientCreate, db: Session = Depends(get_db)):
    """Create new patient"""
    patient = Patient(**_patient_fields(patient_data))
    try:
        db.add(patient)
        db.commit()
        db.refresh(patient)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error inserting patient: {e}")
        raise DatabaseError("Insert error", detail=str(e))

    logger.info(f"Patient inserted: {patient.id}")
    return {"message": "Patient created successfully", "insert_id": patient.id}

@router.put("/{patient_id}")
def update_patient(patient_id: int, patient_data: PatientUpdate, db: Session = Depends(get_db)):
    fields = _patient_fields(patient_data)
    try:
        affected = (
            db.query(Patient)
            .filter(Patient.id == patient_id)
            .update(fields, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating patient {patient_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Patient not found")
    return {"message": "Patient updated successfully", "affectedRows": affected}

@router.delete("/{patient_id}")
def remove_patient(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin_or_clinician)
):
    """Delete a patient with every consultation and record attached to it"""
    logger.info(f"User {current_user.user_id} deleting patient {patient_id}")
    result = delete_patient(db, patient_id)
    return {"message": result.message, "affectedRows": result.affected_rows}
