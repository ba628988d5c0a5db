"""Consultation management"""
import logging
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import TokenIdentity, get_admin_or_clinician, get_current_user
from medicab.database import get_db
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import Consultation, InvoiceStatus, Patient
from medicab.schemas import (
    ConsultationCreate, ConsultationFinish, ConsultationResponse,
    ConsultationStart, ConsultationUpdate
)
from medicab.services.deletion import delete_consultation
from medicab.utils.dates import normalize_date

logger = logging.getLogger("medicab.app")

DEFAULT_REASON = "Consultation in progress"

router = APIRouter(
    prefix="/consultations",
    tags=["consultations"],
    dependencies=[Depends(get_current_user)]
)


def _require_patient(db: Session, patient_id: int):
    if not db.get(Patient, patient_id):
        raise NotFoundError("Patient not found")


def _insert(db: Session, consultation: Consultation) -> Consultation:
    try:
        db.add(consultation)
        db.commit()
        db.refresh(consultation)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error inserting consultation for patient {consultation.patient_id}: {e}")
        raise DatabaseError("Insert error", detail=str(e))
    logger.info(f"Consultation {consultation.id} created for patient {consultation.patient_id}")
    return consultation

# ----------------------------
# Read
# ----------------------------
@router.get("/", response_model=List[ConsultationResponse])
def list_consultations(patient_id: int = Query(...), db: Session = Depends(get_db)):
    """Consultations of one patient with their payment status, newest first"""
    try:
        rows = (
            db.query(Consultation, InvoiceStatus)
            .outerjoin(InvoiceStatus, InvoiceStatus.consultation_id == Consultation.id)
            .filter(Consultation.patient_id == patient_id)
            .order_by(Consultation.date.desc(), Consultation.id.desc())
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching consultations of patient {patient_id}: {e}")
        raise DatabaseError("Fetch error", detail=str(e))

    consultations = []
    for consultation, invoice in rows:
        response = ConsultationResponse.model_validate(consultation)
        if invoice:
            response.invoice_status = invoice.status
            response.paid_amount = invoice.paid_amount
            response.total_amount = invoice.total_amount
            response.payment_date = invoice.payment_date
        consultations.append(response)
    return consultations

@router.get("/all")
def list_all_consultations(db: Session = Depends(get_db)):
    """Every consultation with the patient's name"""
    try:
        rows = (
            db.query(Consultation, Patient.last_name, Patient.first_name)
            .outerjoin(Patient, Patient.id == Consultation.patient_id)
            .order_by(Consultation.date.desc(), Consultation.id.desc())
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching consultations: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return [
        {
            **ConsultationResponse.model_validate(consultation).model_dump(),
            "last_name": last_name,
            "first_name": first_name,
        }
        for consultation, last_name, first_name in rows
    ]

@router.get("/{consultation_id}", response_model=ConsultationResponse)
def get_consultation(consultation_id: int, db: Session = Depends(get_db)):
    consultation = db.get(Consultation, consultation_id)
    if not consultation:
        raise NotFoundError("Consultation not found")
    return consultation

# ----------------------------
# Write
# ----------------------------
@router.post("/", status_code=status.HTTP_201_CREATED)
def create_consultation(data: ConsultationCreate, db: Session = Depends(get_db)):
    consultation_date = normalize_date(data.date, allow_datetime=True)
    if not consultation_date:
        raise ValidationError("Invalid consultation date format")
    _require_patient(db, data.patient_id)

    consultation = _insert(db, Consultation(
        patient_id=data.patient_id,
        date=consultation_date,
        reason=data.reason or DEFAULT_REASON,
        price=data.price or 0,
        conclusion=data.conclusion or None,
    ))
    return {"message": "Consultation inserted successfully", "insert_id": consultation.id}

@router.post("/start", status_code=status.HTTP_201_CREATED)
def start_consultation(data: ConsultationStart, db: Session = Depends(get_db)):
    """Open a consultation dated today; price and conclusion come at finish"""
    _require_patient(db, data.patient_id)

    consultation = _insert(db, Consultation(
        patient_id=data.patient_id,
        date=date.today().isoformat(),
        reason=data.reason or DEFAULT_REASON,
    ))
    return {"message": "Consultation started successfully", "insert_id": consultation.id}

@router.post("/{consultation_id}/finish")
def finish_consultation(consultation_id: int, data: ConsultationFinish, db: Session = Depends(get_db)):
    try:
        affected = (
            db.query(Consultation)
            .filter(Consultation.id == consultation_id)
            .update({"price": data.price, "is_closed": True}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error finishing consultation {consultation_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Consultation not found")
    return {"message": "Consultation finished", "affectedRows": affected}

@router.put("/{consultation_id}")
def update_consultation(consultation_id: int, data: ConsultationUpdate, db: Session = Depends(get_db)):
    """Update reason, price or conclusion; fields left out keep their value"""
    fields = {
        name: value
        for name, value in (("reason", data.reason), ("price", data.price), ("conclusion", data.conclusion))
        if value is not None
    }
    if not fields:
        raise ValidationError("At least one of reason, price or conclusion must be provided")

    try:
        affected = (
            db.query(Consultation)
            .filter(Consultation.id == consultation_id)
            .update(fields, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating consultation {consultation_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Consultation not found")
    return {"message": "Consultation updated successfully", "affectedRows": affected}

@router.delete("/{consultation_id}")
def remove_consultation(
    consultation_id: int,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin_or_clinician)
):
    """Delete a consultation and, as far as possible, its dependent records"""
    logger.info(f"User {current_user.user_id} deleting consultation {consultation_id}")
    result = delete_consultation(db, consultation_id)
    return {
        "message": result.message,
        "affectedRows": result.affected_rows,
        "dependentsFailed": result.dependents_failed,
    }
