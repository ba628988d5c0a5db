"""Prescriptions written during a consultation"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from medicab.auth import get_current_user
from medicab.database import get_db
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import Consultation, Prescription, PrescriptionLine
from medicab.schemas import PrescriptionCreate, PrescriptionResponse

logger = logging.getLogger("medicab.app")

router = APIRouter(
    prefix="/prescriptions",
    tags=["prescriptions"],
    dependencies=[Depends(get_current_user)]
)

@router.get("/", response_model=List[PrescriptionResponse])
def list_prescriptions(consultation_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    if consultation_id is None:
        raise ValidationError("consultation_id is required")
    try:
        return (
            db.query(Prescription)
            .options(selectinload(Prescription.lines))
            .filter(Prescription.consultation_id == consultation_id)
            .order_by(Prescription.id)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching prescriptions of consultation {consultation_id}: {e}")
        raise DatabaseError("Fetch error", detail=str(e))

@router.post("/", status_code=status.HTTP_201_CREATED)
def create_prescription(data: PrescriptionCreate, db: Session = Depends(get_db)):
    """Add a prescribed article, with optional medication lines"""
    if not db.get(Consultation, data.consultation_id):
        raise NotFoundError("Consultation not found")

    prescription = Prescription(
        consultation_id=data.consultation_id,
        article=data.article,
        quantity=data.quantity,
        form=data.form,
        detail=data.detail,
        duration=data.duration or "",
    )
    for line in data.lines:
        prescription.lines.append(PrescriptionLine(
            consultation_id=data.consultation_id,
            medication=line.medication,
            dosage=line.dosage,
            instructions=line.instructions,
        ))

    try:
        db.add(prescription)
        db.commit()
        db.refresh(prescription)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error inserting prescription for consultation {data.consultation_id}: {e}")
        raise DatabaseError("Insert error", detail=str(e))

    logger.info(f"Prescription {prescription.id} added to consultation {data.consultation_id}")
    return {"message": "Prescription inserted successfully", "insert_id": prescription.id}

@router.put("/{prescription_id}")
def update_prescription(prescription_id: int, data: PrescriptionCreate, db: Session = Depends(get_db)):
    """Replace a prescription's fields; lines are replaced when given"""
    prescription = db.get(Prescription, prescription_id)
    if not prescription:
        raise NotFoundError("Prescription not found")
    moved = prescription.consultation_id != data.consultation_id
    if moved and not db.get(Consultation, data.consultation_id):
        raise NotFoundError("Consultation not found")

    prescription.consultation_id = data.consultation_id
    prescription.article = data.article
    prescription.quantity = data.quantity
    prescription.form = data.form
    prescription.detail = data.detail
    prescription.duration = data.duration or ""

    try:
        if data.lines:
            db.query(PrescriptionLine).filter(
                PrescriptionLine.prescription_id == prescription_id
            ).delete(synchronize_session=False)
            for line in data.lines:
                db.add(PrescriptionLine(
                    prescription_id=prescription_id,
                    consultation_id=data.consultation_id,
                    medication=line.medication,
                    dosage=line.dosage,
                    instructions=line.instructions,
                ))
        elif moved:
            # lines follow their prescription to the new consultation
            db.query(PrescriptionLine).filter(
                PrescriptionLine.prescription_id == prescription_id
            ).update({PrescriptionLine.consultation_id: data.consultation_id}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating prescription {prescription_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    return {"message": "Prescription updated successfully", "affectedRows": 1}

@router.delete("/{prescription_id}")
def delete_prescription(prescription_id: int, db: Session = Depends(get_db)):
    try:
        db.query(PrescriptionLine).filter(
            PrescriptionLine.prescription_id == prescription_id
        ).delete(synchronize_session=False)
        affected = db.query(Prescription).filter(
            Prescription.id == prescription_id
        ).delete(synchronize_session=False)
        if affected == 0:
            db.rollback()
        else:
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting prescription {prescription_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Prescription not found")
    return {"message": "Prescription deleted successfully", "affectedRows": affected}
