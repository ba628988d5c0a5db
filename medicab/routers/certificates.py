"""Sick-leave certificates, one per consultation"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import get_current_user
from medicab.database import get_db, upsert
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import Certificate
from medicab.schemas import CertificateResponse, CertificateSave, CertificateUpdate
from medicab.utils.dates import normalize_date

logger = logging.getLogger("medicab.app")

router = APIRouter(
    prefix="/certificates",
    tags=["certificates"],
    dependencies=[Depends(get_current_user)]
)

@router.get("/", response_model=List[CertificateResponse])
def list_certificates(consultation_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    query = db.query(Certificate)
    if consultation_id is not None:
        query = query.filter(Certificate.consultation_id == consultation_id)
    try:
        return query.order_by(Certificate.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching certificates: {e}")
        raise DatabaseError("Database error", detail=str(e))

@router.post("/")
def save_certificate(data: CertificateSave, db: Session = Depends(get_db)):
    """Create the consultation's certificate, or overwrite the existing one"""
    start_date = normalize_date(data.start_date)
    if not start_date:
        raise ValidationError("Invalid start date format")

    try:
        certificate = upsert(db, Certificate, ["consultation_id"], {
            "consultation_id": data.consultation_id,
            "sick_leave_days": data.sick_leave_days,
            "start_date": start_date,
        })
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving certificate of consultation {data.consultation_id}: {e}")
        raise DatabaseError("Save failed", detail=str(e))

    return {"message": "Certificate saved successfully", "id": certificate.id}

@router.put("/{certificate_id}", response_model=CertificateResponse)
def update_certificate(certificate_id: int, data: CertificateUpdate, db: Session = Depends(get_db)):
    fields = {}
    if data.consultation_id is not None:
        fields["consultation_id"] = data.consultation_id
    if data.sick_leave_days is not None:
        fields["sick_leave_days"] = data.sick_leave_days
    if data.start_date is not None:
        start_date = normalize_date(data.start_date)
        if not start_date:
            raise ValidationError("Invalid start date format")
        fields["start_date"] = start_date
    if not fields:
        raise ValidationError("No valid fields provided to update")

    try:
        affected = (
            db.query(Certificate)
            .filter(Certificate.id == certificate_id)
            .update(fields, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating certificate {certificate_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Certificate not found")
    return db.get(Certificate, certificate_id)

@router.delete("/{certificate_id}")
def delete_certificate(certificate_id: int, db: Session = Depends(get_db)):
    try:
        affected = db.query(Certificate).filter(Certificate.id == certificate_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting certificate {certificate_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Certificate not found")
    return {"message": "Certificate deleted successfully", "affectedRows": affected}
