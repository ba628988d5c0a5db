"""Licence status and activation endpoints"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.database import get_db
from medicab.errors import DatabaseError, LicenseError, NotFoundError, ValidationError
from medicab.schemas import LicenceRegister, LicenceResponse
from medicab.services.licensing import is_expired, latest_licence, register_licence

logger = logging.getLogger("medicab.app")
audit_logger = logging.getLogger("medicab.audit")

# Public: the client has to read and install a licence before it can log in
router = APIRouter(
    prefix="/licence",
    tags=["licence"]
)

@router.get("")
def get_licence(db: Session = Depends(get_db)):
    """Status of the most recently registered licence"""
    try:
        licence = latest_licence(db)
    except SQLAlchemyError as e:
        logger.error(f"Error reading licence: {e}")
        raise DatabaseError("Database error", detail=str(e))

    if licence is None:
        raise NotFoundError("No licences found")

    if is_expired(licence):
        raise LicenseError("Licence has expired")

    return {
        "message": "Licence is valid",
        "licence": LicenceResponse.model_validate(licence).model_dump(mode="json"),
    }

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: LicenceRegister, request: Request, db: Session = Depends(get_db)):
    """Decrypt a licence key and store it as the current licence"""
    secret = request.app.state.settings.licence_secret
    try:
        licence = register_licence(db, payload.key.strip(), secret)
    except ValueError as e:
        audit_logger.info(f"Licence registration refused: {e}")
        raise ValidationError("Invalid licence key")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error storing licence: {e}")
        raise DatabaseError("Database error", detail=str(e))

    audit_logger.info(f"Licence {licence.id} registered, valid {licence.start_date} to {licence.expiry_date}")
    return {"message": "Licence registered successfully"}
