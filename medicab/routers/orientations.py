"""Orientation (referral) letters, one per consultation"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import get_current_user
from medicab.database import get_db, upsert
from medicab.errors import DatabaseError, NotFoundError
from medicab.models import Orientation
from medicab.schemas import OrientationResponse, OrientationSave, OrientationUpdate

logger = logging.getLogger("medicab.app")

router = APIRouter(
    prefix="/orientations",
    tags=["orientations"],
    dependencies=[Depends(get_current_user)]
)

@router.get("/", response_model=List[OrientationResponse])
def list_orientations(consultation_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    query = db.query(Orientation)
    if consultation_id is not None:
        query = query.filter(Orientation.consultation_id == consultation_id)
    try:
        return query.order_by(Orientation.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching orientations: {e}")
        raise DatabaseError("Database error", detail=str(e))

@router.post("/")
def save_orientation(data: OrientationSave, db: Session = Depends(get_db)):
    """Create the consultation's orientation letter, or overwrite it"""
    try:
        orientation = upsert(db, Orientation, ["consultation_id"], {
            "consultation_id": data.consultation_id,
            "history": data.history,
            "presentation": data.presentation,
            "reason": data.reason,
        })
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving orientation of consultation {data.consultation_id}: {e}")
        raise DatabaseError("Save failed", detail=str(e))

    return {"message": "Orientation saved successfully", "id": orientation.id}

@router.put("/{orientation_id}")
def update_orientation(orientation_id: int, data: OrientationUpdate, db: Session = Depends(get_db)):
    try:
        affected = (
            db.query(Orientation)
            .filter(Orientation.id == orientation_id)
            .update(
                {"history": data.history, "presentation": data.presentation, "reason": data.reason},
                synchronize_session=False,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating orientation {orientation_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Orientation not found")
    return {"message": "Orientation updated successfully", "affectedRows": affected}

@router.delete("/{orientation_id}")
def delete_orientation(orientation_id: int, db: Session = Depends(get_db)):
    try:
        affected = db.query(Orientation).filter(Orientation.id == orientation_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting orientation {orientation_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Orientation not found")
    return {"message": "Orientation deleted successfully", "affectedRows": affected}
