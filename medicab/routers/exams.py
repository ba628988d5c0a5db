"""Biological and exploration exams prescribed during a consultation"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import get_current_user
from medicab.database import get_db
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import PrescribedExam
from medicab.schemas import ExamCreate, ExamResponse, ExamSelectionSave

logger = logging.getLogger("medicab.app")

EXAM_TYPES = ["biological", "exploration"]

router = APIRouter(
    prefix="/exams",
    tags=["exams"],
    dependencies=[Depends(get_current_user)]
)

@router.get("/", response_model=List[ExamResponse])
def list_exams(
    consultation_id: Optional[int] = Query(None),
    type: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    if consultation_id is None:
        raise ValidationError("consultation_id is required")
    if type is not None and type not in EXAM_TYPES:
        raise ValidationError(f"type must be one of: {EXAM_TYPES}")

    query = db.query(PrescribedExam).filter(PrescribedExam.consultation_id == consultation_id)
    if type:
        query = query.filter(PrescribedExam.type == type)
    return query.order_by(PrescribedExam.id).all()

@router.post("/")
def save_exam_selection(data: ExamSelectionSave, db: Session = Depends(get_db)):
    """Replace every exam of one type for the consultation with the new selection"""
    try:
        db.query(PrescribedExam).filter(
            PrescribedExam.consultation_id == data.consultation_id,
            PrescribedExam.type == data.type,
        ).delete(synchronize_session=False)
        db.add_all([
            PrescribedExam(
                consultation_id=data.consultation_id,
                type=data.type,
                group_name=exam.group_name,
                detail=exam.detail,
            )
            for exam in data.selected
        ])
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving {data.type} exams of consultation {data.consultation_id}: {e}")
        raise DatabaseError("Save failed", detail=str(e))

    return {"message": "Exams saved successfully", "count": len(data.selected)}

@router.post("/single", status_code=status.HTTP_201_CREATED)
def add_exam(data: ExamCreate, db: Session = Depends(get_db)):
    exam = PrescribedExam(
        consultation_id=data.consultation_id,
        type=data.type,
        group_name=data.group_name,
        detail=data.detail,
    )
    try:
        db.add(exam)
        db.commit()
        db.refresh(exam)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error inserting exam for consultation {data.consultation_id}: {e}")
        raise DatabaseError("Insert error", detail=str(e))

    return {"message": "Exam inserted successfully", "insert_id": exam.id}

@router.delete("/{exam_id}")
def delete_exam(exam_id: int, db: Session = Depends(get_db)):
    try:
        affected = db.query(PrescribedExam).filter(PrescribedExam.id == exam_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting exam {exam_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Exam not found")
    return {"message": "Exam deleted successfully", "affectedRows": affected}
