"""Imaging reports: echography, doppler, ECG and thyroid, one per consultation"""
import json
import logging
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import get_current_user
from medicab.database import get_db, upsert
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import DopplerReport, ECGReport, EchographyReport, ThyroidReport
from medicab.schemas import ImagingReportResponse, ImagingReportSave

logger = logging.getLogger("medicab.app")

MODALITIES = {
    "echography": EchographyReport,
    "doppler": DopplerReport,
    "ecg": ECGReport,
    "thyroid": ThyroidReport,
}

router = APIRouter(
    prefix="/imaging",
    tags=["imaging"],
    dependencies=[Depends(get_current_user)]
)


def get_report_model(modality: str):
    model = MODALITIES.get(modality)
    if model is None:
        raise NotFoundError(f"Unknown imaging modality '{modality}'")
    return model


def as_text_list(value: Any) -> List[str]:
    """Normalize a findings/conclusion field to a list of strings.

    Editors send plain strings, JSON-encoded strings, lists of strings or
    lists of {"desc": text} objects.
    """
    if value is None or value == "":
        return [""]
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        if isinstance(parsed, str):
            return [parsed]
        return as_text_list(parsed)
    if isinstance(value, dict):
        value = [value]
    if isinstance(value, list):
        items = []
        for item in value:
            if isinstance(item, dict):
                items.append(str(item.get("desc", "")))
            elif item is None:
                items.append("")
            else:
                items.append(item if isinstance(item, str) else str(item))
        return items or [""]
    return [str(value)]

@router.get("/{modality}", response_model=List[ImagingReportResponse])
def list_reports(modality: str, consultation_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    model = get_report_model(modality)
    if consultation_id is None:
        raise ValidationError("consultation_id is required")
    try:
        reports = db.query(model).filter(model.consultation_id == consultation_id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching {modality} reports of consultation {consultation_id}: {e}")
        raise DatabaseError("Fetch error", detail=str(e))

    return [
        ImagingReportResponse(
            id=report.id,
            consultation_id=report.consultation_id,
            findings=as_text_list(report.findings),
            conclusion=as_text_list(report.conclusion),
            updated_at=report.updated_at,
        )
        for report in reports
    ]

@router.post("/{modality}")
def save_report(modality: str, data: ImagingReportSave, db: Session = Depends(get_db)):
    """Create the consultation's report for this modality, or overwrite it"""
    model = get_report_model(modality)
    try:
        report = upsert(db, model, ["consultation_id"], {
            "consultation_id": data.consultation_id,
            "findings": as_text_list(data.findings),
            "conclusion": as_text_list(data.conclusion),
            "updated_at": datetime.now(),
        })
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving {modality} report of consultation {data.consultation_id}: {e}")
        raise DatabaseError("Save failed", detail=str(e))

    logger.info(f"{modality} report {report.id} saved for consultation {data.consultation_id}")
    return {"message": "Report saved successfully", "id": report.id}
