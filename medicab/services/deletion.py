"""Cascading deletion of consultations and patients.

The schema declares no ON DELETE CASCADE, so every row hanging off a
consultation is removed here explicitly. The two entry points differ on
purpose:

* delete_consultation is best effort. Each dependent table is cleared in its
  own statement and commit; a failing table is logged and skipped. Only the
  final delete of the consultation row can fail the operation.
* delete_patient is all-or-nothing. Everything runs in one transaction and
  any failure rolls the whole sequence back.
"""
import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.errors import DatabaseError, NotFoundError
from medicab.models import (
    Billing,
    Certificate,
    Consultation,
    DopplerReport,
    ECGReport,
    EchographyReport,
    InvoiceItem,
    InvoiceStatus,
    Orientation,
    Patient,
    PrescribedExam,
    Prescription,
    PrescriptionLine,
    ThyroidReport,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("medicab.audit")

# Leaves first: prescription lines reference prescriptions.
CONSULTATION_DEPENDENTS = (
    Billing,
    InvoiceItem,
    InvoiceStatus,
    PrescriptionLine,
    Prescription,
    PrescribedExam,
    EchographyReport,
    DopplerReport,
    ECGReport,
    ThyroidReport,
    Certificate,
    Orientation,
)


@dataclass
class DeletionResult:
    message: str
    affected_rows: int
    dependents_attempted: int = 0
    dependents_failed: int = 0


def _delete_dependents_of(model, consultation_ids):
    return (
        delete(model)
        .where(model.consultation_id.in_(consultation_ids))
        .execution_options(synchronize_session=False)
    )


def delete_consultation(db: Session, consultation_id: int) -> DeletionResult:
    attempted = 0
    failed: List[str] = []

    for model in CONSULTATION_DEPENDENTS:
        try:
            db.execute(
                delete(model)
                .where(model.consultation_id == consultation_id)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            # a missing table or a failing row must not stop the sequence
            db.rollback()
            failed.append(model.__tablename__)
            logger.warning(f"Ignoring failed delete on {model.__tablename__} for consultation {consultation_id}: {e}")
        attempted += 1

    # every dependent delete has been attempted at this point
    try:
        result = db.execute(
            delete(Consultation)
            .where(Consultation.id == consultation_id)
            .execution_options(synchronize_session=False)
        )
        affected = result.rowcount
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting consultation {consultation_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Consultation not found")

    audit_logger.info(f"Consultation {consultation_id} deleted (dependents attempted={attempted}, failed={failed})")
    return DeletionResult(
        message="Consultation deleted successfully",
        affected_rows=affected,
        dependents_attempted=attempted,
        dependents_failed=len(failed),
    )


def delete_patient(db: Session, patient_id: int) -> DeletionResult:
    consultation_ids = select(Consultation.id).where(Consultation.patient_id == patient_id)
    statements = [_delete_dependents_of(model, consultation_ids) for model in CONSULTATION_DEPENDENTS]
    statements.append(
        delete(Consultation)
        .where(Consultation.patient_id == patient_id)
        .execution_options(synchronize_session=False)
    )
    patient_delete = (
        delete(Patient)
        .where(Patient.id == patient_id)
        .execution_options(synchronize_session=False)
    )

    try:
        for stmt in statements:
            db.execute(stmt)
        affected = db.execute(patient_delete).rowcount

        if affected == 0:
            db.rollback()
            raise NotFoundError("Patient not found")

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting patient {patient_id}, transaction rolled back: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    audit_logger.info(f"Patient {patient_id} and all related data deleted")
    return DeletionResult(
        message="Patient and all related data deleted successfully",
        affected_rows=affected,
        dependents_attempted=len(statements),
    )
