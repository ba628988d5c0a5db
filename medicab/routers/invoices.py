"""Invoice items and payment status per consultation"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import get_current_user
from medicab.database import get_db, upsert
from medicab.errors import DatabaseError, NotFoundError, ValidationError
from medicab.models import Consultation, InvoiceItem, InvoiceStatus
from medicab.schemas import (
    InvoiceItemCreate, InvoiceItemResponse, InvoiceItemUpdate,
    InvoiceStatusResponse, MarkGenerated, PaymentUpdate
)
from medicab.utils.dates import normalize_date

logger = logging.getLogger("medicab.app")

router = APIRouter(
    prefix="/invoices",
    tags=["invoices"],
    dependencies=[Depends(get_current_user)]
)

# ----------------------------
# Invoice items
# ----------------------------
@router.get("/", response_model=List[InvoiceItemResponse])
def list_invoice_items(consultation_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    if consultation_id is None:
        raise ValidationError("consultation_id is required")
    try:
        return (
            db.query(InvoiceItem)
            .filter(InvoiceItem.consultation_id == consultation_id)
            .order_by(InvoiceItem.created_at.desc(), InvoiceItem.id.desc())
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching invoice items of consultation {consultation_id}: {e}")
        raise DatabaseError("Fetch error", detail=str(e))

@router.post("/", status_code=status.HTTP_201_CREATED)
def create_invoice_item(data: InvoiceItemCreate, db: Session = Depends(get_db)):
    if not db.get(Consultation, data.consultation_id):
        raise NotFoundError("Consultation not found")

    item = InvoiceItem(consultation_id=data.consultation_id, act=data.act, price=data.price)
    try:
        db.add(item)
        db.commit()
        db.refresh(item)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error inserting invoice item for consultation {data.consultation_id}: {e}")
        raise DatabaseError("Insert error", detail=str(e))

    logger.info(f"Invoice item {item.id} added to consultation {data.consultation_id}")
    return {"message": "Invoice item created successfully", "insert_id": item.id}

@router.post("/mark-generated")
def mark_generated(data: MarkGenerated, db: Session = Depends(get_db)):
    """Flag every item of a consultation as printed on an invoice"""
    try:
        affected = (
            db.query(InvoiceItem)
            .filter(InvoiceItem.consultation_id == data.consultation_id)
            .update({"is_generated": True}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error marking invoice of consultation {data.consultation_id} as generated: {e}")
        raise DatabaseError("Update error", detail=str(e))
    return {"message": "Invoice marked as generated successfully", "affectedRows": affected}

# ----------------------------
# Payment status
# ----------------------------
@router.get("/status", response_model=InvoiceStatusResponse)
def get_payment_status(consultation_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    """Payment status of a consultation; unpaid when nothing was recorded"""
    if consultation_id is None:
        raise ValidationError("consultation_id is required")

    invoice = db.query(InvoiceStatus).filter(InvoiceStatus.consultation_id == consultation_id).first()
    if invoice is None:
        return InvoiceStatusResponse(consultation_id=consultation_id)
    return invoice

@router.post("/update-payment")
def update_payment(data: PaymentUpdate, db: Session = Depends(get_db)):
    """Create or update the payment status of a consultation"""
    payment_date = None
    if data.payment_date:
        payment_date = normalize_date(data.payment_date, allow_datetime=True)
        if not payment_date:
            raise ValidationError("Invalid payment date format")

    if data.paid_amount < 0 or data.total_amount < 0:
        raise ValidationError("Amounts must not be negative")

    try:
        invoice = upsert(db, InvoiceStatus, ["consultation_id"], {
            "consultation_id": data.consultation_id,
            "status": data.status,
            "paid_amount": data.paid_amount,
            "total_amount": data.total_amount,
            "payment_date": payment_date,
            # the conflict branch does not fire column onupdate hooks
            "updated_at": datetime.now(),
        })
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving payment status of consultation {data.consultation_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    logger.info(f"Payment status of consultation {data.consultation_id} set to {data.status}")
    return {"message": "Payment status saved successfully", "id": invoice.id}

@router.get("/stats")
def invoice_stats(range: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """Invoice count and total for the current month, year or all time"""
    now = datetime.now()
    query = db.query(func.count(InvoiceItem.id), func.coalesce(func.sum(InvoiceItem.price), 0))

    if range == "month":
        query = query.filter(InvoiceItem.created_at >= datetime(now.year, now.month, 1))
    elif range == "year":
        query = query.filter(InvoiceItem.created_at >= datetime(now.year, 1, 1))
    elif range is not None:
        raise ValidationError("range must be 'month' or 'year'")

    try:
        count, total = query.one()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching invoice stats: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return {
        "range": range or "all",
        "total_invoices": count,
        "total_amount": float(total or 0),
        "month": now.strftime("%Y-%m"),
    }

# ----------------------------
# Item edit / delete
# ----------------------------
@router.put("/{item_id}")
def update_invoice_item(item_id: int, data: InvoiceItemUpdate, db: Session = Depends(get_db)):
    try:
        affected = (
            db.query(InvoiceItem)
            .filter(InvoiceItem.id == item_id)
            .update({"act": data.act, "price": data.price}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating invoice item {item_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Invoice item not found")
    return {"message": "Invoice item updated successfully", "affectedRows": affected}

@router.delete("/{item_id}")
def delete_invoice_item(item_id: int, db: Session = Depends(get_db)):
    try:
        affected = db.query(InvoiceItem).filter(InvoiceItem.id == item_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting invoice item {item_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("Invoice item not found")
    return {"message": "Invoice item deleted successfully", "affectedRows": affected}
