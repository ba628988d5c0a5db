"""Clinic and billing dashboards"""
import calendar
import logging
import math
from datetime import date, timedelta
from typing import Literal, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import get_current_user
from medicab.database import get_db
from medicab.errors import DatabaseError
from medicab.models import (
    Consultation, ECGReport, EchographyReport, InvoiceItem, InvoiceStatus, Patient, ThyroidReport
)
from medicab.utils.dates import compute_age

logger = logging.getLogger("medicab.app")

router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
    dependencies=[Depends(get_current_user)]
)

TimeRange = Literal["today", "week", "month", "year", "all"]

# consultation dates are stored as YYYY-MM-DD text
consultation_month = func.substr(Consultation.date, 6, 2)


def _month_back(day: date, months: int) -> date:
    year, month = divmod(day.year * 12 + day.month - 1 - months, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def date_bounds(time_range: str, today: Optional[date] = None) -> Tuple[Optional[str], Optional[str]]:
    """Inclusive start and exclusive end, as ISO strings, of a dashboard period"""
    today = today or date.today()
    if time_range == "today":
        return today.isoformat(), (today + timedelta(days=1)).isoformat()
    if time_range == "week":
        return (today - timedelta(days=7)).isoformat(), None
    if time_range == "month":
        return _month_back(today, 1).isoformat(), None
    if time_range == "year":
        return _month_back(today, 12).isoformat(), None
    return None, None


def in_period(query, time_range: str):
    start, end = date_bounds(time_range)
    if start:
        query = query.filter(Consultation.date >= start)
    if end:
        query = query.filter(Consultation.date < end)
    return query


def _by_month(rows) -> dict:
    return {int(month): value for month, value in rows if month}

# ----------------------------
# Clinic overview
# ----------------------------
@router.get("/stats")
def get_dashboard_stats(db: Session = Depends(get_db)):
    today = date.today()
    try:
        return {
            "total_patients": db.query(Patient).count(),
            "total_revenue": float(db.query(func.coalesce(func.sum(InvoiceItem.price), 0)).scalar() or 0),
            "monthly_consultations": db.query(Consultation).filter(
                Consultation.date.like(f"{today.strftime('%Y-%m')}-%")
            ).count(),
            "today_patients": db.query(func.count(func.distinct(Consultation.patient_id))).filter(
                Consultation.date == today.isoformat()
            ).scalar(),
        }
    except SQLAlchemyError as e:
        logger.error(f"Error fetching dashboard stats: {e}")
        raise DatabaseError("Database error", detail=str(e))

@router.get("/revenue")
def get_revenue(year: Optional[int] = Query(None), db: Session = Depends(get_db)):
    """Invoiced amount per calendar month, all twelve months always present"""
    query = (
        db.query(consultation_month, func.sum(InvoiceItem.price))
        .select_from(Consultation)
        .join(InvoiceItem, InvoiceItem.consultation_id == Consultation.id)
    )
    if year is not None:
        query = query.filter(Consultation.date.like(f"{year:04d}-%"))
    try:
        revenue = _by_month(query.group_by(consultation_month).all())
    except SQLAlchemyError as e:
        logger.error(f"Error fetching monthly revenue: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return [
        {"month": month, "name": calendar.month_abbr[month], "revenue": float(revenue.get(month) or 0)}
        for month in range(1, 13)
    ]

@router.get("/activity")
def get_activity(year: Optional[int] = Query(None), db: Session = Depends(get_db)):
    """Consultations and imaging reports per calendar month"""
    def monthly_count(model=None):
        if model is None:
            query = db.query(consultation_month, func.count(Consultation.id))
        else:
            query = (
                db.query(consultation_month, func.count(model.id))
                .select_from(Consultation)
                .join(model, model.consultation_id == Consultation.id)
            )
        if year is not None:
            query = query.filter(Consultation.date.like(f"{year:04d}-%"))
        return _by_month(query.group_by(consultation_month).all())

    try:
        counts = {
            "consultations": monthly_count(),
            "echographies": monthly_count(EchographyReport),
            "thyroid": monthly_count(ThyroidReport),
            "ecg": monthly_count(ECGReport),
        }
    except SQLAlchemyError as e:
        logger.error(f"Error fetching monthly activity: {e}")
        raise DatabaseError("Database error", detail=str(e))

    activity = []
    for month in range(1, 13):
        entry = {"month": month, "name": calendar.month_abbr[month]}
        entry.update({key: by_month.get(month, 0) for key, by_month in counts.items()})
        activity.append(entry)
    return activity

@router.get("/today-appointments")
def get_today_appointments(db: Session = Depends(get_db)):
    try:
        rows = (
            db.query(Consultation, Patient)
            .join(Patient, Patient.id == Consultation.patient_id)
            .filter(Consultation.date == date.today().isoformat())
            .order_by(Consultation.id)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching today's appointments: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return [
        {
            "id": patient.id,
            "consultation_id": consultation.id,
            "name": f"{patient.last_name} {patient.first_name}".strip(),
            "birth_date": patient.birth_date,
            "age": compute_age(patient.birth_date),
            "weight": patient.weight,
            "history": patient.history or "",
            "reason": consultation.reason or "Consultation",
            "date": consultation.date,
        }
        for consultation, patient in rows
    ]

# ----------------------------
# Billing
# ----------------------------
@router.get("/financial-stats")
def get_financial_stats(db: Session = Depends(get_db)):
    try:
        total_revenue, total_invoices, unique_consultations = db.query(
            func.coalesce(func.sum(InvoiceItem.price), 0),
            func.count(InvoiceItem.id),
            func.count(func.distinct(InvoiceItem.consultation_id)),
        ).one()
        today_revenue, today_consultations = (
            db.query(
                func.coalesce(func.sum(InvoiceItem.price), 0),
                func.count(func.distinct(InvoiceItem.consultation_id)),
            )
            .select_from(InvoiceItem)
            .join(Consultation, Consultation.id == InvoiceItem.consultation_id)
            .filter(Consultation.date == date.today().isoformat())
            .one()
        )
        by_act = (
            db.query(InvoiceItem.act, func.sum(InvoiceItem.price), func.count(InvoiceItem.id))
            .group_by(InvoiceItem.act)
            .order_by(func.sum(InvoiceItem.price).desc())
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching financial stats: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return {
        "total_revenue": float(total_revenue or 0),
        "total_invoices": total_invoices,
        "unique_consultations": unique_consultations,
        "today_revenue": float(today_revenue or 0),
        "today_consultations": today_consultations,
        "revenue_by_act": [
            {"act": act, "revenue": float(revenue or 0), "count": count} for act, revenue, count in by_act
        ],
    }

@router.get("/billing")
def get_billing_dashboard(
    time_range: TimeRange = Query("today"),
    patient_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """Consultations of a period with their invoiced and paid amounts"""
    items = (
        db.query(
            InvoiceItem.consultation_id.label("consultation_id"),
            func.sum(InvoiceItem.price).label("total"),
            func.count(InvoiceItem.id).label("item_count"),
            func.min(InvoiceItem.act).label("act"),
        )
        .group_by(InvoiceItem.consultation_id)
        .subquery()
    )
    query = in_period(
        db.query(Consultation, Patient, items.c.total, items.c.item_count, items.c.act, InvoiceStatus)
        .select_from(Consultation)
        .outerjoin(Patient, Patient.id == Consultation.patient_id)
        .outerjoin(items, items.c.consultation_id == Consultation.id)
        .outerjoin(InvoiceStatus, InvoiceStatus.consultation_id == Consultation.id),
        time_range,
    )
    if patient_id is not None:
        query = query.filter(Consultation.patient_id == patient_id)

    try:
        total = query.count()
        rows = (
            query.order_by(Consultation.date.desc(), Consultation.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching billing dashboard: {e}")
        raise DatabaseError("Database error", detail=str(e))

    invoices = []
    for consultation, patient, amount, item_count, act, payment in rows:
        invoices.append({
            "id": consultation.id,
            "patient_id": consultation.patient_id,
            "patient_name": f"{patient.last_name} {patient.first_name}" if patient else "",
            "act": act or consultation.reason or "Consultation",
            "amount": float(amount or 0),
            "paid_amount": float(payment.paid_amount or 0) if payment else 0.0,
            "status": payment.status if payment and payment.status in ("paid", "partial") else "unpaid",
            "date": consultation.date,
            "item_count": item_count or 0,
        })

    return {
        "invoices": invoices,
        "pagination": {
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_items": total,
            "items_per_page": limit,
        },
    }

@router.get("/billing/stats")
def get_billing_stats(time_range: TimeRange = Query("today"), db: Session = Depends(get_db)):
    try:
        total_consultations = in_period(db.query(Consultation), time_range).count()
        total_revenue, total_items = in_period(
            db.query(func.coalesce(func.sum(InvoiceItem.price), 0), func.count(InvoiceItem.id))
            .select_from(InvoiceItem)
            .join(Consultation, Consultation.id == InvoiceItem.consultation_id),
            time_range,
        ).one()
        total_paid = in_period(
            db.query(func.coalesce(func.sum(InvoiceStatus.paid_amount), 0))
            .select_from(InvoiceStatus)
            .join(Consultation, Consultation.id == InvoiceStatus.consultation_id),
            time_range,
        ).scalar()
        payment_status = func.coalesce(InvoiceStatus.status, "unpaid")
        by_status = dict(in_period(
            db.query(payment_status, func.count(Consultation.id))
            .select_from(Consultation)
            .outerjoin(InvoiceStatus, InvoiceStatus.consultation_id == Consultation.id),
            time_range,
        ).group_by(payment_status).all())
    except SQLAlchemyError as e:
        logger.error(f"Error fetching billing stats: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return {
        "time_range": time_range,
        "total_consultations": total_consultations,
        "total_revenue": float(total_revenue or 0),
        "total_paid": float(total_paid or 0),
        "total_items": total_items,
        "paid_count": by_status.get("paid", 0),
        "partial_count": by_status.get("partial", 0),
        "unpaid_count": by_status.get("unpaid", 0),
    }

@router.get("/revenue-by-act")
def get_revenue_by_act(time_range: TimeRange = Query("today"), db: Session = Depends(get_db)):
    """Ten best-earning acts of the period"""
    revenue = func.sum(InvoiceItem.price)
    try:
        rows = (
            in_period(
                db.query(InvoiceItem.act, revenue)
                .select_from(InvoiceItem)
                .join(Consultation, Consultation.id == InvoiceItem.consultation_id),
                time_range,
            )
            .group_by(InvoiceItem.act)
            .order_by(revenue.desc())
            .limit(10)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Error fetching revenue by act: {e}")
        raise DatabaseError("Database error", detail=str(e))

    return [{"name": act or "Other", "revenue": float(total or 0)} for act, total in rows]
