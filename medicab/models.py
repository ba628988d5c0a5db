# medicab/models.py
from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Boolean, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from medicab.database import Base

# Dependent tables reference their consultation through a plain foreign key
# column, without ON DELETE CASCADE. Removing a consultation or a patient goes
# through medicab.services.deletion.

# ----------------------------
# Users
# ----------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="user")
    email = Column(String(255), default="")
    avatar = Column(String(500), default="")
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

# ----------------------------
# Licence
# ----------------------------
class License(Base):
    __tablename__ = "license"

    id = Column(Integer, primary_key=True, index=True)
    start_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=False)
    key_value = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

# ----------------------------
# Patients
# ----------------------------
class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    last_name = Column(String(100), nullable=False)
    first_name = Column(String(100), nullable=False)
    age = Column(Integer)
    birth_date = Column(String(10))
    weight = Column(Float)
    history = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    consultations = relationship("Consultation", back_populates="patient")

# ----------------------------
# Consultations
# ----------------------------
class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    date = Column(String(10), nullable=False)
    reason = Column(String(500))
    price = Column(Float)
    conclusion = Column(Text)
    is_closed = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    patient = relationship("Patient", back_populates="consultations")

# ----------------------------
# Billing
# ----------------------------
class Billing(Base):
    __tablename__ = "billing"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    act = Column(String(255), nullable=False)
    amount = Column(Float, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    act = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    is_generated = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class InvoiceStatus(Base):
    __tablename__ = "invoice_status"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)
    status = Column(String(20), default="unpaid")
    paid_amount = Column(Float, default=0)
    total_amount = Column(Float, default=0)
    payment_date = Column(String(10))
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

# ----------------------------
# Prescriptions
# ----------------------------
class Prescription(Base):
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    article = Column(String(255), nullable=False)
    quantity = Column(String(50), nullable=False)
    form = Column(String(100), nullable=False)
    detail = Column(String(500), nullable=False)
    duration = Column(String(100), default="")

    lines = relationship("PrescriptionLine", back_populates="prescription")


class PrescriptionLine(Base):
    __tablename__ = "prescription_lines"

    id = Column(Integer, primary_key=True, index=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id"), nullable=False)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    medication = Column(String(255), nullable=False)
    dosage = Column(String(100))
    instructions = Column(Text)

    prescription = relationship("Prescription", back_populates="lines")


class PrescribedExam(Base):
    __tablename__ = "prescribed_exams"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # biological, exploration
    group_name = Column(String(255), nullable=False)
    detail = Column(String(500), nullable=False)

# ----------------------------
# Imaging reports
# ----------------------------
class ImagingReportMixin:
    id = Column(Integer, primary_key=True, index=True)
    findings = Column(JSON, default=list)
    conclusion = Column(JSON, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class EchographyReport(ImagingReportMixin, Base):
    __tablename__ = "echography_reports"

    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)


class DopplerReport(ImagingReportMixin, Base):
    __tablename__ = "doppler_reports"

    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)


class ECGReport(ImagingReportMixin, Base):
    __tablename__ = "ecg_reports"

    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)


class ThyroidReport(ImagingReportMixin, Base):
    __tablename__ = "thyroid_reports"

    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)

# ----------------------------
# Certificates & orientation letters
# ----------------------------
class Certificate(Base):
    __tablename__ = "certificates"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)
    sick_leave_days = Column(Integer, nullable=False)
    start_date = Column(String(10), nullable=False)


class Orientation(Base):
    __tablename__ = "orientations"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id"), nullable=False, unique=True)
    history = Column(Text)
    presentation = Column(Text)
    reason = Column(Text)
