# medicab/schemas.py
from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List, Any, Literal

# ----------------------------
# User Schemas
# ----------------------------
class UserLogin(BaseModel):
    username: str
    password: str

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    role: Optional[str] = "user"
    email: Optional[str] = ""
    avatar: Optional[str] = ""

class UserUpdate(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None

class UserResponse(BaseModel):
    id: int
    username: str
    role: str
    email: Optional[str] = None
    avatar: Optional[str] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True

class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse

# ----------------------------
# Licence Schemas
# ----------------------------
class LicenceRegister(BaseModel):
    key: str

class LicenceResponse(BaseModel):
    id: int
    start_date: date
    expiry_date: date
    key_value: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

# ----------------------------
# Patient Schemas
# ----------------------------
class PatientCreate(BaseModel):
    last_name: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    birth_date: str
    weight: float
    history: Optional[str] = None

class PatientUpdate(PatientCreate):
    pass

class PatientResponse(BaseModel):
    id: int
    last_name: str
    first_name: str
    age: Optional[int] = None
    birth_date: Optional[str] = None
    weight: Optional[float] = None
    history: Optional[str] = None
    last_visit: Optional[str] = None

    class Config:
        from_attributes = True

# ----------------------------
# Consultation Schemas
# ----------------------------
class ConsultationCreate(BaseModel):
    patient_id: int
    date: str
    reason: Optional[str] = None
    price: Optional[float] = None
    conclusion: Optional[str] = None

class ConsultationStart(BaseModel):
    """Opens a consultation dated today with only a reason"""
    patient_id: int
    reason: Optional[str] = None

class ConsultationFinish(BaseModel):
    price: float

class ConsultationUpdate(BaseModel):
    reason: Optional[str] = None
    price: Optional[float] = None
    conclusion: Optional[str] = None

class ConsultationResponse(BaseModel):
    id: int
    patient_id: int
    date: str
    reason: Optional[str] = None
    price: Optional[float] = None
    conclusion: Optional[str] = None
    is_closed: Optional[bool] = False
    invoice_status: Optional[str] = None
    paid_amount: Optional[float] = None
    total_amount: Optional[float] = None
    payment_date: Optional[str] = None

    class Config:
        from_attributes = True

# ----------------------------
# Prescription Schemas
# ----------------------------
class PrescriptionLineData(BaseModel):
    medication: str
    dosage: Optional[str] = None
    instructions: Optional[str] = None

class PrescriptionCreate(BaseModel):
    consultation_id: int
    article: str = Field(..., min_length=1)
    quantity: str = Field(..., min_length=1)
    form: str = Field(..., min_length=1)
    detail: str = Field(..., min_length=1)
    duration: Optional[str] = ""
    lines: List[PrescriptionLineData] = []

class PrescriptionLineResponse(PrescriptionLineData):
    id: int

    class Config:
        from_attributes = True

class PrescriptionResponse(BaseModel):
    id: int
    consultation_id: int
    article: str
    quantity: str
    form: str
    detail: str
    duration: Optional[str] = None
    lines: List[PrescriptionLineResponse] = []

    class Config:
        from_attributes = True

# ----------------------------
# Invoice Schemas
# ----------------------------
class InvoiceItemCreate(BaseModel):
    consultation_id: int
    act: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)

class InvoiceItemUpdate(BaseModel):
    act: str = Field(..., min_length=1)
    price: float = Field(..., gt=0)

class InvoiceItemResponse(BaseModel):
    id: int
    consultation_id: int
    act: str
    price: float
    is_generated: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MarkGenerated(BaseModel):
    consultation_id: int

class PaymentUpdate(BaseModel):
    consultation_id: int
    status: Literal["unpaid", "partial", "paid"] = "unpaid"
    paid_amount: float = 0
    total_amount: float = 0
    payment_date: Optional[str] = None

class InvoiceStatusResponse(BaseModel):
    consultation_id: Optional[int] = None
    status: str = "unpaid"
    paid_amount: float = 0
    total_amount: float = 0
    payment_date: Optional[str] = None

    class Config:
        from_attributes = True

# ----------------------------
# Certificate & Orientation Schemas
# ----------------------------
class CertificateSave(BaseModel):
    consultation_id: int
    sick_leave_days: int = Field(..., gt=0)
    start_date: str

class CertificateUpdate(BaseModel):
    consultation_id: Optional[int] = None
    sick_leave_days: Optional[int] = Field(None, gt=0)
    start_date: Optional[str] = None

class CertificateResponse(BaseModel):
    id: int
    consultation_id: int
    sick_leave_days: int
    start_date: str

    class Config:
        from_attributes = True

class OrientationSave(BaseModel):
    consultation_id: int
    history: Optional[str] = None
    presentation: Optional[str] = None
    reason: Optional[str] = None

class OrientationUpdate(BaseModel):
    history: Optional[str] = None
    presentation: Optional[str] = None
    reason: Optional[str] = None

class OrientationResponse(OrientationSave):
    id: int

    class Config:
        from_attributes = True

# ----------------------------
# Exam Schemas
# ----------------------------
ExamType = Literal["biological", "exploration"]

class ExamSelection(BaseModel):
    group_name: str
    detail: str

class ExamSelectionSave(BaseModel):
    """Replaces every exam of one type for a consultation"""
    consultation_id: int
    type: ExamType
    selected: List[ExamSelection]

class ExamCreate(ExamSelection):
    consultation_id: int
    type: ExamType

class ExamResponse(ExamCreate):
    id: int

    class Config:
        from_attributes = True

# ----------------------------
# Imaging Schemas
# ----------------------------
class ImagingReportSave(BaseModel):
    consultation_id: int
    findings: Any = None
    conclusion: Any = None

class ImagingReportResponse(BaseModel):
    id: int
    consultation_id: int
    findings: List[str] = []
    conclusion: List[str] = []
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
