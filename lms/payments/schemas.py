# lms/payments/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class PaymentRequest(BaseModel):
    course_id: int

class PaymentInitiation(BaseModel):
    payment_id: int
    transaction_id: str
    payment_url: str

class PaymentCallback(BaseModel):
    transaction_id: str
    status: str
    amount: Decimal = Field(..., ge=0)
    signature: str = ""
    error_message: Optional[str] = None

class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    uuid: str
    enrollment_id: int
    amount: Decimal
    amount_paid: Optional[Decimal] = None
    payment_method: str
    transaction_id: str
    status: PaymentStatus
    payment_date: Optional[datetime] = None
    created_at: datetime
