# lms/payments/models.py
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey
from datetime import datetime
import uuid as uuid_lib

from lms.database import Base

class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String, default=lambda: str(uuid_lib.uuid4()), unique=True, index=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    amount_paid = Column(Numeric(10, 2), nullable=True)
    payment_method = Column(String, default="kbzpay")
    transaction_id = Column(String, unique=True, index=True, nullable=False)
    status = Column(String, default=PaymentStatus.PENDING)  # pending, completed, failed, refunded

    # Raw callback payload for auditing
    gateway_response = Column(Text, nullable=True)

    payment_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
