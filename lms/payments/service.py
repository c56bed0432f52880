# lms/payments/service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from fastapi import HTTPException
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
import json
import uuid
import logging

from lms.accounts.models import User
from lms.courses.models import Course, Enrollment, EnrollmentStatus
from lms.payments.models import Payment, PaymentStatus
from lms.payments.gateway import PaymentGateway
from lms.payments.schemas import PaymentInitiation
from lms.exceptions import NotFoundError, InvalidStateError
from lms.utils.email import send_enrollment_email

logger = logging.getLogger(__name__)

def generate_transaction_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    return f"TXN-{now.strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"

class PaymentService:

    gateway = PaymentGateway()

    @staticmethod
    async def _get_enrollment(db: AsyncSession, user_id: int, course_id: int) -> Optional[Enrollment]:
        result = await db.execute(
            select(Enrollment).where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def initiate_payment(db: AsyncSession, user_id: int, course_id: int) -> PaymentInitiation:
        """Start checkout for a course, reusing a pending payment when there is one"""
        result = await db.execute(select(Course).where(Course.id == course_id))
        course = result.scalar_one_or_none()
        if not course:
            raise NotFoundError("Course")
        course_title = course.title_en
        price = course.price or Decimal("0")

        enrollment = await PaymentService._get_enrollment(db, user_id, course_id)
        if enrollment and enrollment.is_active:
            raise InvalidStateError("Already enrolled")

        if enrollment is None:
            enrollment = Enrollment(
                user_id=user_id,
                course_id=course_id,
                status=EnrollmentStatus.PENDING_PAYMENT
            )
            db.add(enrollment)
            try:
                await db.commit()
            except IntegrityError:
                # Concurrent checkout created it first
                await db.rollback()
                enrollment = await PaymentService._get_enrollment(db, user_id, course_id)
                if enrollment.is_active:
                    raise InvalidStateError("Already enrolled")
        else:
            result = await db.execute(
                select(Payment)
                .where(
                    Payment.enrollment_id == enrollment.id,
                    Payment.status == PaymentStatus.PENDING
                )
                .order_by(Payment.created_at.desc())
                .limit(1)
            )
            existing = result.scalar_one_or_none()
            if existing:
                payment_url = await PaymentService.gateway.create_payment_url(
                    existing.id, existing.transaction_id, existing.amount, course_title
                )
                return PaymentInitiation(
                    payment_id=existing.id,
                    transaction_id=existing.transaction_id,
                    payment_url=payment_url
                )

        payment = Payment(
            enrollment_id=enrollment.id,
            amount=price,
            payment_method="kbzpay",
            transaction_id=generate_transaction_id(),
            status=PaymentStatus.PENDING
        )
        db.add(payment)
        await db.commit()
        await db.refresh(payment)

        payment_url = await PaymentService.gateway.create_payment_url(
            payment.id, payment.transaction_id, payment.amount, course_title
        )

        logger.info(f"Payment initiated: {payment.id} for user {user_id}, course {course_id}")
        return PaymentInitiation(
            payment_id=payment.id,
            transaction_id=payment.transaction_id,
            payment_url=payment_url
        )

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: int) -> Payment:
        result = await db.execute(select(Payment).where(Payment.id == payment_id))
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment")
        return payment

    @staticmethod
    async def get_payment_by_transaction_id(db: AsyncSession, transaction_id: str) -> Optional[Payment]:
        result = await db.execute(select(Payment).where(Payment.transaction_id == transaction_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_payment_owner_id(db: AsyncSession, payment_id: int) -> Optional[int]:
        result = await db.execute(
            select(Enrollment.user_id)
            .join(Payment, Payment.enrollment_id == Enrollment.id)
            .where(Payment.id == payment_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def process_callback(
        db: AsyncSession,
        transaction_id: str,
        status: str,
        amount: Decimal,
        signature: Optional[str],
        raw_response: Optional[dict] = None
    ) -> bool:
        """Apply a gateway notification; False when it is rejected"""
        payment = await PaymentService.get_payment_by_transaction_id(db, transaction_id)
        if payment is None:
            logger.warning(f"Payment callback for unknown transaction: {transaction_id}")
            return False

        payload = PaymentGateway.callback_payload(transaction_id, amount)
        if not PaymentService.gateway.verify_signature(payload, signature):
            logger.warning(f"Invalid signature for payment: {payment.id}")
            return False

        if payment.status == PaymentStatus.COMPLETED:
            logger.info(f"Payment {payment.id} already completed, ignoring callback")
            return True

        payment_id = payment.id
        enrollment_id = payment.enrollment_id
        payment.gateway_response = json.dumps(raw_response, default=str) if raw_response else None

        if status.upper() == "SUCCESS":
            payment.status = PaymentStatus.COMPLETED
            payment.amount_paid = amount
            payment.payment_date = datetime.utcnow()
            await db.commit()

            logger.info(f"Payment completed: {payment_id}")
            await PaymentService.activate_enrollment(db, enrollment_id)
        else:
            payment.status = PaymentStatus.FAILED
            await db.commit()
            logger.warning(f"Payment failed: {payment_id}, status {status}")

        return True

    @staticmethod
    async def activate_enrollment(db: AsyncSession, enrollment_id: int) -> bool:
        """Move a pending enrollment to approved; never moves it backward"""
        result = await db.execute(
            update(Enrollment)
            .where(
                Enrollment.id == enrollment_id,
                Enrollment.status == EnrollmentStatus.PENDING_PAYMENT
            )
            .values(status=EnrollmentStatus.APPROVED, enrolled_at=datetime.utcnow())
        )
        await db.commit()
        if result.rowcount == 0:
            return False

        logger.info(f"Enrollment activated: {enrollment_id}")

        result = await db.execute(
            select(User, Course)
            .join(Enrollment, Enrollment.user_id == User.id)
            .join(Course, Enrollment.course_id == Course.id)
            .where(Enrollment.id == enrollment_id)
        )
        row = result.first()
        if row:
            user, course = row
            await send_enrollment_email(
                email=user.email,
                user_name=user.full_name,
                course_title=course.get_title(user.preferred_language),
                course_id=course.id
            )
        return True

    @staticmethod
    async def approve_enrollment(db: AsyncSession, enrollment_id: int) -> Enrollment:
        """Manual approval from the back-office"""
        result = await db.execute(select(Enrollment).where(Enrollment.id == enrollment_id))
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            raise NotFoundError("Enrollment")
        if not enrollment.can_advance_to(EnrollmentStatus.APPROVED):
            raise InvalidStateError("Enrollment is already active")

        await PaymentService.activate_enrollment(db, enrollment_id)
        await db.refresh(enrollment)
        return enrollment

    @staticmethod
    async def complete_demo_payment(db: AsyncSession, payment_id: int, success: bool = True) -> Payment:
        """Simulate the gateway notification while running without credentials"""
        if PaymentService.gateway.is_production:
            raise HTTPException(status_code=404, detail="Demo payments are disabled")

        payment = await PaymentService.get_payment(db, payment_id)
        await PaymentService.process_callback(
            db,
            transaction_id=payment.transaction_id,
            status="SUCCESS" if success else "FAILED",
            amount=payment.amount,
            signature="demo",
            raw_response={"demo": True}
        )
        await db.refresh(payment)
        return payment

    @staticmethod
    async def get_user_payments(db: AsyncSession, user_id: int) -> List[Payment]:
        result = await db.execute(
            select(Payment)
            .join(Enrollment, Payment.enrollment_id == Enrollment.id)
            .where(Enrollment.user_id == user_id)
            .order_by(Payment.created_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_course_payments(db: AsyncSession, course_id: int) -> List[Payment]:
        result = await db.execute(
            select(Payment)
            .join(Enrollment, Payment.enrollment_id == Enrollment.id)
            .where(Enrollment.course_id == course_id)
            .order_by(Payment.created_at.desc())
        )
        return result.scalars().all()
