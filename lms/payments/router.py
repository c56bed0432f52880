# lms/payments/router.py
from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from lms.database import get_db
from lms.deps import get_current_user
from lms.accounts.models import User
from lms.accounts.schemas import StandardResponse
from lms.payments.service import PaymentService
from lms.payments.schemas import PaymentRequest, PaymentInitiation, PaymentCallback, Payment
from lms.exceptions import NotFoundError

router = APIRouter()

async def _owned_payment(db: AsyncSession, payment_id: int, user: User):
    payment = await PaymentService.get_payment(db, payment_id)
    owner_id = await PaymentService.get_payment_owner_id(db, payment_id)
    if owner_id != user.id and not user.is_admin:
        raise NotFoundError("Payment")
    return payment

@router.post("/initiate", response_model=PaymentInitiation, status_code=201)
async def initiate_payment(
    payment_request: PaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Start checkout for a course; the enrollment waits for payment"""
    return await PaymentService.initiate_payment(db, current_user.id, payment_request.course_id)

@router.post("/callback", response_model=StandardResponse)
async def payment_callback(
    callback: PaymentCallback,
    db: AsyncSession = Depends(get_db)
):
    """Gateway notification (public, signature checked)"""
    accepted = await PaymentService.process_callback(
        db,
        transaction_id=callback.transaction_id,
        status=callback.status,
        amount=callback.amount,
        signature=callback.signature,
        raw_response=callback.model_dump()
    )
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment callback rejected"
        )
    return StandardResponse(message="Callback processed")

@router.get("/demo/{payment_id}", response_model=Payment)
async def get_demo_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Demo checkout page data while the gateway has no credentials"""
    if PaymentService.gateway.is_production:
        raise NotFoundError("Payment")
    return await _owned_payment(db, payment_id, current_user)

@router.post("/demo/{payment_id}/complete", response_model=Payment)
async def complete_demo_payment(
    payment_id: int,
    success: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await _owned_payment(db, payment_id, current_user)
    return await PaymentService.complete_demo_payment(db, payment_id, success=success)

@router.get("/me", response_model=List[Payment])
async def get_my_payments(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await PaymentService.get_user_payments(db, current_user.id)
