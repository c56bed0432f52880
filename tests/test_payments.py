# tests/test_payments.py
from decimal import Decimal

import httpx
import pytest

from lms.courses.models import Enrollment, EnrollmentStatus
from lms.courses.service import CourseService
from lms.payments.gateway import PaymentGateway
from lms.payments.models import PaymentStatus
from lms.payments.service import PaymentService, generate_transaction_id
from lms.exceptions import InvalidStateError, NotFoundError, PaymentGatewayError

def test_transaction_id_format():
    transaction_id = generate_transaction_id()

    prefix, day, suffix = transaction_id.split("-")
    assert prefix == "TXN"
    assert len(day) == 8
    assert len(suffix) == 8

async def test_initiate_creates_pending_enrollment_and_demo_url(db, factory):
    user = await factory.user()
    course = await factory.course(price=Decimal("25000"))

    initiation = await PaymentService.initiate_payment(db, user.id, course.id)

    enrollment = await CourseService.get_enrollment(db, user.id, course.id)
    payment = await PaymentService.get_payment(db, initiation.payment_id)
    assert enrollment.status == EnrollmentStatus.PENDING_PAYMENT
    assert payment.status == PaymentStatus.PENDING
    assert payment.amount == Decimal("25000")
    assert initiation.payment_url.endswith(f"/api/payments/demo/{payment.id}")

async def test_initiate_reuses_pending_payment(db, factory):
    user = await factory.user()
    course = await factory.course()

    first = await PaymentService.initiate_payment(db, user.id, course.id)
    second = await PaymentService.initiate_payment(db, user.id, course.id)

    assert first.payment_id == second.payment_id

async def test_initiate_rejects_active_enrollment(db, factory):
    user = await factory.user()
    course = await factory.course()
    await factory.enrollment(user, course, status=EnrollmentStatus.APPROVED)

    with pytest.raises(InvalidStateError):
        await PaymentService.initiate_payment(db, user.id, course.id)

async def test_initiate_unknown_course(db, factory):
    user = await factory.user()

    with pytest.raises(NotFoundError):
        await PaymentService.initiate_payment(db, user.id, 999)

async def test_successful_callback_activates_enrollment(db, factory):
    user = await factory.user()
    course = await factory.course()
    initiation = await PaymentService.initiate_payment(db, user.id, course.id)
    payment = await PaymentService.get_payment(db, initiation.payment_id)

    accepted = await PaymentService.process_callback(
        db, initiation.transaction_id, "SUCCESS", payment.amount, signature=None
    )

    enrollment = await CourseService.get_enrollment(db, user.id, course.id)
    await db.refresh(payment)
    assert accepted is True
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.payment_date is not None
    assert enrollment.status == EnrollmentStatus.APPROVED

async def test_repeated_callback_is_idempotent(db, factory):
    user = await factory.user()
    course = await factory.course()
    initiation = await PaymentService.initiate_payment(db, user.id, course.id)
    payment = await PaymentService.get_payment(db, initiation.payment_id)
    await PaymentService.process_callback(db, initiation.transaction_id, "SUCCESS", payment.amount, None)

    again = await PaymentService.process_callback(db, initiation.transaction_id, "FAILED", payment.amount, None)

    await db.refresh(payment)
    assert again is True
    assert payment.status == PaymentStatus.COMPLETED

async def test_failed_callback_keeps_enrollment_pending(db, factory):
    user = await factory.user()
    course = await factory.course()
    initiation = await PaymentService.initiate_payment(db, user.id, course.id)

    await PaymentService.process_callback(db, initiation.transaction_id, "FAILED", Decimal("0"), None)

    payment = await PaymentService.get_payment(db, initiation.payment_id)
    enrollment = await CourseService.get_enrollment(db, user.id, course.id)
    assert payment.status == PaymentStatus.FAILED
    assert enrollment.status == EnrollmentStatus.PENDING_PAYMENT

async def test_unknown_transaction_is_rejected(db):
    assert await PaymentService.process_callback(db, "TXN-00000000-NOPE", "SUCCESS", Decimal("1"), None) is False

async def test_activation_never_moves_backward(db, factory):
    user = await factory.user()
    course = await factory.course()
    enrollment = await factory.enrollment(user, course, status=EnrollmentStatus.COMPLETED)

    assert await PaymentService.activate_enrollment(db, enrollment.id) is False
    await db.refresh(enrollment)
    assert enrollment.status == EnrollmentStatus.COMPLETED

async def test_manual_approval(db, factory):
    user = await factory.user()
    course = await factory.course()
    enrollment = await factory.enrollment(user, course, status=EnrollmentStatus.PENDING_PAYMENT)

    approved = await PaymentService.approve_enrollment(db, enrollment.id)

    assert approved.status == EnrollmentStatus.APPROVED
    with pytest.raises(InvalidStateError):
        await PaymentService.approve_enrollment(db, enrollment.id)

async def test_completed_enrollment_cannot_be_approved_again(db, factory):
    user = await factory.user()
    course = await factory.course()
    enrollment = await factory.enrollment(user, course, status=EnrollmentStatus.COMPLETED)

    with pytest.raises(InvalidStateError):
        await PaymentService.approve_enrollment(db, enrollment.id)

    await db.refresh(enrollment)
    assert enrollment.status == EnrollmentStatus.COMPLETED

def test_enrollment_status_only_moves_forward():
    pending = Enrollment(status=EnrollmentStatus.PENDING_PAYMENT)
    approved = Enrollment(status=EnrollmentStatus.APPROVED)

    assert pending.can_advance_to(EnrollmentStatus.APPROVED) is True
    assert approved.can_advance_to(EnrollmentStatus.COMPLETED) is True
    assert approved.can_advance_to(EnrollmentStatus.APPROVED) is False
    assert approved.can_advance_to(EnrollmentStatus.PENDING_PAYMENT) is False
    assert approved.can_advance_to("cancelled") is False

async def test_demo_completion(db, factory):
    user = await factory.user()
    course = await factory.course()
    initiation = await PaymentService.initiate_payment(db, user.id, course.id)

    payment = await PaymentService.complete_demo_payment(db, initiation.payment_id)

    assert payment.status == PaymentStatus.COMPLETED
    assert await PaymentService.get_payment_owner_id(db, payment.id) == user.id

# Gateway

def _production_gateway(handler=None):
    transport = httpx.MockTransport(handler) if handler else None
    return PaymentGateway(
        merchant_id="M100",
        api_key="app-key",
        api_secret="s3cret",
        base_url="https://gateway.test",
        transport=transport
    )

def test_demo_gateway_accepts_any_signature():
    gateway = PaymentGateway(merchant_id="", api_key="", api_secret="")

    assert gateway.is_production is False
    assert gateway.verify_signature("anything", None) is True

def test_production_gateway_checks_signature():
    gateway = _production_gateway()
    payload = PaymentGateway.callback_payload("TXN-1", Decimal("100.00"))

    assert gateway.verify_signature(payload, gateway.sign(payload)) is True
    assert gateway.verify_signature(payload, gateway.sign(payload).lower()) is True
    assert gateway.verify_signature(payload, "bad") is False
    assert gateway.verify_signature(payload, None) is False
    assert gateway.verify_signature(payload, "\u00e9" * 64) is False

def test_sign_string_is_sorted_and_skips_signature_fields():
    sign_string = PaymentGateway.build_sign_string({"b": 2, "a": 1, "sign": "x", "sign_type": "SHA256"})

    assert sign_string == "a=1&b=2"

async def test_create_payment_url_uses_gateway_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/payment/precreate"
        return httpx.Response(200, json={"Response": {"code": "0", "pay_url": "https://pay.test/abc"}})

    url = await _production_gateway(handler).create_payment_url(1, "TXN-1", Decimal("100"), "Course")

    assert url == "https://pay.test/abc"

async def test_create_payment_url_raises_when_gateway_fails():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(PaymentGatewayError) as exc_info:
        await _production_gateway(handler).create_payment_url(7, "TXN-7", Decimal("100"), "Course")

    assert exc_info.value.status_code == 502

async def test_create_payment_url_raises_on_rejected_precreate():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"Response": {"code": "1", "msg": "invalid merchant"}})

    with pytest.raises(PaymentGatewayError):
        await _production_gateway(handler).create_payment_url(8, "TXN-8", Decimal("100"), "Course")
