# lms/payments/gateway.py
from decimal import Decimal
from typing import Any, Dict, Optional
import hashlib
import hmac
import json
import time
import uuid
import logging

import httpx

from lms.config import settings
from lms.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

PLACEHOLDER_VALUES = {"", "YOUR_MERCHANT_ID", "YOUR_API_SECRET"}

class PaymentGateway:
    """Thin client for the KBZPay precreate API.

    Without real credentials the gateway runs in demo mode: payment URLs
    point at the local demo endpoint and every signature is accepted.
    """

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.merchant_id = merchant_id if merchant_id is not None else (settings.PAYMENT_MERCHANT_ID or "")
        self.api_key = api_key if api_key is not None else (settings.PAYMENT_API_KEY or "")
        self.api_secret = api_secret if api_secret is not None else (settings.PAYMENT_API_SECRET or "")
        self.base_url = (base_url or settings.PAYMENT_BASE_URL).rstrip("/")
        self.transport = transport

    @property
    def is_production(self) -> bool:
        return self.merchant_id not in PLACEHOLDER_VALUES and self.api_secret not in PLACEHOLDER_VALUES

    # Signing

    @staticmethod
    def build_sign_string(data: Dict[str, Any]) -> str:
        keys = sorted(key for key in data if key not in ("sign", "sign_type"))
        return "&".join(f"{key}={data[key]}" for key in keys)

    def sign(self, sign_string: str) -> str:
        digest = hashlib.sha256(f"{sign_string}&key={self.api_secret}".encode("utf-8"))
        return digest.hexdigest().upper()

    def verify_signature(self, payload: str, signature: Optional[str]) -> bool:
        if not self.is_production:
            return True
        if not signature:
            return False
        return hmac.compare_digest(signature.upper().encode("utf-8"), self.sign(payload).encode("utf-8"))

    @staticmethod
    def callback_payload(transaction_id: str, amount: Decimal) -> str:
        """String the gateway signs on payment notifications"""
        return f"{transaction_id}{amount}"

    # Payment URLs

    @staticmethod
    def demo_url(payment_id: int) -> str:
        return f"{settings.APP_BASE_URL}/api/payments/demo/{payment_id}"

    async def create_payment_url(
        self,
        payment_id: int,
        transaction_id: str,
        amount: Decimal,
        title: str
    ) -> str:
        if not self.is_production:
            return self.demo_url(payment_id)

        request_data = {
            "merchant_id": self.merchant_id,
            "timestamp": str(int(time.time())),
            "nonce_str": uuid.uuid4().hex,
            "method": "kbz.payment.precreate",
            "biz_content": json.dumps({
                "merch_order_id": transaction_id,
                "merch_code": self.merchant_id,
                "appid": self.api_key,
                "trade_type": "WEB",
                "title": title or "Course Enrollment",
                # Amount in the smallest currency unit
                "total_amount": str(int(Decimal(amount) * 100)),
                "trans_currency": settings.PAYMENT_CURRENCY,
                "callback_url": settings.PAYMENT_RETURN_URL or "",
                "notify_url": settings.PAYMENT_NOTIFY_URL or "",
            }),
        }
        request_data["sign"] = self.sign(self.build_sign_string(request_data))
        request_data["sign_type"] = "SHA256"

        try:
            async with httpx.AsyncClient(
                timeout=settings.PAYMENT_TIMEOUT_SECONDS,
                transport=self.transport
            ) as client:
                response = await client.post(f"{self.base_url}/payment/precreate", json=request_data)
                response.raise_for_status()
                body = response.json()

            result = body.get("Response", {})
            if result.get("code") == "0" and result.get("pay_url"):
                return result["pay_url"]
            logger.warning(f"KBZPay precreate failed: {body}")
        except (httpx.HTTPError, ValueError):
            logger.exception("Error calling KBZPay API")

        raise PaymentGatewayError()
