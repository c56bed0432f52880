# lms/exceptions.py
from fastapi import HTTPException, status
from typing import Optional


class NotFoundError(HTTPException):
    """Entity id does not resolve"""

    def __init__(self, entity: str = "Resource"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found")


class AccessDeniedError(HTTPException):
    """A prerequisite is not met; carries the reason code of the denial"""

    def __init__(self, detail: str, reason: Optional[str] = None):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        self.reason = reason


class InvalidStateError(HTTPException):
    """Operation conflicts with the current state (double submit, duplicates, exhausted attempts)"""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class PaymentGatewayError(HTTPException):
    """The payment provider could not create a checkout"""

    def __init__(self, detail: str = "Payment gateway unavailable"):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
