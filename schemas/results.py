from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
import enum
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from schemas.table_session import SessionPreview, SessionSummary


class ErrorCode(str, enum.Enum):
    # connection / unreachable backend
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    # not found
    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    RECEIPT_NOT_FOUND = "RECEIPT_NOT_FOUND"
    # invalid state
    TABLE_INACTIVE = "TABLE_INACTIVE"
    SESSION_INACTIVE = "SESSION_INACTIVE"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    NO_UNPAID_ORDERS = "NO_UNPAID_ORDERS"
    MENU_ITEM_UNAVAILABLE = "MENU_ITEM_UNAVAILABLE"
    # authorization
    INVALID_TOKEN = "INVALID_TOKEN"
    # conflict
    TABLE_HAS_ACTIVE_SESSION = "TABLE_HAS_ACTIVE_SESSION"
    PAYMENT_CONFLICT = "PAYMENT_CONFLICT"
    # validation
    INVALID_INPUT = "INVALID_INPUT"
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    # unpaid precondition
    UNPAID_ORDERS = "UNPAID_ORDERS"


# Codes after which a persisted client session can never become valid again
DEFINITIVE_INVALID_CODES = {
    ErrorCode.SESSION_NOT_FOUND,
    ErrorCode.SESSION_INACTIVE,
    ErrorCode.SESSION_EXPIRED,
    ErrorCode.INVALID_TOKEN,
}


class ServiceResult(BaseModel):
    success: bool = True
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @classmethod
    def fail(cls, error_code: ErrorCode, error: str, **fields):
        return cls(success=False, error_code=error_code, error=error, **fields)

    @classmethod
    def from_db_error(cls, e: SQLAlchemyError, **fields):
        if isinstance(e, OperationalError):
            return cls.fail(ErrorCode.CONNECTION_ERROR, "Database is unreachable, please retry", **fields)
        return cls.fail(ErrorCode.DATABASE_ERROR, "Database operation failed", **fields)


class SessionResult(ServiceResult):
    session_id: Optional[str] = None
    session_token: Optional[str] = None
    table_id: Optional[int] = None
    restaurant_id: Optional[int] = None
    customer_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    already_closed: bool = False
    # Set with TABLE_HAS_ACTIVE_SESSION; the token of that session is never exposed
    existing_session_id: Optional[str] = None


class ExpiryResult(ServiceResult):
    expired_count: int = 0


class ActiveSessionsResult(ServiceResult):
    sessions: List[SessionPreview] = []


class SummaryResult(ServiceResult):
    summary: Optional[SessionSummary] = None


class OrderResult(ServiceResult):
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    subtotal: Optional[float] = None
    tax_amount: Optional[float] = None
    service_charge: Optional[float] = None
    total_amount: Optional[float] = None
    status: Optional[str] = None


class PaymentResult(ServiceResult):
    transaction_id: Optional[str] = None
    payment_id: Optional[int] = None
    amount: Optional[float] = None
    order_ids: List[int] = []
    receipt_number: Optional[str] = None
    outstanding_amount: Optional[float] = None
    counter_payment_pending: Optional[bool] = None
