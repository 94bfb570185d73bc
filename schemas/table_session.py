from pydantic import BaseModel, Field, validator
from typing import Optional, List
from datetime import datetime
from models.table_session import SessionStatus, PaymentMode


class PersistedSession(BaseModel):
    """Client-held mirror of a dining session. Never authoritative."""
    session_id: str
    table_id: int
    restaurant_id: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    session_token: str
    created_at: datetime
    last_accessed: datetime
    expires_at: Optional[datetime] = None


class SessionCreate(BaseModel):
    table_id: int = Field(..., gt=0)
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_email: Optional[str] = Field(None, max_length=255)

    @validator('customer_name')
    def validate_customer_name(cls, v):
        if not v.strip():
            raise ValueError("Customer name cannot be blank")
        return v.strip()


class SessionPreview(BaseModel):
    session_id: str
    customer_name: Optional[str] = None
    total_orders: int = 0
    total_amount: float = 0.0
    created_at: Optional[datetime] = None
    last_activity: Optional[datetime] = None


class SessionResponse(BaseModel):
    id: str
    table_id: int
    restaurant_id: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    status: SessionStatus
    total_amount: float
    payment_mode: PaymentMode
    counter_payment_pending: bool
    counter_payment_completed: bool
    created_at: datetime
    last_activity: Optional[datetime] = None
    expires_at: datetime
    completed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    closed_reason: Optional[str] = None

    class Config:
        from_attributes = True


class SessionSummary(SessionResponse):
    total_orders: int = 0
    paid_amount: float = 0.0
    unpaid_amount: float = 0.0
    unpaid_order_ids: List[int] = []


class SessionCreatedResponse(BaseModel):
    session_id: str
    session_token: str
    table_id: int
    restaurant_id: int
    expires_at: datetime
