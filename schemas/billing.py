from pydantic import BaseModel, Field, validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
from models.billing import PaymentMethod, PaymentStatus
from schemas.results import ServiceResult


class PaymentPath(str, Enum):
    ONLINE = "online"
    COUNTER = "counter"


class PaymentPathRequest(BaseModel):
    path: PaymentPath
    method: PaymentMethod = Field(PaymentMethod.CARD, description="Gateway used for online payment")


class OrderPaymentRequest(BaseModel):
    method: PaymentMethod = PaymentMethod.CARD


class CounterPaymentCreate(BaseModel):
    order_ids: List[int] = Field(..., min_length=1, description="Unpaid orders settled at the counter")
    received_by: Optional[str] = Field(None, max_length=100, description="Defaults to the staff member's username")
    notes: Optional[str] = Field(None, max_length=500)

    @validator('order_ids')
    def validate_order_ids(cls, v):
        if any(order_id <= 0 for order_id in v):
            raise ValueError("Order IDs must be positive")
        return v


class SessionCloseRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class PaymentOption(BaseModel):
    path: PaymentPath
    title: str
    description: str
    available: bool
    methods: List[PaymentMethod] = []


class PaymentOptions(BaseModel):
    session_id: str
    unpaid_amount: float
    payment_mode: str
    counter_payment_pending: bool
    counter_payment_completed: bool
    can_close: bool
    options: List[PaymentOption] = []


class PaymentOptionsResult(ServiceResult):
    payment_options: Optional[PaymentOptions] = None


class PaymentResponse(BaseModel):
    id: int
    order_id: Optional[int] = None
    session_id: str
    method: PaymentMethod
    provider: str
    transaction_id: str
    gateway_transaction_id: Optional[str] = None
    amount: float
    payment_fee: float
    net_amount: float
    currency: str
    status: PaymentStatus
    payment_data: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReceiptResponse(BaseModel):
    id: int
    receipt_number: str
    session_id: str
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    table_number: Optional[str] = None
    items: List[Dict[str, Any]]
    subtotal: float
    tax_amount: float
    service_charge: float
    total_amount: float
    payment_details: List[Dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


class CloseStatus(BaseModel):
    session_id: str
    can_close: bool
    outstanding_amount: float
