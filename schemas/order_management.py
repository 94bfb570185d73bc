from typing import Dict, List, Optional
from pydantic import BaseModel, Field, validator
from datetime import datetime
from models.order_management import OrderStatus, OrderPaymentStatus


class OrderLineItem(BaseModel):
    menu_item_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1)
    # Customization name -> selected
    customizations: Dict[str, bool] = {}
    instructions: Optional[str] = Field(None, max_length=255)

    @validator('quantity')
    def validate_quantity(cls, v):
        if v > 50:
            raise ValueError("Quantity cannot exceed 50 per line")
        return v


class OrderCreate(BaseModel):
    line_items: List[OrderLineItem] = Field(..., min_length=1)
    special_instructions: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: Optional[int] = None
    name: str
    price: float
    quantity: int
    customizations: Optional[Dict[str, bool]] = None
    special_instructions: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    session_id: str
    order_number: str
    customer_name: Optional[str] = None
    subtotal: float
    tax_amount: float
    service_charge: float
    total_amount: float
    status: OrderStatus
    payment_status: OrderPaymentStatus
    special_instructions: Optional[str] = None
    items: List[OrderItemResponse] = []
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LedgerSummary(BaseModel):
    session_id: str
    total_amount: float
    total_orders: int
    paid_amount: float
    unpaid_amount: float
    unpaid_order_ids: List[int] = []
    orders: List[OrderResponse] = []
