from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from utils.database import Base
from datetime import datetime
import enum

class PaymentMethod(str, enum.Enum):
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(Base):
    """One payment transaction. Rows are append-only."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    # Null for session-level payments covering several orders
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    session_id = Column(String(36), ForeignKey("table_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    method = Column(Enum(PaymentMethod), nullable=False)
    provider = Column(String, nullable=False)
    transaction_id = Column(String, unique=True, nullable=False)
    gateway_transaction_id = Column(String, nullable=True)
    amount = Column(Float, nullable=False)
    payment_fee = Column(Float, default=0.0)
    net_amount = Column(Float, nullable=False)
    currency = Column(String(3), default="USD")
    status = Column(Enum(PaymentStatus), default=PaymentStatus.COMPLETED)
    payment_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    order = relationship("Order", back_populates="payments")
    session = relationship("TableSession", back_populates="payments")


class CounterPayment(Base):
    __tablename__ = "counter_payments"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("table_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    order_ids = Column(JSON, nullable=False)
    amount = Column(Float, nullable=False)
    received_by = Column(String, nullable=False)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    session = relationship("TableSession", back_populates="counter_payments")


class Receipt(Base):
    """Point-in-time snapshot of a session's paid orders. Written once."""
    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, index=True)
    receipt_number = Column(String, unique=True, index=True, nullable=False)
    session_id = Column(String(36), ForeignKey("table_sessions.id"), unique=True, nullable=False)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    table_number = Column(String, nullable=True)
    items = Column(JSON, nullable=False)
    subtotal = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False)
    service_charge = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    payment_details = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    session = relationship("TableSession", back_populates="receipt")
