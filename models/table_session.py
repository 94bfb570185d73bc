from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum, Index, text
from sqlalchemy.orm import relationship
from utils.database import Base
from datetime import datetime
import enum
import uuid

class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"

class PaymentMode(str, enum.Enum):
    PER_ORDER = "per_order"
    COUNTER = "counter"
    FINAL_BILL = "final_bill"

def _enum_values(enum_cls):
    return [member.value for member in enum_cls]

class TableSession(Base):
    __tablename__ = "table_sessions"
    __table_args__ = (
        # At most one active session per table, enforced by the database.
        # Stored status values are the lowercase enum values, see values_callable.
        Index(
            "uq_table_sessions_one_active",
            "table_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    session_token = Column(String, nullable=False)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    status = Column(
        Enum(SessionStatus, name="sessionstatus", values_callable=_enum_values),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )
    total_amount = Column(Float, default=0.0, nullable=False)
    payment_mode = Column(
        Enum(PaymentMode, name="paymentmode", values_callable=_enum_values),
        default=PaymentMode.FINAL_BILL,
        nullable=False,
    )
    counter_payment_pending = Column(Boolean, default=False, nullable=False)
    counter_payment_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_activity = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    closed_by = Column(String, nullable=True)
    closed_reason = Column(String, nullable=True)

    # Relationships
    table = relationship("Table", back_populates="sessions")
    orders = relationship("Order", back_populates="session", cascade="all, delete-orphan", order_by="Order.created_at")
    payments = relationship("Payment", back_populates="session", cascade="all, delete-orphan")
    counter_payments = relationship("CounterPayment", back_populates="session", cascade="all, delete-orphan")
    receipt = relationship("Receipt", back_populates="session", uselist=False)
    notifications = relationship("Notification", back_populates="session", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now
