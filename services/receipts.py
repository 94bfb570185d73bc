import logging
import random
import time
from typing import Optional

from sqlalchemy.orm import Session

from models.billing import Receipt, Payment, PaymentStatus
from models.order_management import Order, OrderPaymentStatus
from models.table_session import TableSession

logger = logging.getLogger(__name__)


def generate_receipt_number() -> str:
    return f"RCP{int(time.time() * 1000)}{random.randint(0, 99):02d}"


class ReceiptService:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def generate_for_session(self, db: Session, session: TableSession) -> Receipt:
        """
        Snapshot the session's paid orders into its closing receipt.

        Runs inside the caller's transaction. A session has at most one
        receipt, so a retried close returns the receipt written the first time.
        """
        existing = db.query(Receipt).filter(Receipt.session_id == session.id).first()
        if existing:
            return existing

        paid_orders = db.query(Order).filter(
            Order.session_id == session.id,
            Order.payment_status == OrderPaymentStatus.PAID,
        ).order_by(Order.created_at).all()
        payments = db.query(Payment).filter(
            Payment.session_id == session.id,
            Payment.status == PaymentStatus.COMPLETED,
        ).order_by(Payment.created_at).all()

        items = []
        for order in paid_orders:
            for item in order.items:
                items.append({
                    "order_number": order.order_number,
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit_price": item.price,
                    "line_total": item.line_total,
                    "customizations": item.customizations or {},
                })

        receipt = Receipt(
            receipt_number=generate_receipt_number(),
            session_id=session.id,
            customer_name=session.customer_name,
            customer_phone=session.customer_phone,
            customer_email=session.customer_email,
            table_number=session.table.table_number if session.table else None,
            items=items,
            subtotal=round(sum(o.subtotal for o in paid_orders), 2),
            tax_amount=round(sum(o.tax_amount for o in paid_orders), 2),
            service_charge=round(sum(o.service_charge for o in paid_orders), 2),
            total_amount=round(sum(o.total_amount for o in paid_orders), 2),
            payment_details=[
                {
                    "transaction_id": payment.transaction_id,
                    "method": payment.method.value,
                    "provider": payment.provider,
                    "amount": payment.amount,
                    "fee": payment.payment_fee,
                    "order_id": payment.order_id,
                    "paid_at": payment.created_at.isoformat() if payment.created_at else None,
                }
                for payment in payments
            ],
        )
        db.add(receipt)
        db.flush()
        logger.info(f"Receipt {receipt.receipt_number} generated for session {session.id}")
        return receipt

    def get_receipt(self, receipt_number: str) -> Optional[Receipt]:
        db = self.session_factory()
        try:
            receipt = db.query(Receipt).filter(Receipt.receipt_number == receipt_number).first()
            if receipt:
                db.expunge(receipt)
            return receipt
        finally:
            db.close()
