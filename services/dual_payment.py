"""
Online and counter payment paths for a dining session, and the closure gate.

A session may only be closed once every non-cancelled order is paid or staff
have recorded a counter payment. ``SessionRegistry.close_session`` checks
that in the same UPDATE that completes the session, and the receipt snapshot
is written in that transaction.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.billing import Payment, PaymentMethod, PaymentStatus, CounterPayment, Receipt
from models.order_management import Order, OrderStatus, OrderPaymentStatus
from models.table_session import TableSession, SessionStatus, PaymentMode
from schemas.billing import (
    PaymentPath,
    PaymentOption,
    PaymentOptions,
    PaymentOptionsResult,
    PaymentResponse,
)
from schemas.results import ErrorCode, PaymentResult
from schemas.table_session import SessionSummary
from services.change_feed import ChangeFeed, ChangeEvent, ORDERS, TABLE_SESSIONS
from services.notifications import NotificationService
from services.order_ledger import unpaid_orders_query, order_totals, round_money
from services.payment_gateways import (
    PaymentGateway,
    default_gateways,
    calculate_payment_fee,
    generate_transaction_id,
)
from services.receipts import ReceiptService
from services.session_registry import SessionRegistry
from utils.config import CURRENCY

logger = logging.getLogger(__name__)

ONLINE_METHODS = [PaymentMethod.CARD, PaymentMethod.UPI, PaymentMethod.WALLET, PaymentMethod.BANK_TRANSFER]


class DualPaymentCoordinator:
    def __init__(
        self,
        session_factory,
        registry: SessionRegistry,
        receipts: ReceiptService,
        gateways: Optional[Dict[PaymentMethod, PaymentGateway]] = None,
        change_feed: Optional[ChangeFeed] = None,
        notifier: Optional[NotificationService] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.receipts = receipts
        self.gateways = gateways if gateways is not None else default_gateways()
        self.change_feed = change_feed
        self.notifier = notifier
        self.clock = clock

    # Options and closure gate

    def get_payment_options(self, session_id: str) -> PaymentOptionsResult:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            if not session:
                return PaymentOptionsResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found")

            can_close, unpaid_amount = self._closure_state(db, session)
            active = session.status == SessionStatus.ACTIVE
            has_unpaid = unpaid_amount > 0
            options = [
                PaymentOption(
                    path=PaymentPath.ONLINE,
                    title="Pay Online Now",
                    description=f"Pay ${unpaid_amount:.2f} now by card, UPI, wallet or bank transfer",
                    available=active and has_unpaid,
                    methods=[method for method in ONLINE_METHODS if method in self.gateways],
                ),
                PaymentOption(
                    path=PaymentPath.COUNTER,
                    title="Pay at Counter",
                    description="Keep ordering and settle the bill with staff before leaving",
                    available=active and has_unpaid and not session.counter_payment_pending,
                    methods=[PaymentMethod.CASH],
                ),
            ]
            return PaymentOptionsResult(payment_options=PaymentOptions(
                session_id=session_id,
                unpaid_amount=unpaid_amount,
                payment_mode=session.payment_mode.value,
                counter_payment_pending=session.counter_payment_pending,
                counter_payment_completed=session.counter_payment_completed,
                can_close=can_close,
                options=options,
            ))
        except SQLAlchemyError as e:
            logger.error(f"Error loading payment options for session {session_id}: {str(e)}")
            return PaymentOptionsResult.from_db_error(e)
        finally:
            db.close()

    def can_close(self, session_id: str) -> bool:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            if not session:
                return False
            return self._closure_state(db, session)[0]
        finally:
            db.close()

    def _closure_state(self, db: Session, session: TableSession) -> Tuple[bool, float]:
        unpaid_amount = round_money(sum(order.total_amount for order in unpaid_orders_query(db, session.id).all()))
        return bool(session.counter_payment_completed) or unpaid_amount == 0, unpaid_amount

    # Payment paths

    def choose_payment_path(
        self,
        session_id: str,
        path: PaymentPath,
        method: PaymentMethod = PaymentMethod.CARD,
    ) -> PaymentResult:
        if path == PaymentPath.COUNTER:
            return self._request_counter_payment(session_id)
        if method not in ONLINE_METHODS:
            return PaymentResult.fail(ErrorCode.INVALID_INPUT, f"{method.value} is not an online payment method")
        return self._charge(session_id, method)

    def pay_order(self, session_id: str, order_id: int, method: PaymentMethod = PaymentMethod.CARD) -> PaymentResult:
        if method not in ONLINE_METHODS:
            return PaymentResult.fail(ErrorCode.INVALID_INPUT, f"{method.value} is not an online payment method")
        return self._charge(session_id, method, order_id=order_id)

    def _request_counter_payment(self, session_id: str) -> PaymentResult:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            failure = self._check_session(session)
            if failure:
                return failure

            unpaid_amount = self._closure_state(db, session)[1]
            if unpaid_amount == 0:
                return PaymentResult.fail(ErrorCode.NO_UNPAID_ORDERS, "There is nothing to pay")

            session.payment_mode = PaymentMode.COUNTER
            session.counter_payment_pending = True
            session.last_activity = self.clock()
            db.commit()
            restaurant_id = session.restaurant_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error requesting counter payment for session {session_id}: {str(e)}")
            return PaymentResult.from_db_error(e)
        finally:
            db.close()

        logger.info(f"Session {session_id} will pay {unpaid_amount:.2f} at the counter")
        self._publish(TABLE_SESSIONS, "updated", session_id, session_id, restaurant_id)
        if self.notifier:
            self.notifier.counter_payment_requested(session_id, unpaid_amount)
        return PaymentResult(amount=unpaid_amount, outstanding_amount=unpaid_amount, counter_payment_pending=True)

    def _charge(self, session_id: str, method: PaymentMethod, order_id: Optional[int] = None) -> PaymentResult:
        gateway = self.gateways.get(method)
        if gateway is None:
            return PaymentResult.fail(ErrorCode.INVALID_INPUT, f"{method.value} payments are not available")

        # Read what is owed
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            failure = self._check_session(session)
            if failure:
                return failure

            if order_id is not None:
                order = db.query(Order).filter(Order.id == order_id, Order.session_id == session_id).first()
                if not order:
                    return PaymentResult.fail(ErrorCode.ORDER_NOT_FOUND, f"Order {order_id} not found in this session")
                if order.status == OrderStatus.CANCELLED:
                    return PaymentResult.fail(ErrorCode.INVALID_INPUT, "Cancelled orders cannot be paid")
                if order.payment_status == OrderPaymentStatus.PAID:
                    return PaymentResult.fail(ErrorCode.PAYMENT_CONFLICT, "Order is already paid")
                orders = [order]
            else:
                orders = unpaid_orders_query(db, session_id).all()
                if not orders:
                    return PaymentResult.fail(ErrorCode.NO_UNPAID_ORDERS, "There is nothing to pay")

            order_ids = [o.id for o in orders]
            amount = round_money(sum(o.total_amount for o in orders))
            restaurant_id = session.restaurant_id
        except SQLAlchemyError as e:
            logger.error(f"Error reading unpaid orders for session {session_id}: {str(e)}")
            return PaymentResult.from_db_error(e)
        finally:
            db.close()

        transaction_id = generate_transaction_id(method)
        gateway_result = gateway.process(amount, transaction_id)
        fee = calculate_payment_fee(amount, method)

        db = self.session_factory()
        try:
            payment = Payment(
                order_id=order_ids[0] if len(order_ids) == 1 else None,
                session_id=session_id,
                method=method,
                provider=gateway.provider,
                transaction_id=transaction_id,
                gateway_transaction_id=gateway_result.gateway_transaction_id,
                amount=amount,
                payment_fee=fee,
                net_amount=round_money(amount - fee),
                currency=CURRENCY,
                status=PaymentStatus.COMPLETED if gateway_result.success else PaymentStatus.FAILED,
                payment_data={"order_ids": order_ids, "error": gateway_result.error},
                created_at=self.clock(),
            )

            if not gateway_result.success:
                db.add(payment)
                db.commit()
                logger.warning(f"Payment {transaction_id} for session {session_id} failed: {gateway_result.error}")
                return PaymentResult.fail(
                    ErrorCode.PAYMENT_DECLINED,
                    gateway_result.error or "Payment failed",
                    transaction_id=transaction_id,
                    amount=amount,
                    outstanding_amount=amount,
                )

            # Mark exactly the charged orders paid, or nothing at all
            updated = db.query(Order).filter(
                Order.id.in_(order_ids),
                Order.session_id == session_id,
                Order.payment_status == OrderPaymentStatus.UNPAID,
            ).update(
                {Order.payment_status: OrderPaymentStatus.PAID, Order.updated_at: self.clock()},
                synchronize_session=False,
            )
            if updated != len(order_ids):
                db.rollback()
                logger.error(
                    f"Payment {transaction_id} ({gateway_result.gateway_transaction_id}) charged {amount:.2f} "
                    f"but orders {order_ids} changed concurrently; needs refund"
                )
                return PaymentResult.fail(
                    ErrorCode.PAYMENT_CONFLICT,
                    "Orders changed while paying, please review the bill",
                    transaction_id=transaction_id,
                )

            db.add(payment)
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            session.payment_mode = PaymentMode.PER_ORDER if order_id is not None else PaymentMode.FINAL_BILL
            session.last_activity = self.clock()
            db.commit()
            payment_id = payment.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error recording payment {transaction_id} for session {session_id}: {str(e)}")
            return PaymentResult.from_db_error(e, transaction_id=transaction_id)
        finally:
            db.close()

        logger.info(f"Payment {transaction_id} of {amount:.2f} recorded for session {session_id} ({method.value})")
        for paid_id in order_ids:
            self._publish(ORDERS, "updated", str(paid_id), session_id, restaurant_id)
        if self.notifier:
            self.notifier.notify(
                session_id,
                "payment_completed",
                "Payment Successful",
                f"Payment of ${amount:.2f} received. Transaction: {transaction_id}",
            )
        return PaymentResult(transaction_id=transaction_id, payment_id=payment_id, amount=amount, order_ids=order_ids)

    def process_counter_payment(
        self,
        session_id: str,
        order_ids: List[int],
        received_by: str,
        notes: Optional[str] = None,
    ) -> PaymentResult:
        """Staff settle the given orders at the counter. All of them are marked paid, or none."""
        order_ids = list(dict.fromkeys(order_ids or []))
        if not order_ids:
            return PaymentResult.fail(ErrorCode.INVALID_INPUT, "Select at least one order")
        if not received_by or not received_by.strip():
            return PaymentResult.fail(ErrorCode.INVALID_INPUT, "Receiving staff member is required")

        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            # Staff may still settle a session that expired with orders unpaid
            failure = self._check_session(session, allow_expired=True)
            if failure:
                return failure

            orders = db.query(Order).filter(Order.id.in_(order_ids), Order.session_id == session_id).all()
            missing = sorted(set(order_ids) - {o.id for o in orders})
            if missing:
                return PaymentResult.fail(ErrorCode.ORDER_NOT_FOUND, f"Orders {missing} do not belong to this session")
            if any(o.status == OrderStatus.CANCELLED for o in orders):
                return PaymentResult.fail(ErrorCode.INVALID_INPUT, "Cancelled orders cannot be paid")
            if any(o.payment_status == OrderPaymentStatus.PAID for o in orders):
                return PaymentResult.fail(ErrorCode.PAYMENT_CONFLICT, "Some orders are already paid")

            amount = round_money(sum(o.total_amount for o in orders))
            now = self.clock()

            updated = db.query(Order).filter(
                Order.id.in_(order_ids),
                Order.session_id == session_id,
                Order.payment_status == OrderPaymentStatus.UNPAID,
            ).update(
                {Order.payment_status: OrderPaymentStatus.PAID, Order.updated_at: now},
                synchronize_session=False,
            )
            if updated != len(order_ids):
                db.rollback()
                logger.warning(f"Counter payment for session {session_id} lost a race on orders {order_ids}")
                return PaymentResult.fail(ErrorCode.PAYMENT_CONFLICT, "Orders changed while paying, please refresh")

            transaction_id = generate_transaction_id(PaymentMethod.CASH)
            db.add(CounterPayment(
                session_id=session_id,
                order_ids=order_ids,
                amount=amount,
                received_by=received_by.strip(),
                notes=notes,
                created_at=now,
            ))
            payment = Payment(
                order_id=order_ids[0] if len(order_ids) == 1 else None,
                session_id=session_id,
                method=PaymentMethod.CASH,
                provider="counter",
                transaction_id=transaction_id,
                amount=amount,
                payment_fee=0.0,
                net_amount=amount,
                currency=CURRENCY,
                status=PaymentStatus.COMPLETED,
                payment_data={"order_ids": order_ids, "received_by": received_by.strip(), "notes": notes},
                created_at=now,
            )
            db.add(payment)

            session.payment_mode = PaymentMode.COUNTER
            session.counter_payment_pending = False
            session.counter_payment_completed = True
            session.last_activity = now
            db.commit()
            payment_id = payment.id
            restaurant_id = session.restaurant_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error processing counter payment for session {session_id}: {str(e)}")
            return PaymentResult.from_db_error(e)
        finally:
            db.close()

        logger.info(f"Counter payment {transaction_id} of {amount:.2f} for session {session_id} received by {received_by}")
        for paid_id in order_ids:
            self._publish(ORDERS, "updated", str(paid_id), session_id, restaurant_id)
        self._publish(TABLE_SESSIONS, "updated", session_id, session_id, restaurant_id)
        return PaymentResult(transaction_id=transaction_id, payment_id=payment_id, amount=amount, order_ids=order_ids)

    # Closure

    def close_session(self, session_id: str, closed_by: str, reason: Optional[str] = None) -> PaymentResult:
        """
        Close a session once nothing is owed; the receipt is written in the closing transaction.

        Expired sessions are closed the same way, after staff settle them at the
        counter. Closing a completed session returns the receipt written the first time.
        """
        written = {}

        def write_receipt(db: Session, session: TableSession):
            receipt = self.receipts.generate_for_session(db, session)
            written["receipt_number"] = receipt.receipt_number
            written["amount"] = receipt.total_amount

        result = self.registry.close_session(
            session_id, closed_by, reason, require_settled=True, on_close=write_receipt
        )
        if not result.success:
            if result.error_code == ErrorCode.UNPAID_ORDERS:
                outstanding = self._outstanding(session_id)
                return PaymentResult.fail(
                    ErrorCode.UNPAID_ORDERS,
                    f"Orders still unpaid: ${outstanding:.2f} outstanding",
                    outstanding_amount=outstanding,
                )
            return PaymentResult.fail(result.error_code, result.error)

        if result.already_closed:
            db = self.session_factory()
            try:
                receipt = db.query(Receipt).filter(Receipt.session_id == session_id).first()
                if not receipt:
                    return PaymentResult()
                return PaymentResult(receipt_number=receipt.receipt_number, amount=receipt.total_amount)
            finally:
                db.close()

        if self.notifier:
            self.notifier.notify(
                session_id,
                "session_closed",
                "Thank You!",
                f"Your session has been closed. Receipt #{written['receipt_number']}",
            )
        return PaymentResult(**written)

    # Staff queries

    def counter_pending_sessions(self, restaurant_id: Optional[int] = None) -> List[SessionSummary]:
        db = self.session_factory()
        try:
            query = db.query(TableSession).filter(
                TableSession.status == SessionStatus.ACTIVE,
                TableSession.counter_payment_pending == True,
            )
            if restaurant_id is not None:
                query = query.filter(TableSession.restaurant_id == restaurant_id)
            sessions = query.order_by(TableSession.last_activity).all()
            return [
                SessionSummary.model_validate(session).model_copy(update=order_totals(db, session.id))
                for session in sessions
            ]
        finally:
            db.close()

    def payment_history(self, session_id: str) -> List[PaymentResponse]:
        db = self.session_factory()
        try:
            payments = db.query(Payment).filter(Payment.session_id == session_id).order_by(Payment.created_at).all()
            return [PaymentResponse.model_validate(payment) for payment in payments]
        finally:
            db.close()

    # Helpers

    def _outstanding(self, session_id: str) -> float:
        db = self.session_factory()
        try:
            return round_money(sum(order.total_amount for order in unpaid_orders_query(db, session_id).all()))
        finally:
            db.close()

    def _check_session(self, session: Optional[TableSession], allow_expired: bool = False) -> Optional[PaymentResult]:
        if not session:
            return PaymentResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found")
        if allow_expired and session.status == SessionStatus.EXPIRED:
            return None
        if session.status != SessionStatus.ACTIVE:
            return PaymentResult.fail(ErrorCode.SESSION_INACTIVE, "Session is no longer active")
        return None

    def _publish(self, table: str, action: str, record_id: str, session_id: str, restaurant_id: Optional[int]):
        if self.change_feed is None:
            return
        self.change_feed.publish(ChangeEvent(
            table=table,
            action=action,
            record_id=record_id,
            session_id=session_id,
            restaurant_id=restaurant_id,
        ))
