"""
Orders placed within a dining session and the session's running totals.

Unpaid and paid amounts are always computed from the order rows on demand.
The session's ``total_amount`` is the gross of every order placed and is
only ever changed by a delta update in the database.
"""
import logging
import random
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.menu_management import MenuItem
from models.order_management import Order, OrderItem, OrderStatus, OrderPaymentStatus
from models.table_session import TableSession, SessionStatus
from schemas.order_management import OrderLineItem, OrderResponse, LedgerSummary
from schemas.results import ErrorCode, OrderResult
from services.change_feed import ChangeFeed, ChangeEvent, ORDERS
from services.notifications import NotificationService
from utils.config import TAX_RATE, SERVICE_CHARGE_RATE, SESSION_TIMEOUT_HOURS

logger = logging.getLogger(__name__)

# Each status may only advance to the next one; cancellation is handled separately
NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.SERVED,
}
OPEN_STATUSES = [OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY]


def round_money(amount: float) -> float:
    return round(amount, 2)


def generate_order_number() -> str:
    """Display-only number: not unique, never used to look orders up."""
    millis = str(int(time.time() * 1000))
    return f"ORD{millis[-6:]}{random.randint(0, 999):03d}"


def unpaid_orders_query(db: Session, session_id: str):
    return db.query(Order).filter(
        Order.session_id == session_id,
        Order.payment_status == OrderPaymentStatus.UNPAID,
        Order.status != OrderStatus.CANCELLED,
    )


def order_totals(db: Session, session_id: str) -> dict:
    orders = db.query(Order).filter(Order.session_id == session_id).all()
    unpaid = [o for o in orders if o.payment_status == OrderPaymentStatus.UNPAID and o.status != OrderStatus.CANCELLED]
    return {
        "total_orders": len(orders),
        "paid_amount": round_money(sum(o.total_amount for o in orders if o.payment_status == OrderPaymentStatus.PAID)),
        "unpaid_amount": round_money(sum(o.total_amount for o in unpaid)),
        "unpaid_order_ids": [o.id for o in unpaid],
    }


class OrderSessionLedger:
    def __init__(
        self,
        session_factory,
        change_feed: Optional[ChangeFeed] = None,
        notifier: Optional[NotificationService] = None,
        tax_rate: float = TAX_RATE,
        service_charge_rate: float = SERVICE_CHARGE_RATE,
        timeout: timedelta = timedelta(hours=SESSION_TIMEOUT_HOURS),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.change_feed = change_feed
        self.notifier = notifier
        self.tax_rate = tax_rate
        self.service_charge_rate = service_charge_rate
        self.timeout = timeout
        self.clock = clock

    def place_order(
        self,
        session_id: str,
        line_items: List[OrderLineItem],
        special_instructions: Optional[str] = None,
    ) -> OrderResult:
        if not line_items:
            return OrderResult.fail(ErrorCode.INVALID_INPUT, "An order needs at least one item")

        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            if not session:
                return OrderResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found")
            if session.status != SessionStatus.ACTIVE:
                return OrderResult.fail(ErrorCode.SESSION_INACTIVE, "Session is no longer active")
            now = self.clock()
            if session.is_expired(now):
                return OrderResult.fail(ErrorCode.SESSION_EXPIRED, "Session has expired")

            menu_item_ids = {line.menu_item_id for line in line_items}
            menu_items = {
                item.id: item
                for item in db.query(MenuItem).filter(
                    MenuItem.id.in_(menu_item_ids),
                    MenuItem.restaurant_id == session.restaurant_id,
                ).all()
            }

            subtotal = 0.0
            order_items = []
            for line in line_items:
                menu_item = menu_items.get(line.menu_item_id)
                if not menu_item or not menu_item.is_available:
                    logger.warning(f"Menu item {line.menu_item_id} unavailable for session {session_id}")
                    return OrderResult.fail(
                        ErrorCode.MENU_ITEM_UNAVAILABLE, f"Menu item {line.menu_item_id} is not available"
                    )
                if line.quantity < 1:
                    return OrderResult.fail(ErrorCode.INVALID_INPUT, "Quantity must be positive")

                unit_price = menu_item.price_with(line.customizations)
                subtotal += unit_price * line.quantity
                order_items.append(OrderItem(
                    menu_item_id=menu_item.id,
                    name=menu_item.name,
                    price=unit_price,
                    quantity=line.quantity,
                    customizations=line.customizations or None,
                    special_instructions=line.instructions,
                ))

            subtotal = round_money(subtotal)
            tax_amount = round_money(subtotal * self.tax_rate)
            service_charge = round_money(subtotal * self.service_charge_rate)
            total_amount = round_money(subtotal + tax_amount + service_charge)

            order = Order(
                session_id=session_id,
                order_number=generate_order_number(),
                customer_name=session.customer_name,
                subtotal=subtotal,
                tax_amount=tax_amount,
                service_charge=service_charge,
                total_amount=total_amount,
                status=OrderStatus.PENDING,
                payment_status=OrderPaymentStatus.UNPAID,
                special_instructions=special_instructions,
                created_at=now,
                items=order_items,
            )
            db.add(order)

            # Ordering counts as activity and renews the session; new unpaid food
            # re-opens a settled counter bill
            updated = db.query(TableSession).filter(
                TableSession.id == session_id,
                TableSession.status == SessionStatus.ACTIVE,
            ).update(
                {
                    TableSession.total_amount: TableSession.total_amount + total_amount,
                    TableSession.last_activity: now,
                    TableSession.expires_at: now + self.timeout,
                    TableSession.counter_payment_completed: False,
                },
                synchronize_session=False,
            )
            if updated == 0:
                db.rollback()
                return OrderResult.fail(ErrorCode.SESSION_INACTIVE, "Session is no longer active")
            db.commit()
            result = OrderResult(
                order_id=order.id,
                order_number=order.order_number,
                subtotal=subtotal,
                tax_amount=tax_amount,
                service_charge=service_charge,
                total_amount=total_amount,
                status=OrderStatus.PENDING.value,
            )
            restaurant_id = session.restaurant_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error placing order for session {session_id}: {str(e)}")
            return OrderResult.from_db_error(e)
        finally:
            db.close()

        logger.info(f"Order {result.order_number} placed for session {session_id}: {total_amount:.2f}")
        self._publish("created", result.order_id, session_id, restaurant_id)
        if self.notifier:
            self.notifier.order_event(session_id, result.order_id, result.order_number, "placed")
        return result

    def advance_order_status(self, order_id: int, next_status: OrderStatus) -> OrderResult:
        db = self.session_factory()
        try:
            order = db.query(Order).filter(Order.id == order_id).first()
            if not order:
                return OrderResult.fail(ErrorCode.ORDER_NOT_FOUND, f"Order {order_id} not found")

            current = order.status
            if next_status == OrderStatus.CANCELLED:
                allowed = current not in [OrderStatus.SERVED, OrderStatus.CANCELLED]
            else:
                allowed = NEXT_STATUS.get(current) == next_status
            if not allowed:
                logger.warning(f"Rejected order {order_id} transition {current.value} -> {next_status.value}")
                return OrderResult.fail(
                    ErrorCode.INVALID_TRANSITION,
                    f"Invalid order status transition from {current.value} to {next_status.value}",
                    order_id=order_id,
                    status=current.value,
                )

            updated = db.query(Order).filter(
                Order.id == order_id,
                Order.status == current,
            ).update(
                {Order.status: next_status, Order.updated_at: self.clock()},
                synchronize_session=False,
            )
            if updated == 0:
                db.rollback()
                return OrderResult.fail(
                    ErrorCode.INVALID_TRANSITION, "Order status changed concurrently, refresh and retry", order_id=order_id
                )
            db.commit()

            session_id = order.session_id
            order_number = order.order_number
            restaurant_id = order.session.restaurant_id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error updating order {order_id}: {str(e)}")
            return OrderResult.from_db_error(e, order_id=order_id)
        finally:
            db.close()

        logger.info(f"Order {order_id} moved from {current.value} to {next_status.value}")
        self._publish("updated", order_id, session_id, restaurant_id)
        if self.notifier:
            self.notifier.order_event(session_id, order_id, order_number, next_status.value)
        return OrderResult(order_id=order_id, order_number=order_number, status=next_status.value)

    # Queries

    def get_orders(self, session_id: str) -> List[OrderResponse]:
        db = self.session_factory()
        try:
            orders = db.query(Order).options(selectinload(Order.items)).filter(
                Order.session_id == session_id
            ).order_by(Order.created_at).all()
            return [OrderResponse.model_validate(order) for order in orders]
        finally:
            db.close()

    def unpaid_orders(self, session_id: str) -> List[OrderResponse]:
        db = self.session_factory()
        try:
            orders = unpaid_orders_query(db, session_id).options(selectinload(Order.items)).order_by(Order.created_at).all()
            return [OrderResponse.model_validate(order) for order in orders]
        finally:
            db.close()

    def unpaid_amount(self, session_id: str) -> float:
        db = self.session_factory()
        try:
            return round_money(sum(order.total_amount for order in unpaid_orders_query(db, session_id).all()))
        finally:
            db.close()

    def paid_amount(self, session_id: str) -> float:
        db = self.session_factory()
        try:
            orders = db.query(Order).filter(
                Order.session_id == session_id,
                Order.payment_status == OrderPaymentStatus.PAID,
            ).all()
            return round_money(sum(order.total_amount for order in orders))
        finally:
            db.close()

    def ledger_summary(self, session_id: str) -> Optional[LedgerSummary]:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            if not session:
                return None
            orders = db.query(Order).options(selectinload(Order.items)).filter(
                Order.session_id == session_id
            ).order_by(Order.created_at).all()
            return LedgerSummary(
                session_id=session_id,
                total_amount=round_money(session.total_amount),
                orders=[OrderResponse.model_validate(order) for order in orders],
                **order_totals(db, session_id),
            )
        finally:
            db.close()

    def kitchen_queue(self, restaurant_id: int) -> List[OrderResponse]:
        """Orders still being worked on, oldest first."""
        db = self.session_factory()
        try:
            orders = db.query(Order).join(TableSession, Order.session_id == TableSession.id).options(
                selectinload(Order.items)
            ).filter(
                TableSession.restaurant_id == restaurant_id,
                Order.status.in_(OPEN_STATUSES),
            ).order_by(Order.created_at).all()
            return [OrderResponse.model_validate(order) for order in orders]
        finally:
            db.close()

    def _publish(self, action: str, order_id: int, session_id: str, restaurant_id: Optional[int]):
        if self.change_feed is None:
            return
        self.change_feed.publish(ChangeEvent(
            table=ORDERS,
            action=action,
            record_id=str(order_id),
            session_id=session_id,
            restaurant_id=restaurant_id,
        ))
