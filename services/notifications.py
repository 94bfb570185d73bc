import logging
from typing import Callable, Optional

from models.notification import Notification
from models.order_management import OrderStatus
from models.table_session import TableSession
from services.change_feed import ChangeFeed, ChangeEvent, NOTIFICATIONS
from utils.validators import mask_phone

logger = logging.getLogger(__name__)

# Keyed by order event: "placed" or an OrderStatus value
ORDER_STATUS_MESSAGES = {
    "placed": ("Order Placed", "Order #{number} has been placed successfully!"),
    OrderStatus.CONFIRMED.value: ("Order Confirmed", "Order #{number} has been confirmed by the kitchen."),
    OrderStatus.PREPARING.value: ("Order Being Prepared", "Order #{number} is now being prepared."),
    OrderStatus.READY.value: ("Order Ready", "Order #{number} is ready for pickup!"),
    OrderStatus.SERVED.value: ("Order Delivered", "Order #{number} has been delivered. Enjoy your meal!"),
    OrderStatus.CANCELLED.value: ("Order Cancelled", "Order #{number} has been cancelled."),
}


class NotificationService:
    """
    Fire-and-forget customer notifications.

    Each notification is stored, announced on the change feed and handed to
    an optional external sender (SMS, push). Nothing here raises: delivery
    problems must never block ordering or payment.
    """

    def __init__(self, session_factory, change_feed: Optional[ChangeFeed] = None, sender: Optional[Callable[[dict], None]] = None):
        self.session_factory = session_factory
        self.change_feed = change_feed
        self.sender = sender

    def notify(self, session_id: str, type: str, title: str, message: str, order_id: Optional[int] = None) -> Optional[int]:
        payload = {"session_id": session_id, "type": type, "title": title, "message": message}
        notification_id = None
        restaurant_id = None

        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            phone_number = session.customer_phone if session else None
            restaurant_id = session.restaurant_id if session else None
            notification = Notification(
                session_id=session_id,
                order_id=order_id,
                type=type,
                title=title,
                message=message,
                phone_number=phone_number,
            )
            db.add(notification)
            db.commit()
            notification_id = notification.id
            payload["phone_number"] = phone_number
            logger.info(f"Notification {type} stored for session {session_id} (phone {mask_phone(phone_number)})")
        except Exception as e:
            db.rollback()
            logger.warning(f"Failed to store notification {type} for session {session_id}: {str(e)}")
        finally:
            db.close()

        if self.change_feed is not None:
            self.change_feed.publish(ChangeEvent(
                table=NOTIFICATIONS,
                action="created",
                record_id=str(notification_id) if notification_id else None,
                session_id=session_id,
                restaurant_id=restaurant_id,
            ))

        if self.sender is not None:
            try:
                self.sender(payload)
            except Exception as e:
                logger.warning(f"External notification delivery failed for session {session_id}: {str(e)}")

        return notification_id

    def order_event(self, session_id: str, order_id: int, order_number: str, event: str) -> Optional[int]:
        if event not in ORDER_STATUS_MESSAGES:
            return None
        title, template = ORDER_STATUS_MESSAGES[event]
        return self.notify(session_id, f"order_{event}", title, template.format(number=order_number), order_id=order_id)

    def counter_payment_requested(self, session_id: str, amount: float) -> Optional[int]:
        return self.notify(
            session_id,
            "counter_payment_requested",
            "Counter Payment Requested",
            f"Customer will pay ${amount:.2f} at the counter.",
        )
