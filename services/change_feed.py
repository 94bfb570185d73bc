"""
In-process change feed for ``orders`` and ``table_sessions`` rows.

Services publish an event after every committed state change. Events carry
identifiers only; subscribers are expected to refetch current state from the
database, so duplicate or reordered delivery is harmless.
"""
import logging
import threading
from typing import Callable, Dict, Iterable, Optional, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ORDERS = "orders"
TABLE_SESSIONS = "table_sessions"
NOTIFICATIONS = "notifications"


class ChangeEvent(BaseModel):
    table: str
    action: str
    record_id: Optional[str] = None
    session_id: Optional[str] = None
    restaurant_id: Optional[int] = None


ChangeCallback = Callable[[ChangeEvent], None]


class _Subscription:
    def __init__(self, tables: frozenset, callback: ChangeCallback, restaurant_id: Optional[int]):
        self.tables = tables
        self.callback = callback
        self.restaurant_id = restaurant_id

    def matches(self, event: ChangeEvent) -> bool:
        if event.table not in self.tables:
            return False
        if self.restaurant_id is not None and event.restaurant_id != self.restaurant_id:
            return False
        return True


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[int, _Subscription] = {}
        self._next_id = 0

    def subscribe(
        self,
        table_filter: Union[str, Iterable[str]],
        callback: ChangeCallback,
        restaurant_id: Optional[int] = None,
    ) -> Callable[[], None]:
        """Register ``callback`` for changes to the given table(s). Returns an unsubscribe function."""
        tables = frozenset([table_filter] if isinstance(table_filter, str) else table_filter)
        with self._lock:
            subscription_id = self._next_id
            self._next_id += 1
            self._subscriptions[subscription_id] = _Subscription(tables, callback, restaurant_id)

        def unsubscribe():
            with self._lock:
                self._subscriptions.pop(subscription_id, None)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to every matching subscriber. Returns the number of successful deliveries."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())

        delivered = 0
        for subscription in subscriptions:
            if not subscription.matches(event):
                continue
            try:
                subscription.callback(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Change subscriber failed for {event.table}/{event.action}: {str(e)}")
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)


class RefetchGuard:
    """Runs a fetch at most once at a time; triggers that arrive mid-fetch are skipped."""

    def __init__(self, fetch: Callable[[], object]):
        self._fetch = fetch
        self._in_flight = threading.Lock()
        self.skipped = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def trigger(self) -> bool:
        if not self._in_flight.acquire(blocking=False):
            self.skipped += 1
            logger.debug("Refetch already in flight, skipping")
            return False
        try:
            self._fetch()
        finally:
            self._in_flight.release()
        return True


class RefetchingListener:
    """Change-feed callback that refetches full state on every event."""

    def __init__(self, fetch: Callable[[], object]):
        self.guard = RefetchGuard(fetch)
        self._unsubscribe: Optional[Callable[[], None]] = None

    def __call__(self, event: ChangeEvent):
        self.guard.trigger()

    def attach(self, feed: ChangeFeed, table_filter, restaurant_id: Optional[int] = None):
        self._unsubscribe = feed.subscribe(table_filter, self, restaurant_id)
        return self

    def detach(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
