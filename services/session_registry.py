"""
Server-side lifecycle of table dining sessions.

The registry is the only writer of ``TableSession.status``. At most one
session per table may be active; the partial unique index
``uq_table_sessions_one_active`` makes the database the arbiter of that rule,
so a losing concurrent create surfaces as an ``IntegrityError`` and is
reported as ``TABLE_HAS_ACTIVE_SESSION``.
"""
import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.table_management import Table, TableStatus
from models.table_session import TableSession, SessionStatus
from models.order_management import Order, OrderStatus, OrderPaymentStatus
from schemas.results import ErrorCode, SessionResult, ExpiryResult, ActiveSessionsResult, SummaryResult
from schemas.table_session import SessionPreview, SessionSummary
from services.change_feed import ChangeFeed, ChangeEvent, TABLE_SESSIONS
from services.order_ledger import order_totals, unpaid_orders_query
from utils.config import SESSION_TIMEOUT_HOURS
from utils.validators import mask_phone

logger = logging.getLogger(__name__)


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


def _owes_orders():
    """EXISTS clause for an unpaid, non-cancelled order on the session being updated."""
    return select(Order.id).where(
        Order.session_id == TableSession.id,
        Order.payment_status == OrderPaymentStatus.UNPAID,
        Order.status != OrderStatus.CANCELLED,
    ).correlate(TableSession).exists()


class SessionRegistry:
    def __init__(
        self,
        session_factory,
        change_feed: Optional[ChangeFeed] = None,
        timeout: timedelta = timedelta(hours=SESSION_TIMEOUT_HOURS),
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.change_feed = change_feed
        self.timeout = timeout
        self.clock = clock

    # Creation

    def create_session(
        self,
        table_id: int,
        customer_name: str,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
        restaurant_id: Optional[int] = None,
    ) -> SessionResult:
        if not customer_name or not customer_name.strip():
            return SessionResult.fail(ErrorCode.INVALID_INPUT, "Customer name is required")

        db = self.session_factory()
        try:
            table = db.query(Table).filter(Table.id == table_id).first()
            if not table or (restaurant_id is not None and table.restaurant_id != restaurant_id):
                return SessionResult.fail(ErrorCode.TABLE_NOT_FOUND, f"Table {table_id} not found", table_id=table_id)
            if not table.is_active or table.status == TableStatus.OUT_OF_SERVICE:
                return SessionResult.fail(ErrorCode.TABLE_INACTIVE, f"Table {table_id} is not in service", table_id=table_id)

            now = self.clock()
            expired_id = None
            current = self._active_session_for_table(db, table_id)
            if current:
                if not current.is_expired(now):
                    logger.warning(f"Table {table_id} already has active session {current.id}")
                    return SessionResult.fail(
                        ErrorCode.TABLE_HAS_ACTIVE_SESSION,
                        "This table already has an active session",
                        table_id=table_id,
                        restaurant_id=table.restaurant_id,
                        existing_session_id=current.id,
                    )
                self._expire(db, current, now)
                expired_id = current.id
                db.flush()

            session = TableSession(
                id=str(uuid.uuid4()),
                table_id=table.id,
                restaurant_id=table.restaurant_id,
                session_token=generate_session_token(),
                customer_name=customer_name.strip(),
                customer_phone=customer_phone,
                customer_email=customer_email,
                status=SessionStatus.ACTIVE,
                total_amount=0.0,
                created_at=now,
                last_activity=now,
                expires_at=now + self.timeout,
            )
            db.add(session)
            table.status = TableStatus.OCCUPIED
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = self._active_session_for_table(db, table_id)
            logger.warning(f"Concurrent session create lost the race for table {table_id}")
            return SessionResult.fail(
                ErrorCode.TABLE_HAS_ACTIVE_SESSION,
                "This table already has an active session",
                table_id=table_id,
                existing_session_id=existing.id if existing else None,
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error creating session for table {table_id}: {str(e)}")
            return SessionResult.from_db_error(e, table_id=table_id)
        else:
            if expired_id:
                self._publish("expired", expired_id, table.restaurant_id)
            self._publish("created", session.id, session.restaurant_id)
            logger.info(
                f"Session {session.id} created for table {table_id} "
                f"(customer {customer_name.strip()}, phone {mask_phone(customer_phone)})"
            )
            return self._session_result(session, include_token=True)
        finally:
            db.close()

    # Validation and renewal

    def validate_session(self, session_id: str, session_token: Optional[str]) -> SessionResult:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            failure = self._check_usable(db, session, session_id)
            if failure:
                return failure
            if not hmac.compare_digest(session.session_token, session_token or ""):
                logger.warning(f"Invalid token presented for session {session_id}")
                return SessionResult.fail(ErrorCode.INVALID_TOKEN, "Session token does not match", session_id=session_id)
            return self._session_result(session)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error validating session {session_id}: {str(e)}")
            return SessionResult.from_db_error(e, session_id=session_id)
        finally:
            db.close()

    def renew_session(self, session_id: str) -> SessionResult:
        return self._touch(session_id, include_token=False)

    def continue_session(self, session_id: str) -> SessionResult:
        """Join an active session at a shared table; returns its token to the new device."""
        result = self._touch(session_id, include_token=True)
        if result.success:
            logger.info(f"Device joined session {session_id}")
        return result

    def _touch(self, session_id: str, include_token: bool) -> SessionResult:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            failure = self._check_usable(db, session, session_id)
            if failure:
                return failure
            now = self.clock()
            session.last_activity = now
            session.expires_at = now + self.timeout
            db.commit()
            return self._session_result(session, include_token=include_token)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error renewing session {session_id}: {str(e)}")
            return SessionResult.from_db_error(e, session_id=session_id)
        finally:
            db.close()

    def _check_usable(self, db: Session, session: Optional[TableSession], session_id: str) -> Optional[SessionResult]:
        """Failure result if the session cannot be acted on, lazily expiring it when due."""
        if not session:
            return SessionResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found", session_id=session_id)
        if session.status != SessionStatus.ACTIVE:
            return SessionResult.fail(
                ErrorCode.SESSION_INACTIVE, f"Session is {session.status.value}", session_id=session_id
            )
        now = self.clock()
        if session.is_expired(now):
            restaurant_id = session.restaurant_id
            self._expire(db, session, now)
            db.commit()
            self._publish("expired", session_id, restaurant_id)
            logger.info(f"Session {session_id} expired")
            return SessionResult.fail(ErrorCode.SESSION_EXPIRED, "Session has expired", session_id=session_id)
        return None

    # Closure and expiry

    def close_session(
        self,
        session_id: str,
        closed_by: str,
        reason: Optional[str] = None,
        require_settled: bool = False,
        on_close: Optional[Callable[[Session, TableSession], None]] = None,
    ) -> SessionResult:
        """
        Complete an active or expired session.

        With ``require_settled`` the status flip and the "nothing owed" check
        are one UPDATE, so an order committed first blocks the close with
        ``UNPAID_ORDERS`` and an order arriving later finds the session closed.
        ``on_close`` runs inside the closing transaction. Closing a completed
        session succeeds without changes.
        """
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            if not session:
                return SessionResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found", session_id=session_id)
            if session.status == SessionStatus.COMPLETED:
                return self._already_closed(session)

            previous_status = session.status
            now = self.clock()
            query = db.query(TableSession).filter(
                TableSession.id == session_id,
                TableSession.status == previous_status,
            )
            if require_settled:
                query = query.filter(or_(TableSession.counter_payment_completed == True, ~_owes_orders()))
            updated = query.update(
                {
                    TableSession.status: SessionStatus.COMPLETED,
                    TableSession.completed_at: now,
                    TableSession.closed_by: closed_by,
                    TableSession.closed_reason: reason,
                },
                synchronize_session=False,
            )
            if updated == 0:
                db.rollback()
                # Rollback expired the instance, so this reads the committed row
                if session.status == SessionStatus.COMPLETED:
                    return self._already_closed(session)
                if require_settled and not self._is_settled(db, session):
                    logger.warning(f"Refused to close session {session_id}: orders still unpaid")
                    return SessionResult.fail(
                        ErrorCode.UNPAID_ORDERS, "Orders are still unpaid", session_id=session_id
                    )
                return SessionResult.fail(
                    ErrorCode.SESSION_INACTIVE, "Session changed while closing, please retry", session_id=session_id
                )

            # An expired session already gave its table back, possibly to a newer session
            if previous_status == SessionStatus.ACTIVE:
                self._free_table(db, session.table_id)
            if on_close:
                on_close(db, session)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error closing session {session_id}: {str(e)}")
            return SessionResult.from_db_error(e, session_id=session_id)
        else:
            self._publish("closed", session_id, session.restaurant_id)
            logger.info(f"Session {session_id} closed by {closed_by}")
            return SessionResult(session_id=session_id, table_id=session.table_id, restaurant_id=session.restaurant_id)
        finally:
            db.close()

    def expire_stale_sessions(self) -> ExpiryResult:
        db = self.session_factory()
        try:
            now = self.clock()
            stale = db.query(TableSession).filter(
                TableSession.status == SessionStatus.ACTIVE,
                TableSession.expires_at <= now,
            ).all()
            expired = [(session.id, session.restaurant_id) for session in stale]
            for session in stale:
                self._expire(db, session, now)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error expiring stale sessions: {str(e)}")
            return ExpiryResult.from_db_error(e)
        finally:
            db.close()

        for session_id, restaurant_id in expired:
            self._publish("expired", session_id, restaurant_id)
        if expired:
            logger.info(f"Expired {len(expired)} stale sessions")
        return ExpiryResult(expired_count=len(expired))

    # Queries

    def get_active_sessions_for_table(self, table_id: int) -> ActiveSessionsResult:
        db = self.session_factory()
        try:
            now = self.clock()
            sessions = db.query(TableSession).filter(
                TableSession.table_id == table_id,
                TableSession.status == SessionStatus.ACTIVE,
            ).order_by(TableSession.created_at.desc()).all()

            previews = []
            for session in sessions:
                if session.is_expired(now):
                    continue
                total_orders = db.query(Order).filter(Order.session_id == session.id).count()
                previews.append(SessionPreview(
                    session_id=session.id,
                    customer_name=session.customer_name,
                    total_orders=total_orders,
                    total_amount=session.total_amount,
                    created_at=session.created_at,
                    last_activity=session.last_activity,
                ))
            return ActiveSessionsResult(sessions=previews)
        except SQLAlchemyError as e:
            logger.error(f"Error listing active sessions for table {table_id}: {str(e)}")
            return ActiveSessionsResult.from_db_error(e)
        finally:
            db.close()

    def get_session_summary(self, session_id: str) -> SummaryResult:
        db = self.session_factory()
        try:
            session = db.query(TableSession).filter(TableSession.id == session_id).first()
            if not session:
                return SummaryResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found")
            summary = SessionSummary.model_validate(session)
            return SummaryResult(summary=summary.model_copy(update=order_totals(db, session_id)))
        except SQLAlchemyError as e:
            logger.error(f"Error loading summary for session {session_id}: {str(e)}")
            return SummaryResult.from_db_error(e)
        finally:
            db.close()

    # Helpers

    def _active_session_for_table(self, db: Session, table_id: int) -> Optional[TableSession]:
        return db.query(TableSession).filter(
            TableSession.table_id == table_id,
            TableSession.status == SessionStatus.ACTIVE,
        ).first()

    def _expire(self, db: Session, session: TableSession, now: datetime):
        session.status = SessionStatus.EXPIRED
        session.completed_at = now
        session.closed_by = "system"
        session.closed_reason = "expired"
        self._free_table(db, session.table_id)

    def _is_settled(self, db: Session, session: TableSession) -> bool:
        return session.counter_payment_completed or unpaid_orders_query(db, session.id).first() is None

    def _already_closed(self, session: TableSession) -> SessionResult:
        logger.info(f"Session {session.id} already closed")
        return SessionResult(
            session_id=session.id,
            table_id=session.table_id,
            restaurant_id=session.restaurant_id,
            already_closed=True,
        )

    def _free_table(self, db: Session, table_id: int):
        table = db.query(Table).filter(Table.id == table_id).first()
        if table and table.status == TableStatus.OCCUPIED:
            table.status = TableStatus.AVAILABLE

    def _session_result(self, session: TableSession, include_token: bool = False) -> SessionResult:
        return SessionResult(
            session_id=session.id,
            session_token=session.session_token if include_token else None,
            table_id=session.table_id,
            restaurant_id=session.restaurant_id,
            customer_name=session.customer_name,
            expires_at=session.expires_at,
        )

    def _publish(self, action: str, session_id: str, restaurant_id: Optional[int]):
        if self.change_feed is None:
            return
        self.change_feed.publish(ChangeEvent(
            table=TABLE_SESSIONS,
            action=action,
            record_id=session_id,
            session_id=session_id,
            restaurant_id=restaurant_id,
        ))
