"""
Decides what a table QR scan leads to.

The device's persisted session is reconciled against the scanned table and
the registry's view of that table:

* no persisted session: show the options for the scanned table
* persisted session for this table: redirect if the registry confirms it,
  otherwise show options
* persisted session for another table: show the conflict if that session
  is still valid, otherwise show options

Nothing redirects into a session the registry did not confirm.
"""
import logging
from typing import Optional

from schemas.results import ErrorCode, SessionResult, DEFINITIVE_INVALID_CODES
from schemas.scan import (
    ScanAction,
    ScanResult,
    SessionOption,
    OptionType,
    ConflictChoice,
    ConflictSession,
)
from schemas.table_session import PersistedSession
from services.session_registry import SessionRegistry
from services.session_store import PersistedSessionStore
from utils.qr import menu_path

logger = logging.getLogger(__name__)


class QRScanCoordinator:
    def __init__(self, store: PersistedSessionStore, registry: SessionRegistry):
        self.store = store
        self.registry = registry

    def handle_scan(self, table_id: int, restaurant_id: int) -> ScanResult:
        persisted = self.store.retrieve()
        if persisted is None:
            return self._show_options(table_id, restaurant_id)

        validation = self.registry.validate_session(persisted.session_id, persisted.session_token)

        if persisted.table_id == table_id and persisted.restaurant_id == restaurant_id:
            if validation.success:
                return self._redirect(persisted)
            self._forget_if_invalid(persisted, validation)
            return self._show_options(table_id, restaurant_id, exclude_session_id=persisted.session_id, cause=validation)

        if validation.success:
            logger.info(
                f"Scan of table {table_id} conflicts with session {persisted.session_id} at table {persisted.table_id}"
            )
            options = self._show_options(table_id, restaurant_id)
            return ScanResult(
                action=ScanAction.SHOW_CONFLICT,
                table_id=table_id,
                restaurant_id=restaurant_id,
                session_id=persisted.session_id,
                conflict_session=self._conflict_session(persisted),
                options=options.options,
                error_code=options.error_code,
                message=options.message,
            )

        self._forget_if_invalid(persisted, validation)
        return self._show_options(table_id, restaurant_id, cause=validation)

    def resolve_conflict(self, table_id: int, restaurant_id: int, choice: ConflictChoice) -> ScanResult:
        if choice == ConflictChoice.START_NEW:
            self.store.clear()
            return self._show_options(table_id, restaurant_id)

        # Continue the session held by this device, wherever it is
        persisted = self.store.retrieve()
        if persisted is None:
            return self._show_options(table_id, restaurant_id)
        validation = self.registry.validate_session(persisted.session_id, persisted.session_token)
        if validation.success:
            return self._redirect(persisted)
        self._forget_if_invalid(persisted, validation)
        return self._show_options(table_id, restaurant_id, cause=validation)

    def start_new_session(
        self,
        table_id: int,
        restaurant_id: int,
        customer_name: str,
        customer_phone: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> SessionResult:
        result = self.registry.create_session(
            table_id,
            customer_name,
            customer_phone=customer_phone,
            customer_email=customer_email,
            restaurant_id=restaurant_id,
        )
        if result.success:
            self._remember(result, customer_phone=customer_phone, customer_email=customer_email)
        return result

    def join_session(
        self,
        table_id: int,
        restaurant_id: int,
        session_id: str,
        customer_name: Optional[str] = None,
    ) -> SessionResult:
        result = self.registry.continue_session(session_id)
        if not result.success:
            return result
        if result.table_id != table_id or result.restaurant_id != restaurant_id:
            logger.warning(f"Join of session {session_id} attempted from table {table_id}")
            return SessionResult.fail(ErrorCode.SESSION_NOT_FOUND, "Session not found at this table", session_id=session_id)
        if customer_name:
            result = result.model_copy(update={"customer_name": customer_name})
        self._remember(result)
        return result

    # Helpers

    def _redirect(self, persisted: PersistedSession) -> ScanResult:
        renewal = self.registry.renew_session(persisted.session_id)
        if renewal.success:
            # Keep the device copy expiring with the server session
            self.store.store(persisted)
        else:
            self.store.update_last_accessed(persisted)
        return ScanResult(
            action=ScanAction.REDIRECT,
            table_id=persisted.table_id,
            restaurant_id=persisted.restaurant_id,
            session_id=persisted.session_id,
            redirect_url=menu_path(persisted.restaurant_id, persisted.table_id, persisted.session_id),
        )

    def _show_options(
        self,
        table_id: int,
        restaurant_id: int,
        exclude_session_id: Optional[str] = None,
        cause: Optional[SessionResult] = None,
    ) -> ScanResult:
        result = ScanResult(action=ScanAction.SHOW_OPTIONS, table_id=table_id, restaurant_id=restaurant_id)
        if cause is not None and cause.error_code not in DEFINITIVE_INVALID_CODES:
            result.error_code = cause.error_code
            result.message = cause.error

        active = self.registry.get_active_sessions_for_table(table_id)
        if not active.success:
            logger.warning(f"Could not list active sessions for table {table_id}: {active.error}")
            result.error_code = active.error_code
            result.message = active.error

        existing = [s for s in active.sessions if s.session_id != exclude_session_id]
        for preview in existing:
            owner = preview.customer_name or "Guest"
            result.options.append(SessionOption(
                type=OptionType.EXISTING,
                title=f"Join {owner}'s session",
                description=f"{preview.total_orders} orders, ${preview.total_amount:.2f} so far",
                session=preview,
            ))
        # One active session per table: a new one can only start on a free table
        table_taken = any(s.session_id == exclude_session_id for s in active.sessions) or bool(existing)
        result.options.append(SessionOption(
            type=OptionType.NEW,
            title="Start New Session",
            description="Begin a fresh dining session at this table",
            available=not table_taken,
        ))
        return result

    def _conflict_session(self, persisted: PersistedSession) -> ConflictSession:
        conflict = ConflictSession(
            session_id=persisted.session_id,
            table_id=persisted.table_id,
            restaurant_id=persisted.restaurant_id,
            customer_name=persisted.customer_name,
        )
        summary = self.registry.get_session_summary(persisted.session_id)
        if summary.success and summary.summary:
            conflict.total_orders = summary.summary.total_orders
            conflict.total_amount = summary.summary.total_amount
        return conflict

    def _forget_if_invalid(self, persisted: PersistedSession, validation: SessionResult):
        if validation.error_code in DEFINITIVE_INVALID_CODES:
            logger.info(f"Clearing persisted session {persisted.session_id}: {validation.error_code.value}")
            self.store.clear()
        else:
            logger.warning(f"Could not validate persisted session {persisted.session_id}: {validation.error}")

    def _remember(self, result: SessionResult, customer_phone: Optional[str] = None, customer_email: Optional[str] = None):
        now = self.store.clock()
        self.store.store(PersistedSession(
            session_id=result.session_id,
            table_id=result.table_id,
            restaurant_id=result.restaurant_id,
            customer_name=result.customer_name,
            customer_phone=customer_phone,
            customer_email=customer_email,
            session_token=result.session_token,
            created_at=now,
            last_accessed=now,
            expires_at=result.expires_at,
        ))
