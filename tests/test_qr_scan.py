"""QR scan coordinator tests: redirect, options and cross-table conflicts."""

from datetime import timedelta

import pytest

from schemas.results import ErrorCode
from schemas.scan import ScanAction, OptionType, ConflictChoice
from schemas.table_session import PersistedSession
from services.qr_scan import QRScanCoordinator
from services.session_store import PersistedSessionStore, MemoryBackend


@pytest.fixture
def store(clock) -> PersistedSessionStore:
    return PersistedSessionStore([MemoryBackend()], clock=clock)


@pytest.fixture
def scanner(store, registry) -> QRScanCoordinator:
    return QRScanCoordinator(store, registry)


def persist(store, session_result, clock, token=None):
    store.store(PersistedSession(
        session_id=session_result.session_id,
        table_id=session_result.table_id,
        restaurant_id=session_result.restaurant_id,
        customer_name=session_result.customer_name,
        session_token=token or session_result.session_token,
        created_at=clock(),
        last_accessed=clock(),
    ))


def option_types(result):
    return [(option.type, option.available) for option in result.options]


class TestHandleScan:
    def test_free_table_offers_new_session(self, scanner, table_5):
        result = scanner.handle_scan(table_5.id, table_5.restaurant_id)

        assert result.action == ScanAction.SHOW_OPTIONS
        assert result.redirect_url is None
        assert option_types(result) == [(OptionType.NEW, True)]

    def test_busy_table_offers_existing_session_first(self, scanner, open_session, table_5):
        result = scanner.handle_scan(table_5.id, table_5.restaurant_id)

        assert result.action == ScanAction.SHOW_OPTIONS
        assert option_types(result) == [(OptionType.EXISTING, True), (OptionType.NEW, False)]
        assert result.options[0].session.session_id == open_session.session_id
        assert "Asha" in result.options[0].title

    def test_valid_session_for_this_table_redirects(self, scanner, store, open_session, table_5, clock):
        persist(store, open_session, clock)
        result = scanner.handle_scan(table_5.id, table_5.restaurant_id)

        assert result.action == ScanAction.REDIRECT
        assert result.session_id == open_session.session_id
        assert result.redirect_url == f"/menu/{table_5.restaurant_id}/{table_5.id}?session={open_session.session_id}"

    def test_redirect_renews_both_copies(self, scanner, store, registry, open_session, table_5, clock):
        persist(store, open_session, clock)
        clock.advance(hours=20)

        assert scanner.handle_scan(table_5.id, table_5.restaurant_id).action == ScanAction.REDIRECT
        assert store.retrieve().expires_at == clock() + timedelta(hours=24)

        clock.advance(hours=20)
        assert registry.validate_session(open_session.session_id, open_session.session_token).success

    def test_forged_token_is_forgotten(self, scanner, store, open_session, table_5, clock):
        persist(store, open_session, clock, token="forged")
        result = scanner.handle_scan(table_5.id, table_5.restaurant_id)

        assert result.action == ScanAction.SHOW_OPTIONS
        assert store.retrieve() is None
        assert result.error_code is None
        # The table is still occupied by the real session
        assert option_types(result) == [(OptionType.NEW, False)]

    def test_closed_session_is_forgotten(self, scanner, store, registry, open_session, table_5, clock):
        persist(store, open_session, clock)
        registry.close_session(open_session.session_id, "waiter")

        result = scanner.handle_scan(table_5.id, table_5.restaurant_id)
        assert result.action == ScanAction.SHOW_OPTIONS
        assert option_types(result) == [(OptionType.NEW, True)]
        assert store.retrieve() is None

    def test_session_at_another_table_is_a_conflict(self, scanner, store, open_session, table_5, table_9, clock):
        persist(store, open_session, clock)
        result = scanner.handle_scan(table_9.id, table_9.restaurant_id)

        assert result.action == ScanAction.SHOW_CONFLICT
        assert result.table_id == table_9.id
        assert result.conflict_session.session_id == open_session.session_id
        assert result.conflict_session.table_id == table_5.id
        assert result.conflict_session.customer_name == "Asha"
        assert option_types(result) == [(OptionType.NEW, True)]
        assert store.retrieve() is not None

    def test_closed_session_at_another_table_is_no_conflict(self, scanner, store, registry, open_session, table_9, clock):
        persist(store, open_session, clock)
        registry.close_session(open_session.session_id, "waiter")

        result = scanner.handle_scan(table_9.id, table_9.restaurant_id)
        assert result.action == ScanAction.SHOW_OPTIONS
        assert store.retrieve() is None


class TestResolveConflict:
    def test_start_new_forgets_the_old_session(self, scanner, store, open_session, table_9, clock):
        persist(store, open_session, clock)
        result = scanner.resolve_conflict(table_9.id, table_9.restaurant_id, ConflictChoice.START_NEW)

        assert result.action == ScanAction.SHOW_OPTIONS
        assert result.table_id == table_9.id
        assert store.retrieve() is None

    def test_continue_existing_redirects_to_its_table(self, scanner, store, open_session, table_5, table_9, clock):
        persist(store, open_session, clock)
        result = scanner.resolve_conflict(table_9.id, table_9.restaurant_id, ConflictChoice.CONTINUE_EXISTING)

        assert result.action == ScanAction.REDIRECT
        assert result.table_id == table_5.id
        assert result.redirect_url.endswith(f"?session={open_session.session_id}")

    def test_continue_with_nothing_stored(self, scanner, table_9):
        result = scanner.resolve_conflict(table_9.id, table_9.restaurant_id, ConflictChoice.CONTINUE_EXISTING)
        assert result.action == ScanAction.SHOW_OPTIONS


class TestEnterSession:
    def test_start_new_session_is_persisted(self, scanner, store, table_5):
        result = scanner.start_new_session(table_5.id, table_5.restaurant_id, "Asha", customer_phone="+15550123456")

        assert result.success
        stored = store.retrieve()
        assert stored.session_id == result.session_id
        assert stored.session_token == result.session_token
        assert stored.customer_phone == "+15550123456"

        assert scanner.handle_scan(table_5.id, table_5.restaurant_id).action == ScanAction.REDIRECT

    def test_start_on_busy_table(self, scanner, store, open_session, table_5):
        result = scanner.start_new_session(table_5.id, table_5.restaurant_id, "Ben")

        assert result.error_code == ErrorCode.TABLE_HAS_ACTIVE_SESSION
        assert result.existing_session_id == open_session.session_id
        assert store.retrieve() is None

    def test_join_existing_session(self, scanner, store, open_session, table_5):
        result = scanner.join_session(table_5.id, table_5.restaurant_id, open_session.session_id, "Ben")

        assert result.success
        assert result.session_token == open_session.session_token
        stored = store.retrieve()
        assert stored.session_id == open_session.session_id
        assert stored.customer_name == "Ben"

    def test_join_from_another_table(self, scanner, store, open_session, table_9):
        result = scanner.join_session(table_9.id, table_9.restaurant_id, open_session.session_id)

        assert result.error_code == ErrorCode.SESSION_NOT_FOUND
        assert result.session_token is None
        assert store.retrieve() is None

    def test_join_closed_session(self, scanner, registry, open_session, table_5):
        registry.close_session(open_session.session_id, "waiter")
        result = scanner.join_session(table_5.id, table_5.restaurant_id, open_session.session_id)
        assert result.error_code == ErrorCode.SESSION_INACTIVE
