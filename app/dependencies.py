from fastapi import Request, Response

from services.dual_payment import DualPaymentCoordinator
from services.order_ledger import OrderSessionLedger
from services.qr_scan import QRScanCoordinator
from services.receipts import ReceiptService
from services.session_registry import SessionRegistry
from services.session_store import PersistedSessionStore, CookieBackend


# Services are built once in create_app() and shared by every request

def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_ledger(request: Request) -> OrderSessionLedger:
    return request.app.state.ledger


def get_payments(request: Request) -> DualPaymentCoordinator:
    return request.app.state.payments


def get_receipts(request: Request) -> ReceiptService:
    return request.app.state.receipts


def get_scan_coordinator(request: Request, response: Response) -> QRScanCoordinator:
    """Per-request coordinator whose persisted-session store is the browser's cookie."""
    store = PersistedSessionStore([CookieBackend(request.cookies, response)])
    return QRScanCoordinator(store, request.app.state.registry)
