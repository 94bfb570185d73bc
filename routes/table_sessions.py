from fastapi import APIRouter, Depends, status
from typing import List, Optional
from models.user import User
from schemas.table_session import SessionCreate, SessionSummary, SessionCreatedResponse
from schemas.billing import SessionCloseRequest, CloseStatus
from schemas.results import SessionResult, PaymentResult
from services.session_registry import SessionRegistry
from services.dual_payment import DualPaymentCoordinator
from services.order_ledger import OrderSessionLedger
from app.dependencies import get_registry, get_payments, get_ledger
from utils.auth import get_customer_session, get_counter_user, get_manager_user, ensure_restaurant_access
from utils.responses import raise_for_result
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def session_summary_or_404(registry: SessionRegistry, session_id: str) -> SessionSummary:
    return raise_for_result(registry.get_session_summary(session_id)).summary


# Customer Endpoints
@router.post("", response_model=SessionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    session: SessionCreate,
    registry: SessionRegistry = Depends(get_registry)
):
    result = raise_for_result(registry.create_session(
        session.table_id,
        session.customer_name,
        customer_phone=session.customer_phone,
        customer_email=session.customer_email,
    ))
    return SessionCreatedResponse(
        session_id=result.session_id,
        session_token=result.session_token,
        table_id=result.table_id,
        restaurant_id=result.restaurant_id,
        expires_at=result.expires_at,
    )


@router.get("/{session_id}", response_model=SessionSummary)
async def get_session(
    session_id: str,
    session: SessionResult = Depends(get_customer_session),
    registry: SessionRegistry = Depends(get_registry)
):
    return session_summary_or_404(registry, session_id)


@router.post("/{session_id}/validate", response_model=SessionResult)
async def validate_session(session: SessionResult = Depends(get_customer_session)):
    return session


@router.post("/{session_id}/renew", response_model=SessionResult)
async def renew_session(
    session_id: str,
    session: SessionResult = Depends(get_customer_session),
    registry: SessionRegistry = Depends(get_registry)
):
    return raise_for_result(registry.renew_session(session_id))


@router.get("/{session_id}/can-close", response_model=CloseStatus)
async def can_close_session(
    session_id: str,
    session: SessionResult = Depends(get_customer_session),
    payments: DualPaymentCoordinator = Depends(get_payments),
    ledger: OrderSessionLedger = Depends(get_ledger)
):
    return CloseStatus(
        session_id=session_id,
        can_close=payments.can_close(session_id),
        outstanding_amount=ledger.unpaid_amount(session_id),
    )


@router.post("/{session_id}/close", response_model=PaymentResult)
async def close_session(
    session_id: str,
    request: Optional[SessionCloseRequest] = None,
    session: SessionResult = Depends(get_customer_session),
    payments: DualPaymentCoordinator = Depends(get_payments)
):
    reason = request.reason if request else None
    return raise_for_result(payments.close_session(session_id, closed_by="customer", reason=reason or "customer checkout"))


# Staff Endpoints
@router.get("/{session_id}/staff-summary", response_model=SessionSummary)
async def get_session_for_staff(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    current_user: User = Depends(get_counter_user)
):
    summary = session_summary_or_404(registry, session_id)
    ensure_restaurant_access(current_user, summary.restaurant_id)
    return summary


@router.post("/{session_id}/staff-close", response_model=PaymentResult)
async def staff_close_session(
    session_id: str,
    request: SessionCloseRequest,
    registry: SessionRegistry = Depends(get_registry),
    payments: DualPaymentCoordinator = Depends(get_payments),
    current_user: User = Depends(get_counter_user)
):
    summary = session_summary_or_404(registry, session_id)
    ensure_restaurant_access(current_user, summary.restaurant_id)
    result = payments.close_session(session_id, closed_by=current_user.username, reason=request.reason or "closed by staff")
    logger.info(f"Staff {current_user.username} close of session {session_id}: success={result.success}")
    return raise_for_result(result)


@router.get("/restaurant/{restaurant_id}/counter-pending", response_model=List[SessionSummary])
async def list_counter_pending_sessions(
    restaurant_id: int,
    payments: DualPaymentCoordinator = Depends(get_payments),
    current_user: User = Depends(get_counter_user)
):
    ensure_restaurant_access(current_user, restaurant_id)
    return payments.counter_pending_sessions(restaurant_id)


@router.post("/expire-stale")
async def expire_stale_sessions(
    registry: SessionRegistry = Depends(get_registry),
    current_user: User = Depends(get_manager_user)
):
    result = raise_for_result(registry.expire_stale_sessions())
    return {"expired": result.expired_count}
