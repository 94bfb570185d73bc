from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
import logging

from utils.database import get_db
from models.order_management import Order
from models.user import User
from schemas.order_management import OrderCreate, OrderResponse, OrderStatusUpdate, LedgerSummary
from schemas.results import SessionResult, OrderResult
from services.order_ledger import OrderSessionLedger
from services.session_registry import SessionRegistry
from app.dependencies import get_ledger, get_registry
from utils.auth import get_customer_session, get_kitchen_user, get_counter_user, ensure_restaurant_access
from utils.responses import raise_for_result

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


# Customer Endpoints
@router.post("/sessions/{session_id}", response_model=OrderResult, status_code=status.HTTP_201_CREATED)
async def place_order(
    session_id: str,
    order: OrderCreate,
    session: SessionResult = Depends(get_customer_session),
    ledger: OrderSessionLedger = Depends(get_ledger)
):
    result = ledger.place_order(session_id, order.line_items, order.special_instructions)
    if not result.success:
        logger.warning(f"Order for session {session_id} rejected: {result.error_code}")
    return raise_for_result(result)


@router.get("/sessions/{session_id}", response_model=List[OrderResponse])
async def list_session_orders(
    session_id: str,
    session: SessionResult = Depends(get_customer_session),
    ledger: OrderSessionLedger = Depends(get_ledger)
):
    return ledger.get_orders(session_id)


@router.get("/sessions/{session_id}/summary", response_model=LedgerSummary)
async def get_ledger_summary(
    session_id: str,
    session: SessionResult = Depends(get_customer_session),
    ledger: OrderSessionLedger = Depends(get_ledger)
):
    summary = ledger.ledger_summary(session_id)
    if summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return summary


# Staff Endpoints
@router.get("/kitchen/{restaurant_id}", response_model=List[OrderResponse])
async def get_kitchen_queue(
    restaurant_id: int,
    ledger: OrderSessionLedger = Depends(get_ledger),
    current_user: User = Depends(get_kitchen_user)
):
    ensure_restaurant_access(current_user, restaurant_id)
    return ledger.kitchen_queue(restaurant_id)


@router.get("/staff/sessions/{session_id}/unpaid", response_model=List[OrderResponse])
async def list_unpaid_orders(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    ledger: OrderSessionLedger = Depends(get_ledger),
    current_user: User = Depends(get_counter_user)
):
    summary = raise_for_result(registry.get_session_summary(session_id)).summary
    ensure_restaurant_access(current_user, summary.restaurant_id)
    return ledger.unpaid_orders(session_id)


@router.put("/{order_id}/status", response_model=OrderResult)
async def update_order_status(
    order_id: int,
    status_update: OrderStatusUpdate,
    db: Session = Depends(get_db),
    ledger: OrderSessionLedger = Depends(get_ledger),
    current_user: User = Depends(get_kitchen_user)
):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    ensure_restaurant_access(current_user, order.session.restaurant_id)

    result = ledger.advance_order_status(order_id, status_update.status)
    logger.info(f"User {current_user.id} set order {order_id} to {status_update.status.value}: success={result.success}")
    return raise_for_result(result)
