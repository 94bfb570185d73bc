from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from typing import List
import logging

from utils.database import get_db
from models.restaurant import Restaurant
from models.table_session import TableSession
from models.user import User
from schemas.billing import (
    PaymentPathRequest,
    OrderPaymentRequest,
    CounterPaymentCreate,
    PaymentOptions,
    PaymentResponse,
    ReceiptResponse,
)
from schemas.results import SessionResult, PaymentResult
from services.dual_payment import DualPaymentCoordinator
from services.receipts import ReceiptService
from services.session_registry import SessionRegistry
from app.dependencies import get_payments, get_receipts, get_registry
from utils.auth import get_customer_session, get_counter_user, ensure_restaurant_access
from utils.responses import raise_for_result
from utils.pdf_generator import generate_receipt_pdf

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["payments"])
receipts_router = APIRouter(prefix="/api/v1/receipts", tags=["receipts"])


# Customer Endpoints
@router.get("/sessions/{session_id}/options", response_model=PaymentOptions)
async def get_payment_options(
    session_id: str,
    session: SessionResult = Depends(get_customer_session),
    payments: DualPaymentCoordinator = Depends(get_payments)
):
    return raise_for_result(payments.get_payment_options(session_id)).payment_options


@router.post("/sessions/{session_id}/path", response_model=PaymentResult)
async def choose_payment_path(
    session_id: str,
    request: PaymentPathRequest,
    session: SessionResult = Depends(get_customer_session),
    payments: DualPaymentCoordinator = Depends(get_payments)
):
    """Pay everything owed online now, or ask staff to settle at the counter."""
    result = payments.choose_payment_path(session_id, request.path, request.method)
    logger.info(f"Session {session_id} chose {request.path.value} payment: success={result.success}")
    return raise_for_result(result)


@router.post("/sessions/{session_id}/orders/{order_id}", response_model=PaymentResult)
async def pay_order(
    session_id: str,
    order_id: int,
    request: OrderPaymentRequest,
    session: SessionResult = Depends(get_customer_session),
    payments: DualPaymentCoordinator = Depends(get_payments)
):
    return raise_for_result(payments.pay_order(session_id, order_id, request.method))


# Staff Endpoints
@router.post("/sessions/{session_id}/counter", response_model=PaymentResult)
async def process_counter_payment(
    session_id: str,
    payment: CounterPaymentCreate,
    registry: SessionRegistry = Depends(get_registry),
    payments: DualPaymentCoordinator = Depends(get_payments),
    current_user: User = Depends(get_counter_user)
):
    summary = raise_for_result(registry.get_session_summary(session_id)).summary
    ensure_restaurant_access(current_user, summary.restaurant_id)

    received_by = payment.received_by or current_user.username
    result = payments.process_counter_payment(session_id, payment.order_ids, received_by, payment.notes)
    logger.info(f"Counter payment for session {session_id} by {received_by}: success={result.success}")
    return raise_for_result(result)


@router.get("/sessions/{session_id}/history", response_model=List[PaymentResponse])
async def get_payment_history(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
    payments: DualPaymentCoordinator = Depends(get_payments),
    current_user: User = Depends(get_counter_user)
):
    summary = raise_for_result(registry.get_session_summary(session_id)).summary
    ensure_restaurant_access(current_user, summary.restaurant_id)
    return payments.payment_history(session_id)


# Receipts
def get_receipt_or_404(receipts: ReceiptService, receipt_number: str):
    receipt = receipts.get_receipt(receipt_number)
    if not receipt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt


@receipts_router.get("/{receipt_number}", response_model=ReceiptResponse)
async def get_receipt(
    receipt_number: str,
    receipts: ReceiptService = Depends(get_receipts)
):
    return get_receipt_or_404(receipts, receipt_number)


@receipts_router.get("/{receipt_number}/pdf")
def download_receipt_pdf(
    receipt_number: str,
    db: Session = Depends(get_db),
    receipts: ReceiptService = Depends(get_receipts)
):
    receipt = get_receipt_or_404(receipts, receipt_number)
    restaurant = db.query(Restaurant).join(
        TableSession, TableSession.restaurant_id == Restaurant.id
    ).filter(TableSession.id == receipt.session_id).first()

    try:
        if restaurant:
            pdf_buffer = generate_receipt_pdf(receipt, restaurant.name)
        else:
            pdf_buffer = generate_receipt_pdf(receipt)
    except Exception as e:
        logger.error(f"Error generating PDF for receipt {receipt_number}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate receipt PDF"
        )

    headers = {
        'Content-Disposition': f'attachment; filename="receipt_{receipt.receipt_number}.pdf"'
    }
    return StreamingResponse(
        pdf_buffer,
        media_type='application/pdf',
        headers=headers
    )
