from fastapi import APIRouter, Depends, status
from schemas.scan import (
    ScanResult,
    ConflictResolutionRequest,
    StartSessionRequest,
    JoinSessionRequest,
    SessionEntryResponse,
)
from schemas.results import SessionResult
from services.qr_scan import QRScanCoordinator
from app.dependencies import get_scan_coordinator
from utils.responses import raise_for_result
from utils.qr import menu_path
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/scan", tags=["scan"])


def entry_response(result: SessionResult) -> SessionEntryResponse:
    return SessionEntryResponse(
        session_id=result.session_id,
        session_token=result.session_token,
        table_id=result.table_id,
        restaurant_id=result.restaurant_id,
        expires_at=result.expires_at,
        redirect_url=menu_path(result.restaurant_id, result.table_id, result.session_id),
    )


@router.post("/{restaurant_id}/{table_id}", response_model=ScanResult)
async def handle_scan(
    restaurant_id: int,
    table_id: int,
    coordinator: QRScanCoordinator = Depends(get_scan_coordinator)
):
    """Decide whether a table QR scan resumes a session, offers options or reports a conflict."""
    result = coordinator.handle_scan(table_id, restaurant_id)
    logger.debug(f"Scan of table {table_id} at restaurant {restaurant_id}: {result.action.value}")
    return result


@router.post("/{restaurant_id}/{table_id}/resolve", response_model=ScanResult)
async def resolve_conflict(
    restaurant_id: int,
    table_id: int,
    request: ConflictResolutionRequest,
    coordinator: QRScanCoordinator = Depends(get_scan_coordinator)
):
    return coordinator.resolve_conflict(table_id, restaurant_id, request.choice)


@router.post("/{restaurant_id}/{table_id}/sessions", response_model=SessionEntryResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    restaurant_id: int,
    table_id: int,
    request: StartSessionRequest,
    coordinator: QRScanCoordinator = Depends(get_scan_coordinator)
):
    result = coordinator.start_new_session(
        table_id,
        restaurant_id,
        request.customer_name,
        customer_phone=request.customer_phone,
        customer_email=request.customer_email,
    )
    return entry_response(raise_for_result(result))


@router.post("/{restaurant_id}/{table_id}/join", response_model=SessionEntryResponse)
async def join_session(
    restaurant_id: int,
    table_id: int,
    request: JoinSessionRequest,
    coordinator: QRScanCoordinator = Depends(get_scan_coordinator)
):
    result = coordinator.join_session(table_id, restaurant_id, request.session_id, request.customer_name)
    return entry_response(raise_for_result(result))
