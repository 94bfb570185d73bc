import asyncio
import logging
from fastapi import WebSocket, WebSocketDisconnect, APIRouter, Depends, HTTPException, status
from typing import Callable, Dict, List
from sqlalchemy.orm import Session
from utils.database import get_db
from models.restaurant import Restaurant
from models.notification import Notification
from schemas.notification import NotificationResponse
from schemas.results import SessionResult
from utils.auth import get_customer_session
from services.change_feed import ChangeFeed, ORDERS, TABLE_SESSIONS, NOTIFICATIONS

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

WATCHED_TABLES = [ORDERS, TABLE_SESSIONS, NOTIFICATIONS]


class ConnectionManager:
    """Staff dashboards connected per restaurant, fed from the change feed."""

    def __init__(self):
        self.active_connections: Dict[int, List[WebSocket]] = {}
        self._unsubscribers: Dict[int, Callable[[], None]] = {}

    async def connect(self, websocket: WebSocket, restaurant_id: int, feed: ChangeFeed):
        if restaurant_id not in self.active_connections:
            self.active_connections[restaurant_id] = []
            loop = asyncio.get_running_loop()
            self._unsubscribers[restaurant_id] = feed.subscribe(
                WATCHED_TABLES,
                lambda event: asyncio.run_coroutine_threadsafe(self.broadcast(event.model_dump(), restaurant_id), loop),
                restaurant_id=restaurant_id,
            )
        self.active_connections[restaurant_id].append(websocket)
        await websocket.accept()
        logger.debug(f"WebSocket connected for restaurant {restaurant_id}. Total connections: {len(self.active_connections[restaurant_id])}")

    def disconnect(self, websocket: WebSocket, restaurant_id: int):
        if restaurant_id in self.active_connections:
            if websocket in self.active_connections[restaurant_id]:
                self.active_connections[restaurant_id].remove(websocket)
            if not self.active_connections[restaurant_id]:
                del self.active_connections[restaurant_id]
                unsubscribe = self._unsubscribers.pop(restaurant_id, None)
                if unsubscribe:
                    unsubscribe()
            logger.debug(f"WebSocket disconnected for restaurant {restaurant_id}. Total connections: {len(self.active_connections.get(restaurant_id, []))}")

    async def broadcast(self, message: dict, restaurant_id: int):
        for connection in list(self.active_connections.get(restaurant_id, [])):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send WebSocket message to restaurant {restaurant_id}: {str(e)}")


connection_manager = ConnectionManager()


@router.websocket("/ws/{restaurant_id}")
async def websocket_notifications(websocket: WebSocket, restaurant_id: int):
    db = websocket.app.state.session_factory()
    try:
        restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    finally:
        db.close()
    if not restaurant:
        await websocket.close(code=4000, reason="Invalid restaurant ID")
        return

    feed: ChangeFeed = websocket.app.state.change_feed
    try:
        await connection_manager.connect(websocket, restaurant_id, feed)
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        connection_manager.disconnect(websocket, restaurant_id)
    except Exception as e:
        logger.error(f"WebSocket error for restaurant {restaurant_id}: {str(e)}")
        connection_manager.disconnect(websocket, restaurant_id)
        await websocket.close(code=4000, reason=str(e))


# Customer Endpoints
@router.get("/sessions/{session_id}", response_model=List[NotificationResponse])
async def list_session_notifications(
    session_id: str,
    unread_only: bool = False,
    db: Session = Depends(get_db),
    session: SessionResult = Depends(get_customer_session)
):
    query = db.query(Notification).filter(Notification.session_id == session_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)
    return query.order_by(Notification.created_at.desc()).all()


@router.post("/sessions/{session_id}/read")
async def mark_notifications_read(
    session_id: str,
    db: Session = Depends(get_db),
    session: SessionResult = Depends(get_customer_session)
):
    try:
        updated = db.query(Notification).filter(
            Notification.session_id == session_id,
            Notification.is_read == False
        ).update({Notification.is_read: True}, synchronize_session=False)
        db.commit()
        return {"updated": updated}
    except Exception as e:
        db.rollback()
        logger.error(f"Error marking notifications read for session {session_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notifications"
        )
