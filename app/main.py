import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Import routes
from routes import users, menu_management, table_management, table_sessions, scan, billing, order_management, notifications

# Import database and services
from utils.database import Base, SessionLocal
from utils.config import LOG_LEVEL, CARD_DECLINE_RATE
from services.change_feed import ChangeFeed
from services.notifications import NotificationService
from services.session_registry import SessionRegistry
from services.order_ledger import OrderSessionLedger
from services.receipts import ReceiptService
from services.dual_payment import DualPaymentCoordinator
from services.payment_gateways import default_gateways

logger = logging.getLogger(__name__)


def create_app(session_factory=SessionLocal) -> FastAPI:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )

    # Create database tables
    Base.metadata.create_all(bind=session_factory.kw["bind"])

    # Create FastAPI app
    app = FastAPI(
        title="QR Dining Sessions API",
        description="Table QR ordering: dining sessions, orders, online and counter payments",
        version="1.0.0",
        openapi_tags=[
            {"name": "scan", "description": "QR scan entry flow"},
            {"name": "sessions", "description": "Dining session lifecycle"},
            {"name": "orders", "description": "Orders within a dining session"},
            {"name": "payments", "description": "Online and counter payments"},
            {"name": "receipts", "description": "Session receipts"},
            {"name": "users", "description": "Staff accounts"}
        ],
        swagger_ui_parameters={
            "persistAuthorization": True,
            "defaultModelsExpandDepth": -1
        }
    )

    # Services shared by every request
    change_feed = ChangeFeed()
    notifier = NotificationService(session_factory, change_feed)
    registry = SessionRegistry(session_factory, change_feed)
    receipts = ReceiptService(session_factory)
    app.state.session_factory = session_factory
    app.state.change_feed = change_feed
    app.state.notifier = notifier
    app.state.registry = registry
    app.state.ledger = OrderSessionLedger(session_factory, change_feed, notifier)
    app.state.receipts = receipts
    app.state.payments = DualPaymentCoordinator(
        session_factory,
        registry,
        receipts,
        gateways=default_gateways(CARD_DECLINE_RATE),
        change_feed=change_feed,
        notifier=notifier,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(users.router)
    app.include_router(menu_management.router)
    app.include_router(table_management.router)
    app.include_router(scan.router)
    app.include_router(table_sessions.router)
    app.include_router(order_management.router)
    app.include_router(billing.router)
    app.include_router(billing.receipts_router)
    app.include_router(notifications.router)

    # Root endpoint
    @app.get("/")
    async def root():
        return {"message": "Welcome to QR Dining Sessions API"}

    logger.info("Application configured")
    return app


app = create_app()

# Main run block
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
