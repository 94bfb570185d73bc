import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./qr_dining.db")

# JWT Configuration
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

# Dining sessions. The client-side persisted session and the server-side
# expires_at share this timeout.
SESSION_TIMEOUT_HOURS = int(os.getenv("SESSION_TIMEOUT_HOURS", 24))
SESSION_STORAGE_KEY = "qr_restaurant_session"
SESSION_COOKIE_NAME = "qr_session"
SESSION_TOKEN_HEADER = "X-Session-Token"

# Billing
TAX_RATE = float(os.getenv("TAX_RATE", 0.10))
SERVICE_CHARGE_RATE = float(os.getenv("SERVICE_CHARGE_RATE", 0.05))
CURRENCY = os.getenv("CURRENCY", "USD")
CARD_DECLINE_RATE = float(os.getenv("CARD_DECLINE_RATE", 0.0))

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")
RESTAURANT_DISPLAY_NAME = os.getenv("RESTAURANT_DISPLAY_NAME", "Your Restaurant")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
