from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Header, Path
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from utils.database import get_db
from utils.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from utils.responses import raise_for_result
from models.user import User, UserRole
from schemas.user import TokenData
from schemas.results import SessionResult
from services.session_registry import SessionRegistry
from app.dependencies import get_registry
import logging

logger = logging.getLogger(__name__)

# Create a bearer scheme instance
bearer_scheme = HTTPBearer()

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        token = credentials.credentials
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise credentials_exception
        token_data = TokenData(username=username)
    except JWTError as e:
        if "expired" in str(e).lower():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            )
        raise credentials_exception

    user = db.query(User).filter(User.username == token_data.username).first()
    if user is None:
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


def require_roles(*roles: UserRole):
    """Dependency allowing the given roles; superadmin is always allowed."""
    allowed = set(roles) | {UserRole.SUPERADMIN}

    async def role_dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        if current_user.requires_restaurant and not current_user.restaurant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Staff must be assigned to a restaurant"
            )
        return current_user
    return role_dependency


def ensure_restaurant_access(current_user: User, restaurant_id: int):
    if current_user.role == UserRole.SUPERADMIN:
        return
    if current_user.restaurant_id != restaurant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"No permission for restaurant ID {restaurant_id}"
        )


# Kitchen screens: status transitions and the kitchen queue
get_kitchen_user = require_roles(UserRole.OWNER, UserRole.MANAGER, UserRole.KITCHEN)
# Counter screens: counter payments, closing sessions, session lists
get_counter_user = require_roles(UserRole.OWNER, UserRole.MANAGER, UserRole.WAITER)
get_manager_user = require_roles(UserRole.OWNER, UserRole.MANAGER)


async def get_customer_session(
    session_id: str = Path(...),
    x_session_token: Optional[str] = Header(None),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResult:
    """Validate the customer's X-Session-Token against the session in the path."""
    if not x_session_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN", "message": "Session token required"},
        )
    return raise_for_result(registry.validate_session(session_id, x_session_token))
