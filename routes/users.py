from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from models.user import User, UserRole
from models.restaurant import Restaurant
from utils.database import get_db
from utils.config import SECRET_KEY
from schemas.user import UserCreate, UserResponse, Token, LoginRequest
from utils.auth import (
    verify_password,
    get_password_hash,
    create_access_token,
    get_current_active_user,
    get_manager_user,
    ensure_restaurant_access,
)
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["users"])

# Roles each creator may hand out
ASSIGNABLE_ROLES = {
    UserRole.SUPERADMIN: [UserRole.OWNER, UserRole.MANAGER, UserRole.WAITER, UserRole.KITCHEN],
    UserRole.OWNER: [UserRole.MANAGER, UserRole.WAITER, UserRole.KITCHEN],
    UserRole.MANAGER: [UserRole.WAITER, UserRole.KITCHEN],
}


def unique_username(db: Session, email: str) -> str:
    base_username = email.split('@')[0]
    username = base_username
    counter = 1
    while db.query(User).filter(User.username == username).first():
        username = f"{base_username}{counter}"
        counter += 1
    return username


@router.post("/setup-admin", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def setup_super_admin(
    user: UserCreate,
    admin_secret: str,
    db: Session = Depends(get_db)
):
    """
    Initial Super Admin setup - only available when no Super Admin exists
    """
    try:
        logger.info(f"Attempting to setup Super Admin with email: {user.email}")

        super_admin_exists = db.query(User).filter(User.role == UserRole.SUPERADMIN).first()
        if super_admin_exists:
            logger.warning("Attempt to setup Super Admin when one already exists")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Super Admin already exists. Use the staff registration endpoint."
            )

        if admin_secret != SECRET_KEY:
            logger.warning("Invalid secret key provided for Super Admin setup")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid secret key for Super Admin setup"
            )

        if db.query(User).filter(User.email == user.email).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )

        db_user = User(
            email=user.email,
            username=user.username or unique_username(db, user.email),
            hashed_password=get_password_hash(user.password),
            role=UserRole.SUPERADMIN,
            is_active=True,
        )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"Super Admin setup successfully: {db_user.email} (ID: {db_user.id})")
        return db_user

    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error setting up Super Admin {user.email}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to setup Super Admin"
        )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_staff(
    user: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_manager_user)
):
    try:
        if user.role not in ASSIGNABLE_ROLES.get(current_user.role, []):
            logger.warning(f"User {current_user.id} ({current_user.role.value}) tried to create a {user.role.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You cannot create users with role {user.role.value}"
            )

        restaurant_id = user.restaurant_id
        if current_user.role != UserRole.SUPERADMIN:
            restaurant_id = restaurant_id or current_user.restaurant_id
            ensure_restaurant_access(current_user, restaurant_id)

        if user.role != UserRole.OWNER or restaurant_id:
            restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
            if not restaurant:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Restaurant ID {restaurant_id} not found"
                )

        if db.query(User).filter(User.email == user.email).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email already registered"
            )
        if user.username and db.query(User).filter(User.username == user.username).first():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username already taken"
            )

        db_user = User(
            email=user.email,
            username=user.username or unique_username(db, user.email),
            hashed_password=get_password_hash(user.password),
            role=user.role,
            is_active=True,
            restaurant_id=restaurant_id,
        )
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
        logger.info(f"User registered: {db_user.username} (ID: {db_user.id}, Role: {db_user.role.value}, Restaurant: {restaurant_id})")
        return db_user

    except HTTPException:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error registering user {user.email}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register user"
        )


@router.post("/login", response_model=Token)
async def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == login_data.username).first()
    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning(f"Failed login for {login_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    access_token = create_access_token(data={"sub": user.username, "role": user.role.value})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user
