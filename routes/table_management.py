from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from datetime import datetime
from utils.database import get_db
from models.restaurant import Restaurant
from models.table_management import Table
from models.user import User
from schemas.table_management import (
    RestaurantCreate,
    RestaurantResponse,
    TableCreate,
    TableUpdate,
    TableResponse,
    TableQRResponse,
)
from schemas.table_session import SessionPreview
from services.session_registry import SessionRegistry
from app.dependencies import get_registry
from utils.auth import require_roles, get_manager_user, get_counter_user, ensure_restaurant_access
from utils.responses import raise_for_result
from utils.validators import validate_table_number_uniqueness
from utils.qr import scan_url
import logging


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/table-management", tags=["table_management"])

get_super_admin = require_roles()


def get_table_or_404(db: Session, table_id: int) -> Table:
    table = db.query(Table).filter(Table.id == table_id).first()
    if not table:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not found")
    return table


# Restaurant Endpoints
@router.post("/restaurants", response_model=RestaurantResponse, status_code=status.HTTP_201_CREATED)
async def create_restaurant(
    restaurant: RestaurantCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_super_admin)
):
    try:
        db_restaurant = Restaurant(**restaurant.model_dump())
        db.add(db_restaurant)
        db.commit()
        db.refresh(db_restaurant)
        logger.info(f"Restaurant {db_restaurant.id} created by user {current_user.id}")
        return db_restaurant
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating restaurant: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create restaurant"
        )


# Table Endpoints
@router.post("/restaurants/{restaurant_id}/tables", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    restaurant_id: int,
    table: TableCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_manager_user)
):
    ensure_restaurant_access(current_user, restaurant_id)
    if not db.query(Restaurant).filter(Restaurant.id == restaurant_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")
    validate_table_number_uniqueness(db, Table, table.table_number, restaurant_id)

    try:
        db_table = Table(**table.model_dump(), restaurant_id=restaurant_id)
        db.add(db_table)
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {db_table.id} ({db_table.table_number}) created by user {current_user.id}")
        return db_table
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating table: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create table"
        )


@router.get("/restaurants/{restaurant_id}/tables", response_model=List[TableResponse])
async def list_tables(
    restaurant_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_counter_user)
):
    ensure_restaurant_access(current_user, restaurant_id)
    return db.query(Table).filter(Table.restaurant_id == restaurant_id).order_by(Table.table_number).all()


@router.put("/tables/{table_id}", response_model=TableResponse)
async def update_table(
    table_id: int,
    table_update: TableUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_manager_user)
):
    db_table = get_table_or_404(db, table_id)
    ensure_restaurant_access(current_user, db_table.restaurant_id)

    try:
        for key, value in table_update.model_dump(exclude_unset=True).items():
            setattr(db_table, key, value)
        db_table.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(db_table)
        logger.info(f"Table {table_id} updated by user {current_user.id}")
        return db_table
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating table {table_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update table"
        )


@router.get("/tables/{table_id}/qr", response_model=TableQRResponse)
async def get_table_qr(
    table_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_manager_user)
):
    """The URL to encode into the table's QR code."""
    table = get_table_or_404(db, table_id)
    ensure_restaurant_access(current_user, table.restaurant_id)
    return TableQRResponse(
        table_id=table.id,
        restaurant_id=table.restaurant_id,
        table_number=table.table_number,
        scan_url=scan_url(table.restaurant_id, table.id),
    )


@router.get("/tables/{table_id}/active-sessions", response_model=List[SessionPreview])
async def list_active_sessions(
    table_id: int,
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_registry),
    current_user: User = Depends(get_counter_user)
):
    table = get_table_or_404(db, table_id)
    ensure_restaurant_access(current_user, table.restaurant_id)
    return raise_for_result(registry.get_active_sessions_for_table(table_id)).sessions
