from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload
from typing import List

from utils.database import get_db
from models.menu_management import MenuCategory, MenuItem
from models.restaurant import Restaurant
from schemas.menu_management import MenuCategoryResponse, MenuItemResponse
import logging
# Setup logging
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/menu", tags=["menu"])


def get_restaurant_or_404(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.query(Restaurant).filter(
        Restaurant.id == restaurant_id,
        Restaurant.is_active == True
    ).first()
    if not restaurant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")
    return restaurant


@router.get("/{restaurant_id}/categories", response_model=List[MenuCategoryResponse])
async def list_menu_categories(restaurant_id: int, db: Session = Depends(get_db)):
    """Active categories with their items, in menu order. Public: customers browse before ordering."""
    get_restaurant_or_404(db, restaurant_id)
    categories = db.query(MenuCategory).options(selectinload(MenuCategory.menu_items)).filter(
        MenuCategory.restaurant_id == restaurant_id,
        MenuCategory.is_active == True
    ).order_by(MenuCategory.sort_order, MenuCategory.id).all()
    return categories


@router.get("/{restaurant_id}/items", response_model=List[MenuItemResponse])
async def list_menu_items(restaurant_id: int, available_only: bool = True, db: Session = Depends(get_db)):
    get_restaurant_or_404(db, restaurant_id)
    query = db.query(MenuItem).filter(MenuItem.restaurant_id == restaurant_id)
    if available_only:
        query = query.filter(MenuItem.is_available == True)
    return query.order_by(MenuItem.sort_order, MenuItem.id).all()


@router.get("/{restaurant_id}/items/{item_id}", response_model=MenuItemResponse)
async def get_menu_item(restaurant_id: int, item_id: int, db: Session = Depends(get_db)):
    item = db.query(MenuItem).filter(
        MenuItem.id == item_id,
        MenuItem.restaurant_id == restaurant_id
    ).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Menu item not found")
    return item
