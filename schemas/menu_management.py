from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class CustomizationOption(BaseModel):
    name: str
    price: float = 0.0

class MenuItemResponse(BaseModel):
    id: int
    category_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    price: float
    customization_options: Optional[List[CustomizationOption]] = None
    is_available: bool

    class Config:
        from_attributes = True

class MenuCategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    sort_order: int = 0
    menu_items: List[MenuItemResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
