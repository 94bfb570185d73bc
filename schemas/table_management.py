from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from models.table_management import TableStatus

class RestaurantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

class RestaurantResponse(RestaurantCreate):
    id: int
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TableBase(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=20)
    capacity: int = Field(4, ge=1, le=50)

class TableCreate(TableBase):
    pass

class TableUpdate(BaseModel):
    capacity: Optional[int] = Field(None, ge=1, le=50)
    status: Optional[TableStatus] = None
    is_active: Optional[bool] = None

class TableResponse(TableBase):
    id: int
    restaurant_id: int
    status: TableStatus
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TableQRResponse(BaseModel):
    table_id: int
    restaurant_id: int
    table_number: str
    scan_url: str
