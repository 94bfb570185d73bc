from pydantic import BaseModel, EmailStr, validator
from typing import Optional
from datetime import datetime
from models.user import UserRole

class LoginRequest(BaseModel):
    username: str
    password: str

class UserBase(BaseModel):
    email: EmailStr

class UserCreate(UserBase):
    password: str
    role: UserRole
    username: Optional[str] = None
    restaurant_id: Optional[int] = None

    @validator('password')
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v

class UserResponse(UserBase):
    id: int
    role: UserRole
    username: str
    is_active: bool
    restaurant_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenData(BaseModel):
    username: Optional[str] = None
    role: Optional[UserRole] = None
