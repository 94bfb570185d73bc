from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum
from schemas.results import ErrorCode
from schemas.table_session import SessionPreview


class ScanAction(str, Enum):
    REDIRECT = "redirect"
    SHOW_OPTIONS = "show-options"
    SHOW_CONFLICT = "show-conflict"


class OptionType(str, Enum):
    NEW = "new"
    EXISTING = "existing"


class ConflictChoice(str, Enum):
    CONTINUE_EXISTING = "continue_existing"
    START_NEW = "start_new"


class SessionOption(BaseModel):
    type: OptionType
    title: str
    description: str
    available: bool = True
    session: Optional[SessionPreview] = None


class ConflictSession(BaseModel):
    session_id: str
    table_id: int
    restaurant_id: int
    customer_name: Optional[str] = None
    total_orders: int = 0
    total_amount: float = 0.0


class ScanResult(BaseModel):
    action: ScanAction
    table_id: int
    restaurant_id: int
    session_id: Optional[str] = None
    redirect_url: Optional[str] = None
    conflict_session: Optional[ConflictSession] = None
    options: List[SessionOption] = []
    # Set when the server could not be consulted; clients offer a retry
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None


class ConflictResolutionRequest(BaseModel):
    choice: ConflictChoice


class StartSessionRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=20)
    customer_email: Optional[str] = Field(None, max_length=255)


class JoinSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    customer_name: Optional[str] = Field(None, max_length=100)


class SessionEntryResponse(BaseModel):
    session_id: str
    session_token: str
    table_id: int
    restaurant_id: int
    expires_at: datetime
    redirect_url: str
