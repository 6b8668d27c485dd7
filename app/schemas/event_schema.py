from pydantic import BaseModel, Field
from typing import Optional


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    time_zone: Optional[str] = None  # IANA name, e.g. "Asia/Ho_Chi_Minh"
    reminder_days: Optional[float] = None
    description: Optional[str] = None


class EventUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    time_zone: Optional[str] = None
    reminder_days: Optional[float] = None
    description: Optional[str] = None
