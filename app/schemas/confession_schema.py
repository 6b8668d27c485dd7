from pydantic import BaseModel
from typing import Optional


class ConfessionCreate(BaseModel):
    content: str
    is_anonymous: bool = False


class ConfessionUpdate(BaseModel):
    content: Optional[str] = None
    is_anonymous: Optional[bool] = None
