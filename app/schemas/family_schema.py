from pydantic import BaseModel, Field
from typing import Optional, Literal


class FamilyCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class FamilyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None


# --------------------------------------------------
# JOIN REQUESTS
# --------------------------------------------------
class JoinRequestCreate(BaseModel):
    message: Optional[str] = None


class JoinRequestAction(BaseModel):
    action: Literal["APPROVE", "REJECT"]


class JoinRequestLinkAction(BaseModel):
    action: Literal["APPROVE", "REJECT"]
    link_option: Optional[Literal["AUTO", "MANUAL", "NEW"]] = None
    member_id: Optional[str] = None


class TransferAdminRequest(BaseModel):
    new_admin_id: str
