from pydantic import BaseModel
from typing import Optional, Literal, Dict, Any


class MemberRequestCreate(BaseModel):
    type: Literal["ADD_MEMBER", "EDIT_MEMBER", "DELETE_MEMBER"]
    member_data: Optional[Dict[str, Any]] = None
    target_member_id: Optional[str] = None
    message: Optional[str] = None


class MemberRequestAction(BaseModel):
    action: Literal["APPROVE", "REJECT"]
