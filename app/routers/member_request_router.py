from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.core.deps import get_notifier
from app.database import get_db
from app.models.user import User
from app.schemas.member_request_schema import MemberRequestAction, MemberRequestCreate
from app.services import member_request_service
from app.services.notification_service import Notifier

router = APIRouter(prefix="/families", tags=["Member Requests"])


@router.post("/{family_id}/member-requests", status_code=status.HTTP_201_CREATED)
def create_member_request(
    family_id: str,
    payload: MemberRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return member_request_service.create_member_request(
        db,
        family_id,
        current_user.id,
        payload.type,
        member_data=payload.member_data,
        target_member_id=payload.target_member_id,
        message=payload.message,
        notifier=notifier,
    )


@router.get("/{family_id}/member-requests")
def list_member_requests(
    family_id: str,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_request_service.get_family_member_requests(db, family_id, current_user.id, status)


@router.put("/{family_id}/member-requests/{request_id}")
def handle_member_request(
    family_id: str,
    request_id: str,
    payload: MemberRequestAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return member_request_service.handle_member_request(
        db, family_id, request_id, current_user.id, payload.action, notifier=notifier
    )
