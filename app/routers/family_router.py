from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.core.deps import get_notifier
from app.database import get_db
from app.models.user import User
from app.schemas.family_schema import (
    FamilyCreate,
    FamilyUpdate,
    JoinRequestAction,
    JoinRequestCreate,
    JoinRequestLinkAction,
    TransferAdminRequest,
)
from app.services import family_service
from app.services.notification_service import Notifier

router = APIRouter(prefix="/families", tags=["Families"])


# --------------------------------------------------
# FAMILY CRUD
# --------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def create_family(
    payload: FamilyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.create_family(db, current_user, payload.name, payload.description)


@router.get("")
def list_my_families(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.get_user_families(db, current_user.id)


@router.get("/{family_id}")
def get_family(
    family_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.get_family_by_id(db, family_id, current_user.id)


@router.put("/{family_id}")
def update_family(
    family_id: str,
    payload: FamilyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.update_family(
        db, family_id, current_user.id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/{family_id}")
def delete_family(
    family_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.delete_family(db, family_id, current_user.id)


# --------------------------------------------------
# JOIN REQUESTS
# --------------------------------------------------
@router.post("/{family_id}/join", status_code=status.HTTP_201_CREATED)
def request_to_join(
    family_id: str,
    payload: JoinRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return family_service.create_join_request(
        db, family_id, current_user.id, payload.message, notifier=notifier
    )


@router.get("/{family_id}/join-requests")
def list_join_requests(
    family_id: str,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.get_family_join_requests(db, family_id, current_user.id, status)


@router.put("/{family_id}/join-requests/{request_id}")
def handle_join_request(
    family_id: str,
    request_id: str,
    payload: JoinRequestAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return family_service.handle_join_request(
        db, family_id, request_id, current_user.id, payload.action, notifier=notifier
    )


@router.get("/{family_id}/join-requests/{request_id}/suggestions")
def join_request_suggestions(
    family_id: str,
    request_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.get_join_request_suggestions(db, family_id, request_id, current_user.id)


@router.put("/{family_id}/join-requests/{request_id}/approve")
def approve_join_request_with_link(
    family_id: str,
    request_id: str,
    payload: JoinRequestLinkAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return family_service.handle_join_request_with_link(
        db,
        family_id,
        request_id,
        current_user.id,
        payload.action,
        link_option=payload.link_option,
        member_id=payload.member_id,
        notifier=notifier,
    )


# --------------------------------------------------
# MEMBERSHIP
# --------------------------------------------------
@router.post("/{family_id}/leave")
def leave_family(
    family_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.leave_family(db, family_id, current_user.id)


@router.post("/{family_id}/transfer-admin")
def transfer_admin(
    family_id: str,
    payload: TransferAdminRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return family_service.transfer_admin(
        db, family_id, current_user.id, payload.new_admin_id, notifier=notifier
    )


# --------------------------------------------------
# STATISTICS
# --------------------------------------------------
@router.get("/{family_id}/statistics")
def family_statistics(
    family_id: str,
    from_year: Optional[int] = None,
    to_year: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return family_service.get_family_statistics(db, family_id, current_user.id, from_year, to_year)
