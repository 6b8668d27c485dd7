from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session

from app import storage
from app.auth import get_current_user
from app.core.deps import get_notifier
from app.core.family_access import require_family_admin
from app.database import get_db
from app.models.user import User
from app.schemas.member_schema import (
    AchievementCreate,
    AchievementUpdate,
    MemberCreate,
    MemberFilters,
    MemberUpdate,
)
from app.services import member_service
from app.services.member_service import serialize_member
from app.services.notification_service import Notifier

router = APIRouter(prefix="/families", tags=["Family Members"])


# --------------------------------------------------
# LIST / DETAIL
# --------------------------------------------------
@router.get("/{family_id}/members")
def list_members(
    family_id: str,
    filters: MemberFilters = Depends(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.get_family_members(
        db,
        family_id,
        current_user.id,
        status=filters.status,
        generation=filters.generation,
        gender=filters.gender,
        search=filters.search,
    )


@router.get("/{family_id}/members/{member_id}")
def get_member(
    family_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.get_member_by_id(db, family_id, member_id, current_user.id)


# --------------------------------------------------
# CREATE / UPDATE / DELETE
# --------------------------------------------------
@router.post("/{family_id}/members", status_code=status.HTTP_201_CREATED)
def create_member(
    family_id: str,
    payload: MemberCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    member = member_service.create_member(db, family_id, current_user.id, payload.model_dump())
    return serialize_member(member)


@router.put("/{family_id}/members/{member_id}")
def update_member(
    family_id: str,
    member_id: str,
    payload: MemberUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    member = member_service.update_member(
        db, family_id, member_id, current_user.id, payload.model_dump(exclude_unset=True)
    )
    return serialize_member(member)


@router.post("/{family_id}/members/{member_id}/avatar")
def upload_member_avatar(
    family_id: str,
    member_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    require_family_admin(db, family_id, current_user.id, "Only admin can update members")
    old_avatar = member_service.get_active_member(db, family_id, member_id).avatar

    storage.validate_image(file)
    path = storage.save_file(f"families/{family_id}/members/{member_id}", file)

    member = member_service.update_member_avatar(db, family_id, member_id, current_user.id, path)
    storage.delete_file(old_avatar)
    return serialize_member(member)


@router.delete("/{family_id}/members/{member_id}")
def delete_member(
    family_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.delete_member(db, family_id, member_id, current_user.id)


# --------------------------------------------------
# SOFT-DELETED MEMBERS
# --------------------------------------------------
@router.get("/{family_id}/members-deleted")
def list_deleted_members(
    family_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.get_deleted_members(db, family_id, current_user.id)


@router.post("/{family_id}/members/{member_id}/restore")
def restore_member(
    family_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.restore_member(db, family_id, member_id, current_user.id)


@router.delete("/{family_id}/members/{member_id}/permanent")
def permanently_delete_member(
    family_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.permanently_delete_member(db, family_id, member_id, current_user.id)


# --------------------------------------------------
# REPORTS
# --------------------------------------------------
@router.get("/{family_id}/yearly-report")
def yearly_report(
    family_id: str,
    year: Optional[int] = None,
    start_year: Optional[int] = None,
    end_year: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.get_yearly_report(
        db, family_id, current_user.id, year=year, start_year=start_year, end_year=end_year
    )


# --------------------------------------------------
# ACHIEVEMENTS
# --------------------------------------------------
@router.get("/{family_id}/members/{member_id}/achievements")
def list_achievements(
    family_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.get_member_achievements(db, family_id, member_id, current_user.id)


@router.post("/{family_id}/members/{member_id}/achievements", status_code=status.HTTP_201_CREATED)
def create_achievement(
    family_id: str,
    member_id: str,
    payload: AchievementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return member_service.create_member_achievement(
        db, family_id, member_id, current_user.id, payload.model_dump(), notifier=notifier
    )


@router.put("/{family_id}/members/{member_id}/achievements/{achievement_id}")
def update_achievement(
    family_id: str,
    member_id: str,
    achievement_id: str,
    payload: AchievementUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.update_member_achievement(
        db,
        family_id,
        member_id,
        achievement_id,
        current_user.id,
        payload.model_dump(exclude_unset=True),
    )


@router.delete("/{family_id}/members/{member_id}/achievements/{achievement_id}")
def delete_achievement(
    family_id: str,
    member_id: str,
    achievement_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return member_service.delete_member_achievement(
        db, family_id, member_id, achievement_id, current_user.id
    )
