from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.config import settings
from app.database import get_db
from app.models.user import User
from app.schemas.confession_schema import ConfessionCreate, ConfessionUpdate
from app.services import confession_service

router = APIRouter(prefix="/families", tags=["Confessions"])


@router.post("/{family_id}/confessions", status_code=status.HTTP_201_CREATED)
def create_confession(
    family_id: str,
    payload: ConfessionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return confession_service.create_confession(
        db, family_id, current_user.id, payload.content, is_anonymous=payload.is_anonymous
    )


@router.get("/{family_id}/confessions")
def list_confessions(
    family_id: str,
    display: Literal["all", "anonymous", "public"] = "all",
    sort: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(settings.CONFESSION_PAGE_LIMIT, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return confession_service.list_confessions(
        db, family_id, current_user.id, display=display, sort=sort, page=page, limit=limit
    )


@router.get("/{family_id}/confessions/{confession_id}")
def get_confession(
    family_id: str,
    confession_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return confession_service.get_confession(db, family_id, confession_id, current_user.id)


@router.patch("/{family_id}/confessions/{confession_id}")
def update_confession(
    family_id: str,
    confession_id: str,
    payload: ConfessionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return confession_service.update_confession(
        db, family_id, confession_id, current_user.id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/{family_id}/confessions/{confession_id}")
def delete_confession(
    family_id: str,
    confession_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return confession_service.delete_confession(db, family_id, confession_id, current_user.id)
