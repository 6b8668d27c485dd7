from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.database import get_db
from app.models.user import User
from app.schemas.event_schema import EventCreate, EventUpdate
from app.services import event_service

router = APIRouter(prefix="/families", tags=["Events"])


@router.get("/{family_id}/events")
def list_events(
    family_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return event_service.list_events(
        db, family_id, current_user.id, start_date=start_date, end_date=end_date, type=type
    )


@router.post("/{family_id}/events", status_code=status.HTTP_201_CREATED)
def create_event(
    family_id: str,
    payload: EventCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return event_service.create_event(
        db,
        family_id,
        current_user.id,
        name=payload.name,
        type=payload.type,
        day=payload.date,
        at=payload.time,
        time_zone=payload.time_zone,
        reminder_days=payload.reminder_days,
        description=payload.description,
    )


@router.get("/{family_id}/events/{event_id}")
def get_event(
    family_id: str,
    event_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return event_service.get_event(db, family_id, event_id, current_user.id)


@router.patch("/{family_id}/events/{event_id}")
def update_event(
    family_id: str,
    event_id: str,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return event_service.update_event(
        db, family_id, event_id, current_user.id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/{family_id}/events/{event_id}")
def delete_event(
    family_id: str,
    event_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return event_service.delete_event(db, family_id, event_id, current_user.id)
