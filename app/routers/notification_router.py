from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.core.deps import get_notifier
from app.database import get_db
from app.models.user import User
from app.services import notification_service
from app.services.notification_service import Notifier, serialize_notification
from app.services.scheduler_service import run_daily_tasks

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
def list_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return notification_service.get_user_notifications(db, current_user.id)


@router.get("/unread-count")
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return {"count": notification_service.get_unread_count(db, current_user.id)}


@router.post("/mark-all-read")
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updated = notification_service.mark_all_as_read(db, current_user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.post("/{notification_id}/mark-read")
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = notification_service.mark_as_read(db, notification_id, current_user.id)
    return serialize_notification(notification)


# --------------------------------------------------
# MANUAL REMINDER RUN
# --------------------------------------------------
@router.post("/trigger-reminders")
def trigger_reminders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    results = run_daily_tasks(db, notifier)
    return {"message": "Reminder check completed", "results": results}
