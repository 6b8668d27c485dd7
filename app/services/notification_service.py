import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.core.family_access import family_user_ids, user_family_ids
from app.models.family import Family
from app.models.notification import Notification
from app.services.socket_service import ConnectionManager

logger = logging.getLogger(__name__)


def serialize_notification(notification: Notification) -> dict:
    data = notification.data or {}
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": data,
        "read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "actor_name": notification.sender.name if notification.sender else None,
        "family_id": notification.family_id,
        "family_name": notification.family.name if notification.family else None,
        "ref_id": data.get("refId"),
        "person_name": data.get("personName"),
    }


class Notifier:
    """
    Writes notification rows and pushes them to connected sockets.

    Each create commits on its own; callers invoke it after their primary
    mutation has been committed.
    """

    def __init__(self, db: Session, connections: Optional[ConnectionManager] = None):
        self.db = db
        self.connections = connections

    def create_notification(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        sender_id: Optional[str] = None,
        family_id: Optional[str] = None,
        data: Optional[dict] = None,
        scheduled_for: Optional[datetime] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            sender_id=sender_id,
            family_id=family_id,
            type=type,
            title=title,
            message=message,
            data=data or {},
            scheduled_for=scheduled_for,
            is_read=False,
        )
        self._save([notification])
        self._push(notification)
        return notification

    def create_bulk_notifications(self, items: Iterable[dict]) -> list[Notification]:
        notifications = [
            Notification(
                user_id=item["user_id"],
                sender_id=item.get("sender_id"),
                family_id=item.get("family_id"),
                type=item["type"],
                title=item["title"],
                message=item["message"],
                data=item.get("data") or {},
                scheduled_for=item.get("scheduled_for"),
                is_read=False,
            )
            for item in items
        ]
        if not notifications:
            return []

        self._save(notifications)
        for notification in notifications:
            self._push(notification)
        return notifications

    def notify_family_admin(
        self,
        family_id: str,
        sender_id: str,
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[Notification]:
        family = self.db.query(Family).filter(Family.id == family_id).first()
        if not family:
            return None

        return self.create_notification(
            user_id=family.admin_id,
            sender_id=sender_id,
            family_id=family_id,
            type=type,
            title=title,
            message=message,
            data=data,
        )

    def notify_family_members(
        self,
        family_id: str,
        sender_id: Optional[str],
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
        exclude_user_ids: Iterable[str] = (),
    ) -> list[Notification]:
        """
        One notification per family user (admin included), except the
        sender and `exclude_user_ids`.
        """
        family = self.db.query(Family).filter(Family.id == family_id).first()
        if not family:
            return []

        excluded = {sender_id, *exclude_user_ids}
        recipients = [uid for uid in family_user_ids(family) if uid not in excluded]

        return self.create_bulk_notifications(
            {
                "user_id": uid,
                "sender_id": sender_id,
                "family_id": family_id,
                "type": type,
                "title": title,
                "message": message,
                "data": data,
            }
            for uid in recipients
        )

    def _save(self, notifications: list[Notification]):
        try:
            self.db.add_all(notifications)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        for notification in notifications:
            self.db.refresh(notification)

    def _push(self, notification: Notification):
        if self.connections is None:
            return
        try:
            self.connections.notify_user(notification.user_id, serialize_notification(notification))
        except Exception as e:
            logger.warning("Realtime push failed for notification %s: %s", notification.id, e)


def notify_quietly(notifier: Optional[Notifier], description: str, send: Callable[[Notifier], Any]):
    """
    Runs a notification side effect; failures are logged, never raised.
    """
    if notifier is None:
        return None
    try:
        return send(notifier)
    except Exception:
        logger.exception("Failed to create %s notification", description)
        return None


# --------------------------------------------------
# READ SIDE
# --------------------------------------------------
def _visible_notifications(db: Session, user_id: str):
    family_ids = user_family_ids(db, user_id)
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        or_(
            Notification.family_id.is_(None),
            Notification.family_id.in_(family_ids),
        ),
    )


def get_user_notifications(db: Session, user_id: str) -> list[dict]:
    notifications = (
        _visible_notifications(db, user_id)
        .order_by(Notification.created_at.desc())
        .all()
    )
    return [serialize_notification(n) for n in notifications]


def get_unread_count(db: Session, user_id: str) -> int:
    return _visible_notifications(db, user_id).filter(Notification.is_read == False).count()  # noqa: E712


def mark_as_read(db: Session, notification_id: str, user_id: str) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()

    if not notification:
        raise NotFoundError("Notification not found")

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user_id: str) -> int:
    notifications = _visible_notifications(db, user_id).filter(Notification.is_read == False).all()  # noqa: E712
    for notification in notifications:
        notification.is_read = True
    db.commit()
    return len(notifications)


def clean_old_notifications(db: Session, retention_days: int, now: Optional[datetime] = None) -> int:
    """
    Deletes read notifications older than `retention_days`.
    """
    cutoff = (now or datetime.utcnow()) - timedelta(days=retention_days)
    count = (
        db.query(Notification)
        .filter(Notification.created_at < cutoff, Notification.is_read == True)  # noqa: E712
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Deleted %s old notifications", count)
    return count
