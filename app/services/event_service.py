import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError, ValidationError
from app.core.family_access import require_family_member
from app.database import atomic
from app.models.event import Event

logger = logging.getLogger(__name__)


def serialize_event(event: Event) -> dict:
    return {
        "id": event.id,
        "family_id": event.family_id,
        "created_by": event.created_by,
        "title": event.title,
        "event_type": event.event_type,
        "event_date": event.event_date,
        "reminder": event.reminder,
        "description": event.description,
        "created_at": event.created_at,
    }


# ============================================================
# PARSING
# ============================================================

def parse_event_datetime(day: str, at: str, time_zone: Optional[str] = None) -> datetime:
    """
    `YYYY-MM-DD` + `HH:MM` in `time_zone` -> naive UTC datetime.

    An unknown zone is logged and the wall time is read as UTC.
    """
    try:
        local = datetime.combine(date.fromisoformat(day), time.fromisoformat(at))
    except (TypeError, ValueError):
        raise ValidationError("Invalid event date or time")

    if time_zone:
        try:
            zone = ZoneInfo(time_zone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            logger.warning("Unknown time zone %r, reading %s %s as UTC: %s", time_zone, day, at, e)
        else:
            return local.replace(tzinfo=zone).astimezone(timezone.utc).replace(tzinfo=None)

    return local.replace(second=0, microsecond=0)


def reminder_minutes(reminder_days: Optional[float]) -> Optional[str]:
    if reminder_days is None:
        return None
    if reminder_days < 0:
        raise ValidationError("Invalid reminder value")
    return str(round(reminder_days * 24 * 60))


def _add_month(day: date) -> date:
    year, month = (day.year + 1, 1) if day.month == 12 else (day.year, day.month + 1)
    for candidate in (day.day, 30, 29, 28):
        try:
            return date(year, month, candidate)
        except ValueError:
            continue
    return date(year, month, 28)


def _get_event(db: Session, family_id: str, event_id: str) -> Event:
    event = db.query(Event).filter(Event.id == event_id, Event.family_id == family_id).first()
    if not event:
        raise NotFoundError("Event not found")
    return event


# ============================================================
# CRUD
# ============================================================

def create_event(
    db: Session,
    family_id: str,
    user_id: str,
    name: str,
    type: str,
    day: str,
    at: str,
    time_zone: Optional[str] = None,
    reminder_days: Optional[float] = None,
    description: Optional[str] = None,
) -> dict:
    if not name or not name.strip():
        raise ValidationError("Event name is required")
    if not type:
        raise ValidationError("Event type is required")

    require_family_member(db, family_id, user_id)

    event_date = parse_event_datetime(day, at, time_zone)
    reminder = reminder_minutes(reminder_days)

    with atomic(db):
        event = Event(
            family_id=family_id,
            created_by=user_id,
            title=name.strip(),
            event_type=type,
            event_date=event_date,
            reminder=reminder,
            description=(description or "").strip() or None,
        )
        db.add(event)

    db.refresh(event)
    return serialize_event(event)


def list_events(
    db: Session,
    family_id: str,
    user_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    type: Optional[str] = None,
    today: Optional[date] = None,
) -> list[dict]:
    """Events in [start_date, end_date]; defaults to today .. one month ahead."""
    require_family_member(db, family_id, user_id)

    today = today or datetime.utcnow().date()
    try:
        start = datetime.combine(date.fromisoformat(start_date) if start_date else today, time.min)
        end_day = date.fromisoformat(end_date) if end_date else None
    except ValueError:
        raise ValidationError("Invalid date range")

    end = datetime.combine(end_day, time.max) if end_day else datetime.combine(_add_month(today), time.min)

    query = db.query(Event).filter(
        Event.family_id == family_id,
        Event.event_date >= start,
        Event.event_date <= end,
    )
    if type and type != "all":
        query = query.filter(Event.event_type == type)

    return [serialize_event(e) for e in query.order_by(Event.event_date.asc()).all()]


def get_event(db: Session, family_id: str, event_id: str, user_id: str) -> dict:
    require_family_member(db, family_id, user_id)
    return serialize_event(_get_event(db, family_id, event_id))


def update_event(db: Session, family_id: str, event_id: str, user_id: str, data: dict) -> dict:
    require_family_member(db, family_id, user_id)
    event = _get_event(db, family_id, event_id)

    if event.created_by != user_id:
        raise ForbiddenError("Only the event creator can edit this event")

    changes = {}
    if "name" in data:
        if not (data["name"] or "").strip():
            raise ValidationError("Event name is required")
        changes["title"] = data["name"].strip()

    if "type" in data:
        if not data["type"]:
            raise ValidationError("Invalid event type")
        changes["event_type"] = data["type"]

    if data.get("date") is not None or data.get("time") is not None:
        day = data.get("date") or event.event_date.date().isoformat()
        at = data.get("time") or event.event_date.strftime("%H:%M")
        changes["event_date"] = parse_event_datetime(day, at, data.get("time_zone"))

    if "reminder_days" in data:
        changes["reminder"] = reminder_minutes(data["reminder_days"])

    if "description" in data:
        changes["description"] = (data["description"] or "").strip() or None

    if not changes:
        raise ValidationError("Nothing to update")

    with atomic(db):
        for key, value in changes.items():
            setattr(event, key, value)

    db.refresh(event)
    return serialize_event(event)


def delete_event(db: Session, family_id: str, event_id: str, user_id: str) -> dict:
    family = require_family_member(db, family_id, user_id)
    event = _get_event(db, family_id, event_id)

    if event.created_by != user_id and family.admin_id != user_id:
        raise ForbiddenError("Only the creator or the admin can delete this event")

    with atomic(db):
        db.delete(event)

    return {"message": "Event deleted successfully"}


def upcoming_window(today: date, days: int) -> tuple[datetime, datetime]:
    """[today 00:00, today + days] as naive UTC bounds."""
    start = datetime.combine(today, time.min)
    return start, start + timedelta(days=days)
