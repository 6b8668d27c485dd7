import asyncio
import logging
from datetime import date, datetime, time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.family_access import family_user_ids
from app.models.enums import MaritalStatus, NotificationType
from app.models.event import Event
from app.models.family import Family
from app.models.family_member import FamilyMember
from app.models.notification import Notification
from app.services.event_service import upcoming_window
from app.services.notification_service import Notifier, clean_old_notifications
from app.services.socket_service import ConnectionManager

logger = logging.getLogger(__name__)


# ============================================================
# HELPERS
# ============================================================

def next_occurrence(original: date, today: date) -> date:
    """Month/day of `original` projected onto this year, or next year if already past."""
    def on_year(year: int) -> date:
        try:
            return original.replace(year=year)
        except ValueError:
            # Feb 29 outside a leap year
            return date(year, 2, 28)

    upcoming = on_year(today.year)
    if upcoming < today:
        upcoming = on_year(today.year + 1)
    return upcoming


def _days_text(days: int) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def _already_sent(db: Session, family_id: str, type: str, key: str, value: str, today: date) -> bool:
    """True when a reminder of `type` carrying data[key] == value was created today."""
    sent_today = (
        db.query(Notification)
        .filter(
            Notification.type == type,
            Notification.family_id == family_id,
            Notification.created_at >= datetime.combine(today, time.min),
        )
        .all()
    )
    return any((n.data or {}).get(key) == value for n in sent_today)


def _send_to_family(notifier: Notifier, family: Family, type: str, title: str, message: str, data: dict) -> int:
    notifications = notifier.create_bulk_notifications(
        {
            "user_id": uid,
            "family_id": family.id,
            "type": type,
            "title": title,
            "message": message,
            "data": data,
        }
        for uid in family_user_ids(family)
    )
    return len(notifications)


# ============================================================
# CHECKS
# ============================================================

def check_upcoming_birthdays(db: Session, notifier: Notifier, today: date) -> int:
    sent = 0
    for family in db.query(Family).all():
        members = (
            db.query(FamilyMember)
            .filter(
                FamilyMember.family_id == family.id,
                FamilyMember.is_deleted == False,  # noqa: E712
                FamilyMember.birth_date.isnot(None),
            )
            .all()
        )
        for member in members:
            days_until = (next_occurrence(member.birth_date, today) - today).days
            if days_until > settings.BIRTHDAY_WINDOW_DAYS:
                continue
            if _already_sent(db, family.id, NotificationType.BIRTHDAY_REMINDER, "memberId", member.id, today):
                continue

            sent += _send_to_family(
                notifier,
                family,
                NotificationType.BIRTHDAY_REMINDER,
                "Upcoming birthday",
                f"{member.name}'s birthday is {_days_text(days_until)}",
                {
                    "memberId": member.id,
                    "personName": member.name,
                    "birthDate": member.birth_date.isoformat(),
                    "daysUntil": days_until,
                    "familyName": family.name,
                },
            )
            logger.info("Birthday reminder sent for %s (%s)", member.name, _days_text(days_until))
    return sent


def check_upcoming_anniversaries(db: Session, notifier: Notifier, today: date) -> int:
    sent = 0
    processed = set()
    for family in db.query(Family).all():
        members = (
            db.query(FamilyMember)
            .filter(
                FamilyMember.family_id == family.id,
                FamilyMember.is_deleted == False,  # noqa: E712
                FamilyMember.marriage_date.isnot(None),
                FamilyMember.marital_status == MaritalStatus.MARRIED,
                FamilyMember.spouse_id.isnot(None),
            )
            .all()
        )
        for member in members:
            spouse = member.spouse
            if spouse is None:
                continue

            couple_key = "-".join(sorted([member.id, spouse.id]))
            if couple_key in processed:
                continue
            processed.add(couple_key)

            days_until = (next_occurrence(member.marriage_date, today) - today).days
            if days_until > settings.ANNIVERSARY_WINDOW_DAYS:
                continue
            if _already_sent(db, family.id, NotificationType.ANNIVERSARY_REMINDER, "coupleKey", couple_key, today):
                continue

            years_married = today.year - member.marriage_date.year
            sent += _send_to_family(
                notifier,
                family,
                NotificationType.ANNIVERSARY_REMINDER,
                "Upcoming wedding anniversary",
                f"{member.name} and {spouse.name}'s {years_married}-year anniversary is {_days_text(days_until)}",
                {
                    "coupleKey": couple_key,
                    "member1Id": member.id,
                    "member2Id": spouse.id,
                    "personName": f"{member.name} & {spouse.name}",
                    "marriageDate": member.marriage_date.isoformat(),
                    "yearsMarried": years_married,
                    "daysUntil": days_until,
                    "familyName": family.name,
                },
            )
            logger.info("Anniversary reminder sent for %s (%s)", couple_key, _days_text(days_until))
    return sent


def check_upcoming_events(db: Session, notifier: Notifier, today: date) -> int:
    sent = 0
    start, end = upcoming_window(today, settings.EVENT_WINDOW_DAYS)
    events = db.query(Event).filter(Event.event_date >= start, Event.event_date <= end).all()

    for event in events:
        family = db.query(Family).filter(Family.id == event.family_id).first()
        if not family:
            continue
        if _already_sent(db, family.id, NotificationType.EVENT_REMINDER, "eventId", event.id, today):
            continue

        days_until = (event.event_date.date() - today).days
        sent += _send_to_family(
            notifier,
            family,
            NotificationType.EVENT_REMINDER,
            "Event reminder",
            f'"{event.title}" is {_days_text(days_until)}',
            {
                "eventId": event.id,
                "eventTitle": event.title,
                "eventType": event.event_type,
                "eventDate": event.event_date.isoformat(),
                "daysUntil": days_until,
                "familyName": family.name,
            },
        )
        logger.info('Event reminder sent for "%s" (%s)', event.title, _days_text(days_until))
    return sent


# ============================================================
# DAILY RUN
# ============================================================

def run_daily_tasks(db: Session, notifier: Optional[Notifier] = None, today: Optional[date] = None) -> dict:
    """
    Runs every reminder check once. A failing check is logged and does not
    stop the others.
    """
    today = today or datetime.utcnow().date()
    notifier = notifier or Notifier(db)
    logger.info("Running daily scheduled tasks for %s", today)

    results = {}
    checks = (
        ("birthdays", check_upcoming_birthdays),
        ("anniversaries", check_upcoming_anniversaries),
        ("events", check_upcoming_events),
    )
    for name, check in checks:
        try:
            results[name] = check(db, notifier, today)
        except Exception:
            db.rollback()
            logger.exception("Error checking %s", name)
            results[name] = 0

    try:
        results["cleaned"] = clean_old_notifications(db, settings.NOTIFICATION_RETENTION_DAYS)
    except Exception:
        db.rollback()
        logger.exception("Error cleaning old notifications")
        results["cleaned"] = 0

    logger.info("Daily scheduled tasks completed: %s", results)
    return results


class ReminderScheduler:
    """
    Fixed-interval loop started from the app lifespan. The database work
    runs in a worker thread with its own session.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        connections: Optional[ConnectionManager] = None,
        interval_hours: float = settings.SCHEDULER_INTERVAL_HOURS,
    ):
        self.session_factory = session_factory
        self.connections = connections
        self.interval_seconds = interval_hours * 60 * 60
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> dict:
        db = self.session_factory()
        try:
            return run_daily_tasks(db, Notifier(db, self.connections))
        finally:
            db.close()

    async def _loop(self):
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Error running scheduled tasks")
            await asyncio.sleep(self.interval_seconds)

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("Scheduler started (every %s hours)", self.interval_seconds / 3600)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Scheduler stopped")
