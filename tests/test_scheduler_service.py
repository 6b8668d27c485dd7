from datetime import date, datetime

import pytest

from app.models.enums import Gender, NotificationType
from app.models.event import Event
from app.models.notification import Notification
from app.services.scheduler_service import (
    check_upcoming_anniversaries,
    check_upcoming_birthdays,
    check_upcoming_events,
    next_occurrence,
    run_daily_tasks,
)

TODAY = date(2024, 5, 1)


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin")


@pytest.fixture
def family(admin, make_family, make_user):
    return make_family(admin, users=[make_user(name="Cousin")])


def _sent(db, type):
    return db.query(Notification).filter(Notification.type == type).all()


@pytest.mark.parametrize(
    "original, today, expected",
    [
        (date(1990, 5, 3), TODAY, date(2024, 5, 3)),
        (date(1990, 4, 30), TODAY, date(2025, 4, 30)),
        (date(1990, 5, 1), TODAY, date(2024, 5, 1)),
        (date(2000, 2, 29), date(2023, 2, 1), date(2023, 2, 28)),
        (date(2000, 2, 29), date(2024, 2, 1), date(2024, 2, 29)),
    ],
)
def test_next_occurrence(original, today, expected):
    assert next_occurrence(original, today) == expected


def test_birthday_reminder_goes_to_every_family_user(db, family, notifier, make_member):
    make_member(family, "Grandma", Gender.FEMALE, birth_date=date(1950, 5, 3))
    make_member(family, "Uncle", birth_date=date(1970, 6, 20))

    assert check_upcoming_birthdays(db, notifier, TODAY) == 2

    sent = _sent(db, NotificationType.BIRTHDAY_REMINDER)
    assert {n.data["personName"] for n in sent} == {"Grandma"}
    assert sent[0].data["daysUntil"] == 2
    assert "in 2 days" in sent[0].message


def test_deleted_members_get_no_birthday_reminder(db, family, notifier, make_member):
    make_member(family, "Gone", birth_date=date(1950, 5, 1), is_deleted=True)

    assert check_upcoming_birthdays(db, notifier, TODAY) == 0


def test_anniversary_is_sent_once_per_couple(db, family, notifier, married_pair):
    father, mother = married_pair(family)
    father.marriage_date = date(1980, 5, 2)
    mother.marriage_date = date(1980, 5, 2)
    db.commit()

    assert check_upcoming_anniversaries(db, notifier, TODAY) == 2

    sent = _sent(db, NotificationType.ANNIVERSARY_REMINDER)
    assert {n.data["yearsMarried"] for n in sent} == {44}
    assert "tomorrow" in sent[0].message


def test_event_reminder_window(db, family, admin, notifier):
    db.add_all([
        Event(family_id=family.id, created_by=admin.id, title="Picnic", event_type="GATHERING",
              event_date=datetime(2024, 5, 2, 10, 0)),
        Event(family_id=family.id, created_by=admin.id, title="Far off", event_type="GATHERING",
              event_date=datetime(2024, 6, 1, 10, 0)),
    ])
    db.commit()

    assert check_upcoming_events(db, notifier, TODAY) == 2
    assert {n.data["eventTitle"] for n in _sent(db, NotificationType.EVENT_REMINDER)} == {"Picnic"}


def test_second_run_on_the_same_day_sends_nothing_new(db, family, admin, notifier, make_member):
    make_member(family, "Grandma", Gender.FEMALE, birth_date=date(1950, 5, 3))
    db.add(Event(family_id=family.id, created_by=admin.id, title="Picnic", event_type="GATHERING",
                 event_date=datetime(2024, 5, 2, 10, 0)))
    db.commit()

    first = run_daily_tasks(db, notifier, today=TODAY)
    second = run_daily_tasks(db, notifier, today=TODAY)

    assert first["birthdays"] == 2
    assert first["events"] == 2
    assert second["birthdays"] == 0
    assert second["events"] == 0
    assert db.query(Notification).count() == 4


def test_failing_check_does_not_stop_the_others(db, family, notifier, make_member, monkeypatch):
    make_member(family, "Grandma", Gender.FEMALE, birth_date=date(1950, 5, 3))

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("app.services.scheduler_service.check_upcoming_anniversaries", broken)

    results = run_daily_tasks(db, notifier, today=TODAY)

    assert results["anniversaries"] == 0
    assert results["birthdays"] == 2
