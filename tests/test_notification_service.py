from datetime import datetime, timedelta

import pytest

from app.core.errors import NotFoundError
from app.models.notification import Notification
from app.services import notification_service
from app.services.notification_service import Notifier, clean_old_notifications, notify_quietly


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin")


@pytest.fixture
def cousin(make_user):
    return make_user(name="Cousin")


@pytest.fixture
def family(admin, cousin, make_family):
    return make_family(admin, users=[cousin])


def test_family_broadcast_skips_sender(db, family, admin, cousin, notifier):
    sent = notifier.notify_family_members(family.id, admin.id, "NEW_ACHIEVEMENT", "Title", "Body")

    assert [n.user_id for n in sent] == [cousin.id]


def test_notifications_of_left_families_are_hidden(db, family, cousin, notifier):
    notifier.create_notification(cousin.id, "JOIN_APPROVED", "Welcome", "Hi", family_id=family.id)
    notifier.create_notification(cousin.id, "SYSTEM", "Hello", "No family")

    assert notification_service.get_unread_count(db, cousin.id) == 2

    family.users.remove(cousin)
    db.commit()

    listed = notification_service.get_user_notifications(db, cousin.id)
    assert [n["title"] for n in listed] == ["Hello"]
    assert notification_service.get_unread_count(db, cousin.id) == 1


def test_mark_read(db, family, admin, cousin, notifier):
    mine = notifier.create_notification(cousin.id, "JOIN_APPROVED", "Welcome", "Hi", family_id=family.id)
    notifier.create_notification(cousin.id, "JOIN_APPROVED", "Again", "Hi", family_id=family.id)

    with pytest.raises(NotFoundError):
        notification_service.mark_as_read(db, mine.id, admin.id)

    assert notification_service.mark_as_read(db, mine.id, cousin.id).is_read is True
    assert notification_service.mark_all_as_read(db, cousin.id) == 1
    assert notification_service.get_unread_count(db, cousin.id) == 0


def test_clean_old_notifications_keeps_unread(db, cousin, notifier):
    old = datetime.utcnow() - timedelta(days=40)
    db.add_all([
        Notification(user_id=cousin.id, type="SYSTEM", title="old read", message="m", is_read=True, created_at=old),
        Notification(user_id=cousin.id, type="SYSTEM", title="old unread", message="m", created_at=old),
        Notification(user_id=cousin.id, type="SYSTEM", title="new read", message="m", is_read=True),
    ])
    db.commit()

    assert clean_old_notifications(db, 30) == 1
    assert {n.title for n in db.query(Notification).all()} == {"old unread", "new read"}


def test_notify_quietly_swallows_failures(db):
    def explode(n):
        raise RuntimeError("push failed")

    assert notify_quietly(Notifier(db), "test", explode) is None
    assert notify_quietly(None, "test", explode) is None
