import pytest

from app.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.enums import Gender, MemberRequestType, NotificationType, RequestStatus
from app.models.family_member import FamilyMember
from app.models.member_request import MemberRequest
from app.models.notification import Notification
from app.services import member_request_service


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin")


@pytest.fixture
def requester(make_user):
    return make_user(name="Requester")


@pytest.fixture
def family(admin, requester, make_family):
    return make_family(admin, users=[requester])


def _request(db, requester, type, **kwargs):
    return member_request_service.create_member_request(db, "1234", requester.id, type, **kwargs)


def test_add_request_is_validated_and_stored(db, family, admin, requester, notifier):
    request = _request(
        db, requester, MemberRequestType.ADD_MEMBER,
        member_data={"name": "Grandpa", "gender": "MALE", "generation": 1, "birth_date": "1940-02-03"},
        notifier=notifier,
    )

    assert request["status"] == RequestStatus.PENDING
    assert request["member_data"]["birth_date"] == "1940-02-03"
    assert db.query(Notification).one().user_id == admin.id

    with pytest.raises(ValidationError):
        _request(db, requester, MemberRequestType.ADD_MEMBER, member_data={"name": "No gender"})
    with pytest.raises(ValidationError, match="gender"):
        _request(
            db, requester, MemberRequestType.ADD_MEMBER,
            member_data={"name": "Odd", "gender": "UNKNOWN", "generation": 1},
        )


def test_edit_and_delete_need_a_live_target(db, family, requester):
    with pytest.raises(ValidationError):
        _request(db, requester, MemberRequestType.DELETE_MEMBER)
    with pytest.raises(NotFoundError):
        _request(db, requester, MemberRequestType.DELETE_MEMBER, target_member_id="missing")


def test_approved_add_request_creates_linked_member(db, family, admin, requester, notifier):
    request = _request(
        db, requester, MemberRequestType.ADD_MEMBER,
        member_data={"name": "Requester", "gender": "FEMALE", "generation": 2, "is_me": True},
    )

    member_request_service.handle_member_request(db, "1234", request["id"], admin.id, "APPROVE", notifier)

    db.expire_all()
    member = db.query(FamilyMember).one()
    stored = db.get(MemberRequest, request["id"])
    assert member.linked_user_id == requester.id
    assert stored.status == RequestStatus.APPROVED
    assert stored.target_member_id == member.id
    assert db.query(Notification).one().type == NotificationType.MEMBER_APPROVED


def test_approved_edit_follows_member_rules(db, family, admin, requester, make_member):
    woman = make_member(family, "Woman", Gender.FEMALE, 1)
    kid = make_member(family, "Kid", Gender.MALE, 2)
    request = _request(
        db, requester, MemberRequestType.EDIT_MEMBER,
        target_member_id=kid.id, member_data={"father_id": woman.id},
    )

    with pytest.raises(ValidationError, match="Father cannot be female"):
        member_request_service.handle_member_request(db, "1234", request["id"], admin.id, "APPROVE")

    db.expire_all()
    assert db.get(MemberRequest, request["id"]).status == RequestStatus.PENDING


def test_approved_delete_soft_deletes(db, family, admin, requester, make_member):
    target = make_member(family, "Target")
    request = _request(db, requester, MemberRequestType.DELETE_MEMBER, target_member_id=target.id)

    member_request_service.handle_member_request(db, "1234", request["id"], admin.id, "APPROVE")

    db.expire_all()
    assert db.get(FamilyMember, target.id).is_deleted is True

    with pytest.raises(ConflictError):
        member_request_service.handle_member_request(db, "1234", request["id"], admin.id, "APPROVE")


def test_only_admin_handles_requests(db, family, requester, make_member):
    target = make_member(family, "Target")
    request = _request(db, requester, MemberRequestType.DELETE_MEMBER, target_member_id=target.id)

    with pytest.raises(ForbiddenError):
        member_request_service.handle_member_request(db, "1234", request["id"], requester.id, "APPROVE")
    with pytest.raises(ForbiddenError):
        member_request_service.get_family_member_requests(db, "1234", requester.id)


def test_rejection_notifies_requester(db, family, admin, requester, make_member, notifier):
    target = make_member(family, "Target")
    request = _request(db, requester, MemberRequestType.DELETE_MEMBER, target_member_id=target.id)

    member_request_service.handle_member_request(db, "1234", request["id"], admin.id, "REJECT", notifier)

    db.expire_all()
    assert db.get(FamilyMember, target.id).is_deleted is False
    sent = db.query(Notification).one()
    assert (sent.user_id, sent.type) == (requester.id, NotificationType.MEMBER_REJECTED)
    assert [r["status"] for r in member_request_service.get_family_member_requests(db, "1234", admin.id)] == [
        RequestStatus.REJECTED
    ]