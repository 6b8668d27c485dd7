import logging
import random
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.family_access import (
    family_user_ids,
    is_family_member,
    require_family_access,
    require_family_admin,
)
from app.database import atomic
from app.models.address import Address
from app.models.confession import Confession
from app.models.enums import LinkOption, NotificationType, RequestStatus
from app.models.event import Event
from app.models.family import Family
from app.models.family_join_request import FamilyJoinRequest
from app.models.family_member import FamilyMember
from app.models.member_achievement import MemberAchievement
from app.models.member_request import MemberRequest
from app.models.notification import Notification
from app.models.user import User
from app.services.notification_service import Notifier, notify_quietly

logger = logging.getLogger(__name__)

FAMILY_ID_ATTEMPTS = 100
NAME_MATCH_THRESHOLD = 0.7
POSSIBLE_MATCH_THRESHOLD = 0.5
MAX_POSSIBLE_MATCHES = 10


# ============================================================
# SERIALIZERS
# ============================================================

def _user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email, "avatar": user.avatar}


def serialize_family(db: Session, family: Family, with_users: bool = False) -> dict:
    member_count = (
        db.query(FamilyMember)
        .filter(FamilyMember.family_id == family.id, FamilyMember.is_deleted == False)  # noqa: E712
        .count()
    )
    data = {
        "id": family.id,
        "name": family.name,
        "description": family.description,
        "admin_id": family.admin_id,
        "admin": _user_summary(family.admin),
        "created_at": family.created_at,
        "updated_at": family.updated_at,
        "member_count": member_count,
        "user_count": len(family_user_ids(family)),
    }
    if with_users:
        data["users"] = [_user_summary(u) for u in family.users]
        data["event_count"] = db.query(Event).filter(Event.family_id == family.id).count()
    return data


def serialize_join_request(request: FamilyJoinRequest) -> dict:
    return {
        "id": request.id,
        "family_id": request.family_id,
        "user_id": request.user_id,
        "message": request.message,
        "status": request.status,
        "approved_by": request.approved_by,
        "approved_at": request.approved_at,
        "approval_data": request.approval_data,
        "created_at": request.created_at,
        "user": _user_summary(request.user),
        "approver": (
            {"id": request.approver.id, "name": request.approver.name}
            if request.approver
            else None
        ),
    }


# ============================================================
# FAMILY LIFECYCLE
# ============================================================

def generate_family_id(db: Session) -> str:
    """Random 4-digit id not used by any family yet."""
    for _ in range(FAMILY_ID_ATTEMPTS):
        candidate = str(random.randint(1000, 9999))
        if not db.query(Family).filter(Family.id == candidate).first():
            return candidate

    raise ConflictError("Failed to generate unique family ID")


def create_family(db: Session, user: User, name: str, description: Optional[str] = None) -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Family name is required")

    with atomic(db):
        family = Family(
            id=generate_family_id(db),
            name=name,
            description=description or None,
            admin_id=user.id,
        )
        family.users.append(user)
        db.add(family)

    db.refresh(family)
    logger.info("Family %s created by %s", family.id, user.id)
    return serialize_family(db, family)


def get_user_families(db: Session, user_id: str) -> list[dict]:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    families = {f.id: f for f in user.admin_of_families}
    for family in user.member_of_families:
        families.setdefault(family.id, family)

    ordered = sorted(families.values(), key=lambda f: f.created_at or datetime.min, reverse=True)
    return [serialize_family(db, f) for f in ordered]


def get_family_by_id(db: Session, family_id: str, user_id: str) -> dict:
    family = db.query(Family).filter(Family.id == family_id).first()
    if not family:
        raise NotFoundError("Family not found")

    if not is_family_member(db, family, user_id):
        raise ForbiddenError("You do not have access to this family")

    return serialize_family(db, family, with_users=True)


def update_family(db: Session, family_id: str, user_id: str, data: dict) -> dict:
    family = require_family_admin(db, family_id, user_id, "Only admin can update family information")

    with atomic(db):
        if data.get("name") is not None:
            name = data["name"].strip()
            if not name:
                raise ValidationError("Family name is required")
            family.name = name
        if "description" in data:
            family.description = data["description"] or None

    db.refresh(family)
    return serialize_family(db, family)


def delete_family(db: Session, family_id: str, user_id: str) -> dict:
    family = require_family_admin(db, family_id, user_id, "Only admin can delete family")

    member_ids = select(FamilyMember.id).where(FamilyMember.family_id == family_id)

    with atomic(db):
        db.query(MemberAchievement).filter(MemberAchievement.member_id.in_(member_ids)).delete(
            synchronize_session=False
        )
        db.query(Address).filter(Address.member_id.in_(member_ids)).delete(synchronize_session=False)
        db.query(MemberRequest).filter(MemberRequest.family_id == family_id).delete(synchronize_session=False)

        # Break the self references first so rows can go in any order
        db.query(FamilyMember).filter(FamilyMember.family_id == family_id).update(
            {
                FamilyMember.father_id: None,
                FamilyMember.mother_id: None,
                FamilyMember.spouse_id: None,
            },
            synchronize_session=False,
        )
        db.query(FamilyMember).filter(FamilyMember.family_id == family_id).delete(synchronize_session=False)

        for model in (Event, Confession, FamilyJoinRequest, Notification):
            db.query(model).filter(model.family_id == family_id).delete(synchronize_session=False)

        family.users = []
        db.delete(family)

    logger.info("Family %s deleted by %s", family_id, user_id)
    return {"message": "Family deleted successfully"}


# ============================================================
# NAME MATCHING
# ============================================================

def calculate_name_similarity(name1: str, name2: str) -> float:
    """
    Word overlap score in [0, 1]: words of one name found in (or containing)
    some word of the other, over the longer word count. Counted both ways and
    the smaller count kept, so the score does not depend on argument order.
    """
    words1 = (name1 or "").lower().split()
    words2 = (name2 or "").lower().split()

    if not words1 or not words2:
        return 0.0
    if words1 == words2:
        return 1.0

    def matches(source, target):
        return sum(1 for a in source if any(a in b or b in a for b in target))

    match_count = min(matches(words1, words2), matches(words2, words1))
    return match_count / max(len(words1), len(words2))


def names_match(name1: str, name2: str) -> bool:
    return calculate_name_similarity(name1, name2) >= NAME_MATCH_THRESHOLD


# ============================================================
# JOIN REQUESTS
# ============================================================

def create_join_request(
    db: Session,
    family_id: str,
    user_id: str,
    message: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> dict:
    family = db.query(Family).filter(Family.id == family_id).first()
    if not family:
        raise NotFoundError("Family not found")

    if is_family_member(db, family, user_id):
        raise ConflictError("You are already a member of this family")

    existing = (
        db.query(FamilyJoinRequest)
        .filter(FamilyJoinRequest.family_id == family_id, FamilyJoinRequest.user_id == user_id)
        .first()
    )

    with atomic(db):
        if existing:
            if existing.status == RequestStatus.PENDING:
                raise ConflictError("You already have a pending request for this family")
            if existing.status == RequestStatus.APPROVED:
                raise ConflictError("Your request has already been approved")
            # REJECTED: drop it so a fresh one can be filed
            db.delete(existing)
            db.flush()

        request = FamilyJoinRequest(
            family_id=family_id,
            user_id=user_id,
            message=message or None,
            status=RequestStatus.PENDING,
        )
        db.add(request)

    db.refresh(request)

    requester_name = request.user.name
    notify_quietly(
        notifier,
        NotificationType.JOIN_REQUEST,
        lambda n: n.notify_family_admin(
            family_id=family_id,
            sender_id=user_id,
            type=NotificationType.JOIN_REQUEST,
            title="New join request",
            message=f"{requester_name} asked to join {family.name}",
            data={"requestId": request.id, "personName": requester_name},
        ),
    )

    return serialize_join_request(request)


def get_family_join_requests(
    db: Session,
    family_id: str,
    user_id: str,
    status: Optional[str] = None,
) -> list[dict]:
    require_family_admin(db, family_id, user_id, "Only admin can view join requests")

    query = db.query(FamilyJoinRequest).filter(FamilyJoinRequest.family_id == family_id)
    if status:
        query = query.filter(FamilyJoinRequest.status == status)

    requests = query.order_by(FamilyJoinRequest.created_at.desc()).all()
    return [serialize_join_request(r) for r in requests]


def _pending_request(db: Session, family_id: str, request_id: str) -> FamilyJoinRequest:
    request = db.query(FamilyJoinRequest).filter(FamilyJoinRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Join request not found")
    if request.family_id != family_id:
        raise ValidationError("Request does not belong to this family")
    if request.status != RequestStatus.PENDING:
        raise ConflictError("Request has already been processed")
    return request


def _notify_join_outcome(notifier: Optional[Notifier], family: Family, request: FamilyJoinRequest, admin_id: str, approved: bool):
    kind = NotificationType.JOIN_APPROVED if approved else NotificationType.JOIN_REJECTED
    outcome = "approved" if approved else "rejected"
    notify_quietly(
        notifier,
        kind,
        lambda n: n.create_notification(
            user_id=request.user_id,
            sender_id=admin_id,
            family_id=family.id,
            type=kind,
            title=f"Join request {outcome}",
            message=f"Your request to join {family.name} was {outcome}",
            data={"requestId": request.id, "familyName": family.name},
        ),
    )


def _reject(request: FamilyJoinRequest, admin_id: str):
    request.status = RequestStatus.REJECTED
    request.approved_by = admin_id
    request.approved_at = datetime.utcnow()


def handle_join_request(
    db: Session,
    family_id: str,
    request_id: str,
    admin_id: str,
    action: str,
    notifier: Optional[Notifier] = None,
) -> dict:
    """Approve or reject without linking the requester to a member."""
    family = require_family_admin(db, family_id, admin_id, "Only admin can approve/reject join requests")
    request = _pending_request(db, family_id, request_id)
    approved = action == "APPROVE"

    with atomic(db):
        if approved:
            if request.user not in family.users:
                family.users.append(request.user)
            request.status = RequestStatus.APPROVED
            request.approved_by = admin_id
            request.approved_at = datetime.utcnow()
        else:
            _reject(request, admin_id)

    _notify_join_outcome(notifier, family, request, admin_id, approved)

    return {
        "message": "Join request approved successfully" if approved else "Join request rejected",
        "user": _user_summary(request.user),
    }


def _unlinked_members(db: Session, family_id: str):
    return db.query(FamilyMember).filter(
        FamilyMember.family_id == family_id,
        FamilyMember.is_deleted == False,  # noqa: E712
        FamilyMember.linked_user_id.is_(None),
    )


def get_join_request_suggestions(db: Session, family_id: str, request_id: str, admin_id: str) -> dict:
    require_family_admin(db, family_id, admin_id, "Only admin can view suggestions")

    request = db.query(FamilyJoinRequest).filter(FamilyJoinRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Join request not found")
    if request.family_id != family_id:
        raise ValidationError("Request does not belong to this family")

    user = request.user
    members = _unlinked_members(db, family_id).all()

    def candidate(m: FamilyMember, similarity: float) -> dict:
        return {
            "id": m.id,
            "name": m.name,
            "email": m.email,
            "generation": m.generation,
            "birth_date": m.birth_date,
            "similarity": similarity,
        }

    auto_match = next(
        (
            m for m in members
            if m.email
            and m.email.lower() == user.email.lower()
            and names_match(m.name, user.name)
        ),
        None,
    )

    scored = [(m, calculate_name_similarity(m.name, user.name)) for m in members]
    possible = sorted(
        (pair for pair in scored if pair[1] > POSSIBLE_MATCH_THRESHOLD),
        key=lambda pair: pair[1],
        reverse=True,
    )[:MAX_POSSIBLE_MATCHES]

    return {
        "user": _user_summary(user),
        "auto_match": {
            "found": auto_match is not None,
            "member": (
                candidate(auto_match, calculate_name_similarity(auto_match.name, user.name))
                if auto_match
                else None
            ),
        },
        "possible_matches": [candidate(m, s) for m, s in possible],
    }


def handle_join_request_with_link(
    db: Session,
    family_id: str,
    request_id: str,
    admin_id: str,
    action: str,
    link_option: Optional[str] = None,
    member_id: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> dict:
    """
    Approve a join request and optionally claim an existing member for the
    requester:

    - AUTO: the unlinked member whose email equals the requester's and
      whose name matches
    - MANUAL: `member_id`, which must be unlinked and match by name
    - NEW: no link
    """
    family = require_family_admin(db, family_id, admin_id, "Only admin can approve/reject join requests")
    request = _pending_request(db, family_id, request_id)
    user = request.user

    if action == "REJECT":
        with atomic(db):
            _reject(request, admin_id)
        _notify_join_outcome(notifier, family, request, admin_id, approved=False)
        return {"message": "Join request rejected", "user": _user_summary(user)}

    link_option = link_option or LinkOption.NEW
    linked_member = None

    if link_option == LinkOption.AUTO:
        linked_member = next(
            (
                m for m in _unlinked_members(db, family_id).filter(FamilyMember.email.isnot(None)).all()
                if m.email.lower() == user.email.lower() and names_match(m.name, user.name)
            ),
            None,
        )
        if not linked_member:
            raise ValidationError("No auto-match member found. Please use MANUAL or NEW option.")

    elif link_option == LinkOption.MANUAL:
        if not member_id:
            raise ValidationError("Member ID is required for MANUAL link option")

        linked_member = _unlinked_members(db, family_id).filter(FamilyMember.id == member_id).first()
        if not linked_member:
            raise NotFoundError("Member not found or already linked")

        if not names_match(linked_member.name, user.name):
            raise ValidationError("Member name does not match user name closely enough")

    with atomic(db):
        if user not in family.users:
            family.users.append(user)

        if linked_member:
            linked_member.linked_user_id = user.id
            linked_member.email = user.email
            linked_member.is_verified = True

        request.status = RequestStatus.APPROVED
        request.approved_by = admin_id
        request.approved_at = datetime.utcnow()
        request.approval_data = {
            "linkOption": link_option,
            "linkedMemberId": linked_member.id if linked_member else None,
        }

    _notify_join_outcome(notifier, family, request, admin_id, approved=True)

    logger.info(
        "Join request %s approved with %s link (member %s)",
        request.id, link_option, linked_member.id if linked_member else None,
    )
    return {
        "message": "Join request approved successfully",
        "user": _user_summary(user),
        "linked_member": {"id": linked_member.id} if linked_member else None,
    }


# ============================================================
# MEMBERSHIP
# ============================================================

def leave_family(db: Session, family_id: str, user_id: str) -> dict:
    family = db.query(Family).filter(Family.id == family_id).first()
    user = db.query(User).filter(User.id == user_id).first()

    if not family or not user or user not in family.users:
        raise ForbiddenError("You are not a member of this family")

    if family.admin_id == user_id and len(family.users) > 1:
        raise ValidationError("Admin must transfer admin role before leaving")

    linked_member = (
        db.query(FamilyMember)
        .filter(
            FamilyMember.family_id == family_id,
            FamilyMember.linked_user_id == user_id,
            FamilyMember.is_deleted == False,  # noqa: E712
        )
        .first()
    )

    with atomic(db):
        if linked_member:
            linked_member.linked_user_id = None
            linked_member.is_verified = False
        family.users.remove(user)

    return {
        "message": "Left family successfully",
        "unlinked_member": (
            {"id": linked_member.id, "name": linked_member.name} if linked_member else None
        ),
    }


def transfer_admin(
    db: Session,
    family_id: str,
    current_admin_id: str,
    new_admin_id: str,
    notifier: Optional[Notifier] = None,
) -> dict:
    family = require_family_admin(db, family_id, current_admin_id, "Only admin can transfer admin role")

    if current_admin_id == new_admin_id:
        raise ValidationError("Cannot transfer admin to yourself")

    if new_admin_id not in [u.id for u in family.users]:
        raise ValidationError("New admin must be a member of the family")

    with atomic(db):
        family.admin_id = new_admin_id

    current_admin = db.query(User).filter(User.id == current_admin_id).first()
    new_admin = db.query(User).filter(User.id == new_admin_id).first()
    data = {
        "previousAdminId": current_admin_id,
        "previousAdminName": current_admin.name if current_admin else None,
        "newAdminId": new_admin_id,
        "newAdminName": new_admin.name if new_admin else None,
    }

    notify_quietly(
        notifier,
        NotificationType.ADMIN_TRANSFER,
        lambda n: n.create_notification(
            user_id=new_admin_id,
            sender_id=current_admin_id,
            family_id=family_id,
            type=NotificationType.ADMIN_TRANSFER,
            title="You are now the family admin",
            message=f"{data['previousAdminName'] or 'The previous admin'} made you admin of {family.name}",
            data=data,
        ),
    )
    notify_quietly(
        notifier,
        NotificationType.ADMIN_TRANSFER,
        lambda n: n.notify_family_members(
            family_id,
            current_admin_id,
            NotificationType.ADMIN_TRANSFER,
            "Family admin changed",
            f"{data['newAdminName'] or 'A member'} is now the admin of {family.name}",
            data,
            exclude_user_ids=[new_admin_id],
        ),
    )

    logger.info("Family %s admin transferred from %s to %s", family_id, current_admin_id, new_admin_id)
    return {"message": "Admin role transferred successfully", "new_admin_id": new_admin_id}


# ============================================================
# STATISTICS
# ============================================================

def get_family_statistics(
    db: Session,
    family_id: str,
    user_id: str,
    from_year: Optional[int] = None,
    to_year: Optional[int] = None,
) -> dict:
    """Births, marriages and deaths bucketed by calendar year."""
    require_family_access(db, family_id, user_id)

    members = (
        db.query(FamilyMember)
        .filter(FamilyMember.family_id == family_id, FamilyMember.is_deleted == False)  # noqa: E712
        .all()
    )

    stats: dict[int, dict] = {}

    def count(day, key):
        if day is None:
            return
        year = day.year
        if (from_year and year < from_year) or (to_year and year > to_year):
            return
        bucket = stats.setdefault(year, {"year": year, "births": 0, "marriages": 0, "deaths": 0})
        bucket[key] += 1

    for member in members:
        count(member.birth_date, "births")
        count(member.marriage_date, "marriages")
        count(member.death_date, "deaths")

    yearly_stats = [stats[year] for year in sorted(stats)]

    return {
        "yearly_stats": yearly_stats,
        "total_years_with_events": len(yearly_stats),
        "summary": {
            "total_births": sum(s["births"] for s in yearly_stats),
            "total_marriages": sum(s["marriages"] for s in yearly_stats),
            "total_deaths": sum(s["deaths"] for s in yearly_stats),
        },
    }
