import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.family_access import require_family_access, require_family_admin
from app.database import atomic
from app.models.enums import Gender, MaritalStatus, NotificationType
from app.models.family_member import FamilyMember
from app.models.member_achievement import MemberAchievement
from app.models.member_request import MemberRequest
from app.services.notification_service import Notifier, notify_quietly

logger = logging.getLogger(__name__)


# Columns a client may write on a member
MEMBER_FIELDS = (
    "name",
    "gender",
    "generation",
    "child_order",
    "email",
    "birth_date",
    "death_date",
    "marriage_date",
    "occupation",
    "custom_occupation",
    "hometown",
    "current_address",
    "marital_status",
    "bio",
    "father_id",
    "mother_id",
    "spouse_id",
)

RELATION_FIELDS = ("father_id", "mother_id", "spouse_id")

# Sending null for these on update means "leave unchanged"
NON_NULLABLE_FIELDS = ("name", "gender", "generation", "marital_status")

# Gender a parent slot may not hold
_FORBIDDEN_PARENT_GENDER = {
    "Father": (Gender.FEMALE, "Father cannot be female"),
    "Mother": (Gender.MALE, "Mother cannot be male"),
}


# ============================================================
# SERIALIZERS
# ============================================================

def serialize_member(member: FamilyMember) -> dict:
    return {
        "id": member.id,
        "family_id": member.family_id,
        "name": member.name,
        "gender": member.gender,
        "generation": member.generation,
        "child_order": member.child_order,
        "email": member.email,
        "birth_date": member.birth_date,
        "death_date": member.death_date,
        "marriage_date": member.marriage_date,
        "occupation": member.occupation,
        "custom_occupation": member.custom_occupation,
        "hometown": member.hometown,
        "current_address": member.current_address,
        "marital_status": member.marital_status,
        "avatar": member.avatar,
        "bio": member.bio,
        "father_id": member.father_id,
        "mother_id": member.mother_id,
        "spouse_id": member.spouse_id,
        "linked_user_id": member.linked_user_id,
        "is_verified": member.is_verified,
        "is_deleted": member.is_deleted,
        "deleted_at": member.deleted_at,
        "deleted_by": member.deleted_by,
        "created_at": member.created_at,
        "updated_at": member.updated_at,
    }


def _person_summary(member: Optional[FamilyMember]) -> Optional[dict]:
    if member is None:
        return None
    return {
        "id": member.id,
        "name": member.name,
        "avatar": member.avatar,
        "birth_date": member.birth_date,
        "death_date": member.death_date,
    }


def _relative_summary(member: FamilyMember) -> dict:
    summary = _person_summary(member)
    summary["gender"] = member.gender
    return summary


def serialize_achievement(achievement: MemberAchievement) -> dict:
    return {
        "id": achievement.id,
        "member_id": achievement.member_id,
        "title": achievement.title,
        "description": achievement.description,
        "category": achievement.category,
        "custom_category": achievement.custom_category,
        "achieved_at": achievement.achieved_at,
        "images": achievement.images or [],
        "created_at": achievement.created_at,
    }


# ============================================================
# LOOKUPS
# ============================================================

def find_active_member(db: Session, family_id: str, member_id: Optional[str]) -> Optional[FamilyMember]:
    if not member_id:
        return None
    return (
        db.query(FamilyMember)
        .filter(
            FamilyMember.id == member_id,
            FamilyMember.family_id == family_id,
            FamilyMember.is_deleted == False,  # noqa: E712
        )
        .first()
    )


def _deleted_member(db: Session, family_id: str, member_id: str) -> FamilyMember:
    member = (
        db.query(FamilyMember)
        .filter(
            FamilyMember.id == member_id,
            FamilyMember.family_id == family_id,
            FamilyMember.is_deleted == True,  # noqa: E712
        )
        .first()
    )
    if not member:
        raise NotFoundError("Deleted member not found")
    return member


def get_active_member(db: Session, family_id: str, member_id: str) -> FamilyMember:
    member = find_active_member(db, family_id, member_id)
    if not member:
        raise NotFoundError("Member not found")
    return member


def _active_children(db: Session, family_id: str, member_id: str, column) -> list[FamilyMember]:
    return (
        db.query(FamilyMember)
        .filter(
            column == member_id,
            FamilyMember.family_id == family_id,
            FamilyMember.is_deleted == False,  # noqa: E712
        )
        .all()
    )


# ============================================================
# RELATIONSHIP RULES
# ============================================================

def genders_compatible(a: str, b: str) -> bool:
    """Spouses must differ in gender unless either one is OTHER."""
    return a == Gender.OTHER or b == Gender.OTHER or a != b


def _parent_problem(role: str, parent: FamilyMember, generation: int) -> Optional[str]:
    forbidden, message = _FORBIDDEN_PARENT_GENDER[role]
    if parent.gender == forbidden:
        return message
    if parent.generation >= generation:
        return f"{role} generation must be less than member generation"
    return None


def _check_parent(
    db: Session,
    family_id: str,
    role: str,
    parent_id: Optional[str],
    generation: int,
    required: bool = True,
) -> Optional[FamilyMember]:
    """
    Validates a father/mother slot. A missing parent row is an error only
    when `required`; an existing reference to a vanished row is tolerated.
    """
    if not parent_id:
        return None

    parent = find_active_member(db, family_id, parent_id)
    if not parent:
        if required:
            raise NotFoundError(f"{role} not found")
        return None

    problem = _parent_problem(role, parent, generation)
    if problem:
        raise ValidationError(problem)
    return parent


def _ordered_parents(
    db: Session,
    family_id: str,
    father_id: Optional[str],
    mother_id: Optional[str],
) -> tuple[Optional[str], Optional[str]]:
    """
    Both parents must share a generation; swaps them when the genders show
    the slots were filled the wrong way round.
    """
    if not (father_id and mother_id):
        return father_id, mother_id

    p1 = find_active_member(db, family_id, father_id)
    p2 = find_active_member(db, family_id, mother_id)
    if p1 and p2:
        if p1.generation != p2.generation:
            raise ValidationError("Father and mother must be in the same generation")
        if p1.gender == Gender.FEMALE or p2.gender == Gender.MALE:
            return mother_id, father_id

    return father_id, mother_id


def _derive_missing_parent(
    db: Session,
    family_id: str,
    father_id: Optional[str],
    mother_id: Optional[str],
    generation: int,
) -> tuple[Optional[str], Optional[str]]:
    """
    When only one parent is given and that parent is married, the spouse
    fills the other slot. A derived pair that would break the parent rules
    is dropped and the input is kept as is.
    """
    if bool(father_id) == bool(mother_id):
        return father_id, mother_id

    known = find_active_member(db, family_id, father_id or mother_id)
    if not known or not known.spouse_id:
        return father_id, mother_id

    partner = find_active_member(db, family_id, known.spouse_id)
    if not partner:
        return father_id, mother_id

    if father_id:
        if known.gender == Gender.MALE:
            father, mother = known, partner
        elif known.gender == Gender.OTHER and partner.gender == Gender.MALE:
            father, mother = partner, known
        elif known.gender == Gender.OTHER:
            father, mother = known, partner
        else:
            return father_id, mother_id
    else:
        if known.gender == Gender.FEMALE:
            father, mother = partner, known
        elif known.gender == Gender.OTHER and partner.gender == Gender.FEMALE:
            father, mother = known, partner
        elif known.gender == Gender.OTHER:
            father, mother = partner, known
        else:
            return father_id, mother_id

    if (
        father.generation != mother.generation
        or _parent_problem("Father", father, generation)
        or _parent_problem("Mother", mother, generation)
    ):
        logger.info(
            "Skipping derived parent for generation %s: %s/%s do not fit",
            generation, father.id, mother.id,
        )
        return father_id, mother_id

    return father.id, mother.id


def _link_spouses(a: FamilyMember, b: FamilyMember):
    a.spouse_id = b.id
    b.spouse_id = a.id
    a.marital_status = MaritalStatus.MARRIED
    b.marital_status = MaritalStatus.MARRIED


def _unlink_spouse(db: Session, member: FamilyMember):
    """Clears both sides of the member's spouse edge; the partner goes back to SINGLE."""
    if member.spouse_id:
        partner = db.query(FamilyMember).filter(FamilyMember.id == member.spouse_id).first()
        if partner and partner.spouse_id == member.id:
            partner.spouse_id = None
            partner.marital_status = MaritalStatus.SINGLE
    member.spouse_id = None


def _clean_payload(data: dict) -> dict:
    cleaned = {k: v for k, v in data.items() if k in MEMBER_FIELDS}
    for key in RELATION_FIELDS:
        if key in cleaned:
            cleaned[key] = cleaned[key] or None
    return cleaned


# ============================================================
# MUTATIONS (no commit; callers wrap them in `atomic`)
# ============================================================

def add_member(
    db: Session,
    family_id: str,
    data: dict,
    link_user_id: Optional[str] = None,
) -> FamilyMember:
    """
    Inserts a member after applying the parent and spouse rules.
    `link_user_id` claims the new member for that user.
    """
    if link_user_id:
        existing_link = (
            db.query(FamilyMember)
            .filter(
                FamilyMember.family_id == family_id,
                FamilyMember.linked_user_id == link_user_id,
                FamilyMember.is_deleted == False,  # noqa: E712
            )
            .first()
        )
        if existing_link:
            raise ValidationError("You are already linked to another member in this family")

    fields = _clean_payload(data)
    gender = fields.get("gender")
    generation = fields.get("generation")
    if not fields.get("name") or not gender or generation is None:
        raise ValidationError("Name, gender and generation are required")

    father_id, mother_id = _ordered_parents(
        db, family_id, fields.get("father_id"), fields.get("mother_id")
    )
    _check_parent(db, family_id, "Father", father_id, generation)
    _check_parent(db, family_id, "Mother", mother_id, generation)
    father_id, mother_id = _derive_missing_parent(db, family_id, father_id, mother_id, generation)
    fields["father_id"], fields["mother_id"] = father_id, mother_id

    spouse = None
    spouse_id = fields.pop("spouse_id", None)
    if spouse_id:
        spouse = find_active_member(db, family_id, spouse_id)
        if not spouse:
            raise NotFoundError("Spouse not found")
        if not genders_compatible(gender, spouse.gender):
            raise ValidationError("Spouse must be different gender")
        if spouse.spouse_id:
            raise ValidationError("Selected spouse is already married to another member")

    fields["marital_status"] = fields.get("marital_status") or MaritalStatus.SINGLE

    member = FamilyMember(
        family_id=family_id,
        linked_user_id=link_user_id,
        is_verified=bool(link_user_id),
        **fields,
    )
    db.add(member)
    db.flush()

    if spouse:
        _link_spouses(member, spouse)

    return member


def apply_member_update(db: Session, family_id: str, member: FamilyMember, data: dict) -> FamilyMember:
    """
    Applies `data` to `member`. Only keys present in `data` count as
    supplied; the rules are checked against the merged result.
    """
    fields = _clean_payload(data)
    for key in NON_NULLABLE_FIELDS:
        if key in fields and fields[key] is None:
            fields.pop(key)

    gender = fields.get("gender", member.gender)
    generation = fields.get("generation", member.generation)

    father_id = fields["father_id"] if "father_id" in fields else member.father_id
    mother_id = fields["mother_id"] if "mother_id" in fields else member.mother_id
    ordered = _ordered_parents(db, family_id, father_id, mother_id)
    if ordered != (father_id, mother_id):
        father_id, mother_id = ordered
        fields["father_id"], fields["mother_id"] = father_id, mother_id

    _check_parent(db, family_id, "Father", father_id, generation, required="father_id" in fields)
    _check_parent(db, family_id, "Mother", mother_id, generation, required="mother_id" in fields)

    new_spouse = None
    spouse_supplied = "spouse_id" in fields
    new_spouse_id = fields.pop("spouse_id", None)
    if new_spouse_id:
        new_spouse = find_active_member(db, family_id, new_spouse_id)
        if not new_spouse:
            raise NotFoundError("Spouse not found")
        if new_spouse.id == member.id:
            raise ValidationError("Cannot set spouse to yourself")
        if not genders_compatible(gender, new_spouse.gender):
            raise ValidationError("Spouse must be different gender")
        if new_spouse.spouse_id and new_spouse.spouse_id != member.id:
            raise ValidationError("Selected spouse is already married to another member")
    elif not spouse_supplied and "gender" in fields and member.spouse_id:
        current_spouse = find_active_member(db, family_id, member.spouse_id)
        if current_spouse and not genders_compatible(gender, current_spouse.gender):
            raise ValidationError("Spouse must be different gender")

    if "gender" in fields or "generation" in fields:
        _check_children_still_fit(db, family_id, member, gender, generation)

    for key, value in fields.items():
        setattr(member, key, value)

    if spouse_supplied:
        if member.spouse_id and member.spouse_id != new_spouse_id:
            _unlink_spouse(db, member)
        if new_spouse:
            _link_spouses(member, new_spouse)

    db.flush()
    return member


def _check_children_still_fit(db: Session, family_id: str, member: FamilyMember, gender: str, generation: int):
    children = (
        db.query(FamilyMember)
        .filter(
            FamilyMember.family_id == family_id,
            FamilyMember.is_deleted == False,  # noqa: E712
            or_(FamilyMember.father_id == member.id, FamilyMember.mother_id == member.id),
        )
        .all()
    )
    for child in children:
        if child.father_id == member.id and gender == Gender.FEMALE:
            raise ValidationError("Father cannot be female")
        if child.mother_id == member.id and gender == Gender.MALE:
            raise ValidationError("Mother cannot be male")
        if generation >= child.generation:
            raise ValidationError("Member generation must be less than their children's generation")


def soft_delete(db: Session, family_id: str, member: FamilyMember, user_id: str) -> FamilyMember:
    """
    Marks the member deleted and detaches it from the graph, keeping a
    snapshot of its edges for restore.
    """
    if member.is_deleted:
        raise ConflictError("Member is already deleted")

    children_as_father = _active_children(db, family_id, member.id, FamilyMember.father_id)
    children_as_mother = _active_children(db, family_id, member.id, FamilyMember.mother_id)

    member.deleted_data = {
        "spouseId": member.spouse_id,
        "fatherId": member.father_id,
        "motherId": member.mother_id,
        "childrenAsFather": [c.id for c in children_as_father],
        "childrenAsMother": [c.id for c in children_as_mother],
    }

    _unlink_spouse(db, member)

    if member.gender in (Gender.MALE, Gender.OTHER):
        for child in children_as_father:
            child.father_id = None
    if member.gender in (Gender.FEMALE, Gender.OTHER):
        for child in children_as_mother:
            child.mother_id = None

    member.is_deleted = True
    member.deleted_at = datetime.utcnow()
    member.deleted_by = user_id

    db.flush()
    return member


# ============================================================
# CREATE / UPDATE / DELETE
# ============================================================

def create_member(
    db: Session,
    family_id: str,
    user_id: str,
    data: dict,
) -> FamilyMember:
    require_family_admin(db, family_id, user_id, "Only admin can create members")

    with atomic(db):
        member = add_member(
            db,
            family_id,
            data,
            link_user_id=user_id if data.get("is_me") else None,
        )

    db.refresh(member)
    logger.info("Member %s created in family %s", member.id, family_id)
    return member


def update_member(db: Session, family_id: str, member_id: str, user_id: str, data: dict) -> FamilyMember:
    require_family_admin(db, family_id, user_id, "Only admin can update members")
    member = get_active_member(db, family_id, member_id)

    with atomic(db):
        apply_member_update(db, family_id, member, data)

    db.refresh(member)
    return member


def update_member_avatar(db: Session, family_id: str, member_id: str, user_id: str, avatar: str) -> FamilyMember:
    require_family_admin(db, family_id, user_id, "Only admin can update members")
    member = get_active_member(db, family_id, member_id)

    with atomic(db):
        member.avatar = avatar

    db.refresh(member)
    return member


def delete_member(db: Session, family_id: str, member_id: str, user_id: str) -> dict:
    require_family_admin(db, family_id, user_id, "Only admin can delete members")

    member = (
        db.query(FamilyMember)
        .filter(FamilyMember.id == member_id, FamilyMember.family_id == family_id)
        .first()
    )
    if not member:
        raise NotFoundError("Member not found")

    with atomic(db):
        soft_delete(db, family_id, member, user_id)

    logger.info("Member %s soft-deleted by %s", member_id, user_id)
    return {"message": "Member deleted successfully"}


def get_deleted_members(db: Session, family_id: str, user_id: str) -> list[dict]:
    require_family_admin(db, family_id, user_id, "Only admin can view deleted members")

    members = (
        db.query(FamilyMember)
        .filter(
            FamilyMember.family_id == family_id,
            FamilyMember.is_deleted == True,  # noqa: E712
        )
        .order_by(FamilyMember.deleted_at.desc())
        .all()
    )
    return [serialize_member(m) for m in members]


def _existing_id(db: Session, member_id: Optional[str]) -> Optional[str]:
    # Soft-deleted rows still count; permanently deleted ones do not
    if member_id and db.get(FamilyMember, member_id) is not None:
        return member_id
    return None


def restore_member(db: Session, family_id: str, member_id: str, user_id: str) -> dict:
    """
    Undoes a soft delete. Parents come back unconditionally; the spouse and
    each child only if they have not formed a new link in the meantime.
    """
    require_family_admin(db, family_id, user_id, "Only admin can restore members")
    member = _deleted_member(db, family_id, member_id)
    snapshot = member.deleted_data or {}

    with atomic(db):
        member.is_deleted = False
        member.deleted_at = None
        member.deleted_by = None
        member.deleted_data = None
        member.father_id = _existing_id(db, snapshot.get("fatherId"))
        member.mother_id = _existing_id(db, snapshot.get("motherId"))

        spouse = find_active_member(db, family_id, snapshot.get("spouseId"))
        if spouse and not spouse.spouse_id:
            _link_spouses(member, spouse)

        for child_id in snapshot.get("childrenAsFather") or []:
            child = find_active_member(db, family_id, child_id)
            if child and not child.father_id:
                child.father_id = member.id

        for child_id in snapshot.get("childrenAsMother") or []:
            child = find_active_member(db, family_id, child_id)
            if child and not child.mother_id:
                child.mother_id = member.id

    logger.info("Member %s restored by %s", member_id, user_id)
    return {"message": "Member restored successfully"}


def permanently_delete_member(db: Session, family_id: str, member_id: str, user_id: str) -> dict:
    require_family_admin(db, family_id, user_id, "Only admin can permanently delete members")
    member = _deleted_member(db, family_id, member_id)

    with atomic(db):
        for achievement in list(member.achievements):
            db.delete(achievement)
        for address in list(member.addresses):
            db.delete(address)

        # Nothing may keep pointing at the row once it is gone
        for column in (FamilyMember.father_id, FamilyMember.mother_id, FamilyMember.spouse_id):
            db.query(FamilyMember).filter(column == member.id).update(
                {column: None}, synchronize_session="fetch"
            )
        db.query(MemberRequest).filter(MemberRequest.target_member_id == member.id).update(
            {MemberRequest.target_member_id: None}, synchronize_session="fetch"
        )

        db.delete(member)

    logger.info("Member %s permanently deleted by %s", member_id, user_id)
    return {"message": "Member permanently deleted"}


# ============================================================
# READ
# ============================================================

def get_family_members(
    db: Session,
    family_id: str,
    user_id: str,
    status: Optional[str] = None,
    generation: Optional[int] = None,
    gender: Optional[str] = None,
    search: Optional[str] = None,
) -> list[dict]:
    require_family_access(db, family_id, user_id)

    query = db.query(FamilyMember).filter(
        FamilyMember.family_id == family_id,
        FamilyMember.is_deleted == False,  # noqa: E712
    )

    if status == "alive":
        query = query.filter(FamilyMember.death_date.is_(None))
    elif status == "deceased":
        query = query.filter(FamilyMember.death_date.isnot(None))

    if generation is not None:
        query = query.filter(FamilyMember.generation == generation)

    if gender:
        query = query.filter(FamilyMember.gender == gender)

    if search:
        query = query.filter(FamilyMember.name.ilike(f"%{search}%"))

    members = query.order_by(
        FamilyMember.generation.asc(),
        FamilyMember.birth_date.is_(None),
        FamilyMember.birth_date.asc(),
    ).all()

    return [
        {
            "id": m.id,
            "name": m.name,
            "gender": m.gender,
            "generation": m.generation,
            "birth_date": m.birth_date,
            "death_date": m.death_date,
            "avatar": m.avatar,
            "marital_status": m.marital_status,
            "father_id": m.father_id,
            "mother_id": m.mother_id,
            "spouse_id": m.spouse_id,
            "linked_user_id": m.linked_user_id,
            "is_deleted": m.is_deleted,
        }
        for m in members
    ]


def _by_birth_date(member: FamilyMember):
    # Undated members sort last
    return (member.birth_date is None, member.birth_date or date.min)


def get_member_by_id(db: Session, family_id: str, member_id: str, user_id: str) -> dict:
    require_family_access(db, family_id, user_id)
    member = get_active_member(db, family_id, member_id)

    children = (
        db.query(FamilyMember)
        .filter(
            FamilyMember.family_id == family_id,
            FamilyMember.is_deleted == False,  # noqa: E712
            or_(FamilyMember.father_id == member.id, FamilyMember.mother_id == member.id),
        )
        .all()
    )
    children_by_id = {child.id: child for child in children}

    siblings = []
    parent_filters = []
    if member.father_id:
        parent_filters.append(FamilyMember.father_id == member.father_id)
    if member.mother_id:
        parent_filters.append(FamilyMember.mother_id == member.mother_id)

    if parent_filters:
        siblings = (
            db.query(FamilyMember)
            .filter(
                FamilyMember.family_id == family_id,
                FamilyMember.is_deleted == False,  # noqa: E712
                FamilyMember.id != member.id,
                or_(*parent_filters),
            )
            .all()
        )
        siblings.sort(key=_by_birth_date)

    my_order = member.child_order
    if not my_order and (member.father_id or member.mother_id):
        ranked = sorted(siblings + [member], key=_by_birth_date)
        my_order = [m.id for m in ranked].index(member.id) + 1

    linked_user = member.linked_user
    result = serialize_member(member)
    result.update({
        "father": _person_summary(find_active_member(db, family_id, member.father_id)),
        "mother": _person_summary(find_active_member(db, family_id, member.mother_id)),
        "spouse": _person_summary(find_active_member(db, family_id, member.spouse_id)),
        "linked_user": (
            {
                "id": linked_user.id,
                "name": linked_user.name,
                "email": linked_user.email,
                "avatar": linked_user.avatar,
            }
            if linked_user
            else None
        ),
        "children": [_relative_summary(c) for c in children_by_id.values()],
        "siblings": [_relative_summary(s) for s in siblings],
        "my_order": my_order,
        "total_siblings": len(siblings) + 1,
    })
    return result


def get_yearly_report(
    db: Session,
    family_id: str,
    user_id: str,
    year: Optional[int] = None,
    start_year: Optional[int] = None,
    end_year: Optional[int] = None,
) -> dict:
    """
    Births, deaths and marriages inside a year or a [start_year, end_year]
    window, plus overall distributions. Without a window every dated event
    counts.
    """
    require_family_access(db, family_id, user_id)

    if year:
        window = (date(year, 1, 1), date(year, 12, 31))
        period = {"year": year}
    elif start_year and end_year:
        window = (date(start_year, 1, 1), date(end_year, 12, 31))
        period = {"start_year": start_year, "end_year": end_year}
    else:
        window = None
        period = {"all": True}

    active = db.query(FamilyMember).filter(
        FamilyMember.family_id == family_id,
        FamilyMember.is_deleted == False,  # noqa: E712
    )

    def in_period(column):
        if window:
            return active.filter(column.between(*window)).order_by(column.asc()).all()
        return active.filter(column.isnot(None)).order_by(column.asc()).all()

    births = in_period(FamilyMember.birth_date)
    deaths = in_period(FamilyMember.death_date)
    marriages = in_period(FamilyMember.marriage_date)

    total_members = active.count()
    living_members = active.filter(FamilyMember.death_date.is_(None)).count()

    by_generation = (
        db.query(FamilyMember.generation, func.count(FamilyMember.id))
        .filter(FamilyMember.family_id == family_id, FamilyMember.is_deleted == False)  # noqa: E712
        .group_by(FamilyMember.generation)
        .order_by(FamilyMember.generation.asc())
        .all()
    )
    by_gender = (
        db.query(FamilyMember.gender, func.count(FamilyMember.id))
        .filter(FamilyMember.family_id == family_id, FamilyMember.is_deleted == False)  # noqa: E712
        .group_by(FamilyMember.gender)
        .all()
    )

    def event_row(m: FamilyMember, field: str) -> dict:
        return {
            "id": m.id,
            "name": m.name,
            field: getattr(m, field),
            "gender": m.gender,
            "avatar": m.avatar,
        }

    marriage_rows = []
    for m in marriages:
        row = event_row(m, "marriage_date")
        spouse = find_active_member(db, family_id, m.spouse_id)
        row["spouse_info"] = (
            {"id": spouse.id, "name": spouse.name, "avatar": spouse.avatar} if spouse else None
        )
        marriage_rows.append(row)

    return {
        "period": period,
        "summary": {
            "total_members": total_members,
            "living_members": living_members,
            "deceased_members": total_members - living_members,
            "births": len(births),
            "deaths": len(deaths),
            "marriages": len(marriages),
        },
        "details": {
            "births": [event_row(m, "birth_date") for m in births],
            "deaths": [event_row(m, "death_date") for m in deaths],
            "marriages": marriage_rows,
        },
        "distributions": {
            "by_generation": [{"generation": g, "count": c} for g, c in by_generation],
            "by_gender": [{"gender": g, "count": c} for g, c in by_gender],
        },
    }


# ============================================================
# ACHIEVEMENTS
# ============================================================

def _family_achievement(db: Session, family_id: str, member_id: str, achievement_id: str) -> MemberAchievement:
    achievement = (
        db.query(MemberAchievement)
        .join(FamilyMember, FamilyMember.id == MemberAchievement.member_id)
        .filter(
            MemberAchievement.id == achievement_id,
            MemberAchievement.member_id == member_id,
            FamilyMember.family_id == family_id,
        )
        .first()
    )
    if not achievement:
        raise NotFoundError("Achievement not found")
    return achievement


def get_member_achievements(db: Session, family_id: str, member_id: str, user_id: str) -> list[dict]:
    require_family_access(db, family_id, user_id)

    achievements = (
        db.query(MemberAchievement)
        .join(FamilyMember, FamilyMember.id == MemberAchievement.member_id)
        .filter(
            MemberAchievement.member_id == member_id,
            FamilyMember.family_id == family_id,
        )
        .order_by(MemberAchievement.achieved_at.desc())
        .all()
    )
    return [serialize_achievement(a) for a in achievements]


def create_member_achievement(
    db: Session,
    family_id: str,
    member_id: str,
    user_id: str,
    data: dict,
    notifier: Optional[Notifier] = None,
) -> dict:
    require_family_admin(db, family_id, user_id, "Only admin can create achievements")
    member = get_active_member(db, family_id, member_id)

    if not (data.get("title") or "").strip():
        raise ValidationError("Title is required")

    with atomic(db):
        achievement = MemberAchievement(
            member_id=member.id,
            title=data["title"].strip(),
            description=data.get("description") or None,
            category=data["category"],
            custom_category=data.get("custom_category") or None,
            achieved_at=data["achieved_at"],
            images=data.get("images") or [],
        )
        db.add(achievement)

    db.refresh(achievement)

    notify_quietly(
        notifier,
        NotificationType.NEW_ACHIEVEMENT,
        lambda n: n.notify_family_members(
            family_id,
            user_id,
            NotificationType.NEW_ACHIEVEMENT,
            "New achievement",
            f"{member.name} achieved: {achievement.title}",
            {
                "achievementId": achievement.id,
                "memberId": member.id,
                "memberName": member.name,
                "achievementTitle": achievement.title,
                "category": achievement.category,
            },
        ),
    )

    return serialize_achievement(achievement)


def update_member_achievement(
    db: Session,
    family_id: str,
    member_id: str,
    achievement_id: str,
    user_id: str,
    data: dict,
) -> dict:
    require_family_admin(db, family_id, user_id, "Only admin can update achievements")
    achievement = _family_achievement(db, family_id, member_id, achievement_id)

    with atomic(db):
        for key in ("title", "description", "category", "custom_category", "achieved_at", "images"):
            if key not in data:
                continue
            value = data[key]
            if key in ("title", "category", "achieved_at") and value is None:
                continue
            if key == "images":
                value = value or []
            setattr(achievement, key, value)

    db.refresh(achievement)
    return serialize_achievement(achievement)


def delete_member_achievement(
    db: Session,
    family_id: str,
    member_id: str,
    achievement_id: str,
    user_id: str,
) -> dict:
    require_family_admin(db, family_id, user_id, "Only admin can delete achievements")
    achievement = _family_achievement(db, family_id, member_id, achievement_id)

    with atomic(db):
        db.delete(achievement)

    return {"message": "Achievement deleted successfully"}

