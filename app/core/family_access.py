from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError
from app.models.family import Family, family_users


def is_family_member(db: Session, family: Family, user_id: str) -> bool:
    """
    Admin or plain member of the family.
    """
    if family.admin_id == user_id:
        return True

    row = (
        db.query(family_users)
        .filter(
            family_users.c.family_id == family.id,
            family_users.c.user_id == user_id,
        )
        .first()
    )
    return row is not None


def require_family_access(db: Session, family_id: str, user_id: str) -> Family:
    family = db.query(Family).filter(Family.id == family_id).first()
    if not family or not is_family_member(db, family, user_id):
        raise NotFoundError("Family not found or access denied")
    return family


def require_family_member(
    db: Session,
    family_id: str,
    user_id: str,
    message: str = "You are not a member of this family",
) -> Family:
    """Like require_family_access, but a non-member gets Forbidden instead of NotFound."""
    family = db.query(Family).filter(Family.id == family_id).first()
    if not family or not is_family_member(db, family, user_id):
        raise ForbiddenError(message)
    return family


def require_family_admin(db: Session, family_id: str, user_id: str, message: str) -> Family:
    family = db.query(Family).filter(Family.id == family_id).first()
    if not family:
        raise NotFoundError("Family not found")

    if family.admin_id != user_id:
        raise ForbiddenError(message)

    return family


def family_user_ids(family: Family) -> list[str]:
    """
    Every user of the family, admin included, without duplicates.
    """
    user_ids = [u.id for u in family.users]
    if family.admin_id not in user_ids:
        user_ids.append(family.admin_id)
    return user_ids


def user_family_ids(db: Session, user_id: str) -> list[str]:
    """Ids of every family the user administers or belongs to."""
    member_of = select(family_users.c.family_id).where(family_users.c.user_id == user_id)
    rows = (
        db.query(Family.id)
        .filter(or_(Family.admin_id == user_id, Family.id.in_(member_of)))
        .all()
    )
    return [row[0] for row in rows]
