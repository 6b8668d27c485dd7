from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.core.errors import ForbiddenError, NotFoundError, RateLimitedError, ValidationError
from app.core.family_access import require_family_member
from app.database import atomic
from app.models.confession import Confession
from app.models.family import Family

ANONYMOUS_NAME = "Anonymous"


def serialize_confession(confession: Confession) -> dict:
    created_at = confession.created_at
    data = {
        "id": confession.id,
        "content": confession.content,
        "is_anonymous": confession.is_anonymous,
        "date": created_at.date().isoformat(),
        "timestamp": int(created_at.replace(tzinfo=timezone.utc).timestamp() * 1000),
    }

    # Anonymous items never expose who wrote them
    if confession.is_anonymous:
        data.update({"name": ANONYMOUS_NAME, "avatar": None})
    else:
        author = confession.author
        data.update({
            "name": author.name if author else ANONYMOUS_NAME,
            "avatar": author.avatar if author else None,
            "author_id": confession.author_id,
        })
    return data


def _clean_content(content) -> str:
    if not isinstance(content, str):
        raise ValidationError("Invalid confession content")

    trimmed = content.strip()
    if not trimmed or len(trimmed) > settings.CONFESSION_MAX_LENGTH:
        raise ValidationError(
            f"Confession must be between 1 and {settings.CONFESSION_MAX_LENGTH} characters"
        )
    return trimmed


def _ensure_member(db: Session, family_id: str, user_id: str) -> Family:
    return require_family_member(db, family_id, user_id)


def _check_rate_limit(db: Session, family_id: str, author_id: str, now: datetime):
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end_of_day = start_of_day + timedelta(days=1)

    count = (
        db.query(Confession)
        .filter(
            Confession.family_id == family_id,
            Confession.author_id == author_id,
            Confession.created_at >= start_of_day,
            Confession.created_at < end_of_day,
        )
        .count()
    )
    if count >= settings.CONFESSION_DAILY_LIMIT:
        raise RateLimitedError(
            f"You can post at most {settings.CONFESSION_DAILY_LIMIT} confessions per day"
        )


def _get_confession(db: Session, family_id: str, confession_id: str) -> Confession:
    confession = (
        db.query(Confession)
        .filter(Confession.id == confession_id, Confession.family_id == family_id)
        .first()
    )
    if not confession:
        raise NotFoundError("Confession not found")
    return confession


def create_confession(
    db: Session,
    family_id: str,
    author_id: str,
    content: str,
    is_anonymous: bool = False,
    now: Optional[datetime] = None,
) -> dict:
    now = now or datetime.utcnow()

    _ensure_member(db, family_id, author_id)
    trimmed = _clean_content(content)
    _check_rate_limit(db, family_id, author_id, now)

    with atomic(db):
        confession = Confession(
            family_id=family_id,
            author_id=author_id,
            content=trimmed,
            is_anonymous=bool(is_anonymous),
            created_at=now,
        )
        db.add(confession)

    db.refresh(confession)
    return serialize_confession(confession)


def list_confessions(
    db: Session,
    family_id: str,
    user_id: str,
    display: str = "all",
    sort: str = "desc",
    page: int = 1,
    limit: int = settings.CONFESSION_PAGE_LIMIT,
) -> dict:
    _ensure_member(db, family_id, user_id)

    page = page if page and page > 0 else 1
    max_limit = settings.CONFESSION_PAGE_LIMIT
    limit = min(limit, max_limit) if limit and limit > 0 else max_limit

    query = db.query(Confession).filter(Confession.family_id == family_id)
    if display == "anonymous":
        query = query.filter(Confession.is_anonymous == True)  # noqa: E712
    elif display == "public":
        query = query.filter(Confession.is_anonymous == False)  # noqa: E712

    total_items = query.count()
    order = Confession.created_at.asc() if sort == "asc" else Confession.created_at.desc()
    items = query.order_by(order).offset((page - 1) * limit).limit(limit).all()

    return {
        "data": [serialize_confession(c) for c in items],
        "page": page,
        "limit": limit,
        "total_items": total_items,
        "total_pages": max(1, -(-total_items // limit)),
    }


def get_confession(db: Session, family_id: str, confession_id: str, user_id: str) -> dict:
    _ensure_member(db, family_id, user_id)
    return serialize_confession(_get_confession(db, family_id, confession_id))


def update_confession(db: Session, family_id: str, confession_id: str, user_id: str, data: dict) -> dict:
    _ensure_member(db, family_id, user_id)
    confession = _get_confession(db, family_id, confession_id)

    if confession.author_id != user_id:
        raise ForbiddenError("Only the author can edit this confession")

    changes = {}
    if data.get("content") is not None:
        changes["content"] = _clean_content(data["content"])
    if data.get("is_anonymous") is not None:
        changes["is_anonymous"] = bool(data["is_anonymous"])

    if not changes:
        raise ValidationError("Nothing to update")

    with atomic(db):
        for key, value in changes.items():
            setattr(confession, key, value)

    db.refresh(confession)
    return serialize_confession(confession)


def delete_confession(db: Session, family_id: str, confession_id: str, user_id: str) -> dict:
    family = _ensure_member(db, family_id, user_id)
    confession = _get_confession(db, family_id, confession_id)

    if family.admin_id != user_id and confession.author_id != user_id:
        raise ForbiddenError("Only the admin or the author can delete this confession")

    with atomic(db):
        db.delete(confession)

    return {"message": "Confession deleted successfully"}
