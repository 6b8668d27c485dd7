from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from sqlalchemy.orm import Session
import bcrypt

from app.config import settings
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.database import get_db
from app.models.user import User


bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================
# PASSWORD HELPERS
# ============================================================

def hash_password(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.checkpw(password_bytes, hashed.encode())


# ============================================================
# REGISTER USER
# ============================================================

def register_user(
    db: Session,
    email: str,
    password: str,
    name: str,
    phone: Optional[str] = None,
) -> User:
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise ConflictError("Email already registered")

    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    user = User(
        id=str(uuid4()),
        email=email,
        hashed_password=hash_password(password),
        name=name.strip(),
        phone=phone,
    )

    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# ============================================================
# LOGIN
# ============================================================

def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == email).first()
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ============================================================
# PROFILE
# ============================================================

def get_profile(db: Session, user_id: str) -> dict:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "avatar": user.avatar,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
        "admin_of_families": [
            {"id": f.id, "name": f.name, "description": f.description}
            for f in user.admin_of_families
        ],
        "member_of_families": [
            {"id": f.id, "name": f.name, "description": f.description}
            for f in user.member_of_families
        ],
    }


def update_profile(db: Session, user: User, data: dict) -> User:
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        user.name = name

    if "phone" in data:
        user.phone = data["phone"] or None

    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, old_password: str, new_password: str):
    if not user.hashed_password:
        raise ValidationError("Account has no password set")
    if not verify_password(old_password, user.hashed_password):
        raise ValidationError("Invalid old password")
    if old_password == new_password:
        raise ValidationError("New password must be different from old password")
    if len(new_password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    user.hashed_password = hash_password(new_password)
    db.commit()


# ============================================================
# TOKEN CREATION
# ============================================================

def create_access_token(data: dict) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def token_for_user(user: User) -> str:
    return create_access_token({"sub": user.id, "email": user.email, "name": user.name})


def decode_access_token(token: str) -> str:
    """Returns the user id stored in the token or raises 401."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id: str = payload.get("sub")
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


# ============================================================
# GET CURRENT USER
# ============================================================

def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Access token required")

    user_id = decode_access_token(credentials.credentials)

    user = db.query(User).filter(User.id == user_id).first()

    # Token may outlive the user row (wiped database)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user

