import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    # Null for accounts created through an OAuth provider
    hashed_password = Column(String, nullable=True)

    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    avatar = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    admin_of_families = relationship(
        "Family",
        back_populates="admin",
        foreign_keys="Family.admin_id",
    )

    member_of_families = relationship(
        "Family",
        secondary="family_users",
        back_populates="users",
    )
