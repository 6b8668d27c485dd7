from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey, Table, Text
from sqlalchemy.orm import relationship

from app.database import Base


# Plain membership set: users who belong to a family (the admin is added too)
family_users = Table(
    "family_users",
    Base.metadata,
    Column("family_id", String, ForeignKey("families.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Family(Base):
    __tablename__ = "families"

    # 4-digit numeric string, drawn at random on creation
    id = Column(String(4), primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    admin_id = Column(String, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    admin = relationship(
        "User",
        back_populates="admin_of_families",
        foreign_keys=[admin_id],
    )

    users = relationship(
        "User",
        secondary=family_users,
        back_populates="member_of_families",
    )

    members = relationship(
        "FamilyMember",
        back_populates="family",
        cascade="all, delete-orphan",
    )
    events = relationship("Event", cascade="all, delete-orphan")
    confessions = relationship("Confession", cascade="all, delete-orphan")
    join_requests = relationship("FamilyJoinRequest", back_populates="family", cascade="all, delete-orphan")
    member_requests = relationship("MemberRequest", back_populates="family", cascade="all, delete-orphan")
