from sqlalchemy import (
    Column,
    String,
    Integer,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    JSON,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class FamilyMember(Base):
    """
    A node of a family's kinship graph.

    father/mother/spouse are self references inside the same family.
    spouse_id is kept symmetric: if A.spouse_id == B then B.spouse_id == A.
    A member can be claimed by a real user through linked_user_id.
    """
    __tablename__ = "family_members"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    family_id = Column(
        String,
        ForeignKey("families.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String, nullable=False)
    gender = Column(String, nullable=False)  # MALE / FEMALE / OTHER
    generation = Column(Integer, nullable=False)
    child_order = Column(Integer, nullable=True)

    email = Column(String, nullable=True)
    birth_date = Column(Date, nullable=True)
    death_date = Column(Date, nullable=True)
    marriage_date = Column(Date, nullable=True)

    occupation = Column(String, nullable=True)
    custom_occupation = Column(String, nullable=True)
    hometown = Column(String, nullable=True)
    current_address = Column(String, nullable=True)
    marital_status = Column(String, default="SINGLE", nullable=False)
    avatar = Column(String, nullable=True)
    bio = Column(Text, nullable=True)

    father_id = Column(String, ForeignKey("family_members.id"), nullable=True)
    mother_id = Column(String, ForeignKey("family_members.id"), nullable=True)
    spouse_id = Column(String, ForeignKey("family_members.id"), nullable=True)

    linked_user_id = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    is_verified = Column(Boolean, default=False, nullable=False)

    # Soft delete + snapshot of relationship edges for restore
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by = Column(String, nullable=True)
    deleted_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    family = relationship("Family", back_populates="members")
    linked_user = relationship("User", foreign_keys=[linked_user_id])

    father = relationship("FamilyMember", remote_side=[id], foreign_keys=[father_id])
    mother = relationship("FamilyMember", remote_side=[id], foreign_keys=[mother_id])
    spouse = relationship("FamilyMember", remote_side=[id], foreign_keys=[spouse_id])

    achievements = relationship("MemberAchievement", back_populates="member", cascade="all, delete-orphan")
    addresses = relationship("Address", back_populates="member", cascade="all, delete-orphan")
