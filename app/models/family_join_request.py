from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class FamilyJoinRequest(Base):
    __tablename__ = "family_join_requests"
    __table_args__ = (UniqueConstraint("family_id", "user_id", name="uq_join_request_family_user"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    family_id = Column(String, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)

    message = Column(Text, nullable=True)
    status = Column(String, default="PENDING", nullable=False)  # PENDING / APPROVED / REJECTED

    approved_by = Column(String, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    # {"linkOption": "AUTO" | "MANUAL" | "NEW", "linkedMemberId": str | None}
    approval_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", foreign_keys=[user_id])
    approver = relationship("User", foreign_keys=[approved_by])
    family = relationship("Family", back_populates="join_requests")
