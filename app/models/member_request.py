from sqlalchemy import Column, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class MemberRequest(Base):
    """
    A proposed ADD / EDIT / DELETE of a family member, waiting for the admin.
    """
    __tablename__ = "member_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    family_id = Column(String, ForeignKey("families.id", ondelete="CASCADE"), nullable=False)
    requester_id = Column(String, ForeignKey("users.id"), nullable=False)

    type = Column(String, nullable=False)  # ADD_MEMBER / EDIT_MEMBER / DELETE_MEMBER
    member_data = Column(JSON, default=dict, nullable=False)
    target_member_id = Column(String, ForeignKey("family_members.id"), nullable=True)
    message = Column(Text, nullable=True)

    status = Column(String, default="PENDING", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    requester = relationship("User")
    family = relationship("Family", back_populates="member_requests")
