from sqlalchemy import Column, String, Date, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class MemberAchievement(Base):
    __tablename__ = "member_achievements"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    member_id = Column(String, ForeignKey("family_members.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False)
    custom_category = Column(String, nullable=True)
    achieved_at = Column(Date, nullable=False)
    images = Column(JSON, default=list, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    member = relationship("FamilyMember", back_populates="achievements")
