from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import uuid


class Address(Base):
    __tablename__ = "addresses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    member_id = Column(String, ForeignKey("family_members.id"), nullable=False, index=True)

    label = Column(String, nullable=True)  # home / work / hometown
    line = Column(String, nullable=False)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    member = relationship("FamilyMember", back_populates="addresses")
