from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from datetime import datetime
from app.database import Base
import uuid


class Event(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    family_id = Column(String, ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)

    title = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    event_date = Column(DateTime, nullable=False)  # naive UTC
    reminder = Column(String, nullable=True)  # minutes before the event
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
