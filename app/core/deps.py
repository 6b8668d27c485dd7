from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.notification_service import Notifier


def get_notifier(request: Request, db: Session = Depends(get_db)) -> Notifier:
    # Same session as the endpoint, so notifications see its committed rows
    return Notifier(db, getattr(request.app.state, "connections", None))
