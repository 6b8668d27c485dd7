import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.config import settings
from app.core.errors import ServiceError
from app.database import Base, SessionLocal, engine
from app.services.scheduler_service import ReminderScheduler
from app.services.socket_service import ConnectionManager
from app.storage import ensure_media_folders

# Import models so SQLAlchemy registers tables
from app.models import (
    address,
    confession,
    event,
    family,
    family_join_request,
    family_member,
    member_achievement,
    member_request,
    notification,
    user,
)

# Routers
from app.routers import (
    auth_router,
    confession_router,
    event_router,
    family_router,
    member_request_router,
    member_router,
    notification_router,
    websocket_router,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# -----------------------
# LIFESPAN
# -----------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Database ready (%s)", settings.DATABASE_URL.split("://")[0])

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = ReminderScheduler(SessionLocal, app.state.connections)
        scheduler.start()

    yield

    if scheduler:
        await scheduler.stop()


# -----------------------
# CREATE APP
# -----------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Backend API for family trees, join workflows, events and reminders.",
    version="1.0.0",
    lifespan=lifespan,
)

# One socket registry per process; handed to notifiers and the websocket route
app.state.connections = ConnectionManager()

# -----------------------
# CORS (ONLY ONCE)
# -----------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------
# SERVICE ERRORS
# -----------------------
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.kind.value},
    )


# -----------------------
# STATIC MEDIA FILES
# -----------------------
ensure_media_folders()
app.mount("/media", StaticFiles(directory=settings.LOCAL_MEDIA_PATH), name="media")

# -----------------------
# ROUTES
# -----------------------
app.include_router(auth_router.router, prefix="/api")
app.include_router(family_router.router, prefix="/api")
app.include_router(member_router.router, prefix="/api")
app.include_router(member_request_router.router, prefix="/api")
app.include_router(event_router.router, prefix="/api")
app.include_router(confession_router.router, prefix="/api")
app.include_router(notification_router.router, prefix="/api")
app.include_router(websocket_router.router)


# -----------------------
# HEALTH CHECK
# -----------------------
@app.get("/")
def root():
    return {"message": "Family Tree API is running!", "env": settings.ENV}
