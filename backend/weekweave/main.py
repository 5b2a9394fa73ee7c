import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from weekweave.api.routes import activity, attendance, changes, health, notifications, structure, timetable
from weekweave.core.config import get_settings
from weekweave.core.exceptions import AppError
from weekweave.core.middleware import RequestLoggingMiddleware, RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from weekweave.db.base import Base
from weekweave.db.session import engine
from weekweave.services.generator import UnconfiguredGenerator
import weekweave.models  # noqa: F401

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    Base.metadata.create_all(bind=engine)
    if getattr(app.state, "schedule_generator", None) is None:
        app.state.schedule_generator = UnconfiguredGenerator()
    logger.info("%s started (timezone %s)", settings.project_name, settings.school_timezone)
    yield


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "code": exc.code, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)
app.add_middleware(SecurityHeadersMiddleware, settings=settings)
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(structure.router, prefix=settings.api_prefix, tags=["structure"])
app.include_router(timetable.router, prefix=f"{settings.api_prefix}/timetable", tags=["timetable"])
app.include_router(changes.router, prefix=f"{settings.api_prefix}/timetable-changes", tags=["timetable-changes"])
app.include_router(attendance.router, prefix=settings.api_prefix, tags=["attendance"])
app.include_router(notifications.router, prefix=settings.api_prefix, tags=["notifications"])
app.include_router(activity.router, prefix=settings.api_prefix, tags=["activity"])
