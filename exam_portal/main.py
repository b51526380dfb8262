"""FastAPI entrypoint for the Leveled Exam Portal."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import Session
from starlette.middleware.sessions import SessionMiddleware

from exam_portal.config import get_settings
from exam_portal.database import create_db_and_tables, engine
from exam_portal.errors import ExamPortalError, TimeLimitExceeded
from exam_portal.routers import exam_session as exam_session_router_module
from exam_portal.routers import scoring_config as scoring_config_router_module
from exam_portal.routers import submissions as submissions_router_module
from exam_portal.services.catalog import ensure_scoring_configs

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)


@app.exception_handler(ExamPortalError)
async def exam_portal_error_handler(request: Request, exc: ExamPortalError):
    """Render domain errors with a machine-readable reason."""
    content = {"detail": exc.message, "reason": exc.reason}
    if isinstance(exc, TimeLimitExceeded):
        content["submissionId"] = exc.submission_id
        content["elapsedSeconds"] = exc.elapsed_seconds
        content["allowedSeconds"] = exc.allowed_seconds
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Keep plain HTTP errors in the same shape as domain errors."""
    reason = {401: "unauthenticated", 403: "forbidden", 404: "not_found"}.get(
        exc.status_code, "http_error"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "reason": reason},
        headers=getattr(exc, "headers", None),
    )


# Session middleware carries the identity resolved by the auth layer
app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET.get_secret_value())

# Routers
app.include_router(exam_session_router_module.router, prefix="/exam", tags=["exam"])
app.include_router(submissions_router_module.router, prefix="/submissions", tags=["submissions"])
app.include_router(scoring_config_router_module.router, prefix="/config", tags=["config"])


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def on_startup():
    """Initialize database schema and the scoring configuration singletons."""
    create_db_and_tables()
    with Session(engine) as session:
        ensure_scoring_configs(session)
    logger.info("Exam portal started against %s", settings.DATABASE_URL)
