"""
Classwork Tracker – FastAPI entry point
Role-based task tracker: submissions, grading and file attachments
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from classwork.core.config import settings
from classwork.core.logging_middleware import RequestLoggingMiddleware
from classwork.database.init_db import init_db
from classwork.database.session import engine
from classwork.controllers import auth_controller, submission_controller, task_controller
from classwork.schemas.common import ErrorResponse
from classwork.services.notification_service import SmtpNotifier
from classwork.storage.blob_store import LocalBlobStore
from classwork.utils.exceptions import (
    AppException, app_exception_handler, generic_exception_handler,
    validation_exception_handler
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN MANAGER
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    logger.info("%s %s starting up (%s)", settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT)

    app.state.blob_store = LocalBlobStore(settings.BLOB_DIR, io_timeout=settings.BLOB_IO_TIMEOUT_SECONDS)
    app.state.notifier = SmtpNotifier(settings)

    # Create DB tables (use migrations in production)
    init_db(engine)

    yield

    # --- Shutdown ---
    logger.info("%s shutting down", settings.APP_NAME)


# =============================================================================
# APP INITIALIZATION
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="Assignment submission, grading and file attachments",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# =============================================================================
# MIDDLEWARE & ERROR HANDLERS
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# =============================================================================
# ROUTERS
# =============================================================================
ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse} for status_code in (400, 401, 403, 404, 503)
}

app.include_router(auth_controller.router, prefix="/api/v1/auth", tags=["Authentication"],
                   responses=ERROR_RESPONSES)
app.include_router(task_controller.router, prefix="/api/v1/tasks", tags=["Tasks"],
                   responses=ERROR_RESPONSES)
app.include_router(submission_controller.router, prefix="/api/v1/submissions", tags=["Submissions"],
                   responses=ERROR_RESPONSES)


# =============================================================================
# HEALTH CHECK
# =============================================================================
@app.get("/", tags=["Health"])
def read_root():
    return {
        "message": "Classwork Tracker backend is running",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "status": "active"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("classwork.main:app", host="0.0.0.0", port=8000, reload=True)
