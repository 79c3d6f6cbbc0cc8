"""Main module of the FastAPI application.

This module sets up the FastAPI application and the middleware to log incoming requests
and unhandled exceptions.
"""

import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy.exc import InterfaceError, OperationalError

from schoolbilling.api.middleware import (
    add_request_id,
    database_unavailable_handler,
    exception_logging_middleware,
    log_requests,
    school_billing_exception_handler,
    validation_exception_handler,
)
from schoolbilling.api.router import TrailingSlashRouter
from schoolbilling.api.v1.api import api_router
from schoolbilling.core.config import settings
from schoolbilling.core.exceptions import SchoolBillingException
from schoolbilling.core.logging import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events.

    Runs alembic migrations when RUN_ALEMBIC_MIGRATIONS is set.
    """
    if settings.RUN_ALEMBIC_MIGRATIONS:
        logger.info("Running alembic migrations...")
        env = os.environ.copy()
        project_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        env["PYTHONPATH"] = project_dir
        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            cwd=project_dir,
            env=env,
        )
    if not settings.STRIPE_ENABLED:
        logger.warning("STRIPE_ENABLED is false: checkout and webhooks will answer 500")

    yield


# Create FastAPI app with our custom router and disable FastAPI's built-in redirects
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/openapi.json",
    lifespan=lifespan,
    router=TrailingSlashRouter(),
    redirect_slashes=False,
)

app.include_router(api_router)

# Register middleware directly
app.middleware("http")(add_request_id)
app.middleware("http")(log_requests)
app.middleware("http")(exception_logging_middleware)

# Register exception handlers
app.exception_handler(RequestValidationError)(validation_exception_handler)
app.exception_handler(ValidationError)(validation_exception_handler)
app.exception_handler(SchoolBillingException)(school_billing_exception_handler)
app.exception_handler(OperationalError)(database_unavailable_handler)
app.exception_handler(InterfaceError)(database_unavailable_handler)

CORS_ORIGINS = [settings.app_url, *settings.cors_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
