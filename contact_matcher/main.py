"""
Payer Contact Matcher - FastAPI Application Entry Point

Run with:

    uvicorn contact_matcher.main:app --host 0.0.0.0 --port 8000
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from contact_matcher.routes import contacts, first_names, resolve
from config.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    # Startup: open the stores so schema problems surface immediately
    try:
        from contact_matcher.services.contact_store import get_contact_store
        from contact_matcher.services.transaction_store import get_transaction_store
        get_contact_store()
        get_transaction_store()
        logger.info("Contact and transaction stores ready")
    except Exception as e:
        logger.error(f"Failed to open stores: {e}")

    yield  # Application runs here

    # Shutdown: close the remote directory client, if any
    from contact_matcher.services import contact_directory
    directory = contact_directory._directory
    if isinstance(directory, contact_directory.HttpContactDirectory):
        directory.close()
        logger.info("Remote contact directory client closed")


app = FastAPI(
    title="Payer Contact Matcher",
    description="Resolves bank transaction payers to contacts via get-or-create",
    version="0.1.0",
    lifespan=lifespan
)

# Include routers
app.include_router(contacts.router)
app.include_router(resolve.router)
app.include_router(first_names.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    errors = exc.errors()

    # Sanitize errors for JSON serialization (convert bytes to string)
    sanitized_errors = []
    for error in errors:
        sanitized = dict(error)
        if "input" in sanitized and isinstance(sanitized["input"], bytes):
            sanitized["input"] = sanitized["input"].decode("utf-8", errors="replace")
        sanitized.pop("ctx", None)
        sanitized_errors.append(sanitized)

    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": sanitized_errors}
    )


@app.get("/health")
async def health_check():
    """Health check endpoint that verifies critical dependencies."""
    from contact_matcher.services.contact_store import get_contact_store

    checks = {}
    try:
        get_contact_store().count()
        checks["contacts_db"] = True
    except Exception as e:
        logger.warning(f"Health check: contacts DB unavailable: {e}")
        checks["contacts_db"] = False

    all_healthy = all(checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "service": "contact-matcher",
        "directory": "remote" if settings.directory_is_remote else "local",
        "checks": checks,
    }
