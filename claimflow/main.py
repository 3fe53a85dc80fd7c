"""
ClaimFlow - Expense Claims and Approvals API

Main FastAPI application entry point. Configures routes, error handlers,
and application lifecycle events.

Version: 1.0.0
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from claimflow import __version__
# Import logging configuration (initializes logging)
from claimflow.logging_config import get_logger
from claimflow.db import dispose_db, init_db
from claimflow.exceptions import ClaimFlowError, ValidationError

# Import route modules
from claimflow.routes import approvals, auth, categories, expenses, users

# Get logger for this module
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle manager.

    Creates missing tables on startup and releases the connection pool on
    shutdown.
    """
    # Startup
    logger.info("=" * 60)
    logger.info("ClaimFlow Application Starting")
    logger.info(f"Version: {app.version}")
    logger.info("=" * 60)
    init_db()

    yield  # Application runs here

    # Shutdown
    dispose_db()
    logger.info("ClaimFlow Application Shutting Down")
    logger.info("=" * 60)


# Create FastAPI application instance
app = FastAPI(
    title="ClaimFlow",
    description="Employee expense claims with category management and a multi-role approval workflow.",
    version=__version__,
    lifespan=lifespan,
)


def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "code": code})


@app.exception_handler(ClaimFlowError)
async def claimflow_error_handler(request: Request, exc: ClaimFlowError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return error_response(400, "; ".join(messages) or "Invalid request.", ValidationError.code)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error.", "SERVER_ERROR")


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok", "version": __version__}


# Include route modules
app.include_router(auth.router, tags=["Authentication"])
app.include_router(users.router, tags=["Users"])
app.include_router(categories.router, tags=["Categories"])
app.include_router(expenses.router, tags=["Expenses"])
app.include_router(approvals.router, tags=["Approvals"])

logger.info("All routes registered successfully")
