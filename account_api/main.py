"""FastAPI application initialization."""

import traceback
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import asyncpg
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from account_api import __version__
from account_api.api.middleware import CorrelationIdMiddleware
from account_api.api.users import router as users_router
from account_api.config import get_settings
from account_api.errors import ApiError
from account_api.models.response import ErrorResponse
from account_api.services.logging_service import configure_logging, get_logger

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    startup_logger = get_logger("main")

    try:
        from account_api.database import init_database, run_migrations

        await init_database(settings)
        await run_migrations()
        startup_logger.info("database_initialized")
    except Exception as e:
        startup_logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - user endpoints will fail until it is reachable",
        )

    startup_logger.info(
        "application_started",
        environment=settings.environment,
        log_level=settings.log_level,
    )

    yield

    from account_api.database import close_database

    await close_database()
    startup_logger.info("application_shutdown")


app = FastAPI(
    title="Account API",
    description="User registration, JWT sessions and profile media",
    version=__version__,
    lifespan=lifespan,
)


def error_response(
    status_code: int,
    message: str,
    kind: str,
    exc: Exception,
    errors: Optional[List[Any]] = None,
) -> JSONResponse:
    """Build the uniform error envelope.

    Stack traces and error lists are only exposed outside production.
    """
    body = ErrorResponse(message=message, status_code=status_code, error=kind)
    if not get_settings().is_production:
        body.errors = errors or []
        body.stack = "".join(traceback.format_exception(exc))

    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, mode="json", exclude_none=True),
    )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Workflow errors carry their own status and message."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "api_error",
        kind=exc.kind,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
    )
    return error_response(exc.status_code, exc.message, exc.kind, exc, exc.errors)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies become 400 ValidationError responses."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", ["unknown"])),
            "message": error.get("msg", "Validation failed"),
        }
        for error in exc.errors()
    ]
    logger.warning("validation_error", path=request.url.path, errors=errors)
    return error_response(400, "Request validation failed", "ValidationError", exc, errors)


@app.exception_handler(asyncpg.UniqueViolationError)
async def unique_violation_handler(
    request: Request, exc: asyncpg.UniqueViolationError
) -> JSONResponse:
    logger.warning(
        "unique_violation",
        path=request.url.path,
        constraint=getattr(exc, "constraint_name", None),
    )
    return error_response(409, "User with this username or email already exists", "Conflict", exc)


@app.exception_handler(asyncpg.IntegrityConstraintViolationError)
@app.exception_handler(asyncpg.DataError)
async def store_validation_handler(request: Request, exc: Exception) -> JSONResponse:
    """Store-side validation failures are the client's fault."""
    logger.warning("store_validation_error", path=request.url.path, error=str(exc))
    return error_response(400, str(exc) or "Invalid data", "ValidationError", exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    kind = "NotFound" if exc.status_code == 404 else "HTTPError"
    return error_response(exc.status_code, str(exc.detail), kind, exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unexpected is a 500 without implementation detail."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return error_response(500, "Something went wrong", "InternalError", exc)


@app.get("/health")
async def health() -> dict:
    """Report database connectivity."""
    from account_api.database import health_check

    healthy = await health_check()
    return {"status": "ok" if healthy else "degraded", "database": healthy}


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(users_router)
