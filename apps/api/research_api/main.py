"""Research Portal API - FastAPI Application Entry Point."""

import logging
import os
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from research_api import __version__
from research_api.config.env import get_cors_origins
from research_api.context import request_id_var, stripe_event_id_var, user_id_var
from research_api.middleware.session_refresh import SessionRefreshMiddleware
from research_api.problem_details import PROBLEM_TYPE_BASE, trace_instance
from research_api.routers import admin, auth, billing, health, privacy, protected, waitlist, webhooks
from research_api.schemas import ProblemDetail
from research_api.utils import configure_json_logging

app = FastAPI(
    title="Research Portal API",
    description="Subscription-gated equity research: Supabase auth, Stripe billing, entitlements.",
    version=__version__,
    docs_url="/api-docs",
    redoc_url="/redoc",
)

# Set RP_JSON_LOGS=false to disable (defaults to true for production)
if os.getenv("RP_JSON_LOGS", "true").lower() != "false":
    configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))
    logger = logging.getLogger(__name__)
    logger.info("Structured JSON logging enabled")

# Session cookies require credentials mode, which never allows "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

app.add_middleware(SessionRefreshMiddleware)


@app.middleware("http")
async def http_completion_logging_middleware(request: Request, call_next):
    """Log every HTTP request completion.

    Emits "http.request.completed" with method, path, status_code and
    duration_ms, also when the handler raised (status_code=500). Per-request
    contextvars are cleared at start and end so they never leak across requests.
    """
    user_id_var.set("")
    stripe_event_id_var.set("")

    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logging.getLogger(__name__).info(
            "http.request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        user_id_var.set("")
        stripe_event_id_var.set("")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Accept or generate X-Request-ID and echo it on the response.

    IMPORTANT: This MUST be registered LAST (outermost middleware) so the
    request_id contextvar is set before inner middlewares run.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# RFC 9457 Global Exception Handlers
# ============================================================================


def _get_title_for_status(status_code: int) -> str:
    """Get human-readable title for HTTP status code."""
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        502: "Bad Gateway",
        503: "Service Unavailable",
    }
    return titles.get(status_code, f"HTTP {status_code}")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Serve HTTP exceptions as application/problem+json.

    A dict detail that is already a Problem Details body (see
    problem_details.problem_exception) is returned unchanged; anything else is
    wrapped with a generated type/title.
    """
    if isinstance(exc.detail, dict) and "type" in exc.detail and "status" in exc.detail:
        content = exc.detail
    else:
        title = _get_title_for_status(exc.status_code)
        problem = ProblemDetail(
            type=f"{PROBLEM_TYPE_BASE}http-{exc.status_code}",
            title=title,
            status=exc.status_code,
            detail=exc.detail if exc.detail is not None else title,
            instance=trace_instance(),
        )
        content = problem.model_dump(exclude_none=True)

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        media_type="application/problem+json",
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Returns 422 Unprocessable Entity with application/problem+json."""
    errors = exc.errors()
    first_error = errors[0] if errors else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []))
    msg = first_error.get("msg", "Validation error")

    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}validation-error",
        title="Request Validation Failed",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Invalid field '{field}': {msg}",
        instance=trace_instance(),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Returns 500 with application/problem+json; the exception is logged, never echoed."""
    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        instance=trace_instance(),
    )
    logging.getLogger(__name__).error(
        "http.unhandled_exception",
        extra={"error_type": type(exc).__name__},
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(webhooks.router)
app.include_router(billing.router)
app.include_router(protected.router)
app.include_router(privacy.router)
app.include_router(waitlist.router)
app.include_router(admin.router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Research Portal API",
        "version": __version__,
        "status": "running",
        "docs": "/api-docs",
    }
