"""
Exception handlers for the verification API.

Register these on a FastAPI app instance via `register_exception_handlers(app)`.
"""
import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.env import is_local_env
from .core.exceptions import AuthError, RateLimited

logger = logging.getLogger("smsauth")


def rate_limit_headers(exc: RateLimited) -> dict:
    return {
        "Retry-After": str(exc.retry_after_seconds),
        "X-RateLimit-Limit": str(exc.limit),
        "X-RateLimit-Remaining": "0",
        "X-RateLimit-Reset": str(int(exc.reset_at.timestamp())),
    }


async def auth_error_handler(request: Request, exc: AuthError):
    """Map domain errors to status codes. Only public_message reaches the client."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")

    content = {"error": exc.public_message, "code": exc.code}
    headers = None
    if isinstance(exc, RateLimited):
        content["retry_after_seconds"] = exc.retry_after_seconds
        headers = rate_limit_headers(exc)

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail if isinstance(exc.detail, str) else str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid input", "details": details})


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)

    # Outside local/dev the details stay in the logs
    if is_local_env():
        error_response = {"error": f"Internal server error: {exc}"}
    else:
        error_response = {"error": "Internal server error"}

    return JSONResponse(status_code=500, content=error_response)


def register_exception_handlers(app):
    """Register all exception handlers on the given FastAPI app."""
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
