"""
Error Handling Middleware
Maps mirror domain failures and framework errors to one structured payload:

    {"error": {"type", "code", "message", "status_code", "timestamp", "path", ...}}
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from shared.config.settings import get_settings
from shared.exceptions.mirror import (
    LearnFailure,
    MirrorFailure,
    NotFoundFailure,
    RenderFailure,
    StoreFailure,
    ValidationFailure,
)

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants for categorization"""
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found_error"
    LEARN = "learn_failure"
    RENDER = "render_failure"
    DATABASE = "database_error"
    SYSTEM = "system_error"


# Checked in order; subclasses first
FAILURE_MAP = (
    (LearnFailure, status.HTTP_422_UNPROCESSABLE_ENTITY, ErrorType.LEARN),
    (ValidationFailure, status.HTTP_400_BAD_REQUEST, ErrorType.VALIDATION),
    (NotFoundFailure, status.HTTP_404_NOT_FOUND, ErrorType.NOT_FOUND),
    (StoreFailure, status.HTTP_503_SERVICE_UNAVAILABLE, ErrorType.DATABASE),
    (RenderFailure, status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorType.RENDER),
)


class ErrorResponse:
    """Standardized error response structure"""

    @staticmethod
    def create_error_response(
        error_type: str,
        message: str,
        details: Optional[Any] = None,
        request_id: Optional[str] = None,
        status_code: int = 500,
        timestamp: Optional[str] = None,
        path: Optional[str] = None,
        code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a standardized error response"""

        if timestamp is None:
            timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        response = {
            "error": {
                "type": error_type,
                "message": message,
                "timestamp": timestamp,
                "status_code": status_code
            }
        }

        if code:
            response["error"]["code"] = code

        if details and not _is_production():
            response["error"]["details"] = details

        if request_id:
            response["error"]["request_id"] = request_id

        if path:
            response["error"]["path"] = path

        return response


def classify_failure(exc: MirrorFailure):
    """Return (status_code, error_type) for a mirror failure"""
    for failure_cls, status_code, error_type in FAILURE_MAP:
        if isinstance(exc, failure_cls):
            return status_code, error_type
    return status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorType.SYSTEM


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Attaches a request id and turns anything unhandled into a 500 payload.

    Domain failures never reach this layer; the registered exception
    handlers answer them first.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        start_time = time.time()
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as exc:
            processing_time = time.time() - start_time
            logger.error(
                f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
                extra={"request_id": request_id, "path": request.url.path, "processing_time": processing_time},
                exc_info=not _is_production()
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=ErrorResponse.create_error_response(
                    error_type=ErrorType.SYSTEM,
                    message="Internal server error",
                    details=str(exc),
                    request_id=request_id,
                    status_code=500,
                    path=str(request.url.path)
                ),
                headers={"X-Request-ID": request_id}
            )

        response.headers["X-Request-ID"] = request_id
        return response


def _is_production() -> bool:
    """Check if running in production environment"""
    return get_settings().is_production


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def setup_error_handlers(app: FastAPI):
    """Set up error handling for the FastAPI application"""

    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(MirrorFailure)
    async def mirror_failure_handler(request: Request, exc: MirrorFailure):
        request_id = _request_id(request)
        status_code, error_type = classify_failure(exc)

        log = logger.error if status_code >= 500 else logger.warning
        log(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")

        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse.create_error_response(
                error_type=error_type,
                message=exc.message,
                details=exc.details or None,
                request_id=request_id,
                status_code=status_code,
                path=str(request.url.path),
                code=exc.code
            ),
            headers={"X-Request-ID": request_id}
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        request_id = _request_id(request)

        if exc.status_code == 404:
            error_type = ErrorType.NOT_FOUND
        elif exc.status_code in (400, 413, 415):
            error_type = ErrorType.VALIDATION
        else:
            error_type = ErrorType.SYSTEM

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.create_error_response(
                error_type=error_type,
                message=str(exc.detail),
                request_id=request_id,
                status_code=exc.status_code,
                path=str(request.url.path)
            ),
            headers={"X-Request-ID": request_id}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = _request_id(request)

        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorResponse.create_error_response(
                error_type=ErrorType.VALIDATION,
                message="Validation failed",
                details={"errors": errors},
                request_id=request_id,
                status_code=422,
                path=str(request.url.path)
            ),
            headers={"X-Request-ID": request_id}
        )

    logger.info("Mirror error handlers configured")
