"""Exception handlers translating typed failures into JSON responses.

Every error body has the shape ``{"detail": <message>, "code": <CODE>}``.
"""

from fastapi import FastAPI, Request, status
from starlette.responses import JSONResponse

from libs.common.errors import (
    FailureCause,
    RequestError,
    RetriesExhaustedError,
    ServiceError,
)
from libs.common.logging import get_logger

logger = get_logger(__name__)


def _status_for_request_error(exc: RequestError) -> int:
    if isinstance(exc, RetriesExhaustedError):
        if exc.cause == FailureCause.TIMEOUT:
            return status.HTTP_504_GATEWAY_TIMEOUT
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_503_SERVICE_UNAVAILABLE


async def request_error_handler(request: Request, exc: RequestError) -> JSONResponse:
    status_code = _status_for_request_error(exc)
    logger.warning(
        "Request layer failure: %s",
        exc.message,
        extra={"extra_fields": {"code": exc.code, "status_code": status_code}},
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestError, request_error_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
