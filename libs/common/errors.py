"""Typed failures raised by the resilient request layer.

Every error carries a human-readable ``message`` that tells the caller
whether the problem is connectivity, a slow backend, or a server fault.
"""

import enum
from typing import Optional


class FailureCause(str, enum.Enum):
    TIMEOUT = "timeout"
    NETWORK = "network"


class RequestError(Exception):
    """Base class for request-layer failures."""

    code = "REQUEST_FAILED"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConnectivityError(RequestError):
    """No network connection; raised before any attempt is made."""

    code = "NO_CONNECTION"

    def __init__(
        self,
        message: str = "No internet connection. Please check your connection and try again.",
    ):
        super().__init__(message)


class ServiceUnhealthyError(RequestError):
    """The health gate reported the backend as unhealthy."""

    code = "SERVICE_UNHEALTHY"

    def __init__(self, message: str, latency_ms: Optional[float] = None):
        self.latency_ms = latency_ms
        super().__init__(message)


class RetriesExhaustedError(RequestError):
    """All attempts failed with retryable errors."""

    code = "RETRIES_EXHAUSTED"

    def __init__(
        self,
        cause: FailureCause,
        attempts: int,
        operation: str = "request",
        last_error: Optional[BaseException] = None,
    ):
        self.cause = cause
        self.attempts = attempts
        self.operation = operation
        self.last_error = last_error
        if cause == FailureCause.TIMEOUT:
            message = (
                f"The {operation} is taking longer than expected "
                f"(timed out after {attempts} attempts). Please try again."
            )
        else:
            message = (
                f"Could not reach the server for {operation} "
                f"after {attempts} attempts. Please try again."
            )
        super().__init__(message)


class RequestCancelledError(RequestError):
    """The caller's cancellation token fired between attempts."""

    code = "REQUEST_CANCELLED"

    def __init__(self, message: str = "The request was cancelled."):
        super().__init__(message)


class ServiceError(Exception):
    """Base class for business failures that map onto an HTTP status."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
