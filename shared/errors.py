"""
Shared error handling for the Performance Optimization service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import get_request_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    request_id: Optional[str] = None
    code: str
    error: str
    details: Dict[str, Any] = {}


class PerformanceServiceException(Exception):
    """Base exception for Performance Optimization service errors."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=get_request_id(),
            code=self.code,
            error=self.message,
            details=self.details
        )

    def headers(self) -> Dict[str, str]:
        """Extra HTTP headers for the error response."""
        return {}


class UpstreamFailure(PerformanceServiceException):
    """A simulated database or API call rejected."""

    def __init__(self, resource: str, message: str = "Upstream call failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "UPSTREAM_FAILURE"):
        self.resource = resource
        merged = {"resource": resource}
        merged.update(details or {})
        super().__init__(code, f"{resource}: {message}", merged)


class UpstreamTimeout(UpstreamFailure):
    """An upstream call exceeded its deadline."""

    def __init__(self, resource: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            resource,
            f"Upstream call exceeded {timeout_seconds:g}s deadline",
            {"timeout_seconds": timeout_seconds},
            code="UPSTREAM_TIMEOUT",
        )


class InvalidResourceKey(PerformanceServiceException):
    """An unknown resource name was requested."""

    status_code = 404

    def __init__(self, resource: str, known: Optional[list] = None):
        self.resource = resource
        details: Dict[str, Any] = {"resource": resource}
        if known:
            details["known_resources"] = list(known)
        super().__init__("INVALID_RESOURCE_KEY", f"Unknown resource '{resource}'", details)


class AggregateFailure(PerformanceServiceException):
    """A member of a batch failed, so the batch failed."""

    def __init__(self, resource: str, cause: Exception):
        self.resource = resource
        self.cause = cause
        details: Dict[str, Any] = {"failed_resource": resource}
        if isinstance(cause, PerformanceServiceException):
            details["cause_code"] = cause.code
        super().__init__("AGGREGATE_FAILURE", f"Batch failed on '{resource}': {cause}", details)


class RateLimitError(PerformanceServiceException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Too many requests from this IP, please try again later.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)

    def headers(self) -> Dict[str, str]:
        reset = self.details.get("reset_in_seconds")
        return {"Retry-After": str(reset)} if reset is not None else {}
