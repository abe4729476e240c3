"""
Shared error handling for the Members Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    error: str
    code: str
    details: Dict[str, Any] = Field(default_factory=dict)
    trace_id: Optional[str] = None


class AccessLayerException(Exception):
    """Base exception for Access Layer services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            error=self.message,
            code=self.code,
            details=self.details,
            trace_id=trace_id,
        )


class ValidationError(AccessLayerException):
    """A required field is missing or empty."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MalformedPayloadError(AccessLayerException):
    """Inbound event body could not be interpreted."""

    def __init__(self, message: str = "Malformed payload", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_PAYLOAD", message, details)


class NotFoundError(AccessLayerException):
    """Point lookup for an unknown product or grant."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ConflictError(AccessLayerException):
    """Write would break the one-active-grant-per-pair constraint."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class StoreError(AccessLayerException):
    """Transient failure talking to a backing store. Safe to retry."""

    status_code = 503

    def __init__(self, store: str, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("retryable", True)
        details.setdefault("store", store)
        super().__init__("STORE_ERROR", f"{store}: {message}", details)


class ParseAnomaly(Exception):
    """A single gallery record failed to decode. Logged and skipped, never surfaced."""

    def __init__(self, reason: str, fragment: Any = None, resume_at: Optional[int] = None):
        self.reason = reason
        self.fragment = fragment
        self.resume_at = resume_at
        super().__init__(reason)
