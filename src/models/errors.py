"""JSON body returned by every CatchTrack error response."""

from typing import Any, Optional

from pydantic import BaseModel

# Machine-readable codes clients switch on, keyed by HTTP status
ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    429: "rate_limited",
    500: "internal_error",
    503: "service_unavailable",
}


class ErrorResponse(BaseModel):
    """{"detail": ..., "error_code": ...}; detail is a message, or FastAPI's list of field errors on 422."""

    detail: Any
    error_code: Optional[str] = None

    @classmethod
    def for_status(cls, status_code: int, detail: Any) -> "ErrorResponse":
        return cls(detail=detail, error_code=ERROR_CODES.get(status_code, "internal_error"))
