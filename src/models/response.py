"""Error response model shared by every endpoint."""

from typing import Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body: what happened plus what to do.

    Attributes:
        error: Short machine-readable tag (e.g. "rate_limited")
        detail: Human-readable message, safe to show to users
        correlation_id: Request tracking ID for support
        retry_after_minutes: Present only for rate-limit errors
    """

    error: str
    detail: str
    correlation_id: str
    retry_after_minutes: Optional[int] = None
