"""
PawLenx Backend — Shared Response Schemas
===========================================

What:  The error envelope and the health response used by every router.
"""

from typing import Dict

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error envelope for all API errors.

    Example:
        {"error": "Only PDF files are accepted"}

    The request correlation ID travels in the X-Request-ID response header.
    """

    error: str = Field(description="Human-readable error description")


class HealthResponse(BaseModel):
    """Returned by GET /api/health for probes and uptime monitors."""

    status: str = Field(description="ok or degraded")
    service: str = Field(default="pawlenx-backend")
    timestamp: str = Field(description="Current server time (UTC ISO 8601)")
    remote_store: Dict[str, object] = Field(
        default_factory=dict,
        serialization_alias="remoteStore",
        description="Remote document store circuit breaker state",
    )
