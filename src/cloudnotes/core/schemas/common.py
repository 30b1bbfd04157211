"""
Shared response schemas - errors, health
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str = Field(description="Error type")
    message: str = Field(description="Human-readable error message")
    details: Optional[Any] = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "ValidationError",
                "message": "Text cannot be empty",
                "details": [{"loc": ["body", "text"], "msg": "Value error, Text cannot be empty"}],
                "timestamp": "2025-01-01T09:30:00Z",
            }
        }
    )


class HealthCheckResponse(BaseModel):
    """Health check response schema."""

    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = Field(description="Application version")
    checks: dict[str, dict[str, Any]] = Field(description="Individual component health checks")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2025-01-01T09:30:00Z",
                "version": "1.0.0",
                "checks": {
                    "database": {"status": "healthy", "response_time_ms": 3.1},
                    "change_feed": {"status": "healthy", "backend": "memory", "listeners": 2},
                    "push_channels": {"status": "healthy", "open": 2},
                },
            }
        }
    )
