"""
E-Permitted Backend — Shared Response Envelopes
================================================

What:  The `{success, ...}` wrappers every endpoint returns, the error body
       and the health check body.
How:   `DataResponse[T]` / `ListResponse[T]` are generic Pydantic models, so
       each route declares its concrete payload type for OpenAPI.

Envelope shapes:
    success → {"success": true, "data": {...}}
    list    → {"success": true, "data": [...], "total": 42, "limit": 20, "offset": 0}
    error   → {"success": false, "error": "...", "code": "...",
               "details": [...], "request_id": "..."}
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ListResponse(BaseModel, Generic[T]):
    success: bool = True
    data: List[T]
    total: int = Field(description="Number of records matching the filters")
    limit: int
    offset: int


class ErrorDetail(BaseModel):
    field: Optional[str] = Field(default=None, description="Offending input field, if any")
    message: str


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "success": false,
            "error": "Permit type is not offered by this council",
            "code": "validation_error",
            "details": [{"field": "permit_type_id", "message": "..."}],
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    success: bool = False
    error: str = Field(description="Human-readable error description")
    code: str = Field(description="Machine-readable error code")
    details: Optional[List[ErrorDetail]] = None
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Health check response showing service and dependency status.

    A healthy process that can't reach its database is effectively down, so
    the database is probed on every call.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    llm: str = Field(description="AI service: available, unavailable, circuit_open, disabled")
    analysis_queue: Dict[str, Any] = Field(
        description="Background analysis counters: submitted, succeeded, failed, in_flight"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
