"""Common Pydantic schemas."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    trace_id: Optional[str] = Field(None, description="Trace ID for debugging")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


# Error responses documented on every booking-flow router
PROBLEM_RESPONSES = {
    404: {"model": Problem, "description": "Referenced resource not found"},
    409: {"model": Problem, "description": "Conflicts with current state"},
    410: {"model": Problem, "description": "Hold has expired or been released"},
    422: {"model": Problem, "description": "Request failed validation"},
}


class RequestModel(BaseModel):
    """Base for request bodies: unknown fields are rejected, not silently dropped."""

    model_config = ConfigDict(extra="forbid")
