"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .database import utcnow

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://booking-engine.dev/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        return self.extensions.get("code")


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        violations: Optional[list[dict[str, str]]] = None,
        instance: Optional[str] = None,
    ):
        extensions: dict[str, Any] = {"code": "VALIDATION_FAILED", "retryable": False}
        if violations:
            extensions["violations"] = violations

        super().__init__(
            status_code=422,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are invalid",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/authentication-required",
            instance=instance,
            extensions={"code": "UNAUTHENTICATED", "retryable": False},
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "code": "NOT_FOUND",
            "retryable": False,
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: dict[str, Any] = {"code": "CONFLICT", "retryable": False}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


# Admissibility errors

class CapacityExceededError(ProblemDetailsException):
    """Requested party does not fit on at least one day of the range."""

    def __init__(self, tour_id: str, day: date, spots_remaining: int, requested: int):
        super().__init__(
            status_code=409,
            title="Capacity Exceeded",
            detail=(
                f"Only {spots_remaining} spots remaining on {day.isoformat()}; "
                f"{requested} requested"
            ),
            type_uri=f"{PROBLEM_BASE_URI}/capacity-exceeded",
            extensions={
                "code": "CAPACITY_EXCEEDED",
                "retryable": False,
                "tour_id": tour_id,
                "date": day.isoformat(),
                "spots_remaining": spots_remaining,
                "requested": requested,
            },
        )


class DateBlockedError(ProblemDetailsException):
    """One or more days of the range are blocked by the agent."""

    def __init__(self, tour_id: str, blocked_dates: list[date]):
        dates = [d.isoformat() for d in blocked_dates]
        super().__init__(
            status_code=409,
            title="Date Blocked",
            detail=f"Tour is not available on: {', '.join(dates)}",
            type_uri=f"{PROBLEM_BASE_URI}/date-blocked",
            extensions={
                "code": "DATE_BLOCKED",
                "retryable": False,
                "tour_id": tour_id,
                "blocked_dates": dates,
            },
        )


class PartySizeExceededError(ProblemDetailsException):
    """Party is larger than the tour will ever allow."""

    def __init__(self, requested: int, max_group_size: int):
        super().__init__(
            status_code=422,
            title="Party Size Exceeded",
            detail=f"Party of {requested} exceeds the maximum group size of {max_group_size}",
            type_uri=f"{PROBLEM_BASE_URI}/party-size-exceeded",
            extensions={
                "code": "PARTY_SIZE_EXCEEDED",
                "retryable": False,
                "requested": requested,
                "max_group_size": max_group_size,
            },
        )


class TourUnavailableError(ProblemDetailsException):
    """Tour exists but is not open for booking."""

    def __init__(self, tour_id: str, status: str):
        super().__init__(
            status_code=422,
            title="Tour Unavailable",
            detail=f"Tour {tour_id} is not bookable (status: {status})",
            type_uri=f"{PROBLEM_BASE_URI}/tour-unavailable",
            extensions={
                "code": "TOUR_UNAVAILABLE",
                "retryable": False,
                "tour_id": tour_id,
                "tour_status": status,
            },
        )


# Hold lifecycle errors

class HoldNotFoundError(NotFoundError):
    """Hold does not exist."""

    def __init__(self, hold_id: str):
        super().__init__(resource_type="hold", resource_id=hold_id)
        self.extensions["code"] = "HOLD_NOT_FOUND"
        self.problem_details["code"] = "HOLD_NOT_FOUND"


class HoldExpiredError(ProblemDetailsException):
    """Exception when a hold has expired or was released and no longer reserves capacity."""

    def __init__(self, hold_id: str, expired_at: datetime, status: str = "EXPIRED"):
        super().__init__(
            status_code=410,
            title="Hold Expired",
            detail=f"Hold {hold_id} is no longer active (status: {status}, expires_at: {expired_at.isoformat()}Z)",
            type_uri=f"{PROBLEM_BASE_URI}/hold-expired",
            extensions={
                "code": "HOLD_EXPIRED",
                "retryable": False,
                "hold_id": hold_id,
                "hold_status": status,
                "expired_at": expired_at.isoformat() + "Z",
            },
        )


class PriceChangedError(ProblemDetailsException):
    """A hold without a stored breakdown no longer re-prices to its quoted total."""

    def __init__(self, hold_id: str, quoted_total: int, current_total: int):
        super().__init__(
            status_code=409,
            title="Price Changed",
            detail=(
                f"Hold {hold_id} was quoted at {quoted_total} but now prices at {current_total}; "
                "start a new checkout session"
            ),
            type_uri=f"{PROBLEM_BASE_URI}/price-changed",
            extensions={
                "code": "PRICE_CHANGED",
                "retryable": True,
                "hold_id": hold_id,
                "quoted_total": quoted_total,
                "current_total": current_total,
            },
        )


# State conflicts

class _StateConflictError(ProblemDetailsException):
    code_name = "STATE_CONFLICT"
    title_text = "State Conflict"

    def __init__(self, booking_id: str, status: str, detail: str):
        super().__init__(
            status_code=409,
            title=self.title_text,
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/{self.code_name.lower().replace('_', '-')}",
            extensions={
                "code": self.code_name,
                "retryable": False,
                "booking_id": booking_id,
                "booking_status": status,
            },
        )


class AlreadyCancelledError(_StateConflictError):
    code_name = "ALREADY_CANCELLED"
    title_text = "Booking Already Cancelled"

    def __init__(self, booking_id: str, status: str):
        super().__init__(booking_id, status, f"Booking {booking_id} is already {status.lower()}")


class CannotCancelCompletedError(_StateConflictError):
    code_name = "CANNOT_CANCEL_COMPLETED"
    title_text = "Booking Already Completed"

    def __init__(self, booking_id: str, status: str = "COMPLETED"):
        super().__init__(booking_id, status, f"Booking {booking_id} is completed and cannot be cancelled")


class AlreadyPaidError(_StateConflictError):
    code_name = "ALREADY_PAID"
    title_text = "Booking Already Paid"

    def __init__(self, booking_id: str, status: str):
        super().__init__(booking_id, status, f"Booking {booking_id} has already been paid")


class InvalidTransitionError(_StateConflictError):
    code_name = "INVALID_TRANSITION"
    title_text = "Invalid Status Transition"

    def __init__(self, booking_id: str, status: str, target: str):
        super().__init__(
            booking_id, status, f"Booking {booking_id} cannot move from {status} to {target}"
        )
        self.problem_details["target_status"] = target


class PaymentInProgressError(_StateConflictError):
    code_name = "PAYMENT_IN_PROGRESS"
    title_text = "Payment Already In Progress"

    def __init__(self, booking_id: str, status: str, payment_id: str, tracking_id: str | None):
        super().__init__(
            booking_id, status, f"Booking {booking_id} already has a payment awaiting the gateway"
        )
        self.problem_details["retryable"] = True
        self.problem_details["payment_id"] = payment_id
        self.problem_details["tracking_id"] = tracking_id


# External collaborators

class PaymentGatewayError(ProblemDetailsException):
    """The payment gateway could not be reached or rejected the call."""

    def __init__(self, detail: str, operation: str):
        super().__init__(
            status_code=502,
            title="Payment Gateway Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/payment-gateway-error",
            extensions={
                "code": "GATEWAY_ERROR",
                "retryable": True,
                "operation": operation,
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    trace_context = getattr(request.state, "trace_context", None)
    if trace_context:
        content.setdefault("trace_id", trace_context.get("trace_id"))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as a 422 problem with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    problem = ValidationError(violations=violations, instance=str(request.url.path))
    return await problem_details_handler(request, problem)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path},
    )

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "code": "INTERNAL",
        "retryable": True,
        "error_id": error_id,
        "timestamp": utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
