"""Availability calendar Pydantic schemas."""

from datetime import date
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import RequestModel

MAX_CALENDAR_DAYS = 366


class AvailabilityType(str, Enum):
    AVAILABLE = "AVAILABLE"
    BLOCKED = "BLOCKED"
    LIMITED = "LIMITED"


class CalendarRequest(RequestModel):
    """Request schema for a per-day availability calendar."""

    tour_id: UUID
    date_from: date
    date_to: date
    guests: int = Field(1, ge=1, le=100)

    @model_validator(mode="after")
    def check_window(self) -> "CalendarRequest":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        if (self.date_to - self.date_from).days >= MAX_CALENDAR_DAYS:
            raise ValueError(f"calendar window is limited to {MAX_CALENDAR_DAYS} days")
        return self


class CalendarDay(BaseModel):
    date: date
    available: bool
    type: AvailabilityType
    spots_available: int = Field(..., ge=0, description="Spots still free on this day")
    capacity: int = Field(..., ge=0)
    booked_spots: int = Field(..., ge=0)
    held_spots: int = Field(..., ge=0)
    reason: str | None = None


class CalendarSummary(BaseModel):
    total_days: int
    available_days: int
    blocked_days: int
    limited_days: int


class CalendarResponse(BaseModel):
    tour_id: UUID
    guests: int
    days: list[CalendarDay]
    summary: CalendarSummary


class AvailabilityCheckRequest(RequestModel):
    """Request schema for checking a party against a date range."""

    tour_id: UUID
    start_date: date
    end_date: date | None = Field(None, description="Defaults to start + tour duration nights")
    guests: int = Field(..., ge=1, le=100)

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityCheckRequest":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AvailabilityCheckResponse(BaseModel):
    available: bool
    start_date: date
    end_date: date
    reason: str | None = None
    blocked_dates: list[date] = Field(default_factory=list)
    insufficient_date: date | None = None
    spots_remaining: int | None = None


class SetAvailabilityRequest(RequestModel):
    """Agent calendar write: apply one override to a set of dates."""

    tour_id: UUID
    dates: list[date] = Field(..., min_length=1, max_length=MAX_CALENDAR_DAYS)
    type: AvailabilityType
    spots_available: int | None = Field(None, ge=0)
    note: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_spots(self) -> "SetAvailabilityRequest":
        if self.type == AvailabilityType.LIMITED and self.spots_available is None:
            raise ValueError("spots_available is required for LIMITED dates")
        if self.type != AvailabilityType.LIMITED:
            self.spots_available = None
        return self


class ClearAvailabilityRequest(RequestModel):
    tour_id: UUID
    dates: list[date] = Field(..., min_length=1, max_length=MAX_CALENDAR_DAYS)


class AvailabilityEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tour_id: UUID
    date: date
    type: AvailabilityType
    spots_available: int | None = None
    note: str | None = None


class SetAvailabilityResponse(BaseModel):
    tour_id: UUID
    entries: list[AvailabilityEntry]


class ClearAvailabilityResponse(BaseModel):
    tour_id: UUID
    cleared: int
