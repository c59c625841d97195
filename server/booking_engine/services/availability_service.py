"""Availability calendar service: agent overrides and buyer-facing views."""

import logging
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..models.availability import AvailabilityType, TourAvailabilityEntry
from ..models.tour import Tour
from ..schemas.availability import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    CalendarDay,
    CalendarRequest,
    CalendarResponse,
    CalendarSummary,
    ClearAvailabilityRequest,
    SetAvailabilityRequest,
)
from .capacity_service import CapacityService, DayCapacity
from .tour_service import TourService

logger = logging.getLogger(__name__)


def _day_reason(day: DayCapacity, guests: int) -> str | None:
    if day.blocked:
        return day.note or "Date is blocked"
    if day.remaining < guests:
        if day.remaining == 0:
            return "Fully booked"
        return f"Only {day.remaining} spots remaining"
    return None


def tour_end_date(tour: Tour, start: date) -> date:
    """Last day occupied by a departure on ``start``."""
    return start + timedelta(days=tour.duration_nights)


class AvailabilityService:
    """Service for per-date availability overrides and capacity views."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tour_service = TourService(db)
        self.capacity_service = CapacityService(db)

    async def set_entries(self, request: SetAvailabilityRequest) -> list[TourAvailabilityEntry]:
        """
        Upsert one override for every requested date.

        Lowering a date below what is already booked is allowed; the date
        simply stops accepting new holds.
        """
        await self.tour_service.get_tour_by_id_or_raise(request.tour_id)
        dates = sorted(set(request.dates))

        existing = await self.capacity_service.load_entries(request.tour_id, dates[0], dates[-1])

        entries = []
        for day in dates:
            entry = existing.get(day)
            if entry is None:
                entry = TourAvailabilityEntry(tour_id=request.tour_id, date=day)
                self.db.add(entry)
            entry.type = request.type.value
            entry.spots_available = request.spots_available
            entry.note = request.note
            entries.append(entry)

        await self.db.commit()

        logger.info(
            "Availability entries updated",
            extra={
                "tour_id": str(request.tour_id),
                "dates": len(entries),
                "type": request.type.value,
                "spots_available": request.spots_available,
            }
        )
        return entries

    async def clear_entries(self, request: ClearAvailabilityRequest) -> int:
        """Remove overrides so the tour's max group size applies again."""
        await self.tour_service.get_tour_by_id_or_raise(request.tour_id)

        stmt = delete(TourAvailabilityEntry).where(
            TourAvailabilityEntry.tour_id == request.tour_id,
            TourAvailabilityEntry.date.in_(set(request.dates)),
        )
        result = await self.db.execute(stmt)
        await self.db.commit()

        logger.info(
            "Availability entries cleared",
            extra={"tour_id": str(request.tour_id), "cleared": result.rowcount}
        )
        return result.rowcount

    async def list_entries(self, tour_id: UUID, start: date, end: date) -> list[TourAvailabilityEntry]:
        stmt = (
            select(TourAvailabilityEntry)
            .where(
                TourAvailabilityEntry.tour_id == tour_id,
                TourAvailabilityEntry.date >= start,
                TourAvailabilityEntry.date <= end,
            )
            .order_by(TourAvailabilityEntry.date)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def get_calendar(self, request: CalendarRequest, now: datetime | None = None) -> CalendarResponse:
        """Per-day capacity for a party of ``guests``, derived from live occupancy."""
        now = now or utcnow()
        tour = await self.tour_service.get_tour_by_id_or_raise(request.tour_id)

        assessment = await self.capacity_service.assess(
            tour, request.date_from, request.date_to, request.guests, now
        )

        days = [
            CalendarDay(
                date=day.day,
                available=not day.blocked and day.remaining >= request.guests,
                type=day.entry_type.value,
                spots_available=day.remaining,
                capacity=day.capacity,
                booked_spots=day.booked,
                held_spots=day.held,
                reason=_day_reason(day, request.guests),
            )
            for day in assessment.days
        ]

        summary = CalendarSummary(
            total_days=len(days),
            available_days=sum(1 for d in days if d.available),
            blocked_days=sum(1 for d in days if d.type == AvailabilityType.BLOCKED),
            limited_days=sum(1 for d in days if d.type == AvailabilityType.LIMITED),
        )

        return CalendarResponse(tour_id=tour.id, guests=request.guests, days=days, summary=summary)

    async def check(self, request: AvailabilityCheckRequest, now: datetime | None = None) -> AvailabilityCheckResponse:
        """Read-only admissibility check for a party over a date range."""
        now = now or utcnow()
        tour = await self.tour_service.get_tour_by_id_or_raise(request.tour_id)
        end_date = request.end_date or tour_end_date(tour, request.start_date)

        if not tour.is_bookable:
            return AvailabilityCheckResponse(
                available=False,
                start_date=request.start_date,
                end_date=end_date,
                reason="Tour is not open for booking",
            )

        if request.guests > tour.max_group_size:
            return AvailabilityCheckResponse(
                available=False,
                start_date=request.start_date,
                end_date=end_date,
                reason=f"Maximum group size is {tour.max_group_size}",
            )

        assessment = await self.capacity_service.assess(tour, request.start_date, end_date, request.guests, now)

        if assessment.blocked_dates:
            return AvailabilityCheckResponse(
                available=False,
                start_date=request.start_date,
                end_date=end_date,
                reason="Some dates in the range are blocked",
                blocked_dates=assessment.blocked_dates,
            )

        if assessment.insufficient is not None:
            day = assessment.insufficient
            return AvailabilityCheckResponse(
                available=False,
                start_date=request.start_date,
                end_date=end_date,
                reason=f"Only {day.remaining} spots remaining on {day.day.isoformat()}",
                insufficient_date=day.day,
                spots_remaining=day.remaining,
            )

        return AvailabilityCheckResponse(
            available=True,
            start_date=request.start_date,
            end_date=end_date,
            spots_remaining=assessment.spots_remaining,
        )
