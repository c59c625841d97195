"""Capacity accounting for tour dates."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import CapacityExceededError, DateBlockedError, PartySizeExceededError
from ..models.availability import AvailabilityType, TourAvailabilityEntry
from ..models.booking import RELEASED_BOOKING_STATUSES, Booking, Hold, HoldStatus
from ..models.tour import Tour

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Occupancy:
    """Spots taken over an inclusive date range by a booking or a live hold."""

    start_date: date
    end_date: date
    spots: int

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class DayCapacity:
    day: date
    entry_type: AvailabilityType
    capacity: int
    booked: int
    held: int
    note: str | None = None

    @property
    def occupied(self) -> int:
        return self.booked + self.held

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.occupied)

    @property
    def blocked(self) -> bool:
        return self.entry_type == AvailabilityType.BLOCKED


@dataclass(frozen=True)
class CapacityAssessment:
    requested: int
    days: list[DayCapacity]
    blocked_dates: list[date]
    insufficient: DayCapacity | None

    @property
    def admissible(self) -> bool:
        return not self.blocked_dates and self.insufficient is None

    @property
    def spots_remaining(self) -> int:
        """Smallest remaining count across the range."""
        return min((day.remaining for day in self.days), default=0)


def date_range(start: date, end: date) -> list[date]:
    """Every day from ``start`` to ``end`` inclusive."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def effective_capacity(max_group_size: int, entry: TourAvailabilityEntry | None) -> int:
    if entry is None or entry.type == AvailabilityType.AVAILABLE:
        return max_group_size
    if entry.type == AvailabilityType.BLOCKED:
        return 0
    return entry.spots_available or 0


def assess_capacity(
    max_group_size: int,
    entries: Mapping[date, TourAvailabilityEntry],
    bookings: Sequence[Occupancy],
    holds: Sequence[Occupancy],
    start: date,
    end: date,
    requested: int,
) -> CapacityAssessment:
    """
    Decide whether ``requested`` more spots fit on every day of ``[start, end]``.

    A BLOCKED day anywhere in the range rejects it, even when the party
    would otherwise fit.
    """
    days: list[DayCapacity] = []
    blocked_dates: list[date] = []
    insufficient: DayCapacity | None = None

    for day in date_range(start, end):
        entry = entries.get(day)
        day_capacity = DayCapacity(
            day=day,
            entry_type=AvailabilityType(entry.type) if entry else AvailabilityType.AVAILABLE,
            capacity=effective_capacity(max_group_size, entry),
            booked=sum(b.spots for b in bookings if b.covers(day)),
            held=sum(h.spots for h in holds if h.covers(day)),
            note=entry.note if entry else None,
        )
        days.append(day_capacity)

        if day_capacity.blocked:
            blocked_dates.append(day)
        elif insufficient is None and day_capacity.occupied + requested > day_capacity.capacity:
            insufficient = day_capacity

    return CapacityAssessment(
        requested=requested,
        days=days,
        blocked_dates=blocked_dates,
        insufficient=insufficient,
    )


class CapacityService:
    """Loads occupancy for a tour and evaluates it with ``assess_capacity``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load_entries(self, tour_id: UUID, start: date, end: date) -> dict[date, TourAvailabilityEntry]:
        stmt = select(TourAvailabilityEntry).where(
            TourAvailabilityEntry.tour_id == tour_id,
            TourAvailabilityEntry.date >= start,
            TourAvailabilityEntry.date <= end,
        )
        result = await self.db.execute(stmt)
        return {entry.date: entry for entry in result.scalars()}

    async def load_booking_occupancy(self, tour_id: UUID, start: date, end: date) -> list[Occupancy]:
        stmt = select(
            Booking.start_date, Booking.end_date, Booking.adults, Booking.children, Booking.infants
        ).where(
            Booking.tour_id == tour_id,
            Booking.status.not_in([status.value for status in RELEASED_BOOKING_STATUSES]),
            Booking.start_date <= end,
            Booking.end_date >= start,
        )
        result = await self.db.execute(stmt)
        return [
            Occupancy(row.start_date, row.end_date, row.adults + row.children + row.infants)
            for row in result
        ]

    async def load_hold_occupancy(
        self,
        tour_id: UUID,
        start: date,
        end: date,
        now: datetime,
        exclude_user_id: str | None = None,
    ) -> list[Occupancy]:
        """Live holds only: ACTIVE and not yet past ``expires_at``."""
        stmt = select(Hold.start_date, Hold.end_date, Hold.spots_held).where(
            Hold.tour_id == tour_id,
            Hold.status == HoldStatus.ACTIVE.value,
            Hold.expires_at > now,
            Hold.start_date <= end,
            Hold.end_date >= start,
        )
        if exclude_user_id is not None:
            stmt = stmt.where(or_(Hold.user_id.is_(None), Hold.user_id != exclude_user_id))
        result = await self.db.execute(stmt)
        return [Occupancy(row.start_date, row.end_date, row.spots_held) for row in result]

    async def assess(
        self,
        tour: Tour,
        start: date,
        end: date,
        requested: int,
        now: datetime,
        exclude_user_id: str | None = None,
    ) -> CapacityAssessment:
        entries = await self.load_entries(tour.id, start, end)
        bookings = await self.load_booking_occupancy(tour.id, start, end)
        holds = await self.load_hold_occupancy(tour.id, start, end, now, exclude_user_id)
        return assess_capacity(tour.max_group_size, entries, bookings, holds, start, end, requested)

    async def ensure_admissible(
        self,
        tour: Tour,
        start: date,
        end: date,
        requested: int,
        now: datetime,
        exclude_user_id: str | None = None,
    ) -> CapacityAssessment:
        """
        Raise unless ``requested`` spots fit on every day of the range.

        Callers that go on to write must hold the slot locks for the range.

        Raises:
            PartySizeExceededError: If the party can never fit on this tour
            DateBlockedError: If any day of the range is blocked
            CapacityExceededError: If any day lacks enough remaining spots
        """
        if requested > tour.max_group_size:
            raise PartySizeExceededError(requested, tour.max_group_size)

        assessment = await self.assess(tour, start, end, requested, now, exclude_user_id)

        if assessment.blocked_dates:
            logger.info(
                "Capacity check rejected - blocked dates",
                extra={
                    "tour_id": str(tour.id),
                    "blocked_dates": [d.isoformat() for d in assessment.blocked_dates],
                }
            )
            raise DateBlockedError(str(tour.id), assessment.blocked_dates)

        if assessment.insufficient is not None:
            day = assessment.insufficient
            logger.info(
                "Capacity check rejected - insufficient spots",
                extra={
                    "tour_id": str(tour.id),
                    "date": day.day.isoformat(),
                    "capacity": day.capacity,
                    "occupied": day.occupied,
                    "requested": requested,
                }
            )
            raise CapacityExceededError(str(tour.id), day.day, day.remaining, requested)

        return assessment

    async def occupied_spots(self, tour: Tour, day: date, now: datetime) -> int:
        """Booked plus live-held spots on a single day."""
        assessment = await self.assess(tour, day, day, 0, now)
        return assessment.days[0].occupied
