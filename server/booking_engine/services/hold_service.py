"""Hold manager: create, extend and release checkout holds."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import utcnow
from ..core.exceptions import (
    CapacityExceededError,
    ConflictError,
    DateBlockedError,
    HoldExpiredError,
    HoldNotFoundError,
    PartySizeExceededError,
    TourUnavailableError,
    ValidationError,
)
from ..core.locks import slot_locks
from ..core.observability import metrics_collector
from ..models.booking import Hold, HoldStatus
from ..schemas.checkout import CreateCheckoutSessionRequest
from ..schemas.pricing import PriceBreakdown
from .availability_service import tour_end_date
from .capacity_service import CapacityService
from .pricing_engine import Party, classify_ages
from .quote_service import QuoteService
from .tour_service import TourService

logger = logging.getLogger(__name__)


class HoldService:
    """Service for checkout hold operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tour_service = TourService(db)
        self.capacity_service = CapacityService(db)
        self.quote_service = QuoteService(db)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=settings.hold_ttl_minutes)

    async def create_hold(
        self,
        request: CreateCheckoutSessionRequest,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> tuple[Hold, PriceBreakdown]:
        """
        Quote a party and reserve its spots for the hold TTL.

        A buyer holds at most one slot per tour: re-quoting releases the
        buyer's earlier overlapping holds in the same transaction.

        Raises:
            NotFoundError: If the tour does not exist
            TourUnavailableError: If the tour is not open for booking
            ValidationError: If the party or selections are invalid
            PartySizeExceededError, DateBlockedError, CapacityExceededError:
                If the party does not fit on every day of the range
        """
        now = now or utcnow()
        tour = await self.tour_service.get_tour_by_id_or_raise(request.tour_id)
        tour_id = tour.id

        if not tour.is_bookable:
            raise TourUnavailableError(str(tour_id), tour.status)

        if request.start_date < now.date():
            raise ValidationError(
                detail="Start date cannot be in the past",
                violations=[{"path": "start_date", "message": "must not be before today"}],
            )

        rules = await self.tour_service.get_pricing_rules(tour_id)
        if request.traveler_ages is not None:
            party = classify_ages(request.traveler_ages, rules)
        else:
            party = Party(adults=request.adults, children=request.children, infants=request.infants)
        if party.adults < 1:
            raise ValidationError(
                detail="At least one adult traveller is required",
                violations=[{"path": "adults", "message": "must be at least 1"}],
            )

        end_date = tour_end_date(tour, request.start_date)
        accommodation_ids = [str(i) for i in request.selected_accommodation_ids]
        addon_ids = [str(i) for i in request.selected_addon_ids]
        if accommodation_ids and len(accommodation_ids) > max(tour.duration_nights, 1):
            raise ValidationError(
                detail="More accommodation nights selected than the tour has",
                violations=[{"path": "selected_accommodation_ids", "message": "one option per night"}],
            )

        breakdown = await self.quote_service.quote(
            tour, party, request.start_date, now.date(), accommodation_ids, addon_ids
        )

        async with slot_locks(self.db, tour_id, request.start_date, end_date):
            try:
                await self.capacity_service.ensure_admissible(
                    tour, request.start_date, end_date, party.size, now, exclude_user_id=user_id
                )
            except (PartySizeExceededError, DateBlockedError, CapacityExceededError) as e:
                metrics_collector.record_hold_rejected(e.code or "unknown")
                raise

            superseded = 0
            if user_id is not None:
                superseded = await self._release_owner_holds(tour_id, user_id, request.start_date, end_date)

            hold = Hold(
                tour_id=tour_id,
                user_id=user_id,
                start_date=request.start_date,
                end_date=end_date,
                adults=party.adults,
                children=party.children,
                infants=party.infants,
                spots_held=party.size,
                selected_accommodation_ids=accommodation_ids,
                selected_addon_ids=addon_ids,
                quoted_on=now.date(),
                quoted_total=breakdown.total_amount,
                price_breakdown=breakdown.model_dump(mode="json"),
                currency=breakdown.currency,
                expires_at=now + self.ttl,
                status=HoldStatus.ACTIVE.value,
            )
            self.db.add(hold)
            await self.db.commit()

        metrics_collector.record_hold_created(str(tour_id))
        if superseded:
            metrics_collector.record_hold_released("superseded")

        logger.info(
            "Hold created successfully",
            extra={
                "hold_id": str(hold.id),
                "tour_id": str(tour_id),
                "start_date": hold.start_date.isoformat(),
                "spots_held": hold.spots_held,
                "superseded_holds": superseded,
                "expires_at": hold.expires_at.isoformat(),
                "total_amount": breakdown.total_amount,
            }
        )

        return hold, breakdown

    async def _release_owner_holds(self, tour_id: UUID, user_id: str, start, end) -> int:
        stmt = (
            update(Hold)
            .where(
                Hold.tour_id == tour_id,
                Hold.user_id == user_id,
                Hold.status == HoldStatus.ACTIVE.value,
                Hold.start_date <= end,
                Hold.end_date >= start,
            )
            .values(status=HoldStatus.RELEASED.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def get_hold(self, hold_id: UUID) -> Hold | None:
        stmt = select(Hold).where(Hold.id == hold_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_hold_or_raise(self, hold_id: UUID) -> Hold:
        hold = await self.get_hold(hold_id)
        if hold is None:
            logger.warning("Hold not found", extra={"hold_id": str(hold_id)})
            raise HoldNotFoundError(str(hold_id))
        return hold

    async def extend_hold(self, hold_id: UUID, now: datetime | None = None) -> Hold:
        """
        Push a live hold's expiry to ``now + TTL``.

        Raises:
            HoldNotFoundError: If the hold does not exist
            HoldExpiredError: If the hold already lapsed, was released or consumed
        """
        now = now or utcnow()
        hold = await self.get_hold_or_raise(hold_id)

        async with slot_locks(self.db, hold.tour_id, hold.start_date, hold.end_date):
            hold = await self.get_hold_or_raise(hold_id)
            if not hold.is_live(now):
                logger.info(
                    "Hold extension rejected",
                    extra={
                        "hold_id": str(hold_id),
                        "status": hold.status,
                        "expires_at": hold.expires_at.isoformat(),
                    }
                )
                raise HoldExpiredError(str(hold_id), hold.expires_at, hold.status)

            hold.expires_at = now + self.ttl
            await self.db.commit()

        metrics_collector.record_hold_extended()
        logger.info(
            "Hold extended",
            extra={"hold_id": str(hold_id), "expires_at": hold.expires_at.isoformat()}
        )
        return hold

    async def release_hold(self, hold_id: UUID) -> Hold:
        """
        Release an ACTIVE hold immediately; already released or lapsed holds
        are acknowledged unchanged.

        Raises:
            HoldNotFoundError: If the hold does not exist
            ConflictError: If the hold was already turned into a booking
        """
        hold = await self.get_hold_or_raise(hold_id)

        if hold.status == HoldStatus.CONSUMED:
            raise ConflictError(
                detail=f"Hold {hold_id} has already been reserved as a booking",
                conflicting_resource={"hold_id": str(hold_id), "status": hold.status},
            )

        if hold.status == HoldStatus.ACTIVE:
            hold.status = HoldStatus.RELEASED.value
            await self.db.commit()
            metrics_collector.record_hold_released("buyer")
            logger.info("Hold released", extra={"hold_id": str(hold_id)})
        else:
            logger.info(
                "Hold release acknowledged - already inactive",
                extra={"hold_id": str(hold_id), "status": hold.status}
            )

        return hold

    async def sweep_expired_holds(self, now: datetime | None = None, batch_size: int = 500) -> int:
        """
        Relabel lapsed ACTIVE holds as EXPIRED.

        Capacity queries already ignore lapsed holds, so this only keeps the
        stored status honest for reporting.
        """
        now = now or utcnow()
        stale = select(Hold.id).where(
            Hold.status == HoldStatus.ACTIVE.value,
            Hold.expires_at <= now,
        ).limit(batch_size)
        stale_ids = list((await self.db.execute(stale)).scalars())

        expired = 0
        if stale_ids:
            stmt = (
                update(Hold)
                .where(Hold.id.in_(stale_ids), Hold.status == HoldStatus.ACTIVE.value)
                .values(status=HoldStatus.EXPIRED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            expired = (await self.db.execute(stmt)).rowcount or 0

        live = await self.db.execute(
            select(Hold.id).where(
                Hold.status == HoldStatus.ACTIVE.value,
                Hold.expires_at > now,
            )
        )
        await self.db.commit()

        metrics_collector.set_active_holds(len(live.all()))
        if expired:
            metrics_collector.record_holds_expired(expired)
            logger.info("Expired stale holds", extra={"expired_count": expired})
        return expired
