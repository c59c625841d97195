"""Loads pricing inputs for a tour and runs the pricing engine."""

from datetime import date
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import PriceChangedError
from ..models.booking import Hold
from ..models.tour import Tour
from ..schemas.pricing import PriceBreakdown
from .pricing_engine import Party, PriceRequest, calculate_price
from .tour_service import TourService, tour_pricing


class QuoteService:
    """Builds ``PriceRequest`` objects from stored catalog data."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tour_service = TourService(db)

    async def build_request(
        self,
        tour: Tour,
        party: Party,
        start_date: date,
        booked_on: date,
        accommodation_ids: Sequence[UUID | str] = (),
        addon_ids: Sequence[UUID | str] = (),
    ) -> PriceRequest:
        rules = await self.tour_service.get_pricing_rules(tour.id)
        return PriceRequest(
            tour=tour_pricing(tour),
            party=party,
            start_date=start_date,
            booked_on=booked_on,
            rules=rules,
            accommodations=tuple(await self.tour_service.load_accommodation_lines(tour.id, accommodation_ids)),
            addons=tuple(await self.tour_service.load_addon_lines(tour.id, addon_ids)),
        )

    async def quote(self, *args, **kwargs) -> PriceBreakdown:
        return calculate_price(await self.build_request(*args, **kwargs))

    async def held_price(self, hold: Hold, tour: Tour) -> PriceBreakdown:
        """
        The breakdown the buyer was shown when the hold was created.

        Catalog and pricing edits made after the hold never reach it. Holds
        stored without a snapshot are re-priced from their inputs and must
        still come to the quoted total.

        Raises:
            PriceChangedError: If a re-priced hold no longer matches its quote
        """
        if hold.price_breakdown:
            return PriceBreakdown.model_validate(hold.price_breakdown)

        breakdown = await self.quote_for_hold(hold, tour)
        if breakdown.total_amount != hold.quoted_total:
            raise PriceChangedError(str(hold.id), hold.quoted_total, breakdown.total_amount)
        return breakdown

    async def quote_for_hold(self, hold: Hold, tour: Tour) -> PriceBreakdown:
        """Replay a hold's stored inputs, anchored on the day it was quoted."""
        return await self.quote(
            tour,
            Party(adults=hold.adults, children=hold.children, infants=hold.infants),
            hold.start_date,
            hold.quoted_on,
            hold.selected_accommodation_ids,
            hold.selected_addon_ids,
        )
