"""Tour catalog service: agents, tours, pricing rules and add-ons."""

import logging
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..models.agent import Agent
from ..models.tour import AccommodationOption, ActivityAddon, PricingConfig, Tour
from ..schemas.tour import CreateAgentRequest, CreateTourRequest, UpsertPricingConfigRequest
from .pricing_engine import DEFAULT_RULES, AccommodationLine, AddonLine, PricingRules, TourPricing

logger = logging.getLogger(__name__)


def tour_pricing(tour: Tour) -> TourPricing:
    return TourPricing(
        base_price=tour.base_price,
        currency=tour.currency,
        child_price=tour.child_price,
        infant_price=tour.infant_price,
        deposit_enabled=tour.deposit_enabled,
        deposit_percentage=tour.deposit_percentage,
    )


def pricing_rules(config: PricingConfig | None) -> PricingRules:
    if config is None:
        return DEFAULT_RULES
    return PricingRules(
        child_discount_percent=config.child_discount_percent,
        child_min_age=config.child_min_age,
        child_max_age=config.child_max_age,
        infant_max_age=config.infant_max_age,
        infant_price=config.infant_price,
        service_fee_percent=config.service_fee_percent,
        service_fee_fixed=config.service_fee_fixed,
        deposit_percent=config.deposit_percent,
        deposit_minimum=config.deposit_minimum,
        group_discount_threshold=config.group_discount_threshold,
        group_discount_percent=config.group_discount_percent,
        early_bird_days=config.early_bird_days,
        early_bird_percent=config.early_bird_percent,
    )


class TourService:
    """Service for tour-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_agent(self, request: CreateAgentRequest) -> Agent:
        existing = await self.db.execute(
            select(Agent).where(Agent.business_email == request.business_email)
        )
        agent = existing.scalar_one_or_none()
        if agent:
            raise ConflictError(
                detail=f"Agent with email '{request.business_email}' already exists",
                conflicting_resource={"id": str(agent.id), "business_email": agent.business_email}
            )

        agent = Agent(
            business_name=request.business_name,
            business_email=request.business_email,
            commission_rate=request.commission_rate,
        )
        self.db.add(agent)
        await self.db.commit()

        logger.info(
            "Agent created successfully",
            extra={"agent_id": str(agent.id), "commission_rate": agent.commission_rate}
        )
        return agent

    async def get_agent_by_id_or_raise(self, agent_id: UUID) -> Agent:
        agent = await self.db.get(Agent, agent_id)
        if not agent:
            raise NotFoundError(resource_type="agent", resource_id=str(agent_id))
        return agent

    async def create_tour(self, request: CreateTourRequest) -> Tour:
        """
        Create a new tour with its accommodation options and add-ons.

        Raises:
            NotFoundError: If the owning agent does not exist
            ConflictError: If tour with same slug already exists
        """
        await self.get_agent_by_id_or_raise(request.agent_id)

        existing_tour = await self.get_tour_by_slug(request.slug)
        if existing_tour:
            logger.warning(
                "Tour creation failed - slug already exists",
                extra={
                    "slug": request.slug,
                    "existing_tour_id": str(existing_tour.id)
                }
            )
            raise ConflictError(
                detail=f"Tour with slug '{request.slug}' already exists",
                conflicting_resource={
                    "id": str(existing_tour.id),
                    "slug": existing_tour.slug,
                    "title": existing_tour.title
                }
            )

        tour = Tour(
            agent_id=request.agent_id,
            title=request.title,
            slug=request.slug,
            description=request.description,
            status=request.status.value,
            max_group_size=request.max_group_size,
            duration_days=request.duration_days,
            duration_nights=request.duration_nights,
            base_price=request.base_price,
            child_price=request.child_price,
            infant_price=request.infant_price,
            currency=request.currency,
            deposit_enabled=request.deposit_enabled,
            deposit_percentage=request.deposit_percentage,
            free_cancellation_days=request.free_cancellation_days,
            accommodation_options=[
                AccommodationOption(
                    name=option.name,
                    tier=option.tier.value,
                    price_per_night=option.price_per_night,
                )
                for option in request.accommodation_options
            ],
            activity_addons=[
                ActivityAddon(
                    name=addon.name,
                    price=addon.price,
                    child_price=addon.child_price,
                    price_type=addon.price_type.value,
                )
                for addon in request.activity_addons
            ],
        )

        try:
            self.db.add(tour)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                "Tour creation failed due to integrity constraint",
                extra={"slug": request.slug, "error": str(e)}
            )
            raise ConflictError(detail=f"Tour with slug '{request.slug}' already exists")

        logger.info(
            "Tour created successfully",
            extra={
                "tour_id": str(tour.id),
                "slug": tour.slug,
                "max_group_size": tour.max_group_size,
            }
        )

        return await self.get_tour_with_catalog(tour.id)

    async def get_tour_by_id(self, tour_id: UUID) -> Optional[Tour]:
        stmt = select(Tour).where(Tour.id == tour_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_slug(self, slug: str) -> Optional[Tour]:
        stmt = select(Tour).where(Tour.slug == slug)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour_by_id_or_raise(self, tour_id: UUID) -> Tour:
        """
        Get tour by ID or raise NotFoundError.

        Raises:
            NotFoundError: If tour not found
        """
        tour = await self.get_tour_by_id(tour_id)
        if not tour:
            logger.warning(
                "Tour not found",
                extra={"tour_id": str(tour_id)}
            )
            raise NotFoundError(
                resource_type="tour",
                resource_id=str(tour_id)
            )
        return tour

    async def get_tour_with_catalog(self, tour_id: UUID) -> Tour:
        """Tour with accommodation options and add-ons eagerly loaded."""
        stmt = (
            select(Tour)
            .options(
                selectinload(Tour.accommodation_options),
                selectinload(Tour.activity_addons),
            )
            .where(Tour.id == tour_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        tour = result.scalar_one_or_none()
        if not tour:
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))
        return tour

    async def upsert_pricing_config(self, request: UpsertPricingConfigRequest) -> PricingConfig:
        await self.get_tour_by_id_or_raise(request.tour_id)

        config = await self.get_pricing_config(request.tour_id)
        if config is None:
            config = PricingConfig(tour_id=request.tour_id)
            self.db.add(config)

        for field_name, value in request.model_dump(exclude={"tour_id"}).items():
            setattr(config, field_name, value)

        await self.db.commit()

        logger.info(
            "Pricing config saved",
            extra={
                "tour_id": str(request.tour_id),
                "group_discount_percent": config.group_discount_percent,
                "early_bird_percent": config.early_bird_percent,
            }
        )
        return config

    async def get_pricing_config(self, tour_id: UUID) -> PricingConfig | None:
        result = await self.db.execute(select(PricingConfig).where(PricingConfig.tour_id == tour_id))
        return result.scalar_one_or_none()

    async def get_pricing_rules(self, tour_id: UUID) -> PricingRules:
        return pricing_rules(await self.get_pricing_config(tour_id))

    async def load_accommodation_lines(
        self, tour_id: UUID, option_ids: Sequence[UUID | str]
    ) -> list[AccommodationLine]:
        """
        One line per selected night, in selection order.

        Raises:
            ValidationError: If an id is unknown, inactive or belongs to another tour
        """
        if not option_ids:
            return []
        wanted = [UUID(str(option_id)) for option_id in option_ids]
        result = await self.db.execute(
            select(AccommodationOption).where(
                AccommodationOption.tour_id == tour_id,
                AccommodationOption.id.in_(set(wanted)),
                AccommodationOption.is_active.is_(True),
            )
        )
        options = {option.id: option for option in result.scalars()}
        missing = [str(option_id) for option_id in wanted if option_id not in options]
        if missing:
            raise ValidationError(
                detail="Unknown accommodation option selected",
                violations=[{"path": "selected_accommodation_ids", "message": f"unknown id {m}"} for m in missing],
            )
        return [AccommodationLine(option_id=i, price_per_night=options[i].price_per_night) for i in wanted]

    async def load_addon_lines(self, tour_id: UUID, addon_ids: Sequence[UUID | str]) -> list[AddonLine]:
        """
        Selected add-ons; selecting the same add-on twice charges it once.

        Raises:
            ValidationError: If an id is unknown, inactive or belongs to another tour
        """
        if not addon_ids:
            return []
        wanted = list(dict.fromkeys(UUID(str(addon_id)) for addon_id in addon_ids))
        result = await self.db.execute(
            select(ActivityAddon).where(
                ActivityAddon.tour_id == tour_id,
                ActivityAddon.id.in_(wanted),
                ActivityAddon.is_active.is_(True),
            )
        )
        addons = {addon.id: addon for addon in result.scalars()}
        missing = [str(addon_id) for addon_id in wanted if addon_id not in addons]
        if missing:
            raise ValidationError(
                detail="Unknown activity add-on selected",
                violations=[{"path": "selected_addon_ids", "message": f"unknown id {m}"} for m in missing],
            )
        return [
            AddonLine(
                addon_id=addon_id,
                price=addons[addon_id].price,
                price_type=addons[addon_id].price_type,
                child_price=addons[addon_id].child_price,
            )
            for addon_id in wanted
        ]
