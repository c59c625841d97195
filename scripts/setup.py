#!/usr/bin/env python3
"""Setup script for the tour booking engine."""

import asyncio
import logging
import sys
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from booking_engine.core.database import async_session_factory, close_db
from booking_engine.models import Tour
from booking_engine.schemas.tour import (
    AccommodationOptionInput,
    ActivityAddonInput,
    CreateAgentRequest,
    CreateTourRequest,
    UpsertPricingConfigRequest,
)
from booking_engine.services.tour_service import TourService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def setup_database():
    """Bring the schema up to the latest migration."""
    logger.info("Setting up database...")

    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    # env.py drives its own event loop, so keep it off this one
    await asyncio.to_thread(command.upgrade, alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a demo agent with one bookable safari."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        existing_tours = await db.scalar(select(func.count()).select_from(Tour))
        if existing_tours:
            logger.info("Sample data already exists, skipping...")
            return

        service = TourService(db)
        agent = await service.create_agent(
            CreateAgentRequest(
                business_name="Savannah Trails Ltd",
                business_email="bookings@savannahtrails.example",
                commission_rate=12.0,
            )
        )
        tour = await service.create_tour(
            CreateTourRequest(
                agent_id=agent.id,
                title="Maasai Mara Migration Safari",
                slug="maasai-mara-migration-safari",
                description="Three days following the great migration across the Mara",
                status="ACTIVE",
                max_group_size=12,
                duration_days=3,
                duration_nights=2,
                base_price=45000,  # $450.00
                currency="USD",
                deposit_enabled=True,
                deposit_percentage=30.0,
                free_cancellation_days=14,
                accommodation_options=[
                    AccommodationOptionInput(name="Mara Tented Camp", tier="MID_RANGE", price_per_night=12000),
                    AccommodationOptionInput(name="Angama Lodge", tier="LUXURY", price_per_night=38000),
                ],
                activity_addons=[
                    ActivityAddonInput(name="Hot air balloon ride", price=45000, price_type="PER_PERSON"),
                    ActivityAddonInput(name="Maasai village visit", price=3000, child_price=1500),
                ],
            )
        )
        await service.upsert_pricing_config(
            UpsertPricingConfigRequest(
                tour_id=tour.id,
                group_discount_threshold=6,
                group_discount_percent=10.0,
                early_bird_days=60,
                early_bird_percent=15.0,
            )
        )
        logger.info(f"Sample data created: tour {tour.slug} ({tour.id})")


async def main():
    """Main setup function."""
    logger.info("Starting tour booking engine setup...")

    try:
        await setup_database()
        await create_sample_data()
    finally:
        await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn booking_engine.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
