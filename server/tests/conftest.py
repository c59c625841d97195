"""Test configuration and fixtures."""

import os

# Settings are read at import time, so point them at SQLite before anything loads
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["WORKERS_ENABLED"] = "false"

from datetime import datetime, timedelta  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from booking_engine.core.database import Base, get_db  # noqa: E402
from booking_engine.core.exceptions import PaymentGatewayError  # noqa: E402
from booking_engine.integrations.pesapal import (  # noqa: E402
    GatewayOrder,
    OrderSubmission,
    TransactionStatus,
    get_payment_gateway,
)
from booking_engine.models import Agent, Payment, PaymentStatus  # noqa: E402 - registers every model
from booking_engine.schemas.booking import ContactDetails, ReserveBookingRequest  # noqa: E402
from booking_engine.schemas.checkout import CreateCheckoutSessionRequest  # noqa: E402
from booking_engine.schemas.tour import (  # noqa: E402
    AccommodationOptionInput,
    ActivityAddonInput,
    CreateTourRequest,
)
from booking_engine.services.booking_service import BookingService  # noqa: E402
from booking_engine.services.hold_service import HoldService  # noqa: E402
from booking_engine.services.tour_service import TourService  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock for service-level tests
NOW = datetime(2026, 3, 2, 9, 0, 0)


class FakeGateway:
    """In-memory payment gateway; tests decide what each order reports."""

    def __init__(self):
        self.orders: list[GatewayOrder] = []
        self.statuses: dict[str, TransactionStatus] = {}
        self.status_calls: list[str] = []
        self.unavailable = False

    async def submit_order(self, order: GatewayOrder) -> OrderSubmission:
        if self.unavailable:
            raise PaymentGatewayError("Pesapal submit_order failed: connection refused", "submit_order")
        self.orders.append(order)
        tracking_id = f"TRK-{len(self.orders):04d}"
        return OrderSubmission(
            tracking_id=tracking_id,
            merchant_reference=order.merchant_reference,
            redirect_url=f"https://pay.example.com/checkout/{tracking_id}",
        )

    async def get_transaction_status(self, tracking_id: str) -> TransactionStatus:
        self.status_calls.append(tracking_id)
        if self.unavailable:
            raise PaymentGatewayError(
                "Pesapal get_transaction_status failed: connection refused", "get_transaction_status"
            )
        return self.statuses.get(tracking_id, TransactionStatus(status_code=0, description="INVALID"))

    def report(self, tracking_id: str, status_code: int, amount: int | None = None, method: str = "Visa"):
        self.statuses[tracking_id] = TransactionStatus(
            status_code=status_code,
            description={0: "INVALID", 1: "COMPLETED", 2: "FAILED", 3: "REVERSED"}[status_code],
            confirmation_code=f"CONF-{tracking_id}" if status_code == 1 else None,
            amount=amount,
            currency="USD",
            payment_method=method,
        )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, fake_gateway):
    """Application wired to the test session and the fake gateway."""
    from booking_engine.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def agent(test_session):
    agent = Agent(
        business_name="Savannah Trails Ltd",
        business_email="ops@savannahtrails.example",
        commission_rate=10.0,
    )
    test_session.add(agent)
    await test_session.commit()
    return agent


@pytest.fixture
def sample_tour_data(agent):
    """Three-day, two-night safari priced at $100 per adult."""
    return {
        "agent_id": str(agent.id),
        "title": "Maasai Mara Migration Safari",
        "slug": "maasai-mara-migration-safari",
        "description": "Three days following the great migration",
        "status": "ACTIVE",
        "max_group_size": 10,
        "duration_days": 3,
        "duration_nights": 2,
        "base_price": 10000,
        "currency": "USD",
        "deposit_enabled": True,
        "deposit_percentage": 30.0,
        "free_cancellation_days": 14,
    }


@pytest_asyncio.fixture
async def tour(test_session, sample_tour_data):
    """Bookable tour with one camp and one add-on in its catalog."""
    return await TourService(test_session).create_tour(
        CreateTourRequest(
            **sample_tour_data,
            accommodation_options=[
                AccommodationOptionInput(name="Mara Tented Camp", tier="MID_RANGE", price_per_night=5000),
            ],
            activity_addons=[
                ActivityAddonInput(name="Hot air balloon", price=20000, child_price=10000),
            ],
        )
    )


@pytest.fixture
def contact():
    return ContactDetails(name="Amina Otieno", email="amina@example.com", phone="+254700000000")


@pytest.fixture
def make_hold(test_session, tour):
    """Create a hold on the sample tour at the fixed clock."""

    async def _make_hold(days_ahead: int = 30, adults: int = 2, children: int = 0, user_id=None, now=NOW):
        request = CreateCheckoutSessionRequest(
            tour_id=tour.id,
            start_date=now.date() + timedelta(days=days_ahead),
            adults=adults,
            children=children,
        )
        hold, _ = await HoldService(test_session).create_hold(request, user_id=user_id, now=now)
        return hold

    return _make_hold


@pytest.fixture
def make_booking(test_session, make_hold, contact):
    """Hold then reserve, returning a PENDING booking."""

    async def _make_booking(days_ahead: int = 30, adults: int = 2, now=NOW):
        hold = await make_hold(days_ahead=days_ahead, adults=adults, now=now)
        return await BookingService(test_session).reserve(
            ReserveBookingRequest(hold_id=hold.id, contact=contact), now=now
        )

    return _make_booking


@pytest.fixture
def pay(test_session):
    """Record a completed payment against a booking, as the gateway would."""

    async def _pay(booking, amount: int | None = None, now=NOW):
        payment = Payment(
            booking_id=booking.id,
            amount=amount if amount is not None else booking.total_amount,
            currency=booking.currency,
            merchant_reference=f"{booking.reference}-{uuid4().hex[:8].upper()}",
            gateway_tracking_id=None,
            status=PaymentStatus.PROCESSING.value,
        )
        test_session.add(payment)
        await test_session.commit()
        await BookingService(test_session).confirm_payment(payment, now)
        return payment

    return _pay


@pytest.fixture
def now():
    """The fixed clock the hold and booking factories run at."""
    return NOW
