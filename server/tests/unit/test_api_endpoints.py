"""Integration tests for API endpoints."""

from datetime import timedelta
from uuid import uuid4

import jwt
import pytest

from booking_engine.core.config import settings
from booking_engine.core.database import utcnow

PROBLEM_JSON = "application/problem+json"


def start_date(days_ahead: int = 30) -> str:
    return (utcnow().date() + timedelta(days=days_ahead)).isoformat()


def bearer(user_id: str) -> dict:
    token = jwt.encode({"sub": user_id, "email": f"{user_id}@example.com"}, settings.bearer_token_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


async def open_checkout(client, tour, adults: int = 2, headers: dict | None = None, **extra):
    return await client.post(
        "/v1/checkout/session",
        json={"tour_id": str(tour.id), "start_date": start_date(), "adults": adults, **extra},
        headers=headers or {},
    )


async def reserve(client, hold_id: str, headers: dict | None = None):
    return await client.post(
        "/v1/booking/reserve",
        json={
            "hold_id": hold_id,
            "contact": {"name": "Amina Otieno", "email": "amina@example.com", "phone": "+254700000000"},
        },
        headers=headers or {},
    )


@pytest.mark.asyncio
async def test_create_agent_endpoint(test_client):
    """Test the agent registration endpoint."""
    payload = {"business_name": "Serengeti Sunsets", "business_email": "info@serengeti.example"}

    response = await test_client.post("/v1/agent/create", json=payload)
    assert response.status_code == 201
    data = response.json()
    assert data["commission_rate"] == 10.0
    assert "id" in data

    duplicate = await test_client.post("/v1/agent/create", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.headers["content-type"].startswith(PROBLEM_JSON)
    assert duplicate.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_create_tour_endpoint(test_client, sample_tour_data):
    """Test the tour creation endpoint, including retries of the same creation."""
    payload = {
        **sample_tour_data,
        "accommodation_options": [{"name": "Mara Tented Camp", "tier": "MID_RANGE", "price_per_night": 5000}],
    }

    response = await test_client.post("/v1/tour/create", json=payload)
    assert response.status_code == 200
    data = response.json()
    assert data["title"] == sample_tour_data["title"]
    assert data["slug"] == sample_tour_data["slug"]
    assert data["status"] == "ACTIVE"
    assert [o["name"] for o in data["accommodation_options"]] == ["Mara Tented Camp"]

    retry = await test_client.post("/v1/tour/create", json=payload)
    assert retry.status_code == 200
    assert retry.json()["id"] == data["id"]

    clash = await test_client.post("/v1/tour/create", json={**payload, "title": "Another Safari"})
    assert clash.status_code == 409


@pytest.mark.asyncio
async def test_create_tour_invalid_data(test_client, sample_tour_data):
    """Test tour creation with invalid data."""
    response = await test_client.post(
        "/v1/tour/create",
        json={**sample_tour_data, "title": "", "slug": "Not A Slug"},
    )

    assert response.status_code == 422
    assert response.headers["content-type"].startswith(PROBLEM_JSON)
    data = response.json()
    assert data["code"] == "VALIDATION_FAILED"
    assert {v["path"] for v in data["violations"]} >= {"title", "slug"}


@pytest.mark.asyncio
async def test_checkout_rejects_unknown_fields(test_client, tour):
    response = await open_checkout(test_client, tour, adults=2, adult=3)

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_FAILED"
    assert [v["path"] for v in data["violations"]] == ["adult"]


@pytest.mark.asyncio
async def test_get_tour_endpoint(test_client, tour):
    response = await test_client.post("/v1/tour/get", json={"tour_id": str(tour.id)})
    assert response.status_code == 200
    assert response.json()["activity_addons"][0]["name"] == "Hot air balloon"

    missing = await test_client.post("/v1/tour/get", json={"tour_id": str(uuid4())})
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_pricing_endpoint_changes_quotes(test_client, tour):
    response = await test_client.post(
        "/v1/tour/pricing",
        json={"tour_id": str(tour.id), "group_discount_threshold": 2, "group_discount_percent": 10.0},
    )
    assert response.status_code == 200

    checkout = await open_checkout(test_client, tour, adults=2)
    breakdown = checkout.json()["price_breakdown"]
    assert breakdown["group_discount_amount"] == 2000
    # 18000 discounted subtotal plus the 5% service fee
    assert breakdown["total_amount"] == 18900


@pytest.mark.asyncio
async def test_full_booking_flow(test_client, tour, fake_gateway):
    """Checkout, reserve, pay and confirm through the HTTP surface."""
    checkout = await open_checkout(test_client, tour, adults=2)
    assert checkout.status_code == 201
    session = checkout.json()
    assert session["hold"]["status"] == "ACTIVE"
    assert session["price_breakdown"]["total_amount"] == 21000

    reserved = await reserve(test_client, session["hold_id"])
    assert reserved.status_code == 201
    booking = reserved.json()
    assert booking["status"] == "PENDING"
    assert booking["total_amount"] == 21000
    assert booking["payment_due_at"] is not None

    initiated = await test_client.post("/v1/payment/initiate", json={"booking_id": booking["id"]})
    assert initiated.status_code == 200
    payment = initiated.json()
    assert payment["redirect_url"].startswith("https://pay.example.com/checkout/")

    fake_gateway.report(payment["tracking_id"], 1, amount=21000)
    ack = await test_client.post(
        "/v1/payment/notification",
        json={
            "OrderTrackingId": payment["tracking_id"],
            "OrderMerchantReference": payment["merchant_reference"],
            "OrderNotificationType": "IPNCHANGE",
        },
    )
    assert ack.status_code == 200
    assert ack.json() == {
        "orderNotificationType": "IPNCHANGE",
        "orderTrackingId": payment["tracking_id"],
        "orderMerchantReference": payment["merchant_reference"],
        "status": 200,
    }

    fetched = await test_client.post("/v1/booking/get", json={"booking_id": booking["id"]})
    assert fetched.json()["status"] == "CONFIRMED"
    assert fetched.json()["payment_status"] == "COMPLETED"

    status = await test_client.post("/v1/payment/status", json={"booking_id": booking["id"]})
    assert status.status_code == 200
    assert status.json()["amount_paid"] == 21000

    again = await test_client.post("/v1/payment/initiate", json={"booking_id": booking["id"]})
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_checkout_idempotency_replay(test_client, tour):
    headers = {"Idempotency-Key": "checkout-key-1"}

    first = await open_checkout(test_client, tour, adults=2, headers=headers)
    second = await open_checkout(test_client, tour, adults=2, headers=headers)

    assert first.status_code == second.status_code == 201
    assert first.json() == second.json()

    calendar = await test_client.post(
        "/v1/availability/calendar",
        json={"tour_id": str(tour.id), "date_from": start_date(), "date_to": start_date()},
    )
    assert calendar.json()["days"][0]["held_spots"] == 2


@pytest.mark.asyncio
async def test_checkout_idempotency_key_mismatch(test_client, tour):
    headers = {"Idempotency-Key": "checkout-key-2"}
    await open_checkout(test_client, tour, adults=2, headers=headers)

    response = await open_checkout(test_client, tour, adults=3, headers=headers)

    assert response.status_code == 422
    assert response.json()["code"] == "IDEMPOTENCY_KEY_MISMATCH"


@pytest.mark.asyncio
async def test_rejected_checkout_is_replayed(test_client, tour):
    headers = {"Idempotency-Key": "checkout-key-3"}

    first = await open_checkout(test_client, tour, adults=11, headers=headers)
    second = await open_checkout(test_client, tour, adults=11, headers=headers)

    assert first.status_code == second.status_code == 422
    assert first.json()["code"] == "PARTY_SIZE_EXCEEDED"
    # trace_id belongs to each request, the rest is replayed verbatim
    first_body = {k: v for k, v in first.json().items() if k != "trace_id"}
    assert second.json() == first_body
    assert second.headers["content-type"].startswith(PROBLEM_JSON)


@pytest.mark.asyncio
async def test_checkout_capacity_exceeded(test_client, tour):
    assert (await open_checkout(test_client, tour, adults=10)).status_code == 201

    response = await open_checkout(test_client, tour, adults=1)

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "CAPACITY_EXCEEDED"
    assert data["spots_remaining"] == 0


@pytest.mark.asyncio
async def test_hold_extend_and_release(test_client, tour):
    hold_id = (await open_checkout(test_client, tour)).json()["hold_id"]

    extended = await test_client.post("/v1/checkout/hold", json={"hold_id": hold_id, "action": "extend"})
    assert extended.status_code == 200
    assert extended.json()["status"] == "ACTIVE"

    released = await test_client.post("/v1/checkout/hold", json={"hold_id": hold_id, "action": "release"})
    assert released.json()["status"] == "RELEASED"

    revived = await test_client.post("/v1/checkout/hold", json={"hold_id": hold_id, "action": "extend"})
    assert revived.status_code == 410
    assert revived.json()["code"] == "HOLD_EXPIRED"

    reserved = await reserve(test_client, hold_id)
    assert reserved.status_code == 410


@pytest.mark.asyncio
async def test_unknown_hold_action(test_client):
    response = await test_client.post("/v1/checkout/hold", json={"hold_id": str(uuid4()), "action": "extend"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_signed_in_buyer_owns_hold_and_booking(test_client, tour):
    headers = bearer("buyer-7")

    hold_id = (await open_checkout(test_client, tour, headers=headers)).json()["hold_id"]
    booking = (await reserve(test_client, hold_id, headers=headers)).json()

    assert booking["user_id"] == "buyer-7"


@pytest.mark.asyncio
async def test_invalid_bearer_token(test_client, tour):
    response = await open_checkout(test_client, tour, headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json()["code"] == "UNAUTHENTICATED"


@pytest.mark.asyncio
async def test_cancel_endpoint_is_idempotent(test_client, tour):
    hold_id = (await open_checkout(test_client, tour)).json()["hold_id"]
    booking = (await reserve(test_client, hold_id)).json()
    headers = {"Idempotency-Key": "cancel-key-1"}
    body = {"booking_id": booking["id"], "reason": "Visa delays"}

    first = await test_client.post("/v1/booking/cancel", json=body, headers=headers)
    second = await test_client.post("/v1/booking/cancel", json=body, headers=headers)
    without_key = await test_client.post("/v1/booking/cancel", json=body)

    assert first.status_code == second.status_code == 200
    assert first.json() == second.json()
    assert first.json()["status"] == "CANCELLED"
    assert first.json()["refund_percentage"] == 100
    assert without_key.status_code == 409
    assert without_key.json()["code"] == "ALREADY_CANCELLED"


@pytest.mark.asyncio
async def test_complete_pending_booking_is_rejected(test_client, tour):
    hold_id = (await open_checkout(test_client, tour)).json()["hold_id"]
    booking = (await reserve(test_client, hold_id)).json()

    response = await test_client.post("/v1/booking/complete", json={"booking_id": booking["id"]})

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_availability_endpoints(test_client, tour):
    blocked_day = start_date(40)

    response = await test_client.post(
        "/v1/availability/set",
        json={"tour_id": str(tour.id), "dates": [blocked_day], "type": "BLOCKED", "note": "Private charter"},
    )
    assert response.status_code == 200
    assert response.json()["entries"][0]["type"] == "BLOCKED"

    check = await test_client.post(
        "/v1/availability/check",
        json={"tour_id": str(tour.id), "start_date": start_date(39), "guests": 2},
    )
    assert check.json()["available"] is False
    assert check.json()["blocked_dates"] == [blocked_day]

    blocked = await open_checkout(test_client, tour, adults=1, start_date=start_date(39))
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "DATE_BLOCKED"

    cleared = await test_client.post(
        "/v1/availability/clear", json={"tour_id": str(tour.id), "dates": [blocked_day]}
    )
    assert cleared.json()["cleared"] == 1

    check = await test_client.post(
        "/v1/availability/check",
        json={"tour_id": str(tour.id), "start_date": start_date(39), "guests": 2},
    )
    assert check.json()["available"] is True


@pytest.mark.asyncio
async def test_metrics_count_holds(test_client, tour):
    await open_checkout(test_client, tour)

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert "booking_holds_created_total" in response.text


@pytest.mark.asyncio
async def test_second_payment_attempt_is_refused(test_client, tour, fake_gateway):
    session = (await open_checkout(test_client, tour, adults=2)).json()
    booking = (await reserve(test_client, session["hold_id"])).json()

    first = await test_client.post("/v1/payment/initiate", json={"booking_id": booking["id"]})
    second = await test_client.post("/v1/payment/initiate", json={"booking_id": booking["id"]})

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["code"] == "PAYMENT_IN_PROGRESS"
    assert second.json()["tracking_id"] == first.json()["tracking_id"]
    assert len(fake_gateway.orders) == 1
