"""Unit tests for the idempotency store."""

from datetime import timedelta

import pytest

from booking_engine.services.idempotency_service import IdempotencyMismatchError, IdempotencyService

BODY = {"tour_id": "t-1", "adults": 2, "start_date": "2026-04-01"}


@pytest.mark.asyncio
async def test_new_key_has_no_cached_response(test_session, now):
    service = IdempotencyService(test_session)

    assert await service.check_idempotency("key-1", "checkout/session", BODY, now=now) is None


@pytest.mark.asyncio
async def test_stored_response_is_replayed(test_session, now):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "checkout/session", BODY, 201, {"hold_id": "h-1"}, now=now)

    # Key order does not change the request hash
    reordered = {"start_date": "2026-04-01", "adults": 2, "tour_id": "t-1"}
    cached = await service.check_idempotency("key-1", "checkout/session", reordered, now=now)

    assert cached == (201, {"hold_id": "h-1"})


@pytest.mark.asyncio
async def test_same_key_with_different_body_is_rejected(test_session, now):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "checkout/session", BODY, 201, {"hold_id": "h-1"}, now=now)

    with pytest.raises(IdempotencyMismatchError) as exc_info:
        await service.check_idempotency("key-1", "checkout/session", {**BODY, "adults": 3}, now=now)

    assert exc_info.value.code == "IDEMPOTENCY_KEY_MISMATCH"
    assert exc_info.value.problem_details["idempotency_key"] == "key-1"


@pytest.mark.asyncio
async def test_keys_are_scoped_per_operation(test_session, now):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "checkout/session", BODY, 201, {"hold_id": "h-1"}, now=now)

    assert await service.check_idempotency("key-1", "booking/reserve", {"hold_id": "h-1"}, now=now) is None


@pytest.mark.asyncio
async def test_expired_record_is_ignored(test_session, now):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "checkout/session", BODY, 201, {"hold_id": "h-1"}, now=now)

    later = now + timedelta(hours=25)
    assert await service.check_idempotency("key-1", "checkout/session", {"adults": 9}, now=later) is None


@pytest.mark.asyncio
async def test_duplicate_store_keeps_first_response(test_session, now):
    service = IdempotencyService(test_session)
    await service.store_response("key-1", "checkout/session", BODY, 201, {"hold_id": "h-1"}, now=now)
    await service.store_response("key-1", "checkout/session", BODY, 201, {"hold_id": "h-2"}, now=now)

    assert await service.check_idempotency("key-1", "checkout/session", BODY, now=now) == (201, {"hold_id": "h-1"})


@pytest.mark.asyncio
async def test_cleanup_removes_only_expired(test_session, now):
    service = IdempotencyService(test_session)
    await service.store_response("old", "checkout/session", BODY, 201, {"hold_id": "h-1"}, now=now - timedelta(days=2))
    await service.store_response("fresh", "checkout/session", BODY, 201, {"hold_id": "h-2"}, now=now)

    assert await service.cleanup_expired_records(now=now) == 1
    assert await service.cleanup_expired_records(now=now) == 0
    assert await service.check_idempotency("fresh", "checkout/session", BODY, now=now) is not None
