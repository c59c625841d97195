"""Stored responses for requests carrying an ``Idempotency-Key``."""

import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import utcnow
from ..core.exceptions import PROBLEM_BASE_URI, ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)

CachedResponse = tuple[int, dict[str, Any]]


class IdempotencyMismatchError(ProblemDetailsException):
    """The key was already spent on a different request body."""

    def __init__(self, idempotency_key: str, method: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=f"Idempotency key '{idempotency_key}' was already used for '{method}' with a different request body",
            type_uri=f"{PROBLEM_BASE_URI}/idempotency-key-mismatch",
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "retryable": False,
                "idempotency_key": idempotency_key,
                "method": method,
            },
        )


def fingerprint(request_body: dict[str, Any]) -> str:
    """SHA-256 of the body with sorted keys, so field order never matters."""
    canonical = json.dumps(request_body, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyService:
    """
    Replays the first response stored under a (key, operation) pair.

    Records live for ``settings.idempotency_ttl_hours``; after that the key
    is free again and the cleanup worker deletes the row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _live_record(self, idempotency_key: str, method: str, now: datetime) -> IdempotencyRecord | None:
        result = await self.db.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.idempotency_key == idempotency_key,
                IdempotencyRecord.method == method,
                IdempotencyRecord.expires_at > now,
            )
        )
        return result.scalar_one_or_none()

    async def check_idempotency(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
        now: datetime | None = None,
    ) -> CachedResponse | None:
        """
        Return the stored ``(status_code, body)`` for a repeated request,
        or None for a new one.

        Raises:
            IdempotencyMismatchError: the key was used with another body
        """
        record = await self._live_record(idempotency_key, method, now or utcnow())
        if record is None:
            return None

        if record.request_body_hash != fingerprint(request_body):
            logger.warning(
                "Idempotency key reused with a different body",
                extra={"idempotency_key": idempotency_key, "method": method}
            )
            raise IdempotencyMismatchError(idempotency_key, method)

        logger.info(
            "Replaying stored response",
            extra={
                "idempotency_key": idempotency_key,
                "method": method,
                "status_code": record.response_status_code,
            }
        )
        return record.response_status_code, dict(record.response_body)

    async def store_response(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
        status_code: int,
        response_body: dict[str, Any],
        now: datetime | None = None,
    ) -> None:
        """
        Persist a JSON-compatible response body under the key.

        When a concurrent request got there first the earlier record wins.
        """
        expires_at = (now or utcnow()) + timedelta(hours=settings.idempotency_ttl_hours)
        self.db.add(
            IdempotencyRecord(
                idempotency_key=idempotency_key,
                method=method,
                request_body_hash=fingerprint(request_body),
                response_status_code=status_code,
                response_body=response_body,
                expires_at=expires_at,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(
                "Idempotency record already stored by a concurrent request",
                extra={"idempotency_key": idempotency_key, "method": method}
            )

    async def cleanup_expired_records(self, now: datetime | None = None) -> int:
        result = await self.db.execute(
            delete(IdempotencyRecord).where(IdempotencyRecord.expires_at <= (now or utcnow()))
        )
        await self.db.commit()

        deleted = result.rowcount or 0
        if deleted:
            logger.info("Deleted expired idempotency records", extra={"deleted_count": deleted})
        return deleted
