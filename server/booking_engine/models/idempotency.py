"""Idempotency record model definition."""

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base
from .mixins import IdMixin, TimestampMixin


class IdempotencyRecord(IdMixin, TimestampMixin, Base):
    """Stored response for a mutating request sent with an Idempotency-Key."""

    __tablename__ = "idempotency_records"

    # Idempotency key and operation combination
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    method: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # SHA-256 of the normalized request body
    request_body_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    response_status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    response_body: Mapped[dict] = mapped_column(JSON, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint("length(idempotency_key) > 0", name="ck_idempotency_key_not_empty"),
        CheckConstraint("length(request_body_hash) = 64", name="ck_idempotency_hash_length"),
        CheckConstraint(
            "response_status_code BETWEEN 100 AND 599",
            name="ck_idempotency_status_code_valid"
        ),
        UniqueConstraint("idempotency_key", "method", name="uq_idempotency_key_method"),
    )

    def __repr__(self) -> str:
        return (
            f"<IdempotencyRecord(id={self.id}, key='{self.idempotency_key}', "
            f"method='{self.method}', status={self.response_status_code}, "
            f"expires_at={self.expires_at})>"
        )
