"""FastAPI dependencies for database sessions, buyer identity and idempotency keys."""

from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .database import get_db
from .exceptions import AuthenticationError, ValidationError


def decode_bearer_token(authorization: str) -> dict:
    """
    Decode a ``Bearer`` authorization header into the buyer identity.

    Raises:
        AuthenticationError: If the header or token is malformed
    """
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"],
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {e}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError(detail="Invalid token payload")

    return {
        "user_id": str(user_id),
        "email": payload.get("email"),
        "name": payload.get("name"),
    }


async def get_optional_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Optional[dict]:
    """
    Identify the buyer when a bearer token is supplied.

    Anonymous checkout is allowed, so a missing header yields ``None``;
    a present but invalid token is still rejected.
    """
    if not authorization:
        return None
    return decode_bearer_token(authorization)


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate the idempotency key from request headers.

    Raises:
        ValidationError: If idempotency key format is invalid
    """
    if idempotency_key is None:
        return None

    if len(idempotency_key) < 1 or len(idempotency_key) > 255:
        raise ValidationError(
            detail="Idempotency key must be between 1 and 255 characters",
            violations=[{"path": "Idempotency-Key", "message": "length must be 1-255"}],
        )

    return idempotency_key


DatabaseSession = Depends(get_db)
OptionalUser = Depends(get_optional_user)
IdempotencyKey = Depends(get_idempotency_key)
