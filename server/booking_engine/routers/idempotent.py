"""Replay support for mutating endpoints that accept an Idempotency-Key."""

import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ProblemDetailsException
from ..services.idempotency_service import IdempotencyService

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[BaseModel]]


async def handle_idempotent_operation(
    method: str,
    idempotency_key: Optional[str],
    request: BaseModel,
    operation_func: Operation,
    db: AsyncSession,
    status_code: int = 200,
) -> JSONResponse:
    """
    Run ``operation_func`` once per idempotency key.

    Successful responses and problem responses are both stored, so a retry
    with the same key and body replays the original outcome. Without a key
    the operation simply runs.
    """
    if idempotency_key is None:
        result = await operation_func()
        return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))

    idempotency_service = IdempotencyService(db)
    request_body: dict[str, Any] = request.model_dump(mode="json")

    cached_response = await idempotency_service.check_idempotency(
        idempotency_key=idempotency_key,
        method=method,
        request_body=request_body
    )

    if cached_response:
        cached_status, response_body = cached_response
        media_type = "application/problem+json" if cached_status >= 400 else "application/json"
        return JSONResponse(status_code=cached_status, content=response_body, media_type=media_type)

    try:
        result = await operation_func()
    except ProblemDetailsException as e:
        if e.status_code < 500:
            await idempotency_service.store_response(
                idempotency_key=idempotency_key,
                method=method,
                request_body=request_body,
                status_code=e.status_code,
                response_body=dict(e.problem_details)
            )
        raise

    response_dict = result.model_dump(mode="json")
    await idempotency_service.store_response(
        idempotency_key=idempotency_key,
        method=method,
        request_body=request_body,
        status_code=status_code,
        response_body=response_dict
    )

    return JSONResponse(status_code=status_code, content=response_dict)
