# app/core/middleware.py
"""Request middleware: correlation ids and access logging"""
import logging
import time
import uuid

from starlette.requests import Request

from app.utils.my_logging import set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


async def correlation_id_middleware(request: Request, call_next):
    """Reuse the caller's correlation id or mint one, and echo it back"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
    request.state.correlation_id = correlation_id
    set_correlation_id(correlation_id)

    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def request_logging_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    actor = request.headers.get("X-Actor-Id", "anonymous")
    role = request.headers.get("X-Actor-Role", "customer")
    message = f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms actor={actor} role={role}"
    if response.status_code >= 500:
        logger.warning(message)
    else:
        logger.info(message)
    return response
