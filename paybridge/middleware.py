"""
Request tracing for the HTTP surface.

Each request gets an id (taken from ``X-Request-ID`` or freshly generated)
bound into the structlog context, so the adapter, store and callback logs of
one payment round trip can be correlated. Provider-facing paths also carry
the provider name.
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from structlog.contextvars import bind_contextvars, clear_contextvars

from paybridge.logging_config import get_logger

logger = get_logger(__name__)

PROVIDER_PATHS = {
    "/payment-sheet": "stripe",
    "/stripe-webhook": "stripe",
    "/paypal-order": "paypal",
    "/paypal-success": "paypal",
    "/paypal-cancel": "paypal",
    "/nicepay-order": "nicepay",
    "/nicepay-success": "nicepay",
    "/nicepay-notify": "nicepay",
}


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


async def request_id_middleware(request: Request, call_next: Callable) -> Response:
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    path = request.url.path

    clear_contextvars()
    bind_contextvars(request_id=request_id, method=request.method, path=path)
    provider = PROVIDER_PATHS.get(path)
    if provider:
        bind_contextvars(provider=provider)
    request.state.request_id = request_id

    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed", duration_ms=_elapsed_ms(started))
        clear_contextvars()
        raise

    log = logger.warning if response.status_code >= 500 else logger.info
    log(
        "request_completed",
        status_code=response.status_code,
        order_id=response.headers.get("X-Order-Id"),
        duration_ms=_elapsed_ms(started),
        client_host=request.client.host if request.client else None,
    )
    response.headers["X-Request-ID"] = request_id
    clear_contextvars()
    return response
