"""
Stripe payment sheet (CardDirect).

GET  /payment-sheet   customer + ephemeral key + payment intent for the mobile SDK
POST /stripe-webhook  out-of-band completion of the payment intent
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from paybridge.deps import get_callback_router, get_orchestrator, get_services
from paybridge.errors import ProviderNotConfiguredError
from paybridge.http_errors import to_http_exception
from paybridge.logging_config import get_logger
from paybridge.psp.adapter import PaymentProvider
from paybridge.schemas_pkg import PaymentRequest
from paybridge.services.callback_router import CallbackRouter
from paybridge.services.orchestrator import OrderOrchestrator

logger = get_logger(__name__)

router = APIRouter(tags=["Stripe"])


@router.get("/payment-sheet")
def payment_sheet(
    amount: int = Query(1000, description="Amount in minor units"),
    currency: str = Query("usd"),
    email: str = Query("leo@gmail.com", description="Payer identity used for the Stripe customer"),
    description: Optional[str] = Query(None),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Get-or-create the Stripe customer and issue payment sheet credentials."""
    result = orchestrator.submit(PaymentRequest(
        provider=PaymentProvider.CARD_DIRECT.value,
        amount=amount,
        currency=currency,
        payer_email=email,
        description=description,
        idempotency_key=idempotency_key,
    ))
    if not result.ok:
        raise to_http_exception(result.error)

    outcome = result.value
    return {**outcome.payload, "orderId": outcome.order.order_id}


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    callbacks: CallbackRouter = Depends(get_callback_router),
):
    services = get_services(request)
    try:
        adapter = services.dispatcher.get_adapter(PaymentProvider.CARD_DIRECT)
    except ProviderNotConfiguredError:
        raise HTTPException(status_code=503, detail="Stripe webhook not configured")
    if not adapter.webhook_secret:
        raise HTTPException(status_code=503, detail="Stripe webhook not configured")

    payload = await request.body()
    verified = adapter.verify_webhook(payload, stripe_signature)
    if not verified.ok:
        logger.warning("stripe_webhook_rejected", reason=verified.error.message)
        raise HTTPException(status_code=400, detail=verified.error.public_message)

    event = verified.value
    result = await run_in_threadpool(callbacks.card_event, event)
    if not result.ok:
        raise to_http_exception(result.error)

    outcome = result.value
    return {"ok": True, "status": outcome.status, "applied": outcome.applied}
