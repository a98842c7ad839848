"""
PayPal wallet (RedirectWallet).

GET /paypal-order    create the order, returns PayPal's JSON and status code
GET /paypal-success  return URL after approval: capture and hand back to the app
GET /paypal-cancel   cancel URL: tell the webview host and close it
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from paybridge.deps import get_callback_router, get_orchestrator
from paybridge.http_errors import to_http_exception
from paybridge.psp.adapter import PaymentProvider
from paybridge.schemas_pkg import PaymentRequest
from paybridge.services.callback_router import CallbackRouter
from paybridge.services.orchestrator import OrderOrchestrator
from paybridge.views import bridge_error_page, bridge_page

router = APIRouter(tags=["PayPal"])


@router.get("/paypal-order")
def paypal_order(
    amount: int = Query(10000, description="Amount in minor units"),
    currency: str = Query("USD"),
    email: Optional[str] = Query("leo-personal@gmail.com"),
    description: Optional[str] = Query(None),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """
    Create an order to start the transaction.
    @see https://developer.paypal.com/docs/api/orders/v2/#orders_create
    """
    result = orchestrator.submit(PaymentRequest(
        provider=PaymentProvider.REDIRECT_WALLET.value,
        amount=amount,
        currency=currency,
        payer_email=email,
        description=description,
        idempotency_key=idempotency_key,
    ))
    if not result.ok:
        raise to_http_exception(result.error)

    outcome = result.value
    return JSONResponse(
        content=outcome.payload,
        status_code=outcome.status_code,
        headers={"X-Order-Id": outcome.order.order_id},
    )


@router.get("/paypal-success", response_class=HTMLResponse)
def paypal_success(
    request: Request,
    token: Optional[str] = Query(None),
    payer_id: Optional[str] = Query(None, alias="PayerID"),
    callbacks: CallbackRouter = Depends(get_callback_router),
):
    result = callbacks.wallet_success(token, payer_id)
    if not result.ok:
        return bridge_error_page(request, result.error)
    return bridge_page(request, result.value)


@router.get("/paypal-cancel", response_class=HTMLResponse)
def paypal_cancel(
    request: Request,
    token: Optional[str] = Query(None),
    callbacks: CallbackRouter = Depends(get_callback_router),
):
    result = callbacks.wallet_cancel(token)
    if not result.ok:
        return bridge_error_page(request, result.error)
    return bridge_page(request, result.value)
