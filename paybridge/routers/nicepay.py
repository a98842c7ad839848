"""
NICEPay redirect v2 (GatewayRegistration).

GET  /nicepay-order    register the transaction, returns NICEPay fields + nicePayUrl
POST /nicepay-success  callBackUrl: browser returns here with the payment result
POST /nicepay-notify   dbProcessUrl: server-to-server payment notification
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import HTMLResponse
from starlette.concurrency import run_in_threadpool

from paybridge.deps import get_callback_router, get_orchestrator
from paybridge.errors import ValidationError
from paybridge.http_errors import to_http_exception
from paybridge.logging_config import get_logger
from paybridge.psp.adapter import PaymentProvider
from paybridge.schemas_pkg import Address, PaymentRequest
from paybridge.services.callback_router import CallbackRouter
from paybridge.services.orchestrator import OrderOrchestrator
from paybridge.views import bridge_error_page, bridge_page

logger = get_logger(__name__)

router = APIRouter(tags=["NICEPay"])


async def _callback_payload(request: Request) -> Dict[str, Any]:
    """NICEPay posts form fields; JSON is accepted too. Query parameters fill gaps."""
    content_type = request.headers.get("content-type", "")
    data: Dict[str, Any] = {}
    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Invalid JSON")
        data.update(body)
    elif content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        data.update({k: v for k, v in form.items() if isinstance(v, str)})
    for key, value in request.query_params.items():
        data.setdefault(key, value)
    return data


@router.get("/nicepay-order")
def nicepay_order(
    request: Request,
    amount: int = Query(10000, description="Amount in IDR"),
    currency: str = Query("IDR"),
    email: str = Query("jhondoe@gmail.com"),
    name: str = Query("Jhon Doe"),
    phone: str = Query("08123456789"),
    description: str = Query("Test Transaction Nicepay"),
    goods_name: Optional[str] = Query(None),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    billing = Address(name=name, phone=phone, email=email)
    result = orchestrator.submit(PaymentRequest(
        provider=PaymentProvider.GATEWAY_REGISTRATION.value,
        amount=amount,
        currency=currency,
        payer_email=email,
        description=description,
        goods_name=goods_name or name,
        billing=billing,
        delivery=billing,
        client_ip=request.client.host if request.client else "127.0.0.1",
        user_agent=request.headers.get("user-agent"),
        user_language=request.headers.get("accept-language"),
        idempotency_key=idempotency_key,
    ))
    if not result.ok:
        raise to_http_exception(result.error)

    outcome = result.value
    return {**outcome.payload, "orderId": outcome.order.order_id}


@router.post("/nicepay-success", response_class=HTMLResponse)
async def nicepay_success(
    request: Request,
    callbacks: CallbackRouter = Depends(get_callback_router),
):
    try:
        payload = await _callback_payload(request)
    except HTTPException as e:
        return bridge_error_page(request, ValidationError(str(e.detail)))

    result = await run_in_threadpool(callbacks.gateway_callback, payload, "callback")
    if not result.ok:
        return bridge_error_page(request, result.error)
    return bridge_page(request, result.value)


@router.post("/nicepay-notify")
async def nicepay_notify(
    request: Request,
    callbacks: CallbackRouter = Depends(get_callback_router),
):
    payload = await _callback_payload(request)
    result = await run_in_threadpool(callbacks.gateway_callback, payload, "notify")
    if not result.ok:
        raise to_http_exception(result.error)

    outcome = result.value
    logger.info("nicepay_notification_processed", order_id=outcome.order.order_id, status=outcome.status, applied=outcome.applied)
    return {"ok": True, "status": outcome.status}
