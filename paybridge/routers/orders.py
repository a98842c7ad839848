from fastapi import APIRouter, Depends

from paybridge.deps import get_orchestrator
from paybridge.http_errors import to_http_exception
from paybridge.schemas_pkg import OrderOut
from paybridge.services.orchestrator import OrderOrchestrator

router = APIRouter(tags=["Orders"])


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, orchestrator: OrderOrchestrator = Depends(get_orchestrator)):
    """Current status of an order, for clients polling after a redirect."""
    result = orchestrator.get_order(order_id)
    if not result.ok:
        raise to_http_exception(result.error)
    return result.value.to_dict()
