"""HTML bridge responses for provider redirects and callbacks."""
from typing import Optional

from fastapi import Request
from fastapi.responses import HTMLResponse

from .errors import PaymentError
from .http_errors import status_for
from .logging_config import get_logger
from .services.callback_router import CallbackOutcome
from .services.deeplink import BridgeView, bridge_for_error, bridge_for_order

logger = get_logger(__name__)


def _render(request: Request, view: BridgeView, status_code: int = 200) -> HTMLResponse:
    templates = request.app.state.services.templates
    return templates.TemplateResponse(request, "bridge.html", view.context(), status_code=status_code)


def bridge_page(request: Request, outcome: CallbackOutcome) -> HTMLResponse:
    settings = request.app.state.services.settings
    view = bridge_for_order(settings.DEEP_LINK_BASE, outcome.order, outcome.message, payer_id=outcome.payer_id)
    return _render(request, view)


def bridge_error_page(request: Request, error: PaymentError, order_id: Optional[str] = None) -> HTMLResponse:
    """Bridge page for a callback that could not be applied; no state was changed."""
    settings = request.app.state.services.settings
    code = status_for(error)
    logger.info("callback_rejected", error_code=error.code, status_code=code, error=error.message)
    view = bridge_for_error(settings.DEEP_LINK_BASE, error.public_message, order_id=order_id)
    return _render(request, view, status_code=code)
