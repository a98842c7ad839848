from dataclasses import dataclass
from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.engine import Engine

from .config import Settings
from .db import build_engine, build_session_factory, init_db
from .psp.dispatcher import PSPDispatcher
from .services.callback_router import CallbackRouter
from .services.locks import KeyedLock
from .services.orchestrator import OrderOrchestrator
from .services.order_store import OrderStore
from .services.payer_service import PayerResolver

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@dataclass
class Services:
    """Process-wide collaborators, built once at startup."""
    settings: Settings
    engine: Engine
    store: OrderStore
    dispatcher: PSPDispatcher
    orchestrator: OrderOrchestrator
    callbacks: CallbackRouter
    templates: Jinja2Templates


def build_services(settings: Settings, dispatcher: PSPDispatcher = None) -> Services:
    """
    Wire the order store, adapters, orchestrator and callback router.

    ``dispatcher`` may be supplied to replace the adapters built from settings.
    """
    engine = build_engine(settings.DATABASE_URL)
    init_db(engine)
    store = OrderStore(build_session_factory(engine))
    locks = KeyedLock()
    dispatcher = dispatcher or PSPDispatcher.from_settings(settings)

    return Services(
        settings=settings,
        engine=engine,
        store=store,
        dispatcher=dispatcher,
        orchestrator=OrderOrchestrator(
            store=store,
            dispatcher=dispatcher,
            payer_resolver=PayerResolver(store, locks),
            locks=locks,
            base_url=settings.BASE_URL,
        ),
        callbacks=CallbackRouter(store, dispatcher, locks),
        templates=Jinja2Templates(directory=str(TEMPLATES_DIR)),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_orchestrator(request: Request) -> OrderOrchestrator:
    return request.app.state.services.orchestrator


def get_callback_router(request: Request) -> CallbackRouter:
    return request.app.state.services.callbacks
