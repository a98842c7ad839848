# paybridge/main.py

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# ---------------------------------------------
# LOAD ENVIRONMENT VARIABLES
# ---------------------------------------------
load_dotenv()

from paybridge.config import Settings, settings as default_settings
from paybridge.deps import Services, build_services
from paybridge.logging_config import get_logger
from paybridge.middleware import request_id_middleware
from paybridge.routers import (
    health,
    nicepay,
    orders,
    paypal,
    stripe_payments,
)

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or default_settings

    # ---------------------------------------------
    # APP INIT
    # ---------------------------------------------
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
    )

    # ---------------------------------------------
    # CORS + REQUEST ID
    # ---------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_id_middleware)

    app.state.services = services or build_services(settings)

    # ---------------------------------------------
    # ROUTERS
    # ---------------------------------------------
    # Provider return URLs are registered with the providers, so paths carry no prefix.
    app.include_router(health.router)
    app.include_router(stripe_payments.router)
    app.include_router(paypal.router)
    app.include_router(nicepay.router)
    app.include_router(orders.router)

    # ---------------------------------------------
    # ROOT ENDPOINT
    # ---------------------------------------------
    @app.get("/")
    def root():
        return {"message": f"{settings.APP_NAME} is running"}

    logger.info(
        "app_created",
        environment=settings.ENVIRONMENT,
        providers=[p.value for p in app.state.services.dispatcher.providers()],
    )
    return app


app = create_app()
