"""
structlog setup: JSON lines on stdout, request context merged in, and
payment credentials masked before anything is rendered.
"""
import logging
import sys
from typing import Any, Dict

import structlog

from paybridge.config import settings

# Keys whose values must never reach a log line
SENSITIVE_KEYS = frozenset([
    "merchantToken",
    "merchant_key",
    "client_secret",
    "paymentIntent",
    "ephemeralKey",
    "access_token",
    "api_key",
    "authorization",
])


def _mask(value: Any) -> str:
    text = str(value)
    return f"***{text[-4:]}" if len(text) > 8 else "***"


def redact_secrets(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    for key in list(event_dict):
        if key in SENSITIVE_KEYS and event_dict[key] is not None:
            event_dict[key] = _mask(event_dict[key])
    return event_dict


def add_service_context(logger: Any, method_name: str, event_dict: Dict) -> Dict:
    event_dict.setdefault("service", "paybridge")
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_service_context,
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_logger(name: str = __name__):
    return structlog.get_logger(name)
