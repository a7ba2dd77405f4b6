"""
structlog setup for the booking service.

Every record carries the service name and environment, the request context
bound by RequestLoggingMiddleware, and never a payment secret: provider keys,
card data and webhook signatures are masked before rendering. Production
renders JSON lines; anything else gets the coloured console renderer.
"""

import logging
import sys

import structlog

from dancelink.core.config import Settings, get_settings

SENSITIVE_KEYS = frozenset({"signature", "stripe_signature", "api_key", "authorization", "card_number"})

# Third-party loggers that echo request bodies or SQL at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "stripe": logging.WARNING,
    "httpx": logging.WARNING,
    "aiosmtplib": logging.WARNING,
}


def mask_sensitive_fields(logger, method_name, event_dict):
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _service_context(settings: Settings):
    def add_service(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.APP_NAME)
        event_dict.setdefault("env", settings.ENVIRONMENT)
        return event_dict

    return add_service


def _renderer(settings: Settings):
    if settings.ENVIRONMENT == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging() -> None:
    settings = get_settings()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(settings),
        mask_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.ENVIRONMENT == "production":
        processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer(settings)],
        )
    )

    # Replace, not append: uvicorn --reload calls this once per worker start
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
