"""Structured logging for the activation gate.

structlog renders JSON in production and a console view in development. The
stdlib bridge routes uvicorn and redis records through the same chain. Every
entry carries the request correlation id and the service name, and values
under credential or bank-account keys are masked before rendering.
"""

import logging
import logging.config
from collections.abc import Iterable

import structlog
from asgi_correlation_id.context import correlation_id

# Keys whose values never reach the log sink
SENSITIVE_KEYS = frozenset({
    "account_number",
    "account_holder_name",
    "authorization",
    "cookie",
    "session_token",
    "token",
    "answers",
})

REDACTED = "[redacted]"

# Third-party loggers that are only interesting when something is wrong
QUIET_LOGGERS = ("uvicorn.access", "httpx", "redis")


def add_correlation_id(logger, method, event_dict):
    """Inject correlation_id from asgi-correlation-id context into every log entry."""
    cid = correlation_id.get(None)
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def service_name_processor(service: str):
    def add_service(logger, method, event_dict):
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def redact_processor(keys: Iterable[str] = SENSITIVE_KEYS):
    """Build a processor that masks values under ``keys``, one level into dicts."""
    keys = frozenset(k.lower() for k in keys)

    def _mask(mapping: dict) -> dict:
        return {k: REDACTED if str(k).lower() in keys else v for k, v in mapping.items()}

    def redact(logger, method, event_dict):
        for key, value in list(event_dict.items()):
            if key.lower() in keys:
                event_dict[key] = REDACTED
            elif isinstance(value, dict):
                event_dict[key] = _mask(value)
        return event_dict

    return redact


def shared_processors(service: str) -> list:
    """Processors applied to both structlog and bridged stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        service_name_processor(service),
        redact_processor(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]


def _logging_config(log_level: str, renderer, pre_chain: list) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    renderer,
                ],
                "foreign_pre_chain": pre_chain,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"handlers": ["default"], "level": log_level},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    }


def configure_structlog(
    log_level: str = "INFO",
    json_logs: bool = True,
    service: str = "activation-gate",
) -> None:
    """Configure structlog and the stdlib bridge.

    Call this before any other app imports: structlog caches the processor
    chain on first use.

    Args:
        log_level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        json_logs: True for JSON output (production), False for ConsoleRenderer (dev)
        service: Value of the "service" field on every entry
    """
    processors = shared_processors(service)
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.config.dictConfig(_logging_config(log_level, renderer, processors))

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
