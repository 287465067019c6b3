"""
Structured logging for the operator.

Every record carries the controller identity and, inside a reconcile pass,
the instance key bound through ``structlog.contextvars``. The key is split
into ``namespace``/``name`` so records can be filtered per object. Values of
credential-like keys are masked before rendering.
"""
import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, Processor

from ords_operator.config.settings import settings

CONTROLLER_NAME = "oraclerestdataservice-controller"

MASK = "********"
SENSITIVE_KEYS = ("password", "passwd", "pwd", "secret_value")

# Library loggers that are chatty at INFO (watch reconnects, exec websockets)
NOISY_LOGGERS: Dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "kubernetes_asyncio": logging.WARNING,
    "aiohttp": logging.WARNING,
}


def add_controller_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp controller name, version and watch scope on every record."""
    event_dict.setdefault("controller", CONTROLLER_NAME)
    event_dict.setdefault("version", settings.app_version)
    event_dict.setdefault("watch_namespace", settings.watch_namespace or "*")
    return event_dict


def split_instance_key(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Expand an ``instance="namespace/name"`` key into its two parts."""
    key = event_dict.get("instance")
    if isinstance(key, str) and "/" in key:
        namespace, _, name = key.partition("/")
        event_dict.setdefault("namespace", namespace)
        event_dict.setdefault("name", name)
    return event_dict


def mask_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in list(event_dict):
        if any(marker in key.lower() for marker in SENSITIVE_KEYS) and event_dict[key]:
            event_dict[key] = MASK
    return event_dict


def build_processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_controller_context,
        split_instance_key,
        mask_credentials,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def configure_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog and route stdlib logging to stdout.

    JSON output in production, console output otherwise, unless overridden.
    """
    level = getattr(logging, log_level or settings.log_level)
    if json_logs is None:
        json_logs = settings.is_production

    structlog.configure(
        processors=build_processors(json_logs),  # type: ignore
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, noisy_level))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module; pass ``__name__``."""
    return structlog.get_logger(name)
