"""
Structured logging for the bundle orchestrator.

Every module logs through the stdlib (``logging.getLogger(__name__)``); this
module routes those records through structlog so bundle and chain context
bound by the coordinator shows up on every line.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog

from .config import settings


def _add_service(_: logging.Logger, __: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    event_dict.setdefault("service", "omnibundle")
    return event_dict


def setup_logging(log_level: Optional[str] = None, *, json_output: Optional[bool] = None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        log_level: Override log level (default: settings.log_level)
        json_output: Force JSON (True) or console (False) rendering.
            Defaults to console at DEBUG and JSON lines otherwise.
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    if json_output is None:
        json_output = level != logging.DEBUG

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        shared.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # RPC polling is chatty at INFO
    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def bundle_log_context(handle: str, operation: str) -> Iterator[None]:
    """Bind bundle handle and operation kind to every log line in scope."""
    with structlog.contextvars.bound_contextvars(bundle=handle, operation=operation):
        yield


@contextmanager
def chain_log_context(chain_id: int) -> Iterator[None]:
    with structlog.contextvars.bound_contextvars(chain_id=chain_id):
        yield
