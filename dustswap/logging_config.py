"""
Structured logging for the swap orchestrator.

stdlib loggers (``logging.getLogger(__name__)``) are routed through structlog
so every record carries the swap attempt context bound with
``bind_swap_context``. JSON lines by default, colored console at DEBUG.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import settings


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
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

    # Upstream request lines are logged by the quote client itself
    for name in ("uvicorn.access", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_swap_context(*, wallet_address: str, chain_id: int, attempt_id: str) -> None:
    """Attach the current swap attempt to every log line emitted in this task."""
    structlog.contextvars.bind_contextvars(
        wallet=wallet_address.lower(),
        chain_id=chain_id,
        attempt_id=attempt_id,
    )


def bind_quote_context(path_id: str) -> None:
    structlog.contextvars.bind_contextvars(path_id=path_id)


def clear_swap_context() -> None:
    structlog.contextvars.unbind_contextvars("wallet", "chain_id", "attempt_id", "path_id")


def bind_request_context(request_id: str) -> None:
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def clear_request_context() -> None:
    structlog.contextvars.unbind_contextvars("request_id")
