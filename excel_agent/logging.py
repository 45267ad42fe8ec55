"""Excel Agent — Structured logging.

Every module logs through structlog with snake_case event names::

    log = get_logger(__name__)
    log.info("plan_applied", plan_id=plan.id, completed=3, total=3)

While a chat turn is being processed the orchestrator binds ``request_id``,
``plan_id`` and ``workbook`` so each record can be traced back to the turn
that produced it.  Output goes to stderr, leaving stdout to the CLI.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

CHAT_CONTEXT_KEYS = ("request_id", "plan_id", "workbook")

# OpenAI / Anthropic style secret keys and Google API keys.
_SECRET_PATTERN = re.compile(r"\b(sk-[A-Za-z0-9_\-]{8,}|AIza[0-9A-Za-z_\-]{20,})")

_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "google", "aiosqlite", "asyncio")


def bind_chat_context(
    request_id: str | None = None,
    plan_id: str | None = None,
    workbook: str | None = None,
) -> None:
    """Attach chat-turn identifiers to every record logged from this task."""
    values = {"request_id": request_id, "plan_id": plan_id, "workbook": workbook}
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in values.items() if value is not None}
    )


def clear_chat_context() -> None:
    structlog.contextvars.unbind_contextvars(*CHAT_CONTEXT_KEYS)


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def _mask(value: str) -> str:
    return _SECRET_PATTERN.sub(lambda m: m.group(0)[:4] + "…", value)


def redact_secrets(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Mask anything shaped like a provider API key, e.g. in SDK error text."""
    for key, value in event_dict.items():
        if isinstance(value, str) and _SECRET_PATTERN.search(value):
            event_dict[key] = _mask(value)
    return event_dict


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def _handlers(formatter: logging.Formatter, log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Route structlog and stdlib records through one formatter.

    Args:
        level:    debug, info, warning, error or critical.
        format:   ``"console"`` or ``"json"``.
        log_file: Extra destination besides stderr.
    """
    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]

    renderer: Any
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    root = logging.getLogger()
    root.handlers = _handlers(formatter, log_file)
    root.setLevel(level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
