"""structlog configuration bridged onto the standard ``logging`` module.

Two outputs are supported:

- ``console``: coloured key/value lines for local use (local time).
- ``json``: one JSON object per line with ISO-8601 UTC timestamps.
"""

from __future__ import annotations

import logging
from typing import Literal

import structlog
from structlog.typing import Processor

from tm_core.config import EngineConfig

APP_LOGGER_NAME = "tm_core"

_NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


def setup_logging(
    *,
    log_level: str = "WARNING",
    log_format: Literal["console", "json"] = "console",
    root_level: str | None = None,
    service: str | None = None,
) -> None:
    """Configure structlog and the root handler.

    Args:
        log_level: level of the ``tm_core`` logger.
        log_format: ``console`` or ``json``.
        root_level: level of the root logger; defaults to WARNING.
        service: bound into every event through contextvars when given.
    """

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]

    if log_format == "json":
        timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    else:
        timestamper = structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False)

    structlog.configure(
        processors=[
            *pre_chain,
            timestamper,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if log_format == "json":
        final_renderer: Processor = structlog.processors.JSONRenderer()
    else:
        final_renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=final_renderer,
        foreign_pre_chain=[*pre_chain, timestamper],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel((root_level or "WARNING").upper())

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(log_level.upper())
    app_logger.propagate = True

    structlog.contextvars.clear_contextvars()
    if service:
        structlog.contextvars.bind_contextvars(service=service)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.get_logger(f"{APP_LOGGER_NAME}.logging_config").debug(
        "logging configured",
        log_format=log_format,
        app_log_level=log_level.upper(),
    )


def setup_logging_from_config(config: EngineConfig, *, service: str = "tm-engine") -> None:
    setup_logging(log_level=config.log_level, log_format=config.log_format, service=service)
