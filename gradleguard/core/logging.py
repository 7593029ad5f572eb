"""
Logging for gradleguard runs.

Every record goes to stderr, leaving stdout free for reports and ``--json``
snapshots. Terminals get coloured key/value lines; pipes and CI logs get one
JSON object per line.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from .config import Config

DEFAULT_LEVEL = "WARNING"


def _level_number(name: str) -> int:
    number = logging.getLevelName(name.upper())
    return number if isinstance(number, int) else logging.WARNING


def _rich_handler(level_name: str) -> RichHandler:
    """Handler for records emitted through the standard library (httpx and friends)."""
    return RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=level_name == "DEBUG",
    )


def _processor_chain(json_output: bool) -> list[structlog.types.Processor]:
    chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if json_output:
        chain += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=True))
    return chain


def setup_logging(config: Config | None = None, *, json_output: bool | None = None) -> None:
    """Route gradleguard and library logs to stderr at the configured level.

    Args:
        config: Source of ``log_level``; WARNING when omitted.
        json_output: Force JSON lines (True) or console lines (False). By
            default JSON is used whenever stderr is not a terminal.
    """
    level_name = (config.log_level if config else DEFAULT_LEVEL).upper()
    level = _level_number(level_name)
    if json_output is None:
        json_output = not sys.stderr.isatty()

    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[_rich_handler(level_name)])

    structlog.configure(
        processors=_processor_chain(json_output),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a gradleguard module, usually called with ``__name__``."""
    return structlog.get_logger(name)


def bind_context(**values: object) -> None:
    """Attach values such as the run id to every record logged from here on."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    """Drop everything attached with :func:`bind_context`."""
    structlog.contextvars.clear_contextvars()
