"""
Structured logging utilities for joinery.

Engine modules log through the standard ``logging`` module under the
``joinery`` namespace and attach the join they belong to as
``extra={"policy": ..., "slot": ..., "phase": ...}``. setup_logging()
routes those records through structlog and lifts the join fields into
key-value pairs, so a line reads ``race group completing policy=race slot=1``.
"""

import logging
import sys
from typing import Any, MutableMapping, TextIO

import structlog
from structlog.typing import Processor

from joinery.config import get_settings

ROOT_LOGGER = "joinery"

JOIN_FIELDS = ("policy", "slot", "phase")


def add_join_fields(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Copy join identifiers from a stdlib record's ``extra`` into the event."""
    record = event_dict.get("_record")
    if record is None:
        return event_dict
    for field in JOIN_FIELDS:
        value = getattr(record, field, None)
        if value is not None:
            event_dict.setdefault(field, value)
    return event_dict


def setup_logging(
    level: str | None = None,
    force_colors: bool | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Route the joinery namespace to a structlog console handler.

    Args:
        level: Log level name. Defaults to EngineSettings.log_level.
        force_colors: Force color output (True/False) or auto-detect (None).
        stream: Where to write; stderr by default.
    """
    stream = stream or sys.stderr
    level_name = (level or get_settings().log_level).upper()

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_join_fields,
        structlog.processors.TimeStamper(fmt="%H:%M:%S.%f", utc=False),
    ]

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    colors = force_colors if force_colors is not None else stream.isatty()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(
                    colors=colors, exception_formatter=structlog.dev.plain_traceback
                ),
            ],
        )
    )

    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.WARNING))
    root.propagate = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structlog logger inside the joinery namespace.

    Example:
        >>> logger = get_logger("myapp.fetch")
        >>> logger.info("race finished", winner=1)
    """
    if name is None:
        return structlog.get_logger(ROOT_LOGGER)
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return structlog.get_logger(name)


def bind_log_context(**kwargs: Any) -> None:
    """Bind key-value pairs included in every subsequent message."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()
