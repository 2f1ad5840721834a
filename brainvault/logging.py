"""structlog configuration for brainvault.

Every module logs through ``get_logger(__name__)`` with an event name plus
keyword context. Dates, datetimes and paths may be passed as-is; they are
rendered as ISO strings and POSIX paths before output. Context bound by
:func:`setup_logging` (for example the vault a CLI run works on) is attached to
every record of that run.
"""

import json
import logging
import sys
from datetime import date, datetime
from pathlib import PurePath
from typing import Any

import structlog


def _render_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, PurePath):
        return value.as_posix()
    if isinstance(value, (set, frozenset)):
        return sorted(_render_value(item) for item in value)
    return value


def _render_domain_values(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Structlog processor turning dates, paths and sets into JSON-friendly values."""
    for key, val in event_dict.items():
        event_dict[key] = _render_value(val)
    return event_dict


def setup_logging(json_output: bool = False, level: str = "INFO", **context: Any) -> None:
    """Route ``brainvault`` records through structlog.

    Args:
        json_output: JSON lines when True, the structlog console renderer otherwise.
        level: Level of the ``brainvault`` logger hierarchy.
        **context: Key/values bound to every record until the next call.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _render_domain_values,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer = structlog.processors.JSONRenderer(
            serializer=lambda obj, **kw: json.dumps(obj, ensure_ascii=False, **kw)
        )
    else:
        renderer = structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger("brainvault")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.propagate = False

    structlog.contextvars.clear_contextvars()
    if context:
        structlog.contextvars.bind_contextvars(**context)


def get_logger(name: str = "brainvault") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
