from __future__ import annotations

import logging
import sys
import uuid
from typing import Any, Dict

import structlog

_RENDERERS = {
    "json": structlog.processors.JSONRenderer,
    "console": structlog.dev.ConsoleRenderer,
}


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Route structlog through stdlib logging; one JSON (or console) line per event."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        stream=sys.stdout,
        force=True,
    )
    renderer = _RENDERERS.get(fmt, structlog.processors.JSONRenderer)()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            _drop_empty_details,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def bind_run_context(**values: Any) -> str:
    """Tag every event of the current batch run with a run id (plus any extra fields)."""
    run_id = values.pop("run_id", None) or uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id, **values)
    return run_id


def _drop_empty_details(logger: Any, name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    if event_dict.get("details") == {}:
        event_dict.pop("details")
    return event_dict
