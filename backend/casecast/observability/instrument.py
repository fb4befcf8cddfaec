from __future__ import annotations

import functools
import time
from typing import Any, Callable, TypeVar

import structlog

F = TypeVar("F", bound=Callable[..., Any])

logger = structlog.get_logger("stage")


def _rows(res: Any) -> int | None:
    # frames, dicts and value objects exposing __len__ report their size
    try:
        return len(res)
    except TypeError:
        return None


def log_stage(name: str) -> Callable[[F], F]:
    """Decorator timing one pipeline stage: stage.start / stage.completed / stage.error."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            start = time.perf_counter()
            logger.info("stage.start", stage=name)
            try:
                result = func(*args, **kwargs)
            except Exception:
                elapsed = (time.perf_counter() - start) * 1000
                logger.exception("stage.error", stage=name, duration_ms=round(elapsed, 2))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            logger.info("stage.completed", stage=name, duration_ms=round(elapsed, 2), size=_rows(result))
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
