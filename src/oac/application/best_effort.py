from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger("oac.best_effort")


def best_effort(
    event: str,
    func: Callable[..., T],
    *args: Any,
    extra: dict[str, Any] | None = None,
    **kwargs: Any,
) -> T | None:
    """Run a bookkeeping side effect; log and return None if it raises."""
    try:
        return func(*args, **kwargs)
    except Exception:
        logger.exception(event, extra=extra or {})
        return None
