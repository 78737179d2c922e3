# src/pipeline/persist.py — v1
"""Best-effort persistence proxy.

Wraps a store so that every coroutine method logs and swallows failures
instead of raising. The executor uses it for all writes after the run
record exists: a persistence hiccup must not change a run's outcome.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any

logger = logging.getLogger(__name__)


class BestEffortWriter:
    """Proxy whose async methods return None on failure instead of raising."""

    def __init__(self, target: Any, label: str = "state store") -> None:
        self._target = target
        self._label = label

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._target, name)
        if not inspect.iscoroutinefunction(attr):
            return attr

        @functools.wraps(attr)
        async def guarded(*args: Any, **kwargs: Any) -> Any:
            try:
                return await attr(*args, **kwargs)
            except Exception as exc:
                logger.warning(
                    "Best-effort %s.%s failed: %s", self._label, name, exc
                )
                return None

        return guarded
