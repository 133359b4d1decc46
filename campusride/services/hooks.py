"""
Post-commit side effects.

Services queue notifications, real-time events and emails while they
work, and run them only after their transaction has committed.  Each
hook is isolated: a failure is logged and neither reaches the caller
nor stops the hooks queued after it.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class PostCommitHooks:
    def __init__(self) -> None:
        self._hooks: list[tuple[str, Callable[..., Awaitable[Any]], tuple, dict]] = []

    def __len__(self) -> int:
        return len(self._hooks)

    def add(
        self, name: str, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
    ) -> None:
        self._hooks.append((name, fn, args, kwargs))

    def clear(self) -> None:
        self._hooks.clear()

    async def run(self) -> int:
        """Run and drain the queue.  Returns the number of hooks that failed."""
        hooks, self._hooks = self._hooks, []
        failed = 0
        for name, fn, args, kwargs in hooks:
            try:
                await fn(*args, **kwargs)
            except Exception:
                failed += 1
                logger.exception("Post-commit hook %s failed", name)
        return failed
