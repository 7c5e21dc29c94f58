"""
Best-effort side effects.

Work the caller does not wait for (view counters and similar) is handed to a
BestEffortChannel instead of being left as a bare task. Failures are logged
and counted, never raised back into the request path.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set, TYPE_CHECKING

from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class BestEffortChannel:
    """Runs fire-and-forget coroutines with failure accounting."""

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.metrics = metrics
        self.logger = get_logger("premium.side_effects")
        self._pending: Set[asyncio.Task] = set()
        self.succeeded = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, effect: str, factory: Callable[[], Awaitable[None]]) -> None:
        """Schedule `factory()` on the running loop and return immediately."""
        coro = self._run(effect, factory)
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError as e:
            # No running loop
            coro.close()
            self._failure(effect, e)
            return

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._update_pending()

    async def _run(self, effect: str, factory: Callable[[], Awaitable[None]]) -> None:
        try:
            await factory()
        except asyncio.CancelledError:
            self.logger.debug("Best-effort side effect cancelled", effect=effect)
            raise
        except Exception as e:
            self._failure(effect, e)
        else:
            self.succeeded += 1
            if self.metrics:
                self.metrics.increment_counter("best_effort_success_total", effect=effect)
        finally:
            # The done callback has not run yet; this task still counts
            self._update_pending(offset=-1)

    def _failure(self, effect: str, error: Exception) -> None:
        self.failed += 1
        self.logger.warning("Best-effort side effect failed", effect=effect, error=str(error))
        if self.metrics:
            self.metrics.increment_counter("best_effort_failures_total", effect=effect)

    def _update_pending(self, offset: int = 0) -> None:
        if self.metrics:
            self.metrics.set_gauge("best_effort_pending", max(0, len(self._pending) + offset))

    async def drain(self) -> None:
        """Wait for every submitted effect to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
