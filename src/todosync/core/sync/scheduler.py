"""Poll and debounce timers driving sync passes, one pair per document."""

import asyncio
import time
from collections.abc import Callable

from loguru import logger

from todosync.config import (
    DEBOUNCE_DELAY,
    DEFAULT_POLL_INTERVAL,
    RATE_LIMIT_RETRY_DELAY,
    clamp_poll_interval,
)
from todosync.core.sync.engine import SyncEngine
from todosync.models.sync import ErrorKind, SyncResult
from todosync.models.todo import Scope


class SyncScheduler:
    """Owns the asyncio tasks that call ``engine.sync``.

    Polling runs a pass right away and then once per interval. The debounce
    timer restarts on every local edit and runs a single pass once edits
    stop for ``debounce_delay`` seconds. After a rate-limit failure,
    timer-driven passes for that document are skipped for
    ``rate_limit_delay`` seconds; ``sync_now`` ignores the back-off.
    """

    def __init__(
        self,
        engine: SyncEngine,
        *,
        debounce_delay: float = DEBOUNCE_DELAY,
        rate_limit_delay: float = RATE_LIMIT_RETRY_DELAY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.debounce_delay = debounce_delay
        self.rate_limit_delay = rate_limit_delay
        self.clock = clock
        self.intervals: dict[Scope, int] = {}
        self._poll_tasks: dict[Scope, asyncio.Task[None]] = {}
        self._debounce_tasks: dict[Scope, asyncio.Task[None]] = {}
        self._running: set[asyncio.Task[None]] = set()
        self._backoff_until: dict[Scope, float] = {}

    # --- Polling ---

    def start_polling(self, scope: Scope, interval: int = DEFAULT_POLL_INTERVAL) -> int:
        """(Re)start polling ``scope``. Returns the interval actually used."""
        scope = scope.document
        self.stop_polling(scope)
        seconds = clamp_poll_interval(interval)
        if seconds != interval:
            logger.debug("Poll interval {} clamped to {}", interval, seconds)
        self.intervals[scope] = seconds
        self._poll_tasks[scope] = asyncio.create_task(
            self._poll_loop(scope, seconds), name=f"todosync-poll-{scope}"
        )
        logger.debug("Polling {} every {}s", scope, seconds)
        return seconds

    def stop_polling(self, scope: Scope) -> None:
        task = self._poll_tasks.pop(scope.document, None)
        self.intervals.pop(scope.document, None)
        if task is not None:
            task.cancel()
            logger.debug("Stopped polling {}", scope.document)

    def is_polling(self, scope: Scope) -> bool:
        task = self._poll_tasks.get(scope.document)
        return task is not None and not task.done()

    async def _poll_loop(self, scope: Scope, interval: int) -> None:
        while True:
            await self._timed_pass(scope)
            await asyncio.sleep(interval)

    # --- Debounce ---

    def trigger_debounce(self, scope: Scope) -> None:
        """Schedule one pass after the quiet period, restarting any pending timer."""
        scope = scope.document
        pending = self._debounce_tasks.pop(scope, None)
        if pending is not None:
            pending.cancel()
        self._debounce_tasks[scope] = asyncio.create_task(
            self._debounce(scope), name=f"todosync-debounce-{scope}"
        )

    def has_pending_debounce(self, scope: Scope) -> bool:
        return scope.document in self._debounce_tasks

    async def _debounce(self, scope: Scope) -> None:
        await asyncio.sleep(self.debounce_delay)
        # Past this point a new edit starts a fresh timer instead of cancelling this pass.
        self._debounce_tasks.pop(scope, None)
        task = asyncio.current_task()
        if task is not None:
            self._running.add(task)
            task.add_done_callback(self._running.discard)
        await self._timed_pass(scope)

    # --- Passes ---

    def in_backoff(self, scope: Scope) -> bool:
        until = self._backoff_until.get(scope.document)
        return until is not None and self.clock() < until

    async def _timed_pass(self, scope: Scope) -> None:
        if self.in_backoff(scope):
            logger.debug("Skipping sync of {}: rate limited", scope)
            return
        self._note_result(scope, await self.engine.sync(scope))

    async def sync_now(self, scope: Scope) -> SyncResult[None]:
        """Run a pass immediately, regardless of timers and back-off."""
        result = await self.engine.sync(scope)
        self._note_result(scope, result)
        return result

    def _note_result(self, scope: Scope, result: SyncResult[None]) -> None:
        if result.error is not None and result.error.kind is ErrorKind.RATE_LIMIT:
            self._backoff_until[scope.document] = self.clock() + self.rate_limit_delay
            logger.warning(
                "GitHub rate limit hit, pausing automatic sync of {} for {} minutes",
                scope.document,
                int(self.rate_limit_delay // 60),
            )
        elif result.success:
            self._backoff_until.pop(scope.document, None)

    async def aclose(self) -> None:
        """Cancel every timer and debounced pass, and wait for the tasks to finish."""
        tasks = [*self._poll_tasks.values(), *self._debounce_tasks.values(), *self._running]
        self._poll_tasks.clear()
        self._debounce_tasks.clear()
        self._running.clear()
        self.intervals.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
