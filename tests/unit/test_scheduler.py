"""Tests for the poll and debounce scheduler."""

import asyncio

from todosync.core.sync.scheduler import SyncScheduler
from todosync.models.sync import ErrorKind, SyncResult
from todosync.models.todo import Scope


class FakeEngine:
    """Records sync calls and answers with queued results (success by default)."""

    def __init__(self) -> None:
        self.calls: list[Scope] = []
        self.results: list[SyncResult[None]] = []

    async def sync(self, scope: Scope) -> SyncResult[None]:
        self.calls.append(scope)
        if self.results:
            return self.results.pop(0)
        return SyncResult.ok()


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _rate_limited() -> SyncResult[None]:
    return SyncResult.fail(ErrorKind.RATE_LIMIT, "slow down", retryable=True)


def _scheduler(engine: FakeEngine, clock: FakeClock | None = None) -> SyncScheduler:
    return SyncScheduler(
        engine,  # type: ignore[arg-type]
        debounce_delay=0.01,
        rate_limit_delay=900,
        clock=clock or FakeClock(),
    )


def test_start_polling_clamps_interval_and_syncs_immediately() -> None:
    engine = FakeEngine()

    async def run() -> int:
        scheduler = _scheduler(engine)
        used = scheduler.start_polling(Scope.USER, 5)
        await asyncio.sleep(0.01)
        assert scheduler.is_polling(Scope.USER)
        assert scheduler.intervals == {Scope.USER: 30}
        await scheduler.aclose()
        assert not scheduler.is_polling(Scope.USER)
        return used

    assert asyncio.run(run()) == 30
    assert engine.calls == [Scope.USER]


def test_polling_file_scope_polls_workspace_document() -> None:
    engine = FakeEngine()

    async def run() -> None:
        scheduler = _scheduler(engine)
        scheduler.start_polling(Scope.FILE, 60)
        await asyncio.sleep(0.01)
        assert scheduler.is_polling(Scope.WORKSPACE)
        scheduler.stop_polling(Scope.WORKSPACE)
        assert not scheduler.is_polling(Scope.WORKSPACE)
        await scheduler.aclose()

    asyncio.run(run())
    assert engine.calls == [Scope.WORKSPACE]


def test_debounce_coalesces_rapid_edits() -> None:
    engine = FakeEngine()

    async def run() -> None:
        scheduler = _scheduler(engine)
        for _ in range(3):
            scheduler.trigger_debounce(Scope.USER)
        assert scheduler.has_pending_debounce(Scope.USER)
        assert engine.calls == []
        await asyncio.sleep(0.05)
        assert not scheduler.has_pending_debounce(Scope.USER)
        await scheduler.aclose()

    asyncio.run(run())
    assert engine.calls == [Scope.USER]


def test_debounce_timers_are_per_document() -> None:
    engine = FakeEngine()

    async def run() -> None:
        scheduler = _scheduler(engine)
        scheduler.trigger_debounce(Scope.USER)
        scheduler.trigger_debounce(Scope.FILE)
        await asyncio.sleep(0.05)
        await scheduler.aclose()

    asyncio.run(run())
    assert sorted(engine.calls) == sorted([Scope.USER, Scope.WORKSPACE])


def test_rate_limit_pauses_timer_driven_passes() -> None:
    engine = FakeEngine()
    clock = FakeClock()

    async def run() -> None:
        scheduler = _scheduler(engine, clock)
        engine.results.append(_rate_limited())
        result = await scheduler.sync_now(Scope.USER)
        assert result.error is not None
        assert scheduler.in_backoff(Scope.USER)
        assert not scheduler.in_backoff(Scope.WORKSPACE)

        scheduler.trigger_debounce(Scope.USER)
        await asyncio.sleep(0.05)
        assert engine.calls == [Scope.USER]

        clock.now += 901
        assert not scheduler.in_backoff(Scope.USER)
        scheduler.trigger_debounce(Scope.USER)
        await asyncio.sleep(0.05)
        await scheduler.aclose()

    asyncio.run(run())
    assert engine.calls == [Scope.USER, Scope.USER]


def test_sync_now_ignores_backoff_and_success_clears_it() -> None:
    engine = FakeEngine()

    async def run() -> None:
        scheduler = _scheduler(engine)
        engine.results.append(_rate_limited())
        await scheduler.sync_now(Scope.USER)
        assert scheduler.in_backoff(Scope.USER)

        result = await scheduler.sync_now(Scope.USER)

        assert result.success
        assert not scheduler.in_backoff(Scope.USER)

    asyncio.run(run())
    assert len(engine.calls) == 2


def test_other_failures_do_not_start_backoff() -> None:
    engine = FakeEngine()

    async def run() -> None:
        scheduler = _scheduler(engine)
        engine.results.append(SyncResult.fail(ErrorKind.NETWORK, "offline", retryable=True))
        await scheduler.sync_now(Scope.USER)
        assert not scheduler.in_backoff(Scope.USER)

    asyncio.run(run())


def test_aclose_cancels_pending_debounce() -> None:
    engine = FakeEngine()

    async def run() -> None:
        scheduler = SyncScheduler(engine, debounce_delay=10)  # type: ignore[arg-type]
        scheduler.trigger_debounce(Scope.USER)
        await scheduler.aclose()
        assert not scheduler.has_pending_debounce(Scope.USER)

    asyncio.run(run())
    assert engine.calls == []


def test_aclose_cancels_a_debounced_pass_already_running() -> None:
    started = asyncio.Event()
    cancelled: list[Scope] = []

    class SlowEngine(FakeEngine):
        async def sync(self, scope: Scope) -> SyncResult[None]:
            self.calls.append(scope)
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(scope)
                raise
            return SyncResult.ok()

    engine = SlowEngine()

    async def run() -> list[str]:
        scheduler = _scheduler(engine)
        scheduler.trigger_debounce(Scope.USER)
        await asyncio.wait_for(started.wait(), timeout=1)
        assert not scheduler.has_pending_debounce(Scope.USER)
        await scheduler.aclose()
        current = asyncio.current_task()
        return [t.get_name() for t in asyncio.all_tasks() if t is not current]

    assert asyncio.run(run()) == []
    assert engine.calls == [Scope.USER]
    assert cancelled == [Scope.USER]
