"""Start and stop polling depending on how many views are open."""

from typing import Protocol

from loguru import logger

from todosync.config import SyncSettings, clamp_poll_interval
from todosync.models.sync import SyncMode
from todosync.models.todo import Scope

DOCUMENT_SCOPES = (Scope.USER, Scope.WORKSPACE)


class PollingScheduler(Protocol):
    def start_polling(self, scope: Scope, interval: int = ...) -> int: ...

    def stop_polling(self, scope: Scope) -> None: ...


class VisibilityCoordinator:
    """Reference-counts attached views and keeps polling in step with them.

    With ``poll_only_when_visible`` polling runs while at least one view is
    attached; without it polling runs from ``start()`` until ``dispose()``.
    Only scopes in GitHub mode are polled.
    """

    def __init__(
        self,
        scheduler: PollingScheduler,
        settings: SyncSettings,
        *,
        sync_modes: dict[Scope, SyncMode] | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.poll_interval = clamp_poll_interval(settings.poll_interval)
        self.poll_only_when_visible = settings.poll_only_when_visible
        self.sync_modes: dict[Scope, SyncMode] = dict.fromkeys(DOCUMENT_SCOPES, SyncMode.LOCAL)
        self.sync_modes.update(sync_modes or {})
        self.visible_count = 0
        self._polling = False
        self._started = False

    @property
    def polling(self) -> bool:
        return self._polling

    def _should_poll(self) -> bool:
        if self.poll_only_when_visible:
            return self.visible_count > 0
        return self._started

    def start(self) -> None:
        """Begin managing polling. Polls immediately unless gated on visibility."""
        self._started = True
        self._sync_polling()

    def increment_visibility(self) -> None:
        self.visible_count += 1
        logger.debug("Views visible: {}", self.visible_count)
        if self.visible_count == 1:
            self._sync_polling()

    def decrement_visibility(self) -> None:
        if self.visible_count == 0:
            logger.warning("Visibility count is already zero")
            return
        self.visible_count -= 1
        logger.debug("Views visible: {}", self.visible_count)
        if self.visible_count == 0:
            self._sync_polling()

    def update_poll_interval(self, seconds: int) -> None:
        self.poll_interval = clamp_poll_interval(seconds)
        self._restart()

    def update_sync_modes(self, modes: dict[Scope, SyncMode]) -> None:
        self.sync_modes.update({scope.document: mode for scope, mode in modes.items()})
        self._restart()

    def update_poll_only_when_visible(self, enabled: bool) -> None:
        self.poll_only_when_visible = enabled
        self._sync_polling()

    def dispose(self) -> None:
        self._stop()
        self._started = False
        self.visible_count = 0

    def _sync_polling(self) -> None:
        should = self._should_poll()
        if should and not self._polling:
            self._start()
        elif not should and self._polling:
            self._stop()

    def _restart(self) -> None:
        if self._polling:
            self._stop()
            self._start()

    def _start(self) -> None:
        for scope in DOCUMENT_SCOPES:
            if self.sync_modes.get(scope) is SyncMode.GITHUB:
                self.scheduler.start_polling(scope, self.poll_interval)
        self._polling = True
        logger.debug("Polling started (interval {}s)", self.poll_interval)

    def _stop(self) -> None:
        for scope in DOCUMENT_SCOPES:
            self.scheduler.stop_polling(scope)
        self._polling = False
        logger.debug("Polling stopped")
