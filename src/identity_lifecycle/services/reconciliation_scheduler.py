from __future__ import annotations

import asyncio

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain.entities.reconciliation import ReconciliationSummary
from identity_lifecycle.services.reconciliation import ReconciliationEngine

log = get_logger(__name__)


class ReconciliationScheduler:
    """Periodic global reconciliation with a guard against overlapping runs."""

    def __init__(self, engine: ReconciliationEngine, interval_seconds: int, dry_run: bool = False):
        self._engine = engine
        self._interval = interval_seconds
        self._dry_run = dry_run
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def scheduled(self) -> bool:
        """True while the periodic loop task is alive."""
        return self._task is not None and not self._task.done()

    async def run_once(self) -> ReconciliationSummary | None:
        if self._running:
            log.warning("reconcile.scheduler skip reason=already_running")
            return None

        self._running = True
        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            summary = await self._engine.reconcile(dry_run=self._dry_run, include_inactive=False)
            log.info(
                "reconcile.scheduler done elapsed_ms=%s provisioned=%s failed=%s",
                int((loop.time() - start) * 1000),
                summary.provisioned,
                summary.failed,
            )
            return summary
        except Exception as e:
            log.error("reconcile.scheduler failed error=%s", str(e), exc_info=True)
            return None
        finally:
            self._running = False

    async def _loop(self) -> None:
        log.info("reconcile.scheduler start interval_s=%s dry_run=%s", self._interval, self._dry_run)
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
