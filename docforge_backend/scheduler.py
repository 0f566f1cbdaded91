from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .store import ArtifactStore


logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class SweepReport:
    scanned: int
    deleted: int
    failed: int


class SweepScheduler:
    """Periodically deletes every artifact whose age reached the TTL."""

    def __init__(
        self,
        store: ArtifactStore,
        ttl_seconds: float,
        interval_seconds: float,
        clock: Clock = time.time,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store
        self.ttl_seconds = max(0.0, ttl_seconds)
        self.interval_seconds = interval_seconds
        self.last_sweep_at: Optional[float] = None
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    def sweep_once(self) -> SweepReport:
        now = self._clock()
        artifacts = self.store.list()
        deleted = failed = 0
        for artifact in artifacts:
            if artifact.age_at(now) < self.ttl_seconds:
                continue
            try:
                if self.store.delete(artifact.artifact_id):
                    deleted += 1
            except OSError:
                failed += 1
                logger.exception("Failed to sweep artifact %s", artifact.artifact_id)
        try:
            self.store.reclaim_partials(self.ttl_seconds)
        except OSError:
            logger.exception("Failed to reclaim temp files")
        self.last_sweep_at = now
        if deleted or failed:
            logger.info("Sweep removed %d of %d artifacts (%d failed)", deleted, len(artifacts), failed)
        return SweepReport(scanned=len(artifacts), deleted=deleted, failed=failed)

    async def run_forever(self) -> None:
        while True:
            try:
                await asyncio.to_thread(self.sweep_once)
            except Exception:
                # Keep the loop alive through unexpected filesystem errors.
                logger.exception("Sweep pass failed")
            await self._sleep(max(1.0, self.interval_seconds))

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class ArmState(str, enum.Enum):
    UNARMED = "unarmed"
    ARMED = "armed"
    FIRED = "fired"


class DeferredDeletionScheduler:
    """One-shot deletion timers, at most one per artifact id."""

    def __init__(self, store: ArtifactStore, delay_seconds: float, sleep: Sleep = asyncio.sleep) -> None:
        self.store = store
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._states: dict[str, ArmState] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def state(self, artifact_id: str) -> ArmState:
        return self._states.get(artifact_id, ArmState.UNARMED)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def arm_once(self, artifact_id: str, delay: Optional[float] = None) -> bool:
        """Schedule deletion of artifact_id unless a timer was already armed.

        Must be called from the running event loop. Returns True if a new
        timer was armed.
        """
        if self.state(artifact_id) is not ArmState.UNARMED:
            return False
        delay = self.delay_seconds if delay is None else delay
        self._states[artifact_id] = ArmState.ARMED
        task = asyncio.create_task(self._fire(artifact_id, delay))
        # A timer cancelled before its first step never enters _fire.
        task.add_done_callback(lambda t, i=artifact_id: self._forget(i, t))
        self._tasks[artifact_id] = task
        logger.debug("Armed deferred deletion of %s in %.0fs", artifact_id, delay)
        return True

    def _forget(self, artifact_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(artifact_id) is task:
            del self._tasks[artifact_id]
        if task.cancelled() and self._states.get(artifact_id) is ArmState.ARMED:
            del self._states[artifact_id]

    async def _fire(self, artifact_id: str, delay: float) -> None:
        await self._sleep(delay)
        self._states[artifact_id] = ArmState.FIRED
        try:
            if self.store.delete(artifact_id):
                logger.info("Auto-deleted downloaded artifact %s", artifact_id)
        except OSError:
            # Stays FIRED; the sweep retries the file.
            logger.exception("Failed to auto-delete %s", artifact_id)
            return
        # The id no longer resolves.
        self._states.pop(artifact_id, None)

    async def wait_idle(self) -> None:
        while True:
            tasks = [t for t in self._tasks.values() if not t.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
