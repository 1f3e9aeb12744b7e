from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import heapq
import itertools
import logging
from typing import Callable, Optional

from .controller import PowerController
from .errors import ControlError
from .metrics import (
    actions_armed_total,
    actions_cancelled_total,
    actions_fired_total,
    pending_actions,
)
from .models import ActionKind, CheapestWindow, DeferredAction

logger = logging.getLogger("spotswitch")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionQueue:
    """Delay queue of one-shot power transitions owned by a single loop task.

    Actions whose fire time already passed when they are armed are not
    dropped; they fire on the next turn of the loop.
    """

    def __init__(
        self,
        controller: PowerController,
        cancel_stale: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.controller = controller
        self.cancel_stale = cancel_stale
        self.clock = clock
        self._heap: list[DeferredAction] = []
        self._seq = itertools.count()
        self._cycles = itertools.count(1)
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def arm(self, window: CheapestWindow, now: datetime) -> tuple[DeferredAction, DeferredAction]:
        if self.cancel_stale:
            self.cancel_pending()
        cycle = next(self._cycles)
        on = DeferredAction(fire_at=window.start, seq=next(self._seq), kind=ActionKind.ON, cycle=cycle)
        off = DeferredAction(fire_at=window.end, seq=next(self._seq), kind=ActionKind.OFF, cycle=cycle)
        for action in (on, off):
            heapq.heappush(self._heap, action)
            actions_armed_total.labels(kind=action.kind.value).inc()
            logger.debug(
                "Armed %s in %.0fs at %s",
                action.kind.value,
                (action.fire_at - now).total_seconds(),
                action.fire_at.isoformat(),
            )
        pending_actions.set(len(self.pending()))
        self._wakeup.set()
        return on, off

    def cancel_pending(self) -> int:
        """Cancel the actions of every window that has not started yet.

        Once a window's ON has been dispatched its OFF stays armed, so a block
        that is already running is still switched off at its end.
        """
        unstarted = {
            a.cycle for a in self._heap if a.kind is ActionKind.ON and not a.cancelled
        }
        cancelled = 0
        for action in self._heap:
            if not action.cancelled and action.cycle in unstarted:
                action.cancelled = True
                cancelled += 1
        self._heap = [a for a in self._heap if not a.cancelled]
        heapq.heapify(self._heap)
        if cancelled:
            actions_cancelled_total.inc(cancelled)
            logger.info("Cancelled %s pending action(s) from a previous cycle", cancelled)
        pending_actions.set(len(self._heap))
        return cancelled

    def pending(self) -> list[DeferredAction]:
        return sorted(a for a in self._heap if not a.cancelled)

    async def run_due(self, now: datetime | None = None) -> list[DeferredAction]:
        """Fire every action due at ``now`` in fire-time order."""
        now = now or self.clock()
        fired: list[DeferredAction] = []
        while self._heap and self._heap[0].fire_at <= now:
            action = heapq.heappop(self._heap)
            if action.cancelled:
                continue
            await self._dispatch(action)
            fired.append(action)
        pending_actions.set(len(self.pending()))
        return fired

    async def _dispatch(self, action: DeferredAction) -> None:
        try:
            await self.controller.set_power(action.kind is ActionKind.ON)
        except ControlError as exc:
            actions_fired_total.labels(kind=action.kind.value, result="error").inc()
            logger.error("Deferred %s action failed: %s", action.kind.value, exc)
            return
        actions_fired_total.labels(kind=action.kind.value, result="success").inc()

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.run_due()
            except Exception:
                logger.exception("Firing deferred actions failed")
            delay = None
            if self._heap:
                delay = max(0.0, (self._heap[0].fire_at - self.clock()).total_seconds())
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
