"""
This module provides the `GovernanceScheduler`, which periodically recomputes
rank scores for every scope.

Governance is an out-of-band batch job: it runs on its own asyncio task, off
the agent's request path, and offloads each cycle to a worker thread because
the storage layer is blocking. A failing cycle is logged and the loop keeps
going, so a storage outage never takes down the host process.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Dict, Optional

from .schemas import GovernanceRunResult
from .service import GovernanceService

LOGGER = logging.getLogger(__name__)


class GovernanceScheduler:
    """
    Runs `GovernanceService.run_all` on a fixed interval.

    Attributes:
        _service: The governance service shared with the agent runtime.
        _interval: Seconds between the start of consecutive cycles.
    """

    def __init__(self, service: GovernanceService, *, interval: Optional[float] = None) -> None:
        self._service = service
        configured = interval if interval is not None else service.settings.schedule_interval_seconds
        self._interval = max(0.1, configured)
        self._task: Optional[asyncio.Task[None]] = None
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, Optional[GovernanceRunResult]]:
        """Runs one governance cycle over every scope."""
        results = await asyncio.to_thread(self._service.run_all)
        self.cycles += 1
        LOGGER.info("Governance cycle %d finished (%d scope(s) ranked)", self.cycles, len(results))
        return results

    async def start(self) -> None:
        if self.running:
            return
        LOGGER.info("Governance scheduler starting (interval=%.1fs)", self._interval)
        self._task = asyncio.create_task(self._loop())

    async def shutdown(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            LOGGER.info("Governance scheduler stopped after %d cycle(s)", self.cycles)

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001 - keep the loop alive
                LOGGER.warning("Governance cycle failed: %s", exc)
            await asyncio.sleep(self._interval)
