from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from agent_governance.config import GovernanceSettings
from agent_governance.scheduler import GovernanceScheduler
from agent_governance.service import GovernanceService


def _make_service(db_path: Path) -> GovernanceService:
    settings = GovernanceSettings(database_path=str(db_path), contexts=["code"], storage_retry_delay_seconds=0)
    service = GovernanceService.from_settings(settings)
    service.ensure_node("a")
    service.ensure_node("b")
    service.record_transition("a", "b", "code")
    return service


@pytest.mark.anyio
async def test_run_once_ranks_every_scope(tmp_path: Path) -> None:
    scheduler = GovernanceScheduler(_make_service(tmp_path / "sched.db"), interval=60)

    results = await scheduler.run_once()

    assert set(results) == {"global", "code"}
    assert scheduler.cycles == 1


@pytest.mark.anyio
async def test_loop_keeps_running_after_failed_cycle(tmp_path: Path) -> None:
    service = _make_service(tmp_path / "sched.db")
    calls = 0
    original = service.run_all

    def flaky_run_all():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("boom")
        return original()

    service.run_all = flaky_run_all  # type: ignore[method-assign]
    scheduler = GovernanceScheduler(service, interval=0.1)

    await scheduler.start()
    try:
        for _ in range(50):
            if scheduler.cycles >= 1:
                break
            await asyncio.sleep(0.05)
    finally:
        await scheduler.shutdown()

    assert calls >= 2
    assert scheduler.cycles >= 1
    assert not scheduler.running


@pytest.mark.anyio
async def test_start_is_idempotent(tmp_path: Path) -> None:
    scheduler = GovernanceScheduler(_make_service(tmp_path / "sched.db"), interval=60)
    await scheduler.start()
    first = scheduler._task
    await scheduler.start()
    assert scheduler._task is first
    await scheduler.shutdown()
    assert scheduler._task is None


@pytest.mark.anyio
async def test_start_replaces_finished_task(tmp_path: Path) -> None:
    scheduler = GovernanceScheduler(_make_service(tmp_path / "sched.db"), interval=60)

    async def finished() -> None:
        return None

    stale = asyncio.create_task(finished())
    await stale
    scheduler._task = stale

    await scheduler.start()
    try:
        assert scheduler._task is not stale
        assert scheduler.running
    finally:
        await scheduler.shutdown()
    assert not scheduler.running
