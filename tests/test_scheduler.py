import asyncio

import pytest

from harborlist.trust.models import SyncOutcome, SyncReport
from harborlist.trust.sync import SyncScheduler
from harborlist.trust.sync.scheduler import JOB_ID


class FakeSynchronizer:
    def __init__(self):
        self.runs = 0

    async def run_once(self) -> SyncReport:
        self.runs += 1
        return SyncReport(outcome=SyncOutcome.UNCHANGED)


@pytest.mark.asyncio
async def test_start_schedules_interval_job():
    scheduler = SyncScheduler(FakeSynchronizer(), interval_seconds=3600)
    scheduler.start(run_immediately=False)
    try:
        assert scheduler.running
        job = scheduler.scheduler.get_job(JOB_ID)
        assert job is not None
        assert job.next_run_time is not None
        assert scheduler.next_run_time() == job.next_run_time
    finally:
        scheduler.shutdown()
    # AsyncIOScheduler completes shutdown on the next loop iteration
    await asyncio.sleep(0)
    assert not scheduler.running


@pytest.mark.asyncio
async def test_trigger_now_moves_next_run():
    scheduler = SyncScheduler(FakeSynchronizer(), interval_seconds=3600)
    scheduler.start(run_immediately=False)
    try:
        before = scheduler.next_run_time()
        scheduler.trigger_now()
        assert scheduler.next_run_time() < before
    finally:
        scheduler.shutdown()


@pytest.mark.asyncio
async def test_tick_records_last_report():
    synchronizer = FakeSynchronizer()
    scheduler = SyncScheduler(synchronizer)
    await scheduler._tick()
    assert synchronizer.runs == 1
    assert scheduler.last_report.outcome is SyncOutcome.UNCHANGED


def test_shutdown_without_start_is_safe():
    SyncScheduler(FakeSynchronizer()).shutdown()
