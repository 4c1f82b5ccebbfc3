import pytest

from src.core import FatalConfigException
from src.monitoring.infrastructure import MonitorScheduler


async def noop():
    return None


@pytest.mark.parametrize("sweep, presence", [(0, 60), (60, -5), (None, 60)])
async def test_non_positive_interval_is_fatal(sweep, presence):
    scheduler = MonitorScheduler(sweep_interval_seconds=sweep, presence_interval_seconds=presence)
    with pytest.raises(FatalConfigException):
        await scheduler.start(noop, noop)
    assert not scheduler.is_running


async def test_start_registers_both_sweeps_and_stop_is_idempotent():
    scheduler = MonitorScheduler(sweep_interval_seconds=60, presence_interval_seconds=120)
    await scheduler.start(noop, noop)
    try:
        assert scheduler.is_running
        jobs = {job.id: job for job in scheduler._scheduler.get_jobs()}
        assert set(jobs) == {"visit_sweep", "presence_sweep"}
        assert jobs["visit_sweep"].max_instances == 1
        assert jobs["visit_sweep"].coalesce
    finally:
        await scheduler.stop()

    assert not scheduler.is_running
    await scheduler.stop()


async def test_presence_job_is_optional():
    scheduler = MonitorScheduler(sweep_interval_seconds=30)
    await scheduler.start(noop)
    try:
        assert [job.id for job in scheduler._scheduler.get_jobs()] == ["visit_sweep"]
    finally:
        await scheduler.stop()
