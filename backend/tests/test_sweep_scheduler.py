"""Sweep scheduler tests"""
from reminders.scheduler.sweep_scheduler import SweepScheduler

from .factories import run


class ExplodingEngine:

    async def run_sweep(self):
        raise RuntimeError("mongo unavailable")


def test_scheduled_job_counts_sweeps(engine):
    scheduler = SweepScheduler(engine, interval_seconds=60)

    run(scheduler._run_sweep())
    run(scheduler._run_sweep())

    assert scheduler.sweep_count == 2
    assert scheduler.is_running is False


def test_failed_sweep_keeps_the_job_alive():
    scheduler = SweepScheduler(ExplodingEngine(), interval_seconds=60)

    run(scheduler._run_sweep())

    assert scheduler.sweep_count == 0


def test_start_and_stop_inside_a_loop(engine):
    scheduler = SweepScheduler(engine, interval_seconds=3600)

    async def lifecycle():
        scheduler.start()
        job = scheduler.scheduler.get_job("reminder_sweep")
        running = scheduler.is_running
        scheduler.stop()
        return job, running

    job, running = run(lifecycle())

    assert running is True
    assert job.max_instances == 1
    assert job.coalesce is True
    assert scheduler.is_running is False
