from __future__ import annotations

import asyncio

import pytest

from tests.auth_factories import FakeClock
from uzpharm.core.maintenance import MaintenanceScheduler


def test_jobs_run_only_after_their_interval() -> None:
    async def scenario() -> None:
        clock = FakeClock(now=0.0)
        scheduler = MaintenanceScheduler(clock=clock)
        calls: list[str] = []
        scheduler.register_job("otp_sweep", lambda: calls.append("otp") or 1, interval_seconds=60)
        scheduler.register_job(
            "revocation_trim", lambda: calls.append("rev") or 0, interval_seconds=300
        )

        assert await scheduler.run_due_jobs() == []
        clock.advance(60)
        assert await scheduler.run_due_jobs() == ["otp_sweep"]
        assert await scheduler.run_due_jobs() == []
        clock.advance(240)
        assert sorted(await scheduler.run_due_jobs()) == ["otp_sweep", "revocation_trim"]
        assert calls.count("otp") == 2

    asyncio.run(scenario())


def test_failing_job_is_logged_and_rescheduled() -> None:
    async def scenario() -> None:
        clock = FakeClock(now=0.0)
        scheduler = MaintenanceScheduler(clock=clock)
        attempts: list[int] = []

        def flaky() -> int:
            attempts.append(1)
            raise RuntimeError("store unavailable")

        scheduler.register_job("otp_sweep", flaky, interval_seconds=10)
        clock.advance(10)
        assert await scheduler.run_due_jobs() == []
        clock.advance(10)
        assert await scheduler.run_due_jobs() == []
        assert len(attempts) == 2

    asyncio.run(scenario())


def test_worker_loop_starts_and_stops() -> None:
    async def scenario() -> None:
        ran = asyncio.Event()
        loop = asyncio.get_running_loop()
        clock = FakeClock(now=0.0)
        scheduler = MaintenanceScheduler(poll_interval_seconds=0.01, clock=clock)
        scheduler.register_job(
            "rate_limiter_sweep",
            lambda: loop.call_soon_threadsafe(ran.set),
            interval_seconds=1,
        )
        clock.advance(1)

        await scheduler.start()
        await asyncio.wait_for(ran.wait(), timeout=2)
        await scheduler.stop()

    asyncio.run(scenario())


def test_register_job_validates_arguments() -> None:
    scheduler = MaintenanceScheduler()

    with pytest.raises(ValueError):
        scheduler.register_job(" ", lambda: 0, interval_seconds=1)
    with pytest.raises(ValueError):
        scheduler.register_job("otp_sweep", lambda: 0, interval_seconds=0)
    scheduler.register_job("OTP_Sweep", lambda: 0, interval_seconds=1)
    assert scheduler.job_names == ["otp_sweep"]
