"""Fixed-interval background jobs for in-memory state housekeeping."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)

MaintenanceJob = Callable[[], Any]


@dataclass
class _ScheduledJob:
    name: str
    func: MaintenanceJob
    interval_seconds: float
    next_run_at: float


class MaintenanceScheduler:
    """Run registered sweep/trim jobs on an asyncio worker loop.

    Jobs execute in a worker thread so a slow sweep never stalls request
    handling on the event loop. A failing job is logged and rescheduled.
    """

    def __init__(
        self,
        *,
        poll_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize an idle scheduler."""
        self._poll_interval_seconds = max(0.001, float(poll_interval_seconds))
        self._clock = clock
        self._jobs: dict[str, _ScheduledJob] = {}
        self._worker_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    def register_job(
        self, name: str, func: MaintenanceJob, *, interval_seconds: float
    ) -> None:
        """Register a job to run every ``interval_seconds``."""
        job_name = name.strip().lower()
        if not job_name:
            raise ValueError("job name is required")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._jobs[job_name] = _ScheduledJob(
            name=job_name,
            func=func,
            interval_seconds=float(interval_seconds),
            next_run_at=self._clock() + float(interval_seconds),
        )

    @property
    def job_names(self) -> list[str]:
        """Return registered job names."""
        return sorted(self._jobs)

    async def start(self) -> None:
        """Start background worker loop if not already running."""
        if self._worker_task and not self._worker_task.done():
            return
        self._stop_event.clear()
        self._worker_task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        """Stop background worker loop gracefully."""
        self._stop_event.set()
        if self._worker_task:
            await self._worker_task
            self._worker_task = None

    async def run_due_jobs(self) -> list[str]:
        """Run every job whose interval elapsed and return their names."""
        now = self._clock()
        executed: list[str] = []
        for job in list(self._jobs.values()):
            if job.next_run_at > now:
                continue
            job.next_run_at = now + job.interval_seconds
            try:
                result = await asyncio.to_thread(job.func)
            except Exception:
                LOGGER.exception("maintenance_job_failed", extra={"job": job.name})
                continue
            executed.append(job.name)
            LOGGER.debug(
                "maintenance_job_completed",
                extra={"job": job.name, "removed": result},
            )
        return executed

    async def _worker_loop(self) -> None:
        """Run due jobs until stop event is set."""
        while not self._stop_event.is_set():
            await self.run_due_jobs()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._poll_interval_seconds,
                )
            except asyncio.TimeoutError:
                continue
