from __future__ import annotations

from abc import ABC, abstractmethod
import itertools
import logging
import re
from typing import Awaitable, Callable

import httpx
from apscheduler.events import EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .errors import ConfigurationError
from .metrics import scheduler_misfires_total
from .models import JobCall, JobMarker, ScheduledJob
from .shelly import ShellyRpcClient

logger = logging.getLogger("spotswitch")

RecomputeCallback = Callable[[JobMarker], Awaitable[object]]

_DOW_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


class ScheduleBackend(ABC):
    """Recurring job engine holding the trigger for the recompute cycle."""

    @abstractmethod
    async def list_jobs(self) -> list[ScheduledJob]: ...

    @abstractmethod
    async def create_job(self, job: ScheduledJob) -> int:
        """Create the job and return the id assigned by the engine."""

    @abstractmethod
    async def update_job(self, job: ScheduledJob) -> None:
        """Replace timespec, calls and enable flag of the job with ``job.id``."""

    @abstractmethod
    def call_for(self, marker: JobMarker) -> JobCall:
        """Encode the marker into the call the engine performs when the job fires."""

    @abstractmethod
    def marker_of(self, call: JobCall) -> JobMarker | None:
        """Decode a marker from a job call, None for calls not made by spotswitch."""


class ShellyScheduleBackend(ScheduleBackend):
    """Device schedules that call back into this service with ``HTTP.GET``."""

    def __init__(self, rpc: ShellyRpcClient, callback_url: str):
        self.rpc = rpc
        self.callback_url = callback_url.rstrip("/")

    async def list_jobs(self) -> list[ScheduledJob]:
        result = await self.rpc.call("Schedule.List")
        return [ScheduledJob.model_validate(j) for j in (result or {}).get("jobs", [])]

    async def create_job(self, job: ScheduledJob) -> int:
        result = await self.rpc.call("Schedule.Create", job.model_dump(exclude={"id"}))
        return int(result["id"])

    async def update_job(self, job: ScheduledJob) -> None:
        await self.rpc.call("Schedule.Update", job.model_dump())

    def call_for(self, marker: JobMarker) -> JobCall:
        url = httpx.URL(f"{self.callback_url}/{marker.entrypoint}", params={"instance": marker.instance})
        return JobCall(method="HTTP.GET", params={"url": str(url)})

    def marker_of(self, call: JobCall) -> JobMarker | None:
        if call.method.lower() != "http.get":
            return None
        try:
            url = httpx.URL(str(call.params.get("url", "")))
        except httpx.InvalidURL:
            return None
        instance = url.params.get("instance")
        if not instance:
            return None
        entrypoint = url.path.rstrip("/").rsplit("/", 1)[-1]
        return JobMarker(instance=instance, entrypoint=entrypoint)


def cron_trigger(timespec: str, timezone: str) -> CronTrigger:
    """Build a trigger from a ``sec min hour dom month dow`` timespec.

    Numeric weekdays follow cron (0 and 7 are Sunday) and are translated to
    names because APScheduler counts from Monday.
    """
    fields = timespec.split()
    if len(fields) != 6:
        raise ConfigurationError(f"timespec needs 6 fields, got {len(fields)}: {timespec!r}")
    second, minute, hour, day, month, dow = fields
    dow = re.sub(r"\d+", lambda m: _DOW_NAMES[int(m.group()) % 7], dow)
    try:
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=dow,
            timezone=timezone,
        )
    except ValueError as exc:
        raise ConfigurationError(f"invalid timespec {timespec!r}: {exc}") from exc


class LocalScheduleBackend(ScheduleBackend):
    """In-process recurring jobs on an APScheduler ``AsyncIOScheduler``."""

    METHOD = "spotswitch.recompute"

    def __init__(self, timezone: str = "UTC"):
        self.timezone = timezone
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self._jobs: dict[int, ScheduledJob] = {}
        self._ids = itertools.count(1)
        self._callback: RecomputeCallback | None = None

    def bind(self, callback: RecomputeCallback) -> None:
        self._callback = callback

    def start(self) -> None:
        # Listen for misfires to expose as metrics
        self.scheduler.add_listener(lambda event: scheduler_misfires_total.inc(), EVENT_JOB_MISSED)
        self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def list_jobs(self) -> list[ScheduledJob]:
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    async def create_job(self, job: ScheduledJob) -> int:
        job_id = next(self._ids)
        stored = job.model_copy(update={"id": job_id}, deep=True)
        self.scheduler.add_job(
            self._fire,
            cron_trigger(stored.timespec, self.timezone),
            args=[job_id],
            id=str(job_id),
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=300,
        )
        if not stored.enable:
            self.scheduler.pause_job(str(job_id))
        self._jobs[job_id] = stored
        return job_id

    async def update_job(self, job: ScheduledJob) -> None:
        if job.id not in self._jobs:
            raise KeyError(f"no local job with id {job.id}")
        self.scheduler.reschedule_job(str(job.id), trigger=cron_trigger(job.timespec, self.timezone))
        if job.enable:
            self.scheduler.resume_job(str(job.id))
        else:
            self.scheduler.pause_job(str(job.id))
        self._jobs[job.id] = job.model_copy(deep=True)

    def call_for(self, marker: JobMarker) -> JobCall:
        return JobCall(method=self.METHOD, params=marker.model_dump())

    def marker_of(self, call: JobCall) -> JobMarker | None:
        if call.method != self.METHOD:
            return None
        return JobMarker.model_validate(call.params)

    async def _fire(self, job_id: int) -> None:
        job = self._jobs.get(job_id)
        if job is None or self._callback is None:
            logger.warning("Local job %s fired without a bound recompute callback", job_id)
            return
        for call in job.calls:
            marker = self.marker_of(call)
            if marker is not None:
                await self._callback(marker)
