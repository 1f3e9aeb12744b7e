from __future__ import annotations

from enum import Enum
import logging

from .errors import SchedulerError
from .metrics import reconcile_total
from .models import RecurrenceRule, ScheduledJob
from .scheduler import ScheduleBackend
from .storage import KeyValueStore

logger = logging.getLogger("spotswitch")


class ReconcileResult(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    CREATED = "created"


def schedule_key(instance: str) -> str:
    return f"spotswitch-schedule-{instance}"


class ScheduleReconciler:
    """Keeps exactly one recurring job per instance in sync with the desired rule.

    Safe to run on every start: a matching job is left alone, a divergent one
    is updated in place, and only a missing job leads to a create. The id of a
    created job is written to the key/value store so outside observers can
    find it. Further jobs carrying the same marker are disabled so only one
    trigger fires. Backend failures surface as SchedulerError and are not
    retried.
    """

    def __init__(self, backend: ScheduleBackend, kvs: KeyValueStore):
        self.backend = backend
        self.kvs = kvs

    async def reconcile(self, desired: RecurrenceRule) -> ReconcileResult:
        try:
            result = await self._reconcile(desired)
        except SchedulerError:
            reconcile_total.labels(result="error").inc()
            raise
        except Exception as exc:
            reconcile_total.labels(result="error").inc()
            raise SchedulerError(f"schedule reconciliation failed: {exc}") from exc
        reconcile_total.labels(result=result.value).inc()
        return result

    async def _reconcile(self, desired: RecurrenceRule) -> ReconcileResult:
        calls = [self.backend.call_for(desired.marker)]
        jobs = await self.backend.list_jobs()
        owned = self._find_owned(jobs, desired)
        if not owned:
            job_id = await self.backend.create_job(
                ScheduledJob(enable=True, timespec=desired.timespec, calls=calls)
            )
            await self.kvs.set(schedule_key(desired.marker.instance), job_id)
            logger.info("Created schedule %s (%s)", job_id, desired.timespec)
            return ReconcileResult.CREATED

        keep, duplicates = owned[0], owned[1:]
        result = ReconcileResult.UNCHANGED
        if keep.timespec == desired.timespec and keep.calls == calls and keep.enable:
            logger.info("Schedule %s is up to date (%s)", keep.id, keep.timespec)
        else:
            logger.info(
                "Schedule %s has changed: %s -> %s", keep.id, keep.timespec, desired.timespec
            )
            await self.backend.update_job(
                keep.model_copy(update={"enable": True, "timespec": desired.timespec, "calls": calls})
            )
            result = ReconcileResult.UPDATED

        for job in duplicates:
            if job.enable:
                logger.warning("Disabling duplicate schedule %s", job.id)
                await self.backend.update_job(job.model_copy(update={"enable": False}))
                result = ReconcileResult.UPDATED
        return result

    def _find_owned(self, jobs: list[ScheduledJob], desired: RecurrenceRule) -> list[ScheduledJob]:
        return [
            job
            for job in jobs
            if any(self.backend.marker_of(call) == desired.marker for call in job.calls)
        ]
