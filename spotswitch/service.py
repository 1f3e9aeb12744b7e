from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
from zoneinfo import ZoneInfo

from .errors import FetchError, InsufficientDataError
from .metrics import recompute_runs_total
from .models import JobMarker, OutcomeStatus, RecomputeOutcome, RecurrenceRule
from .planner import average_price, exceeds_price_limit, find_cheapest_window
from .reconciler import ReconcileResult
from .state import SpotSwitchState
from .window import resolve_window

logger = logging.getLogger("spotswitch")


def plan_key(instance: str) -> str:
    return f"spotswitch-plan-{instance}"


def desired_rule(state: SpotSwitchState) -> RecurrenceRule:
    settings = state.settings
    return RecurrenceRule(
        timespec=settings.schedule_timespec,
        marker=JobMarker(instance=settings.instance_id),
    )


async def startup(state: SpotSwitchState) -> ReconcileResult:
    """Make sure the recurring recompute trigger exists; SchedulerError is fatal."""
    return await state.reconciler.reconcile(desired_rule(state))


def _format_time(ts: datetime, tz: ZoneInfo) -> str:
    return ts.astimezone(tz).strftime("on %d.%m.%Y at %H:%M")


async def recompute(state: SpotSwitchState, now: datetime | None = None) -> RecomputeOutcome:
    """Run one cycle: resolve the window, fetch prices, pick the cheapest block, arm it.

    Fetch and data errors are notified, recorded as a failed outcome and
    re-raised; no actions are armed in that case.
    """
    settings = state.settings
    tz = ZoneInfo(settings.timezone)
    now = now or datetime.now(timezone.utc)
    key = plan_key(settings.instance_id)

    query_start, query_end = resolve_window(
        now, settings.time_window_start_hour, settings.time_window_end_hour, tz
    )
    logger.info(
        "%s",
        json.dumps(
            {
                "scheduleTimeSpec": settings.schedule_timespec,
                "switchOnDuration": settings.switch_on_duration,
                "timeWindowStartHour": settings.time_window_start_hour,
                "timeWindowEndHour": settings.time_window_end_hour,
                "systemTime": now.isoformat(),
                "calculatedStart": query_start.isoformat(),
                "calculatedEnd": query_end.isoformat(),
            }
        ),
    )

    try:
        series = await state.price_provider.get_prices(query_start, query_end)
        window = find_cheapest_window(series, settings.switch_on_duration)
    except (FetchError, InsufficientDataError) as exc:
        message = f"No schedule could be computed: {exc}"
        await state.notifier.notify(message, settings.send_schedule, key)
        state.last_outcome = RecomputeOutcome(
            status=OutcomeStatus.FAILED,
            computed_at=now,
            query_start=query_start,
            query_end=query_end,
            message=message,
        )
        recompute_runs_total.labels(status=OutcomeStatus.FAILED.value).inc()
        raise

    avg = average_price(window)
    if exceeds_price_limit(window, settings.price_limit):
        message = (
            f"The cheapest average price is {avg:.2f} cent/kWh and exceeds the limit of "
            f"{settings.price_limit:.2f} cent/kWh. Power will not be switched on in the "
            "current time window."
        )
        status = OutcomeStatus.ABOVE_LIMIT
    else:
        message = (
            f"Power will be switched on {_format_time(window.start, tz)} and off "
            f"{_format_time(window.end, tz)}. The average market price is {avg:.2f} cent/kWh."
        )
        status = OutcomeStatus.SCHEDULED
    await state.notifier.notify(message, settings.send_schedule, key)

    if status is OutcomeStatus.SCHEDULED:
        state.actions.arm(window, now)

    state.last_outcome = RecomputeOutcome(
        status=status,
        computed_at=now,
        query_start=query_start,
        query_end=query_end,
        window=window,
        average_price=round(avg, 2),
        message=message,
    )
    recompute_runs_total.labels(status=status.value).inc()
    return state.last_outcome
