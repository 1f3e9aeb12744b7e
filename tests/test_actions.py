import asyncio
from datetime import datetime, timedelta, timezone

from spotswitch.actions import ActionQueue
from spotswitch.controller import PowerController
from spotswitch.models import ActionKind, CheapestWindow
from spotswitch.notifier import Notifier
from spotswitch.relay import NoOpRelay, RelayResult, Relay

NOW = datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc)


class ScriptedRelay(Relay):
    def __init__(self, codes: dict[bool, int] | None = None):
        self.codes = codes or {}
        self.calls: list[bool] = []

    async def set_output(self, on: bool) -> RelayResult:
        self.calls.append(on)
        code = self.codes.get(on, 0)
        return RelayResult(code=code, message="device busy" if code else "")


def make_window(start_offset_h: float, hours: int = 2) -> CheapestWindow:
    start = NOW + timedelta(hours=start_offset_h)
    return CheapestWindow(start=start, end=start + timedelta(hours=hours), total_cost=10, slot_count=hours)


def make_queue(relay: Relay, cancel_stale: bool = True) -> ActionQueue:
    controller = PowerController(relay, Notifier("Plug"))
    return ActionQueue(controller, cancel_stale=cancel_stale, clock=lambda: NOW)


def test_arm_creates_one_on_and_one_off_action():
    queue = make_queue(NoOpRelay())
    window = make_window(3)
    on, off = queue.arm(window, NOW)
    assert (on.kind, on.fire_at) == (ActionKind.ON, window.start)
    assert (off.kind, off.fire_at) == (ActionKind.OFF, window.end)
    assert queue.pending() == [on, off]


def test_actions_fire_in_time_order_once():
    relay = ScriptedRelay()
    queue = make_queue(relay)
    window = make_window(1)
    queue.arm(window, NOW)

    async def scenario():
        assert await queue.run_due(NOW) == []
        fired_on = await queue.run_due(window.start)
        fired_off = await queue.run_due(window.end + timedelta(minutes=5))
        again = await queue.run_due(window.end + timedelta(hours=1))
        return fired_on, fired_off, again

    fired_on, fired_off, again = asyncio.run(scenario())
    assert [a.kind for a in fired_on] == [ActionKind.ON]
    assert [a.kind for a in fired_off] == [ActionKind.OFF]
    assert again == []
    assert relay.calls == [True, False]


def test_past_due_actions_still_fire():
    relay = ScriptedRelay()
    queue = make_queue(relay)
    # fetch took long enough that the window already started
    queue.arm(make_window(-0.25), NOW)
    fired = asyncio.run(queue.run_due(NOW))
    assert [a.kind for a in fired] == [ActionKind.ON]
    assert relay.calls == [True]


def test_failed_activation_keeps_deactivation_armed():
    relay = ScriptedRelay(codes={True: 1})
    queue = make_queue(relay)
    window = make_window(1)
    queue.arm(window, NOW)

    async def scenario():
        await queue.run_due(window.start)
        remaining = queue.pending()
        await queue.run_due(window.end)
        return remaining

    remaining = asyncio.run(scenario())
    assert [a.kind for a in remaining] == [ActionKind.OFF]
    assert relay.calls == [True, False]


def test_rearming_cancels_stale_actions():
    relay = ScriptedRelay()
    queue = make_queue(relay)
    first_on, first_off = queue.arm(make_window(1), NOW)
    second = queue.arm(make_window(5), NOW)
    assert first_on.cancelled and first_off.cancelled
    assert queue.pending() == list(second)
    asyncio.run(queue.run_due(NOW + timedelta(hours=3)))
    assert relay.calls == []


def test_rearming_mid_window_keeps_running_block_off():
    relay = NoOpRelay()
    queue = make_queue(relay)
    running = make_window(-1, hours=4)
    _, running_off = queue.arm(running, NOW - timedelta(hours=2))

    async def scenario():
        await queue.run_due(running.start)
        # next cycle is computed while the block is still on
        tomorrow = make_window(20, hours=4)
        queue.arm(tomorrow, NOW)
        pending = queue.pending()
        await queue.run_due(running.end + timedelta(minutes=1))
        after_block = relay.last_output
        await queue.run_due(tomorrow.start - timedelta(hours=1))
        return pending, after_block

    pending, after_block = asyncio.run(scenario())
    assert not running_off.cancelled
    assert [a.kind for a in pending] == [ActionKind.OFF, ActionKind.ON, ActionKind.OFF]
    assert after_block is False
    assert relay.last_output is False


def test_rearming_without_cancellation_keeps_both_cycles():
    queue = make_queue(NoOpRelay(), cancel_stale=False)
    queue.arm(make_window(1), NOW)
    queue.arm(make_window(5), NOW)
    assert len(queue.pending()) == 4


def test_loop_task_fires_due_actions():
    relay = ScriptedRelay()
    controller = PowerController(relay, Notifier("Plug"))

    async def scenario():
        queue = ActionQueue(controller)
        await queue.start()
        now = datetime.now(timezone.utc)
        queue.arm(
            CheapestWindow(start=now, end=now + timedelta(milliseconds=50), total_cost=1, slot_count=1),
            now,
        )
        for _ in range(50):
            if len(relay.calls) == 2:
                break
            await asyncio.sleep(0.02)
        await queue.stop()

    asyncio.run(scenario())
    assert relay.calls == [True, False]
