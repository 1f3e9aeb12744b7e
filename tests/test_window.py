from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from spotswitch.errors import ConfigurationError
from spotswitch.window import find_hour, resolve_window

VIENNA = ZoneInfo("Europe/Vienna")


def test_midnight_to_midnight_is_one_calendar_day():
    now = datetime(2026, 3, 10, 15, 0, 12, tzinfo=VIENNA)
    start, end = resolve_window(now, 0, 0, VIENNA)
    assert start.astimezone(VIENNA) == datetime(2026, 3, 11, 0, 0, tzinfo=VIENNA)
    assert end - start == timedelta(hours=24)


def test_window_wraps_past_midnight():
    now = datetime(2026, 3, 10, 15, 0, tzinfo=VIENNA)
    start, end = resolve_window(now, 20, 4, VIENNA)
    local_start, local_end = start.astimezone(VIENNA), end.astimezone(VIENNA)
    assert local_start == datetime(2026, 3, 10, 20, 0, tzinfo=VIENNA)
    assert local_end.date() == local_start.date() + timedelta(days=1)
    assert local_end.hour == 4
    assert timedelta(hours=1) <= end - start <= timedelta(hours=24)


def test_daytime_window_after_daily_run_targets_next_day():
    now = datetime(2026, 3, 10, 15, 0, 3, tzinfo=VIENNA)
    start, end = resolve_window(now, 7, 19, VIENNA)
    assert start.astimezone(VIENNA) == datetime(2026, 3, 11, 7, 0, tzinfo=VIENNA)
    assert end.astimezone(VIENNA) == datetime(2026, 3, 11, 19, 0, tzinfo=VIENNA)


def test_search_starts_strictly_after_now():
    now = datetime(2026, 3, 10, 7, 0, tzinfo=VIENNA)
    assert find_hour(now, 7, VIENNA).astimezone(VIENNA) == datetime(2026, 3, 11, 7, 0, tzinfo=VIENNA)
    assert find_hour(now, 8, VIENNA).astimezone(VIENNA) == datetime(2026, 3, 10, 8, 0, tzinfo=VIENNA)


def test_bounds_are_utc_hour_boundaries():
    now = datetime(2026, 7, 1, 10, 17, tzinfo=timezone.utc)
    start, end = resolve_window(now, 7, 19, VIENNA)
    assert start.tzinfo == timezone.utc
    assert (start.minute, start.second) == (0, 0)
    assert end - start == timedelta(hours=12)


def test_dst_spring_forward_day_is_shorter():
    now = datetime(2026, 3, 28, 12, 0, tzinfo=VIENNA)
    start, end = resolve_window(now, 0, 0, VIENNA)
    assert end - start == timedelta(hours=23)


def test_invalid_hours_raise_configuration_error():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=VIENNA)
    with pytest.raises(ConfigurationError):
        resolve_window(now, 24, 4, VIENNA)
    with pytest.raises(ConfigurationError):
        resolve_window(now, 4, -1, VIENNA)


def test_naive_now_is_rejected():
    with pytest.raises(ConfigurationError):
        resolve_window(datetime(2026, 3, 10, 12, 0), 7, 19, VIENNA)
