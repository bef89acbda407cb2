from datetime import datetime, timedelta, timezone

import pytest

from worker.schedule import (
    DEFAULT_INTERVAL,
    ScheduleError,
    parse_cron,
    parse_duration,
    parse_schedule,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_every_two_hours_from_quarter_past_one():
    cron = parse_cron("0 */2 * * *")
    assert cron.next(utc(2024, 6, 10, 1, 15)) == utc(2024, 6, 10, 2, 0)


def test_next_is_strictly_after_a_matching_minute():
    cron = parse_cron("30 9 * * *")
    assert cron.next(utc(2024, 6, 10, 9, 30, 0)) == utc(2024, 6, 11, 9, 30)


def test_day_of_week_uses_sunday_zero():
    cron = parse_cron("0 8 * * 0")
    # 2024-06-10 is a Monday
    assert cron.next(utc(2024, 6, 10, 0, 0)) == utc(2024, 6, 16, 8, 0)


def test_lists_and_month_fields():
    cron = parse_cron("5,45 12 1 1,7 *")
    assert cron.next(utc(2024, 6, 10)) == utc(2024, 7, 1, 12, 5)


def test_impossible_date_raises_after_a_year():
    cron = parse_cron("0 0 31 2 *")
    with pytest.raises(ScheduleError):
        cron.next(utc(2024, 1, 1))


@pytest.mark.parametrize(
    "spec",
    ["* * * *", "60 * * * *", "* 24 * * *", "* * 0 * *", "* * * 13 *", "* * * * 7", "*/0 * * * *", "a * * * *"],
)
def test_invalid_cron_specs(spec):
    with pytest.raises(ScheduleError):
        parse_cron(spec)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("90s", timedelta(seconds=90)),
        ("30m", timedelta(minutes=30)),
        ("2h", timedelta(hours=2)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5h", timedelta(minutes=90)),
        ("250ms", timedelta(milliseconds=250)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "10", "1x", "h", "1h30"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ScheduleError):
        parse_duration(text)


def test_parse_schedule_modes():
    assert parse_schedule("45m").interval == timedelta(minutes=45)
    assert parse_schedule("45m").cron is None

    cron_mode = parse_schedule("0 */2 * * *")
    assert cron_mode.interval is None
    assert cron_mode.cron.spec == "0 */2 * * *"

    for fallback in ("", None, "every day", "-5m", "0s"):
        assert parse_schedule(fallback).interval == DEFAULT_INTERVAL
