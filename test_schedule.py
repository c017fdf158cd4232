"""
Tests for cron expression parsing and next-fire-time evaluation.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from cronjob.schedule import CronSchedule, InvalidScheduleError

UTC = timezone.utc

# 2024-01-01 is a Monday
MONDAY = datetime(2024, 1, 1, 0, 0, 0, tzinfo=UTC)


@pytest.mark.parametrize("expression", [
    "* * * * *",
    "*/5 * * * * *",
    "0 9 * * 1-5",
    "30 2 1,15 * *",
    "0 0 1 jan *",
    "0 12 * * MON-FRI",
    "0 0 ? * 1",
    "15 10 * * * *",
])
def test_valid_expressions(expression):
    assert CronSchedule(expression).expression == expression


@pytest.mark.parametrize("expression", [
    "invalid-cron-string",
    "",
    "* * * *",
    "* * * * * * *",
    "60 * * * *",
    "* 24 * * *",
    "* * 32 * *",
    "* * * 13 *",
    "* * * * 8",
    "a b c d e",
    "* * * * 1-",
])
def test_invalid_expressions(expression):
    with pytest.raises(InvalidScheduleError):
        CronSchedule(expression)


def test_invalid_schedule_error_is_value_error():
    with pytest.raises(ValueError):
        CronSchedule("not a cron")


def test_six_fields_fire_on_seconds():
    schedule = CronSchedule("*/5 * * * * *")
    after = datetime(2024, 1, 1, 12, 0, 3, tzinfo=UTC)
    assert schedule.next(after) == datetime(2024, 1, 1, 12, 0, 5, tzinfo=UTC)


def test_five_fields_fire_on_minute_boundaries():
    schedule = CronSchedule("* * * * *")
    after = datetime(2024, 1, 1, 12, 0, 3, tzinfo=UTC)
    assert schedule.next(after) == datetime(2024, 1, 1, 12, 1, 0, tzinfo=UTC)


def test_next_is_strictly_after():
    schedule = CronSchedule("*/5 * * * * *")
    on_match = datetime(2024, 1, 1, 12, 0, 5, tzinfo=UTC)
    assert schedule.next(on_match) == datetime(2024, 1, 1, 12, 0, 10, tzinfo=UTC)

    just_before = datetime(2024, 1, 1, 12, 0, 4, 999999, tzinfo=UTC)
    assert schedule.next(just_before) == datetime(2024, 1, 1, 12, 0, 5, tzinfo=UTC)


def test_next_is_repeatable():
    schedule = CronSchedule("0 9 * * *")
    after = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
    assert schedule.next(after) == schedule.next(after)


def test_next_uses_reference_timezone():
    schedule = CronSchedule("0 9 * * *")
    new_york = ZoneInfo("America/New_York")

    result = schedule.next(datetime(2024, 1, 1, 8, 0, tzinfo=new_york))

    assert result == datetime(2024, 1, 1, 9, 0, tzinfo=new_york)
    assert result == datetime(2024, 1, 1, 14, 0, tzinfo=UTC)
    assert result.utcoffset() == new_york.utcoffset(datetime(2024, 1, 1))


def test_next_requires_aware_datetime():
    with pytest.raises(ValueError):
        CronSchedule("* * * * *").next(datetime(2024, 1, 1))


@pytest.mark.parametrize("dow, expected_day", [
    ("0", 7),      # Sunday
    ("7", 7),      # Sunday again
    ("1", 1),      # Monday (same day, later hour)
    ("2", 2),      # Tuesday
    ("6", 6),      # Saturday
    ("sun", 7),
    ("SAT", 6),
])
def test_day_of_week_uses_cron_numbering(dow, expected_day):
    schedule = CronSchedule(f"0 12 * * {dow}")
    assert schedule.next(MONDAY) == datetime(2024, 1, expected_day, 12, 0, tzinfo=UTC)


def test_day_of_week_step_counts_from_sunday():
    # Sunday, Tuesday, Thursday, Saturday
    schedule = CronSchedule("0 0 * * */2")
    assert schedule.next(MONDAY) == datetime(2024, 1, 2, tzinfo=UTC)
    assert schedule.fields['day_of_week'] == 'sun,tue,thu,sat'


def test_day_of_week_range_and_list():
    schedule = CronSchedule("0 0 * * 1-3,5")
    assert schedule.fields['day_of_week'] == 'mon,tue,wed,fri'


def test_question_mark_is_wildcard():
    schedule = CronSchedule("0 0 ? * 1")
    # Strictly after Monday midnight: next Monday
    assert schedule.next(MONDAY) == datetime(2024, 1, 8, tzinfo=UTC)


def test_restricted_day_and_weekday_match_either():
    # The 13th, or any Friday
    schedule = CronSchedule("0 0 13 * 5")
    assert schedule.day_or is True
    assert schedule.next(MONDAY) == datetime(2024, 1, 5, tzinfo=UTC)
    assert schedule.next(datetime(2024, 1, 12, 1, 0, tzinfo=UTC)) == datetime(2024, 1, 13, tzinfo=UTC)


def test_wildcard_weekday_restricts_by_day_only():
    schedule = CronSchedule("0 0 13 * *")
    assert schedule.day_or is False
    assert schedule.next(MONDAY) == datetime(2024, 1, 13, tzinfo=UTC)


def test_impossible_date_never_fires():
    # February 30th
    assert CronSchedule("0 0 30 2 *").next(MONDAY) is None


def test_to_dict():
    assert CronSchedule("*/5 * * * * *").to_dict() == {
        'second': '*/5',
        'minute': '*',
        'hour': '*',
        'day': '*',
        'month': '*',
        'day_of_week': '*',
        'day_or': False,
    }
    assert CronSchedule("30 2 * * *").to_dict()['second'] == '0'


def test_equality():
    assert CronSchedule("0 9 * * 1") == CronSchedule("0 9 * * mon")
    assert CronSchedule("0 9 * * 1") != CronSchedule("0 9 * * 2")
    assert len({CronSchedule("0 9 * * *"), CronSchedule("0 9 * * *")}) == 1


def test_day_of_week_mixes_numbers_and_names():
    schedule = CronSchedule("0 0 * * 1-fri")

    assert schedule.fields['day_of_week'] == 'mon,tue,wed,thu,fri'
    assert schedule == CronSchedule("0 0 * * 1-5")
    assert CronSchedule("0 0 * * SUN-3,sat").fields['day_of_week'] == 'sun,mon,tue,wed,sat'
    assert CronSchedule("0 0 * * mon-fri/2").fields['day_of_week'] == 'mon,wed,fri'


def test_day_of_week_rejects_unknown_names():
    with pytest.raises(InvalidScheduleError):
        CronSchedule("0 0 * * funday")
    with pytest.raises(InvalidScheduleError):
        CronSchedule("0 0 * * fri-mon")


# ---------------------------------------------------------------------------
# Daylight saving time (America/New_York: 2024-03-10 springs forward at 2 AM,
# 2024-11-03 falls back at 2 AM)
# ---------------------------------------------------------------------------

NEW_YORK = ZoneInfo("America/New_York")


def test_next_across_spring_forward():
    after = datetime(2024, 3, 10, 1, 0, tzinfo=NEW_YORK)

    result = CronSchedule("0 4 * * *").next(after)

    assert result.astimezone(UTC) == datetime(2024, 3, 10, 8, 0, tzinfo=UTC)


def test_next_is_strictly_after_in_repeated_hour():
    # 01:30 EST, the second time the wall clock shows 01:30 that night
    after = datetime(2024, 11, 3, 1, 30, 0, 1000, tzinfo=NEW_YORK, fold=1)
    assert after.astimezone(UTC) == datetime(2024, 11, 3, 6, 30, 0, 1000, tzinfo=UTC)

    result = CronSchedule("*/20 * * * *").next(after)

    assert result.astimezone(UTC) > after.astimezone(UTC)
    assert result.astimezone(UTC) <= datetime(2024, 11, 3, 7, 0, tzinfo=UTC)


def test_stepping_through_fall_back_always_moves_forward():
    schedule = CronSchedule("*/20 * * * *")
    when = datetime(2024, 11, 3, 0, 50, tzinfo=NEW_YORK)

    instants = []
    for _ in range(8):
        when = schedule.next(when)
        instants.append(when.astimezone(UTC))

    assert instants == sorted(set(instants))
    assert instants[0] == datetime(2024, 11, 3, 5, 0, tzinfo=UTC)
    assert instants[-1] >= datetime(2024, 11, 3, 7, 0, tzinfo=UTC)
