from datetime import UTC, date, datetime, timedelta

from freezegun import freeze_time
from hypothesis import given
from hypothesis import strategies as st

from models.volunteer.shift import Shift, Signup
from models.volunteer.timing import (
    effective_worked_minutes,
    is_past,
    parse_clock,
    scheduled_minutes,
    shift_end,
    shift_start,
)


def make(start_time="09:00", end_time="17:00", on=date(2026, 6, 2)):
    return Shift("Gate", on, start_time, end_time)


def test_scheduled_minutes():
    assert scheduled_minutes("09:00", "17:00") == 480
    assert scheduled_minutes("09:15", "09:45") == 30
    assert scheduled_minutes("17:00", "17:00") == 0


def test_scheduled_minutes_malformed_or_missing():
    assert scheduled_minutes(None, "17:00") == 0
    assert scheduled_minutes("09:00", None) == 0
    assert scheduled_minutes("nine", "17:00") == 0
    assert scheduled_minutes("09:xx", "17:00") == 0
    assert scheduled_minutes("", "") == 0


def test_overnight_shift_is_zero_length():
    assert scheduled_minutes("22:00", "02:00") == 0


clock = st.tuples(st.integers(0, 23), st.integers(0, 59))


@given(clock, clock)
def test_scheduled_minutes_is_difference_or_zero(start, end):
    start_time = f"{start[0]:02d}:{start[1]:02d}"
    end_time = f"{end[0]:02d}:{end[1]:02d}"
    expected = (end[0] * 60 + end[1]) - (start[0] * 60 + start[1])

    result = scheduled_minutes(start_time, end_time)
    assert result >= 0
    assert result == max(expected, 0)


def test_parse_clock():
    assert parse_clock("07:30") == (7, 30)
    assert parse_clock(" 7:5 ") == (7, 5)
    assert parse_clock("7") is None
    assert parse_clock(None) is None


def test_shift_start_uses_local_time():
    # Oslo is UTC+2 in summer
    assert shift_start(make()) == datetime(2026, 6, 2, 7, 0, tzinfo=UTC)
    # and UTC+1 in winter
    assert shift_start(make(on=date(2026, 1, 15))) == datetime(2026, 1, 15, 8, 0, tzinfo=UTC)


def test_shift_start_across_dst_change():
    # Clocks go forward at 02:00 local on the last Sunday in March
    before = make(on=date(2026, 3, 28))
    after = make(on=date(2026, 3, 29))
    assert shift_start(before) == datetime(2026, 3, 28, 8, 0, tzinfo=UTC)
    assert shift_start(after) == datetime(2026, 3, 29, 7, 0, tzinfo=UTC)


def test_shift_start_in_skipped_hour():
    # 02:30 never happens on the night the clocks go forward
    skipped = make(start_time="02:30", on=date(2026, 3, 29))
    assert shift_start(skipped) == datetime(2026, 3, 29, 0, 30, tzinfo=UTC)


def test_shift_start_in_repeated_hour():
    # 02:30 happens twice when the clocks go back
    repeated = make(start_time="02:30", on=date(2026, 10, 25))
    assert shift_start(repeated) == datetime(2026, 10, 25, 1, 30, tzinfo=UTC)


def test_shift_start_defaults():
    midnight = datetime(2026, 6, 1, 22, 0, tzinfo=UTC)
    assert shift_start(make(start_time=None)) == midnight
    # Unparsable parts count as zero
    assert shift_start(make(start_time="xx:30")) == midnight + timedelta(minutes=30)
    assert shift_start(make(start_time="10:yy")) == midnight + timedelta(hours=10)


def test_shift_end():
    assert shift_end(make()) == datetime(2026, 6, 2, 15, 0, tzinfo=UTC)
    assert shift_end(make(end_time=None)) == shift_start(make())
    assert shift_end(make(start_time=None)) == shift_start(make(start_time=None))
    assert shift_end(make("22:00", "02:00")) == shift_start(make("22:00", "02:00"))


def test_is_past():
    shift = make()
    end = shift_end(shift)
    assert is_past(shift, end)
    assert is_past(shift, end + timedelta(seconds=1))
    assert not is_past(shift, end - timedelta(seconds=1))


@freeze_time("2026-03-02 12:00:00")
def test_is_past_defaults_to_now():
    # 09:00-11:00 in Oslo is 08:00-10:00 UTC
    assert is_past(make("09:00", "11:00", on=date(2026, 3, 2)))
    assert not is_past(make("13:00", "15:00", on=date(2026, 3, 2)))


def test_effective_worked_minutes():
    shift = make()
    signup = Signup(1, 1)

    assert effective_worked_minutes(signup, shift) == 480

    signup.worked_minutes = 300
    assert effective_worked_minutes(signup, shift) == 300

    signup.worked_minutes = 0
    assert effective_worked_minutes(signup, shift) == 0

    signup.worked_minutes = None
    assert effective_worked_minutes(signup, shift) == 480


def test_effective_worked_minutes_without_schedule():
    signup = Signup(1, 1)
    assert effective_worked_minutes(signup, make(start_time=None)) == 0

    signup.worked_minutes = 90
    assert effective_worked_minutes(signup, make(start_time=None)) == 90
