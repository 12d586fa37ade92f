# tests/test_attendance_calculator.py
from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.attendance import MeetingInfo
from app.services.attendance_calculator import (
    attendance_percentage,
    parse_timestamp,
    resolve_meeting_duration,
    round_half_up,
    session_duration,
)

NOW = datetime(2025, 1, 10, 11, 0, tzinfo=timezone.utc)


def test_round_half_up_rounds_halves_away_from_even():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4999) == 2
    assert round_half_up(-0.5) == 0


@pytest.mark.parametrize(
    "value",
    [
        "2025-01-10T10:00:00Z",
        "2025-01-10T10:00:00+00:00",
        "2025-01-10T12:00:00+02:00",
        datetime(2025, 1, 10, 10, 0),
        datetime(2025, 1, 10, 10, 0, tzinfo=timezone.utc),
        1736503200000,
    ],
)
def test_parse_timestamp_accepts_known_shapes(value):
    assert parse_timestamp(value) == datetime(2025, 1, 10, 10, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "not a date", True, {"a": 1}, float("nan")])
def test_parse_timestamp_returns_none_for_garbage(value):
    assert parse_timestamp(value) is None


def test_session_duration_between_join_and_leave():
    assert session_duration("2025-01-10T10:00:00Z", "2025-01-10T10:45:00Z") == 45


def test_session_duration_rounds_half_minute_up():
    assert session_duration("2025-01-10T10:00:00Z", "2025-01-10T10:00:30Z") == 1
    assert session_duration("2025-01-10T10:00:00Z", "2025-01-10T10:00:29Z") == 0


def test_open_session_is_measured_until_now():
    assert session_duration("2025-01-10T10:20:00Z", None, now=NOW) == 40
    assert session_duration("2025-01-10T10:20:00Z", "", now=NOW) == 40


def test_leave_before_join_is_clamped_to_zero():
    assert session_duration("2025-01-10T10:30:00Z", "2025-01-10T10:00:00Z") == 0


def test_unparseable_join_or_leave_gives_zero():
    assert session_duration("garbage", "2025-01-10T10:30:00Z") == 0
    assert session_duration("2025-01-10T10:00:00Z", "garbage") == 0


class TestResolveMeetingDuration:
    def test_explicit_duration_wins(self):
        info = MeetingInfo(
            duration=60,
            start_time="2025-01-10T10:00:00Z",
            end_time="2025-01-10T10:30:00Z",
        )
        assert resolve_meeting_duration(info, NOW) == 60

    def test_zero_or_non_numeric_duration_is_ignored(self):
        start_end = {"start_time": "2025-01-10T10:00:00Z", "end_time": "2025-01-10T10:30:00Z"}
        assert resolve_meeting_duration(MeetingInfo(duration=0, **start_end), NOW) == 30
        assert resolve_meeting_duration(MeetingInfo(duration="60", **start_end), NOW) == 30
        assert resolve_meeting_duration(MeetingInfo(duration=True, **start_end), NOW) == 30

    def test_started_at_ended_at_fallback(self):
        info = MeetingInfo(started_at="2025-01-10T10:00:00Z", ended_at="2025-01-10T10:50:00Z")
        assert resolve_meeting_duration(info, NOW) == 50

    def test_start_only_runs_until_now(self):
        assert resolve_meeting_duration(MeetingInfo(start_time="2025-01-10T10:00:00Z"), NOW) == 60
        assert resolve_meeting_duration(MeetingInfo(started_at="2025-01-10T10:30:00Z"), NOW) == 30

    def test_nothing_known_is_zero(self):
        assert resolve_meeting_duration(MeetingInfo(), NOW) == 0
        assert resolve_meeting_duration(None, NOW) == 0


class TestAttendancePercentage:
    def test_no_attendance_and_inactive_is_zero(self):
        assert attendance_percentage(0, 60, False) == 0

    def test_unknown_meeting_length(self):
        assert attendance_percentage(10, 0, True) == 100
        assert attendance_percentage(10, 0, False) == 0

    def test_active_with_no_elapsed_time_is_full(self):
        assert attendance_percentage(0, 60, True) == 100

    def test_ratio_is_rounded_and_capped(self):
        assert attendance_percentage(51, 60, False) == 85
        assert attendance_percentage(30, 60, False) == 50
        assert attendance_percentage(90, 60, False) == 100

    def test_result_always_in_range(self):
        for total in (0, 1, 7, 59, 60, 61, 1000):
            for meeting in (-5, 0, 1, 60):
                for active in (False, True):
                    assert 0 <= attendance_percentage(total, meeting, active) <= 100


def test_duration_grows_while_session_is_open():
    join = NOW - timedelta(minutes=10)
    early = session_duration(join, None, now=NOW)
    later = session_duration(join, None, now=NOW + timedelta(minutes=5))
    assert later > early
