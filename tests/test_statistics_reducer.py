# tests/test_statistics_reducer.py
from app.schemas.attendance import (
    AttendanceStatistics,
    AttendanceStatus,
    AuthenticatedUser,
    ParticipantAttendance,
)
from app.services.statistics_reducer import (
    compute_authentication_stats,
    reduce_statistics,
    summarize_threshold_attendance,
)


def _p(status, percentage, meets=False, user=None):
    return ParticipantAttendance(
        name="x",
        attendance_status=status,
        attendance_percentage=percentage,
        meets_threshold=meets,
        authenticated_user=user,
    )


def test_empty_input_gives_zeros():
    assert reduce_statistics([]) == AttendanceStatistics()


def test_counts_per_status_and_average():
    stats = reduce_statistics(
        [
            _p(AttendanceStatus.PRESENT, 95),
            _p(AttendanceStatus.PARTIAL, 75),
            _p(AttendanceStatus.LATE, 40),
            _p(AttendanceStatus.ABSENT, 10),
            _p(AttendanceStatus.IN_PROGRESS, 100),
        ]
    )
    assert stats.total == 5
    assert (stats.present, stats.partial, stats.late, stats.absent, stats.in_progress) == (
        1,
        1,
        1,
        1,
        1,
    )
    assert stats.average_percentage == 64


def test_unknown_status_counts_as_absent_for_raw_mappings():
    stats = reduce_statistics(
        [
            {"attendanceStatus": "Present", "attendancePercentage": 90},
            {"attendanceStatus": "Excused", "attendancePercentage": 0},
            {},
        ]
    )
    assert stats.total == 3
    assert stats.present == 1
    assert stats.absent == 2
    assert stats.average_percentage == 30


def test_threshold_summary_counts_in_progress_as_present():
    summary = summarize_threshold_attendance(
        [
            _p(AttendanceStatus.PRESENT, 90, meets=True),
            _p(AttendanceStatus.IN_PROGRESS, 100),
            _p(AttendanceStatus.ABSENT, 40),
        ],
        meeting_duration=60,
        threshold=85,
    )
    assert summary.total_participants == 3
    assert summary.present_count == 2
    assert summary.absent_count == 1
    assert summary.in_progress_count == 1
    assert summary.attendance_rate == 67
    assert summary.average_attendance == 77
    assert summary.threshold_duration == 51


def test_threshold_summary_of_nobody():
    summary = summarize_threshold_attendance([], meeting_duration=0, threshold=85)
    assert summary.total_participants == 0
    assert summary.attendance_rate == 0
    assert summary.threshold_duration == 0


def test_authentication_stats_by_role():
    stats = compute_authentication_stats(
        [
            _p(AttendanceStatus.PRESENT, 90, user=AuthenticatedUser(user_id="1", role="student")),
            _p(AttendanceStatus.PRESENT, 90, user=AuthenticatedUser(username="boss", role="Admin")),
            _p(AttendanceStatus.PRESENT, 90, user=AuthenticatedUser(user_id="3", role="teacher")),
            _p(AttendanceStatus.ABSENT, 0),
            _p(AttendanceStatus.ABSENT, 0, user=AuthenticatedUser()),
        ]
    )
    assert stats.total_authenticated == 3
    assert stats.authenticated_students == 1
    assert stats.authenticated_admins == 1
    assert stats.unauthenticated_participants == 2
