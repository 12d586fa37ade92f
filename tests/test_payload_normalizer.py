# tests/test_payload_normalizer.py
import pytest

from app.schemas.attendance import PayloadSource
from app.services.payload_normalizer import (
    adapt_meeting_info,
    adapt_participant,
    adapt_participants,
    adapt_webhook_records,
    sanitize_attendance_payload,
)


@pytest.mark.parametrize("raw", [None, [], "error", 42])
def test_non_mapping_input_gives_empty_shape(raw):
    payload = sanitize_attendance_payload(raw)
    assert payload.participants == []
    assert payload.statistics == {"total": 0}
    assert payload.authentication_stats.unauthenticated_participants == 0
    assert payload.authentication_stats.total_authenticated == 0


def test_missing_fields_get_defaults_sized_by_participants():
    payload = sanitize_attendance_payload({"participants": [{"name": "a"}, {"name": "b"}]})
    assert payload.statistics == {"total": 2}
    assert payload.authentication_stats.unauthenticated_participants == 2


def test_participants_that_are_not_a_list_become_empty():
    payload = sanitize_attendance_payload({"participants": {"name": "a"}})
    assert payload.participants == []
    assert payload.statistics == {"total": 0}


def test_non_dict_participant_entries_are_dropped():
    payload = sanitize_attendance_payload({"participants": [{"name": "a"}, None, "b"]})
    assert payload.participants == [{"name": "a"}]


def test_existing_fields_and_unknown_keys_are_kept():
    payload = sanitize_attendance_payload(
        {
            "success": True,
            "meetingId": "123",
            "participants": [],
            "statistics": {"total": 7, "present": 3},
            "authenticationStats": {"totalAuthenticated": 4, "unauthenticatedParticipants": 3},
        }
    )
    assert payload.statistics == {"total": 7, "present": 3}
    assert payload.authentication_stats.total_authenticated == 4
    assert payload.model_extra["meetingId"] == "123"
    assert payload.model_extra["success"] is True

    body = payload.model_dump(by_alias=True)
    assert body["authenticationStats"]["unauthenticatedParticipants"] == 3
    assert body["meetingId"] == "123"


def test_malformed_authentication_stats_fall_back_to_defaults():
    payload = sanitize_attendance_payload(
        {"participants": [{}], "authenticationStats": {"totalAuthenticated": "many"}}
    )
    assert payload.authentication_stats.total_authenticated == 0
    assert payload.authentication_stats.unauthenticated_participants == 1


def test_adapt_participant_handles_legacy_field_names():
    record = adapt_participant(
        {
            "participantName": "Ada Lovelace",
            "participant_user_id": 17,
            "user_email": "ada@example.edu",
            "joinTime": "2025-01-10T10:00:00Z",
            "studentInfo": {"studentId": "S-1", "firstName": "Ada", "department": "Math"},
            "authenticatedUser": {"userId": 9, "username": "ada", "role": "student"},
        },
        PayloadSource.LIVE,
    )
    assert record.name == "Ada Lovelace"
    assert record.participant_id == "17"
    assert record.email == "ada@example.edu"
    assert len(record.sessions) == 1
    assert record.student_info.student_id == "S-1"
    assert record.student_info.department == "Math"
    assert record.authenticated_user.user_id == "9"
    assert record.source == PayloadSource.LIVE


def test_adapt_participant_defaults():
    record = adapt_participant({})
    assert record.name == "Unknown"
    assert record.sessions == []
    assert record.student_info is None
    assert record.authenticated_user is None


def test_flat_student_id_becomes_student_info():
    record = adapt_participant({"name": "Bo", "studentId": 42})
    assert record.student_info.student_id == "42"


def test_webhook_rows_are_grouped_per_participant():
    records = adapt_webhook_records(
        [
            {
                "participant_user_id": "u-1",
                "user_name": "Ada",
                "join_time": "2025-01-10T10:00:00Z",
                "leave_time": "2025-01-10T10:20:00Z",
            },
            {
                "participant_user_id": "u-2",
                "user_name": "Bo",
                "join_time": "2025-01-10T10:05:00Z",
                "leave_time": None,
            },
            {
                "participant_user_id": "u-1",
                "user_name": "Ada",
                "email": "ada@example.edu",
                "join_time": "2025-01-10T10:30:00Z",
                "leave_time": None,
            },
        ]
    )
    assert [r.participant_id for r in records] == ["u-1", "u-2"]
    ada = records[0]
    assert len(ada.sessions) == 2
    assert ada.email == "ada@example.edu"
    assert ada.source == PayloadSource.WEBHOOK


def test_adapt_participants_dispatches_on_source():
    payload = sanitize_attendance_payload(
        {
            "participants": [
                {"user_name": "Ada", "join_time": "2025-01-10T10:00:00Z"},
                {"user_name": "Ada", "join_time": "2025-01-10T10:30:00Z"},
            ]
        }
    )
    assert len(adapt_participants(payload, PayloadSource.WEBHOOK)) == 1
    assert len(adapt_participants(payload, PayloadSource.TRACKER)) == 2


def test_adapt_meeting_info():
    info = adapt_meeting_info(
        {"meetingId": 123, "topic": "CS101", "duration": 60, "startTime": "2025-01-10T10:00:00Z"}
    )
    assert info.meeting_id == "123"
    assert info.duration == 60
    assert info.start_time == "2025-01-10T10:00:00Z"
    assert adapt_meeting_info(None).meeting_id is None
