# app/realtime/events.py
"""
Socket.IO channel names shared by the server fan-out and the sync client.
"""
from typing import Optional

PARTICIPANT_JOINED = "participantJoined"
PARTICIPANT_LEFT = "participantLeft"
PARTICIPANT_JOINED_IMMEDIATE = "participantJoinedImmediate"
PARTICIPANT_UPDATE = "participantUpdate"
USER_JOINED_MEETING = "userJoinedMeeting"
USER_LEFT_MEETING = "userLeftMeeting"
PARTICIPANT_LINKED = "participantLinked"
MEETING_STARTED = "meetingStarted"
MEETING_ENDED = "meetingEnded"

SUBSCRIBE_85 = "subscribe85AttendanceTracker"
UNSUBSCRIBE_85 = "unsubscribe85AttendanceTracker"
ATTENDANCE_85_SUBSCRIBED = "attendance85Subscribed"
ATTENDANCE_85_UNSUBSCRIBED = "attendance85Unsubscribed"
ATTENDANCE_85_INITIAL = "attendance85Initial"
ATTENDANCE_85_UPDATE = "attendance85Update"
ATTENDANCE_85_ERROR = "attendance85Error"

SYSTEM_UPDATE = "system:update"
MEETING_STARTED_NS = "meeting:started"
MEETING_ENDED_NS = "meeting:ended"
PARTICIPANT_JOINED_NS = "participant:joined"
ANALYTICS_REFRESH = "analytics:refresh"

# Events after which a dashboard must re-read a meeting's attendance.
REFRESH_EVENTS = frozenset(
    {
        PARTICIPANT_JOINED,
        PARTICIPANT_LEFT,
        PARTICIPANT_JOINED_IMMEDIATE,
        PARTICIPANT_UPDATE,
        USER_JOINED_MEETING,
        USER_LEFT_MEETING,
        PARTICIPANT_LINKED,
        MEETING_STARTED,
        MEETING_ENDED,
        SYSTEM_UPDATE,
        MEETING_STARTED_NS,
        MEETING_ENDED_NS,
        PARTICIPANT_JOINED_NS,
        ANALYTICS_REFRESH,
    }
)

# Events whose payload already carries a full attendance snapshot.
SNAPSHOT_EVENTS = frozenset({ATTENDANCE_85_INITIAL, ATTENDANCE_85_UPDATE})


def tracker_room(meeting_id: str, threshold: Optional[float] = None) -> str:
    """
    Room of the attendance85 subscribers of a meeting. Subscribers that
    asked for their own threshold get a room per threshold.
    """
    if threshold is None:
        return f"attendance85:{meeting_id}"
    return f"attendance85:{meeting_id}:{threshold:g}"
