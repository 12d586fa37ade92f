# app/services/attendance_classifier.py
from __future__ import annotations

from abc import ABC, abstractmethod

from app.schemas.attendance import AttendanceStatus

DEFAULT_THRESHOLD = 85.0


class AttendanceClassifier(ABC):
    """
    Maps (percentage, active flag, attended minutes) to an AttendanceStatus.

    Implementations are pure: the same inputs always give the same status.
    Shared rules
    ------------
    1) Participant currently in the meeting => IN_PROGRESS
    2) No attended time                     => ABSENT
    3) Otherwise strategy-specific percentage rules
    """

    name: str = ""

    def classify(
        self,
        percentage: float,
        is_active: bool = False,
        total_duration: float = 0,
    ) -> AttendanceStatus:
        if is_active:
            return AttendanceStatus.IN_PROGRESS
        if not total_duration or total_duration <= 0:
            return AttendanceStatus.ABSENT
        return self._classify_percentage(percentage)

    @abstractmethod
    def _classify_percentage(self, percentage: float) -> AttendanceStatus:
        ...


class LegacyBandClassifier(AttendanceClassifier):
    """
    Fixed percentage bands:

    >= 90      => PRESENT
    [70, 90)   => PARTIAL
    [30, 70)   => LATE
    < 30       => ABSENT
    """

    name = "legacy"

    def _classify_percentage(self, percentage: float) -> AttendanceStatus:
        if percentage >= 90:
            return AttendanceStatus.PRESENT
        if percentage >= 70:
            return AttendanceStatus.PARTIAL
        if percentage >= 30:
            return AttendanceStatus.LATE
        return AttendanceStatus.ABSENT


class ThresholdClassifier(AttendanceClassifier):
    """
    Single cutoff: percentage >= threshold => PRESENT, else ABSENT.
    The boundary is inclusive.
    """

    name = "threshold"

    def __init__(self, threshold: float = DEFAULT_THRESHOLD) -> None:
        if threshold < 0 or threshold > 100:
            raise ValueError("threshold must be between 0 and 100")
        self.threshold = threshold

    def _classify_percentage(self, percentage: float) -> AttendanceStatus:
        if percentage >= self.threshold:
            return AttendanceStatus.PRESENT
        return AttendanceStatus.ABSENT


def get_classifier(
    strategy: str = "threshold",
    threshold: float = DEFAULT_THRESHOLD,
) -> AttendanceClassifier:
    """
    Select a classifier by its configured name ('threshold' or 'legacy').
    """
    key = (strategy or "threshold").strip().lower()
    if key == LegacyBandClassifier.name:
        return LegacyBandClassifier()
    if key == ThresholdClassifier.name:
        return ThresholdClassifier(threshold)
    raise ValueError(f"Unknown attendance classifier strategy: {strategy!r}")
