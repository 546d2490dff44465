from services.attendance_service import EventRegistry
from services.errors import (
    AttendanceError,
    DuplicateEventError,
    HistoryWriteError,
    InvalidRoleError,
    NoMonitoredRoomsError,
    UnknownEventError,
)
from services.report_service import ReportBuilder, StopEventResult
from services.transition_feed import TransitionFeed
from services.transition_service import PresenceTransition, TransitionOutcome, TransitionProcessor

__all__ = [
    "AttendanceError",
    "DuplicateEventError",
    "EventRegistry",
    "HistoryWriteError",
    "InvalidRoleError",
    "NoMonitoredRoomsError",
    "PresenceTransition",
    "ReportBuilder",
    "StopEventResult",
    "TransitionFeed",
    "TransitionOutcome",
    "TransitionProcessor",
    "UnknownEventError",
]
