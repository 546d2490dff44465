from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from db.repository import EventSummary
    from services.report_service import StopEventResult


class AttendanceError(ValueError):
    pass


class DuplicateEventError(AttendanceError):
    def __init__(self, name: str) -> None:
        super().__init__(f'An event named "{name}" is already running in this guild')
        self.name = name


class UnknownEventError(AttendanceError):
    def __init__(self, name: str) -> None:
        super().__init__(f'No running event named "{name}"')
        self.name = name


class InvalidRoleError(AttendanceError):
    def __init__(self, role_id: int) -> None:
        super().__init__(f"Role {role_id} could not be resolved")
        self.role_id = role_id


class NoMonitoredRoomsError(AttendanceError):
    def __init__(self, requested: int) -> None:
        super().__init__(f"None of the {requested} requested channels is a voice channel")
        self.requested = requested


class HistoryWriteError(AttendanceError):
    """The event was closed and reported, but its summary was not persisted."""

    def __init__(self, result: "StopEventResult") -> None:
        super().__init__(f'Failed to persist summary for event "{result.summary.event_name}"')
        self.result = result

    @property
    def summary(self) -> "EventSummary":
        return self.result.summary
