from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from utils.time_utils import format_duration, normalize_ts


EventKey = Tuple[int, str]


def event_key(guild_id: int, name: str) -> EventKey:
    return (int(guild_id), name.strip().lower())


@dataclass(slots=True)
class AttendanceRecord:
    total_ms: int = 0
    session_started_at: datetime | None = None

    @property
    def in_session(self) -> bool:
        return self.session_started_at is not None


@dataclass(slots=True)
class EventRecord:
    guild_id: int
    name: str
    monitored_role_id: int
    channel_ids: frozenset[int]
    started_at: datetime
    started_by_id: int
    attendance: Dict[int, AttendanceRecord] = field(default_factory=dict)

    @property
    def key(self) -> EventKey:
        return event_key(self.guild_id, self.name)

    def get_or_create_attendance(self, member_id: int) -> AttendanceRecord:
        row = self.attendance.get(member_id)
        if row is None:
            row = AttendanceRecord()
            self.attendance[member_id] = row
        return row

    def open_session_count(self) -> int:
        return sum(1 for row in self.attendance.values() if row.in_session)


@dataclass(frozen=True, slots=True)
class ActiveEventInfo:
    guild_id: int
    name: str
    monitored_role_id: int
    channel_ids: tuple[int, ...]
    started_at: datetime
    started_by_id: int
    open_sessions: int


@dataclass(frozen=True, slots=True)
class PresentEntry:
    user_id: int
    display_name: str
    total_ms: int
    had_role_at_end: bool

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.total_ms)


@dataclass(frozen=True, slots=True)
class AbsentEntry:
    user_id: int
    display_name: str


@dataclass(frozen=True, slots=True)
class EventSummary:
    event_name: str
    guild_id: int
    started_at: datetime
    ended_at: datetime
    started_by_id: int
    verification_role_id: int
    monitored_role_id: int | None
    present: tuple[PresentEntry, ...] = ()
    absent: tuple[AbsentEntry, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "eventName": self.event_name,
            "guildId": self.guild_id,
            "startedAt": self.started_at.isoformat(),
            "endedAt": self.ended_at.isoformat(),
            "startedBy": self.started_by_id,
            "roleId": self.verification_role_id,
            "originalRoleId": self.monitored_role_id,
            "present": [
                {
                    "userId": entry.user_id,
                    "displayName": entry.display_name,
                    "totalMs": entry.total_ms,
                    "formattedDuration": entry.formatted_duration,
                    "hadRoleAtEnd": entry.had_role_at_end,
                }
                for entry in self.present
            ],
            "absent": [
                {"userId": entry.user_id, "displayName": entry.display_name}
                for entry in self.absent
            ],
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EventSummary":
        original_role = payload.get("originalRoleId")
        return cls(
            event_name=str(payload["eventName"]),
            guild_id=int(payload["guildId"]),
            started_at=normalize_ts(datetime.fromisoformat(str(payload["startedAt"]))),
            ended_at=normalize_ts(datetime.fromisoformat(str(payload["endedAt"]))),
            started_by_id=int(payload.get("startedBy") or 0),
            verification_role_id=int(payload["roleId"]),
            monitored_role_id=int(original_role) if original_role else None,
            present=tuple(
                PresentEntry(
                    user_id=int(row["userId"]),
                    display_name=str(row["displayName"]),
                    total_ms=int(row["totalMs"]),
                    had_role_at_end=bool(row.get("hadRoleAtEnd", True)),
                )
                for row in payload.get("present", ())
            ),
            absent=tuple(
                AbsentEntry(user_id=int(row["userId"]), display_name=str(row["displayName"]))
                for row in payload.get("absent", ())
            ),
        )


class InMemoryRepository:
    """Live events keyed by ``(guild_id, lowercase name)``."""

    def __init__(self) -> None:
        self.events: Dict[EventKey, EventRecord] = {}

    def has_event(self, guild_id: int, name: str) -> bool:
        return event_key(guild_id, name) in self.events

    def add_event(self, event: EventRecord) -> EventRecord:
        key = event.key
        if key in self.events:
            raise KeyError(key)
        self.events[key] = event
        return event

    def get_event(self, guild_id: int, name: str) -> EventRecord | None:
        return self.events.get(event_key(guild_id, name))

    def pop_event(self, guild_id: int, name: str) -> EventRecord | None:
        return self.events.pop(event_key(guild_id, name), None)

    def list_events(self, guild_id: int | None = None) -> List[EventRecord]:
        rows: Iterable[EventRecord] = self.events.values()
        if guild_id is not None:
            rows = [row for row in rows if row.guild_id == int(guild_id)]
        ordered = list(rows)
        ordered.sort(key=lambda row: (row.started_at, row.name.lower()))
        return ordered
