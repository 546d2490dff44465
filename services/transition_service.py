from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Callable

from db.repository import AttendanceRecord, EventRecord, InMemoryRepository
from services.directory_service import DirectoryService
from utils.time_utils import elapsed_ms, normalize_ts, utc_now


log = logging.getLogger("attendance.transitions")

OUTCOME_OPENED = "opened"
OUTCOME_CLOSED = "closed"
OUTCOME_MOVED = "moved"
OUTCOME_IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class PresenceTransition:
    guild_id: int
    member_id: int
    from_channel_id: int | None
    to_channel_id: int | None
    observed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class TransitionOutcome:
    event_name: str
    action: str


def open_session(record: AttendanceRecord, now: datetime) -> bool:
    if record.session_started_at is not None:
        return False
    record.session_started_at = normalize_ts(now)
    return True


def close_session(record: AttendanceRecord, now: datetime, *, member_id: int, event_name: str) -> int:
    """Close an open session and return the milliseconds added to the total."""
    started_at = record.session_started_at
    if started_at is None:
        return 0

    record.session_started_at = None
    delta = elapsed_ms(started_at, now)
    if delta < 0:
        log.warning(
            "Dropping negative accrual for member=%s event=%r (started_at=%s now=%s)",
            member_id,
            event_name,
            started_at.isoformat(),
            normalize_ts(now).isoformat(),
        )
        return 0
    record.total_ms += delta
    return delta


class TransitionProcessor:
    def __init__(
        self,
        repo: InMemoryRepository,
        directory: DirectoryService,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.directory = directory
        self.clock = clock

    def apply(self, transition: PresenceTransition, *, now: datetime | None = None) -> list[TransitionOutcome]:
        events = self.repo.list_events(transition.guild_id)
        if not events:
            return []

        # Queued transitions accrue from when the gateway delivered them.
        timestamp = normalize_ts(now or transition.observed_at or self.clock())
        return [
            TransitionOutcome(event_name=event.name, action=self._apply_to_event(event, transition, timestamp))
            for event in events
        ]

    def _apply_to_event(self, event: EventRecord, transition: PresenceTransition, now: datetime) -> str:
        was_tracked = transition.from_channel_id in event.channel_ids
        is_tracked = transition.to_channel_id in event.channel_ids
        member_id = transition.member_id

        if was_tracked and not is_tracked:
            record = event.attendance.get(member_id)
            if record is None or not record.in_session:
                log.debug("Leave without open session member=%s event=%r", member_id, event.name)
                return OUTCOME_IGNORED
            close_session(record, now, member_id=member_id, event_name=event.name)
            return OUTCOME_CLOSED

        if is_tracked and not was_tracked:
            if not self.directory.member_has_role(event.guild_id, member_id, event.monitored_role_id):
                log.debug("Member %s entered %r without role %s", member_id, event.name, event.monitored_role_id)
                return OUTCOME_IGNORED
            record = event.get_or_create_attendance(member_id)
            if not open_session(record, now):
                log.debug("Duplicate join for member=%s event=%r", member_id, event.name)
                return OUTCOME_IGNORED
            return OUTCOME_OPENED

        if was_tracked and is_tracked:
            return OUTCOME_MOVED
        return OUTCOME_IGNORED
