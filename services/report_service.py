from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from db.repository import AbsentEntry, EventRecord, EventSummary, PresentEntry
from services.directory_service import DirectoryService, fallback_display_name
from services.transition_service import close_session
from utils.time_utils import normalize_ts


log = logging.getLogger("attendance.report")


@dataclass(frozen=True, slots=True)
class StopEventResult:
    summary: EventSummary

    @property
    def present(self) -> tuple[PresentEntry, ...]:
        return self.summary.present

    @property
    def absent(self) -> tuple[AbsentEntry, ...]:
        return self.summary.absent


class ReportBuilder:
    def __init__(self, directory: DirectoryService) -> None:
        self.directory = directory

    def close_open_sessions(self, event: EventRecord, now: datetime) -> int:
        closed = 0
        for member_id, record in event.attendance.items():
            if not record.in_session:
                continue
            close_session(record, now, member_id=member_id, event_name=event.name)
            closed += 1
        return closed

    async def _display_name(self, guild_id: int, member_id: int) -> str:
        try:
            name = await self.directory.display_name_of(guild_id, member_id)
        except Exception:
            log.warning("Display name lookup failed for member=%s guild=%s", member_id, guild_id, exc_info=True)
            name = None
        if not name or not name.strip():
            return fallback_display_name(member_id)
        return name.strip()

    async def build_summary(
        self,
        event: EventRecord,
        *,
        verification_role_id: int,
        role_holders: set[int],
        ended_at: datetime,
    ) -> EventSummary:
        present: list[PresentEntry] = []
        for member_id, record in event.attendance.items():
            if record.total_ms <= 0:
                continue
            present.append(
                PresentEntry(
                    user_id=member_id,
                    display_name=await self._display_name(event.guild_id, member_id),
                    total_ms=record.total_ms,
                    had_role_at_end=member_id in role_holders,
                )
            )

        present_ids = {entry.user_id for entry in present}
        absent = [
            AbsentEntry(user_id=member_id, display_name=await self._display_name(event.guild_id, member_id))
            for member_id in sorted(role_holders)
            if member_id not in present_ids
        ]

        present.sort(key=lambda entry: (-entry.total_ms, entry.display_name.casefold(), entry.user_id))
        absent.sort(key=lambda entry: (entry.display_name.casefold(), entry.user_id))

        monitored_role_id = event.monitored_role_id if event.monitored_role_id != verification_role_id else None
        return EventSummary(
            event_name=event.name,
            guild_id=event.guild_id,
            started_at=event.started_at,
            ended_at=normalize_ts(ended_at),
            started_by_id=event.started_by_id,
            verification_role_id=verification_role_id,
            monitored_role_id=monitored_role_id,
            present=tuple(present),
            absent=tuple(absent),
        )
