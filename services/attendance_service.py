from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
import logging
from typing import Callable, Iterable

from db.repository import ActiveEventInfo, EventRecord, InMemoryRepository
from services.directory_service import DirectoryService
from services.errors import (
    DuplicateEventError,
    HistoryWriteError,
    InvalidRoleError,
    NoMonitoredRoomsError,
    UnknownEventError,
)
from services.history_service import HistoryStore
from services.report_service import ReportBuilder, StopEventResult
from services.transition_service import open_session
from utils.time_utils import normalize_ts, utc_now


log = logging.getLogger("attendance.registry")


def _unique_ids(values: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    ordered: list[int] = []
    for value in values:
        parsed = int(value)
        if parsed in seen:
            continue
        seen.add(parsed)
        ordered.append(parsed)
    return ordered


class EventRegistry:
    def __init__(
        self,
        repo: InMemoryRepository,
        directory: DirectoryService,
        history: HistoryStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.directory = directory
        self.history = history
        self.clock = clock
        self.report_builder = ReportBuilder(directory)
        self._guild_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _now(self, now: datetime | None) -> datetime:
        return normalize_ts(now or self.clock())

    async def _voice_channels(self, guild_id: int, channel_ids: Iterable[int]) -> frozenset[int]:
        requested = _unique_ids(channel_ids)
        valid: set[int] = set()
        for channel_id in requested:
            if await self.directory.is_voice_channel(guild_id, channel_id):
                valid.add(channel_id)
            else:
                log.info("Ignoring channel %s for guild %s: not a voice channel", channel_id, guild_id)
        if not valid:
            raise NoMonitoredRoomsError(len(requested))
        return frozenset(valid)

    async def _seed_candidates(self, guild_id: int, channel_ids: frozenset[int]) -> set[int]:
        present: set[int] = set()
        for channel_id in sorted(channel_ids):
            try:
                present.update(await self.directory.members_in_channel(guild_id, channel_id))
            except Exception:
                log.warning("Could not read members of channel %s (guild=%s)", channel_id, guild_id, exc_info=True)
        return present

    async def start(
        self,
        *,
        guild_id: int,
        name: str,
        monitored_role_id: int,
        channel_ids: Iterable[int],
        started_by_id: int,
        now: datetime | None = None,
    ) -> EventRecord:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("Event name must not be empty")

        async with self._guild_locks[int(guild_id)]:
            if self.repo.has_event(guild_id, clean_name):
                raise DuplicateEventError(clean_name)

            if await self.directory.resolve_role(guild_id, monitored_role_id) is None:
                raise InvalidRoleError(monitored_role_id)
            monitored_channels = await self._voice_channels(guild_id, channel_ids)
            candidates = await self._seed_candidates(guild_id, monitored_channels)

            if self.repo.has_event(guild_id, clean_name):
                raise DuplicateEventError(clean_name)

            started_at = self._now(now)
            event = EventRecord(
                guild_id=int(guild_id),
                name=clean_name,
                monitored_role_id=int(monitored_role_id),
                channel_ids=monitored_channels,
                started_at=started_at,
                started_by_id=int(started_by_id),
            )
            for member_id in sorted(candidates):
                if self.directory.member_has_role(guild_id, member_id, monitored_role_id):
                    open_session(event.get_or_create_attendance(member_id), started_at)
            self.repo.add_event(event)

        log.info(
            "Started event %r in guild %s (role=%s channels=%s seeded=%s)",
            event.name,
            event.guild_id,
            event.monitored_role_id,
            sorted(event.channel_ids),
            event.open_session_count(),
        )
        return event

    async def stop(
        self,
        *,
        guild_id: int,
        name: str,
        verification_role_id: int,
        now: datetime | None = None,
    ) -> StopEventResult:
        async with self._guild_locks[int(guild_id)]:
            if self.repo.get_event(guild_id, name) is None:
                raise UnknownEventError(name)
            if await self.directory.resolve_role(guild_id, verification_role_id) is None:
                raise InvalidRoleError(verification_role_id)
            # Read before detaching: a directory failure here leaves the event open.
            role_holders = await self.directory.members_of_role(guild_id, verification_role_id)

            event = self.repo.pop_event(guild_id, name)
            if event is None:
                raise UnknownEventError(name)
            ended_at = self._now(now)
            closed = self.report_builder.close_open_sessions(event, ended_at)
            log.info("Closed event %r in guild %s (%s open sessions closed)", event.name, event.guild_id, closed)

            summary = await self.report_builder.build_summary(
                event,
                verification_role_id=int(verification_role_id),
                role_holders=role_holders,
                ended_at=ended_at,
            )
            result = StopEventResult(summary=summary)

            try:
                await self.history.append(summary)
            except Exception as exc:
                log.exception("Failed to persist summary for event %r (guild=%s)", event.name, event.guild_id)
                raise HistoryWriteError(result) from exc

        log.info(
            "Event %r in guild %s reported: present=%s absent=%s",
            summary.event_name,
            summary.guild_id,
            len(summary.present),
            len(summary.absent),
        )
        return result

    def get(self, guild_id: int, name: str) -> EventRecord:
        event = self.repo.get_event(guild_id, name)
        if event is None:
            raise UnknownEventError(name)
        return event

    def list(self, guild_id: int) -> list[ActiveEventInfo]:
        return [
            ActiveEventInfo(
                guild_id=event.guild_id,
                name=event.name,
                monitored_role_id=event.monitored_role_id,
                channel_ids=tuple(sorted(event.channel_ids)),
                started_at=event.started_at,
                started_by_id=event.started_by_id,
                open_sessions=event.open_session_count(),
            )
            for event in self.repo.list_events(guild_id)
        ]
