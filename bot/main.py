from __future__ import annotations

from datetime import datetime
import logging
from typing import Callable, Iterable

from bot.config import AttendanceConfig
from db.repository import ActiveEventInfo, EventRecord, EventSummary, InMemoryRepository
from services.attendance_service import EventRegistry
from services.directory_service import DirectoryService
from services.history_service import DEFAULT_HISTORY_LIMIT, HistoryStore, SqlHistoryStore
from services.report_service import StopEventResult
from services.transition_feed import TransitionFeed
from services.transition_service import PresenceTransition, TransitionProcessor
from utils.task_registry import SingletonTaskRegistry
from utils.time_utils import utc_now


log = logging.getLogger("attendance.runtime")


class AttendanceApplication:
    """Engine composition shared by the Discord runtime and the tests."""

    def __init__(
        self,
        *,
        config: AttendanceConfig,
        directory: DirectoryService,
        history: HistoryStore,
        repo: InMemoryRepository | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.directory = directory
        self.history = history
        self.repo = repo or InMemoryRepository()
        self.task_registry = SingletonTaskRegistry()
        self.registry = EventRegistry(self.repo, directory, history, clock=clock)
        self.processor = TransitionProcessor(self.repo, directory, clock=clock)
        self.feed = TransitionFeed(
            self.processor,
            max_queue_size=config.transition_queue_max_size,
            task_registry=self.task_registry,
        )
        self._setup_done = False

    async def setup(self) -> None:
        if self._setup_done:
            return
        if isinstance(self.history, SqlHistoryStore):
            await self.history.ensure_schema()
        self._setup_done = True
        log.info("Attendance engine ready (history=%s)", type(self.history).__name__)

    async def start_event(
        self,
        *,
        guild_id: int,
        name: str,
        monitored_role_id: int,
        channel_ids: Iterable[int],
        started_by_id: int,
    ) -> EventRecord:
        return await self.registry.start(
            guild_id=guild_id,
            name=name,
            monitored_role_id=monitored_role_id,
            channel_ids=channel_ids,
            started_by_id=started_by_id,
        )

    async def stop_event(self, *, guild_id: int, name: str, verification_role_id: int) -> StopEventResult:
        # Transitions already queued for the guild belong to the event being closed.
        await self.feed.drain(guild_id)
        return await self.registry.stop(guild_id=guild_id, name=name, verification_role_id=verification_role_id)

    def list_events(self, guild_id: int) -> list[ActiveEventInfo]:
        return self.registry.list(guild_id)

    async def history_for_guild(self, guild_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[EventSummary]:
        return await self.history.list_for_guild(guild_id, limit=limit)

    async def publish_transition(self, transition: PresenceTransition) -> None:
        await self.feed.publish(transition)

    async def close(self) -> None:
        await self.feed.close()
        open_events = self.repo.list_events()
        if open_events:
            log.warning("Shutting down with %s open events; their attendance is discarded", len(open_events))
