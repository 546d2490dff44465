from __future__ import annotations

import asyncio
import logging

from services.transition_service import PresenceTransition, TransitionProcessor
from utils.task_registry import SingletonTaskRegistry


log = logging.getLogger("attendance.feed")

DEFAULT_QUEUE_MAX_SIZE = 1000


class TransitionFeed:
    """One bounded queue and one consumer task per guild.

    Transitions of a guild are applied strictly in the order they were
    published; guilds do not block each other.
    """

    def __init__(
        self,
        processor: TransitionProcessor,
        *,
        max_queue_size: int = DEFAULT_QUEUE_MAX_SIZE,
        task_registry: SingletonTaskRegistry | None = None,
    ) -> None:
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")
        self.processor = processor
        self.max_queue_size = int(max_queue_size)
        self.task_registry = task_registry or SingletonTaskRegistry()
        self._queues: dict[int, asyncio.Queue[PresenceTransition]] = {}
        self._closed = False

    @staticmethod
    def _task_name(guild_id: int) -> str:
        return f"transition_feed:{guild_id}"

    def _queue_for(self, guild_id: int) -> asyncio.Queue[PresenceTransition]:
        queue = self._queues.get(guild_id)
        if queue is None:
            queue = asyncio.Queue(maxsize=self.max_queue_size)
            self._queues[guild_id] = queue
        self.task_registry.start_once(self._task_name(guild_id), lambda: self._consume(guild_id, queue))
        return queue

    async def publish(self, transition: PresenceTransition) -> None:
        if self._closed:
            log.debug("Feed closed, dropping transition for guild %s", transition.guild_id)
            return
        queue = self._queue_for(int(transition.guild_id))
        if queue.full():
            log.warning("Transition queue for guild %s is full (%s), waiting", transition.guild_id, queue.maxsize)
        await queue.put(transition)

    async def drain(self, guild_id: int) -> None:
        queue = self._queues.get(int(guild_id))
        if queue is not None:
            await queue.join()

    def pending(self, guild_id: int) -> int:
        queue = self._queues.get(int(guild_id))
        return queue.qsize() if queue is not None else 0

    async def _consume(self, guild_id: int, queue: asyncio.Queue[PresenceTransition]) -> None:
        while True:
            transition = await queue.get()
            try:
                outcomes = self.processor.apply(transition)
                if outcomes:
                    log.debug(
                        "member=%s %s->%s: %s",
                        transition.member_id,
                        transition.from_channel_id,
                        transition.to_channel_id,
                        ", ".join(f"{row.event_name}={row.action}" for row in outcomes),
                    )
            except Exception:
                log.exception("Failed to apply transition in guild %s: %r", guild_id, transition)
            finally:
                queue.task_done()

    async def close(self) -> None:
        self._closed = True
        await self.task_registry.cancel_all()
        self._queues.clear()
