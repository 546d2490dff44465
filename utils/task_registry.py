from __future__ import annotations

import asyncio
from typing import Awaitable, Callable


class SingletonTaskRegistry:
    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def start_once(self, name: str, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        task = self._tasks.get(name)
        if task and not task.done():
            return task
        task = asyncio.create_task(factory(), name=name)
        self._tasks[name] = task
        return task

    def running_names(self) -> list[str]:
        return sorted(name for name, task in self._tasks.items() if not task.done())

    async def cancel_all(self) -> None:
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
