from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import select

from bot.config import AttendanceConfig
from db.models import AttendanceEventHistory
from db.repository import EventSummary
from db.session import SessionManager


log = logging.getLogger("attendance.history")

DEFAULT_HISTORY_LIMIT = 20

_HISTORY_WRITE_LOCK = asyncio.Lock()


class HistoryStore(Protocol):
    async def append(self, summary: EventSummary) -> None:
        ...

    async def list_for_guild(self, guild_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[EventSummary]:
        ...


def _newest_first(rows: list[EventSummary], guild_id: int, limit: int) -> list[EventSummary]:
    matching = [row for row in rows if row.guild_id == int(guild_id)]
    matching.sort(key=lambda row: row.ended_at, reverse=True)
    return matching[: max(0, int(limit))]


class InMemoryHistoryStore:
    def __init__(self) -> None:
        self.summaries: list[EventSummary] = []

    async def append(self, summary: EventSummary) -> None:
        self.summaries.append(summary)

    async def list_for_guild(self, guild_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[EventSummary]:
        return _newest_first(self.summaries, guild_id, limit)


class JsonFileHistoryStore:
    """Append-only ``{"history": [...]}`` document on disk."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @staticmethod
    def _default_document() -> dict[str, list[Any]]:
        return {"history": []}

    def _write_document(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            document = self._default_document()
            self._write_document(document)
            return document

        raw = self.path.read_text(encoding="utf-8")
        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            log.exception("Failed to parse history file %s. Resetting to default.", self.path)
            document = self._default_document()
            self._write_document(document)
            return document

        if not isinstance(document, dict) or not isinstance(document.get("history"), list):
            log.error("History file %s has an unexpected shape. Resetting to default.", self.path)
            document = self._default_document()
            self._write_document(document)
        return document

    async def append(self, summary: EventSummary) -> None:
        async with _HISTORY_WRITE_LOCK:
            document = await asyncio.to_thread(self._read_document)
            document["history"].append(summary.to_payload())
            await asyncio.to_thread(self._write_document, document)
        log.info("Appended summary for event %r to %s", summary.event_name, self.path)

    async def list_for_guild(self, guild_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[EventSummary]:
        async with _HISTORY_WRITE_LOCK:
            document = await asyncio.to_thread(self._read_document)

        rows: list[EventSummary] = []
        for payload in document["history"]:
            try:
                rows.append(EventSummary.from_payload(payload))
            except (KeyError, TypeError, ValueError):
                log.warning("Skipping malformed history entry in %s", self.path, exc_info=True)
        return _newest_first(rows, guild_id, limit)


def summary_to_row(summary: EventSummary) -> dict[str, object]:
    return {
        "guild_id": summary.guild_id,
        "event_name": summary.event_name,
        "started_at": summary.started_at,
        "ended_at": summary.ended_at,
        "started_by_id": summary.started_by_id,
        "verification_role_id": summary.verification_role_id,
        "monitored_role_id": summary.monitored_role_id,
        "payload": json.dumps(summary.to_payload(), ensure_ascii=False),
    }


class SqlHistoryStore:
    def __init__(self, session_manager: SessionManager) -> None:
        self.session_manager = session_manager

    async def ensure_schema(self) -> None:
        await self.session_manager.create_tables()

    async def append(self, summary: EventSummary) -> None:
        async with self.session_manager.session_scope() as session:
            session.add(AttendanceEventHistory(**summary_to_row(summary)))
        log.info("Persisted summary for event %r (guild=%s)", summary.event_name, summary.guild_id)

    async def list_for_guild(self, guild_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> list[EventSummary]:
        stmt = (
            select(AttendanceEventHistory.payload)
            .where(AttendanceEventHistory.guild_id == int(guild_id))
            .order_by(AttendanceEventHistory.ended_at.desc(), AttendanceEventHistory.id.desc())
            .limit(max(0, int(limit)))
        )
        async with self.session_manager.session_scope() as session:
            result = await session.execute(stmt)
            payloads = list(result.scalars().all())
        return [EventSummary.from_payload(json.loads(payload)) for payload in payloads]


def build_history_store(config: AttendanceConfig, session_manager: SessionManager) -> HistoryStore:
    if not session_manager.is_disabled:
        return SqlHistoryStore(session_manager)
    return JsonFileHistoryStore(config.history_file)
