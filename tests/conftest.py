from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest

from bot.config import AttendanceConfig
from bot.main import AttendanceApplication
from db.repository import InMemoryRepository
from services.attendance_service import EventRegistry
from services.directory_service import RoleInfo
from services.history_service import InMemoryHistoryStore
from services.transition_service import TransitionProcessor


GUILD_ID = 1
ROLE_A = 100
ROLE_B = 200
VOICE_1 = 10
VOICE_2 = 11
VOICE_OUTSIDE = 12
TEXT_CHANNEL = 99


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class FakeDirectory:
    roles: dict[int, set[int]] = field(default_factory=dict)
    rooms: dict[int, set[int]] = field(default_factory=dict)
    voice_channels: set[int] = field(default_factory=set)
    names: dict[int, str] = field(default_factory=dict)
    broken_rooms: set[int] = field(default_factory=set)
    broken_names: set[int] = field(default_factory=set)
    broken_roles: set[int] = field(default_factory=set)

    async def resolve_role(self, guild_id: int, role_id: int) -> RoleInfo | None:
        if role_id not in self.roles:
            return None
        return RoleInfo(guild_id=guild_id, role_id=role_id, name=f"role-{role_id}")

    async def is_voice_channel(self, guild_id: int, channel_id: int) -> bool:
        return channel_id in self.voice_channels

    async def members_in_channel(self, guild_id: int, channel_id: int) -> set[int]:
        if channel_id in self.broken_rooms:
            raise RuntimeError("channel lookup failed")
        return set(self.rooms.get(channel_id, set()))

    async def members_of_role(self, guild_id: int, role_id: int) -> set[int]:
        if role_id in self.broken_roles:
            raise RuntimeError("role member lookup failed")
        return set(self.roles.get(role_id, set()))

    def member_has_role(self, guild_id: int, member_id: int, role_id: int) -> bool:
        return member_id in self.roles.get(role_id, set())

    async def display_name_of(self, guild_id: int, member_id: int) -> str | None:
        if member_id in self.broken_names:
            raise RuntimeError("member lookup failed")
        return self.names.get(member_id)

    def grant(self, member_id: int, role_id: int) -> None:
        self.roles.setdefault(role_id, set()).add(member_id)

    def revoke(self, member_id: int, role_id: int) -> None:
        self.roles.setdefault(role_id, set()).discard(member_id)


@pytest.fixture
def config() -> AttendanceConfig:
    return AttendanceConfig(
        discord_token="token",
        database_url="",
        db_echo=False,
        history_file="data/events.json",
        transition_queue_max_size=100,
        log_level="DEBUG",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 17, 20, 0, tzinfo=UTC))


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory(
        roles={ROLE_A: set(), ROLE_B: set()},
        rooms={VOICE_1: set(), VOICE_2: set(), VOICE_OUTSIDE: set()},
        voice_channels={VOICE_1, VOICE_2, VOICE_OUTSIDE},
    )


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def history() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def registry(repo, directory, history, clock) -> EventRegistry:
    return EventRegistry(repo, directory, history, clock=clock)


@pytest.fixture
def processor(repo, directory, clock) -> TransitionProcessor:
    return TransitionProcessor(repo, directory, clock=clock)


@pytest.fixture
def app(config, directory, history, clock) -> AttendanceApplication:
    return AttendanceApplication(config=config, directory=directory, history=history, clock=clock)
