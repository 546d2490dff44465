from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class RoleInfo:
    guild_id: int
    role_id: int
    name: str


class DirectoryService(Protocol):
    """Membership and presence facts for a guild.

    ``member_has_role`` is consulted while applying presence transitions and
    must answer from local state without awaiting. Everything else may hit
    the network.
    """

    async def resolve_role(self, guild_id: int, role_id: int) -> RoleInfo | None:
        ...

    async def is_voice_channel(self, guild_id: int, channel_id: int) -> bool:
        ...

    async def members_in_channel(self, guild_id: int, channel_id: int) -> set[int]:
        ...

    async def members_of_role(self, guild_id: int, role_id: int) -> set[int]:
        ...

    def member_has_role(self, guild_id: int, member_id: int, role_id: int) -> bool:
        ...

    async def display_name_of(self, guild_id: int, member_id: int) -> str | None:
        ...


def fallback_display_name(member_id: int) -> str:
    return f"ID {member_id}"
