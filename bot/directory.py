from __future__ import annotations

import logging
from typing import Any

import discord

from services.directory_service import RoleInfo


log = logging.getLogger("attendance.directory")


def member_display_name(member: Any) -> str | None:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(member, attr, None)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class DiscordDirectoryService:
    """Directory facts read from a connected ``discord.Client``."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client
        self._members_chunked: set[int] = set()

    def _guild(self, guild_id: int) -> discord.Guild | None:
        return self.client.get_guild(int(guild_id))

    async def _ensure_members_loaded(self, guild: discord.Guild) -> None:
        if guild.id in self._members_chunked or guild.chunked:
            return
        try:
            await guild.chunk(cache=True)
            self._members_chunked.add(guild.id)
        except discord.HTTPException:
            log.warning("Member chunking failed for guild %s", guild.id, exc_info=True)

    async def resolve_role(self, guild_id: int, role_id: int) -> RoleInfo | None:
        guild = self._guild(guild_id)
        if guild is None:
            return None
        role = guild.get_role(int(role_id))
        if role is None:
            try:
                roles = await guild.fetch_roles()
            except discord.HTTPException:
                log.warning("Role fetch failed for guild %s", guild_id, exc_info=True)
                return None
            role = next((row for row in roles if row.id == int(role_id)), None)
        if role is None:
            return None
        return RoleInfo(guild_id=guild.id, role_id=role.id, name=role.name)

    async def is_voice_channel(self, guild_id: int, channel_id: int) -> bool:
        guild = self._guild(guild_id)
        if guild is None:
            return False
        channel = guild.get_channel(int(channel_id))
        if channel is None:
            try:
                channel = await guild.fetch_channel(int(channel_id))
            except discord.HTTPException:
                log.warning("Channel fetch failed for channel=%s guild=%s", channel_id, guild_id, exc_info=True)
                return False
        return isinstance(channel, (discord.VoiceChannel, discord.StageChannel))

    async def members_in_channel(self, guild_id: int, channel_id: int) -> set[int]:
        guild = self._guild(guild_id)
        if guild is None:
            return set()
        await self._ensure_members_loaded(guild)
        channel = guild.get_channel(int(channel_id))
        if not isinstance(channel, (discord.VoiceChannel, discord.StageChannel)):
            return set()
        return {member.id for member in channel.members}

    async def members_of_role(self, guild_id: int, role_id: int) -> set[int]:
        guild = self._guild(guild_id)
        if guild is None:
            return set()
        await self._ensure_members_loaded(guild)
        role = guild.get_role(int(role_id))
        if role is None:
            return set()
        return {member.id for member in role.members}

    def member_has_role(self, guild_id: int, member_id: int, role_id: int) -> bool:
        guild = self._guild(guild_id)
        if guild is None:
            return False
        member = guild.get_member(int(member_id))
        if member is None:
            return False
        return member.get_role(int(role_id)) is not None

    async def display_name_of(self, guild_id: int, member_id: int) -> str | None:
        guild = self._guild(guild_id)
        if guild is None:
            return None
        member = guild.get_member(int(member_id))
        if member is None:
            try:
                member = await guild.fetch_member(int(member_id))
            except discord.HTTPException:
                return None
        return member_display_name(member)
