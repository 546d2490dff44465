from __future__ import annotations

import logging
import os
from typing import Any

import discord

from bot.config import AttendanceConfig, load_config
from bot.directory import DiscordDirectoryService
from bot.logging import setup_logging
from bot.main import AttendanceApplication
from db.session import SessionManager
from services.history_service import build_history_store
from services.transition_service import PresenceTransition
from utils.time_utils import utc_now


log = logging.getLogger("attendance.runtime")


def _channel_id(voice_state: Any) -> int | None:
    channel = getattr(voice_state, "channel", None)
    if channel is None:
        return None
    return int(channel.id)


def transition_from_voice_states(member: Any, before: Any, after: Any) -> PresenceTransition | None:
    guild = getattr(member, "guild", None)
    if guild is None:
        return None
    from_channel_id = _channel_id(before)
    to_channel_id = _channel_id(after)
    if from_channel_id == to_channel_id:
        return None
    return PresenceTransition(
        guild_id=int(guild.id),
        member_id=int(member.id),
        from_channel_id=from_channel_id,
        to_channel_id=to_channel_id,
        observed_at=utc_now(),
    )


class AttendanceBot(discord.Client):
    def __init__(self, config: AttendanceConfig) -> None:
        intents = discord.Intents.default()
        intents.members = True
        intents.voice_states = True
        super().__init__(intents=intents)

        self.config = config
        self.session_manager = SessionManager(config)
        self.directory = DiscordDirectoryService(self)
        self.app = AttendanceApplication(
            config=config,
            directory=self.directory,
            history=build_history_store(config, self.session_manager),
        )

    async def setup_hook(self) -> None:
        await self.app.setup()

    async def on_ready(self) -> None:
        log.info("Attendance bot ready as %s (guilds=%s)", self.user, len(self.guilds))

    async def on_voice_state_update(self, member, before, after) -> None:
        transition = transition_from_voice_states(member, before, after)
        if transition is None:
            return
        await self.app.publish_transition(transition)

    async def close(self) -> None:
        try:
            await self.app.close()
        except Exception:
            log.exception("Failed to close attendance engine cleanly")
        await self.session_manager.dispose()
        await super().close()


def run() -> int:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = load_config()
    except ValueError as exc:
        log.error("Config error: %s", exc)
        return 1

    setup_logging(config.log_level)
    if not config.discord_token:
        log.error("DISCORD_TOKEN missing")
        return 1

    bot = AttendanceBot(config)
    try:
        bot.run(config.discord_token, log_handler=None)
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
