from __future__ import annotations

from dataclasses import dataclass
import os


TRUTHY_VALUES = {"1", "true", "yes", "on"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
DEFAULT_HISTORY_FILE = "data/events.json"


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def env_int(name: str, *, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    text = raw.strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError as exc:
        raise ValueError(f"Invalid integer env {name}={raw!r}") from exc


@dataclass(frozen=True)
class AttendanceConfig:
    discord_token: str
    database_url: str
    db_echo: bool
    history_file: str
    transition_queue_max_size: int
    log_level: str

    def validate(self) -> None:
        if self.transition_queue_max_size < 1:
            raise ValueError("TRANSITION_QUEUE_MAX_SIZE must be >= 1")
        if not self.database_url and not self.history_file:
            raise ValueError("HISTORY_FILE must be set when DATABASE_URL is empty")
        if self.log_level not in VALID_LOG_LEVELS:
            valid = ", ".join(sorted(VALID_LOG_LEVELS))
            raise ValueError(f"LOG_LEVEL must be one of: {valid}")


def load_config() -> AttendanceConfig:
    cfg = AttendanceConfig(
        discord_token=os.getenv("DISCORD_TOKEN", ""),
        database_url=os.getenv("DATABASE_URL", "").strip(),
        db_echo=env_bool("DB_ECHO", default=False),
        history_file=os.getenv("HISTORY_FILE", DEFAULT_HISTORY_FILE).strip(),
        transition_queue_max_size=env_int("TRANSITION_QUEUE_MAX_SIZE", default=1000),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
    cfg.validate()
    return cfg
