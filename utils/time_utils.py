from __future__ import annotations

from datetime import UTC, datetime


MS_PER_SECOND = 1000
SECONDS_PER_HOUR = 3600


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_ts(ts: datetime | None) -> datetime:
    if ts is None:
        return utc_now()
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def elapsed_ms(started_at: datetime, ended_at: datetime) -> int:
    """Signed whole milliseconds between two instants, truncated toward zero."""
    delta = normalize_ts(ended_at) - normalize_ts(started_at)
    micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    if micros < 0:
        return -((-micros) // 1000)
    return micros // 1000


def format_duration(total_ms: int) -> str:
    if total_ms < 0:
        raise ValueError(f"Duration must be >= 0, got {total_ms}")
    total_seconds = int(total_ms) // MS_PER_SECOND
    hours, remainder = divmod(total_seconds, SECONDS_PER_HOUR)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
