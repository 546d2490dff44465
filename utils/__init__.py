from utils.task_registry import SingletonTaskRegistry
from utils.time_utils import elapsed_ms, format_duration, normalize_ts, utc_now

__all__ = [
    "SingletonTaskRegistry",
    "elapsed_ms",
    "format_duration",
    "normalize_ts",
    "utc_now",
]
