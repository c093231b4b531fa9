"""Environment-driven settings and platform-aware storage paths."""

import os
import sys
from pathlib import Path

DEFAULT_BACKEND = "file"
DEFAULT_REPLY_DELAY_MIN = 1.0
DEFAULT_REPLY_DELAY_MAX = 3.0


def get_store_path() -> Path:
    """Return the path of the JSON file holding the chat collection."""
    env = os.environ.get("CHATSYNC_STORE_PATH")
    if env:
        return Path(env)

    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "chatsync" / "chats.json"
    elif sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "chatsync" / "chats.json"
    else:  # Linux
        data_home = os.environ.get("XDG_DATA_HOME")
        base = Path(data_home) if data_home else Path.home() / ".local" / "share"
        return base / "chatsync" / "chats.json"


def get_backend_name() -> str:
    """Return the persistence backend to use: "file" or "memory"."""
    return os.environ.get("CHATSYNC_BACKEND", DEFAULT_BACKEND).strip().lower()


def get_reply_delay_range() -> tuple[float, float]:
    """Return the (min, max) seconds the canned reply generator waits."""
    low = _float_env("CHATSYNC_REPLY_DELAY_MIN", DEFAULT_REPLY_DELAY_MIN)
    high = _float_env("CHATSYNC_REPLY_DELAY_MAX", DEFAULT_REPLY_DELAY_MAX)
    if high < low:
        high = low
    return max(low, 0.0), max(high, 0.0)


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
