from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

# Pick up a local .env once, on first import. Real env vars win.
load_dotenv(override=False)


def _env_str(name: str, default: str = "") -> str:
    """Read a string env var, stripping whitespace."""
    return (os.getenv(name, default) or "").strip()


def _env_optional_str(name: str) -> Optional[str]:
    """Like `_env_str` but distinguishes unset from empty."""
    raw = os.getenv(name)
    return None if raw is None else raw.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env_str(name, "").lower()
    if not raw:
        return default
    return raw in {"y", "yes", "t", "true", "on", "1"}


def _env_int(name: str, default: int = 0) -> int:
    raw = _env_str(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"[zellular] {name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float = 0.0) -> float:
    raw = _env_str(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise SystemExit(f"[zellular] {name} must be a number, got {raw!r}") from None
