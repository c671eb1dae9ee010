"""Central configuration for the chapter player.

Tunable engine parameters live here (starting balances, default stats,
asset locations, HTTP fetching, log level). Every value has a sensible
default and can be overridden through environment variables.
"""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Dict, List


def _get_int_env(name: str, default: int, minval: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = int(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_float_env(name: str, default: float, minval: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        v = float(raw)
        if minval is not None and v < minval:
            return default
        return v
    except ValueError:
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    return val in {"1", "true", "yes", "on"}


# ---------------- Player variables ----------------
CURRENCY_KEYS = ("diamonds", "tickets")

# Currency charged when a choice declares a cost without a costType
DEFAULT_COST_TYPE: str = "diamonds"

DEFAULT_STATS: tuple = ("Confidence", "Empathy", "Creativity")


def get_default_stats() -> List[str]:
    """Narrative stats created at 0 on every progress record. Var: CP_DEFAULT_STATS."""
    raw = os.getenv("CP_DEFAULT_STATS")
    if raw is None:
        return list(DEFAULT_STATS)
    names = [part.strip() for part in raw.split(",") if part.strip()]
    return names or list(DEFAULT_STATS)


def get_start_diamonds() -> int:
    """Starting diamond balance. Var: CP_START_DIAMONDS (default 100)."""
    return _get_int_env("CP_START_DIAMONDS", 100, minval=0)


def get_start_tickets() -> int:
    """Starting ticket balance. Var: CP_START_TICKETS (default 5)."""
    return _get_int_env("CP_START_TICKETS", 5, minval=0)


def get_default_variables() -> Dict[str, int]:
    """Fresh mapping of every default stat and currency balance."""
    defaults: Dict[str, int] = {name: 0 for name in get_default_stats()}
    defaults["diamonds"] = get_start_diamonds()
    defaults["tickets"] = get_start_tickets()
    return defaults


# ---------------- Characters ----------------
NEUTRAL_EMOTION: str = "neutral"
DEFAULT_OUTFIT: str = "default"
DEFAULT_POSITION: str = "center"

# Character whose portrait is layered from the player's customization
PLAYER_CHARACTER_KEY: str = "mc"


# ---------------- Assets ----------------
_REPO_ROOT = Path(__file__).resolve().parent


def get_assets_dir() -> Path:
    """Base directory for chapter files and local assets. Var: CP_ASSETS_DIR."""
    raw = os.getenv("CP_ASSETS_DIR")
    if raw and raw.strip():
        return Path(raw.strip())
    return _REPO_ROOT / "assets"


def get_http_enabled() -> bool:
    """Allow http(s) asset locators to be fetched. Var: CP_HTTP_ENABLED (default True)."""
    return _get_bool_env("CP_HTTP_ENABLED", True)


def get_http_timeout() -> float:
    """Timeout in seconds for HTTP asset requests. Var: CP_HTTP_TIMEOUT (default 10.0)."""
    return _get_float_env("CP_HTTP_TIMEOUT", 10.0, minval=1.0)


# ---------------- Logging ----------------

def get_log_level() -> int:
    """Logging level name for the terminal player. Var: CP_LOG_LEVEL (default WARNING)."""
    raw = os.getenv("CP_LOG_LEVEL", "WARNING").strip().upper()
    level = logging.getLevelName(raw)
    if isinstance(level, int):
        return level
    return logging.WARNING


__all__ = [
    # Variables
    "CURRENCY_KEYS", "DEFAULT_COST_TYPE", "DEFAULT_STATS",
    "get_default_stats", "get_start_diamonds", "get_start_tickets", "get_default_variables",
    # Characters
    "NEUTRAL_EMOTION", "DEFAULT_OUTFIT", "DEFAULT_POSITION", "PLAYER_CHARACTER_KEY",
    # Assets
    "get_assets_dir", "get_http_enabled", "get_http_timeout",
    # Logging
    "get_log_level",
]
