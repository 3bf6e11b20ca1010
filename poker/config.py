"""
Runtime settings read from the environment
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    room_capacity: int = 10
    grace_seconds: float = 10.0
    room_idle_seconds: float = 3600.0
    cleanup_interval: float = 60.0
    # requests per minute per IP, 0 disables
    rate_limit: int = 100


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    return Settings(
        host=env.get("SERVER_HOST", "0.0.0.0"),
        port=_number(env, "PORT", 3000, int),
        room_capacity=_number(env, "POKER_ROOM_CAPACITY", 10, int),
        grace_seconds=_number(env, "POKER_GRACE_SECONDS", 10.0, float),
        room_idle_seconds=_number(env, "POKER_ROOM_IDLE_SECONDS", 3600.0, float),
        cleanup_interval=_number(env, "POKER_CLEANUP_INTERVAL", 60.0, float),
        rate_limit=_number(env, "POKER_RATE_LIMIT", 100, int),
    )
