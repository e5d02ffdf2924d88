"""Application settings loaded from the environment (and an optional .env file)"""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

DEFAULT_SEED_SLOTS = ("A1", "A2", "A3", "A4", "A5")


def _to_int(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _to_list(value: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class AppSettings:
    """Immutable snapshot of runtime configuration"""

    secret_key: str
    jwt_algorithm: str
    access_token_expire_minutes: int
    sweep_interval_seconds: int
    check_in_early_minutes: int
    log_level: str
    seed_slots: Tuple[str, ...]


def load_settings(env: Optional[Mapping[str, str]] = None) -> AppSettings:
    """Load configuration from the environment and fall back to defaults"""
    if env is None:
        load_dotenv(override=False)
        env = os.environ

    return AppSettings(
        secret_key=env.get("PARKING_SECRET_KEY", "change-me-in-production"),
        jwt_algorithm=env.get("PARKING_JWT_ALGORITHM", "HS256"),
        access_token_expire_minutes=_to_int(env.get("PARKING_ACCESS_TOKEN_EXPIRE_MINUTES"), 30),
        sweep_interval_seconds=_to_int(env.get("PARKING_SWEEP_INTERVAL_SECONDS"), 3600),
        check_in_early_minutes=_to_int(env.get("PARKING_CHECK_IN_EARLY_MINUTES"), 15),
        log_level=env.get("PARKING_LOG_LEVEL", "INFO").upper(),
        seed_slots=_to_list(env.get("PARKING_SEED_SLOTS"), DEFAULT_SEED_SLOTS),
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()
