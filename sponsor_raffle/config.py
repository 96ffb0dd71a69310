from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < minimum:
        return default
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str
    cooldown_sponsor: str
    cooldown_lookback: int
    max_rounds: int
    car_class: str
    log_level: str


def get_settings() -> Settings:
    """
    Read settings from the environment on every call so tests can patch it.
    Out-of-range integers fall back to their defaults.
    """
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./sponsor_raffle.db"),
        cooldown_sponsor=os.getenv("RAFFLE_COOLDOWN_SPONSOR", "Toyo"),
        cooldown_lookback=_int_env("RAFFLE_COOLDOWN_LOOKBACK", 9, minimum=0),
        max_rounds=_int_env("RAFFLE_MAX_ROUNDS", 5),
        car_class=os.getenv("RAFFLE_CAR_CLASS", "PRO3"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def configure_logging(level_name: str | None = None) -> None:
    level_name = (level_name or get_settings().log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
