"""settings pulled from the environment (and a .env file if there is one)"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "pizza-store.db"
DEFAULT_DB_TIMEOUT = 5.0
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_RECENT_ORDERS = 5


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    db_timeout: float = DEFAULT_DB_TIMEOUT
    seed_data: bool = True
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: str | None = None
    recent_orders: int = DEFAULT_RECENT_ORDERS


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "y", "on"):
        return True
    if value in ("0", "false", "no", "n", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a whole number, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}")
    return value


def load_settings(env_file: str | Path = ".env") -> Settings:
    """load .env (if present) then read PIZZA_* variables; fails fast on bad values"""
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"loaded environment from {env_path}")

    level = os.getenv("PIZZA_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    if level not in logging.getLevelNamesMapping():
        raise ValueError(f"PIZZA_LOG_LEVEL must be a logging level, got {level!r}")

    return Settings(
        db_path=os.getenv("PIZZA_DB_PATH", DEFAULT_DB_PATH),
        db_timeout=_env_float("PIZZA_DB_TIMEOUT", DEFAULT_DB_TIMEOUT),
        seed_data=_env_bool("PIZZA_SEED_DATA", True),
        log_level=level,
        log_file=os.getenv("PIZZA_LOG_FILE") or None,
        recent_orders=_env_int("PIZZA_RECENT_ORDERS", DEFAULT_RECENT_ORDERS),
    )
