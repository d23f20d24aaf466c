"""
Runtime configuration.

Values come from the environment (optionally a .env file). Scheduling
defaults are only defaults: the core functions take them as explicit
parameters so callers and tests can override per run.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hallcup.db")
SQL_ECHO = _env_bool("SQL_ECHO")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

# Scheduling defaults
DEFAULT_MIN_REST_SLOTS = _env_int("HALLCUP_DEFAULT_MIN_REST_SLOTS", 1)
MAX_ASSIGN_ITERATIONS = _env_int("HALLCUP_MAX_ASSIGN_ITERATIONS", 10_000)
MAX_BALANCE_ITERATIONS = _env_int("HALLCUP_MAX_BALANCE_ITERATIONS", 10_000)


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger (idempotent)."""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)
