"""Runtime settings read from the environment (and an optional ``.env`` file)."""

import logging
import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

from exceptions import ConfigError

# Load environment variables
load_dotenv()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(
            f"{name} must be an integer",
            details={"value": raw},
            original_error=exc,
        ) from exc


@dataclass(frozen=True)
class Settings:
    database_url: str
    user_id: int
    log_level: str
    api_host: str
    api_port: int
    chat_history_turns: int


def load_settings() -> Settings:
    """Build a :class:`Settings` snapshot from the current environment."""
    return Settings(
        # Default to local SQLite, but allow override for Postgres
        database_url=os.getenv("DATABASE_URL", "sqlite:///spendwise.db"),
        # Placeholder until real multi-user auth exists; always passed explicitly
        user_id=_env_int("SPENDWISE_USER_ID", 1),
        log_level=os.getenv("SPENDWISE_LOG_LEVEL", "INFO"),
        api_host=os.getenv("SPENDWISE_API_HOST", "0.0.0.0"),
        api_port=_env_int("SPENDWISE_API_PORT", 5000),
        chat_history_turns=_env_int("SPENDWISE_CHAT_HISTORY_TURNS", 10),
    )


def setup_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the API server or the dashboard.

    Args:
        level: Level name such as ``"INFO"`` or ``"DEBUG"``; unknown names fall back to INFO
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
