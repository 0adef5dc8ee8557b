"""
Configuration module for the Firefly bot.

Contains constants, defaults, and the environment-backed settings used
throughout the application.
"""

import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from fireflybot.errors import ConfigError

# Version
VERSION = "0.1.0"

# Application paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOG_DIR = PROJECT_ROOT / "logs"

# Session storage
DEFAULT_DB_PATH = DATA_DIR / "fireflybot.db"
DB_TIMEOUT = 10.0  # seconds

# Conversation
DEFAULT_SESSION_IDLE_TIMEOUT = 900  # seconds
DEFAULT_MAX_FIELD_RETRIES = 3
DEFAULT_MAX_COMMIT_ATTEMPTS = 3
CONFIDENCE_THRESHOLD = 0.7
MAX_MESSAGE_LENGTH = 500
SESSION_PURGE_INTERVAL = 300  # seconds
SESSION_RETENTION = 86400  # seconds a stored session is kept after its last activity

# Amount validation
DEFAULT_CURRENCY = "USD"
MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999999.99")
AMOUNT_STEP = Decimal("0.01")  # finer amounts are rejected, not rounded

# User input limits
MAX_ACCOUNT_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 200

# NLP configuration
DEFAULT_SPACY_MODEL = "en_core_web_sm"
WIT_API_URL = "https://api.wit.ai"
WIT_API_VERSION = "20210928"

# Ledger HTTP client
HTTP_TIMEOUT = 15.0  # seconds
LEDGER_RETRY_ATTEMPTS = 3
LEDGER_RETRY_BASE_DELAY = 0.5  # seconds
LEDGER_RETRY_MAX_DELAY = 5.0  # seconds

# Discord configuration
DISCORD_MESSAGE_MAX_LENGTH = 2000

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "fireflybot.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# User-facing error messages
ERROR_MESSAGES = {
    "store_unavailable": (
        "I couldn't save your progress just now. Please send that message again."
    ),
    "internal_error": "An internal error occurred. Please try again.",
    "too_long": f"That message is too long (max {MAX_MESSAGE_LENGTH} characters).",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from the environment."""

    discord_token: str
    admin_id: int
    firefly_url: str
    firefly_token: str
    storage_path: Path = DEFAULT_DB_PATH
    wit_token: Optional[str] = None
    default_currency: str = DEFAULT_CURRENCY
    session_idle_timeout: int = DEFAULT_SESSION_IDLE_TIMEOUT
    max_field_retries: int = DEFAULT_MAX_FIELD_RETRIES
    max_commit_attempts: int = DEFAULT_MAX_COMMIT_ATTEMPTS


def _require(env: dict, name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigError(name, f"{name} environment variable is not set")
    return value


def _int(env: dict, name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(name, f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(name, f"{name} must be at least {minimum}, got {value}")
    return value


def load_settings(env: Optional[dict] = None) -> Settings:
    """
    Build settings from environment variables.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.

    Raises:
        ConfigError: If a required value is missing or malformed.
    """
    env = dict(os.environ if env is None else env)

    admin_raw = _require(env, "BOT_ADMIN_ID")
    try:
        admin_id = int(admin_raw)
    except ValueError as e:
        raise ConfigError(
            "BOT_ADMIN_ID", f"BOT_ADMIN_ID must be a numeric user id, got {admin_raw!r}"
        ) from e

    firefly_url = _require(env, "FIREFLY_URL").rstrip("/")
    if not firefly_url.startswith(("http://", "https://")):
        raise ConfigError(
            "FIREFLY_URL", "FIREFLY_URL must start with http:// or https://"
        )

    storage = env.get("APP_SHARED_STORAGE_PATH", "").strip()

    return Settings(
        discord_token=_require(env, "DISCORD_BOT_TOKEN"),
        admin_id=admin_id,
        firefly_url=firefly_url,
        firefly_token=_require(env, "FIREFLY_TOKEN"),
        storage_path=Path(storage) if storage else DEFAULT_DB_PATH,
        wit_token=env.get("WIT_TOKEN", "").strip() or None,
        default_currency=(
            env.get("DEFAULT_CURRENCY", "").strip().upper() or DEFAULT_CURRENCY
        ),
        session_idle_timeout=_int(
            env, "SESSION_IDLE_TIMEOUT", DEFAULT_SESSION_IDLE_TIMEOUT
        ),
        max_field_retries=_int(env, "MAX_FIELD_RETRIES", DEFAULT_MAX_FIELD_RETRIES),
        max_commit_attempts=_int(
            env, "MAX_COMMIT_ATTEMPTS", DEFAULT_MAX_COMMIT_ATTEMPTS
        ),
    )


def ensure_directories():
    """Ensure required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def get_log_level():
    """Get the configured log level."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(LOG_LEVEL.upper(), logging.INFO)
