"""Configuration management for cartshift."""

import os
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_HTTP_RETRIES = 0


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_environment(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    Args:
        env_file: Path to .env file. If None, looks for .env in current directory.
    """
    env_path = Path(env_file) if env_file else Path('.env')

    if env_path.exists():
        load_dotenv(env_path)
        logging.info(f"Loaded environment from {env_path}")
    else:
        logging.debug(f"No .env file found at {env_path}")


def get_optional_env(key: str, default: str = "") -> str:
    """Get an optional environment variable."""
    return os.getenv(key, default)


def get_int_env(key: str, default: int) -> int:
    """Get an integer environment variable, falling back to default on bad input."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"Ignoring non-integer value for {key}: {raw!r}")
        return default


def get_http_timeout() -> int:
    """Per-request timeout in seconds for platform API calls."""
    return get_int_env("CARTSHIFT_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)


def get_http_retries() -> int:
    """Number of 429 retries the HTTP clients may perform (0 disables)."""
    return max(0, get_int_env("CARTSHIFT_HTTP_RETRIES", DEFAULT_HTTP_RETRIES))


def get_store_backend() -> str:
    """Which repository backend to use: 'firestore' or 'memory'."""
    return get_optional_env("CARTSHIFT_STORE", "firestore").strip().lower()
