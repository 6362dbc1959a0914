"""Configuration module for the portal.

All settings come from environment variables so the same image can run
locally (STORE_BACKEND=memory, FRAUDBOARD_ENV=dev) and in production
(DynamoDB, terse error bodies).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigError

DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024
DEFAULT_JWT_SECRET = "your-secret-key-should-be-in-env-variable"


def _validate_timezone(name: Optional[str]) -> Optional[ZoneInfo]:
    """Resolve an IANA zone name, raising ConfigError if it is unknown."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"QUOTA_TIMEZONE '{name}' is not a known timezone") from e


@dataclass(frozen=True)
class PortalConfig:
    max_daily_uploads: int = 5
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    reference_dataset: str = "ideal_test.csv"
    store_backend: str = "dynamodb"
    table_name: str = "FraudboardScores"
    aws_region: Optional[str] = None
    read_consistent: bool = True
    store_connect_retries: int = 5
    store_connect_delay: float = 5.0
    quota_timezone: Optional[str] = None
    env: str = "prod"
    port: int = 8000
    debug_log: bool = False

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def tzinfo(self):
        return _validate_timezone(self.quota_timezone)


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'")


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() == "true"


def load_config(env: Optional[Mapping[str, str]] = None) -> PortalConfig:
    """
    Build a PortalConfig from environment variables.

    Args:
        env: Mapping to read instead of os.environ

    Raises:
        ConfigError: If a variable cannot be interpreted
    """
    env = os.environ if env is None else env

    backend = env.get("STORE_BACKEND", "dynamodb").strip().lower()
    if backend not in ("dynamodb", "memory"):
        raise ConfigError(f"STORE_BACKEND must be 'dynamodb' or 'memory', got '{backend}'")

    quota_timezone = env.get("QUOTA_TIMEZONE") or None
    _validate_timezone(quota_timezone)

    return PortalConfig(
        max_daily_uploads=_get_int(env, "MAX_DAILY_UPLOADS", 5, minimum=1),
        max_file_size=_get_int(env, "MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE, minimum=1),
        jwt_secret=env.get("JWT_SECRET", DEFAULT_JWT_SECRET),
        jwt_algorithm=env.get("JWT_ALGORITHM", "HS256"),
        reference_dataset=env.get("REFERENCE_DATASET", "ideal_test.csv"),
        store_backend=backend,
        table_name=env.get("TABLE_NAME", "FraudboardScores"),
        aws_region=env.get("AWS_REGION") or None,
        read_consistent=_get_bool(env, "READ_CONSISTENT", True),
        store_connect_retries=_get_int(env, "STORE_CONNECT_RETRIES", 5, minimum=1),
        store_connect_delay=_get_float(env, "STORE_CONNECT_DELAY", 5.0),
        quota_timezone=quota_timezone,
        env=env.get("FRAUDBOARD_ENV", "prod").strip().lower(),
        port=_get_int(env, "PORT", 8000, minimum=1),
        debug_log=_get_bool(env, "DEBUG_LOG", False),
    )


class ApiBaseUrlNotFound(Exception):
    """Raised when the portal API base URL cannot be discovered."""
    pass


def get_api_base_url(raise_on_missing: bool = True) -> Optional[str]:
    """
    Discover the portal API base URL for clients.

    Discovery order:
    1. Env var FRAUDBOARD_API_BASE_URL
    2. http://localhost:$PORT when FRAUDBOARD_ENV=dev

    Raises:
        ApiBaseUrlNotFound: If URL not found and raise_on_missing=True.
    """
    url = os.getenv("FRAUDBOARD_API_BASE_URL")
    if url:
        return url.strip()

    if os.getenv("FRAUDBOARD_ENV", "prod").strip().lower() == "dev":
        return f"http://localhost:{os.getenv('PORT', '8000')}"

    if raise_on_missing:
        raise ApiBaseUrlNotFound(
            "API base URL not found. Please set FRAUDBOARD_API_BASE_URL environment variable."
        )
    return None
