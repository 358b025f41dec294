"""Environment-driven settings for the tweet raffle backend.

Values are read from the process environment, with a ``.env`` file in the
working directory loaded first if present.
"""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

DEFAULT_TWITTER_API_BASE_URL = "https://api.twitter.com/2"


class ConfigError(Exception):
    """Raised when an environment variable holds an unusable value."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration.

    Attributes:
        twitter_bearer_token: App-only bearer token for the Twitter API v2.
        twitter_api_base_url: Base URL of the Twitter API v2.
        request_timeout: Timeout in seconds for each outbound Twitter request.
        max_pages: How many result pages to follow per participant fetch.
        cors_allowed_origins: Origins allowed by the CORS middleware.
        environment: Deployment name reported by the health endpoint.
        host: Interface uvicorn binds to.
        port: Port uvicorn listens on.
        log_level: uvicorn log level name.
    """

    twitter_bearer_token: str = ""
    twitter_api_base_url: str = DEFAULT_TWITTER_API_BASE_URL
    request_timeout: float = 10.0
    max_pages: int = 1
    cors_allowed_origins: tuple[str, ...] = ("*",)
    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "info"

    @staticmethod
    def from_env() -> "Settings":
        load_dotenv()

        origins = tuple(
            origin.strip() for origin in os.getenv("CORS_ALLOWED_ORIGINS", "*").split(",") if origin.strip()
        )

        max_pages = _env_int("TWITTER_MAX_PAGES", 1)
        if max_pages < 1:
            raise ConfigError(f"TWITTER_MAX_PAGES must be at least 1, got {max_pages}")

        timeout = _env_float("TWITTER_REQUEST_TIMEOUT", 10.0)
        if timeout <= 0:
            raise ConfigError(f"TWITTER_REQUEST_TIMEOUT must be positive, got {timeout}")

        return Settings(
            twitter_bearer_token=os.getenv("TWITTER_BEARER_TOKEN", "").strip(),
            twitter_api_base_url=os.getenv("TWITTER_API_BASE_URL", "").strip() or DEFAULT_TWITTER_API_BASE_URL,
            request_timeout=timeout,
            max_pages=max_pages,
            cors_allowed_origins=origins or ("*",),
            environment=os.getenv("APP_ENV", "").strip() or "production",
            host=os.getenv("HOST", "").strip() or "0.0.0.0",
            port=_env_int("PORT", 3001),
            log_level=os.getenv("LOG_LEVEL", "").strip().lower() or "info",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings.from_env()
