"""Application configuration."""

import re
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")

_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> float:
    """Convert a duration to seconds.

    Accepts plain numbers (seconds) and Go-style duration strings such as
    ``10m``, ``6h``, ``1h30m`` or ``500ms``.

    Args:
        value: Number of seconds or a duration string

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().lower()
    if not text:
        raise ValueError("Empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


class Settings(BaseSettings):
    """
    Updater settings.

    Environment variables will be loaded and validated using Pydantic.
    Command line flags override whatever is loaded here.
    """

    # Storage node
    KUBO_API_ADDRESS: str = ""
    KUBO_TIMEOUT: float = 6 * 3600.0
    UPLOAD_BUFFER_CHUNKS: int = Field(default=16, ge=1)

    # Coordinator
    PODCASTING_EMAIL: str = ""
    COORDINATOR_URL: str = "https://ipfspodcasting.net"
    CLIENT_VERSION: str = "0.6p"
    HTTP_TIMEOUT: float = 10 * 60.0
    COORDINATOR_MAX_RETRIES: int = Field(default=5, ge=0)
    COORDINATOR_RETRY_DELAY: float = 5.0

    # Scheduling
    UPDATE_FREQUENCY: float = 10 * 60.0
    IDLE_POLL_INTERVAL: float = 60.0

    # Metrics
    METRICS_ADDRESS: str = ":9196"

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    @field_validator(
        "KUBO_TIMEOUT",
        "HTTP_TIMEOUT",
        "COORDINATOR_RETRY_DELAY",
        "UPDATE_FREQUENCY",
        "IDLE_POLL_INTERVAL",
        mode="before",
    )
    @classmethod
    def validate_duration(cls, value: Any) -> float:
        """Allow durations such as ``10m`` in the environment."""
        seconds = parse_duration(value)
        if seconds < 0:
            raise ValueError("Durations must not be negative")
        return seconds

    @field_validator("COORDINATOR_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


# Create settings instance
settings = Settings()
