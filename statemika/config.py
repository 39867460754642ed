"""
statemika Configuration

Explicit configuration object handed to each client. Nothing is read from the
environment at import time; call ``ClientConfig.from_env()`` when you want
environment variables (and a local .env file) to supply the values.
"""

import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://state.gmika.io"
DEFAULT_CACHE_DURATION_MS = 5 * 60 * 1000
DEFAULT_TIMEOUT_MS = 15_000
WEB_SEARCH_TIMEOUT_FLOOR_MS = 30_000


class CacheKeyMode(str, Enum):
    """How the simulation cache derives keys from a SimulationConfig."""

    # name + residence + current_time. Near-unique per call unless callers pin
    # current_time, so most lookups miss.
    SUBJECT_AND_TIME = "subject_and_time"
    # name + residence only. Opt-in deviation that makes the TTL effective.
    SUBJECT = "subject"


class ClientConfig(BaseModel):
    """Connection and caching settings shared by the query and simulation clients."""

    base_url: str = Field(DEFAULT_BASE_URL, description="Service root, without trailing slash")
    api_key: Optional[str] = Field(None, description="Value sent in the X-API-Key header")
    cache_duration_ms: int = Field(DEFAULT_CACHE_DURATION_MS, ge=0, description="Simulation cache TTL")
    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0, description="Default per-request timeout")
    web_search_timeout_ms: int = Field(
        WEB_SEARCH_TIMEOUT_FLOOR_MS,
        ge=WEB_SEARCH_TIMEOUT_FLOOR_MS,
        description="Minimum timeout applied to web-search calls",
    )
    cache_key_mode: CacheKeyMode = Field(CacheKeyMode.SUBJECT_AND_TIME)

    @property
    def root_url(self) -> str:
        return self.base_url.rstrip("/")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "ClientConfig":
        """Build a config from STATE_OF_MIKA_* environment variables.

        Loads a .env file first (if present). Keyword overrides win over the
        environment, which wins over the defaults.
        """
        load_dotenv(env_file)

        values: dict = {}
        api_key = os.getenv("STATE_OF_MIKA_API_KEY")
        if api_key:
            values["api_key"] = api_key
        base_url = os.getenv("STATE_OF_MIKA_API_URL")
        if base_url:
            values["base_url"] = base_url
        cache_ms = os.getenv("STATE_OF_MIKA_CACHE_MS")
        if cache_ms:
            values["cache_duration_ms"] = int(cache_ms)
        timeout_ms = os.getenv("STATE_OF_MIKA_TIMEOUT_MS")
        if timeout_ms:
            values["timeout_ms"] = int(timeout_ms)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate_credentials(self) -> None:
        """Raise if no API key is configured."""
        if not self.api_key:
            raise ValueError(
                "STATE_OF_MIKA_API_KEY is required to query the service. "
                "Pass api_key= or set it in the environment."
            )

    def masked_key(self) -> str:
        if not self.api_key:
            return "<none>"
        if len(self.api_key) <= 6:
            return "***"
        return f"{self.api_key[:3]}...{self.api_key[-3:]}"

    def display(self) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "statemika Configuration:",
            f"  Base URL: {self.root_url}",
            f"  API Key: {self.masked_key()}",
            f"  Cache TTL: {self.cache_duration_ms}ms ({self.cache_key_mode.value})",
            f"  Timeout: {self.timeout_ms}ms (web search >= {self.web_search_timeout_ms}ms)",
        ]
        return "\n".join(lines)
