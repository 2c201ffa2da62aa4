"""Catalog API configuration values."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .env import optional_env_var, parsed_env_var, require_env_vars
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_TIMEOUT_SECONDS: Final = 15.0
DEFAULT_CALLS_PER_SECOND: Final = 10
DEFAULT_RETRIES: Final = 3


@dataclass(frozen=True)
class CatalogApiConfig:
    """Holds Catalog API configuration values."""

    base_url: str
    resilience: ResilienceConfig
    api_token: str | None = None


def build_catalog_resilience(
    base_url: str,
    *,
    api_token: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    calls_per_second: int = DEFAULT_CALLS_PER_SECOND,
    retries: int = DEFAULT_RETRIES,
) -> ResilienceConfig:
    headers = {"Accept": "application/json"}
    if api_token:
        headers["Authorization"] = f"Bearer {api_token}"
    return ResilienceConfig(
        name="catalog",
        base_url=base_url,
        timeout_seconds=timeout_seconds,
        retry=RetryPolicy(total=retries),
        ratelimit=RateLimit(max_calls=calls_per_second) if calls_per_second > 0 else None,
        headers=headers,
    )


def get_catalog_api_config(*, resilience: ResilienceConfig | None = None) -> CatalogApiConfig:
    """Read ``CATALOG_API_URL`` (required) and the optional token and tuning knobs.

    ``CATALOG_API_RATE_LIMIT`` is in calls per second; ``0`` disables the limiter.
    """

    base_url = require_env_vars(("CATALOG_API_URL",))["CATALOG_API_URL"].rstrip("/")
    api_token = optional_env_var("CATALOG_API_TOKEN")
    if resilience is None:
        resilience = build_catalog_resilience(
            base_url,
            api_token=api_token,
            timeout_seconds=parsed_env_var(
                "CATALOG_API_TIMEOUT", float, default=DEFAULT_TIMEOUT_SECONDS
            ),
            calls_per_second=parsed_env_var(
                "CATALOG_API_RATE_LIMIT", int, default=DEFAULT_CALLS_PER_SECOND
            ),
            retries=parsed_env_var("CATALOG_API_RETRIES", int, default=DEFAULT_RETRIES),
        )
    return CatalogApiConfig(base_url=base_url, api_token=api_token, resilience=resilience)
