"""Settings for the resilient HTTP session used by the catalog API adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

IDEMPOTENT_METHODS: Final = frozenset({"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "PUT"})
TRANSIENT_STATUSES: Final = frozenset({429, 500, 502, 503, 504})


@dataclass(slots=True, frozen=True, kw_only=True)
class RetryPolicy:
    """Transport-level retries for transient failures.

    Creates are never replayed: a second POST after a lost response would
    report a duplicate the caller did not cause.
    """

    total: int = 3
    backoff_factor: float = 0.5
    backoff_jitter: float = 1.0
    max_backoff_wait: float = 30.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = IDEMPOTENT_METHODS
    status_forcelist: frozenset[int] = TRANSIENT_STATUSES
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )

    def allows(self, method: str) -> bool:
        return method.upper() in self.allowed_methods


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float = 1.0


@dataclass(slots=True, frozen=True, kw_only=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    headers: Mapping[str, str] = field(default_factory=dict[str, str])
