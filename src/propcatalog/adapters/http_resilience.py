"""Async HTTP session with transport retries and a client-side rate limit."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from propcatalog.config.http_resilience import RateLimit, ResilienceConfig, RetryPolicy

log = getLogger(__name__)


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        allowed_methods=sorted(policy.allowed_methods),
        status_forcelist=sorted(policy.status_forcelist),
        retry_on_exceptions=policy.retry_on_exceptions,
        backoff_factor=policy.backoff_factor,
        backoff_jitter=policy.backoff_jitter,
        max_backoff_wait=policy.max_backoff_wait,
        respect_retry_after_header=policy.respect_retry_after_header,
    )


def build_transport(
    policy: RetryPolicy,
    *,
    inner: httpx.AsyncBaseTransport | None = None,
) -> RetryTransport:
    """Wrap ``inner`` (the network by default) in the retry layer."""

    return RetryTransport(transport=inner, retry=build_retry(policy))


def build_limiter(ratelimit: RateLimit | None) -> AsyncLimiter | None:
    if ratelimit is None:
        return None
    return AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds)


class ResilientClient:
    """One ``httpx.AsyncClient`` per unit of work, throttled by an ``AsyncLimiter``.

    The limiter budgets calls across sessions only when it is shared: pass the
    owner's ``limiter`` to every session, otherwise each one gets a fresh budget
    built from ``config.ratelimit``.

    ``transport`` replaces the network transport underneath the retry layer,
    so retries and throttling stay in effect when tests inject a mock.
    """

    def __init__(
        self,
        config: ResilienceConfig,
        *,
        limiter: AsyncLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._limiter = limiter if limiter is not None else build_limiter(config.ratelimit)
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
            headers=dict(config.headers),
            transport=build_transport(config.retry, inner=transport),
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: object | None = None,
        params: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        log.debug(f"[{self.config.name}] {method} {url}")
        if self._limiter is None:
            return await self._client.request(method, url, json=json, params=params)
        async with self._limiter:
            return await self._client.request(method, url, json=json, params=params)

    async def get(self, url: str, *, params: Mapping[str, str] | None = None) -> httpx.Response:
        return await self.request("GET", url, params=params)
