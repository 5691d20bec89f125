"""Per-provider request executor: timeouts, retry with backoff, uniform errors.

Each upstream provider (completion, search/content, company database,
email tool) gets its own ``Gateway`` with a ``RetryPolicy`` tuned to how
fast that provider's limits reset.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx
from pydantic import BaseModel, Field

from icp_screener.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

# Messages that mark an otherwise non-retryable status as transient
_RETRYABLE_MARKERS = ("rate limit", "overloaded")

# Transport-level failures worth another attempt
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
)

Sleep = Callable[[float], Awaitable[Any]]


class RetryPolicy(BaseModel):
    """Attempt count, backoff base and per-call timeout for one provider."""
    attempts: int = 3
    base_delay: float = 2.0
    timeout: float = 30.0

    def delay(self, attempt: int) -> float:
        """Wait before the retry that follows ``attempt`` (0-indexed)."""
        return self.base_delay * (2 ** (attempt + 1))


class GatewayResponse(BaseModel):
    data: Any = None
    retries: int = 0
    waits: list[float] = Field(default_factory=list)


def is_retryable(err: UpstreamError) -> bool:
    if isinstance(err, UpstreamTimeout):
        return True
    if err.status_code is not None and (err.status_code == 429 or err.status_code >= 500):
        return True
    msg = err.message.lower()
    return any(marker in msg for marker in _RETRYABLE_MARKERS)


def error_message(response: httpx.Response) -> str:
    """Pull the provider's own error text out of a failed response."""
    detail = ""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error") or body.get("message") or body.get("detail")
        if isinstance(err, dict):
            err = err.get("message") or err.get("type")
        detail = str(err) if err else ""
    if not detail:
        detail = response.text[:500]
    return f"HTTP {response.status_code}: {detail}".strip()


class Gateway:
    """Executes calls against one upstream provider."""

    def __init__(
        self,
        provider: str,
        policy: RetryPolicy | None = None,
        sleep: Sleep | None = None,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def invoke(self, call: Callable[[], Awaitable[Any]]) -> GatewayResponse:
        """Run ``call`` under the policy's timeout, retrying transient failures.

        ``call`` performs exactly one request and raises ``UpstreamError`` for
        provider-reported failures. Non-retryable errors surface immediately;
        exhausted retries raise an error naming the attempt count and the last
        upstream message.
        """
        attempts = self.policy.attempts
        waits: list[float] = []
        last: UpstreamError | None = None

        for attempt in range(attempts):
            try:
                data = await asyncio.wait_for(call(), timeout=self.policy.timeout)
                if attempt:
                    logger.info("%s: succeeded after %d retries", self.provider, attempt)
                return GatewayResponse(data=data, retries=attempt, waits=waits)
            except asyncio.TimeoutError:
                last = UpstreamTimeout(
                    self.provider,
                    f"Request timed out after {self.policy.timeout:.0f}s",
                )
            except httpx.TimeoutException as e:
                last = UpstreamTimeout(self.provider, f"{type(e).__name__}: {e}")
            except RETRYABLE_EXCEPTIONS as e:
                last = UpstreamError(self.provider, f"{type(e).__name__}: {e}", status_code=503)
            except UpstreamError as e:
                last = e

            if not is_retryable(last):
                last.attempts = attempt + 1
                raise last

            if attempt < attempts - 1:
                wait = self.policy.delay(attempt)
                waits.append(wait)
                logger.warning(
                    "%s: %s on attempt %d/%d, retrying in %.1fs",
                    self.provider, last.message, attempt + 1, attempts, wait,
                )
                await self._sleep(wait)

        assert last is not None
        logger.error("%s: all %d attempts exhausted", self.provider, attempts)
        error_cls = UpstreamTimeout if isinstance(last, UpstreamTimeout) else UpstreamError
        raise error_cls(
            self.provider,
            f"{self.provider} failed after {attempts} attempts. Last error: {last.message}",
            status_code=last.status_code,
            attempts=attempts,
        )

    async def request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> GatewayResponse:
        """HTTP convenience wrapper: JSON body on success, ``UpstreamError`` otherwise."""

        async def _call() -> Any:
            response = await client.request(method, url, **kwargs)
            if response.status_code >= 400:
                raise UpstreamError(
                    self.provider,
                    error_message(response),
                    status_code=response.status_code,
                )
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamError(
                    self.provider,
                    f"HTTP {response.status_code}: response is not JSON: {response.text[:200]}",
                    status_code=response.status_code,
                ) from e

        return await self.invoke(_call)
