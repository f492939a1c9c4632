"""HTTP requests with bounded retries, exponential backoff and per-attempt timeout."""

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class FetchRetryError(Exception):
    """Raised when a request fails for good (budget exhausted or non-retryable status)."""

    def __init__(self, message: str, status_code: int | None, attempts: int) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


@dataclass(frozen=True)
class RetryOptions:
    retries: int = 3
    initial_delay_ms: int = 1000
    timeout_ms: int = 30000
    retryable_statuses: frozenset[int] = field(default=DEFAULT_RETRYABLE_STATUSES)

    @classmethod
    def from_settings(cls) -> "RetryOptions":
        from transit_map.config import settings

        return cls(
            retries=settings.fetch_retries,
            initial_delay_ms=settings.fetch_initial_delay_ms,
            timeout_ms=settings.fetch_timeout_ms,
        )

    def backoff_seconds(self, attempt: int) -> float:
        """Delay before the given 1-based attempt; the first attempt is immediate."""
        if attempt <= 1:
            return 0.0
        return self.initial_delay_ms * (2 ** (attempt - 2)) / 1000


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    options: RetryOptions | None = None,
    **request_kwargs,
) -> httpx.Response:
    """Perform a request, retrying transport errors and retryable HTTP statuses.

    Non-retryable statuses (e.g. 404) fail immediately without consuming the
    retry budget. Raises FetchRetryError carrying the last status and the
    number of attempts made.
    """
    opts = options or RetryOptions()
    max_attempts = opts.retries + 1
    timeout = httpx.Timeout(opts.timeout_ms / 1000)

    for attempt in range(1, max_attempts + 1):
        last_attempt = attempt == max_attempts
        wait = opts.backoff_seconds(attempt)
        if wait:
            await asyncio.sleep(wait)

        try:
            resp = await client.request(method, url, timeout=timeout, **request_kwargs)
        except httpx.TransportError as e:
            logger.warning(
                "%s %s attempt %d/%d failed (%s)",
                method, url, attempt, max_attempts, type(e).__name__,
            )
            if last_attempt:
                raise FetchRetryError(
                    f"All {max_attempts} attempts failed. Last error: {e}", None, max_attempts,
                ) from e
            continue

        if resp.is_success:
            return resp

        if resp.status_code in opts.retryable_statuses:
            logger.warning(
                "%s %s attempt %d/%d got HTTP %d",
                method, url, attempt, max_attempts, resp.status_code,
            )
            if last_attempt:
                raise FetchRetryError(
                    f"All {max_attempts} attempts failed. Last: HTTP {resp.status_code}",
                    resp.status_code,
                    max_attempts,
                )
            continue

        raise FetchRetryError(
            f"Non-retryable HTTP {resp.status_code} from {url}", resp.status_code, attempt,
        )

    raise FetchRetryError("No attempts made", None, 0)
