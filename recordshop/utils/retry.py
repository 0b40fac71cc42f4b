# recordshop/utils/retry.py
import threading
import time
from dataclasses import dataclass
from typing import Callable

import redis
import requests
from requests import RequestException
from tenacity import (
    RetryError,
    Retrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recordshop.domain.errors import RetryExhaustedError
from recordshop.utils.logging import get_logger
from recordshop.utils.settings import (
    DISCOGS_RATE_LIMIT_PER_MINUTE,
    HTTP_TIMEOUT_SECONDS,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    RETRY_MAX_RETRIES,
)

logger = get_logger(__name__)

# 408 i 429 + wszystkie 5xx; pozostale 4xx to odpowiedz, nie awaria
RETRY_STATUSES = frozenset({408, 429})
LOW_REMAINING_WARNING = 5


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(RequestException),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = RETRY_MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY  # sekundy
    max_delay: float = RETRY_MAX_DELAY

    def backoff(self, step: int) -> float:
        return min(self.base_delay * (2 ** step), self.max_delay)


class RateLimiter:
    """
    Licznik requestow w oknie czasowym (domyslnie 60 s).
    Po osiagnieciu limitu acquire() czeka az okno sie zresetuje.
    clock/sleep wstrzykiwane - w testach bez prawdziwego czekania.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._window_start: float | None = None
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def acquire(self) -> None:
        with self._lock:
            now = self._clock()
            if self._window_start is None or now - self._window_start >= self.window_seconds:
                self._window_start = now
                self._count = 0

            if self._count >= self.max_requests:
                wait = self.window_seconds - (now - self._window_start)
                logger.warning(f"Rate limit of {self.max_requests} requests reached, waiting {wait:.1f}s")
                if wait > 0:
                    self._sleep(wait)
                self._window_start = self._clock()
                self._count = 0

            self._count += 1


default_rate_limiter = RateLimiter(DISCOGS_RATE_LIMIT_PER_MINUTE)


class _RetryableStatus(Exception):
    def __init__(self, response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _retry_after_seconds(response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return max(seconds, 0.0)


class _BackoffWait:
    """
    Wait strategy dla tenacity.
    Retry-After z 429 nie przesuwa harmonogramu wykladniczego,
    ale nigdy nie czekamy dluzej niz max_delay.
    """

    def __init__(self, policy: RetryPolicy):
        self.policy = policy
        self.step = 0

    def __call__(self, retry_state) -> float:
        exc = retry_state.outcome.exception()
        if isinstance(exc, _RetryableStatus) and exc.response.status_code == 429:
            retry_after = _retry_after_seconds(exc.response)
            if retry_after is not None:
                return min(retry_after, self.policy.max_delay)

        delay = self.policy.backoff(self.step)
        self.step += 1
        return delay


def _log_before_sleep(method: str, url: str):
    def before_sleep(retry_state):
        exc = retry_state.outcome.exception()
        logger.warning(
            f"{method} {url} failed ({exc}), "
            f"retry {retry_state.attempt_number} in {retry_state.next_action.sleep:.2f}s"
        )
    return before_sleep


def _note_rate_limit_headers(url: str, response) -> None:
    remaining = response.headers.get("X-Discogs-Ratelimit-Remaining")
    if remaining is None:
        return
    try:
        if int(remaining) <= LOW_REMAINING_WARNING:
            logger.warning(f"Marketplace rate limit almost used up ({remaining} left) after {url}")
    except ValueError:
        pass


def fetch_with_retry(
    method: str,
    url: str,
    *,
    policy: RetryPolicy | None = None,
    rate_limiter: RateLimiter | None = None,
    session=None,
    sleep: Callable[[float], None] = time.sleep,
    timeout: float = HTTP_TIMEOUT_SECONDS,
    **request_kwargs,
):
    """
    HTTP request z ponawianiem.

    Retries network errors, 5xx, 408 and 429 with ``base_delay * 2**n``
    capped at ``max_delay``; a 429 carrying ``Retry-After`` waits that long
    instead, still capped at ``max_delay``. Every attempt goes through the
    rate limiter. Other 4xx responses are returned as-is. Raises
    ``RetryExhaustedError`` once ``max_retries`` retries are used up.
    """
    policy = policy or RetryPolicy()
    limiter = rate_limiter or default_rate_limiter
    http = session or requests

    def attempt():
        limiter.acquire()
        response = http.request(method, url, timeout=timeout, **request_kwargs)
        _note_rate_limit_headers(url, response)
        status = response.status_code
        if status in RETRY_STATUSES or 500 <= status < 600:
            raise _RetryableStatus(response)
        return response

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=_BackoffWait(policy),
        retry=retry_if_exception_type((RequestException, _RetryableStatus)),
        sleep=sleep,
        before_sleep=_log_before_sleep(method, url),
    )

    try:
        return retrying(attempt)
    except RetryError as e:
        last = e.last_attempt
        exc = last.exception()
        status = exc.response.status_code if isinstance(exc, _RetryableStatus) else None
        logger.error(f"{method} {url} gave up after {last.attempt_number} attempts: {exc}")
        raise RetryExhaustedError(url, status, last.attempt_number) from exc
