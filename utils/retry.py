from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

import requests

from utils.http import ApiSession, handle_http_error, is_rate_limited

LOG = logging.getLogger("JiraCloud.retry")

T = TypeVar("T")

RATE_LIMIT_INTERVAL = 20.0


class RateLimitExhausted(RuntimeError):
    """Raised when a bounded RetryPolicy is still rate limited after its last attempt."""

    def __init__(self, context: str, attempts: int) -> None:
        super().__init__(f"{context or 'request'} still rate limited after {attempts} attempts")
        self.context = context
        self.attempts = attempts


@dataclass
class RetryPolicy:
    """Fixed-interval retry for throttled calls.

    max_attempts=None retries forever. sleep is injectable so tests never wait.
    """

    interval: float = RATE_LIMIT_INTERVAL
    max_attempts: Optional[int] = None
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def call(self, send: Callable[[], T], is_throttled: Callable[[T], bool], context: str = "") -> T:
        attempt = 0
        while True:
            attempt += 1
            result = send()
            if not is_throttled(result):
                return result
            if self.max_attempts is not None and attempt >= self.max_attempts:
                raise RateLimitExhausted(context, attempt)
            LOG.warning("%s rate limited (attempt %d); retrying in %.0fs", context or "request", attempt, self.interval)
            self.sleep(self.interval)


def request_with_retry(api: ApiSession, method: str, path: str, policy: Optional[RetryPolicy] = None, context: str = "", **kwargs: Any) -> requests.Response:
    """Send one request, retrying 429 responses with ``policy``.

    Non-rate-limited error statuses are returned untouched; callers decide
    whether to raise_for_status().
    """
    policy = policy or RetryPolicy()

    def _send() -> requests.Response:
        resp = api.request(method, path, **kwargs)
        if not resp.ok:
            handle_http_error(resp, context)
        return resp

    return policy.call(_send, is_rate_limited, context=context)
