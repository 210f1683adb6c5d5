import base64
import logging
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


LOG = logging.getLogger("JiraCloud.http")
_SESSION_LOCK = threading.Lock()

RATE_LIMITED_STATUS = 429


def _build_retry(total: int = 5, backoff: float = 0.5) -> Retry:
    # 429 must reach RetryPolicy: not in the forcelist, and Retry-After ignored.
    return Retry(
        total=total,
        backoff_factor=backoff,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=("GET", "POST", "PUT", "PATCH", "DELETE"),
        respect_retry_after_header=False,
        raise_on_status=False,
    )


def _configure_session(session: requests.Session, *, pool_size: int = 20, max_retries: int = 5, backoff: float = 0.5) -> requests.Session:
    adapter = HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=_build_retry(total=max_retries, backoff=backoff),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


@lru_cache(maxsize=1)
def get_session() -> requests.Session:
    from utils import common

    with _SESSION_LOCK:
        pool_size = getattr(common, "HTTP_POOL_SIZE", 20)
        max_retries = getattr(common, "HTTP_MAX_RETRIES", 5)
        backoff = getattr(common, "HTTP_BACKOFF_FACTOR", 0.5)

        LOG.debug("Creating shared HTTP session (pool=%d, retries=%d).", pool_size, max_retries)
        session = requests.Session()
        return _configure_session(session, pool_size=pool_size, max_retries=max_retries, backoff=backoff)


@dataclass(frozen=True)
class ApiSession:
    """Base URL plus authorization header for one remote API.

    Built once and handed to every operation; nothing here is process-wide.
    """

    base_url: str
    auth_header: str
    timeout: float = 30.0

    @classmethod
    def basic(cls, base_url: str, email: str, api_token: str, timeout: float = 30.0) -> "ApiSession":
        token = base64.b64encode(f"{email}:{api_token}".encode("utf-8")).decode("ascii")
        return cls(base_url.rstrip("/"), f"Basic {token}", timeout)

    @classmethod
    def bearer(cls, base_url: str, token: str, timeout: float = 30.0) -> "ApiSession":
        return cls(base_url.rstrip("/"), f"Bearer {token}", timeout)

    @classmethod
    def genie_key(cls, base_url: str, api_key: str, timeout: float = 30.0) -> "ApiSession":
        return cls(base_url.rstrip("/"), f"GenieKey {api_key}", timeout)

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": self.auth_header,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        headers = self.headers(kwargs.pop("headers", None))
        return get_session().request(method, self.url(path), headers=headers, **kwargs)

    def __repr__(self) -> str:
        scheme = self.auth_header.split(" ", 1)[0]
        return f"ApiSession(base_url={self.base_url!r}, auth={scheme} ***)"


def is_rate_limited(resp: requests.Response) -> bool:
    return getattr(resp, "status_code", None) == RATE_LIMITED_STATUS


def handle_http_error(resp: requests.Response, context: str = "") -> bool:
    """
    Log friendly HTTP error messages.
    Returns True if the caller should retry the request (rate limit), False otherwise.
    """
    code = getattr(resp, "status_code", None)
    reason = getattr(resp, "reason", "")
    url = getattr(resp, "url", "")
    prefix = f"{context}: " if context else ""
    message = f"{prefix}HTTP {code} - {reason} ({url})"

    if code == RATE_LIMITED_STATUS:
        LOG.warning("%s -> Rate limited.", message)
        return True
    elif code == 401:
        LOG.warning("%s -> Unauthorized (check API token)", message)
    elif code == 403:
        LOG.warning("%s -> Forbidden (insufficient privileges)", message)
    elif code == 404:
        LOG.info("%s -> Not found", message)
    elif code == 400:
        LOG.warning("%s -> Bad request (verify JQL syntax or payload)", message)
    else:
        LOG.warning("%s -> %s", message, (getattr(resp, "text", "") or "")[:200])

    return False


def reset_session() -> None:
    """Drop the cached shared session; the next get_session() rereads utils.common."""
    with _SESSION_LOCK:
        get_session.cache_clear()
