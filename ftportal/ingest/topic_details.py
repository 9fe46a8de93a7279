"""
Client for the portal's structured topic endpoint.

    GET {endpoint}/{slug}.json?lang={code}  ->  {"TopicDetails": {...}}

Transient failures (network, timeout, 5xx, 429) are retried with the shared
retry policy; 429 backs off longer. If the slug as given keeps failing, the
lower-cased slug is tried once (older topics are only served that way). When
both give up the caller gets an empty dict, never an exception.
"""

import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote, urlencode, urlparse

import requests

from ftportal.core.retry import RetryPolicy, structured_fetch_policy
from ftportal.errors import FetchError, PermanentFetchError, TransientFetchError

logger = logging.getLogger(__name__)


DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-GB,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
}

_SLUG = re.compile(r"/topic-details/([^/?#]+)", re.IGNORECASE)


def extract_topic_slug(url: str) -> str:
    """
    Pull the topic identifier out of a topic-details url.

    Examples:
        >>> extract_topic_slug("https://ec.europa.eu/.../topic-details/HORIZON-CL4-2025-01")
        'HORIZON-CL4-2025-01'
    """
    m = _SLUG.search(str(url or ""))
    return m.group(1) if m else ""


class TopicDetailsClient:
    """Fetch structured topic records with retries and light rate limiting."""

    def __init__(
        self,
        endpoint: str,
        lang: str = "en",
        timeout: float = 20.0,
        policy: Optional[RetryPolicy] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
        min_interval: float = 0.25,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.lang = lang
        self.timeout = timeout
        self.policy = policy or structured_fetch_policy()
        self.session_factory = session_factory
        self.min_interval = min_interval

        self._local = threading.local()
        self._rate_lock = threading.Lock()
        self.last_request_time: Dict[str, float] = {}  # Domain-based rate limiting

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            session.headers.update(DEFAULT_HEADERS)
            self._local.session = session
        return session

    def url_for(self, slug: str) -> str:
        return f"{self.endpoint}/{quote(slug, safe='')}.json?{urlencode({'lang': self.lang})}"

    def get_json(self, url: str) -> Dict[str, Any]:
        """
        Single GET attempt.

        Raises:
            TransientFetchError: network error, timeout, 5xx or 429
            PermanentFetchError: any other non-2xx status or a non-JSON body
        """
        self._rate_limit(url)

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransientFetchError(f"{type(e).__name__}: {e}") from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientFetchError(f"HTTP {status} {url}", status=status)
        if not response.ok:
            raise PermanentFetchError(f"HTTP {status} {url}", status=status)

        try:
            return response.json()
        except ValueError as e:
            raise PermanentFetchError(f"Invalid JSON from {url}", status=status) from e

    def fetch_payload(self, slug: str) -> Dict[str, Any]:
        """Full JSON payload for a slug, or {} once every variant is exhausted."""
        if not slug:
            return {}

        variants = [slug]
        if slug.lower() != slug:
            variants.append(slug.lower())

        for variant in variants:
            try:
                payload = self.policy.call(self.get_json, self.url_for(variant))
                return payload if isinstance(payload, dict) else {}
            except FetchError as e:
                logger.warning(f"Structured fetch failed for {variant}: {e}")

        return {}

    def fetch_topic(self, slug: str) -> Dict[str, Any]:
        """The nested TopicDetails object for a slug ({} when unavailable)."""
        details = self.fetch_payload(slug).get("TopicDetails")
        return details if isinstance(details, dict) else {}

    def _rate_limit(self, url: str):
        """Apply a minimum interval between requests per domain."""
        if self.min_interval <= 0:
            return
        domain = urlparse(url).netloc

        with self._rate_lock:
            now = time.monotonic()
            last = self.last_request_time.get(domain)
            wait = 0.0
            if last is not None:
                wait = max(0.0, self.min_interval - (now - last))
            self.last_request_time[domain] = now + wait

        if wait:
            time.sleep(wait)
