"""Shared fakes and fixtures for the ftportal tests."""

import re
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

import pytest

from ftportal.config import HarvestSettings, ListingSource, ScoringSettings
from ftportal.core.retry import navigation_policy
from ftportal.core.time_utils import RunContext
from ftportal.errors import NavigationError

_HREF_PART = re.compile(r'href\*="([^"]+)"')


def link(href: str, text: str = "", title: str = "") -> Dict[str, Optional[str]]:
    return {"href": href, "text": text, "title": title}


class FakeSurface:
    """
    In-memory RenderSurface.

    `pages` maps a url to the links it renders; only `step` links are visible
    after navigation and every scroll_to_end reveals `step` more, like the
    virtualized portal list. `html` maps a url to the page source returned by
    content(). Navigating to a url in `fail_urls` raises NavigationError.
    """

    def __init__(self, pages=None, html=None, titles=None, step: int = 5, fail_urls=()):
        self.pages: Dict[str, List[dict]] = pages or {}
        self.html: Dict[str, str] = html or {}
        self.titles: Dict[str, str] = titles or {}
        self.step = step
        self.fail_urls = set(fail_urls)
        self.current_url: Optional[str] = None
        self.revealed = 0
        self.visits: List[str] = []
        self.scrolls = 0
        self.nudges = 0

    def goto(self, url: str) -> None:
        self.visits.append(url)
        if url in self.fail_urls:
            raise NavigationError(f"cannot load {url}")
        self.current_url = url
        self.revealed = self.step

    def content(self) -> str:
        return self.html.get(self.current_url, "<html><body></body></html>")

    def title(self) -> str:
        return self.titles.get(self.current_url, "")

    def _matching(self, selector: str) -> List[dict]:
        links = self.pages.get(self.current_url, [])
        m = _HREF_PART.search(selector)
        if not m:
            return list(links)
        return [lk for lk in links if m.group(1) in (lk.get("href") or "")]

    def wait_for(self, selector: str, timeout_ms: int) -> bool:
        return bool(self._matching(selector))

    def query_links(self, selector: str) -> List[dict]:
        return self._matching(selector)[:self.revealed]

    def find_scroll_containers(self) -> List[str]:
        return ['[data-ftp-scroll="0"]']

    def scroll_to_end(self, containers: List[str]) -> None:
        self.scrolls += 1
        self.revealed += self.step

    def wheel(self, delta_y: int) -> None:
        pass

    def nudge(self, containers: List[str]) -> None:
        self.nudges += 1

    def pause(self, ms: int) -> None:
        pass


class FakeSurfacePool:
    """Stands in for SurfacePool; every thread shares one FakeSurface."""

    def __init__(self, surface: FakeSurface):
        self.surface = surface
        self.scopes_entered = 0
        self._lock = threading.Lock()

    def current(self) -> FakeSurface:
        return self.surface

    @contextmanager
    def worker_scope(self):
        with self._lock:
            self.scopes_entered += 1
        yield


class FakeTopicClient:
    """Structured client returning canned payloads keyed by slug."""

    def __init__(self, payloads=None, error: Optional[Exception] = None):
        self.payloads = payloads or {}
        self.error = error
        self.calls: List[str] = []

    def fetch_payload(self, slug: str) -> dict:
        self.calls.append(slug)
        if self.error is not None:
            raise self.error
        return self.payloads.get(slug, {})


@pytest.fixture
def run_ctx() -> RunContext:
    return RunContext.fixed("2025-03-01T09:30:00+00:00")


@pytest.fixture
def fast_harvest() -> HarvestSettings:
    return HarvestSettings(settle_ms=0, stagnation_limit=3, max_loops=50, target_count=None, wheel_delta=100)


@pytest.fixture
def no_sleep_nav():
    return navigation_policy(attempts=2, sleep=lambda s: None)


@pytest.fixture
def scoring_settings() -> ScoringSettings:
    return ScoringSettings(keywords=("digital", "health", "climate", "energy"), keyword_cap=3)


@pytest.fixture
def funding_source() -> ListingSource:
    return ListingSource(
        name="funding",
        kind="funding",
        base_url="https://portal.test/calls",
        link_selector='a[href*="/topic-details/"]',
        params={},
        max_pages=10,
        detail_endpoint="https://portal.test/data/topicDetails",
        concurrency=1,
    )


@pytest.fixture
def tenders_source() -> ListingSource:
    return ListingSource(
        name="tenders",
        kind="tenders",
        base_url="https://portal.test/tenders",
        link_selector='a[href*="/tender-details/"]',
        params={},
        max_pages=10,
        concurrency=1,
    )


def page_url(base: str, n: int) -> str:
    return f"{base}?pageNumber={n}"


def topic_links(start: int, count: int, prefix: str = "/topic-details/T") -> List[dict]:
    return [link(f"https://portal.test{prefix}{i}?lang=en", f"Topic {i}") for i in range(start, start + count)]
