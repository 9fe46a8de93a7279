"""
Render surface: the browser capabilities the pipeline relies on.

Harvesting and detail scraping only need a handful of operations (navigate,
read the DOM, list matching links, scroll). They are expressed as the
RenderSurface protocol so the control loops can be exercised against an
in-memory fake; PlaywrightSurface is the real implementation.

Playwright's sync API is bound to the thread that started it. The main
thread owns one surface for crawling; enrichment workers each get their own
through SurfacePool.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

from playwright.sync_api import (
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError,
    sync_playwright,
)

from ftportal.config import BrowserSettings
from ftportal.core.retry import RetryPolicy
from ftportal.errors import NavigationError

logger = logging.getLogger(__name__)


# Hide the most obvious automation markers
_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'language', { get: () => 'en-US' });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

_LINKS_JS = """
els => els.map(a => ({
    href: a.getAttribute('href'),
    text: (a.innerText || a.textContent || ''),
    title: a.getAttribute('title')
}))
"""

# Tag every scrollable candidate with a stable attribute and return selectors
_FIND_CONTAINERS_JS = """
() => {
    const candidates = Array.from(document.querySelectorAll(
        'main, [role="main"], [data-ft-results], [data-results-container], [class*="scroll"], body, html'));
    const scrollables = candidates.filter(el => {
        const sh = el.scrollHeight, ch = el.clientHeight;
        const overY = window.getComputedStyle(el).overflowY;
        return (sh && ch && sh > ch + 50) || overY === 'auto' || overY === 'scroll';
    });
    const chosen = scrollables.length ? scrollables : [document.scrollingElement || document.body];
    return chosen.map((el, i) => {
        el.setAttribute('data-ftp-scroll', String(i));
        return `[data-ftp-scroll="${i}"]`;
    });
}
"""

_SCROLL_TO_END_JS = "el => { el.scrollTop = el.scrollHeight; }"
_SCROLL_BY_JS = "(el, dy) => { el.scrollTop = Math.max(0, el.scrollTop + dy); }"


class RenderSurface(Protocol):
    """Capabilities the harvester, crawler and detail scraper consume."""

    def goto(self, url: str) -> None: ...

    def content(self) -> str: ...

    def title(self) -> str: ...

    def wait_for(self, selector: str, timeout_ms: int) -> bool: ...

    def query_links(self, selector: str) -> List[Dict[str, Optional[str]]]: ...

    def find_scroll_containers(self) -> List[str]: ...

    def scroll_to_end(self, containers: List[str]) -> None: ...

    def wheel(self, delta_y: int) -> None: ...

    def nudge(self, containers: List[str]) -> None: ...

    def pause(self, ms: int) -> None: ...


class PlaywrightSurface:
    """
    RenderSurface backed by a headless Chromium page.

    Usage:
        with PlaywrightSurface.open(settings) as surface:
            surface.goto(url)
            links = surface.query_links('a[href*="/topic-details/"]')
    """

    def __init__(self, playwright, browser, context, page, settings: BrowserSettings):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self.settings = settings

    @classmethod
    @contextmanager
    def open(cls, settings: BrowserSettings) -> Iterator["PlaywrightSurface"]:
        surface = cls.launch(settings)
        try:
            yield surface
        finally:
            surface.close()

    @classmethod
    def launch(cls, settings: BrowserSettings) -> "PlaywrightSurface":
        pw = sync_playwright().start()
        try:
            browser = pw.chromium.launch(
                headless=settings.headless,
                args=["--disable-blink-features=AutomationControlled"],
            )
            context = browser.new_context(
                user_agent=settings.user_agent,
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
            )
            context.add_init_script(script=_INIT_SCRIPT)
            if settings.trace_path:
                context.tracing.start(screenshots=True, snapshots=True)
            page = context.new_page()
        except PlaywrightError:
            pw.stop()
            raise
        logger.debug(f"Browser launched on thread {threading.current_thread().name}")
        return cls(pw, browser, context, page, settings)

    def close(self) -> None:
        try:
            if self.settings.trace_path:
                self.settings.trace_path.parent.mkdir(parents=True, exist_ok=True)
                self._context.tracing.stop(path=str(self.settings.trace_path))
                logger.info(f"Saved Playwright trace: {self.settings.trace_path}")
            self._context.close()
            self._browser.close()
        except PlaywrightError as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            self._playwright.stop()

    # ------------------------------------------------------------------
    # Navigation and DOM access
    # ------------------------------------------------------------------

    def goto(self, url: str) -> None:
        try:
            self.page.goto(url, wait_until="domcontentloaded", timeout=self.settings.navigation_timeout_ms)
        except PlaywrightError as e:
            raise NavigationError(f"{url}: {e}") from e
        try:
            self.page.wait_for_load_state("networkidle", timeout=self.settings.idle_timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug(f"Network not idle after {self.settings.idle_timeout_ms}ms: {url}")

    def content(self) -> str:
        return self.page.content()

    def title(self) -> str:
        try:
            return self.page.title()
        except PlaywrightError:
            return ""

    def wait_for(self, selector: str, timeout_ms: int) -> bool:
        try:
            self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    def query_links(self, selector: str) -> List[Dict[str, Optional[str]]]:
        return self.page.eval_on_selector_all(selector, _LINKS_JS)

    # ------------------------------------------------------------------
    # Scrolling
    # ------------------------------------------------------------------

    def find_scroll_containers(self) -> List[str]:
        return self.page.evaluate(_FIND_CONTAINERS_JS)

    def scroll_to_end(self, containers: List[str]) -> None:
        for sel in containers:
            try:
                self.page.locator(sel).first.evaluate(_SCROLL_TO_END_JS)
            except PlaywrightError as e:
                logger.debug(f"Scroll failed for {sel}: {e}")

    def wheel(self, delta_y: int) -> None:
        self.page.mouse.wheel(0, delta_y)

    def nudge(self, containers: List[str]) -> None:
        for sel in containers:
            try:
                loc = self.page.locator(sel).first
                loc.evaluate(_SCROLL_BY_JS, -600)
                self.page.wait_for_timeout(250)
                loc.evaluate(_SCROLL_BY_JS, 1600)
            except PlaywrightError as e:
                logger.debug(f"Nudge failed for {sel}: {e}")

    def pause(self, ms: int) -> None:
        self.page.wait_for_timeout(ms)


class SurfacePool:
    """
    One lazily launched PlaywrightSurface per worker thread.

    Pass `pool.worker_scope` to run_bounded so each worker closes its own
    browser on exit; inside a task, `pool.current()` returns the caller's
    surface.
    """

    def __init__(self, settings: BrowserSettings):
        self.settings = settings
        self._local = threading.local()

    def current(self) -> PlaywrightSurface:
        surface = getattr(self._local, "surface", None)
        if surface is None:
            surface = PlaywrightSurface.launch(self.settings)
            self._local.surface = surface
        return surface

    @contextmanager
    def worker_scope(self) -> Iterator[None]:
        try:
            yield
        finally:
            surface = getattr(self._local, "surface", None)
            if surface is not None:
                self._local.surface = None
                surface.close()


def navigate(surface: RenderSurface, url: str, policy: RetryPolicy) -> None:
    """Navigate with retries; raises NavigationError once attempts run out."""
    policy.call(surface.goto, url)
