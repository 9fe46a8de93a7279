"""
Crawl orchestration for one listing source.

Walks the listing page by page:
1. Navigate to the page (with retries)
2. Wait for the first item link; none means the listing is exhausted
3. Harvest the virtualized list
4. Optionally expand "container" links (calls that wrap several topics)
5. Merge into the running set, de-duplicated by canonical url

Pagination stops on an empty page, at max_pages, or after
`empty_page_streak` consecutive pages that added nothing new.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ftportal.config import HarvestSettings, ListingSource
from ftportal.core.domain_models import ItemReference
from ftportal.core.retry import RetryPolicy
from ftportal.core.utils import build_page_url
from ftportal.errors import SourceUnavailableError
from ftportal.ingest.browser import RenderSurface, navigate
from ftportal.ingest.harvester import ListHarvester, collect_links

logger = logging.getLogger(__name__)


@dataclass
class CrawlResult:
    source: str
    items: List[ItemReference] = field(default_factory=list)
    pages: int = 0
    from_containers: int = 0
    failed_pages: List[int] = field(default_factory=list)
    stop_reason: str = ""


def merge_items(running: List[ItemReference], seen: set, new_items: List[ItemReference]) -> int:
    """Append items whose url is not yet in `seen`; return how many were added."""
    added = 0
    for item in new_items:
        if item.url in seen:
            continue
        seen.add(item.url)
        running.append(item)
        added += 1
    return added


class CrawlOrchestrator:
    """
    Paginate one listing source and collect its item references.

    Usage:
        crawler = CrawlOrchestrator(surface, source, harvest, container_harvest, nav_policy)
        result = crawler.crawl()
    """

    def __init__(
        self,
        surface: RenderSurface,
        source: ListingSource,
        harvest: HarvestSettings,
        container_harvest: HarvestSettings,
        nav_policy: RetryPolicy,
        debug_dir: Optional[Path] = None,
    ):
        self.surface = surface
        self.source = source
        self.harvest = harvest
        self.container_harvest = container_harvest
        self.nav_policy = nav_policy
        self.debug_dir = debug_dir

    def crawl(self) -> CrawlResult:
        src = self.source
        result = CrawlResult(source=src.name)
        seen: set = set()
        no_new_streak = 0
        result.stop_reason = "max pages"

        for page_number in range(1, src.max_pages + 1):
            url = build_page_url(src.base_url, src.params, page_number)
            logger.info(f"[{src.name}] page {page_number}: {url}")

            # Navigation or DOM failures skip the page; only page 1 is fatal
            try:
                navigate(self.surface, url, self.nav_policy)
                result.pages = page_number
                if self.debug_dir and page_number == 1:
                    self._dump_page(f"{src.name}-list-page1.html")
                page_items, expanded = self._read_page(url)
            except Exception as e:
                if page_number == 1:
                    raise SourceUnavailableError(src.name, f"first listing page failed: {e}") from e
                logger.error(f"[{src.name}] page {page_number} failed: {type(e).__name__}: {e}")
                result.failed_pages.append(page_number)
                no_new_streak += 1
                if no_new_streak >= src.empty_page_streak:
                    result.stop_reason = "no new items"
                    break
                continue

            if page_items is None:
                logger.info(f"[{src.name}] no results on page {page_number}, stopping")
                result.stop_reason = "empty page"
                break

            if not page_items:
                logger.info(f"[{src.name}] page {page_number} is empty, stopping")
                result.stop_reason = "empty page"
                break

            added = merge_items(result.items, seen, page_items)
            result.from_containers += len(expanded)
            logger.info(
                f"[{src.name}] {len(page_items)} found (via containers: {len(expanded)}), "
                f"{added} new (total: {len(result.items)})"
            )

            if added == 0:
                no_new_streak += 1
                if no_new_streak >= src.empty_page_streak:
                    logger.info(f"[{src.name}] {no_new_streak} page(s) without new items, stopping")
                    result.stop_reason = "no new items"
                    break
            else:
                no_new_streak = 0

        return result

    def _read_page(self, url: str) -> Tuple[Optional[List[ItemReference]], List[ItemReference]]:
        """
        Harvest the listing page the surface is on.

        Returns (all page items, items found via containers); all page items
        is None when no item link ever appeared.
        """
        src = self.source
        if not self.surface.wait_for(src.link_selector, src.first_item_timeout_ms):
            return None, []
        harvested = ListHarvester(self.surface, self.harvest).harvest(src.link_selector, url).items
        expanded = self._expand_containers(url) if src.container_selectors else []
        return harvested + expanded, expanded

    def _expand_containers(self, page_url: str) -> List[ItemReference]:
        """Visit every container link on the current listing page once."""
        containers: List[ItemReference] = []
        seen_containers = set()
        for selector in self.source.container_selectors:
            for link in collect_links(self.surface, selector, page_url):
                if link.url in seen_containers:
                    continue
                seen_containers.add(link.url)
                containers.append(link)

        items: List[ItemReference] = []
        for container in containers:
            try:
                navigate(self.surface, container.url, self.nav_policy)
                harvester = ListHarvester(self.surface, self.container_harvest)
                inner = harvester.harvest(self.source.link_selector, container.url).items
                logger.debug(f"[{self.source.name}] container {container.url}: {len(inner)} items")
                items.extend(inner)
            except Exception as e:
                logger.warning(f"[{self.source.name}] container failed {container.url}: {type(e).__name__}: {e}")
        return items

    def _dump_page(self, filename: str) -> None:
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        path = self.debug_dir / filename
        path.write_text(self.surface.content(), encoding="utf-8")
        logger.debug(f"Saved debug dump: {path}")
