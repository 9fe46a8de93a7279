"""
Harvester for virtualized, scroll-populated listings.

The portal only renders the rows near the viewport and appends more as the
results container scrolls. Completeness cannot be proven from the outside, so
the loop keeps scrolling until it reaches the target count, hits the loop
ceiling, or sees no growth for `stagnation_limit` iterations in a row.

The loop only talks to a RenderSurface, so it runs unchanged against a fake
surface in tests.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ftportal.config import HarvestSettings
from ftportal.core.domain_models import ItemReference
from ftportal.core.utils import canonicalize_url, clean_text
from ftportal.ingest.browser import RenderSurface

logger = logging.getLogger(__name__)


def link_to_item(link: Dict[str, Optional[str]], base_url: str) -> Optional[ItemReference]:
    """
    Turn a raw {href, text, title} link into an ItemReference.

    Links without an href are skipped. The label falls back from visible text
    to the title attribute, then to the url itself.
    """
    raw = (link.get("href") or "").strip()
    if not raw:
        return None
    url = canonicalize_url(raw, base_url)
    label = clean_text(link.get("text") or "") or clean_text(link.get("title") or "") or url
    return ItemReference(title=label, url=url)


def collect_links(surface: RenderSurface, selector: str, base_url: str) -> List[ItemReference]:
    """One pass over the currently rendered links, de-duplicated by url."""
    items: List[ItemReference] = []
    seen = set()
    for link in surface.query_links(selector):
        item = link_to_item(link, base_url)
        if item is None or item.url in seen:
            continue
        seen.add(item.url)
        items.append(item)
    return items


@dataclass
class HarvestResult:
    items: List[ItemReference] = field(default_factory=list)
    loops: int = 0
    stop_reason: str = ""


class ListHarvester:
    """
    Collect every reachable item from a virtualized list.

    Usage:
        harvester = ListHarvester(surface, HarvestSettings())
        result = harvester.harvest('a[href*="/topic-details/"]', page_url)
    """

    def __init__(self, surface: RenderSurface, settings: HarvestSettings):
        self.surface = surface
        self.settings = settings

    def harvest(self, selector: str, base_url: str) -> HarvestResult:
        s = self.settings
        items: List[ItemReference] = []
        seen = set()

        def collect_once() -> int:
            added = 0
            for item in collect_links(self.surface, selector, base_url):
                if item.url in seen:
                    continue
                seen.add(item.url)
                items.append(item)
                added += 1
            return added

        collect_once()
        containers = self.surface.find_scroll_containers()
        logger.debug(f"Scroll containers: {containers}")

        loops = 0
        stagnation = 0
        reason = "loop ceiling"

        while loops < s.max_loops:
            if s.target_count is not None and len(items) >= s.target_count:
                reason = "target reached"
                break

            self.surface.scroll_to_end(containers)
            self.surface.wheel(s.wheel_delta)
            self.surface.pause(s.settle_ms)
            loops += 1

            if collect_once():
                stagnation = 0
                continue

            # No growth: nudge virtualization before counting it as stagnant
            self.surface.nudge(containers)
            self.surface.pause(s.settle_ms)
            if collect_once():
                stagnation = 0
                continue

            stagnation += 1
            if stagnation >= s.stagnation_limit:
                reason = "stagnation"
                break

        logger.debug(f"Harvest stopped ({reason}) after {loops} loops with {len(items)} items")
        return HarvestResult(items=items, loops=loops, stop_reason=reason)
