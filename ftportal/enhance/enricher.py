"""
Detail enrichment for one harvested item.

Two independent sub-fetches per item:
1. Structured endpoint (funding topics only) via TopicDetailsClient
2. Rendered detail page via the calling thread's browser surface

Each sub-fetch fails on its own: a failed structured fetch leaves the
rendered page to fill the record and vice versa. With both gone the item
still gets a degraded record (title and url from the listing, scores 0).
enrich() never raises.
"""

import logging
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ftportal.config import ListingSource, ScoringSettings
from ftportal.core.domain_models import EnrichmentResult, ItemReference
from ftportal.core.retry import RetryPolicy
from ftportal.core.time_utils import RunContext
from ftportal.ingest.browser import RenderSurface
from ftportal.ingest.detail_page import DetailPage, scrape_detail_page
from ftportal.ingest.topic_details import TopicDetailsClient, extract_topic_slug
from ftportal.normalize import normalizer_for

logger = logging.getLogger(__name__)


def degraded_result(source: ListingSource, item: ItemReference, run: RunContext,
                    settings: ScoringSettings, reason: str = "") -> EnrichmentResult:
    """Record built from the listing data alone."""
    record = normalizer_for(source.kind)(item, None, None, run, settings)
    raw = {"source": source.name, "url": item.url, "degraded": True}
    if reason:
        raw["errors"] = [reason]
    return EnrichmentResult(record=record, raw=raw)


class DetailEnricher:
    """
    Enrich ItemReferences of one source into flat records.

    Args:
        source: Listing source (decides record kind and structured endpoint)
        run: Run clock
        settings: Scoring settings
        surface_provider: Returns the browser surface for the calling thread
        nav_policy: Retry policy for detail-page navigation
        topic_client: Structured client; None disables the structured fetch
        settle_ms: Wait after navigation before reading the page
        sample_path: When set, the first rendered page is saved there
    """

    def __init__(
        self,
        source: ListingSource,
        run: RunContext,
        settings: ScoringSettings,
        surface_provider: Callable[[], RenderSurface],
        nav_policy: RetryPolicy,
        topic_client: Optional[TopicDetailsClient] = None,
        settle_ms: int = 600,
        sample_path: Optional[Path] = None,
    ):
        self.source = source
        self.run = run
        self.settings = settings
        self.surface_provider = surface_provider
        self.nav_policy = nav_policy
        self.topic_client = topic_client
        self.settle_ms = settle_ms
        self.sample_path = sample_path
        self._sample_lock = threading.Lock()
        self._sample_saved = False
        self.normalize = normalizer_for(source.kind)

    def fetch_structured(self, item: ItemReference) -> Dict[str, Any]:
        """Raw structured payload ({} when disabled or unavailable)."""
        if self.topic_client is None:
            return {}
        slug = extract_topic_slug(item.url)
        if not slug:
            logger.debug(f"No topic slug in {item.url}")
            return {}
        return self.topic_client.fetch_payload(slug)

    def fetch_rendered(self, item: ItemReference) -> DetailPage:
        surface = self.surface_provider()
        page = scrape_detail_page(surface, item.url, self.nav_policy, settle_ms=self.settle_ms)
        if self.sample_path is not None:
            self._save_sample(surface)
        return page

    def _save_sample(self, surface: RenderSurface) -> None:
        with self._sample_lock:
            if self._sample_saved:
                return
            self._sample_saved = True
        try:
            self.sample_path.parent.mkdir(parents=True, exist_ok=True)
            self.sample_path.write_text(surface.content(), encoding="utf-8")
            logger.debug(f"Saved debug sample: {self.sample_path}")
        except OSError as e:
            logger.warning(f"Could not save debug sample {self.sample_path}: {e}")

    def enrich(self, item: ItemReference) -> EnrichmentResult:
        errors = []

        try:
            payload = self.fetch_structured(item)
        except Exception as e:
            logger.warning(f"Structured fetch error for {item.url}: {e}")
            errors.append(f"structured: {e}")
            payload = {}

        page: Optional[DetailPage] = None
        try:
            page = self.fetch_rendered(item)
        except Exception as e:
            logger.warning(f"Rendered fetch failed for {item.url}: {e}")
            errors.append(f"rendered: {e}")

        details = payload.get("TopicDetails") if isinstance(payload, dict) else None
        structured = details if isinstance(details, dict) else {}

        degraded = not structured and page is None
        if degraded:
            logger.warning(f"No detail data for {item.url}, keeping listing fields only")

        record = self.normalize(item, structured, page, self.run, self.settings)

        raw: Dict[str, Any] = {
            "source": self.source.name,
            "url": item.url,
            "structured": payload,
            "page": _page_summary(page),
        }
        if degraded:
            raw["degraded"] = True
        if errors:
            raw["errors"] = errors
        return EnrichmentResult(record=record, raw=raw)


def _page_summary(page: Optional[DetailPage]) -> Optional[Dict[str, Any]]:
    if page is None:
        return None
    data = asdict(page)
    data["anchors"] = len(page.anchors)
    return data
