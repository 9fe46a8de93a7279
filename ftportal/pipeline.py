"""
End-to-end run over all configured listing sources.

Per source:
1. Crawl the listing into ItemReferences and write the list outputs
2. Pick the items to enrich (all of them, or in incremental mode the new
   ones plus known ones missing from the prior export), capped per source
3. Enrich them with bounded concurrency, one browser per worker thread
4. Merge with the prior export and write the enriched outputs
5. Mark every harvested url as seen and persist the state

A source whose first listing page cannot be loaded, or that fails in any
other unexpected way, is reported as failed; the other sources still run.
State corruption aborts the run before anything is crawled.
"""

import logging
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable, ContextManager, List, Optional

from ftportal.config import ListingSource, PipelineConfig
from ftportal.core.concurrency import run_bounded
from ftportal.core.domain_models import EnrichmentResult, FundingRecord, ItemReference, TenderRecord
from ftportal.core.retry import navigation_policy, structured_fetch_policy
from ftportal.core.time_utils import RunContext
from ftportal.enhance.enricher import DetailEnricher, degraded_result
from ftportal.errors import SourceUnavailableError
from ftportal.export.writers import OutputWriter
from ftportal.ingest.browser import PlaywrightSurface, RenderSurface, SurfacePool
from ftportal.ingest.crawler import CrawlOrchestrator
from ftportal.ingest.topic_details import TopicDetailsClient
from ftportal.storage.export_store import keys_of, load_prior_rows, merge_rows
from ftportal.storage.seen_store import SeenStore

logger = logging.getLogger(__name__)


RECORD_TYPES = {
    "funding": FundingRecord,
    "tenders": TenderRecord,
}

# One rendered detail page per source, saved under debug/ with DEBUG=1
SAMPLE_NAMES = {
    "funding": "funding-sample.html",
    "tenders": "tender-sample.html",
}


@dataclass
class SourceReport:
    name: str
    listed: int = 0
    new: int = 0
    enriched: int = 0
    degraded: int = 0
    rows: int = 0
    stop_reason: str = ""
    error: str = ""


@dataclass
class RunReport:
    run_ts: str
    sources: List[SourceReport] = field(default_factory=list)

    @property
    def failed_sources(self) -> List[str]:
        return [s.name for s in self.sources if s.error]

    @property
    def ok(self) -> bool:
        return not self.failed_sources


def select_for_enrichment(
    items: List[ItemReference],
    store: SeenStore,
    prior_keys: set,
    incremental: bool,
    cap: int,
) -> List[ItemReference]:
    """
    Items to enrich this run, in listing order.

    Full mode takes every item. Incremental mode takes items never seen
    before, plus seen items that have no row in the prior export yet. The
    result is truncated to `cap`.
    """
    if incremental:
        chosen = [it for it in items if store.is_new(it.url) or it.url not in prior_keys]
    else:
        chosen = list(items)
    return chosen[:max(0, cap)]


class Pipeline:
    """
    Runs crawl, enrichment and export for every configured source.

    The browser and structured client are created through factories so tests
    can swap in fakes.

    Args:
        config: Pipeline configuration
        run: Run clock (defaults to now)
        crawl_surface: Factory of a context manager yielding the listing surface
        surface_pool: Per-thread surfaces for detail pages
        topic_client_factory: Builds the structured client for a source
    """

    def __init__(
        self,
        config: PipelineConfig,
        run: Optional[RunContext] = None,
        crawl_surface: Optional[Callable[[], ContextManager[RenderSurface]]] = None,
        surface_pool: Optional[SurfacePool] = None,
        topic_client_factory: Optional[Callable[[ListingSource], Optional[TopicDetailsClient]]] = None,
    ):
        self.config = config
        self.run = run or RunContext.start()
        self.debug_dir = config.output_dir / "debug" if config.debug else None
        crawl_browser = config.browser
        if self.debug_dir:
            crawl_browser = replace(crawl_browser, trace_path=self.debug_dir / "trace.zip")
        self.crawl_surface = crawl_surface or partial(PlaywrightSurface.open, crawl_browser)
        self.surface_pool = surface_pool or SurfacePool(config.browser)
        self.topic_client_factory = topic_client_factory or self._default_topic_client
        self.nav_policy = navigation_policy(config.navigation_attempts)
        self.writer = OutputWriter(config.output_dir, self.run.run_ts)

    def _default_topic_client(self, source: ListingSource) -> Optional[TopicDetailsClient]:
        if not source.detail_endpoint:
            return None
        return TopicDetailsClient(
            source.detail_endpoint,
            lang=source.lang,
            timeout=self.config.fetch_timeout_s,
            policy=structured_fetch_policy(self.config.fetch_attempts),
        )

    def execute(self) -> RunReport:
        """
        Run every source.

        Raises:
            StateCorruptionError: if the state file cannot be read
        """
        cfg = self.config
        store = SeenStore.load(cfg.state_file)
        report = RunReport(run_ts=self.run.run_ts)

        logger.info("=" * 70)
        logger.info(f"FUNDING & TENDERS PIPELINE ({'incremental' if cfg.incremental else 'full'} mode)")
        logger.info("=" * 70)

        with self.crawl_surface() as surface:
            for source in cfg.sources:
                logger.info(f"=== {source.name.upper()} ===")
                try:
                    report.sources.append(self.run_source(source, surface, store))
                except SourceUnavailableError as e:
                    logger.error(f"Source {source.name} unavailable: {e}")
                    self._write_empty(source)
                    report.sources.append(SourceReport(name=source.name, error=str(e)))
                except Exception as e:
                    logger.error(f"Source {source.name} failed: {type(e).__name__}: {e}", exc_info=True)
                    self._write_empty(source, replace_list=False)
                    report.sources.append(SourceReport(name=source.name, error=f"{type(e).__name__}: {e}"))

        self.writer.write_index(
            {s.name: {"list": s.listed, "enriched": s.rows} for s in report.sources},
            {s.name: s.human_title for s in cfg.sources if s.human_title},
        )
        self.log_sanity(report)
        return report

    def run_source(self, source: ListingSource, surface: RenderSurface, store: SeenStore) -> SourceReport:
        cfg = self.config
        record_type = RECORD_TYPES[source.kind]
        key = record_type.key_column()
        rep = SourceReport(name=source.name)

        crawler = CrawlOrchestrator(
            surface,
            source,
            cfg.harvest,
            cfg.container_harvest,
            self.nav_policy,
            debug_dir=self.debug_dir,
        )
        crawl = crawler.crawl()
        items = crawl.items
        rep.listed = len(items)
        rep.stop_reason = crawl.stop_reason
        rep.new = sum(1 for it in items if store.is_new(it.url))
        logger.info(
            f"[{source.name}] {len(items)} items over {crawl.pages} page(s) "
            f"({crawl.from_containers} via containers, {rep.new} new), stopped: {crawl.stop_reason}"
        )
        self.writer.write_list(source.name, items, source.human_title)

        csv_name = OutputWriter.enriched_names(source.name)["csv"]
        prior = load_prior_rows(self.writer.path(csv_name), record_type.header()) if cfg.incremental else []

        to_enrich = select_for_enrichment(items, store, keys_of(prior, key), cfg.incremental, source.enrich_cap)
        logger.info(f"[{source.name}] enriching {len(to_enrich)} item(s)")

        results = self.enrich(source, to_enrich)
        rep.enriched = len(results)
        rep.degraded = sum(1 for r in results if r.raw.get("degraded"))

        updated = [r.record.to_row() for r in results]
        final = merge_rows(prior, updated, key) if cfg.incremental else updated
        rep.rows = len(final)

        self.writer.write_enriched(source.name, record_type.header(), final)
        self.writer.write_raw(source.name, [r.raw for r in results])

        store.mark_seen([it.url for it in items], self.run.run_ts)
        store.save()
        return rep

    def enrich(self, source: ListingSource, items: List[ItemReference]) -> List[EnrichmentResult]:
        """Enrich items concurrently; failed slots become degraded records."""
        if not items:
            return []

        enricher = DetailEnricher(
            source,
            self.run,
            self.config.scoring,
            surface_provider=self.surface_pool.current,
            nav_policy=self.nav_policy,
            topic_client=self.topic_client_factory(source),
            sample_path=self.debug_dir / SAMPLE_NAMES[source.kind] if self.debug_dir else None,
        )
        tasks = [partial(enricher.enrich, it) for it in items]
        results = run_bounded(
            tasks,
            source.concurrency,
            worker_scope=self.surface_pool.worker_scope,
            desc=f"Enriching {source.name}",
        )

        out = []
        for item, result in zip(items, results):
            if result is None:
                result = degraded_result(source, item, self.run, self.config.scoring, "enrichment task failed")
            out.append(result)
        return out

    def _write_empty(self, source: ListingSource, replace_list: bool = True) -> None:
        """Header-only outputs for a source that could not be crawled."""
        list_path = self.writer.path(OutputWriter.list_names(source.name)["csv"])
        if replace_list or not list_path.exists():
            self.writer.write_list(source.name, [], source.human_title)
        csv_path = self.writer.path(OutputWriter.enriched_names(source.name)["csv"])
        if not csv_path.exists():
            self.writer.write_enriched(source.name, RECORD_TYPES[source.kind].header(), [])

    def log_sanity(self, report: RunReport) -> None:
        for rep in report.sources:
            list_lines = self.writer.count_lines(OutputWriter.list_names(rep.name)["csv"])
            enriched_lines = self.writer.count_lines(OutputWriter.enriched_names(rep.name)["csv"])
            logger.info(f"[SANITY] {rep.name}-list.csv lines={list_lines}")
            logger.info(f"[SANITY] {rep.name}_enriched.csv lines={enriched_lines}")
            if list_lines <= 1:
                logger.warning(
                    f"[WHY] {rep.name} list empty: check pagination/scroll/selector "
                    f"(set DEBUG=1 to dump the first listing page)"
                )
            elif enriched_lines <= 1:
                logger.warning(f"[WHY] {rep.name} enrichment empty: check detail fetch and label extraction")
            if rep.degraded:
                logger.warning(f"[SANITY] {rep.name}: {rep.degraded} degraded record(s)")

