"""
Configuration for the funding & tenders pipeline.

Values come from the environment (optionally loaded from .env by the CLI)
and are frozen into dataclasses that are passed explicitly to every
component. Nothing below the CLI reads os.environ.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

# Portal endpoints
PORTAL_BASE = "https://ec.europa.eu/info/funding-tenders/opportunities"
FUNDING_LIST_URL = f"{PORTAL_BASE}/portal/screen/opportunities/calls-for-proposals"
TENDERS_LIST_URL = f"{PORTAL_BASE}/portal/screen/opportunities/calls-for-tenders"
TOPIC_DETAILS_URL = f"{PORTAL_BASE}/data/topicDetails"

# Open + Forthcoming
DEFAULT_LIST_PARAMS = {
    "order": "DESC",
    "sortBy": "startDate",
    "pageSize": 50,
    "isExactMatch": True,
    "status": "31094501,31094502",
}

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)

DEFAULT_FUNDING_KEYWORDS = (
    "artificial intelligence",
    "digital",
    "data",
    "cybersecurity",
    "innovation",
    "health",
    "climate",
    "energy",
)

# (minimum estimated value, score), highest threshold first
DEFAULT_VALUE_BANDS: Tuple[Tuple[int, int], ...] = ((1_000_000, 2), (250_000, 1))

QUICK_MAX_PAGES = 2
QUICK_MAX_ENRICH = 30


@dataclass(frozen=True)
class BrowserSettings:
    headless: bool = True
    user_agent: str = USER_AGENT
    viewport_width: int = 1366
    viewport_height: int = 900
    navigation_timeout_ms: int = 45_000
    idle_timeout_ms: int = 15_000
    # Playwright trace (screenshots + DOM snapshots) written here on close
    trace_path: Optional[Path] = None


@dataclass(frozen=True)
class HarvestSettings:
    """
    Tuning for the scroll/stagnation loop.

    Attributes:
        settle_ms: Wait after each scroll before re-reading the DOM
        stagnation_limit: Consecutive no-growth iterations before giving up
        max_loops: Hard ceiling on scroll iterations
        target_count: Stop as soon as this many items are collected (None = no target)
        wheel_delta: Mouse wheel distance used as a fallback scroll
    """
    settle_ms: int = 700
    stagnation_limit: int = 18
    max_loops: int = 400
    target_count: Optional[int] = 50
    wheel_delta: int = 99_999


# Call pages list a handful of topics; a short loop is enough
CONTAINER_HARVEST = HarvestSettings(settle_ms=300, stagnation_limit=3, max_loops=12,
                                    target_count=None, wheel_delta=5_000)


@dataclass(frozen=True)
class ListingSource:
    """
    One paginated listing (funding topics, tenders, ...).

    `kind` selects the record type and reconciliation rules. Sources without a
    `detail_endpoint` are enriched from the rendered page only.
    """
    name: str
    kind: str
    base_url: str
    link_selector: str
    params: Mapping[str, object] = field(default_factory=lambda: dict(DEFAULT_LIST_PARAMS))
    container_selectors: Tuple[str, ...] = ()
    max_pages: int = 2000
    empty_page_streak: int = 2
    first_item_timeout_ms: int = 30_000
    detail_endpoint: Optional[str] = None
    lang: str = "en"
    enrich_cap: int = 2000
    concurrency: int = 4
    human_title: str = ""


@dataclass(frozen=True)
class ScoringSettings:
    keywords: Tuple[str, ...] = DEFAULT_FUNDING_KEYWORDS
    keyword_cap: int = 3
    value_bands: Tuple[Tuple[int, int], ...] = DEFAULT_VALUE_BANDS


@dataclass(frozen=True)
class PipelineConfig:
    sources: Tuple[ListingSource, ...]
    output_dir: Path = Path("output")
    state_file: Path = Path("state/seen.json")
    incremental: bool = False
    debug: bool = False
    browser: BrowserSettings = BrowserSettings()
    harvest: HarvestSettings = HarvestSettings()
    container_harvest: HarvestSettings = CONTAINER_HARVEST
    scoring: ScoringSettings = ScoringSettings()
    fetch_attempts: int = 3
    fetch_timeout_s: float = 20.0
    navigation_attempts: int = 3

    def source(self, name: str) -> ListingSource:
        for s in self.sources:
            if s.name == name:
                return s
        raise KeyError(name)


def default_sources(quick: bool = False, max_enrich_funding: Optional[int] = None,
                    max_enrich_tenders: Optional[int] = None,
                    funding_concurrency: int = 6, tenders_concurrency: int = 3,
                    lang: str = "en") -> Tuple[ListingSource, ...]:
    max_pages = QUICK_MAX_PAGES if quick else 2000
    default_cap_funding = QUICK_MAX_ENRICH if quick else 2000
    default_cap_tenders = QUICK_MAX_ENRICH if quick else 1500

    return (
        ListingSource(
            name="funding",
            kind="funding",
            base_url=FUNDING_LIST_URL,
            link_selector='a[href*="/topic-details/"]',
            container_selectors=('a[href*="/call-details/"]', 'a[href*="/calls/"]'),
            max_pages=max_pages,
            detail_endpoint=TOPIC_DETAILS_URL,
            lang=lang,
            enrich_cap=max_enrich_funding if max_enrich_funding is not None else default_cap_funding,
            concurrency=funding_concurrency,
            human_title="Funding - Calls for proposals (Open + Forthcoming)",
        ),
        ListingSource(
            name="tenders",
            kind="tenders",
            base_url=TENDERS_LIST_URL,
            link_selector='a[href*="/tender-details/"]',
            max_pages=max_pages,
            lang=lang,
            enrich_cap=max_enrich_tenders if max_enrich_tenders is not None else default_cap_tenders,
            concurrency=tenders_concurrency,
            human_title="Procurement - Calls for tenders (Open + Forthcoming)",
        ),
    )


def parse_value_bands(text: str) -> Tuple[Tuple[int, int], ...]:
    """
    Parse "1000000:2,250000:1" into ((1000000, 2), (250000, 1)).

    Bands are returned highest threshold first.
    """
    bands = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        threshold, _, score = chunk.partition(":")
        bands.append((int(threshold.strip()), int(score.strip())))
    return tuple(sorted(bands, reverse=True))


def _flag(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def _int(env: Mapping[str, str], key: str) -> Optional[int]:
    raw = env.get(key)
    if raw is None or str(raw).strip() == "":
        return None
    return int(raw)


def load_config(env: Optional[Mapping[str, str]] = None, overrides: Optional[Dict[str, object]] = None) -> PipelineConfig:
    """
    Build a PipelineConfig from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)
        overrides: CLI values that win over the environment. Recognized keys:
            quick, incremental, headless, output_dir, state_file, sources

    Returns:
        PipelineConfig
    """
    env = os.environ if env is None else env
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    quick = overrides.get("quick", _flag(env, "QUICK_MODE"))
    sources = default_sources(
        quick=bool(quick),
        max_enrich_funding=_int(env, "MAX_ENRICH_FUNDING"),
        max_enrich_tenders=_int(env, "MAX_ENRICH_TENDERS"),
        funding_concurrency=_int(env, "FUNDING_CONCURRENCY") or 6,
        tenders_concurrency=_int(env, "TENDERS_CONCURRENCY") or 3,
        lang=env.get("LANG_CODE", "en") or "en",
    )

    wanted: Optional[Sequence[str]] = overrides.get("sources")
    if wanted:
        sources = tuple(s for s in sources if s.name in wanted)

    scoring = ScoringSettings()
    if env.get("FUNDING_KEYWORDS"):
        keywords = tuple(k.strip() for k in env["FUNDING_KEYWORDS"].split(",") if k.strip())
        scoring = replace(scoring, keywords=keywords)
    if env.get("TENDER_VALUE_BANDS"):
        scoring = replace(scoring, value_bands=parse_value_bands(env["TENDER_VALUE_BANDS"]))

    browser = BrowserSettings(headless=overrides.get("headless", _flag(env, "HEADLESS", True)))

    return PipelineConfig(
        sources=sources,
        output_dir=Path(overrides.get("output_dir", env.get("OUTPUT_DIR") or "output")),
        state_file=Path(overrides.get("state_file", env.get("STATE_FILE") or "state/seen.json")),
        incremental=bool(overrides.get("incremental", _flag(env, "INCREMENTAL"))),
        debug=_flag(env, "DEBUG"),
        browser=browser,
        scoring=scoring,
    )
