"""
Parser for rendered topic / tender detail pages.

The detail pages have no fixed schema, so extraction is best-effort:
1. Label/value pairs from <dl> lists and two-column tables, including the
   "key information" blocks nested inside sections
2. Embedded JSON-LD blocks
3. Free-text blocks found under known headings (Scope, Summary, ...)
4. All anchors, for document counting and e-submission links

Parsing works on an HTML string, so tests can feed synthetic fixtures without
a browser.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ftportal.core.retry import RetryPolicy
from ftportal.core.utils import clean_text, normalize_label
from ftportal.ingest.browser import RenderSurface, navigate

logger = logging.getLogger(__name__)


# Containers whose label/value pairs are merged over the page-wide ones
KEY_BLOCK_SELECTOR = '[data-testid*="key"], [class*="key-info"], section, article'

# name -> heading pattern; the first long sibling after the heading is kept
HEADING_BLOCKS = {
    "outcome": r"Expected Outcome|Outcomes",
    "scope": r"Scope",
    "summary": r"Summary|Overview",
}

MIN_BLOCK_CHARS = 40
MAX_SIBLINGS = 6


@dataclass
class DetailPage:
    """Everything extracted from one rendered detail page."""
    url: str
    title: str = ""
    kv: Dict[str, str] = field(default_factory=dict)
    json_ld: List[Dict[str, Any]] = field(default_factory=list)
    text_bits: Dict[str, str] = field(default_factory=dict)
    anchors: List[Dict[str, str]] = field(default_factory=list)

    def label(self, *labels: str) -> str:
        """Value of the first label that matches (see first_label_value)."""
        return first_label_value(self.kv, labels)

    def largest_json_ld(self) -> Dict[str, Any]:
        """The biggest JSON-LD object on the page, usually the main entity."""
        if not self.json_ld:
            return {}
        return max(self.json_ld, key=lambda d: len(json.dumps(d, default=str)))


def first_label_value(kv: Dict[str, str], labels: Sequence[str]) -> str:
    """
    Look labels up in priority order.

    For each label an exact (normalized) key match wins, then the first key
    containing the label. Returns "" when no label matches.
    """
    normalized = [(normalize_label(k), v) for k, v in kv.items()]
    for label in labels:
        want = normalize_label(label)
        if not want:
            continue
        for key, value in normalized:
            if key == want and value:
                return value
        for key, value in normalized:
            if want in key and value:
                return value
    return ""


def _text(el: Optional[Tag]) -> str:
    if el is None:
        return ""
    return clean_text(el.get_text(" ", strip=True))


def _grab_kv(root: Tag) -> Dict[str, str]:
    kv: Dict[str, str] = {}

    for dl in root.find_all("dl"):
        for dt in dl.find_all("dt"):
            dd = dt.find_next_sibling()
            if dd is None or dd.name != "dd":
                continue
            key, value = _text(dt), _text(dd)
            if key and value:
                kv[key] = value

    for table in root.find_all("table"):
        for tr in table.find_all("tr"):
            cells = tr.find_all(["th", "td"], recursive=False)
            if len(cells) != 2:
                continue
            key, value = _text(cells[0]), _text(cells[1])
            if key and value:
                kv[key] = value

    return kv


def extract_key_values(soup: BeautifulSoup) -> Dict[str, str]:
    """Label/value pairs from the whole page, then from each key-info block."""
    kv = _grab_kv(soup)
    for block in soup.select(KEY_BLOCK_SELECTOR):
        kv.update(_grab_kv(block))
    return kv


def extract_json_ld(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """Parse every application/ld+json block; broken blocks are skipped."""
    out: List[Dict[str, Any]] = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.debug(f"Skipping invalid JSON-LD block: {e}")
            continue

        nodes = data if isinstance(data, list) else [data]
        for node in nodes:
            if not isinstance(node, dict):
                continue
            graph = node.get("@graph")
            if isinstance(graph, list):
                out.extend(g for g in graph if isinstance(g, dict))
                # A bare {@context, @graph} wrapper carries no fields of its own
                if not set(node) - {"@context", "@graph"}:
                    continue
            out.append(node)
    return out


def grab_by_heading(soup: BeautifulSoup, pattern: str) -> str:
    """
    First sufficiently long block after the first heading matching pattern.

    Looks at up to MAX_SIBLINGS following siblings and returns the first one
    with more than MIN_BLOCK_CHARS characters of text.
    """
    regex = re.compile(pattern, re.IGNORECASE)
    for heading in soup.find_all(["h1", "h2", "h3", "h4"]):
        if not regex.search(heading.get_text(" ", strip=True)):
            continue
        node = heading.find_next_sibling()
        for _ in range(MAX_SIBLINGS):
            if node is None:
                break
            text = _text(node)
            if len(text) > MIN_BLOCK_CHARS:
                return text
            node = node.find_next_sibling()
        return ""
    return ""


def extract_anchors(soup: BeautifulSoup, base_url: str) -> List[Dict[str, str]]:
    anchors = []
    for a in soup.find_all("a", href=True):
        href = a["href"].strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        anchors.append({"href": urljoin(base_url, href), "text": _text(a)})
    return anchors


def parse_detail_html(html: str, url: str, page_title: str = "") -> DetailPage:
    """Parse rendered detail-page HTML into a DetailPage."""
    soup = BeautifulSoup(html or "", "lxml")

    title = clean_text(page_title)
    if not title and soup.title and soup.title.string:
        title = clean_text(soup.title.string)
    if not title:
        title = _text(soup.find("h1"))

    return DetailPage(
        url=url,
        title=title,
        kv=extract_key_values(soup),
        json_ld=extract_json_ld(soup),
        text_bits={name: grab_by_heading(soup, pattern) for name, pattern in HEADING_BLOCKS.items()},
        anchors=extract_anchors(soup, url),
    )


def scrape_detail_page(surface: RenderSurface, url: str, policy: RetryPolicy, settle_ms: int = 600) -> DetailPage:
    """
    Navigate to a detail page and parse it.

    Raises:
        NavigationError: if the page cannot be loaded after retries
    """
    navigate(surface, url, policy)
    surface.pause(settle_ms)
    return parse_detail_html(surface.content(), url, surface.title())
