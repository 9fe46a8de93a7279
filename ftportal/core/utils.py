"""
Field normalizer: pure helpers for URLs, dates, text and source reconciliation.

None of these functions raise on bad input. Unparseable values come back as
an empty string (or the raw input, for URLs) so callers can chain them.
"""

import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Pattern
from urllib.parse import urlencode, urljoin, urlsplit, urlunsplit, parse_qsl

from dateutil import parser as dateparser


DEADLINE_KEY = re.compile(r"deadline", re.IGNORECASE)

# Keys preferred when flattening a nested structured value to text
_TEXTIFY_KEYS = (
    "title", "name", "label", "value", "code", "id",
    "identifier", "shortTitle", "displayName",
)

_EU_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_EPOCH = re.compile(r"^-?\d{10}(\d{3})?$")
_YEAR = re.compile(r"\b(19|20)\d{2}\b")
_DAY = re.compile(r"\b\d{1,2}\b")
_SEGMENT_SPLIT = re.compile(r"\s*[|;\n]\s*")
_TOKEN_SPLIT = re.compile(r"[\s,]+")

# Epoch numbers at or above this are taken as milliseconds
_EPOCH_MS_THRESHOLD = 100_000_000_000


def canonicalize_url(href: str, base: Optional[str] = None) -> str:
    """
    Resolve href against base and strip query string and fragment.

    Two hrefs that differ only by query, fragment or a trailing slash map to
    the same value. Returns the raw href when it cannot be turned into an
    absolute URL.

    Examples:
        >>> canonicalize_url("/topic-details/ABC123?foo=1", "https://ec.europa.eu/x")
        'https://ec.europa.eu/topic-details/ABC123'
    """
    if href is None:
        return ""
    try:
        absolute = urljoin(base, href) if base else href
        parts = urlsplit(absolute.strip())
        if not parts.scheme or not parts.netloc:
            return href
        path = parts.path.rstrip("/")
        return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))
    except (ValueError, TypeError, AttributeError):
        return href


def build_page_url(base_url: str, params: Mapping[str, Any], page_number: int,
                   page_param: str = "pageNumber") -> str:
    """Merge listing parameters and the 1-based page number into base_url."""
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query))
    query.update({k: str(v).lower() if isinstance(v, bool) else str(v) for k, v in params.items()})
    query[page_param] = str(page_number)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))


def parse_date_maybe(text: str) -> Optional[datetime]:
    """
    Attempt to parse a date string, returning None on failure.

    Uses dateutil.parser with day-first=True for European date formats. Strings
    without a plausible year are rejected, since dateutil would otherwise fill
    in the missing parts from today.

    Examples:
        >>> parse_date_maybe("10 April 2024 11:00am")
        datetime.datetime(2024, 4, 10, 11, 0)
        >>> parse_date_maybe("not a date")
        None
    """
    text = text.strip()
    if not text or not _YEAR.search(text):
        return None
    if len(re.findall(r"[0-9]+|[A-Za-z]{3,}", text)) < 2:
        return None

    try:
        if _ISO_PREFIX.match(text):
            return dateparser.isoparse(text)
        return dateparser.parse(text, dayfirst=True)
    except (ValueError, TypeError, OverflowError):
        pass

    # Trailing words ("17:00:00 Brussels time") need fuzzy matching;
    # restricted to text with one year and a day number
    if len(_YEAR.findall(text)) != 1 or not _DAY.search(text):
        return None
    try:
        return dateparser.parse(text, dayfirst=True, fuzzy=True)
    except (ValueError, TypeError, OverflowError):
        return None


def _epoch_to_date(value: float) -> Optional[date]:
    seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


def to_iso_date(value: Any) -> str:
    """
    Normalize a date-like value to YYYY-MM-DD, or "" if it cannot be parsed.

    Accepts UNIX epoch numbers (seconds or milliseconds), dd/mm/yyyy strings,
    ISO strings and anything else dateutil understands. Epoch and dd/mm/yyyy
    are tried first because generic parsing cannot tell day from month.

    Examples:
        >>> to_iso_date("31/12/2025")
        '2025-12-31'
        >>> to_iso_date(1735689600000)
        '2025-01-01'
    """
    if value is None or value == "" or isinstance(value, bool):
        return ""

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, (int, float)):
        d = _epoch_to_date(value)
        return d.isoformat() if d else ""

    s = str(value).strip()
    if _EPOCH.match(s):
        d = _epoch_to_date(int(s))
        return d.isoformat() if d else ""

    m = _EU_DATE.match(s)
    if m:
        try:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1))).isoformat()
        except ValueError:
            return ""

    parsed = parse_date_maybe(s)
    if parsed is None:
        return ""
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def clean_text(text: str) -> str:
    """Collapse all whitespace runs to a single space."""
    return re.sub(r"\s+", " ", text or "").strip()


def clip(text: Any, max_len: int = 600) -> str:
    """Collapse whitespace and truncate to max_len with an ellipsis."""
    if not text:
        return ""
    t = clean_text(str(text))
    if len(t) > max_len:
        return t[:max_len - 1] + "…"
    return t


def first_non_empty(*candidates: Any) -> str:
    """
    Return the first candidate whose string form is not blank.

    Candidates are listed in source-priority order, so an earlier non-empty
    value always wins over a later one.
    """
    for v in candidates:
        if v is not None and str(v).strip() != "":
            return str(v)
    return ""


def normalize_label(text: str) -> str:
    """Lower-case a label, collapse whitespace and drop a trailing colon."""
    return clean_text(str(text or "")).lower().rstrip(":").strip()


def textify(value: Any) -> str:
    """
    Flatten a structured value (scalar, list or object) to display text.

    Lists are deduplicated (order kept) and joined with " | ". Objects are
    reduced to their first usable title/name/label/value/code/id entry.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        parts = _unique(textify(v) for v in value)
        return " | ".join(p for p in parts if p)
    if isinstance(value, dict):
        for key in _TEXTIFY_KEYS:
            if value.get(key) is not None:
                t = textify(value[key])
                if t:
                    return t
    return ""


def _unique(values: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def dates_in_text(text: str) -> List[str]:
    """Extract ISO dates from a free-text value (segments first, then tokens)."""
    found = []
    for segment in _SEGMENT_SPLIT.split(text or ""):
        if not segment:
            continue
        iso = to_iso_date(segment)
        if iso:
            found.append(iso)
            continue
        for token in _TOKEN_SPLIT.split(segment):
            iso = to_iso_date(token)
            if iso:
                found.append(iso)
    return found


def collect_dates_deep(obj: Any, key_pattern: Pattern = DEADLINE_KEY, limit: int = 20000) -> List[str]:
    """
    Walk a nested structure and collect every date stored under a matching key.

    Returns a sorted, de-duplicated list of ISO dates. The walk stops after
    `limit` nodes.
    """
    out: List[str] = []
    count = 0
    stack = [obj]

    while stack:
        node = stack.pop()
        if node is None or count > limit:
            continue
        count += 1

        if isinstance(node, (list, tuple)):
            stack.extend(node)
        elif isinstance(node, dict):
            for k, v in node.items():
                if key_pattern.search(str(k)):
                    out.extend(dates_in_text(textify(v)))
                stack.append(v)

    return sorted(set(out))
