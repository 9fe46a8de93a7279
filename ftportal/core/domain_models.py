"""
Canonical domain models for the funding & tenders pipeline.

These models represent the data structures passed between harvesting,
enrichment, storage and export. Enriched records are flat: every field is a
string (empty when unknown) except the three integer scores, which always
default to 0.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Dict, List


def column_name(field_name: str) -> str:
    """Export column for a record field: snake_case becomes camelCase."""
    head, *rest = field_name.split("_")
    return head + "".join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class ItemReference:
    """
    A listing item discovered during harvesting.

    Identity is the canonical url (origin + path). The title is whatever the
    listing displayed for the link.
    """
    title: str
    url: str


@dataclass
class SeenEntry:
    """First/last observation timestamps for one canonical url."""
    url: str
    first_seen: str
    last_seen: str

    def to_dict(self) -> Dict[str, str]:
        return {"firstSeen": self.first_seen, "lastSeen": self.last_seen}


class _Record:
    """Shared row helpers for enriched records."""

    # Field holding the canonical url, used as merge key
    KEY_FIELD = "url"

    @classmethod
    def header(cls) -> List[str]:
        return [column_name(f.name) for f in fields(cls)]

    @classmethod
    def key_column(cls) -> str:
        return column_name(cls.KEY_FIELD)

    @property
    def key(self) -> str:
        return getattr(self, self.KEY_FIELD)

    def to_row(self) -> Dict[str, str]:
        """Flatten to an ordered dict of strings keyed by export column."""
        return {column_name(k): "" if v is None else str(v) for k, v in asdict(self).items()}


@dataclass
class FundingRecord(_Record):
    """
    Enriched funding topic.

    Fields are reconciled from the topicDetails JSON endpoint first and the
    rendered topic page second.
    """
    identifier: str = ""
    title: str = ""
    programme: str = ""
    destination: str = ""
    work_programme_part: str = ""
    type_of_action: str = ""
    topic_status: str = ""
    url: str = ""
    call_identifier: str = ""
    call_url: str = ""

    # Dates
    planned_opening_date: str = ""
    next_deadline: str = ""
    all_deadlines: str = ""  # ISO dates joined with " | "
    days_to_deadline: str = ""

    # Budget and eligibility
    total_budget: str = ""
    project_budget_min: str = ""
    project_budget_max: str = ""
    funding_rate: str = ""
    eligible_countries: str = ""
    consortium_summary: str = ""
    trl: str = ""
    summary_short: str = ""

    # Scores
    priority_score: int = 0
    urgency_score: int = 0
    keyword_score: int = 0

    generated_at: str = ""
    raw_ref: str = ""


@dataclass
class TenderRecord(_Record):
    """Enriched procurement notice."""

    KEY_FIELD = "notice_url"

    reference: str = ""
    title: str = ""
    contracting_authority: str = ""
    buyer_country: str = ""
    buyer_city: str = ""
    procedure_type: str = ""
    contract_type: str = ""
    cpv_top: str = ""
    lots_count: str = ""

    # Dates
    publication_date: str = ""
    deadline_date: str = ""
    all_deadlines: str = ""
    days_to_deadline: str = ""

    # Value
    estimated_value: str = ""
    currency: str = ""
    documents_count: str = ""

    notice_url: str = ""
    esubmission_link: str = ""

    # Scores
    priority_score: int = 0
    urgency_score: int = 0
    value_score: int = 0

    generated_at: str = ""


@dataclass
class EnrichmentResult:
    """
    Output of enriching one item: the flat record plus the raw payloads it
    was built from (written to the raw JSONL dump).
    """
    record: _Record
    raw: Dict = field(default_factory=dict)
