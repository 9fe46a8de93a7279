"""
Normalizer for procurement notices.

Tenders have no structured endpoint, so the rendered page carries
everything. Embedded JSON-LD is trusted over the free-form label/value pairs
because its field names are fixed; labels vary between notices, so each
field tries several spellings.
"""

import re
from typing import Any, Dict, List, Optional

from ftportal.config import ScoringSettings
from ftportal.core.domain_models import ItemReference, TenderRecord
from ftportal.core.money import parse_money
from ftportal.core.time_utils import RunContext
from ftportal.core.utils import collect_dates_deep, dates_in_text, first_non_empty, textify, to_iso_date
from ftportal.enhance import scoring
from ftportal.ingest.detail_page import DetailPage
from ftportal.normalize.common import dig


TENDER_DEADLINE_KEY = re.compile(r"deadline|time limit|closing date|validThrough", re.IGNORECASE)

_DOCUMENT_LINK = re.compile(r"document|annex|specification|tender doc", re.IGNORECASE)
_ESUBMISSION_TEXT = re.compile(r"submit|e-?submission", re.IGNORECASE)
_ESUBMISSION_HREF = re.compile(r"submission|eproc", re.IGNORECASE)
_APPLY_TEXT = re.compile(r"apply|e-?procurement|e-?tendering", re.IGNORECASE)

REFERENCE_LABELS = ("Reference", "Reference number", "Notice number", "Ref.", "Identifier")
AUTHORITY_LABELS = ("Contracting authority", "Buyer", "Organisation", "Contracting entity")
COUNTRY_LABELS = ("Country", "Member state")
CITY_LABELS = ("City", "Town", "Place")
PROCEDURE_LABELS = ("Procedure type", "Procedure")
CONTRACT_LABELS = ("Contract type", "Type of contract", "Object")
CPV_LABELS = ("CPV", "CPV code")
LOTS_LABELS = ("Lot(s)", "Lots", "Number of lots")
PUBLICATION_LABELS = ("Publication date", "Date of publication")
DEADLINE_LABELS = (
    "Deadline",
    "Time limit",
    "Submission deadline",
    "Deadline for receipt of tenders",
    "Closing date",
)
VALUE_LABELS = ("Estimated value", "Contract value", "Value", "Budget")


def _cpv_from_json_ld(jl: Dict[str, Any]) -> str:
    props = jl.get("additionalProperty")
    if isinstance(props, dict):
        props = [props]
    if not isinstance(props, list):
        return ""
    for prop in props:
        if isinstance(prop, dict) and "cpv" in textify(prop.get("name")).lower():
            return textify(prop.get("value"))
    return ""


def count_documents(anchors: List[Dict[str, str]]) -> int:
    return sum(1 for a in anchors if _DOCUMENT_LINK.search(a.get("text", "")))


def find_esubmission_link(anchors: List[Dict[str, str]]) -> str:
    """Explicit submission links first, then generic apply / e-procurement links."""
    for a in anchors:
        if _ESUBMISSION_TEXT.search(a.get("text", "")) or _ESUBMISSION_HREF.search(a.get("href", "")):
            return a.get("href", "")
    for a in anchors:
        if _APPLY_TEXT.search(a.get("text", "")):
            return a.get("href", "")
    return ""


def normalize_tender(
    item: ItemReference,
    structured: Optional[Dict[str, Any]],
    page: Optional[DetailPage],
    run: RunContext,
    settings: ScoringSettings,
) -> TenderRecord:
    """
    Build a TenderRecord from the rendered notice page.

    `structured` is optional; any field it carries outranks JSON-LD and labels.
    """
    s = structured or {}
    rendered = page is not None
    page = page or DetailPage(url=item.url)
    jl = page.largest_json_ld()

    def st(key: str) -> str:
        return textify(s.get(key))

    def j(*keys: str) -> str:
        return textify(dig(jl, *keys))

    raw_deadline = first_non_empty(st("deadline_date"), j("validThrough"), page.label(*DEADLINE_LABELS))
    deadlines = scoring.deadline_info(
        scoring.merge_deadlines(
            dates_in_text(raw_deadline),
            collect_dates_deep(s, TENDER_DEADLINE_KEY),
            collect_dates_deep(jl, TENDER_DEADLINE_KEY),
            collect_dates_deep(page.kv, TENDER_DEADLINE_KEY),
        ),
        run.today,
    )

    money = parse_money(first_non_empty(st("estimated_value"), page.label(*VALUE_LABELS)))
    currency = first_non_empty(st("currency"), money.currency, page.label("Currency"))

    lots_match = re.search(r"\d+", first_non_empty(st("lots_count"), page.label(*LOTS_LABELS)))

    urgency = scoring.urgency_score(deadlines.days_to_deadline)
    value = scoring.value_score(money.amount, settings.value_bands)

    return TenderRecord(
        reference=first_non_empty(st("reference"), j("identifier"), page.label(*REFERENCE_LABELS)),
        title=first_non_empty(st("title"), j("name"), j("title"), page.title,
                              page.label("Title", "Notice title"), item.title),
        contracting_authority=first_non_empty(st("contracting_authority"), j("publisher", "name"),
                                              page.label(*AUTHORITY_LABELS)),
        buyer_country=first_non_empty(st("buyer_country"), j("address", "addressCountry"),
                                      page.label(*COUNTRY_LABELS)),
        buyer_city=first_non_empty(st("buyer_city"), j("address", "addressLocality"), page.label(*CITY_LABELS)),
        procedure_type=first_non_empty(st("procedure_type"), page.label(*PROCEDURE_LABELS)),
        contract_type=first_non_empty(st("contract_type"), page.label(*CONTRACT_LABELS)),
        cpv_top=first_non_empty(st("cpv_top"), _cpv_from_json_ld(jl), page.label(*CPV_LABELS)),
        lots_count=lots_match.group(0) if lots_match else "",
        publication_date=to_iso_date(first_non_empty(st("publication_date"), j("datePublished"),
                                                     page.label(*PUBLICATION_LABELS))),
        deadline_date=deadlines.next_deadline,
        all_deadlines=deadlines.joined,
        days_to_deadline=deadlines.days_text,
        estimated_value=money.amount,
        currency=currency,
        documents_count=str(count_documents(page.anchors)) if rendered else "",
        notice_url=item.url,
        esubmission_link=first_non_empty(st("esubmission_link"), find_esubmission_link(page.anchors)),
        priority_score=scoring.priority_score(urgency, value),
        urgency_score=urgency,
        value_score=value,
        generated_at=run.run_ts,
    )
