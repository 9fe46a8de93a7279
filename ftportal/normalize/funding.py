"""
Normalizer for funding topics.

Reconciles the topicDetails JSON (TD) and the rendered topic page into a
FundingRecord. For every field the candidates are listed in priority order
and the first non-empty one wins: structured endpoint first, rendered page
labels second.
"""

import re
from typing import Any, Dict, Optional

from ftportal.config import ScoringSettings
from ftportal.core.domain_models import FundingRecord, ItemReference
from ftportal.core.money import parse_money
from ftportal.core.time_utils import RunContext
from ftportal.core.utils import clip, collect_dates_deep, first_non_empty, textify, to_iso_date
from ftportal.enhance import scoring
from ftportal.ingest.detail_page import DetailPage
from ftportal.ingest.topic_details import extract_topic_slug
from ftportal.normalize.common import dig, html_to_text, map_status_label


SUMMARY_MAX = 600
CONSORTIUM_MAX = 180


def normalize_funding(
    item: ItemReference,
    topic: Optional[Dict[str, Any]],
    page: Optional[DetailPage],
    run: RunContext,
    settings: ScoringSettings,
) -> FundingRecord:
    """
    Build a FundingRecord from whatever sources are available.

    Args:
        item: The harvested reference (always present)
        topic: TopicDetails object from the structured endpoint ({} or None if it failed)
        page: Parsed rendered page (None if it failed)
        run: Run clock
        settings: Keyword list and cap

    Returns:
        FundingRecord; with neither source it still carries title and url
    """
    td = topic or {}
    page = page or DetailPage(url=item.url)
    slug = extract_topic_slug(item.url)

    def t(key: str) -> str:
        return textify(td.get(key))

    programme = first_non_empty(t("frameworkProgramme"), t("programme"), page.label("Programme", "Program"))
    destination = first_non_empty(
        t("destination"), t("destinationCode"), t("destinationTitle"), page.label("Destination")
    )
    work_programme_part = first_non_empty(
        t("workProgramPart"), t("workProgrammePart"), t("workProgramme"),
        page.label("Work programme part", "Work Programme"),
    )
    type_of_action = first_non_empty(t("typeOfAction"), t("typeOfActions"), page.label("Type of action"))
    topic_status = map_status_label(first_non_empty(t("topicStatus"), t("status"), page.label("Status")))
    call_identifier = first_non_empty(t("callIdentifier"), t("callId"), page.label("Call identifier"))
    call_url = first_non_empty(t("callDocumentsLink"), t("callLink"), page.label("Call link"))

    planned_opening_date = to_iso_date(first_non_empty(
        textify(dig(td, "actions", 0, "plannedOpeningDate")),
        page.label("Planned opening date", "Opening date"),
    ))

    deadlines = scoring.deadline_info(
        scoring.merge_deadlines(collect_dates_deep(td), collect_dates_deep(page.kv)),
        run.today,
    )

    total_budget = first_non_empty(t("totalBudget"), parse_money(html_to_text(td.get("budgetOverview"))).amount)
    funding_rate = re.sub(r"[^\d%]", "", t("fundingRate"))

    eligible_countries = first_non_empty(
        t("eligibleCountries"), t("associatedCountries"),
        page.label("Eligible countries", "Eligibility"),
    )
    trl = first_non_empty(t("technologyReadinessLevel"), t("TRL"), page.label("TRL"))

    summary_short = clip(first_non_empty(
        html_to_text(td.get("summary")),
        html_to_text(td.get("expectedOutcome")),
        html_to_text(td.get("scope")),
        page.text_bits.get("summary"),
        page.text_bits.get("outcome"),
        page.text_bits.get("scope"),
    ), SUMMARY_MAX)
    consortium_summary = clip(first_non_empty(
        html_to_text(td.get("consortiumRequirements")),
        html_to_text(td.get("eligibility")),
        page.label("Consortium"),
    ), CONSORTIUM_MAX)

    title = first_non_empty(t("title"), page.title, item.title)

    urgency = scoring.urgency_score(deadlines.days_to_deadline)
    keywords = scoring.keyword_score(
        [title, summary_short, destination, work_programme_part, type_of_action],
        settings.keywords,
        settings.keyword_cap,
    )

    return FundingRecord(
        identifier=first_non_empty(t("identifier"), t("topicId"), slug),
        title=title,
        programme=programme,
        destination=destination,
        work_programme_part=work_programme_part,
        type_of_action=type_of_action,
        topic_status=topic_status,
        url=item.url,
        call_identifier=call_identifier,
        call_url=call_url,
        planned_opening_date=planned_opening_date,
        next_deadline=deadlines.next_deadline,
        all_deadlines=deadlines.joined,
        days_to_deadline=deadlines.days_text,
        total_budget=total_budget,
        funding_rate=funding_rate,
        eligible_countries=eligible_countries,
        consortium_summary=consortium_summary,
        trl=trl,
        summary_short=summary_short,
        priority_score=scoring.priority_score(urgency, keywords),
        urgency_score=urgency,
        keyword_score=keywords,
        generated_at=run.run_ts,
        raw_ref=slug,
    )
