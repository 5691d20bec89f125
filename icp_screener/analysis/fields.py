"""Labeled-field extraction from free-text model output.

Both the research synthesis and the legacy scoring format write fields as
``LABEL: value`` blocks, a value running until the next all-caps label line.
All of the regex lives here.
"""

from __future__ import annotations

import re
from functools import lru_cache

# ResearchFields attribute -> label written by the synthesis prompt
RESEARCH_FIELD_LABELS = {
    "product_summary": "PRODUCT_SUMMARY",
    "target_customer": "TARGET_CUSTOMER",
    "target_decision_maker": "TARGET_DECISION_MAKER",
    "top3_outcomes": "TOP_3_OUTCOMES",
    "top3_differentiators": "TOP_3_DIFFERENTIATORS",
    "major_announcements": "MAJOR_ANNOUNCEMENTS",
    "competitors": "COMPETITORS",
    "customers": "COMPANY_CUSTOMERS",
    "funding": "COMPANY_FUNDING",
    "team_size": "COMPANY_TEAM_SIZE",
    "homepage_sections": "HOMEPAGE_SECTIONS",
    "homepage_nav": "HOMEPAGE_NAVIGATION",
    "product_pages": "PRODUCT_PAGES",
    "new_direction_page": "NEW_DIRECTION_PAGE",
    "linkedin_description": "LINKEDIN_COMPANY_DESCRIPTION",
    "ceo_founder_name": "CEO_FOUNDER_NAME",
    "ceo_recent_content": "CEO_RECENT_CONTENT",
    "ceo_narrative_theme": "CEO_NARRATIVE_THEME",
    "new_marketing_leader": "NEW_MARKETING_LEADER",
    "product_marketing_people": "PRODUCT_MARKETING_PEOPLE",
}

# Next label: a line starting with an upper-case token (digits allowed after
# the first letter, e.g. TOP_3_OUTCOMES) followed by a colon.
_NEXT_LABEL = r"(?=\n[A-Z][A-Z0-9_]*:|\Z)"


@lru_cache(maxsize=128)
def _pattern(label: str) -> re.Pattern[str]:
    return re.compile(
        rf"(?<![A-Za-z0-9_])(?i:{re.escape(label)}):[ \t]*(.*?){_NEXT_LABEL}",
        re.DOTALL,
    )


def extract_field(text: str, label: str) -> str:
    """Return the trimmed value written after ``LABEL:``, or "" when absent.

    The label match is case-insensitive; the first occurrence wins.
    """
    if not text:
        return ""
    match = _pattern(label).search(text)
    return match.group(1).strip() if match else ""


def extract_fields(text: str, labels: dict[str, str]) -> dict[str, str]:
    return {key: extract_field(text, label) for key, label in labels.items()}


def extract_int(text: str, label: str) -> int:
    """Leading integer of a field value, 0 when missing or non-numeric."""
    match = re.match(r"\s*(-?\d+)", extract_field(text, label))
    return int(match.group(1)) if match else 0
