"""Evidence aggregation: 8 concurrent Exa queries merged into one document.

The section order is fixed: the scoring rubric leans on the homepage coming
first and on section positions within it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Awaitable, Callable

from icp_screener.models import EvidenceDocument, SearchHit
from icp_screener.search.exa_client import ExaClient

logger = logging.getLogger(__name__)

HOMEPAGE_MISSING = "NOT AVAILABLE — Exa could not crawl this page."
SUBPAGES_MISSING = "No subpages found."
NO_RESULTS = "No results found."

SUBPAGE_TARGETS = ["product", "platform", "solutions", "pricing", "about"]
NEWS_WINDOW_DAYS = 730
CEO_CONTENT_WINDOW_DAYS = 180

# (key, opening header, closing label) for the seven search-backed sections
SEARCH_SECTIONS = [
    ("news", "NEWS & ANNOUNCEMENTS (last 24 months)", "NEWS"),
    ("competitors", "COMPETITOR COMPARISONS & REVIEWS", "COMPETITORS"),
    ("case_studies", "CASE STUDIES & CUSTOMER OUTCOMES", "CASE STUDIES"),
    ("funding", "FUNDING & COMPANY FACTS", "FUNDING"),
    ("linkedin", "LINKEDIN COMPANY INFO", "LINKEDIN"),
    ("tweets", "CEO/FOUNDER TWEETS", "TWEETS"),
    ("ceo_content", "CEO/FOUNDER BLOG, PODCAST & CONFERENCE CONTENT (last 6 months)", "CEO CONTENT"),
]


def full_url(website: str) -> str:
    website = website.strip()
    return website if website.startswith("http") else f"https://{website}"


def format_results(results: list[SearchHit]) -> str:
    """Render results as numbered citation blocks, or the empty placeholder."""
    if not results:
        return NO_RESULTS
    blocks = []
    for i, r in enumerate(results, 1):
        if r.text:
            content = r.text
        elif r.highlights:
            content = "\n".join(r.highlights)
        else:
            content = r.summary
        published = f" ({r.published_date[:10]})" if r.published_date else ""
        blocks.append(f"[{i}] {r.title or 'Untitled'}{published}\nURL: {r.url}\n{content}")
    return "\n\n---\n\n".join(blocks)


def format_subpages(pages: list[SearchHit]) -> str:
    return "\n\n---\n\n".join(
        f"PAGE: {sp.title or sp.url}\nURL: {sp.url}\n{sp.text or sp.summary}"
        for sp in pages
    )


class EvidenceAggregator:
    """Fans out the fixed query set for one company and assembles the evidence."""

    def __init__(
        self,
        exa: ExaClient,
        today: Callable[[], date] = date.today,
    ):
        self.exa = exa
        self._today = today

    def _since(self, days: int) -> str:
        return (self._today() - timedelta(days=days)).isoformat()

    def _queries(self, company_name: str, url: str) -> dict[str, Awaitable[list[SearchHit]]]:
        exa = self.exa
        return {
            "homepage": exa.contents(
                [url],
                text={"maxCharacters": 12000},
                subpages=5,
                subpage_target=SUBPAGE_TARGETS,
                max_age_hours=24,
                livecrawl_timeout=12000,
            ),
            "news": exa.search(
                f"{company_name} product launch announcement partnership",
                category="news",
                num_results=10,
                start_published_date=self._since(NEWS_WINDOW_DAYS),
                contents={"highlights": {
                    "query": "product launch acquisition partnership rebrand new feature pivot",
                    "maxCharacters": 3000,
                }},
            ),
            "competitors": exa.search(
                f"{company_name} vs competitors comparison review",
                num_results=8,
                contents={"highlights": {
                    "query": "differentiator unique advantage capability comparison alternative",
                    "maxCharacters": 3000,
                }},
            ),
            "case_studies": exa.search(
                f"{company_name} case study customer results",
                num_results=8,
                contents={"highlights": {
                    "query": "results ROI reduced increased saved revenue cost metrics percentage",
                    "maxCharacters": 3000,
                }},
            ),
            "funding": exa.search(
                f"{company_name} funding round series investors team size",
                num_results=5,
                contents={"highlights": {
                    "query": "raised funding series investors valuation team employees headcount",
                    "maxCharacters": 2000,
                }},
            ),
            "linkedin": exa.search(
                f"{company_name} company LinkedIn about",
                num_results=3,
                include_domains=["linkedin.com"],
                contents={"text": {"maxCharacters": 3000}},
            ),
            "tweets": exa.search(
                f"{company_name} CEO founder",
                category="tweet",
                num_results=10,
                contents={"text": {"maxCharacters": 1500}},
            ),
            "ceo_content": exa.search(
                f"{company_name} CEO founder vision strategy direction",
                num_results=5,
                start_published_date=self._since(CEO_CONTENT_WINDOW_DAYS),
                contents={"highlights": {
                    "query": "company vision strategy direction product roadmap future",
                    "maxCharacters": 3000,
                }},
            ),
        }

    async def gather(self, company_name: str, website: str) -> EvidenceDocument:
        """Run all 8 queries together; a failed query degrades to its placeholder."""
        url = full_url(website)
        queries = self._queries(company_name, url)
        settled = await asyncio.gather(*queries.values(), return_exceptions=True)

        results: dict[str, list[SearchHit]] = {}
        failures: list[str] = []
        for key, outcome in zip(queries, settled):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("[%s] Exa %s query failed: %s", company_name, key, outcome)
                failures.append(key)
                results[key] = []
            else:
                results[key] = outcome

        logger.info(
            "[%s] Exa data gathered: %s",
            company_name,
            ", ".join(f"{k}={len(v)}" for k, v in results.items()),
        )

        homepage_content = ""
        product_pages = ""
        crawled = results["homepage"]
        if crawled:
            main = crawled[0]
            homepage_content = main.text
            subpages = main.subpages or crawled[1:]
            if subpages:
                product_pages = format_subpages(subpages)

        parts = [
            f"=== HOMEPAGE CONTENT (crawled from {url} via Exa) ===\n"
            f"{homepage_content or HOMEPAGE_MISSING}\n"
            "=== END HOMEPAGE CONTENT ===",
            "=== PRODUCT / SUBPAGES (crawled from links on homepage) ===\n"
            f"{product_pages or SUBPAGES_MISSING}\n"
            "=== END PRODUCT / SUBPAGES ===",
        ]
        for key, header, closing in SEARCH_SECTIONS:
            parts.append(
                f"=== {header} ===\n{format_results(results[key])}\n=== END {closing} ==="
            )

        return EvidenceDocument(
            text="\n\n".join(parts),
            homepage_content=homepage_content,
            failures=failures,
        )
