"""Stub providers shared by the pipeline, scoring and API tests."""

from __future__ import annotations

import asyncio
import json

from icp_screener.analysis.llm_client import CompletionResult
from icp_screener.analysis.prompts import SCORING_SYSTEM_PROMPT
from icp_screener.errors import UpstreamError
from icp_screener.models import SearchHit

ACME_HOMEPAGE = "We help mid-market logistics teams cut dispatch time by 40%."

RESEARCH_TEXT = (
    "PRODUCT_SUMMARY: Dispatch software for mid-market logistics teams.\n"
    "TARGET_CUSTOMER: Mid-market 3PLs in North America\n"
    "TARGET_DECISION_MAKER: VP of Operations\n"
    "TOP_3_OUTCOMES: Cut dispatch time by 40%; Fewer empty miles; Faster onboarding\n"
    "TOP_3_DIFFERENTIATORS: Live load matching\n"
    "COMPETITORS: Samsara, Motive\n"
    "COMPANY_CUSTOMERS: Northwind Freight\n"
    "HOMEPAGE_SECTIONS: Hero; Features; Customers\n"
)


def scoring_json(
    a: int = 3,
    b: int = 1,
    c: int = 3,
    d: int = 3,
    e: int = 3,
    f: int = 3,
    icp_fit: str = "Moderate",
    reason: str = "None",
    total: int | None = None,
) -> str:
    """A scoring reply the way models tend to send it: prose, then a fenced object."""
    payload = {
        "total_score": total if total is not None else a + b + c + d + e + f,
        "icp_fit": icp_fit,
        "disqualification_reason": reason,
        "summary": "Homepage still sells dispatch features.",
        "factor_a": {
            "score": a,
            "differentiators": ["Live load matching", "Carrier scorecards"],
            "homepage_sections": [
                {"name": "Hero", "finding": "Generic speed claim", "status": "miss"},
                {"name": "Features", "finding": "Load matching shown", "status": "hit"},
            ],
            "verdict": "Differentiators buried below the fold.",
        },
        "factor_b": {
            "score": b,
            "decision_maker": "VP of Operations",
            "strategic_outcomes": ["Margin per load"],
            "tactical_outcomes": ["Cut dispatch time by 40%"],
            "homepage_sections": [
                {"name": "Hero", "finding": "Dispatch time", "outcome_type": "tactical"},
                {"name": "Features", "finding": "None", "outcome_type": "none"},
            ],
            "verdict": "Outcomes mostly tactical.",
        },
        "factor_c": {
            "score": c,
            "sections": [
                {"name": "Hero", "orientation": "product-centric", "evidence": "Our platform"},
                {"name": "Features", "orientation": "product-centric", "evidence": "Feature grid"},
            ],
            "verdict": "Product first.",
        },
        "factor_d": {
            "score": d,
            "changes": [
                {"date": "2025-03", "name": "Acme Match", "before": "TMS add-on", "after": "Standalone"},
            ],
            "verdict": "New product not on homepage.",
        },
        "factor_e": {
            "score": e,
            "before": {"buyer": "Dispatcher", "department": "Operations", "market": "SMB"},
            "today": {"buyer": "VP Ops", "department": "Operations", "market": "Mid-market"},
            "verdict": "Moved upmarket.",
        },
        "factor_f": {
            "score": f,
            "products": [{"name": "Acme Dispatch", "tag": "product"}, {"name": "Acme Match", "tag": "product"}],
            "description": "Two products, no unifying story.",
            "verdict": "Fragmented.",
        },
    }
    return "Here is the analysis:\n```json\n" + json.dumps(payload, indent=2) + "\n```"


class StubCompletion:
    """Answers synthesis prompts with research text and scoring prompts with JSON.

    Companies named in ``fail_for`` raise an exhausted-retries error.
    """

    def __init__(
        self,
        research: str = RESEARCH_TEXT,
        scoring: str | None = None,
        fail_for: set[str] | None = None,
        delay: float = 0.0,
    ):
        self.research = research
        self.scoring = scoring if scoring is not None else scoring_json()
        self.fail_for = fail_for if fail_for is not None else set()
        self.delay = delay
        self.calls: list[dict] = []
        self.active = 0
        self.peak = 0
        self.closed = False

    async def complete(self, prompt, model, max_tokens=16000, system=None, use_web_search=False):
        self.calls.append({"prompt": prompt, "model": model, "system": system})
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for name in self.fail_for:
                if name in prompt:
                    raise UpstreamError(
                        "completion",
                        "completion failed after 3 attempts. Last error: HTTP 529: Overloaded",
                        status_code=529,
                        attempts=3,
                    )
            text = self.scoring if system == SCORING_SYSTEM_PROMPT else self.research
            return CompletionResult(text=text, input_tokens=100, output_tokens=50)
        finally:
            self.active -= 1

    async def close(self):
        self.closed = True


class StubExa:
    """Returns one canned hit per search; queries containing a ``failing`` marker raise."""

    def __init__(
        self,
        homepage: str = ACME_HOMEPAGE,
        failing: set[str] | None = None,
        homepage_fails: bool = False,
    ):
        self.homepage = homepage
        self.failing = failing or set()
        self.homepage_fails = homepage_fails
        self.searches: list[tuple[str, dict]] = []
        self.crawled: list[str] = []
        self.closed = False

    async def search(self, query, **kwargs):
        self.searches.append((query, kwargs))
        if any(marker in query for marker in self.failing):
            raise UpstreamError("exa", "exa failed after 3 attempts. Last error: HTTP 500: boom", status_code=500)
        return [
            SearchHit(
                title=f"Result for {query}",
                url="https://news.example.com/1",
                published_date="2025-06-01T00:00:00.000Z",
                highlights=["Acme launched Acme Match."],
            )
        ]

    async def contents(self, ids, **kwargs):
        self.crawled.extend(ids)
        if self.homepage_fails:
            raise UpstreamError("exa", "HTTP 500: crawl failed", status_code=500)
        return [
            SearchHit(
                title="Acme",
                url=ids[0],
                text=self.homepage,
                subpages=[SearchHit(title="Pricing", url=f"{ids[0]}/pricing", text="Plans from $99")],
            )
        ]

    async def close(self):
        self.closed = True
