import json
from datetime import date

import httpx
import pytest

from icp_screener.gateway import Gateway, RetryPolicy
from icp_screener.models import SearchHit
from icp_screener.search.evidence import (
    HOMEPAGE_MISSING,
    NO_RESULTS,
    SEARCH_SECTIONS,
    SUBPAGES_MISSING,
    EvidenceAggregator,
    format_results,
    full_url,
)
from icp_screener.search.exa_client import ExaClient

from tests.helpers.stubs import ACME_HOMEPAGE, StubExa

OPENING_HEADERS = [
    "=== HOMEPAGE CONTENT (crawled from https://acme.com via Exa) ===",
    "=== PRODUCT / SUBPAGES (crawled from links on homepage) ===",
    *[f"=== {header} ===" for _, header, _ in SEARCH_SECTIONS],
]


@pytest.mark.asyncio
async def test_gather_orders_sections_and_includes_homepage():
    aggregator = EvidenceAggregator(StubExa())

    evidence = await aggregator.gather("Acme", "acme.com")

    positions = [evidence.text.index(h) for h in OPENING_HEADERS]
    assert positions == sorted(positions)
    assert evidence.text.startswith(OPENING_HEADERS[0] + "\n" + ACME_HOMEPAGE)
    assert evidence.homepage_content == ACME_HOMEPAGE
    assert "PAGE: Pricing\nURL: https://acme.com/pricing\nPlans from $99" in evidence.text
    assert evidence.failures == []


@pytest.mark.asyncio
async def test_partial_failures_degrade_to_placeholders():
    exa = StubExa(failing={"case study", "LinkedIn"}, homepage_fails=True)
    aggregator = EvidenceAggregator(exa)

    evidence = await aggregator.gather("Acme", "https://acme.com")

    assert evidence.failures == ["homepage", "case_studies", "linkedin"]
    assert evidence.homepage_content == ""
    for header in OPENING_HEADERS:
        assert header in evidence.text
    for closing in ["HOMEPAGE CONTENT", "PRODUCT / SUBPAGES", *[c for _, _, c in SEARCH_SECTIONS]]:
        assert f"=== END {closing} ===" in evidence.text
    assert f"{OPENING_HEADERS[0]}\n{HOMEPAGE_MISSING}\n=== END HOMEPAGE CONTENT ===" in evidence.text
    assert SUBPAGES_MISSING in evidence.text
    assert f"=== CASE STUDIES & CUSTOMER OUTCOMES ===\n{NO_RESULTS}\n=== END CASE STUDIES ===" in evidence.text
    assert f"=== LINKEDIN COMPANY INFO ===\n{NO_RESULTS}\n=== END LINKEDIN ===" in evidence.text
    assert "Result for Acme product launch announcement partnership" in evidence.text


@pytest.mark.asyncio
async def test_date_windows_follow_injected_clock():
    exa = StubExa()
    aggregator = EvidenceAggregator(exa, today=lambda: date(2026, 1, 1))

    await aggregator.gather("Acme", "acme.com")

    by_query = {query: kwargs for query, kwargs in exa.searches}
    news = by_query["Acme product launch announcement partnership"]
    ceo = by_query["Acme CEO founder vision strategy direction"]
    assert news["start_published_date"] == "2024-01-02"
    assert news["category"] == "news"
    assert ceo["start_published_date"] == "2025-07-05"
    assert len(exa.searches) == 7
    assert exa.crawled == ["https://acme.com"]


def test_format_results_numbers_citations_and_prefers_text():
    hits = [
        SearchHit(title="Launch", url="https://a.test", published_date="2025-02-03T10:00:00Z", text="Body"),
        SearchHit(url="https://b.test", highlights=["one", "two"]),
        SearchHit(title="Summary only", url="https://c.test", summary="Short"),
    ]

    rendered = format_results(hits)

    assert rendered.startswith("[1] Launch (2025-02-03)\nURL: https://a.test\nBody")
    assert "[2] Untitled\nURL: https://b.test\none\ntwo" in rendered
    assert "[3] Summary only\nURL: https://c.test\nShort" in rendered
    assert format_results([]) == NO_RESULTS


def test_full_url_adds_scheme_once():
    assert full_url("acme.com") == "https://acme.com"
    assert full_url("http://acme.com") == "http://acme.com"


@pytest.mark.asyncio
async def test_exa_client_sends_camel_case_body_and_parses_hits():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers["x-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "results": [
                {
                    "id": "https://news.test/acme",
                    "title": None,
                    "publishedDate": "2025-05-01",
                    "highlights": ["Acme raised a Series B"],
                }
            ]
        })

    exa = ExaClient(
        api_key="exa-key",
        gateway=Gateway("exa", RetryPolicy(attempts=1)),
        transport=httpx.MockTransport(handler),
    )
    try:
        hits = await exa.search(
            "Acme funding", num_results=5, category="news", include_domains=["techcrunch.com"],
        )
    finally:
        await exa.close()

    assert seen["path"] == "/search"
    assert seen["key"] == "exa-key"
    assert seen["body"] == {
        "type": "auto",
        "query": "Acme funding",
        "numResults": 5,
        "category": "news",
        "includeDomains": ["techcrunch.com"],
    }
    assert hits == [
        SearchHit(
            url="https://news.test/acme",
            published_date="2025-05-01",
            highlights=["Acme raised a Series B"],
        )
    ]


@pytest.mark.asyncio
async def test_exa_contents_requests_subpages():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "results": [{
                "url": "https://acme.com",
                "text": ACME_HOMEPAGE,
                "subpages": [{"url": "https://acme.com/pricing", "text": "Plans"}],
            }]
        })

    exa = ExaClient(api_key="k", transport=httpx.MockTransport(handler))
    try:
        hits = await exa.contents(
            ["https://acme.com"], text={"maxCharacters": 12000}, subpages=5, subpage_target=["pricing"],
        )
    finally:
        await exa.close()

    assert seen["path"] == "/contents"
    assert seen["body"] == {
        "ids": ["https://acme.com"],
        "text": {"maxCharacters": 12000},
        "subpages": 5,
        "subpageTarget": ["pricing"],
    }
    assert hits[0].text == ACME_HOMEPAGE
    assert hits[0].subpages[0].url == "https://acme.com/pricing"
