import json

import httpx
import pytest

from icp_screener.crustdata.client import (
    CrustdataClient,
    build_company_filters,
    build_people_filters,
    extract_email,
    map_company,
    map_person,
)
from icp_screener.errors import InvalidInput, UpstreamError
from icp_screener.gateway import Gateway, RetryPolicy


def _client(handler, api_key: str = "cd-key") -> CrustdataClient:
    return CrustdataClient(
        api_key=api_key,
        gateway=Gateway("crustdata", RetryPolicy(attempts=1)),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_enrich_404_is_a_soft_miss():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(404, json={"message": "No profile found, queued for enrichment"})

    client = _client(handler)
    try:
        result = await client.enrich_person("https://linkedin.com/in/ann", fields="business_email")
    finally:
        await client.close()

    assert result.found is False
    assert result.queued is True
    assert result.message == "Profile not found"
    assert seen["url"].path == "/screener/person/enrich"
    assert seen["url"].params["linkedin_profile_url"] == "https://linkedin.com/in/ann"
    assert seen["url"].params["enrich_realtime"] == "true"
    assert seen["auth"] == "Token cd-key"


@pytest.mark.asyncio
async def test_enrich_reads_email_from_first_profile():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"name": "Ann Lee", "business_email": ["ann@acme.com"]}])

    client = _client(handler)
    try:
        result = await client.enrich_person("https://linkedin.com/in/ann")
    finally:
        await client.close()

    assert result.found is True
    assert result.email == "ann@acme.com"
    assert result.profile["name"] == "Ann Lee"


@pytest.mark.asyncio
async def test_enrich_server_errors_still_raise():
    client = _client(lambda request: httpx.Response(500, json={"error": "down"}))
    try:
        with pytest.raises(UpstreamError):
            await client.enrich_person("https://linkedin.com/in/ann")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_dispatch_person_enrich_miss_returns_error_payload():
    client = _client(lambda request: httpx.Response(404, json={}))
    try:
        payload = await client.dispatch("person_enrich", {"linkedin_profile_url": "https://linkedin.com/in/x"})
    finally:
        await client.close()

    assert payload == {"error": "Profile not found", "status_code": 404}


@pytest.mark.asyncio
async def test_dispatch_rejects_unknown_action():
    client = _client(lambda request: httpx.Response(200, json={}))
    with pytest.raises(InvalidInput, match="Invalid action"):
        await client.dispatch("delete_everything", {})


@pytest.mark.asyncio
async def test_requests_without_key_are_rejected():
    client = _client(lambda request: httpx.Response(200, json={}), api_key="")

    assert client.is_configured is False
    with pytest.raises(InvalidInput):
        await client.autocomplete("linkedin_industries", "logis")


@pytest.mark.asyncio
async def test_discover_companies_maps_rows_and_drops_missing_domains():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "companies": [
                {
                    "company_name": "Acme",
                    "company_website_domain": "https://www.acme.com/",
                    "linkedin_industries": ["Logistics", "Software"],
                    "employee_metrics": {"latest_count": 240},
                    "crunchbase_total_investment_usd": 42000000,
                    "hq_location": "Chicago",
                },
                {"company_name": "No Domain Inc"},
            ],
            "next_cursor": "abc",
            "total_count": 2,
        })

    filters = build_company_filters([{"filter_type": "linkedin_industries", "type": "in", "value": ["Logistics"]}])
    client = _client(handler)
    try:
        page = await client.discover_companies(filters, limit=10)
    finally:
        await client.close()

    assert seen["path"] == "/screener/companydb/search"
    assert seen["body"]["limit"] == 10
    assert seen["body"]["sorts"] == [{"column": "employee_metrics.latest_count", "order": "desc"}]
    assert page.next_cursor == "abc"
    (acme,) = page.companies
    assert acme.domain == "acme.com"
    assert acme.website == "https://acme.com"
    assert acme.industry == "Logistics, Software"
    assert acme.employees == 240
    assert acme.total_funding == 42000000


@pytest.mark.asyncio
async def test_discover_people_maps_current_employer():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"profiles": [{
            "person_id": 7,
            "name": "Ann Lee",
            "linkedin_profile_url": "https://linkedin.com/in/ann",
            "recently_changed_jobs": True,
            "current_employers": [{
                "title": "VP Marketing",
                "name": "Acme",
                "company_website_domain": "acme.com",
                "business_email_verified": True,
            }],
        }]})

    client = _client(handler)
    try:
        page = await client.discover_people(build_people_filters(["acme.com"]))
    finally:
        await client.close()

    (person,) = page.people
    assert person.id == "7"
    assert person.title == "VP Marketing"
    assert person.company_domain == "acme.com"
    assert person.email_verified is True
    assert person.recent_job_change is True


def test_people_filters_single_domain_and_title():
    filters = build_people_filters(["acme.com"], titles=["CMO"])

    assert filters == {
        "op": "and",
        "conditions": [
            {"column": "current_employers.company_website_domain", "type": "=", "value": "acme.com"},
            {"column": "current_employers.title", "type": "(.)", "value": "CMO"},
        ],
    }


def test_people_filters_multiple_titles_become_or_group():
    filters = build_people_filters(
        ["acme.com", "globex.com"], titles=["CMO", " VP Marketing "], verified_email_only=True,
    )

    domains, titles, verified = filters["conditions"]
    assert domains["type"] == "in"
    assert titles["op"] == "or"
    assert [c["value"] for c in titles["conditions"]] == ["CMO", "VP Marketing"]
    assert verified["column"] == "current_employers.business_email_verified"


def test_people_filters_need_a_domain():
    assert build_people_filters([]) is None
    assert build_people_filters([""]) is None


def test_company_filters_collapse_employee_ranges_and_exclude_known():
    filters = build_company_filters(
        [{"filter_type": "hq_country", "type": "=", "value": "USA"}, {"filter_type": "x", "value": ""}],
        employee_ranges=["51-200", "201-500"],
        exclude_domains=["acme.com"],
    )

    assert filters["conditions"] == [
        {"filter_type": "hq_country", "type": "=", "value": "USA"},
        {"filter_type": "employee_metrics.latest_count", "type": "=>", "value": 51},
        {"filter_type": "employee_metrics.latest_count", "type": "=<", "value": 500},
        {"filter_type": "company_website_domain", "type": "not_in", "value": ["acme.com"]},
    ]


def test_company_filters_open_ended_range_and_empty():
    filters = build_company_filters(employee_ranges=["10001+"])

    assert filters["conditions"] == [
        {"filter_type": "employee_metrics.latest_count", "type": "=>", "value": 10001},
    ]
    assert build_company_filters([], exclude_domains=["acme.com"]) is None


def test_extract_email_prefers_top_level_then_employers():
    assert extract_email({"business_email": "ann@acme.com"}) == "ann@acme.com"
    assert extract_email({"business_email": [], "current_employers": [
        {"business_emails": {"ann@acme.com": {"verified": True}}},
    ]}) == "ann@acme.com"
    assert extract_email({"past_employers": [{"business_emails": {"ann@old.com": {}}}]}) == "ann@old.com"
    assert extract_email({}) == ""


def test_map_company_and_person_tolerate_sparse_records():
    company = map_company({"name": "Bare", "website": "http://bare.io/"})
    person = map_person({"name": "Solo"})

    assert (company.domain, company.employees, company.industry) == ("bare.io", 0, "")
    assert (person.title, person.email_verified) == ("", False)
