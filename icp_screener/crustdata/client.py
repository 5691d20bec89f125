"""Crustdata API client: company/person discovery and email enrichment."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from icp_screener.config import Config
from icp_screener.crustdata.models import (
    DiscoveredCompany,
    DiscoveredPerson,
    EnrichResult,
    SearchPage,
)
from icp_screener.errors import InvalidInput, UpstreamError
from icp_screener.gateway import Gateway, RetryPolicy

logger = logging.getLogger(__name__)

CRUSTDATA_BASE_URL = "https://api.crustdata.com"

DEFAULT_COMPANY_SORTS = [{"column": "employee_metrics.latest_count", "order": "desc"}]

ACTIONS = (
    "autocomplete",
    "people_autocomplete",
    "search",
    "linkedin_company_search",
    "filters_autocomplete",
    "people_search",
    "person_enrich",
)


class CrustdataClient:
    """Async client for the Crustdata screener endpoints."""

    def __init__(
        self,
        api_key: str = "",
        gateway: Gateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.gateway = gateway or Gateway("crustdata", RetryPolicy(base_delay=2.0, timeout=60.0))
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Config) -> "CrustdataClient":
        return cls(
            api_key=config.crustdata_api_key,
            gateway=Gateway(
                "crustdata",
                RetryPolicy(
                    attempts=config.retry_attempts,
                    base_delay=config.search_retry_base,
                    timeout=config.crustdata_timeout,
                ),
            ),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=CRUSTDATA_BASE_URL,
                headers={
                    "Authorization": f"Token {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json, text/plain, */*",
                },
                timeout=self.gateway.policy.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, endpoint: str, payload: dict) -> dict:
        if not self.api_key:
            raise InvalidInput("CRUSTDATA_API_KEY not configured")
        client = await self._get_client()
        logger.debug("Crustdata POST %s", endpoint)
        response = await self.gateway.request(client, "POST", endpoint, json=payload)
        return response.data

    # ------------------------------------------------------------------
    # Action dispatch (used by the /api/crustdata proxy)
    # ------------------------------------------------------------------

    async def dispatch(self, action: str, params: dict[str, Any]) -> dict:
        """Run one named action with the raw request params; returns raw JSON."""
        p = params
        if action == "autocomplete":
            return await self.autocomplete(p.get("field", ""), p.get("query", ""), p.get("limit") or 10)
        if action == "people_autocomplete":
            return await self.people_autocomplete(p.get("field", ""), p.get("query", ""), p.get("limit") or 10)
        if action == "search":
            return await self.search_companies(
                p.get("filters"), sorts=p.get("sorts"), limit=p.get("limit") or 25, cursor=p.get("cursor"),
            )
        if action == "linkedin_company_search":
            return await self.linkedin_company_search(
                p.get("filters") or [], page=p.get("page") or 1, limit=p.get("limit") or 25,
            )
        if action == "filters_autocomplete":
            return await self.filters_autocomplete(
                p.get("filter_type", ""), p.get("query") or "", p.get("limit") or 10,
            )
        if action == "people_search":
            return await self.search_people(p.get("filters"), limit=p.get("limit") or 50, cursor=p.get("cursor"))
        if action == "person_enrich":
            result = await self.enrich_person(p.get("linkedin_profile_url", ""), fields=p.get("fields"))
            if not result.found:
                return {"error": result.message, "status_code": 404}
            return result.profile
        raise InvalidInput(f"Invalid action: {action!r}")

    # ------------------------------------------------------------------
    # Typed actions
    # ------------------------------------------------------------------

    async def autocomplete(self, field: str, query: str, limit: int = 10) -> dict:
        """Value suggestions for a companydb filter field."""
        return await self._post(
            "/screener/companydb/autocomplete", {"field": field, "query": query, "limit": limit},
        )

    async def people_autocomplete(self, field: str, query: str, limit: int = 10) -> dict:
        return await self._post(
            "/screener/persondb/autocomplete", {"field": field, "query": query, "limit": limit},
        )

    async def search_companies(
        self,
        filters: Any,
        sorts: list[dict] | None = None,
        limit: int = 25,
        cursor: str | None = None,
    ) -> dict:
        """In-DB company search, largest headcount first unless sorted otherwise."""
        payload: dict[str, Any] = {
            "filters": filters,
            "sorts": sorts or DEFAULT_COMPANY_SORTS,
            "limit": limit,
        }
        if cursor:
            payload["cursor"] = cursor
        return await self._post("/screener/companydb/search", payload)

    async def linkedin_company_search(self, filters: list, page: int = 1, limit: int = 25) -> dict:
        return await self._post("/screener/screen", {"filters": filters, "page": page, "limit": limit})

    async def filters_autocomplete(self, filter_type: str, query: str = "", limit: int = 10) -> dict:
        return await self._post(
            "/screener/filters/autocomplete",
            {"filter_type": filter_type, "query": query, "limit": limit},
        )

    async def search_people(self, filters: Any, limit: int = 50, cursor: str | None = None) -> dict:
        payload: dict[str, Any] = {"filters": filters, "limit": limit}
        if cursor:
            payload["cursor"] = cursor
        return await self._post("/screener/persondb/search", payload)

    async def enrich_person(self, linkedin_profile_url: str, fields: str | None = None) -> EnrichResult:
        """Realtime enrichment for one LinkedIn profile.

        A 404 means the profile is not in Crustdata's DB yet and has been
        queued; it comes back as ``found=False, queued=True`` instead of
        raising.
        """
        if not self.api_key:
            raise InvalidInput("CRUSTDATA_API_KEY not configured")
        params: dict[str, str] = {}
        if linkedin_profile_url:
            params["linkedin_profile_url"] = linkedin_profile_url
        if fields:
            params["fields"] = fields
        params["enrich_realtime"] = "true"

        client = await self._get_client()
        try:
            response = await self.gateway.request(client, "GET", "/screener/person/enrich", params=params)
        except UpstreamError as e:
            if e.status_code == 404:
                logger.info("Crustdata enrich miss for %s: %s", linkedin_profile_url, e.message)
                return EnrichResult(found=False, queued=True, message="Profile not found")
            raise

        data = response.data
        # The endpoint answers with a list of profiles for a single URL
        profile = data[0] if isinstance(data, list) and data else data
        if not isinstance(profile, dict):
            profile = {}
        return EnrichResult(found=True, email=extract_email(profile), profile=profile)

    # ------------------------------------------------------------------
    # Typed search wrappers
    # ------------------------------------------------------------------

    async def discover_companies(
        self,
        filters: Any,
        *,
        linkedin: bool = False,
        page: int = 1,
        cursor: str | None = None,
        limit: int = 25,
    ) -> SearchPage:
        """Company discovery mapped to ``DiscoveredCompany`` rows with a domain."""
        if linkedin:
            data = await self.linkedin_company_search(filters or [], page=page, limit=limit)
            records = data.get("companies") or data.get("profiles") or []
        else:
            data = await self.search_companies(filters, limit=limit, cursor=cursor)
            records = data.get("companies") or []
        companies = [c for c in (map_company(r) for r in records if r) if c.domain]
        return SearchPage(
            companies=companies,
            next_cursor=data.get("next_cursor"),
            total_count=data.get("total_count") or data.get("total_display_count") or 0,
        )

    async def discover_people(self, filters: Any, limit: int = 50, cursor: str | None = None) -> SearchPage:
        data = await self.search_people(filters, limit=limit, cursor=cursor)
        return SearchPage(
            people=[map_person(p) for p in data.get("profiles") or [] if p],
            next_cursor=data.get("next_cursor"),
            total_count=data.get("total_count") or 0,
        )


# ----------------------------------------------------------------------
# Mapping helpers
# ----------------------------------------------------------------------

def extract_email(profile: dict) -> str:
    """Business email from an enrich payload.

    Looks at the top-level ``business_email`` (list or string), then the
    ``business_emails`` keys of current employers, then past employers.
    """
    value = profile.get("business_email")
    if isinstance(value, list):
        value = value[0] if value else ""
    if value:
        return str(value)

    for key in ("current_employers", "past_employers"):
        for employer in profile.get(key) or []:
            emails = employer.get("business_emails") if isinstance(employer, dict) else None
            if isinstance(emails, dict) and emails:
                return next(iter(emails))
    return ""


def build_people_filters(
    domains: list[str],
    titles: list[str] | None = None,
    functions: list[str] | None = None,
    verified_email_only: bool = False,
    recently_changed_jobs: bool = False,
) -> dict | None:
    """persondb filter tree for contacts at the given company domains.

    Returns None when no domain is given. Multiple titles become an OR
    group of fuzzy matches; the whole tree is always wrapped in ``and``.
    """
    domains = [d for d in domains if d]
    if not domains:
        return None

    conditions: list[dict] = []
    column = "current_employers.company_website_domain"
    if len(domains) == 1:
        conditions.append({"column": column, "type": "=", "value": domains[0]})
    else:
        conditions.append({"column": column, "type": "in", "value": domains})

    titles = [t.strip() for t in titles or [] if t.strip()]
    if len(titles) == 1:
        conditions.append({"column": "current_employers.title", "type": "(.)", "value": titles[0]})
    elif titles:
        conditions.append({
            "op": "or",
            "conditions": [
                {"column": "current_employers.title", "type": "(.)", "value": t} for t in titles
            ],
        })

    if functions:
        conditions.append({"column": "current_employers.function_category", "type": "in", "value": functions})
    if verified_email_only:
        conditions.append({"column": "current_employers.business_email_verified", "type": "=", "value": True})
    if recently_changed_jobs:
        conditions.append({"column": "recently_changed_jobs", "type": "=", "value": True})

    return {"op": "and", "conditions": conditions}


EMPLOYEE_RANGES: dict[str, tuple[int, int | None]] = {
    "1-10": (1, 10),
    "11-50": (11, 50),
    "51-200": (51, 200),
    "201-500": (201, 500),
    "501-1000": (501, 1000),
    "1001-5000": (1001, 5000),
    "5001-10000": (5001, 10000),
    "10001+": (10001, None),
}


def build_company_filters(
    conditions: list[dict] | None = None,
    employee_ranges: list[str] | None = None,
    exclude_domains: list[str] | None = None,
) -> dict | None:
    """companydb filter tree.

    ``conditions`` are ``{"filter_type", "type", "value"}`` dicts; empty
    values are dropped. Employee range labels collapse into one numeric
    ``=>`` / ``=<`` pair on ``employee_metrics.latest_count`` (``10001+``
    removes the upper bound). Returns None when nothing is left to filter on.
    """
    built: list[dict] = []
    for cond in conditions or []:
        value = cond.get("value")
        if value in ("", None, []):
            continue
        built.append({"filter_type": cond["filter_type"], "type": cond.get("type", "="), "value": value})

    bounds = [EMPLOYEE_RANGES[r] for r in employee_ranges or [] if r in EMPLOYEE_RANGES]
    if bounds:
        low = min(lo for lo, _ in bounds)
        highs = [hi for _, hi in bounds]
        built.append({"filter_type": "employee_metrics.latest_count", "type": "=>", "value": low})
        if None not in highs:
            built.append({"filter_type": "employee_metrics.latest_count", "type": "=<", "value": max(highs)})  # type: ignore[type-var]

    if not built:
        return None
    if exclude_domains:
        built.append({"filter_type": "company_website_domain", "type": "not_in", "value": list(exclude_domains)})
    return {"op": "and", "conditions": built}


def _clean_domain(raw: str) -> str:
    domain = raw.strip()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    if domain.startswith("www."):
        domain = domain[4:]
    return domain.rstrip("/")


def map_company(record: dict) -> DiscoveredCompany:
    raw_domain = (
        record.get("website_domain")
        or record.get("company_website_domain")
        or record.get("website")
        or ""
    )
    domain = _clean_domain(raw_domain)
    industries = record.get("linkedin_industries")
    if isinstance(industries, list):
        industry = ", ".join(industries)
    else:
        industry = record.get("industry") or record.get("linkedin_industry") or ""
    metrics = record.get("employee_metrics") or {}

    return DiscoveredCompany(
        name=record.get("company_name") or record.get("name") or "",
        domain=domain,
        website=f"https://{domain}" if domain else "",
        industry=industry,
        employees=metrics.get("latest_count") or record.get("company_headcount") or record.get("employee_count") or 0,
        funding=record.get("last_funding_round_type") or "",
        total_funding=record.get("crunchbase_total_investment_usd") or 0,
        location=record.get("hq_location") or record.get("location") or record.get("hq") or "",
    )


def map_person(profile: dict) -> DiscoveredPerson:
    current = (profile.get("current_employers") or [{}])[0] or {}
    return DiscoveredPerson(
        id=str(profile.get("person_id") or ""),
        name=profile.get("name") or "",
        headline=profile.get("headline") or "",
        title=current.get("title") or "",
        company=current.get("name") or "",
        company_domain=current.get("company_website_domain") or "",
        seniority=current.get("seniority_level") or "",
        function=current.get("function_category") or "",
        linkedin=profile.get("linkedin_profile_url") or "",
        region=profile.get("region") or "",
        email_verified=bool(current.get("business_email_verified")),
        recent_job_change=bool(profile.get("recently_changed_jobs")),
    )
