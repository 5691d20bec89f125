"""Async Exa client: neural search and live content crawling."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from icp_screener.config import Config
from icp_screener.gateway import Gateway, RetryPolicy
from icp_screener.models import SearchHit

logger = logging.getLogger(__name__)

EXA_BASE_URL = "https://api.exa.ai"


class ExaClient:
    """Async client for Exa's /search and /contents endpoints."""

    def __init__(
        self,
        api_key: str = "",
        gateway: Gateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.gateway = gateway or Gateway("exa", RetryPolicy(base_delay=2.0, timeout=30.0))
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Config) -> "ExaClient":
        return cls(
            api_key=config.exa_api_key,
            gateway=Gateway(
                "exa",
                RetryPolicy(
                    attempts=config.retry_attempts,
                    base_delay=config.search_retry_base,
                    timeout=config.exa_timeout,
                ),
            ),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=EXA_BASE_URL,
                headers={"Content-Type": "application/json", "x-api-key": self.api_key},
                timeout=self.gateway.policy.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def search_raw(self, payload: dict) -> dict:
        """POST /search with a caller-built body; returns Exa's JSON."""
        client = await self._get_client()
        body = {"type": "auto", **payload}
        response = await self.gateway.request(client, "POST", "/search", json=body)
        return response.data

    async def contents_raw(self, payload: dict) -> dict:
        client = await self._get_client()
        response = await self.gateway.request(client, "POST", "/contents", json=payload)
        return response.data

    async def search(
        self,
        query: str,
        *,
        num_results: int = 10,
        category: str | None = None,
        start_published_date: str | None = None,
        end_published_date: str | None = None,
        include_domains: list[str] | None = None,
        exclude_domains: list[str] | None = None,
        contents: dict | None = None,
    ) -> list[SearchHit]:
        """Run a query and return its results."""
        payload: dict[str, Any] = {"query": query, "numResults": num_results}

        if category:
            payload["category"] = category
        if start_published_date:
            payload["startPublishedDate"] = start_published_date
        if end_published_date:
            payload["endPublishedDate"] = end_published_date
        if include_domains:
            payload["includeDomains"] = include_domains
        if exclude_domains:
            payload["excludeDomains"] = exclude_domains
        if contents:
            payload["contents"] = contents

        data = await self.search_raw(payload)
        return _parse_results(data)

    async def contents(
        self,
        ids: list[str],
        *,
        text: dict | bool | None = None,
        highlights: dict | None = None,
        summary: dict | None = None,
        subpages: int | None = None,
        subpage_target: list[str] | None = None,
        max_age_hours: int | None = None,
        livecrawl_timeout: int | None = None,
    ) -> list[SearchHit]:
        """Crawl the given URLs (optionally with subpages)."""
        payload: dict[str, Any] = {"ids": ids}

        if text is not None:
            payload["text"] = text
        if highlights is not None:
            payload["highlights"] = highlights
        if summary is not None:
            payload["summary"] = summary
        if subpages is not None:
            payload["subpages"] = subpages
        if subpage_target:
            payload["subpageTarget"] = subpage_target
        if max_age_hours is not None:
            payload["maxAgeHours"] = max_age_hours
        if livecrawl_timeout is not None:
            payload["livecrawlTimeout"] = livecrawl_timeout

        data = await self.contents_raw(payload)
        return _parse_results(data)


def _parse_results(data: dict) -> list[SearchHit]:
    results = []
    for item in (data or {}).get("results", []) or []:
        results.append(_parse_hit(item))
    return results


def _parse_hit(item: dict) -> SearchHit:
    return SearchHit(
        title=item.get("title"),
        url=item.get("url") or item.get("id"),
        published_date=item.get("publishedDate"),
        text=item.get("text"),
        highlights=item.get("highlights"),
        summary=item.get("summary"),
        subpages=[_parse_hit(sp) for sp in item.get("subpages") or []],
    )
