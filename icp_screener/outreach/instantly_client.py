"""Instantly v2 client: push campaign contacts as leads."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from icp_screener.config import Config
from icp_screener.errors import InvalidInput
from icp_screener.gateway import Gateway, RetryPolicy
from icp_screener.models import CampaignMessage, Contact

logger = logging.getLogger(__name__)

INSTANTLY_BASE_URL = "https://api.instantly.ai/api/v2"
MAX_LEADS_PER_REQUEST = 1000


class InstantlyClient:
    def __init__(
        self,
        api_key: str = "",
        gateway: Gateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.gateway = gateway or Gateway("instantly", RetryPolicy(base_delay=2.0, timeout=30.0))
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Config) -> "InstantlyClient":
        return cls(
            api_key=config.instantly_api_key,
            gateway=Gateway(
                "instantly",
                RetryPolicy(
                    attempts=config.retry_attempts,
                    base_delay=config.search_retry_base,
                    timeout=config.instantly_timeout,
                ),
            ),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise InvalidInput("INSTANTLY_API_KEY not configured")
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=INSTANTLY_BASE_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.gateway.policy.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def dispatch(self, action: str, params: dict[str, Any]) -> dict:
        if action == "add_leads":
            return await self.add_leads(params.get("campaign_id", ""), params.get("leads") or [])
        if action == "list_campaigns":
            return await self.list_campaigns()
        raise InvalidInput(f"Unknown action: {action}")

    async def add_leads(self, campaign_id: str, leads: list[dict]) -> dict:
        """Bulk-add leads to a campaign; leads already in the workspace are skipped."""
        if not campaign_id:
            raise InvalidInput("campaign_id is required")
        if not leads:
            raise InvalidInput("No leads provided")
        if len(leads) > MAX_LEADS_PER_REQUEST:
            raise InvalidInput(f"Maximum {MAX_LEADS_PER_REQUEST} leads per request")

        payload = {
            "campaign_id": campaign_id,
            "leads": leads,
            "skip_if_in_workspace": True,
            "verify_leads_on_import": False,
        }
        logger.info("Adding %d leads to Instantly campaign %s", len(leads), campaign_id)
        client = await self._get_client()
        response = await self.gateway.request(client, "POST", "/leads/add", json=payload)
        return response.data

    async def list_campaigns(self) -> dict:
        """Active campaigns (status=1), first 50."""
        client = await self._get_client()
        response = await self.gateway.request(
            client, "GET", "/campaigns", params={"limit": 50, "status": 1},
        )
        return response.data


def email_variables(messages: list[CampaignMessage]) -> dict[str, str]:
    """``email_{n}_subject`` / ``email_{n}_body`` for the email steps, in step order."""
    steps = sorted((m for m in messages if m.channel == "email"), key=lambda m: m.step_number)
    variables: dict[str, str] = {}
    for n, msg in enumerate(steps, start=1):
        variables[f"email_{n}_subject"] = msg.subject
        variables[f"email_{n}_body"] = msg.body
    return variables


def build_lead(contact: Contact, company_name: str = "", messages: list[CampaignMessage] | None = None) -> dict:
    """Instantly lead payload for one contact; the name splits on whitespace."""
    parts = contact.name.split()
    lead = {
        "email": contact.email,
        "first_name": parts[0] if parts else "",
        "last_name": " ".join(parts[1:]),
        "company_name": company_name or contact.company_name,
        "title": contact.title,
        "linkedin_url": contact.linkedin,
    }
    lead.update(email_variables(messages or []))
    return lead


def build_leads(contacts: list[Contact], messages: list[CampaignMessage]) -> list[dict]:
    """Leads for every contact that has an email address."""
    return [build_lead(c, messages=messages) for c in contacts if c.email]
