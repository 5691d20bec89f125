"""Outreach routes: contacts, campaigns, messages, Instantly push."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from icp_screener.models import CampaignMessage, Contact
from icp_screener.outreach.instantly_client import InstantlyClient, build_leads
from icp_screener.web.deps import get_config, get_store

router = APIRouter(tags=["outreach"])


def _get_instantly() -> InstantlyClient:
    return InstantlyClient.from_config(get_config())


def _not_configured() -> JSONResponse:
    return JSONResponse(
        {"error": "INSTANTLY_API_KEY not configured. Add it to your .env file."}, status_code=500,
    )


class ContactUpdate(BaseModel):
    name: str | None = None
    title: str | None = None
    email: str | None = None
    status: str | None = None


class CampaignCreate(BaseModel):
    name: str = "Untitled Campaign"


class CampaignUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    status: str | None = None


class CampaignContactsRequest(BaseModel):
    contact_ids: list[int]


class PushRequest(BaseModel):
    instantly_campaign_id: str


@router.post("/instantly")
async def instantly_action(body: dict[str, Any] = Body(...)):
    client = _get_instantly()
    if not client.is_configured:
        return _not_configured()
    params = dict(body)
    action = params.pop("action", "")
    try:
        return await client.dispatch(action, params)
    finally:
        await client.close()


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

@router.get("/contacts")
async def list_contacts(company_id: int | None = None):
    store = get_store()
    contacts = store.get_contacts_by_company(company_id) if company_id else store.get_all_contacts()
    return [c.model_dump() for c in contacts]


@router.post("/contacts")
async def save_contacts(contacts: list[Contact]):
    """Upsert contacts on LinkedIn URL."""
    return [c.model_dump() for c in get_store().upsert_contacts(contacts)]


@router.patch("/contacts/{contact_id}")
async def update_contact(contact_id: int, body: ContactUpdate):
    contact = get_store().update_contact(contact_id, **body.model_dump(exclude_none=True))
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact.model_dump()


@router.delete("/contacts/{contact_id}")
async def delete_contact(contact_id: int):
    if not get_store().delete_contact(contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"deleted": contact_id}


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

@router.get("/campaigns")
async def list_campaigns():
    return [c.model_dump() for c in get_store().get_all_campaigns()]


@router.post("/campaigns")
async def create_campaign(body: CampaignCreate):
    return get_store().create_campaign(body.name).model_dump()


@router.get("/campaigns/{campaign_id}")
async def get_campaign(campaign_id: int):
    store = get_store()
    campaign = store.get_campaign(campaign_id)
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return {
        "campaign": campaign.model_dump(),
        "contacts": [c.model_dump() for c in store.get_campaign_contacts(campaign_id)],
        "messages": [m.model_dump() for m in store.get_campaign_messages(campaign_id)],
    }


@router.patch("/campaigns/{campaign_id}")
async def update_campaign(campaign_id: int, body: CampaignUpdate):
    campaign = get_store().update_campaign(campaign_id, **body.model_dump(exclude_none=True))
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign.model_dump()


@router.delete("/campaigns/{campaign_id}")
async def delete_campaign(campaign_id: int):
    if not get_store().delete_campaign(campaign_id):
        raise HTTPException(status_code=404, detail="Campaign not found")
    return {"deleted": campaign_id}


@router.post("/campaigns/{campaign_id}/contacts")
async def add_campaign_contacts(campaign_id: int, body: CampaignContactsRequest):
    added = get_store().add_contacts_to_campaign(campaign_id, body.contact_ids)
    return {"added": added}


@router.delete("/campaigns/{campaign_id}/contacts/{contact_id}")
async def remove_campaign_contact(campaign_id: int, contact_id: int):
    if not get_store().remove_contact_from_campaign(campaign_id, contact_id):
        raise HTTPException(status_code=404, detail="Contact not in campaign")
    return {"removed": contact_id}


@router.put("/campaigns/{campaign_id}/messages")
async def upsert_campaign_message(campaign_id: int, message: CampaignMessage):
    """Create or replace the message for (channel, step_number)."""
    message = message.model_copy(update={"campaign_id": campaign_id})
    return get_store().upsert_campaign_message(message).model_dump()


@router.delete("/campaigns/messages/{message_id}")
async def delete_campaign_message(message_id: int):
    if not get_store().delete_campaign_message(message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"deleted": message_id}


@router.post("/campaigns/{campaign_id}/push")
async def push_to_instantly(campaign_id: int, body: PushRequest):
    """Send every campaign contact with an email to an Instantly campaign."""
    store = get_store()
    if store.get_campaign(campaign_id) is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    leads = build_leads(store.get_campaign_contacts(campaign_id), store.get_campaign_messages(campaign_id))
    if not leads:
        raise HTTPException(status_code=400, detail="No contacts with email addresses found in this campaign.")

    client = _get_instantly()
    if not client.is_configured:
        return _not_configured()
    try:
        result = await client.add_leads(body.instantly_campaign_id, leads)
    finally:
        await client.close()
    return {"pushed": len(leads), "result": result}
