"""Crustdata discovery routes: company/people search, enrichment, saved filters."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from icp_screener.crustdata.client import (
    CrustdataClient,
    build_company_filters,
    build_people_filters,
)
from icp_screener.input.reader import import_companies
from icp_screener.models import CompanyInput, Contact, SavedFilter
from icp_screener.web.deps import get_config, get_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["discovery"])


def _get_crustdata() -> CrustdataClient:
    return CrustdataClient.from_config(get_config())


def _not_configured() -> JSONResponse:
    return JSONResponse({"error": "CRUSTDATA_API_KEY not configured"}, status_code=500)


class CompanySearchRequest(BaseModel):
    conditions: list[dict] = []
    employee_ranges: list[str] = []
    linkedin: bool = False
    page: int = 1
    cursor: str | None = None
    limit: int = 25


class PeopleSearchRequest(BaseModel):
    company_ids: list[int] = []
    titles: list[str] = []
    functions: list[str] = []
    verified_email_only: bool = False
    recently_changed_jobs: bool = False
    cursor: str | None = None
    limit: int = 50


class ImportRequest(BaseModel):
    companies: list[CompanyInput]


@router.post("/crustdata")
async def crustdata_action(body: dict[str, Any] = Body(...)):
    """Pass-through for ``{"action": ..., **params}`` requests."""
    client = _get_crustdata()
    if not client.is_configured:
        return _not_configured()
    params = dict(body)
    action = params.pop("action", "")
    try:
        return await client.dispatch(action, params)
    finally:
        await client.close()


@router.post("/discovery/companies")
async def discover_companies(req: CompanySearchRequest):
    """Company search; domains already in the store are filtered out."""
    client = _get_crustdata()
    if not client.is_configured:
        return _not_configured()

    known = [c.domain for c in get_store().list_companies()]
    if req.linkedin:
        filters: Any = [c for c in req.conditions if c.get("value") not in ("", None, [])]
        if not filters:
            raise HTTPException(status_code=400, detail="Add at least one filter.")
    else:
        filters = build_company_filters(req.conditions, req.employee_ranges, exclude_domains=known)
        if filters is None:
            raise HTTPException(status_code=400, detail="Add at least one filter.")

    try:
        page = await client.discover_companies(
            filters, linkedin=req.linkedin, page=req.page, cursor=req.cursor, limit=req.limit,
        )
    finally:
        await client.close()

    known_set = set(known)
    page.companies = [c for c in page.companies if c.domain not in known_set]
    return page.model_dump()


@router.post("/discovery/import")
async def import_discovered(req: ImportRequest):
    summary = import_companies(get_store(), req.companies)
    return {
        "created": summary.created,
        "existing": summary.existing,
        "skipped": summary.skipped,
        "companies": [c.model_dump() for c in summary.companies],
    }


@router.post("/discovery/people")
async def discover_people(req: PeopleSearchRequest):
    """Contacts at the given companies (by id)."""
    store = get_store()
    domains = [c.domain for c in (store.get_company(i) for i in req.company_ids) if c]
    filters = build_people_filters(
        domains, req.titles, req.functions, req.verified_email_only, req.recently_changed_jobs,
    )
    if filters is None:
        raise HTTPException(status_code=400, detail="Select at least one company.")

    client = _get_crustdata()
    if not client.is_configured:
        return _not_configured()
    try:
        page = await client.discover_people(filters, limit=req.limit, cursor=req.cursor)
    finally:
        await client.close()
    return page.model_dump()


@router.post("/contacts/{contact_id}/enrich")
async def enrich_contact(contact_id: int):
    """Look up a business email for a saved contact via its LinkedIn URL."""
    store = get_store()
    contact = store.get_contact(contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    if contact.email:
        return {"contact": contact.model_dump(), "found": True, "queued": False}
    if not contact.linkedin:
        raise HTTPException(status_code=400, detail="Contact has no LinkedIn URL")

    client = _get_crustdata()
    if not client.is_configured:
        return _not_configured()
    try:
        result = await client.enrich_person(contact.linkedin, fields="business_email")
    finally:
        await client.close()

    updated: Contact | None = contact
    if result.email:
        updated = store.update_contact(contact_id, email=result.email)
    return {
        "contact": updated.model_dump() if updated else None,
        "found": result.found and bool(result.email),
        "queued": result.queued,
        "message": result.message,
    }


# ---------------------------------------------------------------------------
# Saved filters
# ---------------------------------------------------------------------------

@router.get("/filters")
async def list_saved_filters():
    return [f.model_dump() for f in get_store().get_saved_filters()]


@router.post("/filters")
async def create_saved_filter(saved: SavedFilter):
    return get_store().create_saved_filter(saved).model_dump()


@router.put("/filters/{filter_id}")
async def update_saved_filter(filter_id: int, saved: SavedFilter):
    if not get_store().update_saved_filter(filter_id, saved):
        raise HTTPException(status_code=404, detail="Filter not found")
    return saved.model_copy(update={"id": filter_id}).model_dump()


@router.delete("/filters/{filter_id}")
async def delete_saved_filter(filter_id: int):
    if not get_store().delete_saved_filter(filter_id):
        raise HTTPException(status_code=404, detail="Filter not found")
    return {"deleted": filter_id}
