"""Pydantic models for Crustdata discovery and enrichment responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DiscoveredCompany(BaseModel):
    """A company row from companydb search or the LinkedIn screener."""
    name: str = ""
    domain: str = ""
    website: str = ""
    industry: str = ""
    employees: int = 0
    funding: str = ""  # last round type, e.g. series_a
    total_funding: float = 0
    location: str = ""


class DiscoveredPerson(BaseModel):
    """A persondb search hit, flattened to its current employer."""
    id: str = ""
    name: str = ""
    headline: str = ""
    title: str = ""
    company: str = ""
    company_domain: str = ""
    seniority: str = ""
    function: str = ""
    linkedin: str = ""
    region: str = ""
    email_verified: bool = False
    recent_job_change: bool = False


class SearchPage(BaseModel):
    companies: list[DiscoveredCompany] = Field(default_factory=list)
    people: list[DiscoveredPerson] = Field(default_factory=list)
    next_cursor: str | None = None
    total_count: int = 0


class EnrichResult(BaseModel):
    """Outcome of a person enrichment; a miss is not an error."""
    found: bool = False
    queued: bool = False
    email: str = ""
    message: str = ""
    profile: dict = Field(default_factory=dict)
