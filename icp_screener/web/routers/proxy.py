"""Thin provider proxies: Exa search/contents and completion."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from icp_screener.analysis.llm_client import CompletionClient
from icp_screener.search.exa_client import ExaClient
from icp_screener.web.deps import get_config

router = APIRouter(tags=["proxy"])


class ExaSearchRequest(BaseModel):
    query: str = ""
    category: str | None = None
    numResults: int = 10
    contents: dict[str, Any] | None = None
    startPublishedDate: str | None = None
    endPublishedDate: str | None = None
    includeDomains: list[str] | None = None
    excludeDomains: list[str] | None = None


class ExaContentsRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    urls: list[str] = []


class CompletionRequest(BaseModel):
    prompt: str
    model: str | None = None
    maxTokens: int = 16000
    systemPrompt: str | None = None
    useWebSearch: bool = False


@router.post("/exa")
async def exa_search(req: ExaSearchRequest):
    if not req.query:
        raise HTTPException(status_code=400, detail="Query is required.")
    payload = {k: v for k, v in req.model_dump().items() if v is not None}
    exa = ExaClient.from_config(get_config())
    try:
        return await exa.search_raw(payload)
    finally:
        await exa.close()


@router.post("/exa-contents")
async def exa_contents(req: ExaContentsRequest):
    if not req.urls:
        raise HTTPException(status_code=400, detail="urls array is required.")
    payload = {"ids": req.urls, **(req.model_extra or {})}
    exa = ExaClient.from_config(get_config())
    try:
        return await exa.contents_raw(payload)
    finally:
        await exa.close()


@router.post("/claude")
async def completion(req: CompletionRequest):
    """One completion through the shared gateway (retries, billing fallback)."""
    cfg = get_config()
    client = CompletionClient.from_config(cfg)
    try:
        result = await client.complete(
            req.prompt,
            model=req.model or cfg.scoring_model,
            max_tokens=req.maxTokens,
            system=req.systemPrompt,
            use_web_search=req.useWebSearch,
        )
    finally:
        await client.close()
    return result.model_dump()
