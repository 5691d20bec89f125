"""Screening API: company list, run control, progress via SSE."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from icp_screener.analysis.normalizer import rehydrate
from icp_screener.input.domain import company_name_from_domain, normalize_domain
from icp_screener.models import RunSummary
from icp_screener.pipeline import ScreeningPipeline
from icp_screener.web.deps import get_config, get_store

logger = logging.getLogger(__name__)
router = APIRouter(tags=["screening"])


class ScreenRun:
    """The one active screening run and the progress events it has emitted."""

    def __init__(self, pipeline: ScreeningPipeline):
        self.pipeline = pipeline
        self.events: list[dict] = []
        self.done = False
        self.stop_requested = False  # set when stop arrives before the pipeline starts

    def push(self, event: dict) -> None:
        self.events.append(event)


_current: ScreenRun | None = None


class ScreenRequest(BaseModel):
    domains: list[str] = []
    concurrency: int | None = None


class CompanyCreate(BaseModel):
    website: str
    name: str = ""
    manual_score: str = ""


class CompanyUpdate(BaseModel):
    name: str | None = None
    manual_score: str | None = None
    notes: str | None = None


def _running() -> bool:
    return _current is not None and not _current.done


def _in_flight(company_id: int) -> bool:
    state = _current.pipeline.state if _current else None
    return state is not None and company_id in state.in_flight


@router.post("/screen")
async def start_screen(req: ScreenRequest, background_tasks: BackgroundTasks):
    """Start screening the pending queue. Progress is on /api/screen/stream."""
    global _current
    if _running():
        raise HTTPException(status_code=409, detail="A screening run is already in progress")

    store = get_store()
    pending = store.list_companies(statuses=("pending", "error"))
    if req.domains:
        pending = [c for c in pending if c.domain in set(req.domains)]

    run = ScreenRun(ScreeningPipeline(get_config(), store))
    run.pipeline.progress_callback = run.push
    _current = run
    background_tasks.add_task(_run_pipeline, run, req)
    return {"status": "running", "pending": len(pending)}


@router.post("/screen/stop")
async def stop_screen():
    if not _running():
        return {"status": "idle"}
    _current.stop_requested = True  # type: ignore[union-attr]
    _current.pipeline.stop()  # type: ignore[union-attr]
    return {"status": "stopping"}


@router.get("/screen/status")
async def screen_status():
    if _current is None:
        return {"status": "idle", "events": 0}
    state = _current.pipeline.state
    return {
        "status": "done" if _current.done else "running",
        "events": len(_current.events),
        "queued": len(state.queue) if state else 0,
        "in_flight": sorted(state.in_flight) if state else [],
        "cancelled": state.cancelled if state else False,
    }


@router.get("/screen/stream")
async def screen_stream():
    """SSE stream of per-company step changes for the active run."""
    run = _current

    async def event_generator():
        if run is None:
            yield {"event": "done", "data": json.dumps({"status": "idle"})}
            return
        last_idx = 0
        while True:
            while last_idx < len(run.events):
                evt = run.events[last_idx]
                last_idx += 1
                yield {"event": "done" if evt.get("status") == "done" else "progress", "data": json.dumps(evt)}
                if evt.get("status") == "done":
                    return
            await asyncio.sleep(0.5)

    return EventSourceResponse(event_generator())


async def _run_pipeline(run: ScreenRun, req: ScreenRequest) -> None:
    summary = None
    try:
        if run.stop_requested:
            summary = RunSummary(cancelled=True)
        else:
            summary = await run.pipeline.run(req.domains or None, concurrency=req.concurrency)
    except Exception:
        logger.exception("Screening run failed")
    finally:
        await run.pipeline.close()
        run.push({
            "status": "done",
            "completed": summary.completed if summary else 0,
            "failed": summary.failed if summary else 0,
            "cancelled": summary.cancelled if summary else False,
        })
        run.done = True


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

@router.get("/companies")
async def list_companies():
    """Every company joined with its latest research run."""
    return get_store().get_companies_with_latest()


@router.get("/companies/{company_id}")
async def get_company(company_id: int):
    store = get_store()
    latest = store.get_company_latest(company_id)
    if latest is None:
        raise HTTPException(status_code=404, detail="Company not found")
    scoring = rehydrate(latest).model_dump() if latest.get("scored_run_id") else None
    return {
        "company": latest,
        "scoring": scoring,
        "history": store.get_research_history(company_id),
        "contacts": [c.model_dump() for c in store.get_contacts_by_company(company_id)],
    }


@router.post("/companies")
async def create_company(body: CompanyCreate):
    """Add one company to the queue; an existing domain keeps its status."""
    store = get_store()
    domain = normalize_domain(body.website)
    company = store.upsert_company(domain, body.name or company_name_from_domain(domain), body.website)
    if body.manual_score:
        company = store.update_company(company.id, manual_score=body.manual_score) or company  # type: ignore[arg-type]
    return company.model_dump()


@router.patch("/companies/{company_id}")
async def update_company(company_id: int, body: CompanyUpdate):
    store = get_store()
    fields = body.model_dump(exclude_none=True)
    company = store.update_company(company_id, **fields)
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return company.model_dump()


@router.post("/companies/{company_id}/rescreen")
async def rescreen_company(company_id: int):
    """Put a company back in the queue for the next run."""
    company = get_store().update_company(company_id, status="pending", step="", error=None)
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return company.model_dump()


@router.delete("/companies/{company_id}")
async def delete_company(company_id: int):
    if _in_flight(company_id):
        raise HTTPException(status_code=409, detail="Company is being screened")
    if not get_store().delete_company(company_id):
        raise HTTPException(status_code=404, detail="Company not found")
    return {"deleted": company_id}
