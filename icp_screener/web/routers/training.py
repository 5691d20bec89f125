"""Calibration examples API: per-factor score corrections."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from icp_screener.models import TrainingExample
from icp_screener.web.deps import get_store

router = APIRouter(tags=["training"])


@router.get("/training")
async def list_training_examples():
    return [ex.model_dump() for ex in get_store().get_training_examples()]


@router.post("/training")
async def save_training_example(example: TrainingExample):
    """Save a correction; one per (domain, factor), later saves overwrite.

    When no snapshot is sent, the company's latest research report is used.
    """
    store = get_store()
    if not example.research_snapshot or not example.company_name:
        company = store.get_company_by_domain(example.domain)
        latest = store.get_company_latest(company.id) if company and company.id else None  # type: ignore[arg-type]
        if latest:
            example = example.model_copy(update={
                "research_snapshot": example.research_snapshot or latest.get("research_raw") or "",
                "company_name": example.company_name or latest.get("name") or "",
            })
    return store.save_training_example(example).model_dump()


@router.delete("/training/{example_id}")
async def delete_training_example(example_id: int):
    if not get_store().delete_training_example(example_id):
        raise HTTPException(status_code=404, detail="Training example not found")
    return {"deleted": example_id}
