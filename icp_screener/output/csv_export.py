"""Screening results export (CSV / Excel) built with pandas."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from icp_screener.db.repository import Store

logger = logging.getLogger(__name__)

FACTOR_HEADERS = [
    ("a", "A: Differentiation"),
    ("b", "B: Outcomes"),
    ("c", "C: Customer-Centric"),
    ("d", "D: Product Change"),
    ("e", "E: Audience Change"),
    ("f", "F: Multi-Product"),
]

EXPORT_HEADERS = [
    "Company Name",
    "Website",
    "Total Score",
    "ICP Fit",
    *[h for key, label in FACTOR_HEADERS for h in (label, f"{key.upper()}: Verdict")],
    "Score Summary",
    "Disqualified Reason",
    "Manual Score",
    "Status",
]


def export_rows(records: list[dict]) -> list[list]:
    """One export row per ``company_latest`` record, columns in header order."""
    rows = []
    for rec in records:
        row = [
            rec.get("name") or "",
            rec.get("website") or "",
            rec.get("total_score") or 0,
            rec.get("icp_fit") or "",
        ]
        for key, _ in FACTOR_HEADERS:
            row.append(rec.get(f"score_{key}") or 0)
            row.append(rec.get(f"{key}_verdict") or "")
        row += [
            rec.get("score_summary") or "",
            rec.get("disqualification_reason") or "",
            rec.get("manual_score") or "",
            rec.get("status") or "",
        ]
        rows.append(row)
    return rows


def build_frame(store: Store) -> pd.DataFrame:
    records = sorted(store.get_companies_with_latest(), key=lambda r: r["id"])
    return pd.DataFrame(export_rows(records), columns=EXPORT_HEADERS)


def export_companies(store: Store, output_path: str) -> int:
    """Write every company with its latest scores; returns the row count."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = build_frame(store)
    if path.suffix.lower() == ".xlsx":
        df.to_excel(path, index=False, engine="openpyxl")
    else:
        df.to_csv(path, index=False)
    logger.info("Exported %d companies to %s", len(df), path)
    return len(df)
