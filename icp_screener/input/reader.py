"""Read company lists from CSV/Excel and import them into the store."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd
from pydantic import BaseModel, Field

from icp_screener.db.repository import Store
from icp_screener.errors import InvalidInput
from icp_screener.input.domain import company_name_from_domain, normalize_domain
from icp_screener.models import Company, CompanyInput

logger = logging.getLogger(__name__)

NAME_COLUMNS = ["company", "company name", "company_name", "name"]
# Substring match: "Company Website", "LinkedIn URL", ... all qualify
WEBSITE_MARKERS = ["website", "url", "homepage", "domain"]
MANUAL_SCORE_COLUMNS = ["manual score", "manual_score", "my score", "my_score"]


class ImportSummary(BaseModel):
    companies: list[Company] = Field(default_factory=list)
    created: int = 0
    existing: int = 0
    skipped: list[str] = Field(default_factory=list)


def read_companies(file_path: str) -> list[CompanyInput]:
    """Read a CSV or Excel file into company rows.

    Rows without a website are skipped. Raises InvalidInput when the
    file has no website column, FileNotFoundError when it is missing.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {file_path}")

    ext = path.suffix.lower()
    if ext == ".csv":
        df = pd.read_csv(path, dtype=str).fillna("")
    elif ext in (".xlsx", ".xls"):
        df = pd.read_excel(path, dtype=str, engine="openpyxl").fillna("")
    else:
        raise InvalidInput(f"Unsupported file format: {ext}. Use .csv, .xlsx, or .xls")

    return rows_from_frame(df)


def rows_from_frame(df: pd.DataFrame) -> list[CompanyInput]:
    name_col, website_col, score_col = _detect_columns([str(c) for c in df.columns])

    rows = []
    for _, row in df.iterrows():
        website = str(row[website_col]).strip()
        if not website or website.lower() == "nan":
            continue
        name = str(row[name_col]).strip() if name_col else ""
        if name.lower() == "nan":
            name = ""
        manual_score = str(row[score_col]).strip() if score_col else ""
        rows.append(CompanyInput(name=name, website=website, manual_score=manual_score))
    return rows


def _detect_columns(columns: list[str]) -> tuple[str | None, str, str | None]:
    """(name_col, website_col, manual_score_col); first header wins."""
    name_col = website_col = score_col = None
    for col in columns:
        key = col.strip().lower()
        if name_col is None and key in NAME_COLUMNS:
            name_col = col
        if website_col is None and any(m in key for m in WEBSITE_MARKERS):
            website_col = col
        if score_col is None and key in MANUAL_SCORE_COLUMNS:
            score_col = col

    if website_col is None:
        raise InvalidInput(f"CSV must have a Website/URL column. Found: {columns}")
    return name_col, website_col, score_col


def import_companies(store: Store, rows: list[CompanyInput]) -> ImportSummary:
    """Upsert rows by domain.

    Re-importing the same file is a no-op for companies already present:
    status and results stay as they are. A non-empty manual score is
    always written through.
    """
    summary = ImportSummary()
    for row in rows:
        try:
            domain = normalize_domain(row.website)
        except InvalidInput as e:
            logger.warning("Skipping %r: %s", row.website, e)
            summary.skipped.append(row.website)
            continue

        existing = store.get_company_by_domain(domain)
        name = row.name or company_name_from_domain(domain)
        company = store.upsert_company(domain, name, row.website)
        if row.manual_score:
            company = store.update_company(company.id, manual_score=row.manual_score) or company  # type: ignore[arg-type]

        if existing is None:
            summary.created += 1
        else:
            summary.existing += 1
        summary.companies.append(company)

    logger.info(
        "Imported %d companies (%d new, %d already present, %d skipped)",
        len(summary.companies), summary.created, summary.existing, len(summary.skipped),
    )
    return summary
