"""Store contract over the SQLite schema: companies, runs, calibration, outreach."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Iterable

from icp_screener.analysis.fields import RESEARCH_FIELD_LABELS
from icp_screener.analysis.normalizer import SCORE_COLUMNS
from icp_screener.db.database import Database
from icp_screener.models import (
    Campaign,
    CampaignMessage,
    Company,
    Contact,
    SavedFilter,
    TrainingExample,
)

logger = logging.getLogger(__name__)

_COMPANY_COLUMNS = {"name", "website", "status", "step", "error", "manual_score", "notes", "last_screened_at"}
_RUN_COLUMNS = {"status", "error", "research_raw", "scoring_raw", *RESEARCH_FIELD_LABELS, *SCORE_COLUMNS}
_CONTACT_COLUMNS = {"company_id", "name", "title", "email", "linkedin", "seniority", "function", "status"}
_CAMPAIGN_COLUMNS = {"name", "description", "status"}


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _assignments(fields: dict[str, Any], allowed: set[str], table: str) -> tuple[str, list]:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown {table} column(s): {', '.join(sorted(unknown))}")
    keys = list(fields)
    return ", ".join(f"{k} = ?" for k in keys), [fields[k] for k in keys]


def _company(row: sqlite3.Row | None) -> Company | None:
    if row is None:
        return None
    return Company(
        id=row["id"],
        domain=row["domain"],
        name=row["name"],
        website=row["website"],
        status=row["status"],
        step=row["step"],
        error=row["error"],
        manual_score=row["manual_score"],
        last_screened_at=row["last_screened_at"],
    )


class Store:
    """Relational store used by the pipeline, CLI and API."""

    def __init__(self, db: Database):
        self.db = db

    # -----------------------------------------------------------------------
    # Companies
    # -----------------------------------------------------------------------

    def upsert_company(self, domain: str, name: str, website: str) -> Company:
        """Insert by domain, or refresh name/website of the existing row.

        Status and results of an existing company are never touched.
        """
        self.db.execute(
            "INSERT INTO companies (domain, name, website) VALUES (?, ?, ?) "
            "ON CONFLICT(domain) DO UPDATE SET "
            "name = CASE WHEN excluded.name != '' THEN excluded.name ELSE companies.name END, "
            "website = CASE WHEN excluded.website != '' THEN excluded.website ELSE companies.website END, "
            "updated_at = datetime('now')",
            (domain, name, website),
        )
        self.db.commit()
        company = self.get_company_by_domain(domain)
        assert company is not None
        return company

    def get_company(self, company_id: int) -> Company | None:
        return _company(self.db.fetchone("SELECT * FROM companies WHERE id = ?", (company_id,)))

    def get_company_by_domain(self, domain: str) -> Company | None:
        return _company(self.db.fetchone("SELECT * FROM companies WHERE domain = ?", (domain,)))

    def list_companies(self, statuses: Iterable[str] | None = None) -> list[Company]:
        """Companies in import order (FIFO), optionally filtered by status."""
        if statuses:
            statuses = list(statuses)
            marks = ", ".join("?" for _ in statuses)
            rows = self.db.fetchall(
                f"SELECT * FROM companies WHERE status IN ({marks}) ORDER BY id", statuses,
            )
        else:
            rows = self.db.fetchall("SELECT * FROM companies ORDER BY id")
        return [_company(r) for r in rows]  # type: ignore[misc]

    def update_company(self, company_id: int, **fields: Any) -> Company | None:
        if fields:
            sets, params = _assignments(fields, _COMPANY_COLUMNS, "companies")
            self.db.update(
                f"UPDATE companies SET {sets}, updated_at = datetime('now') WHERE id = ?",
                [*params, company_id],
            )
        return self.get_company(company_id)

    def delete_company(self, company_id: int) -> bool:
        """Delete a company; its runs and contacts go with it."""
        return self.db.update("DELETE FROM companies WHERE id = ?", (company_id,)) > 0

    def reset_stale_processing(self) -> int:
        """Companies left 'processing' by a crash go back to 'pending'."""
        return self.db.update(
            "UPDATE companies SET status = 'pending', step = '' WHERE status = 'processing'"
        )

    # -----------------------------------------------------------------------
    # Research runs
    # -----------------------------------------------------------------------

    def create_research_run(self, company_id: int) -> int:
        return self.db.insert(
            "INSERT INTO research_runs (company_id, status) VALUES (?, 'pending')",
            (company_id,),
        )

    def update_research_run(self, run_id: int, **columns: Any) -> None:
        if not columns:
            return
        sets, params = _assignments(columns, _RUN_COLUMNS, "research_runs")
        self.db.update(
            f"UPDATE research_runs SET {sets}, updated_at = datetime('now') WHERE id = ?",
            [*params, run_id],
        )

    def get_research_run(self, run_id: int) -> dict | None:
        row = self.db.fetchone("SELECT * FROM research_runs WHERE id = ?", (run_id,))
        return dict(row) if row else None

    def get_research_history(self, company_id: int) -> list[dict]:
        rows = self.db.fetchall(
            "SELECT * FROM research_runs WHERE company_id = ? ORDER BY id DESC", (company_id,),
        )
        return [dict(r) for r in rows]

    def get_companies_with_latest(self) -> list[dict]:
        rows = self.db.fetchall("SELECT * FROM company_latest ORDER BY updated_at DESC, id DESC")
        return [dict(r) for r in rows]

    def get_company_latest(self, company_id: int) -> dict | None:
        row = self.db.fetchone("SELECT * FROM company_latest WHERE id = ?", (company_id,))
        return dict(row) if row else None

    # -----------------------------------------------------------------------
    # Training examples
    # -----------------------------------------------------------------------

    def save_training_example(self, example: TrainingExample) -> TrainingExample:
        """Upsert on (domain, factor); one active correction per pair."""
        self.db.execute(
            "INSERT INTO training_examples "
            "(domain, company_name, factor, score, justification, research_snapshot) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(domain, factor) DO UPDATE SET "
            "company_name = excluded.company_name, score = excluded.score, "
            "justification = excluded.justification, research_snapshot = excluded.research_snapshot",
            (
                example.domain, example.company_name, example.factor,
                example.score, example.justification, example.research_snapshot,
            ),
        )
        self.db.commit()
        row = self.db.fetchone(
            "SELECT * FROM training_examples WHERE domain = ? AND factor = ?",
            (example.domain, example.factor),
        )
        return TrainingExample(**dict(row))  # type: ignore[arg-type]

    def get_training_examples(self) -> list[TrainingExample]:
        rows = self.db.fetchall("SELECT * FROM training_examples ORDER BY created_at, id")
        return [
            TrainingExample(
                id=r["id"], domain=r["domain"], company_name=r["company_name"],
                factor=r["factor"], score=r["score"], justification=r["justification"],
                research_snapshot=r["research_snapshot"],
            )
            for r in rows
        ]

    def delete_training_example(self, example_id: int) -> bool:
        return self.db.update("DELETE FROM training_examples WHERE id = ?", (example_id,)) > 0

    # -----------------------------------------------------------------------
    # Contacts
    # -----------------------------------------------------------------------

    def upsert_contact(self, contact: Contact) -> Contact:
        return self.upsert_contacts([contact])[0]

    def upsert_contacts(self, contacts: list[Contact]) -> list[Contact]:
        """Upsert on LinkedIn URL; contacts without one are always inserted."""
        ids = []
        with self.db.transaction() as conn:
            for c in contacts:
                cur = conn.execute(
                    "INSERT INTO contacts "
                    "(company_id, name, title, email, linkedin, seniority, function, status) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(linkedin) DO UPDATE SET "
                    "company_id = COALESCE(excluded.company_id, contacts.company_id), "
                    "name = excluded.name, title = excluded.title, "
                    "email = CASE WHEN excluded.email != '' THEN excluded.email ELSE contacts.email END, "
                    "seniority = excluded.seniority, function = excluded.function",
                    (
                        c.company_id, c.name, c.title, c.email, c.linkedin or None,
                        c.seniority, c.function, c.status,
                    ),
                )
                if c.linkedin:
                    row = conn.execute("SELECT id FROM contacts WHERE linkedin = ?", (c.linkedin,)).fetchone()
                    ids.append(row[0])
                else:
                    ids.append(cur.lastrowid)
        return [self.get_contact(i) for i in ids]  # type: ignore[misc]

    def get_contact(self, contact_id: int) -> Contact | None:
        row = self.db.fetchone(
            "SELECT ct.*, co.name AS company_name, co.domain AS company_domain "
            "FROM contacts ct LEFT JOIN companies co ON co.id = ct.company_id WHERE ct.id = ?",
            (contact_id,),
        )
        return _contact(row) if row else None

    def get_all_contacts(self) -> list[Contact]:
        rows = self.db.fetchall(
            "SELECT ct.*, co.name AS company_name, co.domain AS company_domain "
            "FROM contacts ct LEFT JOIN companies co ON co.id = ct.company_id "
            "ORDER BY ct.created_at DESC, ct.id DESC"
        )
        return [_contact(r) for r in rows]

    def get_contacts_by_company(self, company_id: int) -> list[Contact]:
        rows = self.db.fetchall(
            "SELECT ct.*, co.name AS company_name, co.domain AS company_domain "
            "FROM contacts ct LEFT JOIN companies co ON co.id = ct.company_id "
            "WHERE ct.company_id = ? ORDER BY ct.name",
            (company_id,),
        )
        return [_contact(r) for r in rows]

    def update_contact(self, contact_id: int, **fields: Any) -> Contact | None:
        if fields:
            sets, params = _assignments(fields, _CONTACT_COLUMNS, "contacts")
            self.db.update(f"UPDATE contacts SET {sets} WHERE id = ?", [*params, contact_id])
        return self.get_contact(contact_id)

    def delete_contact(self, contact_id: int) -> bool:
        return self.db.update("DELETE FROM contacts WHERE id = ?", (contact_id,)) > 0

    # -----------------------------------------------------------------------
    # Campaigns
    # -----------------------------------------------------------------------

    def get_all_campaigns(self) -> list[Campaign]:
        rows = self.db.fetchall("SELECT * FROM campaigns ORDER BY created_at DESC, id DESC")
        return [_campaign(r) for r in rows]

    def create_campaign(self, name: str = "Untitled Campaign") -> Campaign:
        campaign_id = self.db.insert("INSERT INTO campaigns (name) VALUES (?)", (name,))
        return self.get_campaign(campaign_id)  # type: ignore[return-value]

    def get_campaign(self, campaign_id: int) -> Campaign | None:
        row = self.db.fetchone("SELECT * FROM campaigns WHERE id = ?", (campaign_id,))
        return _campaign(row) if row else None

    def update_campaign(self, campaign_id: int, **fields: Any) -> Campaign | None:
        if fields:
            sets, params = _assignments(fields, _CAMPAIGN_COLUMNS, "campaigns")
            self.db.update(f"UPDATE campaigns SET {sets} WHERE id = ?", [*params, campaign_id])
        return self.get_campaign(campaign_id)

    def delete_campaign(self, campaign_id: int) -> bool:
        return self.db.update("DELETE FROM campaigns WHERE id = ?", (campaign_id,)) > 0

    def get_campaign_contacts(self, campaign_id: int) -> list[Contact]:
        rows = self.db.fetchall(
            "SELECT ct.*, co.name AS company_name, co.domain AS company_domain "
            "FROM campaign_contacts cc "
            "JOIN contacts ct ON ct.id = cc.contact_id "
            "LEFT JOIN companies co ON co.id = ct.company_id "
            "WHERE cc.campaign_id = ? ORDER BY cc.added_at, cc.id",
            (campaign_id,),
        )
        return [_contact(r) for r in rows]

    def get_all_campaign_contacts(self) -> list[dict]:
        return [dict(r) for r in self.db.fetchall("SELECT campaign_id, contact_id FROM campaign_contacts")]

    def add_contacts_to_campaign(self, campaign_id: int, contact_ids: list[int]) -> int:
        """Idempotently attach contacts and stamp ``last_campaign_added_at``."""
        if not contact_ids:
            return 0
        now = utcnow()
        with self.db.transaction() as conn:
            conn.executemany(
                "INSERT INTO campaign_contacts (campaign_id, contact_id) VALUES (?, ?) "
                "ON CONFLICT(campaign_id, contact_id) DO NOTHING",
                [(campaign_id, cid) for cid in contact_ids],
            )
            marks = ", ".join("?" for _ in contact_ids)
            conn.execute(
                f"UPDATE contacts SET last_campaign_added_at = ? WHERE id IN ({marks})",
                [now, *contact_ids],
            )
        return len(contact_ids)

    def remove_contact_from_campaign(self, campaign_id: int, contact_id: int) -> bool:
        return self.db.update(
            "DELETE FROM campaign_contacts WHERE campaign_id = ? AND contact_id = ?",
            (campaign_id, contact_id),
        ) > 0

    def get_campaign_messages(self, campaign_id: int) -> list[CampaignMessage]:
        rows = self.db.fetchall(
            "SELECT * FROM campaign_messages WHERE campaign_id = ? ORDER BY step_number, id",
            (campaign_id,),
        )
        return [_message(r) for r in rows]

    def create_campaign_message(self, message: CampaignMessage) -> CampaignMessage:
        message_id = self.db.insert(
            "INSERT INTO campaign_messages (campaign_id, channel, step_number, subject, body) "
            "VALUES (?, ?, ?, ?, ?)",
            (message.campaign_id, message.channel, message.step_number, message.subject, message.body),
        )
        return message.model_copy(update={"id": message_id})

    def upsert_campaign_message(self, message: CampaignMessage) -> CampaignMessage:
        """Upsert on (campaign, channel, step)."""
        self.db.execute(
            "INSERT INTO campaign_messages (campaign_id, channel, step_number, subject, body) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(campaign_id, channel, step_number) DO UPDATE SET "
            "subject = excluded.subject, body = excluded.body",
            (message.campaign_id, message.channel, message.step_number, message.subject, message.body),
        )
        self.db.commit()
        row = self.db.fetchone(
            "SELECT id FROM campaign_messages WHERE campaign_id = ? AND channel = ? AND step_number = ?",
            (message.campaign_id, message.channel, message.step_number),
        )
        message_id = row["id"]
        return message.model_copy(update={"id": message_id})

    def delete_campaign_message(self, message_id: int) -> bool:
        return self.db.update("DELETE FROM campaign_messages WHERE id = ?", (message_id,)) > 0

    # -----------------------------------------------------------------------
    # Saved filters
    # -----------------------------------------------------------------------

    def get_saved_filters(self) -> list[SavedFilter]:
        rows = self.db.fetchall("SELECT * FROM saved_filters ORDER BY updated_at DESC, id DESC")
        return [_saved_filter(r) for r in rows]

    def create_saved_filter(self, saved: SavedFilter) -> SavedFilter:
        filter_id = self.db.insert(
            "INSERT INTO saved_filters (name, mode, filters) VALUES (?, ?, ?)",
            (saved.name, saved.mode, json.dumps(saved.filters)),
        )
        return saved.model_copy(update={"id": filter_id})

    def update_saved_filter(self, filter_id: int, saved: SavedFilter) -> bool:
        return self.db.update(
            "UPDATE saved_filters SET name = ?, mode = ?, filters = ?, updated_at = datetime('now') "
            "WHERE id = ?",
            (saved.name, saved.mode, json.dumps(saved.filters), filter_id),
        ) > 0

    def delete_saved_filter(self, filter_id: int) -> bool:
        return self.db.update("DELETE FROM saved_filters WHERE id = ?", (filter_id,)) > 0


def _contact(row: sqlite3.Row) -> Contact:
    keys = row.keys()
    return Contact(
        id=row["id"],
        company_id=row["company_id"],
        name=row["name"],
        title=row["title"],
        email=row["email"],
        linkedin=row["linkedin"] or "",
        seniority=row["seniority"],
        function=row["function"],
        status=row["status"],
        company_name=(row["company_name"] if "company_name" in keys else None) or "",
        company_domain=(row["company_domain"] if "company_domain" in keys else None) or "",
    )


def _campaign(row: sqlite3.Row) -> Campaign:
    return Campaign(id=row["id"], name=row["name"], description=row["description"], status=row["status"])


def _message(row: sqlite3.Row) -> CampaignMessage:
    return CampaignMessage(
        id=row["id"], campaign_id=row["campaign_id"], channel=row["channel"],
        step_number=row["step_number"], subject=row["subject"], body=row["body"],
    )


def _saved_filter(row: sqlite3.Row) -> SavedFilter:
    return SavedFilter(id=row["id"], name=row["name"], mode=row["mode"], filters=json.loads(row["filters"]))
