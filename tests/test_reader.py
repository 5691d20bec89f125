from pathlib import Path

import pandas as pd
import pytest

from icp_screener.db.repository import Store
from icp_screener.errors import InvalidInput
from icp_screener.input.reader import import_companies, read_companies
from icp_screener.models import CompanyInput

CSV = (
    "Company Name,Company Website,Manual Score\n"
    "Acme,https://www.acme.com/,Strong\n"
    "Globex,globex.com,\n"
    "No Site,,\n"
    ",initech.com,\n"
)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_read_companies_detects_columns_and_skips_blank_websites(tmp_path: Path):
    rows = read_companies(str(_write(tmp_path, "companies.csv", CSV)))

    assert rows == [
        CompanyInput(name="Acme", website="https://www.acme.com/", manual_score="Strong"),
        CompanyInput(name="Globex", website="globex.com"),
        CompanyInput(name="", website="initech.com"),
    ]


def test_read_companies_requires_a_website_column(tmp_path: Path):
    path = _write(tmp_path, "bad.csv", "Company,Industry\nAcme,Logistics\n")

    with pytest.raises(InvalidInput, match="Website/URL column"):
        read_companies(str(path))


def test_read_companies_rejects_unknown_extension(tmp_path: Path):
    path = _write(tmp_path, "companies.txt", CSV)

    with pytest.raises(InvalidInput, match="Unsupported file format"):
        read_companies(str(path))


def test_read_companies_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        read_companies(str(tmp_path / "nope.csv"))


def test_read_companies_from_excel(tmp_path: Path):
    path = tmp_path / "companies.xlsx"
    pd.DataFrame({"Name": ["Acme"], "URL": ["acme.com"], "My Score": ["7"]}).to_excel(
        path, index=False, engine="openpyxl",
    )

    rows = read_companies(str(path))

    assert rows == [CompanyInput(name="Acme", website="acme.com", manual_score="7")]


def test_import_is_idempotent_and_preserves_status(tmp_path: Path, store: Store):
    rows = read_companies(str(_write(tmp_path, "companies.csv", CSV)))

    first = import_companies(store, rows)
    acme = store.get_company_by_domain("acme.com")
    store.update_company(acme.id, status="complete")
    second = import_companies(store, rows)

    assert (first.created, first.existing) == (3, 0)
    assert (second.created, second.existing) == (0, 3)
    assert len(store.list_companies()) == 3
    assert store.get_company_by_domain("acme.com").status == "complete"
    assert store.get_company_by_domain("acme.com").manual_score == "Strong"
    assert store.get_company_by_domain("initech.com").name == "Initech"


def test_import_skips_rows_without_a_resolvable_domain(store: Store):
    summary = import_companies(store, [
        CompanyInput(name="Broken", website="https://"),
        CompanyInput(name="Acme", website="ACME.com"),
        CompanyInput(name="Acme again", website="https://www.acme.com/about"),
    ])

    assert summary.skipped == ["https://"]
    assert (summary.created, summary.existing) == (1, 1)
    assert [c.domain for c in store.list_companies()] == ["acme.com"]
