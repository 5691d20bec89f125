"""Bidirectional mapping between the nested scoring object and flat run columns.

The store keeps one text column per piece of evidence. Homepage section
names are stored once (4 slots, taken from factor A) and shared by factors
A, B and C. Lists are joined with ``; `` (products with ``, ``), changes as
``name (date): before → after`` and audiences as ``buyer — department — market``.
Values containing those delimiters do not survive a round trip intact.
"""

from __future__ import annotations

import re
from typing import Any

from icp_screener.models import (
    Audience,
    DifferentiationSection,
    FactorA,
    FactorB,
    FactorC,
    FactorD,
    FactorE,
    FactorF,
    OrientationSection,
    OutcomeSection,
    Product,
    ProductChange,
    ScoringResult,
)

SECTION_SLOTS = 4
LIST_SEP = "; "
PRODUCT_SEP = ", "
AUDIENCE_SEP = " — "
CHANGE_ARROW = "→"

_CHANGE_RE = re.compile(r"^(.+?)\s*\((.+?)\):\s*(.+?)\s*→\s*(.+)$", re.DOTALL)
_PRODUCT_RE = re.compile(r"^(.+?)\s*\((.+?)\)$", re.DOTALL)

SCORE_COLUMNS = [
    "total_score", "icp_fit", "disqualification_reason", "score_summary",
    *[f"homepage_section_{n}_name" for n in range(1, SECTION_SLOTS + 1)],
    "score_a", "a_differentiators",
    *[c for n in range(1, SECTION_SLOTS + 1) for c in (f"a_section_{n}_finding", f"a_section_{n}_status")],
    "a_verdict",
    "score_b", "b_decision_maker", "b_strategic_outcomes", "b_tactical_outcomes",
    *[c for n in range(1, SECTION_SLOTS + 1) for c in (f"b_section_{n}_finding", f"b_section_{n}_type")],
    "b_verdict",
    "score_c",
    *[c for n in range(1, SECTION_SLOTS + 1) for c in (f"c_section_{n}_orientation", f"c_section_{n}_evidence")],
    "c_verdict",
    "score_d", "d_changes", "d_verdict",
    "score_e", "e_audience_before", "e_audience_today", "e_verdict",
    "score_f", "f_products", "f_description", "f_verdict",
]


def _slot(items: list, n: int):
    return items[n] if n < len(items) else None


def _format_audience(a: Audience) -> str:
    if not (a.buyer or a.department or a.market):
        return ""
    return AUDIENCE_SEP.join([a.buyer, a.department, a.market])


def _split(value: str | None, sep: str) -> list[str]:
    return [part for part in (value or "").split(sep) if part]


def flatten(result: ScoringResult) -> dict[str, Any]:
    """Decompose a scoring result into the research-run score columns."""
    fa, fb, fc = result.factor_a, result.factor_b, result.factor_c
    fd, fe, ff = result.factor_d, result.factor_e, result.factor_f

    cols: dict[str, Any] = {
        "total_score": result.total_score,
        "icp_fit": result.icp_fit,
        "disqualification_reason": result.disqualification_reason,
        "score_summary": result.summary,
    }

    for n in range(SECTION_SLOTS):
        a = _slot(fa.homepage_sections, n)
        b = _slot(fb.homepage_sections, n)
        c = _slot(fc.sections, n)
        i = n + 1
        cols[f"homepage_section_{i}_name"] = a.name if a else ""
        cols[f"a_section_{i}_finding"] = a.finding if a else ""
        cols[f"a_section_{i}_status"] = a.status if a else ""
        cols[f"b_section_{i}_finding"] = b.finding if b else ""
        cols[f"b_section_{i}_type"] = b.outcome_type if b else ""
        cols[f"c_section_{i}_orientation"] = c.orientation if c else ""
        cols[f"c_section_{i}_evidence"] = c.evidence if c else ""

    cols.update({
        "score_a": fa.score,
        "a_differentiators": LIST_SEP.join(fa.differentiators),
        "a_verdict": fa.verdict,
        "score_b": fb.score,
        "b_decision_maker": fb.decision_maker,
        "b_strategic_outcomes": LIST_SEP.join(fb.strategic_outcomes),
        "b_tactical_outcomes": LIST_SEP.join(fb.tactical_outcomes),
        "b_verdict": fb.verdict,
        "score_c": fc.score,
        "c_verdict": fc.verdict,
        "score_d": fd.score,
        "d_changes": LIST_SEP.join(
            f"{ch.name} ({ch.date}): {ch.before} {CHANGE_ARROW} {ch.after}" for ch in fd.changes
        ),
        "d_verdict": fd.verdict,
        "score_e": fe.score,
        "e_audience_before": _format_audience(fe.before),
        "e_audience_today": _format_audience(fe.today),
        "e_verdict": fe.verdict,
        "score_f": ff.score,
        "f_products": PRODUCT_SEP.join(f"{p.name} ({p.tag})" for p in ff.products),
        "f_description": ff.description,
        "f_verdict": ff.verdict,
    })
    return {key: cols[key] for key in SCORE_COLUMNS}


def _parse_change(text: str) -> ProductChange:
    m = _CHANGE_RE.match(text)
    if not m:
        return ProductChange(name=text)
    return ProductChange(name=m.group(1), date=m.group(2), before=m.group(3), after=m.group(4))


def _parse_product(text: str) -> Product:
    m = _PRODUCT_RE.match(text)
    if not m:
        return Product(name=text, tag="module")
    return Product(name=m.group(1), tag=m.group(2))


def _parse_audience(text: str | None) -> Audience:
    if not text:
        return Audience()
    parts = text.split(AUDIENCE_SEP) + ["", "", ""]
    return Audience(buyer=parts[0], department=parts[1], market=parts[2])


def rehydrate(cols: dict[str, Any]) -> ScoringResult:
    """Rebuild the nested scoring shape from flat columns (e.g. a DB row).

    Section slots with an empty name are dropped.
    """
    def s(key: str) -> str:
        return cols.get(key) or ""

    def i(key: str) -> int:
        try:
            return int(cols.get(key) or 0)
        except (TypeError, ValueError):
            return 0

    slots = range(1, SECTION_SLOTS + 1)
    names = {n: s(f"homepage_section_{n}_name") for n in slots}

    return ScoringResult(
        total_score=i("total_score"),
        icp_fit=s("icp_fit"),
        disqualification_reason=s("disqualification_reason"),
        summary=s("score_summary"),
        factor_a=FactorA(
            score=i("score_a"),
            differentiators=_split(cols.get("a_differentiators"), LIST_SEP),
            homepage_sections=[
                DifferentiationSection(
                    name=names[n],
                    finding=s(f"a_section_{n}_finding"),
                    status=s(f"a_section_{n}_status"),
                )
                for n in slots if names[n]
            ],
            verdict=s("a_verdict"),
        ),
        factor_b=FactorB(
            score=i("score_b"),
            decision_maker=s("b_decision_maker"),
            strategic_outcomes=_split(cols.get("b_strategic_outcomes"), LIST_SEP),
            tactical_outcomes=_split(cols.get("b_tactical_outcomes"), LIST_SEP),
            homepage_sections=[
                OutcomeSection(
                    name=names[n],
                    finding=s(f"b_section_{n}_finding"),
                    outcome_type=s(f"b_section_{n}_type"),
                )
                for n in slots if names[n]
            ],
            verdict=s("b_verdict"),
        ),
        factor_c=FactorC(
            score=i("score_c"),
            sections=[
                OrientationSection(
                    name=names[n],
                    orientation=s(f"c_section_{n}_orientation"),
                    evidence=s(f"c_section_{n}_evidence"),
                )
                for n in slots if names[n]
            ],
            verdict=s("c_verdict"),
        ),
        factor_d=FactorD(
            score=i("score_d"),
            changes=[_parse_change(ch) for ch in _split(cols.get("d_changes"), LIST_SEP)],
            verdict=s("d_verdict"),
        ),
        factor_e=FactorE(
            score=i("score_e"),
            before=_parse_audience(cols.get("e_audience_before")),
            today=_parse_audience(cols.get("e_audience_today")),
            verdict=s("e_verdict"),
        ),
        factor_f=FactorF(
            score=i("score_f"),
            products=[_parse_product(p) for p in _split(cols.get("f_products"), PRODUCT_SEP)],
            description=s("f_description"),
            verdict=s("f_verdict"),
        ),
    )
