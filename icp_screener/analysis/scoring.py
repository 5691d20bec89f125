"""Narrative-gap scoring: rubric prompt, defensive JSON parsing, fit bands."""

from __future__ import annotations

import json
import logging
import re

from pydantic import BaseModel, ValidationError

from icp_screener.analysis.fields import extract_field, extract_int
from icp_screener.analysis.llm_client import CompletionClient
from icp_screener.analysis.prompts import (
    CALIBRATION_CLOSE,
    CALIBRATION_OPEN,
    FACTOR_NAMES,
    SCORING_HEADER,
    SCORING_PROMPT,
    SCORING_SYSTEM_PROMPT,
    SNAPSHOT_CHARS,
)
from icp_screener.models import (
    FACTOR_KEYS,
    LegacyFields,
    ParsedScore,
    ScoringResult,
    Structured,
    TrainingExample,
    Unparseable,
)

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^.*?```(?:json)?\s*", re.DOTALL | re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```.*$", re.DOTALL)

_NOT_DISQUALIFIED = {"", "None", "none"}


# ---------------------------------------------------------------------------
# Fit policy
# ---------------------------------------------------------------------------

class FitPolicy(BaseModel):
    """Total-score thresholds for the fit bands."""
    strong: int = 14
    moderate: int = 10
    weak: int = 6

    def band(self, total: int) -> str:
        if total >= self.strong:
            return "Strong"
        if total >= self.moderate:
            return "Moderate"
        return "Weak"

    def apply(self, result: ScoringResult) -> ScoringResult:
        """Recompute total and fit deterministically.

        The total is the sum of the factor scores whenever any factor was
        scored (the reported total otherwise). A disqualification from the
        model wins over every band; the model's own band is otherwise ignored.
        """
        scores = result.factor_scores()
        total = sum(scores) if any(scores) else result.total_score
        fit = self.band(total)
        if is_disqualified(result.icp_fit, result.disqualification_reason):
            fit = "Disqualified"
        return result.model_copy(update={"total_score": total, "icp_fit": fit})


def is_disqualified(icp_fit: str, reason: str) -> bool:
    return (icp_fit or "").strip() == "Disqualified" or (reason or "").strip() not in _NOT_DISQUALIFIED


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------

def build_calibration(examples: list[TrainingExample]) -> str:
    """Render stored corrections as few-shot blocks grouped by company."""
    if not examples:
        return ""

    by_domain: dict[str, dict] = {}
    for ex in examples:
        entry = by_domain.setdefault(
            ex.domain,
            {"name": ex.company_name, "snapshot": ex.research_snapshot, "factors": {}},
        )
        entry["factors"][ex.factor] = ex

    section = CALIBRATION_OPEN
    for domain, entry in by_domain.items():
        section += f"--- {entry['name']} ({domain}) ---\n"
        section += f"Research (abbreviated):\n{(entry['snapshot'] or '')[:SNAPSHOT_CHARS]}\n\n"
        section += "CORRECT SCORES:\n"
        for factor, ex in entry["factors"].items():
            section += (
                f"SCORE_{factor}_{FACTOR_NAMES[factor]}: {ex.score}\n"
                f"SCORE_{factor}_JUSTIFICATION: {ex.justification}\n"
            )
        section += "\n"
    return section + CALIBRATION_CLOSE


def build_scoring_prompt(
    company_name: str,
    website: str,
    research: str,
    examples: list[TrainingExample] | None = None,
) -> str:
    header = SCORING_HEADER.format(company_name=company_name, website=website, research=research)
    return header + build_calibration(examples or []) + SCORING_PROMPT


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def extract_json(raw: str) -> dict | None:
    """Locate and decode the JSON object in a model response.

    Strips code fences (and any prose before the opening fence), then falls
    back to the outermost braces. Returns None when nothing decodes to an object.
    """
    text = _FENCE_OPEN.sub("", raw or "", count=1)
    text = _FENCE_CLOSE.sub("", text, count=1).strip()
    if not text.startswith("{"):
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("Scoring JSON decode failed: %s", e)
        return None
    return data if isinstance(data, dict) else None


def parse_legacy(raw: str) -> LegacyFields | Unparseable:
    """Old SCORE_X_NAME / SCORE_X_JUSTIFICATION line format."""
    labels = ["TOTAL_SCORE", "ICP_FIT", "DISQUALIFICATION_REASON", "SCORE_SUMMARY"]
    for key in FACTOR_KEYS:
        labels += [f"SCORE_{key}_{FACTOR_NAMES[key]}", f"SCORE_{key}_JUSTIFICATION"]
    if not any(extract_field(raw, label) for label in labels):
        return Unparseable(raw=raw or "")

    justifications = {
        key: extract_field(raw, f"SCORE_{key}_JUSTIFICATION") for key in FACTOR_KEYS
    }
    factors = {
        f"factor_{key.lower()}": {
            "score": extract_int(raw, f"SCORE_{key}_{FACTOR_NAMES[key]}"),
            "verdict": justifications[key],
        }
        for key in FACTOR_KEYS
    }
    result = ScoringResult(
        total_score=extract_int(raw, "TOTAL_SCORE"),
        icp_fit=extract_field(raw, "ICP_FIT"),
        disqualification_reason=extract_field(raw, "DISQUALIFICATION_REASON"),
        summary=extract_field(raw, "SCORE_SUMMARY"),
        **factors,
    )
    return LegacyFields(result=result, justifications=justifications, raw=raw)


def parse_scoring(raw: str) -> ParsedScore:
    """JSON first; labeled fields when the model ignored the JSON-only instruction."""
    data = extract_json(raw)
    if data is not None:
        try:
            return Structured(result=ScoringResult.model_validate(data), raw=raw)
        except ValidationError as e:
            logger.warning("Scoring JSON did not match schema, using field parser: %s", e)
    return parse_legacy(raw)


async def score(
    client: CompletionClient,
    company_name: str,
    website: str,
    research: str,
    training_examples: list[TrainingExample],
    model: str,
    max_tokens: int = 16000,
) -> ParsedScore:
    """Single completion call with the rubric; never raises on malformed output."""
    prompt = build_scoring_prompt(company_name, website, research, training_examples)
    result = await client.complete(
        prompt, model=model, max_tokens=max_tokens, system=SCORING_SYSTEM_PROMPT,
    )
    parsed = parse_scoring(result.text)
    if parsed.kind == "structured":
        logger.info("[%s] Parsed structured JSON scoring", company_name)
    else:
        logger.warning("[%s] JSON parse failed, scoring degraded to %s", company_name, parsed.kind)
    return parsed
