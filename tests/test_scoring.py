import json

import pytest

from icp_screener.analysis.prompts import (
    CALIBRATION_OPEN,
    SCORING_PROMPT,
    SCORING_SYSTEM_PROMPT,
)
from icp_screener.analysis.scoring import (
    FitPolicy,
    build_calibration,
    build_scoring_prompt,
    extract_json,
    is_disqualified,
    parse_scoring,
    score,
)
from icp_screener.models import FactorA, ScoringResult, TrainingExample

from tests.helpers.stubs import StubCompletion, scoring_json


# --- JSON extraction --------------------------------------------------------

def test_extract_json_strips_prose_and_fences():
    data = extract_json(scoring_json())

    assert data is not None
    assert data["factor_b"]["score"] == 1
    assert data["disqualification_reason"] == "None"


def test_extract_json_falls_back_to_outer_braces():
    raw = 'Sure. {"total_score": 7, "icp_fit": "Weak"} Let me know if you need more.'

    assert extract_json(raw) == {"total_score": 7, "icp_fit": "Weak"}


@pytest.mark.parametrize("raw", ["", "no json here", "```json\n[1, 2]\n```", "{not: valid}"])
def test_extract_json_returns_none_for_non_objects(raw):
    assert extract_json(raw) is None


# --- Parsing ----------------------------------------------------------------

def test_parse_scoring_structured_tolerates_nulls_and_unknown_keys():
    raw = json.dumps({
        "total_score": "12",
        "icp_fit": "Moderate",
        "disqualification_reason": None,
        "factor_a": {"score": 2, "differentiators": None, "confidence": "high"},
        "factor_e": {"score": "3", "before": None, "today": {"buyer": "CFO"}},
    })

    parsed = parse_scoring(raw)

    assert parsed.kind == "structured"
    result = parsed.to_result()
    assert result.total_score == 12
    assert result.disqualification_reason == ""
    assert result.factor_a.differentiators == []
    assert result.factor_e.score == 3
    assert result.factor_e.before.buyer == ""
    assert result.factor_e.today.buyer == "CFO"
    assert result.factor_f.score == 0


def test_parse_scoring_coerces_mis_shaped_fields():
    raw = json.dumps({
        "icp_fit": "Strong",
        "disqualification_reason": "None",
        "factor_a": {"score": 3, "differentiators": "Carrier network", "homepage_sections": ["Hero", 7]},
        "factor_b": {"score": 1, "strategic_outcomes": "None", "decision_maker": ["VP Ops", "COO"]},
        "factor_c": {"score": 3, "sections": "Hero"},
        "factor_d": {"score": 3, "changes": "None"},
        "factor_e": {"score": 3, "before": "Dispatcher", "today": 42},
        "factor_f": {"score": 3, "products": ["Acme Dispatch", {"name": "Acme Match", "tag": "product"}]},
    })

    parsed = parse_scoring(raw)

    assert parsed.kind == "structured"
    result = FitPolicy().apply(parsed.to_result())
    assert (result.total_score, result.icp_fit) == (16, "Strong")
    assert result.factor_a.differentiators == ["Carrier network"]
    assert [s.name for s in result.factor_a.homepage_sections] == ["Hero", ""]
    assert result.factor_b.strategic_outcomes == []
    assert result.factor_b.decision_maker == "VP Ops; COO"
    assert [s.name for s in result.factor_c.sections] == ["Hero"]
    assert result.factor_d.changes == []
    assert result.factor_e.before.buyer == "Dispatcher"
    assert result.factor_e.today.buyer == ""
    assert [(p.name, p.tag) for p in result.factor_f.products] == [
        ("Acme Dispatch", "module"),
        ("Acme Match", "product"),
    ]


def test_parse_scoring_falls_back_to_labeled_fields():
    raw = (
        "TOTAL_SCORE: 11\n"
        "ICP_FIT: Moderate\n"
        "DISQUALIFICATION_REASON: None\n"
        "SCORE_SUMMARY: Mixed messaging.\n"
        "SCORE_A_DIFFERENTIATION: 2\n"
        "SCORE_A_JUSTIFICATION: Differentiators appear late.\n"
        "SCORE_B_OUTCOMES: 3\n"
        "SCORE_B_JUSTIFICATION: Tactical only.\n"
    )

    parsed = parse_scoring(raw)

    assert parsed.kind == "legacy"
    result = parsed.to_result()
    assert result.total_score == 11
    assert result.summary == "Mixed messaging."
    assert result.factor_a.score == 2
    assert result.factor_a.verdict == "Differentiators appear late."
    assert result.factor_b.score == 3
    assert result.factor_c.score == 0
    assert parsed.justifications["B"] == "Tactical only."


def test_parse_scoring_unparseable_scores_zero():
    parsed = parse_scoring("I am unable to score this company.")

    assert parsed.kind == "unparseable"
    assert parsed.raw == "I am unable to score this company."
    assert parsed.to_result().factor_scores() == [0, 0, 0, 0, 0, 0]


# --- Fit policy -------------------------------------------------------------

@pytest.mark.parametrize(
    ("total", "band"),
    [(18, "Strong"), (14, "Strong"), (13, "Moderate"), (10, "Moderate"), (9, "Weak"), (0, "Weak")],
)
def test_fit_bands(total, band):
    assert FitPolicy().band(total) == band


def test_policy_recomputes_total_and_ignores_model_band():
    result = parse_scoring(scoring_json(icp_fit="Weak", total=9)).to_result()

    applied = FitPolicy().apply(result)

    assert applied.total_score == 16
    assert applied.icp_fit == "Strong"


def test_disqualification_reason_overrides_band():
    raw = scoring_json(a=3, b=3, c=3, d=3, e=3, f=0, icp_fit="Strong", reason="Acquired by Salesforce in 2023")

    applied = FitPolicy().apply(parse_scoring(raw).to_result())

    assert applied.total_score == 15
    assert applied.icp_fit == "Disqualified"
    assert applied.disqualification_reason == "Acquired by Salesforce in 2023"


def test_policy_keeps_reported_total_when_no_factor_scored():
    applied = FitPolicy().apply(ScoringResult(total_score=11))

    assert applied.total_score == 11
    assert applied.icp_fit == "Moderate"


def test_thresholds_are_configurable():
    policy = FitPolicy(strong=16, moderate=12)

    assert policy.band(15) == "Moderate"
    assert policy.band(16) == "Strong"
    assert policy.band(11) == "Weak"


@pytest.mark.parametrize(
    ("fit", "reason", "expected"),
    [
        ("Strong", "None", False),
        ("Strong", "", False),
        ("Disqualified", "", True),
        ("Moderate", "Public company", True),
    ],
)
def test_is_disqualified(fit, reason, expected):
    assert is_disqualified(fit, reason) is expected


# --- Prompt construction ----------------------------------------------------

def _example(domain, factor, score, snapshot="Research text"):
    return TrainingExample(
        domain=domain,
        company_name=domain.split(".")[0].title(),
        factor=factor,
        score=score,
        justification=f"Corrected {factor}",
        research_snapshot=snapshot,
    )


def test_calibration_groups_examples_by_company_and_truncates_snapshot():
    examples = [
        _example("acme.com", "A", 2, snapshot="x" * 4000),
        _example("acme.com", "B", 1),
        _example("globex.com", "F", 0),
    ]

    block = build_calibration(examples)

    assert block.startswith(CALIBRATION_OPEN)
    assert block.count("--- Acme (acme.com) ---") == 1
    assert "x" * 1500 in block
    assert "x" * 1501 not in block
    assert "SCORE_A_DIFFERENTIATION: 2\nSCORE_A_JUSTIFICATION: Corrected A" in block
    assert "SCORE_B_OUTCOMES: 1" in block
    assert "--- Globex (globex.com) ---" in block
    assert "SCORE_F_MULTI_PRODUCT: 0" in block


def test_calibration_is_empty_without_examples():
    assert build_calibration([]) == ""


def test_scoring_prompt_places_calibration_before_rubric():
    prompt = build_scoring_prompt("Acme", "acme.com", "RESEARCH BODY", [_example("globex.com", "C", 1)])

    research_at = prompt.index("RESEARCH BODY")
    calibration_at = prompt.index(CALIBRATION_OPEN)
    rubric_at = prompt.index(SCORING_PROMPT)
    assert research_at < calibration_at < rubric_at


def test_training_example_factor_is_validated():
    assert TrainingExample(domain="acme.com", factor=" b ", score=1).factor == "B"
    with pytest.raises(ValueError):
        TrainingExample(domain="acme.com", factor="G", score=1)


@pytest.mark.asyncio
async def test_score_sends_rubric_with_system_prompt():
    completion = StubCompletion()

    parsed = await score(completion, "Acme", "acme.com", "Research", [], model="scoring-model")

    assert parsed.kind == "structured"
    result = parsed.to_result()
    assert result.factor_b.score == 1
    assert result.factor_b.decision_maker == "VP of Operations"
    call = completion.calls[0]
    assert call["system"] == SCORING_SYSTEM_PROMPT
    assert call["model"] == "scoring-model"
    assert SCORING_PROMPT in call["prompt"]


@pytest.mark.asyncio
async def test_score_degrades_instead_of_raising_on_prose():
    completion = StubCompletion(scoring="The company looks interesting but I need more data.")

    parsed = await score(completion, "Acme", "acme.com", "Research", [], model="m")

    assert parsed.kind == "unparseable"
    assert FitPolicy().apply(parsed.to_result()).icp_fit == "Weak"


def test_factor_score_coercion():
    assert FactorA.model_validate({"score": "2"}).score == 2
    assert FactorA.model_validate({"score": "high"}).score == 0
