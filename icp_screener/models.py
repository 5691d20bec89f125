"""Pydantic data models for the ICP screening pipeline."""

from __future__ import annotations

from typing import Any, ClassVar, Literal, get_args, get_origin

from pydantic import BaseModel, Field, field_validator, model_validator

CompanyStatus = Literal["pending", "processing", "complete", "error"]
RunStatus = Literal["pending", "scoring", "complete", "error"]
IcpFit = Literal["Strong", "Moderate", "Weak", "Disqualified", ""]

FACTOR_KEYS = ("A", "B", "C", "D", "E", "F")


# ---------------------------------------------------------------------------
# Company models
# ---------------------------------------------------------------------------

class CompanyInput(BaseModel):
    """A company row coming from CSV import or discovery."""
    name: str
    website: str
    manual_score: str = ""


class Company(BaseModel):
    """A target account, keyed by normalized domain."""
    id: int | None = None
    domain: str
    name: str
    website: str
    status: CompanyStatus = "pending"
    step: str = ""
    error: str | None = None
    manual_score: str = ""
    last_screened_at: str | None = None


# ---------------------------------------------------------------------------
# Evidence / synthesis models
# ---------------------------------------------------------------------------

class SearchHit(BaseModel):
    """A single result item returned by the search/content provider."""
    title: str = ""
    url: str = ""
    published_date: str = ""
    text: str = ""
    highlights: list[str] = Field(default_factory=list)
    summary: str = ""
    subpages: list["SearchHit"] = Field(default_factory=list)

    @field_validator("title", "url", "published_date", "text", "summary", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or ""

    @field_validator("highlights", "subpages", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []


class EvidenceDocument(BaseModel):
    """The labeled evidence bundle handed to the synthesis stage."""
    text: str
    homepage_content: str = ""
    failures: list[str] = Field(default_factory=list)  # Section names that degraded


class ResearchFields(BaseModel):
    """Named fields pulled out of the synthesized research text."""
    product_summary: str = ""
    target_customer: str = ""
    target_decision_maker: str = ""
    top3_outcomes: str = ""
    top3_differentiators: str = ""
    major_announcements: str = ""
    competitors: str = ""
    customers: str = ""
    funding: str = ""
    team_size: str = ""
    homepage_sections: str = ""
    homepage_nav: str = ""
    product_pages: str = ""
    new_direction_page: str = ""
    linkedin_description: str = ""
    ceo_founder_name: str = ""
    ceo_recent_content: str = ""
    ceo_narrative_theme: str = ""
    new_marketing_leader: str = ""
    product_marketing_people: str = ""


class SynthesisResult(BaseModel):
    research_text: str
    fields: ResearchFields


# ---------------------------------------------------------------------------
# Scoring models
# ---------------------------------------------------------------------------

_EMPTY_TEXT = {"", "none", "n/a", "null", "-"}


def _as_list(value: Any, item_type: Any) -> list:
    if isinstance(value, str):
        items = [] if value.strip().lower() in _EMPTY_TEXT else [value.strip()]
    elif isinstance(value, (list, tuple)):
        items = [v for v in value if v is not None]
    else:
        items = [value]
    if item_type is str:
        return [v if isinstance(v, str) else str(v) for v in items]
    return items


class _Lenient(BaseModel):
    """Model output is untrusted: nulls become defaults, unknown keys are ignored,
    and values of the wrong shape are coerced rather than rejected.

    A bare string sent in place of an object lands in ``text_field``; a string
    sent in place of a list becomes a one-item list (or empty for "None").
    """

    text_field: ClassVar[str | None] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_object(cls, data):
        if isinstance(data, (dict, BaseModel)):
            return data
        if isinstance(data, str) and cls.text_field and data.strip().lower() not in _EMPTY_TEXT:
            return {cls.text_field: data.strip()}
        return {}

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_field(cls, v, info):
        field = cls.model_fields[info.field_name]
        if v is None:
            return field.get_default(call_default_factory=True)
        if get_origin(field.annotation) is list:
            return _as_list(v, get_args(field.annotation)[0])
        if field.annotation is str and not isinstance(v, str):
            return "; ".join(map(str, v)) if isinstance(v, list) else str(v)
        return v


class DifferentiationSection(_Lenient):
    text_field: ClassVar[str] = "name"

    name: str = ""
    finding: str = ""
    status: str = ""  # hit | miss


class OutcomeSection(_Lenient):
    text_field: ClassVar[str] = "name"

    name: str = ""
    finding: str = ""
    outcome_type: str = ""  # strategic | tactical | none


class OrientationSection(_Lenient):
    text_field: ClassVar[str] = "name"

    name: str = ""
    orientation: str = ""  # product-centric | customer-centric | mixed | excluded
    evidence: str = ""


class ProductChange(_Lenient):
    text_field: ClassVar[str] = "name"

    date: str = ""
    name: str = ""
    before: str = ""
    after: str = ""


class Audience(_Lenient):
    text_field: ClassVar[str] = "buyer"

    buyer: str = ""
    department: str = ""
    market: str = ""


class Product(_Lenient):
    text_field: ClassVar[str] = "name"

    name: str = ""
    tag: str = "module"  # module | product | suite


class Factor(_Lenient):
    score: int = 0
    verdict: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, v):
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0


class FactorA(Factor):
    """Differentiation."""
    differentiators: list[str] = Field(default_factory=list)
    homepage_sections: list[DifferentiationSection] = Field(default_factory=list)


class FactorB(Factor):
    """Outcomes."""
    decision_maker: str = ""
    strategic_outcomes: list[str] = Field(default_factory=list)
    tactical_outcomes: list[str] = Field(default_factory=list)
    homepage_sections: list[OutcomeSection] = Field(default_factory=list)


class FactorC(Factor):
    """Customer-centricity."""
    sections: list[OrientationSection] = Field(default_factory=list)


class FactorD(Factor):
    """Product change."""
    changes: list[ProductChange] = Field(default_factory=list)


class FactorE(Factor):
    """Audience change."""
    before: Audience = Field(default_factory=Audience)
    today: Audience = Field(default_factory=Audience)


class FactorF(Factor):
    """Multi-product cohesion."""
    products: list[Product] = Field(default_factory=list)
    description: str = ""


class ScoringResult(_Lenient):
    """Nested scoring object returned by the scoring model."""
    total_score: int = 0
    icp_fit: str = ""
    disqualification_reason: str = ""
    summary: str = ""
    factor_a: FactorA = Field(default_factory=FactorA)
    factor_b: FactorB = Field(default_factory=FactorB)
    factor_c: FactorC = Field(default_factory=FactorC)
    factor_d: FactorD = Field(default_factory=FactorD)
    factor_e: FactorE = Field(default_factory=FactorE)
    factor_f: FactorF = Field(default_factory=FactorF)

    @field_validator("total_score", mode="before")
    @classmethod
    def _coerce_total(cls, v):
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    def factor(self, key: str) -> Factor:
        return getattr(self, f"factor_{key.lower()}")

    def factor_scores(self) -> list[int]:
        return [self.factor(k).score for k in FACTOR_KEYS]


# ---------------------------------------------------------------------------
# Parsed scoring output (tagged)
# ---------------------------------------------------------------------------

class Structured(BaseModel):
    """The model returned parseable JSON."""
    kind: Literal["structured"] = "structured"
    result: ScoringResult
    raw: str = ""

    def to_result(self) -> ScoringResult:
        return self.result


class LegacyFields(BaseModel):
    """JSON failed; labeled SCORE_X lines were recovered instead."""
    kind: Literal["legacy"] = "legacy"
    result: ScoringResult
    justifications: dict[str, str] = Field(default_factory=dict)  # factor key -> text
    raw: str = ""

    def to_result(self) -> ScoringResult:
        return self.result


class Unparseable(BaseModel):
    """Nothing usable in the response; scores fall back to zero."""
    kind: Literal["unparseable"] = "unparseable"
    raw: str = ""

    def to_result(self) -> ScoringResult:
        return ScoringResult()


ParsedScore = Structured | LegacyFields | Unparseable


# ---------------------------------------------------------------------------
# Calibration / outreach models
# ---------------------------------------------------------------------------

class TrainingExample(BaseModel):
    """A human correction of one factor for one company."""
    id: int | None = None
    domain: str
    company_name: str = ""
    factor: str
    score: int
    justification: str = ""
    research_snapshot: str = ""

    @field_validator("factor")
    @classmethod
    def _valid_factor(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in FACTOR_KEYS:
            raise ValueError(f"factor must be one of {', '.join(FACTOR_KEYS)}")
        return v


class Contact(BaseModel):
    id: int | None = None
    company_id: int | None = None
    name: str = ""
    title: str = ""
    email: str = ""
    linkedin: str = ""
    seniority: str = ""
    function: str = ""
    status: str = "New"
    company_name: str = ""
    company_domain: str = ""


class Campaign(BaseModel):
    id: int | None = None
    name: str
    description: str = ""
    status: str = "draft"


class CampaignMessage(BaseModel):
    id: int | None = None
    campaign_id: int
    channel: str = "email"
    step_number: int = 1
    subject: str = ""
    body: str = ""


class SavedFilter(BaseModel):
    id: int | None = None
    name: str
    mode: str = "companies"
    filters: dict | list = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Run models
# ---------------------------------------------------------------------------

class CompanyOutcome(BaseModel):
    """What happened to one company during a run."""
    company_id: int
    domain: str
    status: CompanyStatus
    total_score: int = 0
    icp_fit: str = ""
    error: str | None = None


class RunSummary(BaseModel):
    outcomes: list[CompanyOutcome] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def completed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "complete")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "error")
