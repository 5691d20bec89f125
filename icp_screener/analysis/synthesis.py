"""Research synthesis: evidence document in, named research fields out."""

from __future__ import annotations

import logging

from icp_screener.analysis.fields import RESEARCH_FIELD_LABELS, extract_fields
from icp_screener.analysis.llm_client import CompletionClient
from icp_screener.analysis.prompts import RESEARCH_PROMPT, SYNTHESIS_TEMPLATE
from icp_screener.models import ResearchFields, SynthesisResult

logger = logging.getLogger(__name__)


def build_synthesis_prompt(company_name: str, website: str, evidence: str) -> str:
    return SYNTHESIS_TEMPLATE.format(
        company_name=company_name,
        website=website,
        evidence=evidence,
        research_prompt=RESEARCH_PROMPT,
    )


def parse_research(text: str) -> ResearchFields:
    """Pull every research field out of the synthesized report; absent fields stay ""."""
    return ResearchFields(**extract_fields(text, RESEARCH_FIELD_LABELS))


async def synthesize(
    client: CompletionClient,
    company_name: str,
    website: str,
    evidence: str,
    model: str,
    max_tokens: int = 16000,
) -> SynthesisResult:
    """Single completion call (no web search) over the gathered evidence.

    Provider failures propagate; the orchestrator marks the company as errored.
    """
    prompt = build_synthesis_prompt(company_name, website, evidence)
    result = await client.complete(prompt, model=model, max_tokens=max_tokens)
    logger.info(
        "[%s] Synthesis: %d chars (%d in / %d out tokens)",
        company_name, len(result.text), result.input_tokens, result.output_tokens,
    )
    return SynthesisResult(research_text=result.text, fields=parse_research(result.text))
