"""Screener settings: provider keys, model tiers, timeouts and fit bands."""

from __future__ import annotations

import os
import sys

from dotenv import load_dotenv
from pydantic import BaseModel


class Config(BaseModel):
    # API keys (openai is optional, used only when Anthropic billing fails)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    exa_api_key: str = ""
    crustdata_api_key: str = ""
    instantly_api_key: str = ""

    # Claude models: fast tier for synthesis, stronger tier for scoring
    synthesis_model: str = "claude-haiku-4-5-20251001"
    scoring_model: str = "claude-sonnet-4-20250514"
    synthesis_max_tokens: int = 16000
    scoring_max_tokens: int = 16000

    # OpenAI fallback model
    openai_model: str = "gpt-4o"

    # Upstream timeouts (seconds)
    completion_timeout: float = 60.0
    exa_timeout: float = 30.0
    crustdata_timeout: float = 60.0
    instantly_timeout: float = 30.0

    # Retry backoff base delays (seconds)
    completion_retry_base: float = 30.0
    search_retry_base: float = 2.0
    retry_attempts: int = 3

    # Concurrency
    concurrency: int = 2

    # Fit bands
    fit_strong: int = 14
    fit_moderate: int = 10

    # Storage
    db_path: str = ".icp_screener.db"

    # Web server
    web_host: str = "0.0.0.0"
    web_port: int = 8000


def load_config() -> Config:
    """Build a Config from the process environment, reading .env first.

    A missing completion or Exa key is fatal: the message goes to stderr and
    the process exits with status 1.
    """
    load_dotenv()

    anthropic_key = os.getenv("ANTHROPIC_API_KEY", "")
    openai_key = os.getenv("OPENAI_API_KEY", "")
    exa_key = os.getenv("EXA_API_KEY", "")

    errors = []
    if not anthropic_key and not openai_key:
        errors.append("At least one LLM key required: ANTHROPIC_API_KEY or OPENAI_API_KEY")
    if not exa_key:
        errors.append("EXA_API_KEY is required for evidence gathering")
    if errors:
        print("Configuration error:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("\nAdd the missing keys to .env or export them.", file=sys.stderr)
        sys.exit(1)

    if not os.getenv("CRUSTDATA_API_KEY"):
        print("  Note: CRUSTDATA_API_KEY not set, discovery disabled", file=sys.stderr)

    return Config(
        anthropic_api_key=anthropic_key,
        openai_api_key=openai_key,
        exa_api_key=exa_key,
        crustdata_api_key=os.getenv("CRUSTDATA_API_KEY", ""),
        instantly_api_key=os.getenv("INSTANTLY_API_KEY", ""),
        synthesis_model=os.getenv("SYNTHESIS_MODEL", "claude-haiku-4-5-20251001"),
        scoring_model=os.getenv("SCORING_MODEL", "claude-sonnet-4-20250514"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        completion_retry_base=float(os.getenv("COMPLETION_RETRY_BASE", "30")),
        search_retry_base=float(os.getenv("SEARCH_RETRY_BASE", "2")),
        concurrency=int(os.getenv("CONCURRENCY", "2")),
        fit_strong=int(os.getenv("FIT_STRONG", "14")),
        fit_moderate=int(os.getenv("FIT_MODERATE", "10")),
        db_path=os.getenv("DB_PATH", ".icp_screener.db"),
        web_host=os.getenv("WEB_HOST", "0.0.0.0"),
        web_port=int(os.getenv("WEB_PORT", "8000")),
    )
