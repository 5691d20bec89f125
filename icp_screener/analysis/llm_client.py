"""Unified LLM client: routes to Anthropic (primary) or OpenAI (fallback).

Retries are owned by the completion ``Gateway``; both SDKs are built with
their own retry loops disabled so rate limits back off on our schedule.
"""

from __future__ import annotations

import logging

import anthropic
import httpx
import openai
from pydantic import BaseModel

from icp_screener.config import Config
from icp_screener.errors import UpstreamError
from icp_screener.gateway import Gateway, RetryPolicy

logger = logging.getLogger(__name__)

_WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 10}


class CompletionResult(BaseModel):
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    provider: str = "anthropic"
    retries: int = 0


class _AnthropicBillingError(Exception):
    """Raised when Anthropic returns a billing/credit error."""


class CompletionClient:
    """Sends prompts to Claude, falling back to OpenAI once billing fails.

    The fallback is sticky for the lifetime of the client instance.
    """

    def __init__(
        self,
        api_key_anthropic: str = "",
        api_key_openai: str = "",
        model_openai: str = "gpt-4o",
        gateway: Gateway | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key_anthropic = api_key_anthropic
        self.api_key_openai = api_key_openai
        self.model_openai = model_openai
        self.gateway = gateway or Gateway(
            "completion", RetryPolicy(attempts=3, base_delay=30.0, timeout=60.0),
        )
        self._http_client = http_client
        self._anthropic: anthropic.AsyncAnthropic | None = None
        self._openai: openai.AsyncOpenAI | None = None
        self.anthropic_failed = False

    @classmethod
    def from_config(cls, config: Config) -> "CompletionClient":
        return cls(
            api_key_anthropic=config.anthropic_api_key,
            api_key_openai=config.openai_api_key,
            model_openai=config.openai_model,
            gateway=Gateway(
                "completion",
                RetryPolicy(
                    attempts=config.retry_attempts,
                    base_delay=config.completion_retry_base,
                    timeout=config.completion_timeout,
                ),
            ),
        )

    @property
    def active_provider(self) -> str:
        if self.anthropic_failed or not self.api_key_anthropic:
            return "openai"
        return "anthropic"

    async def complete(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 16000,
        system: str | None = None,
        use_web_search: bool = False,
    ) -> CompletionResult:
        """Send a prompt and return the concatenated text blocks of the reply."""
        if self.active_provider == "anthropic":
            try:
                response = await self.gateway.invoke(
                    lambda: self._call_anthropic(prompt, model, max_tokens, system, use_web_search)
                )
                result: CompletionResult = response.data
                result.retries = response.retries
                return result
            except _AnthropicBillingError:
                if not self.api_key_openai:
                    raise UpstreamError(
                        "anthropic",
                        "Anthropic credit balance too low and no OPENAI_API_KEY set",
                        status_code=402,
                    )
                logger.warning("Anthropic billing error, switching to OpenAI for all future calls")
                self.anthropic_failed = True

        if not self.api_key_openai:
            raise UpstreamError("openai", "No LLM provider available: set ANTHROPIC_API_KEY or OPENAI_API_KEY")

        logger.info("Using OpenAI (%s) for completion", self.model_openai)
        response = await self.gateway.invoke(
            lambda: self._call_openai(prompt, max_tokens, system)
        )
        result = response.data
        result.retries = response.retries
        return result

    def _anthropic_client(self) -> anthropic.AsyncAnthropic:
        if self._anthropic is None:
            self._anthropic = anthropic.AsyncAnthropic(
                api_key=self.api_key_anthropic,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._anthropic

    async def _call_anthropic(
        self,
        prompt: str,
        model: str,
        max_tokens: int,
        system: str | None,
        use_web_search: bool,
    ) -> CompletionResult:
        kwargs: dict = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        if use_web_search:
            kwargs["tools"] = [_WEB_SEARCH_TOOL]

        try:
            response = await self._anthropic_client().messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            msg = str(e)
            if e.status_code in (400, 401, 402):
                lowered = msg.lower()
                if "credit" in lowered or "balance" in lowered or "billing" in lowered:
                    raise _AnthropicBillingError(msg) from e
            raise UpstreamError("anthropic", msg, status_code=e.status_code) from e
        except anthropic.APITimeoutError as e:
            raise UpstreamError("anthropic", f"Request timed out: {e}", status_code=504) from e
        except anthropic.APIConnectionError as e:
            raise UpstreamError("anthropic", f"Connection error: {e}", status_code=503) from e

        text = "\n".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return CompletionResult(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            provider="anthropic",
        )

    async def _call_openai(
        self,
        prompt: str,
        max_tokens: int,
        system: str | None,
    ) -> CompletionResult:
        if self._openai is None:
            self._openai = openai.AsyncOpenAI(
                api_key=self.api_key_openai,
                max_retries=0,
                http_client=self._http_client,
            )
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self._openai.chat.completions.create(
                model=self.model_openai,
                max_tokens=max_tokens,
                messages=messages,
            )
        except openai.APIStatusError as e:
            raise UpstreamError("openai", str(e), status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            raise UpstreamError("openai", f"Connection error: {e}", status_code=503) from e

        usage = response.usage
        return CompletionResult(
            text=response.choices[0].message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            provider="openai",
        )

    async def close(self) -> None:
        if self._anthropic is not None:
            await self._anthropic.close()
            self._anthropic = None
        if self._openai is not None:
            await self._openai.close()
            self._openai = None
