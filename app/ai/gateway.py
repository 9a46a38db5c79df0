"""
Process Mapping Studio
LLM Gateway — the single port every orchestration component talks to.

Provider-agnostic completion router with:
    - Multi-provider support (OpenAI, Anthropic Claude, Gemini, local stub)
    - JSON mode on every provider
    - Request timeout + bounded retry with exponential backoff
    - Optional billing gate consulted before each call
    - Token / cost / latency logging

Usage:
    from app.ai.gateway import LLMGateway
    gw = LLMGateway(default_model="gpt-4o")
    text = gw.complete(
        "You classify messages.",
        [{"role": "user", "content": "We receive invoices by email..."}],
        json_mode=True, temperature=0.7, max_tokens=2000,
        purpose="intent_classification",
    )
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod

from app.core.exceptions import BudgetExceededError, LLMError

logger = logging.getLogger(__name__)


# USD per 1M tokens
TOKEN_COSTS = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
    "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "gemini-2.5-pro": {"input": 1.25, "output": 10.00},
    "local-stub": {"input": 0.0, "output": 0.0},
}

JSON_ONLY_INSTRUCTION = "Respond with a single valid JSON object and nothing else."


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """USD cost for a model + token counts (0 for unknown models)."""
    costs = TOKEN_COSTS.get(model, {"input": 0.0, "output": 0.0})
    return (prompt_tokens * costs["input"] + completion_tokens * costs["output"]) / 1_000_000


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout
        self._client = None

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, json_mode.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI chat completions."""

    def _get_client(self):
        if self._client is None:
            import openai
            # Retries are owned by the gateway
            self._client = openai.OpenAI(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o", **kwargs) -> dict:
        params = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", 2000),
            "temperature": kwargs.get("temperature", 0.3),
        }
        if kwargs.get("json_mode"):
            params["response_format"] = {"type": "json_object"}

        response = self._get_client().chat.completions.create(**params)
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
            "completion_tokens": response.usage.completion_tokens if response.usage else 0,
            "model": model,
        }


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=os.getenv("ANTHROPIC_API_KEY", ""),
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-sonnet-20241022", **kwargs) -> dict:
        # Claude takes the system prompt separately; several system messages are joined
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        chat_messages = [m for m in messages if m["role"] != "system"]
        if kwargs.get("json_mode"):
            system_parts.append(JSON_ONLY_INSTRUCTION)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 2000),
            "temperature": kwargs.get("temperature", 0.3),
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)

        response = self._get_client().messages.create(**params)
        return {
            "content": "".join(
                block.text for block in response.content if getattr(block, "type", "") == "text"
            ),
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── Google Gemini Provider ───────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """Google Gemini API provider (AI Studio key)."""

    def _get_client(self):
        if self._client is None:
            from google import genai
            from google.genai import types
            self._client = genai.Client(
                api_key=os.getenv("GEMINI_API_KEY", ""),
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(
                    types.Content(role=role, parts=[types.Part(text=m["content"])])
                )

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.3),
            max_output_tokens=kwargs.get("max_tokens", 2000),
        )
        if kwargs.get("json_mode"):
            config.response_mime_type = "application/json"
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)

        response = client.models.generate_content(model=model, contents=contents, config=config)
        usage = response.usage_metadata
        return {
            "content": response.text or "",
            "prompt_tokens": getattr(usage, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(usage, "candidates_token_count", 0) or 0,
            "model": model,
        }


# ── Local Stub Provider (dev without API keys) ───────────────────────────────

class LocalStubProvider(LLMProvider):
    """
    Deterministic offline provider.

    Answers every purpose with a well-formed but conservative payload: the
    classifier always chooses ``respond_only`` so nothing is written without a
    real model behind the gateway.
    """

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._generate_stub_response(kwargs.get("purpose", ""), user_msg)
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_response(purpose: str, user_msg: str) -> str:
        if purpose == "intent_classification":
            return json.dumps({
                "intent": "general_question",
                "actions": ["respond_only"],
                "intent_confidence": 0.5,
                "explanation": "No language model is configured, so I can only acknowledge "
                               "your message. Set an API key to enable process mapping.",
                "target_ids": {},
                "data": {},
            })
        if purpose == "opportunity_analysis":
            return json.dumps({
                "title": "No automation opportunity identified",
                "opportunity_type": "none",
                "impact_level": "low",
                "effort_level": "low",
                "impact_score": 0,
                "feasibility_score": 0,
                "rationale": "Offline stub provider.",
            })
        if purpose == "session_title":
            return json.dumps({"title": (user_msg.strip().splitlines() or ["Process session"])[0][:60]})
        if purpose == "clarification":
            return "Could you walk me through the steps of the process from start to finish?"
        if purpose == "tool_rationale":
            return "Recommended from the tool catalog by category and keyword match."
        return "Session summary unavailable while running without a language model."


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider routing based on model name (falls back to the local stub)
        - Bounded retry with exponential backoff, provider-level timeout
        - Billing gate check before the first attempt
        - Usage logging (tokens, cost, latency) through the module logger

    The orchestration engine only needs :meth:`complete`; tests substitute any
    object exposing the same method.
    """

    PROVIDER_MAP = {
        "gpt-4o": "openai",
        "gpt-4o-mini": "openai",
        "claude-3-5-sonnet-20241022": "anthropic",
        "claude-3-5-haiku-20241022": "anthropic",
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        "local-stub": "local",
    }

    def __init__(
        self,
        default_model: str = "gpt-4o",
        *,
        timeout: float = 60.0,
        max_retries: int = 3,
        budget_gate=None,
    ):
        self.default_model = default_model
        self.max_retries = max(1, max_retries)
        self.budget_gate = budget_gate
        self._providers: dict[str, LLMProvider] = {}
        self._init_providers(timeout)

    @classmethod
    def from_config(cls, config, budget_gate=None) -> "LLMGateway":
        return cls(
            default_model=config.get("LLM_DEFAULT_CHAT_MODEL", "gpt-4o"),
            timeout=config.get("LLM_TIMEOUT_SECONDS", 60.0),
            max_retries=config.get("LLM_MAX_RETRIES", 3),
            budget_gate=budget_gate,
        )

    def _init_providers(self, timeout: float):
        """Register the stub plus every provider that has an API key."""
        self._providers["local"] = LocalStubProvider(timeout)
        if os.getenv("OPENAI_API_KEY"):
            self._providers["openai"] = OpenAIProvider(timeout)
        if os.getenv("ANTHROPIC_API_KEY"):
            self._providers["anthropic"] = AnthropicProvider(timeout)
        if os.getenv("GEMINI_API_KEY"):
            self._providers["gemini"] = GeminiProvider(timeout)

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        provider_name = self.PROVIDER_MAP.get(model, "local")
        if provider_name in self._providers:
            return self._providers[provider_name], provider_name

        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def complete(
        self,
        system_prompt: str,
        messages: list[dict],
        *,
        json_mode: bool = False,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        purpose: str = "",
        workspace_id: str | None = None,
        model: str | None = None,
    ) -> str:
        """Run one completion and return its text.

        Raises:
            BudgetExceededError: the billing gate rejected the call.
            LLMError: every attempt failed.
        """
        chat_messages = []
        if system_prompt:
            chat_messages.append({"role": "system", "content": system_prompt})
        chat_messages.extend(messages)
        result = self.chat(
            chat_messages, model,
            purpose=purpose, workspace_id=workspace_id,
            json_mode=json_mode, temperature=temperature, max_tokens=max_tokens,
        )
        return result["content"]

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        purpose: str = "",
        workspace_id: str | None = None,
        **kwargs,
    ) -> dict:
        """
        Send a chat completion request with budget check and retry.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, cost_usd,
                   latency_ms, provider}
        """
        model = model or self.default_model

        if self.budget_gate is not None:
            verdict = self.budget_gate.check_budget(workspace_id=workspace_id, purpose=purpose)
            if not verdict["allowed"]:
                logger.warning("LLM call rejected by billing gate: %s", verdict.get("reason"),
                               extra={"workspace_id": workspace_id, "purpose": purpose})
                raise BudgetExceededError(f"Budget exceeded: {verdict.get('reason')}")

        provider, provider_name = self._get_provider(model)

        last_error = None
        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                result = provider.chat(messages, model, purpose=purpose, **kwargs)
            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed (%s): %s",
                               attempt, self.max_retries, purpose or "unlabelled", e)
                if attempt < self.max_retries:
                    backoff = min(2 ** (attempt - 1), 4)
                    threading.Event().wait(backoff)
                continue

            latency_ms = int((time.time() - start_time) * 1000)
            cost = calculate_cost(result["model"], result["prompt_tokens"], result["completion_tokens"])
            result["cost_usd"] = cost
            result["latency_ms"] = latency_ms
            result["provider"] = provider_name
            logger.info(
                "LLM call ok: purpose=%s model=%s tokens=%d/%d",
                purpose, result["model"], result["prompt_tokens"], result["completion_tokens"],
                extra={
                    "purpose": purpose,
                    "provider": provider_name,
                    "model": result["model"],
                    "prompt_tokens": result["prompt_tokens"],
                    "completion_tokens": result["completion_tokens"],
                    "cost_usd": round(cost, 6),
                    "latency_ms": latency_ms,
                    "workspace_id": workspace_id,
                },
            )
            return result

        raise LLMError(f"LLM call failed after {self.max_retries} attempts: {last_error}")
