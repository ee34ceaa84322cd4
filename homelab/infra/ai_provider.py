"""
AI completion providers.

Supports multiple LLM backends behind one `complete()` call:
- Gemini (Google AI) - default
- Claude (Anthropic)
- Perplexity (OpenAI-compatible HTTP API)

Usage:
    provider = get_ai_provider("claude")
    text = provider.complete(prompt, history=[...], system="...")

Every provider failure (missing key, quota, auth, timeout, empty reply)
surfaces as ProviderError.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from homelab.scheduler.errors import HandlerError


logger = logging.getLogger(__name__)

DEFAULT_AI_MODEL = os.getenv("DEFAULT_AI_MODEL", "gemini")
AI_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_TOKENS = 4096

PERPLEXITY_ENDPOINT = "https://api.perplexity.ai/chat/completions"


class ProviderError(HandlerError):
    """Raised when an AI provider cannot produce a completion."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


@dataclass
class AIModelInfo:
    """Model identification information."""
    provider: str  # "gemini", "anthropic", "perplexity"
    model_name: str
    full_spec: str


def parse_ai_model_spec(model_spec: Optional[str]) -> AIModelInfo:
    """
    Parse model specification string into provider and model name.

    Formats:
    - None -> DEFAULT_AI_MODEL
    - "gemini" / "gemini:gemini-2.0-flash"
    - "claude" / "claude:claude-sonnet-4-5-20250929"
    - "perplexity" / "perplexity:sonar"

    Raises:
        ValueError: On an unknown provider prefix
    """
    spec = (model_spec or DEFAULT_AI_MODEL).strip()
    prefix, _, model_name = spec.partition(":")
    prefix = prefix.lower()

    if prefix == "gemini":
        model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        return AIModelInfo(provider="gemini", model_name=model_name, full_spec=f"gemini:{model_name}")

    if prefix in ("claude", "anthropic"):
        model_name = model_name or os.getenv("CLAUDE_MODEL", "claude-sonnet-4-5-20250929")
        return AIModelInfo(provider="anthropic", model_name=model_name, full_spec=f"claude:{model_name}")

    if prefix == "perplexity":
        model_name = model_name or os.getenv("PERPLEXITY_MODEL", "sonar")
        return AIModelInfo(
            provider="perplexity", model_name=model_name, full_spec=f"perplexity:{model_name}"
        )

    raise ValueError(f"Unknown AI model spec: {spec!r}")


class AIProvider(ABC):
    """Abstract base class for AI completion providers."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        history: Optional[list[dict]] = None,
        system: Optional[str] = None,
    ) -> str:
        """
        Generate a completion.

        Args:
            prompt: User prompt text
            history: Prior turns as {"role": "user"|"assistant", "content": str}
            system: Optional system instruction

        Returns:
            Completion text

        Raises:
            ProviderError: On quota/auth/timeout or an empty reply
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass


class ClaudeProvider(AIProvider):
    """Claude (Anthropic) provider."""

    def __init__(self, model_name: str, api_key: Optional[str] = None):
        self.model_name = model_name
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def complete(
        self,
        prompt: str,
        history: Optional[list[dict]] = None,
        system: Optional[str] = None,
    ) -> str:
        if not self.api_key:
            raise ProviderError(self.provider_name, "ANTHROPIC_API_KEY is not set")

        import anthropic

        messages = [
            {"role": turn["role"], "content": turn["content"]}
            for turn in (history or [])
        ]
        messages.append({"role": "user", "content": prompt})

        logger.info(f"[ClaudeProvider] Completing with {self.model_name}")
        client = anthropic.Anthropic(api_key=self.api_key, timeout=AI_TIMEOUT_SECONDS)

        kwargs = {
            "model": self.model_name,
            "max_tokens": DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system

        try:
            message = client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise ProviderError(self.provider_name, str(e)) from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
        if not text:
            raise ProviderError(self.provider_name, "Empty completion")

        logger.info(f"[ClaudeProvider] Generated {len(text)} chars")
        return text


class GeminiProvider(AIProvider):
    """Gemini (Google AI) provider using google-genai."""

    def __init__(self, model_name: str, api_key: Optional[str] = None):
        self.model_name = model_name
        self.api_key = api_key or os.getenv("GEMINI_API_KEY", "")

    @property
    def provider_name(self) -> str:
        return "gemini"

    def complete(
        self,
        prompt: str,
        history: Optional[list[dict]] = None,
        system: Optional[str] = None,
    ) -> str:
        if not self.api_key:
            raise ProviderError(self.provider_name, "GEMINI_API_KEY is not set")

        from google import genai
        from google.genai import errors as genai_errors
        from google.genai import types

        contents = [
            types.Content(
                role="model" if turn["role"] == "assistant" else "user",
                parts=[types.Part(text=turn["content"])],
            )
            for turn in (history or [])
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=prompt)]))

        logger.info(f"[GeminiProvider] Completing with {self.model_name}")
        client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(AI_TIMEOUT_SECONDS * 1000)),
        )

        try:
            response = client.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=types.GenerateContentConfig(system_instruction=system) if system else None,
            )
        except genai_errors.APIError as e:
            raise ProviderError(self.provider_name, str(e)) from e
        except httpx.TimeoutException as e:
            raise ProviderError(self.provider_name, f"Timeout after {AI_TIMEOUT_SECONDS}s") from e
        except httpx.RequestError as e:
            raise ProviderError(self.provider_name, f"Request error: {e}") from e

        text = response.text
        if not text:
            raise ProviderError(self.provider_name, "Empty completion")

        logger.info(f"[GeminiProvider] Generated {len(text)} chars")
        return text


class PerplexityProvider(AIProvider):
    """Perplexity provider over its OpenAI-compatible chat endpoint."""

    def __init__(self, model_name: str, api_key: Optional[str] = None):
        self.model_name = model_name
        self.api_key = api_key or os.getenv("PERPLEXITY_API_KEY", "")

    @property
    def provider_name(self) -> str:
        return "perplexity"

    def complete(
        self,
        prompt: str,
        history: Optional[list[dict]] = None,
        system: Optional[str] = None,
    ) -> str:
        if not self.api_key:
            raise ProviderError(self.provider_name, "PERPLEXITY_API_KEY is not set")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(
            {"role": turn["role"], "content": turn["content"]} for turn in (history or [])
        )
        messages.append({"role": "user", "content": prompt})

        logger.info(f"[PerplexityProvider] Completing with {self.model_name}")
        try:
            with httpx.Client(timeout=AI_TIMEOUT_SECONDS) as client:
                response = client.post(
                    PERPLEXITY_ENDPOINT,
                    json={"model": self.model_name, "messages": messages},
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.TimeoutException as e:
            raise ProviderError(self.provider_name, f"Timeout after {AI_TIMEOUT_SECONDS}s") from e
        except httpx.RequestError as e:
            raise ProviderError(self.provider_name, f"Request error: {e}") from e

        if response.status_code >= 300:
            raise ProviderError(
                self.provider_name, f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (KeyError, IndexError, ValueError) as e:
            raise ProviderError(self.provider_name, f"Malformed response: {e}") from e

        if not text:
            raise ProviderError(self.provider_name, "Empty completion")
        return text


def get_ai_provider(model_spec: Optional[str] = None) -> AIProvider:
    """
    Get the provider for a model spec.

    Raises:
        ProviderError: On an unknown spec
    """
    try:
        info = parse_ai_model_spec(model_spec)
    except ValueError as e:
        raise ProviderError("ai", str(e)) from e

    if info.provider == "anthropic":
        return ClaudeProvider(info.model_name)
    if info.provider == "perplexity":
        return PerplexityProvider(info.model_name)
    return GeminiProvider(info.model_name)


class AIService:
    """
    AI collaborator handed to task handlers.

    Resolves a provider per call so each handler config can pick its model.
    """

    def __init__(self, default_model: Optional[str] = None):
        self.default_model = default_model or DEFAULT_AI_MODEL

    def complete(
        self,
        prompt: str,
        history: Optional[list[dict]] = None,
        system: Optional[str] = None,
        model: Optional[str] = None,
    ) -> str:
        provider = get_ai_provider(model or self.default_model)
        return provider.complete(prompt, history=history, system=system)
