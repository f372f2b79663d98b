import json
import logging
import os
import re
from typing import Any, Optional

from llm.providers.base import LLMProvider

logger = logging.getLogger(__name__)

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class LLMUnavailableError(RuntimeError):
    """No usable provider (e.g. missing API key)."""


class LLMResponseError(ValueError):
    """The model answered, but not in the expected shape."""


def _build_provider(name: str) -> LLMProvider:
    if name == "mock":
        from llm.providers.mock_provider import MockProvider

        return MockProvider()
    if name == "ollama":
        from llm.providers.ollama_provider import OllamaProvider

        return OllamaProvider()

    from llm.providers.openai_provider import OpenAIProvider

    try:
        return OpenAIProvider()
    except RuntimeError as e:
        raise LLMUnavailableError(str(e)) from e


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first {...} block of a model reply (models like to add chatter around JSON)."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise LLMResponseError("no JSON object in model output")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"invalid JSON in model output: {e}") from e
    if not isinstance(data, dict):
        raise LLMResponseError("model output is not a JSON object")
    return data


class LLMClient:
    """Provider-agnostic chat client with a 'model tier' knob.

    The provider is resolved lazily from LLM_PROVIDER (openai | ollama | mock)
    unless one is injected.
    """

    def __init__(self, provider: Optional[LLMProvider] = None, provider_name: str = LLM_PROVIDER):
        self._provider = provider
        self.provider_name = provider_name

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = _build_provider(self.provider_name)
        return self._provider

    def _select_model_name(self, model_tier: str) -> Optional[str]:
        if model_tier == "small":
            return os.getenv("LLM_MODEL_SMALL") or None
        return os.getenv("LLM_MODEL_LARGE") or None

    def complete(
        self,
        user: str,
        system: str = "",
        model_tier: str = "large",
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> str:
        kwargs: dict[str, Any] = {"system": system, "user": user, "temperature": temperature}
        model = self._select_model_name(model_tier)
        if model:
            kwargs["model"] = model
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        return self.provider.generate(**kwargs)

    def complete_json(self, user: str, system: str = "", **kwargs: Any) -> dict[str, Any]:
        text = self.complete(user, system=system, **kwargs)
        return extract_json_object(text)
