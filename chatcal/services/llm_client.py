from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from openai import OpenAI, OpenAIError

from chatcal.config import Settings, settings

logger = logging.getLogger(__name__)


class LLMUnavailableError(RuntimeError):
    """Raised when a backend cannot produce a completion."""


@runtime_checkable
class TextBackend(Protocol):
    """Anything that turns a prompt into raw completion text."""

    name: str

    def generate(self, prompt: str) -> str: ...


class OpenAIChatBackend:
    """Chat-completions backend for any OpenAI-compatible host (Groq by default)."""

    def __init__(
        self,
        *,
        client: OpenAI,
        model: str,
        temperature: float,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = temperature
        self.name = model

    def generate(self, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as exc:  # pragma: no cover - network failure path
            raise LLMUnavailableError(str(exc)) from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def build_backends(config: Settings = settings) -> list[TextBackend]:
    """One backend per configured model, in priority order."""

    if not config.llm_api_key:
        logger.warning("No LLM API key configured; extraction is unavailable")
        return []
    try:
        client = OpenAI(api_key=config.llm_api_key, base_url=config.llm_api_host or None)
    except OpenAIError as exc:  # pragma: no cover - defensive logging
        logger.error("Failed to initialise OpenAI client: %s", exc)
        return []
    backends: list[TextBackend] = [
        OpenAIChatBackend(client=client, model=model, temperature=config.llm_temperature)
        for model in config.model_names
    ]
    logger.info("Model chain: %s", ", ".join(b.name for b in backends))
    return backends
