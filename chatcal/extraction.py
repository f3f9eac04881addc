from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Callable, Sequence

from pydantic import ValidationError

from chatcal.models import CandidateEvent, ConversationId, ExtractionResult
from chatcal.prompts import EXTRACTION_TEMPLATE, PREVIOUS_PROPOSAL
from chatcal.registry import AccountRegistry
from chatcal.services.llm_client import TextBackend
from chatcal.utils.time import now_in_tz

logger = logging.getLogger(__name__)


class ExtractionError(RuntimeError):
    """Base class for failures while turning text into candidate events."""


class ExtractionExhaustedError(ExtractionError):
    """Every model in the chain failed or returned nothing."""


class NoJSONFoundError(ExtractionError):
    """The model output contains no bracketed JSON payload."""


class MalformedJSONError(ExtractionError):
    """The bracketed payload is not valid JSON or not a list of events."""


class ModelChain:
    """Ordered backends, most capable first; the first non-empty answer wins."""

    def __init__(self, backends: Sequence[TextBackend]) -> None:
        self._backends = list(backends)

    @property
    def names(self) -> list[str]:
        return [backend.name for backend in self._backends]

    def generate(self, prompt: str) -> str:
        for backend in self._backends:
            try:
                text = backend.generate(prompt)
            except Exception as exc:  # any backend failure advances to the next model
                logger.warning("Model '%s' failed: %s", backend.name, exc)
                continue
            if not text or not text.strip():
                logger.warning("Model '%s' returned empty output", backend.name)
                continue
            logger.debug("Model '%s' answered with %d chars", backend.name, len(text))
            return text
        raise ExtractionExhaustedError(
            f"All {len(self._backends)} model(s) failed to produce output"
        )


def extract_json(response: str) -> str:
    """Cut the outermost JSON array (or, failing that, object) out of ``response``."""

    first_bracket = response.find("[")
    last_bracket = response.rfind("]")
    if first_bracket != -1 and last_bracket > first_bracket:
        return response[first_bracket : last_bracket + 1]

    first_brace = response.find("{")
    last_brace = response.rfind("}")
    if first_brace == -1 or last_brace <= first_brace:
        raise NoJSONFoundError("No valid JSON string found in response")
    return response[first_brace : last_brace + 1]


def parse_candidates(json_text: str) -> list[CandidateEvent]:
    try:
        payload = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise MalformedJSONError(f"Invalid JSON from model: {exc}") from exc

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise MalformedJSONError(f"Expected a list of events, got {type(payload).__name__}")
    if not payload:
        raise MalformedJSONError("Model returned an empty event list")

    try:
        return [CandidateEvent.model_validate(item) for item in payload]
    except ValidationError as exc:
        raise MalformedJSONError(f"Event payload has the wrong shape: {exc}") from exc


class ProposalExtractor:
    """Builds the extraction prompt and turns model output into candidates."""

    def __init__(
        self,
        *,
        chain: ModelChain,
        registry: AccountRegistry,
        timezone: str,
        clock: Callable[[str], datetime] = now_in_tz,
    ) -> None:
        self._chain = chain
        self._registry = registry
        self._timezone = timezone
        self._clock = clock

    def build_prompt(
        self, conversation_id: ConversationId, text: str, prior_trace: str = ""
    ) -> str:
        previous = PREVIOUS_PROPOSAL.format(trace=prior_trace) if prior_trace else ""
        return EXTRACTION_TEMPLATE.format(
            current_date=self._clock(self._timezone).strftime("%Y-%m-%d"),
            accounts=self._registry.list_accounts(conversation_id, enabled_only=True),
            timezone=self._timezone,
            previous=previous,
            text=text,
        )

    def extract(
        self, conversation_id: ConversationId, text: str, prior_trace: str = ""
    ) -> ExtractionResult:
        prompt = self.build_prompt(conversation_id, text, prior_trace)
        raw = self._chain.generate(prompt)
        json_text = extract_json(raw)
        candidates = parse_candidates(json_text)
        logger.info(
            "Extracted %d candidate(s) for conversation %s",
            len(candidates),
            conversation_id,
        )
        return ExtractionResult(candidates=candidates, json_text=json_text)
