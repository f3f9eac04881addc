from __future__ import annotations

import json

import pytest

from chatcal.extraction import (
    ExtractionExhaustedError,
    MalformedJSONError,
    ModelChain,
    NoJSONFoundError,
    ProposalExtractor,
    extract_json,
    parse_candidates,
)
from chatcal.services.llm_client import LLMUnavailableError

from conftest import CHAT, TZ, StubBackend, fixed_clock

EVENT = {
    "title": "Dentist",
    "start_time": "2025-05-21T10:00:00",
    "end_time": "2025-05-21T11:00:00",
    "description": "checkup",
    "accountId": 1,
    "calendar": "primary",
}


def test_extract_json_prefers_array() -> None:
    assert extract_json('blah [ {"a":1} ] blah') == '[ {"a":1} ]'


def test_extract_json_falls_back_to_object() -> None:
    assert extract_json('{"a":1}') == '{"a":1}'
    assert extract_json('Sure! {"a": {"b": 2}} hope that helps') == '{"a": {"b": 2}}'


def test_extract_json_strips_markdown_fence() -> None:
    raw = "```json\n[{\"a\": 1}]\n```"
    assert extract_json(raw) == '[{"a": 1}]'


@pytest.mark.parametrize("raw", ["] no json here", "] {", "nothing", "} {"])
def test_extract_json_without_pair_fails(raw: str) -> None:
    with pytest.raises(NoJSONFoundError):
        extract_json(raw)


def test_parse_candidates_wraps_single_object() -> None:
    candidates = parse_candidates(json.dumps(EVENT))
    assert len(candidates) == 1
    assert candidates[0].title == "Dentist"
    assert candidates[0].account_id == 1


def test_parse_candidates_coerces_numeric_calendar() -> None:
    payload = dict(EVENT, calendar=2, description=None)
    candidate = parse_candidates(json.dumps([payload]))[0]
    assert candidate.calendar == "2"
    assert candidate.description == ""


@pytest.mark.parametrize(
    "text",
    ["[{'title': 'single quotes'}]", "[1, 2]", "[]", '[{"title": "no times"}]'],
)
def test_parse_candidates_rejects_bad_payloads(text: str) -> None:
    with pytest.raises(MalformedJSONError):
        parse_candidates(text)


def test_model_chain_falls_through_to_first_answer() -> None:
    first = StubBackend("m1", LLMUnavailableError("429"))
    second = StubBackend("m2", "   ")
    third = StubBackend("m3", "[]-from-m3")
    fourth = StubBackend("m4", "never used")

    assert ModelChain([first, second, third, fourth]).generate("prompt") == "[]-from-m3"
    assert fourth.prompts == []


def test_model_chain_skips_unexpected_backend_errors() -> None:
    broken = StubBackend("m1", RuntimeError("boom"))
    working = StubBackend("m2", "[1]")

    assert ModelChain([broken, working]).generate("prompt") == "[1]"
    assert working.prompts == ["prompt"]


def test_model_chain_exhausted() -> None:
    chain = ModelChain([StubBackend("m1", ""), StubBackend("m2", LLMUnavailableError("down"))])
    with pytest.raises(ExtractionExhaustedError):
        chain.generate("prompt")


def test_empty_model_chain_is_exhausted() -> None:
    with pytest.raises(ExtractionExhaustedError):
        ModelChain([]).generate("prompt")


def test_prompt_lists_only_enabled_calendars(registry, connect) -> None:
    connect()
    registry.set_disabled(CHAT, 1, "home@group.calendar.google.com", True)
    extractor = ProposalExtractor(
        chain=ModelChain([]), registry=registry, timezone=TZ, clock=fixed_clock
    )

    prompt = extractor.build_prompt(CHAT, "lunch tomorrow", prior_trace='[{"x": 1}]')

    assert "Current Date: 2025-05-20" in prompt
    assert "work@group.calendar.google.com" in prompt
    assert "home@group.calendar.google.com" not in prompt
    assert f"default timezone {TZ}" in prompt
    assert 'Previous JSON proposal: [{"x": 1}]' in prompt
    assert prompt.rstrip().endswith("Description: lunch tomorrow")


def test_extract_returns_candidates_and_json_text(registry) -> None:
    backend = StubBackend("m1", f"Here you go:\n{json.dumps([EVENT])}\nThanks")
    extractor = ProposalExtractor(
        chain=ModelChain([backend]), registry=registry, timezone=TZ, clock=fixed_clock
    )

    result = extractor.extract(CHAT, "dentist wednesday at 10")

    assert result.json_text == json.dumps([EVENT])
    assert [c.title for c in result.candidates] == ["Dentist"]
    assert "No accounts connected." in backend.prompts[0]
    assert "Previous JSON proposal" not in backend.prompts[0]
