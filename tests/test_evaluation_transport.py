"""Tests for the OpenAI evaluation transport and the model catalog."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any

import pytest

from call_qc.errors import EvaluationParseError
from call_qc.evaluation import transport
from call_qc.evaluation.models import estimate_cost, estimate_tokens, is_cheap_model, lookup_model


class DummyResponse:
    """Minimal response stub to mimic requests.Response."""

    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return

    def json(self) -> dict[str, Any]:
        return self._payload


def _completion(content: str, usage: dict[str, int] | None = None) -> dict[str, Any]:
    return {
        "choices": [{"message": {"content": content}}],
        "usage": usage or {"prompt_tokens": 1000, "completion_tokens": 200},
    }


ANSWER = json.dumps(
    {
        "score": 72,
        "confidence": 85,
        "summary": "Mostly polite",
        "mistakes": [
            {"rule_category": "Mistake", "comment": "No greeting", "utterance": "What do you want?"},
            {"category": "Banned", "description": "Rude", "quote": "whatever"},
            "not a dict",
        ],
    },
)


def test_run_model_parses_answer(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    def fake_post(url: str, **kwargs: Any) -> DummyResponse:
        seen["url"] = url
        seen.update(kwargs)
        return DummyResponse(_completion(ANSWER))

    monkeypatch.setattr(transport, "requests", SimpleNamespace(post=fake_post))
    client = transport.OpenAIEvaluationTransport(transport.OpenAIEvaluationConfig(api_key="k"))
    response = client.run_model("gpt-4o-mini", "A: hi", 500)

    assert seen["url"] == transport.OPENAI_CHAT_URL
    assert seen["headers"]["Authorization"] == "Bearer k"
    assert seen["json"]["messages"][1] == {"role": "user", "content": "A: hi"}
    assert response.score == 72
    assert response.confidence == pytest.approx(0.85)
    assert [i.category for i in response.issues] == ["Mistake", "Banned"]
    assert response.issues[1].comment_text == "Rude"
    assert response.issues[1].quoted_excerpt == "whatever"
    assert response.token_usage.total_tokens == 1200
    assert response.summary == "Mostly polite"


def test_missing_usage_falls_back_to_estimate(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(_url: str, **_kwargs: Any) -> DummyResponse:
        return DummyResponse({"choices": [{"message": {"content": ANSWER}}]})

    monkeypatch.setattr(transport, "requests", SimpleNamespace(post=fake_post))
    cfg = transport.OpenAIEvaluationConfig(api_key="k", system_prompt="rules")
    response = transport.OpenAIEvaluationTransport(cfg).run_model("gpt-4o-mini", "Agent: hello there", 500)

    assert response.token_usage.prompt_tokens == estimate_tokens("rules\nAgent: hello there")
    assert response.token_usage.completion_tokens == estimate_tokens(ANSWER)
    assert response.token_usage.total_tokens > 0


def test_request_shape_depends_on_model_family() -> None:
    client = transport.OpenAIEvaluationTransport(transport.OpenAIEvaluationConfig(api_key="k"))

    new = client.build_request("gpt-5-mini-2025-08-07", "x", 4000)
    assert new["max_completion_tokens"] == 4000
    assert "max_tokens" not in new
    assert "temperature" not in new

    legacy = client.build_request("gpt-4o", "x", 4000)
    assert legacy["max_tokens"] == 4000
    assert legacy["temperature"] == 0.3
    assert legacy["response_format"] == {"type": "json_object"}


def test_parse_evaluation_accepts_fenced_json() -> None:
    content = 'Here you go:\n```json\n{"score": 90, "confidence": 0.6, "issues": []}\n```'
    response = transport.parse_evaluation(content)
    assert response.score == 90
    assert response.confidence == pytest.approx(0.6)
    assert response.issues == ()


@pytest.mark.parametrize(
    "content",
    ['{"confidence": 0.5}', '{"score": "high"}', "no json at all", '{"score": 5, "mistakes": "none"}'],
)
def test_parse_evaluation_rejects_bad_answers(content: str) -> None:
    with pytest.raises(EvaluationParseError):
        transport.parse_evaluation(content)


def test_run_model_rejects_empty_content(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_post(_url: str, **_kwargs: Any) -> DummyResponse:
        return DummyResponse({"choices": [{"message": {"content": ""}}]})

    monkeypatch.setattr(transport, "requests", SimpleNamespace(post=fake_post))
    client = transport.OpenAIEvaluationTransport(transport.OpenAIEvaluationConfig(api_key="k"))
    with pytest.raises(EvaluationParseError, match="No content"):
        client.run_model("gpt-4o", "x", 10)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(0.7, 0.7), (70, 0.7), ("85", 0.85), (None, 0.0), (150, 1.0), (-1, 0.0)],
)
def test_normalize_confidence(raw: Any, expected: float) -> None:
    assert transport.normalize_confidence(raw) == pytest.approx(expected)


def test_model_catalog_helpers() -> None:
    assert lookup_model("gpt-5-mini") is not None
    assert is_cheap_model("gpt-5-mini")
    assert is_cheap_model("gpt-5-nano-2025-08-07")
    assert is_cheap_model("gpt-3.5-turbo")
    assert is_cheap_model("some-vendor-mini")
    assert not is_cheap_model("gpt-5")
    assert not is_cheap_model("gpt-4o")
    assert not is_cheap_model("o3-2025-04-16")

    assert estimate_cost("gpt-5-mini", 1000, 1000) == pytest.approx(0.0012)
    assert estimate_cost("unknown-model", 1000, 0) == pytest.approx(0.00015)
    assert estimate_tokens("abcdefgh") == 2
    assert estimate_tokens("") == 0
