"""RU: Транспорт оценки: вызов языковой модели и разбор ответа.

EN: Evaluation transport: call a language model and parse its answer.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Final, Protocol

import requests

from call_qc.errors import EvaluationParseError
from call_qc.evaluation.models import Issue, ModelResponse, TokenUsage, estimate_tokens
from call_qc.utils.json_utils import as_float, extract_first_json_object

LOGGER = logging.getLogger("call_qc")

OPENAI_CHAT_URL: Final = "https://api.openai.com/v1/chat/completions"

SYSTEM_PROMPT: Final = """You are an expert call-center quality analyst. Evaluate the conversation against the rules you are given.
Respond with valid JSON only, in this structure:
{
  "score": <integer 0-100>,
  "confidence": <number 0-1, how sure you are about this evaluation>,
  "summary": "<string>",
  "mistakes": [
    {
      "rule_category": "Correct|Acceptable|Not Recommended|Mistake|Banned",
      "comment": "<string>",
      "utterance": "<exact quote from the conversation>"
    }
  ]
}"""

_NEW_MODEL_PREFIXES: Final = ("gpt-5", "gpt-4.1", "o3", "o4")


class EvaluationTransport(Protocol):
    """RU: Минимальный интерфейс вызова модели оценки.

    EN: Minimal interface for an evaluation model call.
    """

    def run_model(self, model_id: str, conversation_text: str, max_tokens: int) -> ModelResponse: ...


def normalize_confidence(value: Any) -> float:
    """Bring a model-reported confidence into [0, 1]; values above 1 are percents."""
    conf = as_float(value, default=0.0)
    if conf > 1.0:
        conf /= 100.0
    return min(1.0, max(0.0, conf))


def _parse_issue(raw: Any) -> Issue | None:
    if not isinstance(raw, dict):
        return None
    category = raw.get("rule_category") or raw.get("category") or ""
    comment = raw.get("comment") or raw.get("description") or ""
    excerpt = raw.get("utterance") or raw.get("quote") or ""
    return Issue(
        category=str(category).strip(),
        comment_text=str(comment).strip(),
        quoted_excerpt=str(excerpt).strip(),
    )


def parse_evaluation(
    content: str,
    usage: dict[str, Any] | None = None,
    *,
    prompt_text: str = "",
) -> ModelResponse:
    """RU: Разбирает JSON-ответ модели в `ModelResponse`.

    EN: Parse the model's JSON answer into a `ModelResponse`. Without a
    reported `usage`, token counts are estimated from `prompt_text` and the
    answer itself.
    """
    try:
        data = extract_first_json_object(content)
    except (TypeError, ValueError) as exc:
        message = f"Failed to parse model response: {exc}"
        raise EvaluationParseError(message) from exc

    score = data.get("score", data.get("overallScore"))
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise EvaluationParseError("Invalid response format: score is required")

    raw_issues = data.get("mistakes", data.get("issues", []))
    if not isinstance(raw_issues, list):
        raise EvaluationParseError("Invalid response format: mistakes must be an array")
    issues = tuple(i for i in (_parse_issue(r) for r in raw_issues) if i is not None)

    if usage:
        token_usage = TokenUsage(
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        )
    else:
        LOGGER.debug("No token usage reported; estimating from text length")
        token_usage = TokenUsage(
            prompt_tokens=estimate_tokens(prompt_text),
            completion_tokens=estimate_tokens(content),
        )
    return ModelResponse(
        score=float(score),
        confidence=normalize_confidence(data.get("confidence")),
        issues=issues,
        token_usage=token_usage,
        summary=str(data.get("summary") or ""),
    )


@dataclass(frozen=True)
class OpenAIEvaluationConfig:
    """RU: Конфиг для OpenAI Chat Completions.

    EN: Config for OpenAI Chat Completions.
    """

    api_key: str
    url: str = OPENAI_CHAT_URL
    system_prompt: str = SYSTEM_PROMPT
    timeout_s: int = 300


class OpenAIEvaluationTransport:
    """RU: Оценка диалога через OpenAI Chat Completions API.

    EN: Dialog evaluation through the OpenAI Chat Completions API.
    """

    def __init__(self, cfg: OpenAIEvaluationConfig):
        self.cfg = cfg

    def build_request(self, model_id: str, conversation_text: str, max_tokens: int) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model_id,
            "messages": [
                {"role": "system", "content": self.cfg.system_prompt},
                {"role": "user", "content": conversation_text},
            ],
            "response_format": {"type": "json_object"},
        }
        # Newer models reject max_tokens/temperature.
        if model_id.startswith(_NEW_MODEL_PREFIXES):
            body["max_completion_tokens"] = max_tokens
        else:
            body["max_tokens"] = max_tokens
            body["temperature"] = 0.3
        return body

    def run_model(self, model_id: str, conversation_text: str, max_tokens: int) -> ModelResponse:
        LOGGER.info("Calling OpenAI with model: %s", model_id)
        r = requests.post(
            self.cfg.url,
            headers={
                "Authorization": f"Bearer {self.cfg.api_key}",
                "Content-Type": "application/json",
            },
            json=self.build_request(model_id, conversation_text, max_tokens),
            timeout=self.cfg.timeout_s,
        )
        r.raise_for_status()
        data = r.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EvaluationParseError("Invalid OpenAI response structure") from exc
        if not content:
            raise EvaluationParseError("No content in OpenAI response")
        prompt_text = f"{self.cfg.system_prompt}\n{conversation_text}"
        return parse_evaluation(content, data.get("usage"), prompt_text=prompt_text)
