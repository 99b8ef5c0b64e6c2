"""RU: Эскалация оценки: дешёвая модель, затем (при низкой уверенности) дорогая.

Основная модель вызывается всегда. Если она из «дешёвого» уровня и её
уверенность ниже порога, один раз вызывается эскалированная модель; остаётся
результат с большей уверенностью. Повторной эскалации не бывает.

EN: Evaluation escalation: cheap model first, expensive model on low confidence.

The primary model always runs. When it belongs to the cheap tier and its
confidence is under the threshold, the escalated model runs once and the
more confident result survives. There is never a second escalation.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from call_qc.dialog.turns import Turn
from call_qc.errors import EvaluationError
from call_qc.evaluation.models import (
    Escalation,
    EvaluationResult,
    ModelResponse,
    estimate_cost,
    is_cheap_model,
)
from call_qc.evaluation.transport import EvaluationTransport
from call_qc.progress import ProgressSink, ProgressTracker

LOGGER = logging.getLogger("call_qc")

DEFAULT_CONFIDENCE_THRESHOLD = 80.0
DEFAULT_MAX_TOKENS = 4000


def conversation_text(turns: Sequence[Turn]) -> str:
    return "\n".join(f"{t.speaker_id}: {t.text}" for t in turns)


def escalation_label(escalated_model: str, primary_model: str) -> str:
    return f"{escalated_model} (escalated from {primary_model})"


class EvaluationEscalator:
    """Run a conversation evaluation with confidence-gated escalation."""

    def __init__(
        self,
        transport: EvaluationTransport,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        is_cheap: Callable[[str], bool] = is_cheap_model,
    ) -> None:
        self.transport = transport
        self.max_tokens = max_tokens
        self.is_cheap = is_cheap

    def evaluate(
        self,
        turns: Sequence[Turn],
        primary_model: str,
        escalated_model: str,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        *,
        progress: ProgressSink | None = None,
    ) -> EvaluationResult:
        """RU: Оценивает диалог; порог уверенности задаётся в процентах (0-100).

        EN: Evaluate a dialog; the confidence threshold is a percentage (0-100).
        """
        tracker = ProgressTracker(progress)
        text = conversation_text(turns)

        tracker.emit("analyzing", 10, f"Evaluating with {primary_model}")
        primary = self._run(primary_model, text, phase="primary")
        confidence_pct = primary.confidence * 100

        if confidence_pct >= confidence_threshold:
            tracker.emit("complete", 100, "Evaluation complete")
            return primary.annotate(escalation=Escalation.NOT_NEEDED)

        if not self.is_cheap(primary_model):
            LOGGER.warning(
                "Evaluation confidence is low (%.0f%% < %.0f%%) but %s is not a cheap model; "
                "results may be inaccurate",
                confidence_pct,
                confidence_threshold,
                primary_model,
            )
            tracker.emit("complete", 100, "Evaluation complete (low confidence)")
            return primary.annotate(escalation=Escalation.NOT_ELIGIBLE)

        LOGGER.info(
            "Escalating evaluation: %s confidence %.0f%% < %.0f%%, retrying with %s",
            primary_model,
            confidence_pct,
            confidence_threshold,
            escalated_model,
        )
        tracker.emit("escalating", 50, f"Low confidence, re-evaluating with {escalated_model}")
        escalated = self._run(escalated_model, text, phase="escalated")
        total_cost = primary.token_cost + escalated.token_cost

        if escalated.confidence >= primary.confidence:
            tracker.emit("complete", 100, "Evaluation complete (escalated)")
            return escalated.annotate(
                model_used=escalation_label(escalated_model, primary_model),
                escalation=Escalation.UPGRADED,
                escalated_from=primary_model,
                total_token_cost=total_cost,
            )

        LOGGER.info(
            "Escalated model %s was not more confident (%.2f < %.2f); keeping %s",
            escalated_model,
            escalated.confidence,
            primary.confidence,
            primary_model,
        )
        tracker.emit("complete", 100, "Evaluation complete (no improvement)")
        return primary.annotate(
            escalation=Escalation.NO_IMPROVEMENT,
            total_token_cost=total_cost,
        )

    def _run(self, model_id: str, text: str, *, phase: str) -> EvaluationResult:
        try:
            response = self.transport.run_model(model_id, text, self.max_tokens)
        except Exception as exc:
            LOGGER.error("Evaluation call failed: model=%s, phase=%s: %s", model_id, phase, exc)
            raise EvaluationError(str(exc) or type(exc).__name__, model=model_id, phase=phase) from exc
        return _to_result(model_id, response)


def _to_result(model_id: str, response: ModelResponse) -> EvaluationResult:
    cost = estimate_cost(
        model_id,
        response.token_usage.prompt_tokens,
        response.token_usage.completion_tokens,
    )
    return EvaluationResult(
        score=response.score,
        confidence=response.confidence,
        model_used=model_id,
        issues=response.issues,
        token_usage=response.token_usage,
        token_cost=cost,
        summary=response.summary,
        total_token_cost=cost,
    )
