"""Evaluation data types, the model catalog with tiers, and token pricing."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import math
from typing import Any, Final


class ModelTier(str, Enum):
    FLAGSHIP = "flagship"
    FAST = "fast"
    REASONING = "reasoning"
    ECONOMIC = "economic"


CHEAP_TIERS: Final = frozenset({ModelTier.FAST, ModelTier.ECONOMIC})


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    tier: ModelTier
    # USD per 1k tokens.
    input_cost: float
    output_cost: float


MODEL_CATALOG: Final[dict[str, ModelInfo]] = {
    m.id: m
    for m in (
        ModelInfo("gpt-5-2025-08-07", "GPT-5", ModelTier.FLAGSHIP, 0.002, 0.010),
        ModelInfo("gpt-5-mini-2025-08-07", "GPT-5 Mini", ModelTier.FAST, 0.0002, 0.0010),
        ModelInfo("gpt-5-nano-2025-08-07", "GPT-5 Nano", ModelTier.ECONOMIC, 0.0001, 0.0005),
        ModelInfo("gpt-4.1-2025-04-14", "GPT-4.1", ModelTier.FLAGSHIP, 0.0015, 0.006),
        ModelInfo("o3-2025-04-16", "O3", ModelTier.REASONING, 0.002, 0.010),
        ModelInfo("o4-mini-2025-04-16", "O4 Mini", ModelTier.REASONING, 0.0002, 0.0008),
        ModelInfo("gpt-4o", "GPT-4o", ModelTier.FLAGSHIP, 0.005, 0.015),
        ModelInfo("gpt-4o-mini", "GPT-4o Mini", ModelTier.FAST, 0.00015, 0.0006),
        ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", ModelTier.ECONOMIC, 0.0005, 0.0015),
    )
}
FALLBACK_PRICING_MODEL: Final = "gpt-4o-mini"

_CHEAP_NAME_MARKERS: Final = ("mini", "nano", "3.5")
CHARS_PER_TOKEN: Final = 4


def lookup_model(model_id: str) -> ModelInfo | None:
    """Find a catalog entry by exact id or by dated-id prefix ("gpt-5-mini")."""
    if model_id in MODEL_CATALOG:
        return MODEL_CATALOG[model_id]
    for info in MODEL_CATALOG.values():
        if info.id.startswith(f"{model_id}-"):
            return info
    return None


def is_cheap_model(model_id: str) -> bool:
    info = lookup_model(model_id)
    if info is not None:
        return info.tier in CHEAP_TIERS
    lowered = model_id.lower()
    return any(marker in lowered for marker in _CHEAP_NAME_MARKERS)


def estimate_cost(model_id: str, prompt_tokens: int, completion_tokens: int) -> float:
    info = lookup_model(model_id) or MODEL_CATALOG[FALLBACK_PRICING_MODEL]
    return (prompt_tokens * info.input_cost + completion_tokens * info.output_cost) / 1000


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class Issue:
    """A detected rule violation tied to a quoted excerpt of the conversation."""

    category: str
    comment_text: str
    quoted_excerpt: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "category": self.category,
            "comment_text": self.comment_text,
            "quoted_excerpt": self.quoted_excerpt,
        }


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class ModelResponse:
    """What the evaluation transport returns for a single model call."""

    score: float
    confidence: float
    issues: tuple[Issue, ...] = ()
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    summary: str = ""


class Escalation(str, Enum):
    """How the final evaluation came to be.

    ``NO_IMPROVEMENT`` is the informational "low confidence, no improvement"
    annotation: the escalated model ran but did not beat the primary result.
    """

    NOT_NEEDED = "not_needed"
    NOT_ELIGIBLE = "not_eligible"
    UPGRADED = "upgraded"
    NO_IMPROVEMENT = "no_improvement"


@dataclass(frozen=True)
class EvaluationResult:
    score: float
    confidence: float
    model_used: str
    issues: tuple[Issue, ...] = ()
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    token_cost: float = 0.0
    summary: str = ""
    escalation: Escalation = Escalation.NOT_NEEDED
    escalated_from: str | None = None
    total_token_cost: float = 0.0

    @property
    def low_confidence_no_improvement(self) -> bool:
        return self.escalation is Escalation.NO_IMPROVEMENT

    def annotate(self, **changes: Any) -> EvaluationResult:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "confidence": self.confidence,
            "model_used": self.model_used,
            "issues": [i.to_dict() for i in self.issues],
            "token_usage": {
                "prompt_tokens": self.token_usage.prompt_tokens,
                "completion_tokens": self.token_usage.completion_tokens,
                "total_tokens": self.token_usage.total_tokens,
            },
            "token_cost": self.token_cost,
            "summary": self.summary,
            "escalation": self.escalation.value,
            "escalated_from": self.escalated_from,
            "total_token_cost": self.total_token_cost,
        }
