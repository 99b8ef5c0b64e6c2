"""Speaker turns as produced by a transcription provider, and their merged form."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Turn:
    """One contiguous speech segment of a single speaker."""

    speaker_id: str
    text: str
    start_sec: float = 0.0
    end_sec: float = 0.0
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Turn:
        confidence = data.get("confidence")
        return cls(
            speaker_id=str(data.get("speaker_id", data.get("speaker", ""))),
            text=str(data.get("text", "")),
            start_sec=float(data.get("start_sec", data.get("start", 0.0)) or 0.0),
            end_sec=float(data.get("end_sec", data.get("end", 0.0)) or 0.0),
            confidence=float(confidence) if confidence is not None else 1.0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "speaker_id": self.speaker_id,
            "text": self.text,
            "start_sec": self.start_sec,
            "end_sec": self.end_sec,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ConsolidatedTurn(Turn):
    """A maximal run of same-speaker turns merged into one paragraph.

    ``source_indices`` points back at the raw turns of the run; it is
    bookkeeping only and does not take part in equality.
    """

    source_indices: tuple[int, ...] = field(default=(), compare=False)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["source_indices"] = list(self.source_indices)
        return data
