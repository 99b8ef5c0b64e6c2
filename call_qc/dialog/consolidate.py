"""Merge adjacent same-speaker turns into paragraphs."""

from __future__ import annotations

from typing import Iterable

from call_qc.dialog.normalize import normalize_for_display
from call_qc.dialog.turns import ConsolidatedTurn, Turn


def _join(left: str, right: str) -> str:
    if not left:
        return right
    if not right:
        return left
    return f"{left} {right}"


def consolidate(turns: Iterable[Turn]) -> tuple[ConsolidatedTurn, ...]:
    """RU: Сливает подряд идущие реплики одного спикера.

    Текст склеивается через один пробел (после нормализации для показа),
    ``end_sec`` берётся у последней реплики, ``confidence`` минимальная.
    Результат сохраняет порядок и разбивает вход без пропусков и повторов.

    EN: Merge runs of consecutive turns from the same speaker.

    Text is joined with a single space (after display normalization),
    ``end_sec`` comes from the last turn and ``confidence`` is the minimum.
    The output keeps input order and partitions the input exactly.
    """
    out: list[ConsolidatedTurn] = []
    current: ConsolidatedTurn | None = None

    for idx, turn in enumerate(turns):
        text = normalize_for_display(turn.text)
        if current is not None and turn.speaker_id == current.speaker_id:
            current = ConsolidatedTurn(
                speaker_id=current.speaker_id,
                text=_join(current.text, text),
                start_sec=current.start_sec,
                end_sec=turn.end_sec,
                confidence=min(current.confidence, turn.confidence),
                source_indices=current.source_indices + (idx,),
            )
            continue
        if current is not None:
            out.append(current)
        current = ConsolidatedTurn(
            speaker_id=turn.speaker_id,
            text=text,
            start_sec=turn.start_sec,
            end_sec=turn.end_sec,
            confidence=turn.confidence,
            source_indices=(idx,),
        )

    if current is not None:
        out.append(current)
    return tuple(out)
