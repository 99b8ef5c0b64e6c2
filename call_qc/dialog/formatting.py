"""Plain-text renderings of a dialog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from call_qc.dialog.turns import Turn
from call_qc.evaluation.models import Issue


@dataclass
class SpeakerStats:
    count: int = 0
    total_duration: float = 0.0


def format_dialog_for_copy(turns: Sequence[Turn]) -> str:
    """RU: Текст для копирования: заголовок спикера только при смене спикера.

    EN: Copy-friendly text: a speaker header only when the speaker changes.
    """
    lines: list[str] = []
    current: str | None = None
    for turn in turns:
        if turn.speaker_id != current:
            if lines:
                lines.append("")
            lines.append(f"{turn.speaker_id}:")
            current = turn.speaker_id
        lines.append(f"- {turn.text}")
    return "\n".join(lines)


def speaker_stats(turns: Sequence[Turn]) -> dict[str, SpeakerStats]:
    stats: dict[str, SpeakerStats] = {}
    for turn in turns:
        entry = stats.setdefault(turn.speaker_id, SpeakerStats())
        entry.count += 1
        entry.total_duration += turn.end_sec - turn.start_sec
    return stats


def _clock(seconds: float) -> str:
    minutes, secs = divmod(int(max(0.0, seconds)), 60)
    return f"{minutes}:{secs:02d}"


def format_annotated_dialog(
    turns: Sequence[Turn],
    issues_by_turn: Mapping[int, Sequence[Issue]],
    *,
    title: str = "Dialog",
) -> str:
    """Markdown dialog with attributed issues listed under their turns."""
    lines = [f"# {title}", ""]
    for idx, turn in enumerate(turns):
        lines.append(f"**{turn.speaker_id}** [{_clock(turn.start_sec)}-{_clock(turn.end_sec)}]")
        lines.append("")
        lines.append(turn.text)
        for issue in issues_by_turn.get(idx, ()):
            label = issue.category or "Issue"
            lines.append(f"> **{label}**: {issue.comment_text}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
