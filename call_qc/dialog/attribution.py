"""RU: Привязка замечаний оценки к репликам диалога.

Цитата замечания и текст каждой реплики приводятся к ключу сравнения
(``normalize_for_matching``); ищется точное вхождение подстроки. Из
нескольких подходящих реплик выбирается самая короткая, затем та, где
вхождение раньше, затем с меньшим индексом. Замечание без совпадений
отбрасывается: нечёткого поиска нет.

EN: Attach evaluation issues to dialog turns.

The issue excerpt and every turn text are reduced to a comparison key
(``normalize_for_matching``) and searched as an exact substring. Among
several candidates the shortest turn wins, then the earliest match position,
then the lowest index. An issue with no match is dropped: there is no fuzzy
fallback.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from call_qc.dialog.normalize import normalize_for_matching
from call_qc.dialog.turns import Turn
from call_qc.evaluation.models import Issue

LOGGER = logging.getLogger("call_qc")


def _best_turn(keys: Sequence[str], excerpt_key: str) -> int | None:
    best: tuple[int, int, int] | None = None
    for idx, key in enumerate(keys):
        pos = key.find(excerpt_key)
        if pos < 0:
            continue
        candidate = (len(key), pos, idx)
        if best is None or candidate < best:
            best = candidate
    return None if best is None else best[2]


def split_issues(
    turns: Sequence[Turn],
    issues: Iterable[Issue],
) -> tuple[dict[int, list[Issue]], list[Issue]]:
    """Return ``(turn index -> issues, dropped issues)``."""
    keys = [normalize_for_matching(t.text) for t in turns]
    mapping: dict[int, list[Issue]] = {}
    dropped: list[Issue] = []

    for issue in issues:
        excerpt_key = normalize_for_matching(issue.quoted_excerpt)
        idx = _best_turn(keys, excerpt_key) if excerpt_key else None
        if idx is None:
            LOGGER.debug("Dropping unmatched issue [%s]: %r", issue.category, issue.quoted_excerpt)
            dropped.append(issue)
            continue
        mapping.setdefault(idx, []).append(issue)

    return mapping, dropped


def attribute_issues(turns: Sequence[Turn], issues: Iterable[Issue]) -> dict[int, list[Issue]]:
    mapping, _ = split_issues(turns, issues)
    return mapping
