"""RU: Две независимые нормализации текста реплик.

* ``normalize_for_display`` убирает переносы строк, неразрывные пробелы и
  повторные пробелы; пунктуация и регистр сохраняются.
* ``normalize_for_matching`` делает то же самое, плюс NFKC, единые кавычки и
  тире, casefold и обрезку кавычек/точек по краям. Только для сравнения.

EN: Two independent normalizations of turn text.

* ``normalize_for_display`` collapses line breaks, non-breaking spaces and
  repeated whitespace; punctuation and case are kept.
* ``normalize_for_matching`` does the same plus NFKC folding, quote and dash
  unification, casefolding and trimming of edge quotes/periods. Comparison only.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Final

_BR_RE: Final = re.compile(r"<br\s*/?>", re.IGNORECASE)
_WS_RE: Final = re.compile(r"\s+")

_SPACE_LIKE: Final = dict.fromkeys(map(ord, "\r\n\u0085\u2028\u2029\u00a0\u202f"), " ")

_QUOTES: Final = str.maketrans(
    {
        "‘": "'",
        "’": "'",
        "‚": "'",
        "‛": "'",
        "′": "'",
        "´": "'",
        "`": "'",
        "“": '"',
        "”": '"',
        "„": '"',
        "‟": '"',
        "″": '"',
        "«": '"',
        "»": '"',
        "‹": '"',
        "›": '"',
        "‐": "-",
        "‑": "-",
        "‒": "-",
        "–": "-",
        "—": "-",
        "―": "-",
        "−": "-",
    },
)

_EDGE_CHARS: Final = "'\". \t"


def normalize_for_display(text: str | None) -> str:
    if not text:
        return ""
    out = _BR_RE.sub(" ", text).translate(_SPACE_LIKE)
    return _WS_RE.sub(" ", out).strip()


def normalize_for_matching(text: str | None) -> str:
    """RU: Ключ для сравнения подстрок; никогда не показывается пользователю.

    EN: Key for substring comparison; never shown to the user.
    """
    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text)
    out = normalize_for_display(folded).translate(_QUOTES).casefold()
    return out.strip(_EDGE_CHARS)
