"""RU: Утилиты для извлечения JSON из ответа языковой модели.

EN: Utilities for extracting JSON from language-model output.
"""

from __future__ import annotations

import json
import re
from json import JSONDecodeError
from typing import Any

_CODE_BLOCK = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")


def extract_first_json_object(text: str) -> dict[str, Any]:
    """RU: Ищет и парсит первый корректный JSON-объект в тексте.

    Сначала проверяются markdown-блоки ```json```, затем текст сканируется
    по символу '{'. JSON-массивы пропускаются.

    EN: Find and parse the first valid JSON object (dict) in the text.

    Markdown ```json``` fences are tried first, then the text is scanned for
    '{'. JSON arrays are skipped.
    """
    if not isinstance(text, str):
        message = f"Expected model output as text, got {type(text).__name__}"
        raise TypeError(message)

    match = _CODE_BLOCK.search(text)
    if match:
        try:
            obj = json.loads(match.group(1))
            if isinstance(obj, dict):
                return obj
        except JSONDecodeError:
            pass

    decoder = json.JSONDecoder()
    for idx, ch in enumerate(text):
        if ch != "{":
            continue
        try:
            obj, _ = decoder.raw_decode(text, idx)
        except JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj

    message = "Could not find JSON object in text"
    raise ValueError(message)


def as_float(value: Any, default: float = 0.0) -> float:
    """Coerce a loosely typed JSON value to float."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
