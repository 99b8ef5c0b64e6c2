"""Tests for JSON extraction helpers."""

import pytest

from call_qc.utils.json_utils import as_float, extract_first_json_object


def test_extract_first_json_object_simple() -> None:
    """Return the first JSON object embedded in text."""
    obj = extract_first_json_object('score follows {"score": 80, "meta": {"c": 2}} done')
    assert obj == {"score": 80, "meta": {"c": 2}}


def test_extract_first_json_object_prefers_code_fence() -> None:
    text = 'Draft {"score": 1}\n```json\n{"score": 95, "confidence": 0.9}\n```'
    assert extract_first_json_object(text) == {"score": 95, "confidence": 0.9}


def test_extract_first_json_object_skips_non_dict_prefix() -> None:
    """Skip lists and keep searching for a dictionary."""
    text = 'mistakes: [1, 2, 3] and then {"score": 1}'
    assert extract_first_json_object(text) == {"score": 1}


def test_extract_first_json_object_skips_broken_braces() -> None:
    assert extract_first_json_object('{oops} {"a": 1}') == {"a": 1}


def test_extract_first_json_object_raises_when_missing() -> None:
    with pytest.raises(ValueError, match="Could not find JSON object"):
        extract_first_json_object("no json here")


def test_extract_first_json_object_rejects_non_text() -> None:
    with pytest.raises(TypeError):
        extract_first_json_object(None)  # type: ignore[arg-type]


@pytest.mark.parametrize(("raw", "expected"), [("0.5", 0.5), (3, 3.0), (None, -1.0), ("n/a", -1.0)])
def test_as_float(raw: object, expected: float) -> None:
    assert as_float(raw, default=-1.0) == expected
