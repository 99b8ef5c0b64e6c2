"""Tests for the Deepgram transport adapter."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from call_qc.credentials.pool import CredentialSnapshot
from call_qc.transcription import deepgram
from call_qc.transcription.media import AudioAsset

CRED = CredentialSnapshot(id="c1", secret="dg-key", region="us")

PAYLOAD: dict[str, Any] = {
    "metadata": {"request_id": "req-1", "duration": 12.5},
    "results": {
        "channels": [
            {
                "detected_language": "ru",
                "language_confidence": 0.91,
                "alternatives": [{"transcript": "привет как дела"}],
            },
        ],
        "utterances": [
            {"speaker": 0, "transcript": "привет", "start": 0.0, "end": 0.8, "confidence": 0.95},
            {"speaker": 1, "transcript": "как дела", "start": 1.0, "end": 1.9, "confidence": 0.7},
        ],
    },
}


class DummyResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return

    def json(self) -> dict[str, Any]:
        return self._payload


def test_full_cycle_through_staging(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[str, dict[str, Any]]] = []

    def fake_post(url: str, **kwargs: Any) -> DummyResponse:
        calls.append((url, kwargs))
        return DummyResponse(PAYLOAD)

    monkeypatch.setattr(deepgram, "requests", SimpleNamespace(post=fake_post))
    transport = deepgram.DeepgramTransport()

    handle = transport.upload(AudioAsset(name="a.wav", mime_type="audio/wav", data=b"RIFF"), CRED)
    assert calls == []

    job_id = transport.submit(handle, {"diarize": True, "smart_format": False, "language": None}, CRED)
    assert job_id == "req-1"
    url, kwargs = calls[0]
    assert url == "https://api.deepgram.com/v1/listen"
    assert kwargs["headers"]["Authorization"] == "Token dg-key"
    assert kwargs["headers"]["Content-Type"] == "audio/wav"
    assert kwargs["params"] == {
        "model": "nova-2",
        "utterances": "true",
        "diarize": "true",
        "smart_format": "false",
    }

    polled = transport.poll(job_id, CRED)
    assert polled.status == "completed"
    assert transport.poll(job_id, CRED).status == "error"


def test_submit_unknown_handle() -> None:
    with pytest.raises(RuntimeError, match="Unknown Deepgram asset handle"):
        deepgram.DeepgramTransport().submit("missing", {}, CRED)


def test_parse_result() -> None:
    parsed = deepgram.DeepgramTransport().parse_result(PAYLOAD)
    assert [t.speaker_id for t in parsed.turns] == ["Speaker 0", "Speaker 1"]
    assert parsed.turns[1].text == "как дела"
    assert parsed.text == "привет как дела"
    assert parsed.language_code == "ru"
    assert parsed.language_confidence == pytest.approx(0.91)
    assert parsed.transcript_id == "req-1"
    assert parsed.extras == {"duration": 12.5}


def test_discard_drops_staged_and_finished_payloads(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(deepgram, "requests", SimpleNamespace(post=lambda _url, **_kw: DummyResponse(PAYLOAD)))
    transport = deepgram.DeepgramTransport()
    asset = AudioAsset(name="a.wav", mime_type="audio/wav", data=b"RIFF")

    staged = transport.upload(asset, CRED)
    transport.discard(staged)
    with pytest.raises(RuntimeError, match="Unknown Deepgram asset handle"):
        transport.submit(staged, {}, CRED)

    job_id = transport.submit(transport.upload(asset, CRED), {}, CRED)
    transport.discard(job_id)
    assert transport.poll(job_id, CRED).status == "error"
    transport.discard("never-seen")
