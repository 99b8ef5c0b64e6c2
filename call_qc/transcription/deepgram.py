"""RU: Адаптер Deepgram (pre-recorded API).

Deepgram отвечает синхронно, поэтому «загрузка» только регистрирует файл
локально, submit выполняет сам запрос, а poll сразу возвращает готовый
результат. Так провайдер укладывается в общий интерфейс upload/submit/poll.

EN: Deepgram adapter (pre-recorded API).

Deepgram answers synchronously, so "upload" only stages the asset locally,
submit performs the actual request and poll returns the stored result right
away. This keeps the vendor behind the same upload/submit/poll interface.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import uuid
from typing import Any, Mapping

import requests

from call_qc.credentials.pool import CredentialSnapshot
from call_qc.dialog.turns import Turn
from call_qc.transcription.media import AudioAsset
from call_qc.transcription.regions import endpoint_for
from call_qc.transcription.transport import ParsedTranscript, PollResult

LOGGER = logging.getLogger("call_qc")


@dataclass(frozen=True)
class DeepgramConfig:
    """RU: Конфиг для Deepgram API.

    EN: Config for the Deepgram API.
    """

    model: str = "nova-2"
    timeout_s: int = 600
    endpoint_override: str | None = None


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


class DeepgramTransport:
    """RU: Провайдер для Deepgram /v1/listen.

    EN: Provider for Deepgram /v1/listen.
    """

    name = "deepgram"

    def __init__(self, cfg: DeepgramConfig | None = None):
        self.cfg = cfg or DeepgramConfig()
        self._lock = threading.Lock()
        self._staged: dict[str, AudioAsset] = {}
        self._results: dict[str, dict[str, Any]] = {}

    def _endpoint(self, region: str) -> str:
        return self.cfg.endpoint_override or endpoint_for(region, self.name)

    def upload(self, asset: AudioAsset, credential: CredentialSnapshot) -> str:
        handle = uuid.uuid4().hex
        with self._lock:
            self._staged[handle] = asset
        return handle

    def submit(
        self,
        asset_handle: str,
        options: Mapping[str, Any],
        credential: CredentialSnapshot,
    ) -> str:
        with self._lock:
            asset = self._staged.pop(asset_handle, None)
        if asset is None:
            message = f"Unknown Deepgram asset handle: {asset_handle}"
            raise RuntimeError(message)

        params: dict[str, Any] = {"model": self.cfg.model, "utterances": "true"}
        params.update({k: _query_value(v) for k, v in options.items() if v is not None})

        r = requests.post(
            f"{self._endpoint(credential.region)}listen",
            headers={
                "Authorization": f"Token {credential.secret}",
                "Content-Type": asset.mime_type,
            },
            params=params,
            data=asset.read_bytes(),
            timeout=self.cfg.timeout_s,
        )
        r.raise_for_status()
        data = r.json()
        request_id = str((data.get("metadata") or {}).get("request_id") or uuid.uuid4().hex)
        with self._lock:
            self._results[request_id] = data
        return request_id

    def poll(self, job_handle: str, credential: CredentialSnapshot) -> PollResult:
        with self._lock:
            data = self._results.pop(job_handle, None)
        if data is None:
            return PollResult(status="error", error=f"No Deepgram result for {job_handle}")
        return PollResult(status="completed", payload=data, provider_status="completed")

    def discard(self, handle: str) -> None:
        with self._lock:
            self._staged.pop(handle, None)
            self._results.pop(handle, None)

    def parse_result(self, payload: dict[str, Any]) -> ParsedTranscript:
        results = payload.get("results") or {}
        turns: list[Turn] = []
        for utt in results.get("utterances") or []:
            if not isinstance(utt, dict):
                continue
            speaker = utt.get("speaker")
            turns.append(
                Turn(
                    speaker_id=f"Speaker {speaker if speaker is not None else 0}",
                    text=str(utt.get("transcript", "")),
                    start_sec=float(utt.get("start", 0) or 0),
                    end_sec=float(utt.get("end", 0) or 0),
                    confidence=float(utt.get("confidence", 1.0) or 0.0),
                ),
            )

        text = ""
        language_code = None
        language_confidence = None
        channels = results.get("channels") or []
        if channels and isinstance(channels[0], dict):
            channel = channels[0]
            language_code = channel.get("detected_language")
            if channel.get("language_confidence") is not None:
                language_confidence = float(channel["language_confidence"])
            alternatives = channel.get("alternatives") or []
            if alternatives and isinstance(alternatives[0], dict):
                text = str(alternatives[0].get("transcript", ""))

        metadata = payload.get("metadata") or {}
        extras: dict[str, Any] = {}
        if metadata.get("duration") is not None:
            extras["duration"] = metadata["duration"]
        if results.get("summary"):
            extras["summary"] = results["summary"]

        return ParsedTranscript(
            turns=tuple(turns),
            text=text,
            transcript_id=str(metadata.get("request_id") or ""),
            language_code=language_code,
            language_confidence=language_confidence,
            extras=extras,
        )
