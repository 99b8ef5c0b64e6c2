"""RU: Адаптер AssemblyAI (HTTP): загрузка, запуск транскрибации, опрос.

EN: AssemblyAI adapter (HTTP): upload, start transcription, poll.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Mapping

import requests

from call_qc.credentials.pool import CredentialSnapshot
from call_qc.dialog.turns import Turn
from call_qc.transcription.media import AudioAsset
from call_qc.transcription.regions import endpoint_for
from call_qc.transcription.transport import ParsedTranscript, PollResult

LOGGER = logging.getLogger("call_qc")

_RUNNING_STATUSES = frozenset({"queued", "processing"})

# Optional analysis sections copied into ParsedTranscript.extras when present.
_EXTRA_FIELDS = {
    "content_safety_labels": "content_safety",
    "entities": "entities",
    "sentiment_analysis_results": "sentiment",
    "chapters": "chapters",
    "summary": "summary",
    "pii_redacted_audio_url": "pii_redacted_url",
}


@dataclass(frozen=True)
class AssemblyAIConfig:
    """RU: Конфиг для AssemblyAI API.

    EN: Config for the AssemblyAI API.
    """

    timeout_s: int = 300
    endpoint_override: str | None = None


class AssemblyAITransport:
    """RU: Провайдер для AssemblyAI v2 (/upload, /transcript).

    EN: Provider for AssemblyAI v2 (/upload, /transcript).
    """

    name = "assemblyai"

    def __init__(self, cfg: AssemblyAIConfig | None = None):
        self.cfg = cfg or AssemblyAIConfig()

    def _endpoint(self, region: str) -> str:
        return self.cfg.endpoint_override or endpoint_for(region, self.name)

    def upload(self, asset: AudioAsset, credential: CredentialSnapshot) -> str:
        LOGGER.debug("Uploading %s to region %s", asset.name, credential.region)
        r = requests.post(
            f"{self._endpoint(credential.region)}upload",
            headers={
                "Authorization": credential.secret,
                "Content-Type": "application/octet-stream",
            },
            data=asset.read_bytes(),
            timeout=self.cfg.timeout_s,
        )
        r.raise_for_status()
        upload_url = r.json().get("upload_url")
        if not upload_url:
            raise RuntimeError("Invalid upload response: missing upload_url")
        return str(upload_url)

    def submit(
        self,
        asset_handle: str,
        options: Mapping[str, Any],
        credential: CredentialSnapshot,
    ) -> str:
        body: dict[str, Any] = {"audio_url": asset_handle}
        body.update({k: v for k, v in options.items() if v is not None})
        r = requests.post(
            f"{self._endpoint(credential.region)}transcript",
            headers={
                "Authorization": credential.secret,
                "Content-Type": "application/json",
            },
            json=body,
            timeout=self.cfg.timeout_s,
        )
        r.raise_for_status()
        transcript_id = r.json().get("id")
        if not transcript_id:
            raise RuntimeError("Invalid transcription response: missing id")
        return str(transcript_id)

    def poll(self, job_handle: str, credential: CredentialSnapshot) -> PollResult:
        r = requests.get(
            f"{self._endpoint(credential.region)}transcript/{job_handle}",
            headers={"Authorization": credential.secret},
            timeout=self.cfg.timeout_s,
        )
        r.raise_for_status()
        data = r.json()
        status = str(data.get("status", ""))
        if status == "completed":
            return PollResult(status="completed", payload=data, provider_status=status)
        if status == "error":
            return PollResult(
                status="error",
                error=str(data.get("error") or "Unknown error"),
                provider_status=status,
            )
        if status not in _RUNNING_STATUSES:
            LOGGER.warning("Unexpected AssemblyAI status %r for %s", status, job_handle)
        return PollResult(status="running", provider_status=status)

    def discard(self, handle: str) -> None:
        # Uploads and transcripts live on the provider side.
        return

    def parse_result(self, payload: dict[str, Any]) -> ParsedTranscript:
        turns: list[Turn] = []
        for utt in payload.get("utterances") or []:
            if not isinstance(utt, dict):
                continue
            # AssemblyAI reports utterance times in milliseconds.
            turns.append(
                Turn(
                    speaker_id=str(utt.get("speaker", "")),
                    text=str(utt.get("text", "")),
                    start_sec=float(utt.get("start", 0) or 0) / 1000.0,
                    end_sec=float(utt.get("end", 0) or 0) / 1000.0,
                    confidence=float(utt.get("confidence", 1.0) or 0.0),
                ),
            )

        extras = {
            key: payload[field]
            for field, key in _EXTRA_FIELDS.items()
            if payload.get(field)
        }
        language_confidence = payload.get("language_confidence")
        return ParsedTranscript(
            turns=tuple(turns),
            text=str(payload.get("text") or ""),
            transcript_id=str(payload.get("id") or ""),
            language_code=payload.get("language_code"),
            language_confidence=(
                float(language_confidence) if language_confidence is not None else None
            ),
            extras=extras,
        )
