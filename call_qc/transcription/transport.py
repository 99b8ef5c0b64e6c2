"""RU: Интерфейс транспортного адаптера провайдера транскрибации.

Оркестратор зависит только от этого узкого протокола: upload → submit → poll
и разбор готового результата. Конкретные провайдеры (AssemblyAI, Deepgram)
реализуют его одинаково.

EN: Transport adapter interface for transcription providers.

The orchestrator depends only on this narrow protocol: upload → submit →
poll, plus parsing of the finished payload. Concrete vendors (AssemblyAI,
Deepgram) implement it uniformly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final, Literal, Mapping, Protocol

from requests import exceptions as requests_exceptions

from call_qc.credentials.pool import CredentialSnapshot
from call_qc.dialog.turns import Turn
from call_qc.errors import ErrorKind, TranscriptionError
from call_qc.transcription.media import AudioAsset

PollStatus = Literal["running", "completed", "error"]

QUOTA_MARKERS: Final = ("quota", "billing", "limit")
QUOTA_STATUS_CODES: Final = frozenset({402, 429})


@dataclass(frozen=True)
class PollResult:
    status: PollStatus
    payload: dict[str, Any] | None = None
    error: str | None = None
    provider_status: str = ""


@dataclass(frozen=True)
class ParsedTranscript:
    """Provider payload reduced to turns plus optional analysis extras."""

    turns: tuple[Turn, ...]
    text: str = ""
    transcript_id: str = ""
    language_code: str | None = None
    language_confidence: float | None = None
    extras: dict[str, Any] = field(default_factory=dict)


class TranscriptionTransport(Protocol):
    """RU: Минимальный интерфейс провайдера транскрибации.

    EN: Minimal transcription provider interface.
    """

    name: str

    def upload(self, asset: AudioAsset, credential: CredentialSnapshot) -> str: ...

    def submit(
        self,
        asset_handle: str,
        options: Mapping[str, Any],
        credential: CredentialSnapshot,
    ) -> str: ...

    def poll(self, job_handle: str, credential: CredentialSnapshot) -> PollResult: ...

    def parse_result(self, payload: dict[str, Any]) -> ParsedTranscript: ...

    def discard(self, handle: str) -> None:
        """Drop any state held locally for an asset or job handle."""


def is_quota_message(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in QUOTA_MARKERS)


def classify_transport_error(exc: BaseException) -> ErrorKind:
    """RU: Классифицирует ошибку адаптера: квота, временная или прочая.

    EN: Classify an adapter failure as quota, transient or provider error.
    """
    if isinstance(exc, TranscriptionError):
        return exc.kind

    if isinstance(exc, requests_exceptions.HTTPError):
        response = exc.response
        status = response.status_code if response is not None else None
        body = response.text if response is not None else ""
        if status in QUOTA_STATUS_CODES or is_quota_message(body) or is_quota_message(str(exc)):
            return ErrorKind.QUOTA_EXCEEDED
        if status is not None and status >= 500:
            return ErrorKind.TRANSIENT
        return ErrorKind.PROVIDER

    if isinstance(exc, (requests_exceptions.ConnectionError, requests_exceptions.Timeout)):
        return ErrorKind.TRANSIENT

    if is_quota_message(str(exc)):
        return ErrorKind.QUOTA_EXCEEDED
    return ErrorKind.PROVIDER
