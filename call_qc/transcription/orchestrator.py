"""RU: Оркестратор задач транскрибации.

Одна задача проходит стадии:
1) Queued → Uploading (проверка формата, выбор ключа, загрузка)
2) Submitted (запуск транскрибации у провайдера)
3) Polling (опрос с фиксированным интервалом и лимитом попыток)
4) Completed | Failed

При отсутствии ключа или превышении квоты задача один раз переезжает в
другой регион. Каждая попытка ровно один раз сообщает пулу ключей об успехе
или ошибке.

EN: Transcription job orchestrator.

One job moves through:
1) Queued → Uploading (format check, credential selection, upload)
2) Submitted (provider transcription started)
3) Polling (fixed interval, capped number of attempts)
4) Completed | Failed

A missing credential or an exhausted quota moves the job to the other region
once. Every attempt reports exactly once to the credential pool.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
import threading
import uuid
from typing import Any, Callable, Final, Mapping, Sequence

from call_qc.credentials.pool import CredentialPool, CredentialSnapshot
from call_qc.dialog.turns import Turn
from call_qc.errors import (
    ERRORS_BY_KIND,
    CredentialNotAvailable,
    ErrorKind,
    JobCancelledError,
    JobTimeoutError,
    NoCredentialError,
    ProviderError,
    QuotaExceededError,
    TranscriptionError,
    UnsupportedFormatError,
)
from call_qc.progress import ProgressSink, ProgressTracker
from call_qc.transcription.media import AudioAsset, is_supported_audio, prepare_asset
from call_qc.transcription.regions import other_region
from call_qc.transcription.transport import (
    TranscriptionTransport,
    classify_transport_error,
    is_quota_message,
)

LOGGER = logging.getLogger("call_qc")

DEFAULT_POLL_INTERVAL_S: Final = 5.0
DEFAULT_MAX_POLL_ATTEMPTS: Final = 120

_REGION_RETRY_KINDS: Final = frozenset({ErrorKind.NO_CREDENTIAL, ErrorKind.QUOTA_EXCEEDED})


class JobStage(str, Enum):
    QUEUED = "queued"
    UPLOADING = "uploading"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


_STAGE_ORDER: Final = {
    JobStage.QUEUED: 0,
    JobStage.UPLOADING: 1,
    JobStage.SUBMITTED: 2,
    JobStage.POLLING: 3,
    JobStage.COMPLETED: 4,
    JobStage.FAILED: 4,
}
TERMINAL_STAGES: Final = frozenset({JobStage.COMPLETED, JobStage.FAILED})


class InvalidTransition(RuntimeError):
    """Raised when a job stage change would break monotonic ordering."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """RU: Состояние одной задачи транскрибации.

    EN: State of a single transcription job.
    """

    id: str
    region: str
    stage: JobStage = JobStage.QUEUED
    attempt: int = 1
    submitted_at: datetime | None = None
    last_polled_at: datetime | None = None
    provider_job_id: str = ""
    failure: ErrorKind | None = None
    region_retry_used: bool = False
    history: list[tuple[str, str]] = field(default_factory=list)

    def advance(self, stage: JobStage) -> None:
        if self.stage in TERMINAL_STAGES:
            message = f"Job {self.id} is already {self.stage.value}"
            raise InvalidTransition(message)
        if _STAGE_ORDER[stage] < _STAGE_ORDER[self.stage]:
            message = f"Job {self.id} cannot go from {self.stage.value} to {stage.value}"
            raise InvalidTransition(message)
        self.stage = stage
        self.history.append((stage.value, self.region))

    def fail(self, kind: ErrorKind) -> None:
        self.advance(JobStage.FAILED)
        self.failure = kind

    def requeue(self, region: str) -> None:
        """The single allowed backwards move: Failed → Queued in another region."""
        if self.stage is not JobStage.FAILED or self.failure not in _REGION_RETRY_KINDS:
            message = f"Job {self.id} can only be re-queued after a credential/quota failure"
            raise InvalidTransition(message)
        if self.region_retry_used:
            message = f"Job {self.id} already switched region once"
            raise InvalidTransition(message)
        self.region_retry_used = True
        self.region = region
        self.stage = JobStage.QUEUED
        self.failure = None
        self.attempt += 1
        self.submitted_at = None
        self.last_polled_at = None
        self.provider_job_id = ""
        self.history.append((JobStage.QUEUED.value, region))


@dataclass(frozen=True)
class TranscriptionResult:
    job: Job
    provider: str
    credential_id: str
    turns: tuple[Turn, ...]
    text: str = ""
    transcript_id: str = ""
    language_code: str | None = None
    language_confidence: float | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job.id,
            "region": self.job.region,
            "attempt": self.job.attempt,
            "provider": self.provider,
            "transcript_id": self.transcript_id,
            "text": self.text,
            "language_code": self.language_code,
            "language_confidence": self.language_confidence,
            "turns": [t.to_dict() for t in self.turns],
            "extras": self.extras,
        }


class JobOrchestrator:
    """RU: Проводит задачу транскрибации через все стадии.

    Экземпляр можно использовать из нескольких потоков одновременно:
    общее изменяемое состояние между задачами только в пуле ключей.

    EN: Drives a transcription job through its lifecycle.

    Safe to share across threads: the only mutable state shared between jobs
    lives in the credential pool.
    """

    def __init__(
        self,
        pool: CredentialPool,
        transport: TranscriptionTransport,
        *,
        region: str = "us",
        regions: tuple[str, ...] = ("us", "eu"),
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    ) -> None:
        if max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be >= 1")
        self.pool = pool
        self.transport = transport
        self.region = region
        self.regions = regions
        self.poll_interval_s = float(poll_interval_s)
        self.max_poll_attempts = int(max_poll_attempts)

    def transcribe(
        self,
        asset: AudioAsset,
        options: Mapping[str, Any] | None = None,
        *,
        region: str | None = None,
        progress: ProgressSink | None = None,
        cancel: threading.Event | None = None,
    ) -> TranscriptionResult:
        """RU: Транскрибирует один файл; при ошибке бросает `TranscriptionError`.

        EN: Transcribe one asset; raises a `TranscriptionError` subclass on failure.
        """
        job = Job(id=uuid.uuid4().hex, region=region or self.region)
        job.history.append((job.stage.value, job.region))
        cancel = cancel or threading.Event()
        options = options if options is not None else {}
        LOGGER.info(
            "Transcription started: file=%s, region=%s, provider=%s",
            asset.name,
            job.region,
            self.transport.name,
        )

        causes: dict[str, ErrorKind] = {}
        while True:
            tracker = ProgressTracker(progress, job_id=job.id, attempt=job.attempt)
            try:
                return self._run_attempt(job, asset, options, tracker, cancel)
            except (NoCredentialError, QuotaExceededError) as exc:
                causes[job.region] = exc.kind
                fallback = other_region(job.region, self.regions)
                # Quota failures after submit are not retried elsewhere.
                retryable = job.submitted_at is None and not job.region_retry_used
                if fallback is None or not retryable:
                    if isinstance(exc, NoCredentialError) and len(causes) > 1:
                        details = ", ".join(f"{name}: {kind.value}" for name, kind in causes.items())
                        message = f"No available API keys in regions: {', '.join(causes)} ({details})"
                        raise NoCredentialError(message, region=job.region, job_id=job.id) from exc
                    raise
                LOGGER.warning(
                    "Falling back to %s region after %s in %s",
                    fallback,
                    exc.kind.value,
                    job.region,
                )
                job.requeue(fallback)

    def _run_attempt(
        self,
        job: Job,
        asset: AudioAsset,
        options: Mapping[str, Any],
        tracker: ProgressTracker,
        cancel: threading.Event,
    ) -> TranscriptionResult:
        job.advance(JobStage.UPLOADING)
        if not is_supported_audio(asset.name, asset.mime_type):
            message = f"Unsupported audio file format: {asset.name} ({asset.mime_type})"
            raise self._fail(job, UnsupportedFormatError(message), tracker)
        if cancel.is_set():
            raise self._fail(job, JobCancelledError("Transcription cancelled"), tracker)

        prepared = prepare_asset(asset)
        tracker.emit(JobStage.UPLOADING.value, 10, "Preparing file for upload...")

        try:
            cred_id = self.pool.acquire(job.region)
        except CredentialNotAvailable as exc:
            raise self._fail(job, NoCredentialError(str(exc)), tracker) from exc
        credential = self.pool.get(cred_id)

        try:
            result = self._drive(job, prepared, options, credential, tracker, cancel)
        except TranscriptionError as exc:
            self._report_failure(cred_id, exc.kind)
            raise self._fail(job, exc, tracker, credential_id=cred_id)
        except Exception as exc:
            kind = classify_transport_error(exc)
            self._report_failure(cred_id, kind)
            error = ERRORS_BY_KIND[kind](str(exc) or type(exc).__name__)
            raise self._fail(job, error, tracker, credential_id=cred_id) from exc

        self.pool.report_success(cred_id)
        job.advance(JobStage.COMPLETED)
        tracker.emit(JobStage.COMPLETED.value, 100, "Transcription completed")
        LOGGER.info(
            "Transcription completed: job=%s, region=%s, turns=%d",
            job.id,
            job.region,
            len(result.turns),
        )
        return result

    def _drive(
        self,
        job: Job,
        asset: AudioAsset,
        options: Mapping[str, Any],
        credential: CredentialSnapshot,
        tracker: ProgressTracker,
        cancel: threading.Event,
    ) -> TranscriptionResult:
        asset_handle = self.transport.upload(asset, credential)
        tracker.emit(JobStage.UPLOADING.value, 30, "Starting transcription...")

        try:
            job_handle = self.transport.submit(asset_handle, options, credential)
            job.provider_job_id = job_handle
            job.submitted_at = _now()
            job.advance(JobStage.SUBMITTED)
            tracker.emit(JobStage.SUBMITTED.value, 50, "Processing...")

            payload = self._poll_until_done(job, job_handle, credential, tracker, cancel)
        finally:
            self.transport.discard(asset_handle)
            if job.provider_job_id:
                self.transport.discard(job.provider_job_id)
        parsed = self.transport.parse_result(payload)
        return TranscriptionResult(
            job=job,
            provider=self.transport.name,
            credential_id=credential.id,
            turns=parsed.turns,
            text=parsed.text,
            transcript_id=parsed.transcript_id or job_handle,
            language_code=parsed.language_code,
            language_confidence=parsed.language_confidence,
            extras=dict(parsed.extras),
        )

    def _poll_until_done(
        self,
        job: Job,
        job_handle: str,
        credential: CredentialSnapshot,
        tracker: ProgressTracker,
        cancel: threading.Event,
    ) -> dict[str, Any]:
        job.advance(JobStage.POLLING)
        cap = self.max_poll_attempts
        last_error: Exception | None = None
        for attempt in range(cap):
            if cancel.is_set():
                raise JobCancelledError("Transcription cancelled")

            job.last_polled_at = _now()
            try:
                polled = self.transport.poll(job_handle, credential)
            except Exception as exc:  # noqa: BLE001
                # Status checks never end a submitted job before the cap.
                last_error = exc
                LOGGER.warning("Poll attempt %d/%d failed: %s", attempt + 1, cap, exc)
            else:
                LOGGER.debug("Poll attempt %d: %s", attempt + 1, polled.provider_status or polled.status)
                if polled.status == "completed":
                    return polled.payload or {}
                if polled.status == "error":
                    message = f"Transcription failed: {polled.error or 'Unknown error'}"
                    if is_quota_message(message):
                        raise QuotaExceededError(message)
                    raise ProviderError(message)
                tracker.emit(
                    JobStage.POLLING.value,
                    min(90, 50 + attempt * 2),
                    f"Processing... ({polled.provider_status or polled.status})",
                )

            if attempt + 1 < cap and cancel.wait(self.poll_interval_s):
                raise JobCancelledError("Transcription cancelled")

        message = f"Transcription timed out after {cap} poll attempts"
        if last_error is not None:
            message = f"{message} (last poll error: {last_error})"
        raise JobTimeoutError(message, attempts=cap) from last_error

    def _report_failure(self, cred_id: str, kind: ErrorKind) -> None:
        self.pool.report_failure(cred_id, is_quota_error=kind is ErrorKind.QUOTA_EXCEEDED)

    def _fail(
        self,
        job: Job,
        exc: TranscriptionError,
        tracker: ProgressTracker,
        *,
        credential_id: str | None = None,
    ) -> TranscriptionError:
        job.fail(exc.kind)
        exc.with_context(region=job.region, credential_id=credential_id, job_id=job.id)
        tracker.emit(JobStage.FAILED.value, tracker.percent, str(exc))
        LOGGER.error(
            "Transcription failed: job=%s, region=%s, kind=%s: %s",
            job.id,
            job.region,
            exc.kind.value,
            exc,
        )
        return exc


@dataclass(frozen=True)
class BatchItem:
    asset: AudioAsset
    result: TranscriptionResult | None = None
    error: TranscriptionError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


def transcribe_batch(
    orchestrator: JobOrchestrator,
    assets: Sequence[AudioAsset],
    options: Mapping[str, Any] | None = None,
    *,
    region: str | None = None,
    max_workers: int = 4,
    progress_factory: Callable[[AudioAsset], ProgressSink | None] | None = None,
    cancel: threading.Event | None = None,
) -> list[BatchItem]:
    """RU: Запускает несколько задач параллельно; результаты в порядке входа.

    EN: Run several jobs concurrently; results come back in input order.
    """
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [
            executor.submit(
                orchestrator.transcribe,
                asset,
                options,
                region=region,
                progress=progress_factory(asset) if progress_factory else None,
                cancel=cancel,
            )
            for asset in assets
        ]

    items: list[BatchItem] = []
    for asset, future in zip(assets, futures):
        try:
            items.append(BatchItem(asset=asset, result=future.result()))
        except TranscriptionError as exc:
            items.append(BatchItem(asset=asset, error=exc))
    failed = sum(1 for item in items if not item.ok)
    LOGGER.info("Batch finished: %d ok, %d failed", len(items) - failed, failed)
    return items
