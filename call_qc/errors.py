"""RU: Типы ошибок ядра контроля качества.

EN: Error types surfaced by the call-QC core.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a transcription failure."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    NO_CREDENTIAL = "no_credential"
    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT = "transient"
    PROVIDER = "provider"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class CredentialNotAvailable(LookupError):
    """Raised by the credential pool when no credential is eligible in a region."""

    def __init__(self, region: str) -> None:
        super().__init__(f"No available credentials for region '{region}'")
        self.region = region


class TranscriptionError(RuntimeError):
    """Base class for fatal transcription-job failures.

    Carries enough context (region, credential, job) for the caller to
    display or log which attempt failed.
    """

    kind: ErrorKind = ErrorKind.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        region: str | None = None,
        credential_id: str | None = None,
        job_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.region = region
        self.credential_id = credential_id
        self.job_id = job_id

    def with_context(
        self,
        *,
        region: str | None = None,
        credential_id: str | None = None,
        job_id: str | None = None,
    ) -> TranscriptionError:
        """Fill in context fields that are still unset and return self."""
        self.region = self.region or region
        self.credential_id = self.credential_id or credential_id
        self.job_id = self.job_id or job_id
        return self


class UnsupportedFormatError(TranscriptionError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class NoCredentialError(TranscriptionError):
    kind = ErrorKind.NO_CREDENTIAL


class QuotaExceededError(TranscriptionError):
    kind = ErrorKind.QUOTA_EXCEEDED


class TransientTransportError(TranscriptionError):
    kind = ErrorKind.TRANSIENT


class ProviderError(TranscriptionError):
    kind = ErrorKind.PROVIDER


class JobTimeoutError(TranscriptionError):
    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, *, attempts: int = 0, **context: str | None) -> None:
        super().__init__(message, **context)
        self.attempts = attempts


class JobCancelledError(TranscriptionError):
    kind = ErrorKind.CANCELLED


ERRORS_BY_KIND: dict[ErrorKind, type[TranscriptionError]] = {
    ErrorKind.UNSUPPORTED_FORMAT: UnsupportedFormatError,
    ErrorKind.NO_CREDENTIAL: NoCredentialError,
    ErrorKind.QUOTA_EXCEEDED: QuotaExceededError,
    ErrorKind.TRANSIENT: TransientTransportError,
    ErrorKind.PROVIDER: ProviderError,
    ErrorKind.TIMEOUT: JobTimeoutError,
    ErrorKind.CANCELLED: JobCancelledError,
}


class EvaluationError(RuntimeError):
    """Raised when an evaluation model call fails.

    ``model`` is the model being attempted at failure time and ``phase`` is
    ``"primary"`` or ``"escalated"``.
    """

    def __init__(self, message: str, *, model: str, phase: str = "primary") -> None:
        super().__init__(f"Evaluation with model '{model}' failed ({phase}): {message}")
        self.model = model
        self.phase = phase


class EvaluationParseError(ValueError):
    """Raised when a model answer cannot be turned into an evaluation."""
