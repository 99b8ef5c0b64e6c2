"""RU: Пул учётных данных провайдера (API-ключей) по регионам.

Пул отвечает только за учёт: выбор наименее использованного ключа, счётчики
успехов и ошибок, мягкое отключение после серии ошибок и сброс статуса.
Сетевых вызовов и знаний о задачах транскрибации здесь нет.

EN: Region-tagged pool of provider credentials (API keys).

The pool is pure bookkeeping plus a selection policy: pick the least used
key, count successes and errors, soft-disable after repeated errors, reset.
It knows nothing about the network or transcription jobs.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Final, Iterable

from call_qc.errors import CredentialNotAvailable

LOGGER = logging.getLogger("call_qc")

MAX_ERRORS: Final = 5


@dataclass(frozen=True)
class CredentialSnapshot:
    """RU: Неизменяемый снимок состояния ключа.

    EN: Read-only view of a credential's state.
    """

    id: str
    secret: str
    region: str
    name: str = ""
    active: bool = True
    usage_count: int = 0
    error_count: int = 0
    quota_exceeded: bool = False
    last_used: datetime | None = None

    @property
    def eligible(self) -> bool:
        return self.active and not self.quota_exceeded and self.error_count < MAX_ERRORS

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["last_used"] = self.last_used.isoformat() if self.last_used else None
        return record


def _selection_key(item: tuple[int, CredentialSnapshot]) -> tuple[int, int, float, int]:
    order, cred = item
    # Never-used credentials sort before any timestamp.
    if cred.last_used is None:
        return (cred.usage_count, 0, 0.0, order)
    return (cred.usage_count, 1, cred.last_used.timestamp(), order)


class CredentialPool:
    """RU: Потокобезопасный пул ключей.

    Все операции выбора и изменения выполняются под одной блокировкой;
    наружу отдаются только снимки (`CredentialSnapshot`) и идентификаторы.

    EN: Thread-safe credential pool.

    Every selection and mutation runs under a single lock; callers only get
    snapshots (`CredentialSnapshot`) and opaque ids.
    """

    def __init__(self, credentials: Iterable[CredentialSnapshot] = ()) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, CredentialSnapshot] = {}
        for cred in credentials:
            self._items[cred.id] = cred

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def register(self, secret: str, region: str, *, name: str = "") -> str:
        if not secret:
            raise ValueError("Credential secret must not be empty")
        cred = CredentialSnapshot(
            id=uuid.uuid4().hex,
            secret=secret,
            region=region,
            name=name or f"{region}-key",
        )
        with self._lock:
            self._items[cred.id] = cred
        LOGGER.info("Registered credential %s (%s)", cred.name, region)
        return cred.id

    def acquire(self, region: str) -> str:
        """RU: Возвращает id наименее использованного доступного ключа региона.

        При равном числе использований выигрывает ключ, который дольше не
        использовался (никогда не использованные идут первыми).

        EN: Return the id of the least used eligible credential in a region.

        Ties on usage go to the earliest ``last_used``, never-used first.
        Raises `CredentialNotAvailable` when nothing is eligible.
        """
        with self._lock:
            candidates = [
                (order, cred)
                for order, cred in enumerate(self._items.values())
                if cred.region == region and cred.eligible
            ]
            if not candidates:
                LOGGER.warning("No available credentials for region: %s", region)
                raise CredentialNotAvailable(region)
            _order, chosen = min(candidates, key=_selection_key)
            return chosen.id

    def report_success(self, cred_id: str) -> None:
        with self._lock:
            cred = self._require(cred_id)
            self._items[cred_id] = replace(
                cred,
                usage_count=cred.usage_count + 1,
                last_used=datetime.now(timezone.utc),
            )

    def report_failure(self, cred_id: str, *, is_quota_error: bool = False) -> None:
        with self._lock:
            cred = self._require(cred_id)
            errors = cred.error_count + 1
            updated = replace(
                cred,
                error_count=errors,
                quota_exceeded=cred.quota_exceeded or is_quota_error,
                active=cred.active and errors < MAX_ERRORS,
            )
            self._items[cred_id] = updated

        if is_quota_error:
            LOGGER.warning("Credential %s has exceeded quota", updated.name)
        if cred.active and not updated.active:
            LOGGER.warning("Credential %s disabled due to repeated errors", updated.name)

    def reset(self, cred_id: str) -> None:
        with self._lock:
            cred = self._require(cred_id)
            self._items[cred_id] = replace(
                cred, error_count=0, quota_exceeded=False, active=True,
            )
        LOGGER.info("Reset status for credential: %s", cred.name)

    def remove(self, cred_id: str) -> None:
        with self._lock:
            self._require(cred_id)
            del self._items[cred_id]

    def get(self, cred_id: str) -> CredentialSnapshot:
        with self._lock:
            return self._require(cred_id)

    def snapshot(self) -> list[CredentialSnapshot]:
        with self._lock:
            return list(self._items.values())

    def regions(self) -> set[str]:
        with self._lock:
            return {cred.region for cred in self._items.values()}

    def to_records(self) -> list[dict[str, Any]]:
        """RU: Плоские словари для сохранения вызывающей стороной.

        EN: Plain dicts for the caller to persist.
        """
        return [cred.to_record() for cred in self.snapshot()]

    @classmethod
    def from_records(cls, records: Iterable[dict[str, Any]]) -> CredentialPool:
        creds: list[CredentialSnapshot] = []
        for rec in records:
            last_used = rec.get("last_used")
            if isinstance(last_used, str) and last_used:
                last_used = datetime.fromisoformat(last_used)
            errors = int(rec.get("error_count", 0))
            creds.append(
                CredentialSnapshot(
                    id=str(rec.get("id") or uuid.uuid4().hex),
                    secret=str(rec["secret"]),
                    region=str(rec["region"]),
                    name=str(rec.get("name", "")),
                    active=bool(rec.get("active", True)) and errors < MAX_ERRORS,
                    usage_count=int(rec.get("usage_count", 0)),
                    error_count=errors,
                    quota_exceeded=bool(rec.get("quota_exceeded", False)),
                    last_used=last_used or None,
                ),
            )
        return cls(creds)

    def _require(self, cred_id: str) -> CredentialSnapshot:
        try:
            return self._items[cred_id]
        except KeyError:
            message = f"Unknown credential id: {cred_id}"
            raise KeyError(message) from None
