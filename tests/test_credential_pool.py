"""Tests for the credential pool."""

from __future__ import annotations

from datetime import datetime, timezone
import threading

import pytest

from call_qc.credentials.pool import MAX_ERRORS, CredentialPool, CredentialSnapshot
from call_qc.errors import CredentialNotAvailable


def _ts(hour: int) -> datetime:
    return datetime(2024, 1, 1, hour, tzinfo=timezone.utc)


def test_acquire_prefers_least_used() -> None:
    pool = CredentialPool(
        [
            CredentialSnapshot(id="a", secret="s1", region="us", usage_count=3),
            CredentialSnapshot(id="b", secret="s2", region="us", usage_count=1),
        ],
    )
    assert pool.acquire("us") == "b"


def test_acquire_ties_go_to_never_used_then_oldest() -> None:
    pool = CredentialPool(
        [
            CredentialSnapshot(id="recent", secret="s", region="us", usage_count=2, last_used=_ts(10)),
            CredentialSnapshot(id="old", secret="s", region="us", usage_count=2, last_used=_ts(8)),
        ],
    )
    assert pool.acquire("us") == "old"

    pool = CredentialPool(
        [
            CredentialSnapshot(id="used", secret="s", region="us", usage_count=0, last_used=_ts(8)),
            CredentialSnapshot(id="fresh", secret="s", region="us", usage_count=0),
        ],
    )
    assert pool.acquire("us") == "fresh"


def test_acquire_full_tie_uses_registration_order() -> None:
    pool = CredentialPool()
    first = pool.register("k1", "eu")
    pool.register("k2", "eu")
    assert pool.acquire("eu") == first


def test_acquire_skips_ineligible() -> None:
    pool = CredentialPool(
        [
            CredentialSnapshot(id="quota", secret="s", region="us", quota_exceeded=True),
            CredentialSnapshot(id="broken", secret="s", region="us", error_count=MAX_ERRORS, active=False),
            CredentialSnapshot(id="ok", secret="s", region="us", usage_count=50),
        ],
    )
    for _ in range(3):
        assert pool.acquire("us") == "ok"


def test_acquire_raises_when_region_empty() -> None:
    pool = CredentialPool()
    pool.register("k", "us")
    with pytest.raises(CredentialNotAvailable) as info:
        pool.acquire("eu")
    assert info.value.region == "eu"


def test_report_success_updates_usage_and_last_used() -> None:
    pool = CredentialPool()
    cred_id = pool.register("k", "us")
    pool.report_success(cred_id)
    snap = pool.get(cred_id)
    assert snap.usage_count == 1
    assert snap.last_used is not None


def test_soft_disable_after_max_errors() -> None:
    pool = CredentialPool()
    cred_id = pool.register("k", "us")
    for _ in range(MAX_ERRORS - 1):
        pool.report_failure(cred_id)
    assert pool.get(cred_id).active is True

    pool.report_failure(cred_id)
    snap = pool.get(cred_id)
    if snap.active:
        message = "Expected credential to be disabled after 5 failures"
        raise AssertionError(message)
    assert snap.error_count == MAX_ERRORS
    with pytest.raises(CredentialNotAvailable):
        pool.acquire("us")


def test_quota_failure_marks_credential() -> None:
    pool = CredentialPool()
    cred_id = pool.register("k", "us")
    pool.report_failure(cred_id, is_quota_error=True)
    snap = pool.get(cred_id)
    assert snap.quota_exceeded is True
    assert snap.eligible is False


def test_reset_restores_everything() -> None:
    pool = CredentialPool()
    cred_id = pool.register("k", "us")
    pool.report_failure(cred_id, is_quota_error=True)
    for _ in range(MAX_ERRORS):
        pool.report_failure(cred_id)

    pool.reset(cred_id)
    snap = pool.get(cred_id)
    assert snap.active is True
    assert snap.error_count == 0
    assert snap.quota_exceeded is False
    assert pool.acquire("us") == cred_id


def test_register_rejects_empty_secret() -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        CredentialPool().register("", "us")


def test_unknown_credential_id() -> None:
    pool = CredentialPool()
    with pytest.raises(KeyError, match="Unknown credential id"):
        pool.report_success("nope")


def test_remove_and_regions() -> None:
    pool = CredentialPool()
    us = pool.register("k1", "us")
    pool.register("k2", "eu")
    assert pool.regions() == {"us", "eu"}
    pool.remove(us)
    assert pool.regions() == {"eu"}
    assert len(pool) == 1


def test_records_round_trip_keeps_state() -> None:
    pool = CredentialPool()
    cred_id = pool.register("k", "eu", name="backup")
    pool.report_success(cred_id)
    pool.report_failure(cred_id, is_quota_error=True)

    restored = CredentialPool.from_records(pool.to_records())
    snap = restored.get(cred_id)
    assert snap.name == "backup"
    assert snap.usage_count == 1
    assert snap.quota_exceeded is True
    assert snap.last_used == pool.get(cred_id).last_used


def test_from_records_disables_over_error_limit() -> None:
    pool = CredentialPool.from_records(
        [{"id": "x", "secret": "s", "region": "us", "active": True, "error_count": 7}],
    )
    assert pool.get("x").active is False


def test_concurrent_reports_are_serialized() -> None:
    pool = CredentialPool()
    cred_id = pool.register("k", "us")

    def worker() -> None:
        for _ in range(200):
            pool.report_success(cred_id)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert pool.get(cred_id).usage_count == 800
