import threading
from dataclasses import replace
from datetime import datetime
from typing import Set

import pytest

from s3_housekeeping.client import StorageClient
from s3_housekeeping.errors import BucketListingError
from s3_housekeeping.models import BucketResult, Outcome
from s3_housekeeping.purge import BackupStore
from s3_housekeeping.runner import Runner
from tests.fakes import FakeS3

LOGS_RULE = {"ID": "Logs-30d", "Status": "Enabled", "Filter": {"Prefix": "logs/"}, "Expiration": {"Days": 30}}


def _account() -> FakeS3:
    return FakeS3(
        {
            "alpha": {"versioning": "Enabled", "lifecycle": {"Rules": [LOGS_RULE]}},
            "beta": {},
            "locked": {"forbidden": True},
        }
    )


def test_empty_account_reports_nothing_to_do(settings, caplog):
    runner = Runner(StorageClient(FakeS3()), settings)

    with caplog.at_level("INFO", logger="s3_housekeeping"):
        counters = runner.apply_merge_safe()

    assert counters.snapshot() == {"ok": 0, "skipped": 0, "failed": 0}
    assert "No buckets found" in caplog.text


def test_listing_failure_propagates(settings):
    fake = FakeS3()
    fake.list_buckets_error = "AccessDenied"

    with pytest.raises(BucketListingError):
        Runner(StorageClient(fake), settings).apply_replace_all()


def test_merge_safe_run_counts_each_bucket(settings):
    fake = _account()

    counters = Runner(StorageClient(fake), settings).apply_merge_safe()

    assert counters.snapshot() == {"ok": 2, "skipped": 1, "failed": 0}
    alpha_rules = fake.buckets["alpha"]["lifecycle"]["Rules"]
    assert [rule["ID"] for rule in alpha_rules] == ["Logs-30d", "Compliance-GLACIER-DA-2Y"]
    assert [rule["ID"] for rule in fake.buckets["beta"]["lifecycle"]["Rules"]] == ["Compliance-GLACIER-DA-2Y"]


def test_replace_all_run_discards_existing_rules(settings):
    fake = _account()

    counters = Runner(StorageClient(fake), settings).apply_replace_all()

    assert counters.snapshot() == {"ok": 2, "skipped": 1, "failed": 0}
    assert [rule["ID"] for rule in fake.buckets["alpha"]["lifecycle"]["Rules"]] == ["Compliance-GLACIER-DA-2Y"]


def test_one_bucket_failure_does_not_block_others(settings):
    fake = _account()
    fake.failures[("put_bucket_lifecycle_configuration", "alpha")] = "InternalError"

    counters = Runner(StorageClient(fake), settings).apply_merge_safe()

    assert counters.snapshot() == {"ok": 1, "skipped": 1, "failed": 1}
    assert counters.failures[0][0] == "alpha"
    assert "lifecycle" in fake.buckets["beta"]


def test_single_bucket_scope_skips_listing(settings):
    fake = _account()

    Runner(StorageClient(fake), replace(settings, bucket="beta")).apply_merge_safe()

    assert fake.calls_to("list_buckets") == []
    assert fake.buckets["alpha"]["lifecycle"] == {"Rules": [LOGS_RULE]}
    assert "lifecycle" in fake.buckets["beta"]


def test_purge_run_writes_backups_under_one_directory(settings, tmp_path):
    fake = _account()
    backups = BackupStore(tmp_path, timestamp=datetime(2024, 1, 2, 3, 4, 5))

    counters = Runner(StorageClient(fake), settings).purge(backups)

    assert counters.snapshot() == {"ok": 1, "skipped": 2, "failed": 0}
    assert sorted(p.name for p in backups.directory.iterdir()) == ["alpha.json"]


def test_restore_run_aggregates_candidates(settings):
    fake = FakeS3(
        {
            "vault": {
                "versioning": "Enabled",
                "versions": [
                    {"Key": "a", "VersionId": "1", "StorageClass": "GLACIER"},
                    {"Key": "b", "VersionId": "2", "StorageClass": "GLACIER"},
                ],
            },
            "plain": {"objects": [{"Key": "c", "StorageClass": "GLACIER"}]},
            "locked": {"forbidden": True},
        }
    )

    counters = Runner(StorageClient(fake), settings).restore()

    assert counters.snapshot() == {"ok": 3, "skipped": 1, "failed": 0}


def test_parallel_run_never_overlaps_work_on_one_bucket(settings, monkeypatch):
    runner = Runner(StorageClient(FakeS3({"same": {}})), replace(settings, concurrency=4))
    monkeypatch.setattr(runner, "buckets", lambda: ["same"] * 4)
    active: Set[str] = set()
    guard = threading.Lock()
    overlaps = []

    def task(bucket: str) -> BucketResult:
        with guard:
            if bucket in active:
                overlaps.append(bucket)
            active.add(bucket)
        # time.sleep is patched out for the suite; hold the bucket for real
        threading.Event().wait(0.05)
        with guard:
            active.discard(bucket)
        return BucketResult.single(bucket, Outcome.OK)

    counters = runner.run(task, "Done", workers=4)

    assert counters.snapshot() == {"ok": 4, "skipped": 0, "failed": 0}
    assert overlaps == []


def test_cancelled_run_stops_at_bucket_boundary(settings):
    fake = FakeS3({f"bucket-{i}": {} for i in range(5)})
    cancel = threading.Event()
    runner = Runner(StorageClient(fake), settings, cancel_event=cancel)
    seen = []

    def task(bucket: str) -> BucketResult:
        seen.append(bucket)
        if len(seen) == 2:
            cancel.set()
        return BucketResult.single(bucket, Outcome.OK)

    counters = runner.run(task, "Done")

    assert seen == ["bucket-0", "bucket-1"]
    assert counters.ok == 2
