from s3_housekeeping.apply import apply_merge_safe, apply_replace_all
from s3_housekeeping.client import StorageClient
from s3_housekeeping.models import Outcome
from tests.fakes import FakeS3

LOGS_RULE = {"ID": "Logs-30d", "Status": "Enabled", "Filter": {"Prefix": "logs/"}, "Expiration": {"Days": 30}}


def test_replace_all_enables_versioning_and_overwrites_policy(canonical_rule):
    fake = FakeS3.with_bucket("data", lifecycle={"Rules": [LOGS_RULE]})
    policy = {"Rules": [canonical_rule]}

    result = apply_replace_all(StorageClient(fake), "data", policy)

    assert result.outcome is Outcome.OK
    assert fake.buckets["data"]["versioning"] == "Enabled"
    assert fake.buckets["data"]["lifecycle"] == policy


def test_replace_all_leaves_enabled_versioning_alone(canonical_rule):
    fake = FakeS3.with_bucket("data", versioning="Enabled")

    apply_replace_all(StorageClient(fake), "data", {"Rules": [canonical_rule]})

    assert fake.calls_to("put_bucket_versioning") == []


def test_replace_all_fails_bucket_when_versioning_cannot_be_enabled(canonical_rule):
    fake = FakeS3.with_bucket("data")
    fake.failures[("put_bucket_versioning", "data")] = "AccessDenied"

    result = apply_replace_all(StorageClient(fake), "data", {"Rules": [canonical_rule]})

    assert result.outcome is Outcome.FAILED
    assert result.reason == "cannot enable versioning"
    assert fake.calls_to("put_bucket_lifecycle_configuration") == []


def test_replace_all_reports_write_failure(canonical_rule):
    fake = FakeS3.with_bucket("data", versioning="Enabled")
    fake.failures[("put_bucket_lifecycle_configuration", "data")] = "MalformedXML"

    result = apply_replace_all(StorageClient(fake), "data", {"Rules": [canonical_rule]})

    assert result.outcome is Outcome.FAILED
    assert "MalformedXML" in result.reason


def test_replace_all_skips_inaccessible_bucket(canonical_rule):
    fake = FakeS3.with_bucket("locked", forbidden=True)

    result = apply_replace_all(StorageClient(fake), "locked", {"Rules": [canonical_rule]})

    assert result.outcome is Outcome.SKIPPED
    assert result.skipped == 1


def test_replace_all_dry_run_issues_no_mutations(canonical_rule):
    fake = FakeS3.with_bucket("data")

    result = apply_replace_all(StorageClient(fake), "data", {"Rules": [canonical_rule]}, dry_run=True)

    assert result.outcome is Outcome.OK
    assert fake.calls_to("put_bucket_versioning") == []
    assert fake.calls_to("put_bucket_lifecycle_configuration") == []


def test_merge_safe_on_bucket_without_policy_writes_only_canonical_rule(canonical_rule):
    fake = FakeS3.with_bucket("data")

    result = apply_merge_safe(StorageClient(fake), "data", canonical_rule)

    assert result.outcome is Outcome.OK
    rules = fake.buckets["data"]["lifecycle"]["Rules"]
    assert len(rules) == 1
    assert rules[0] == canonical_rule
    assert rules[0]["ID"] == "Compliance-GLACIER-DA-2Y"


def test_merge_safe_preserves_unrelated_rule(canonical_rule):
    fake = FakeS3.with_bucket("data", versioning="Enabled", lifecycle={"Rules": [LOGS_RULE]})

    result = apply_merge_safe(StorageClient(fake), "data", canonical_rule)

    assert result.outcome is Outcome.OK
    rules = fake.buckets["data"]["lifecycle"]["Rules"]
    assert rules == [LOGS_RULE, canonical_rule]


def test_merge_safe_skips_write_when_up_to_date(canonical_rule):
    fake = FakeS3.with_bucket("data", versioning="Enabled", lifecycle={"Rules": [LOGS_RULE, canonical_rule]})

    result = apply_merge_safe(StorageClient(fake), "data", canonical_rule)

    assert result.outcome is Outcome.OK
    assert result.reason == "up to date"
    assert fake.calls_to("put_bucket_lifecycle_configuration") == []


def test_merge_safe_continues_when_versioning_enable_fails(canonical_rule):
    fake = FakeS3.with_bucket("data")
    fake.failures[("put_bucket_versioning", "data")] = "AccessDenied"

    result = apply_merge_safe(StorageClient(fake), "data", canonical_rule)

    assert result.outcome is Outcome.OK
    assert fake.buckets["data"]["lifecycle"] == {"Rules": [canonical_rule]}


def test_merge_safe_fails_when_existing_policy_unreadable(canonical_rule):
    fake = FakeS3.with_bucket("data", versioning="Enabled")
    fake.failures[("get_bucket_lifecycle_configuration", "data")] = "AccessDenied"

    result = apply_merge_safe(StorageClient(fake), "data", canonical_rule)

    assert result.outcome is Outcome.FAILED
    assert fake.calls_to("put_bucket_lifecycle_configuration") == []


def test_merge_safe_dry_run_logs_merged_policy_without_writing(canonical_rule, caplog):
    fake = FakeS3.with_bucket("data", versioning="Enabled", lifecycle={"Rules": [LOGS_RULE]})

    with caplog.at_level("INFO", logger="s3_housekeeping"):
        result = apply_merge_safe(StorageClient(fake), "data", canonical_rule, dry_run=True)

    assert result.outcome is Outcome.OK
    assert fake.calls_to("put_bucket_lifecycle_configuration") == []
    assert "Compliance-GLACIER-DA-2Y" in caplog.text
