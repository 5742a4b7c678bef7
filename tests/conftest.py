import time

import pytest

from s3_housekeeping.client import StorageClient
from s3_housekeeping.config import Settings
from s3_housekeeping.models import LifecycleRule, Transition
from tests.fakes import FakeS3


@pytest.fixture(autouse=True)
def no_pacing(monkeypatch):
    """Pacing delays only slow the suite down."""
    monkeypatch.setattr(time, "sleep", lambda seconds: None)


@pytest.fixture
def settings() -> Settings:
    return Settings(pace_seconds=0)


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def client(fake_s3) -> StorageClient:
    return StorageClient(fake_s3)


@pytest.fixture
def canonical_rule() -> dict:
    schedule = [Transition(30, "GLACIER"), Transition(180, "DEEP_ARCHIVE")]
    return LifecycleRule(
        rule_id="Compliance-GLACIER-DA-2Y",
        transitions=schedule,
        expiration_days=730,
        noncurrent_transitions=schedule,
        noncurrent_expiration_days=730,
        abort_multipart_days=7,
    ).to_dict()
