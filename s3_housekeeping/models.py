"""Data model shared by the lifecycle and restore workflows."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class VersioningState(Enum):
    """Bucket versioning status as reported by GetBucketVersioning."""
    UNSET = 'Unset'
    ENABLED = 'Enabled'
    SUSPENDED = 'Suspended'

    @classmethod
    def from_status(cls, status: Optional[str]) -> 'VersioningState':
        """Map the API Status field; a missing status means versioning was never set."""
        if status == 'Enabled':
            return cls.ENABLED
        if status == 'Suspended':
            return cls.SUSPENDED
        return cls.UNSET

    @property
    def is_versioned(self) -> bool:
        return self is not VersioningState.UNSET


class RestoreTier(Enum):
    """Archive retrieval tiers, cheapest first."""
    BULK = 'Bulk'
    STANDARD = 'Standard'
    EXPEDITED = 'Expedited'

    @classmethod
    def parse(cls, value: str) -> 'RestoreTier':
        for tier in cls:
            if tier.value.lower() == value.strip().lower():
                return tier
        choices = ', '.join(t.value for t in cls)
        raise ValueError(f"Invalid restore tier '{value}' (must be one of: {choices})")


class Outcome(Enum):
    OK = 'ok'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass(frozen=True)
class Transition:
    days: int
    storage_class: str


@dataclass
class LifecycleRule:
    """A lifecycle rule owned by this tool.

    Rules found on buckets that this tool does not own are never parsed into
    this type; they travel as plain dictionaries so unknown fields survive.
    """
    rule_id: str
    enabled: bool = True
    transitions: List[Transition] = field(default_factory=list)
    expiration_days: Optional[int] = None
    noncurrent_transitions: List[Transition] = field(default_factory=list)
    noncurrent_expiration_days: Optional[int] = None
    abort_multipart_days: Optional[int] = None

    def validate(self) -> None:
        """Check rule invariants.

        Raises:
            ValueError: If the identifier is empty or a transition list is not
                strictly increasing in days.
        """
        if not self.rule_id or not self.rule_id.strip():
            raise ValueError("Lifecycle rule ID must be non-empty")

        for label, transitions in (('Transitions', self.transitions),
                                   ('NoncurrentVersionTransitions', self.noncurrent_transitions)):
            previous = None
            for transition in transitions:
                if transition.days < 0:
                    raise ValueError(f"{label}: day offset {transition.days} must not be negative")
                if previous is not None and transition.days <= previous:
                    raise ValueError(
                        f"{label}: day offsets must be strictly increasing ({previous} -> {transition.days})"
                    )
                previous = transition.days

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the S3 LifecycleConfiguration rule shape."""
        rule: Dict[str, Any] = {
            'ID': self.rule_id,
            'Status': 'Enabled' if self.enabled else 'Disabled',
            'Filter': {},
        }
        if self.transitions:
            rule['Transitions'] = [
                {'Days': t.days, 'StorageClass': t.storage_class} for t in self.transitions
            ]
        if self.expiration_days is not None:
            rule['Expiration'] = {'Days': self.expiration_days}
        if self.noncurrent_transitions:
            rule['NoncurrentVersionTransitions'] = [
                {'NoncurrentDays': t.days, 'StorageClass': t.storage_class}
                for t in self.noncurrent_transitions
            ]
        if self.noncurrent_expiration_days is not None:
            rule['NoncurrentVersionExpiration'] = {'NoncurrentDays': self.noncurrent_expiration_days}
        if self.abort_multipart_days is not None:
            rule['AbortIncompleteMultipartUpload'] = {'DaysAfterInitiation': self.abort_multipart_days}
        return rule

    def to_policy(self) -> Dict[str, Any]:
        """Wrap the rule in a full LifecycleConfiguration.

        Returns:
            A configuration holding only this rule
        """
        return {'Rules': [self.to_dict()]}


@dataclass(frozen=True)
class RestoreRequest:
    days: int
    tier: RestoreTier = RestoreTier.BULK

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the RestoreObject RestoreRequest shape."""
        return {'Days': self.days, 'GlacierJobParameters': {'Tier': self.tier.value}}


@dataclass(frozen=True)
class ArchiveCandidate:
    bucket: str
    key: str
    storage_class: str
    version_id: Optional[str] = None

    @property
    def uri(self) -> str:
        """s3:// address of the object, with the version id when there is one."""
        suffix = f"?versionId={self.version_id}" if self.version_id else ''
        return f"s3://{self.bucket}/{self.key}{suffix}"


@dataclass
class BucketResult:
    """Tallies for one bucket, with the reason behind a skip or failure."""
    bucket: str
    ok: int = 0
    skipped: int = 0
    failed: int = 0
    reason: str = ''

    @classmethod
    def single(cls, bucket: str, outcome: Outcome, reason: str = '') -> 'BucketResult':
        """Result for a bucket that produced exactly one outcome."""
        result = cls(bucket=bucket, reason=reason)
        result.record(outcome)
        return result

    def record(self, outcome: Outcome, count: int = 1) -> None:
        if outcome is Outcome.OK:
            self.ok += count
        elif outcome is Outcome.SKIPPED:
            self.skipped += count
        else:
            self.failed += count

    @property
    def outcome(self) -> Outcome:
        if self.failed:
            return Outcome.FAILED
        if self.ok:
            return Outcome.OK
        return Outcome.SKIPPED


class RunCounters:
    """Run-wide ok/skipped/failed tallies, safe to update from worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.ok = 0
        self.skipped = 0
        self.failed = 0
        self.failures: List[Tuple[str, str]] = []

    def merge(self, result: BucketResult) -> None:
        with self._lock:
            self.ok += result.ok
            self.skipped += result.skipped
            self.failed += result.failed
            if result.failed:
                self.failures.append((result.bucket, result.reason or 'unknown error'))

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {'ok': self.ok, 'skipped': self.skipped, 'failed': self.failed}
