"""Runtime settings read from environment variables.

Every setting has a CLI flag that overrides the environment value. See
``Settings.from_env`` for the variable names and defaults.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .errors import ConfigError
from .models import LifecycleRule, RestoreRequest, RestoreTier, Transition

DEFAULT_RULE_ID = 'Compliance-GLACIER-DA-2Y'
DEFAULT_TRANSITIONS = '30:GLACIER,180:DEEP_ARCHIVE'
DEFAULT_EXPIRATION_DAYS = 730
DEFAULT_ABORT_MULTIPART_DAYS = 7
DEFAULT_RESTORE_DAYS = 7
DEFAULT_MAX_KEYS = 1000
DEFAULT_TARGET_STORAGE_CLASS = 'GLACIER'
DEFAULT_PACE_SECONDS = 0.2
DEFAULT_CALL_TIMEOUT = 30
DEFAULT_MAX_ATTEMPTS = 3

TRUE_VALUES = ('true', '1', 'yes', 'on')


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def parse_positive_int(name: str, value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        number = int(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{name} must be greater than zero, got {number}")
    return number


DISABLED_DAY_VALUES = ('', '0', 'none', 'off')


def parse_optional_days(name: str, value: Optional[str], default: Optional[int]) -> Optional[int]:
    """Parse a day count that may be switched off.

    Args:
        name: Variable name, for error messages
        value: Raw value; None when the variable is unset
        default: Returned when the variable is unset

    Returns:
        The day count, or None when the value is empty, 0, "none" or "off"

    Raises:
        ConfigError: If the value is not a positive integer
    """
    if value is None:
        return default
    if value.strip().lower() in DISABLED_DAY_VALUES:
        return None
    return parse_positive_int(name, value, default)


def parse_non_negative_float(name: str, value: Optional[str], default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        number = float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if number < 0:
        raise ConfigError(f"{name} must not be negative, got {number}")
    return number


def parse_transitions(value: str) -> List[Transition]:
    """Parse a schedule such as ``30:GLACIER,180:DEEP_ARCHIVE``."""
    transitions = []
    for chunk in value.split(','):
        chunk = chunk.strip()
        if not chunk:
            continue
        days, sep, storage_class = chunk.partition(':')
        if not sep or not storage_class.strip():
            raise ConfigError(f"Invalid transition '{chunk}' (expected DAYS:STORAGE_CLASS)")
        try:
            transitions.append(Transition(int(days), storage_class.strip().upper()))
        except ValueError as exc:
            raise ConfigError(f"Invalid transition day offset in '{chunk}'") from exc
    if not transitions:
        raise ConfigError("LIFECYCLE_TRANSITIONS must list at least one transition")
    return transitions


def parse_scope(value: Optional[str]) -> Optional[str]:
    """Return the single bucket named by ``bucket:NAME``, or None for all buckets."""
    if value is None or not value.strip() or value.strip() == 'all':
        return None
    value = value.strip()
    if value.startswith('bucket:') and value[len('bucket:'):].strip():
        return value[len('bucket:'):].strip()
    raise ConfigError(f"Invalid SCOPE '{value}' (expected 'all' or 'bucket:NAME')")


@dataclass
class Settings:
    dry_run: bool = False
    restore_days: int = DEFAULT_RESTORE_DAYS
    restore_tier: RestoreTier = RestoreTier.BULK
    max_keys: int = DEFAULT_MAX_KEYS
    bucket: Optional[str] = None
    concurrency: Optional[int] = None
    rule_id: str = DEFAULT_RULE_ID
    transitions: List[Transition] = field(default_factory=lambda: parse_transitions(DEFAULT_TRANSITIONS))
    expiration_days: Optional[int] = DEFAULT_EXPIRATION_DAYS
    abort_multipart_days: Optional[int] = DEFAULT_ABORT_MULTIPART_DAYS
    target_storage_class: str = DEFAULT_TARGET_STORAGE_CLASS
    backup_root: str = '.'
    pace_seconds: float = DEFAULT_PACE_SECONDS
    fail_on_errors: bool = False
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    verify_ssl: bool = True
    ca_bundle: Optional[str] = None
    call_timeout: int = DEFAULT_CALL_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    debug: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Validated settings

        Raises:
            ConfigError: If any variable is malformed
        """
        env = os.environ if environ is None else environ

        try:
            tier = RestoreTier.parse(env.get('RESTORE_TIER') or RestoreTier.BULK.value)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        concurrency = env.get('CONCURRENCY')
        settings = cls(
            dry_run=parse_bool(env.get('DRY_RUN')),
            restore_days=parse_positive_int('RESTORE_DAYS', env.get('RESTORE_DAYS'), DEFAULT_RESTORE_DAYS),
            restore_tier=tier,
            max_keys=parse_positive_int('MAX_KEYS', env.get('MAX_KEYS'), DEFAULT_MAX_KEYS),
            bucket=parse_scope(env.get('SCOPE')),
            concurrency=parse_positive_int('CONCURRENCY', concurrency, 1) if concurrency else None,
            rule_id=(env.get('RULE_ID') or DEFAULT_RULE_ID).strip(),
            transitions=parse_transitions(env.get('LIFECYCLE_TRANSITIONS') or DEFAULT_TRANSITIONS),
            expiration_days=parse_optional_days(
                'LIFECYCLE_EXPIRATION_DAYS', env.get('LIFECYCLE_EXPIRATION_DAYS'), DEFAULT_EXPIRATION_DAYS
            ),
            abort_multipart_days=parse_optional_days(
                'ABORT_MULTIPART_DAYS', env.get('ABORT_MULTIPART_DAYS'), DEFAULT_ABORT_MULTIPART_DAYS
            ),
            target_storage_class=(env.get('TARGET_STORAGE_CLASS') or DEFAULT_TARGET_STORAGE_CLASS).strip().upper(),
            backup_root=env.get('BACKUP_ROOT') or '.',
            pace_seconds=parse_non_negative_float('PACE_SECONDS', env.get('PACE_SECONDS'), DEFAULT_PACE_SECONDS),
            fail_on_errors=parse_bool(env.get('FAIL_ON_ERRORS')),
            endpoint_url=env.get('S3_ENDPOINT') or None,
            region=env.get('AWS_DEFAULT_REGION') or None,
            verify_ssl=parse_bool(env.get('AWS_VERIFY_SSL'), default=True),
            ca_bundle=env.get('S3_CA_BUNDLE') or None,
            call_timeout=parse_positive_int('S3_CALL_TIMEOUT', env.get('S3_CALL_TIMEOUT'), DEFAULT_CALL_TIMEOUT),
            max_attempts=parse_positive_int('S3_MAX_ATTEMPTS', env.get('S3_MAX_ATTEMPTS'), DEFAULT_MAX_ATTEMPTS),
            debug=parse_bool(env.get('DEBUG')),
        )
        settings.canonical_rule()
        return settings

    def canonical_rule(self) -> LifecycleRule:
        """Compliance rule applied to every bucket.

        Current and noncurrent versions share the same schedule.

        Raises:
            ConfigError: If the configured schedule breaks a rule invariant
        """
        rule = LifecycleRule(
            rule_id=self.rule_id,
            transitions=list(self.transitions),
            expiration_days=self.expiration_days,
            noncurrent_transitions=list(self.transitions),
            noncurrent_expiration_days=self.expiration_days,
            abort_multipart_days=self.abort_multipart_days,
        )
        try:
            rule.validate()
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        return rule

    def restore_request(self) -> RestoreRequest:
        return RestoreRequest(days=self.restore_days, tier=self.restore_tier)

    def workers(self, default: int) -> int:
        return self.concurrency if self.concurrency else default
