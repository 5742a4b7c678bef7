"""Command line entrypoint for s3-housekeeping."""

import argparse
import logging
from dataclasses import replace
from typing import Optional, Sequence

from .client import StorageClient, build_s3_client
from .config import Settings, parse_transitions
from .errors import BackupError, BucketListingError, ConfigError
from .logs import setup_logging
from .models import RestoreTier
from .purge import replay_backups
from .runner import Runner

logger = logging.getLogger(__name__)

EPILOG = """
Examples:
  # Overwrite every bucket's lifecycle with the compliance rule
  s3-housekeeping apply

  # Add or update the compliance rule, keeping other rules
  s3-housekeeping merge --dry-run

  # Back up and delete all lifecycle configurations
  s3-housekeeping purge --backup-root /var/backups

  # Put purged configurations back
  s3-housekeeping replay lifecycle-backups-20240101-120000

  # Request restores for GLACIER objects in one bucket
  s3-housekeeping restore --bucket my-bucket --days 7 --tier Bulk

Environment Variables:
  DRY_RUN, RESTORE_DAYS, RESTORE_TIER, MAX_KEYS, SCOPE (all|bucket:NAME),
  CONCURRENCY, RULE_ID, LIFECYCLE_TRANSITIONS, LIFECYCLE_EXPIRATION_DAYS,
  ABORT_MULTIPART_DAYS, TARGET_STORAGE_CLASS, BACKUP_ROOT, PACE_SECONDS,
  FAIL_ON_ERRORS, S3_ENDPOINT, AWS_DEFAULT_REGION, AWS_VERIFY_SSL,
  S3_CA_BUNDLE, S3_CALL_TIMEOUT, S3_MAX_ATTEMPTS, DEBUG
"""


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{value!r} is not a valid integer.") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("Value must be greater than zero.")
    return number


def _days_or_zero(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{value!r} is not a valid integer.") from exc
    if number < 0:
        raise argparse.ArgumentTypeError("Value must not be negative.")
    return number


def _tier(value: str) -> RestoreTier:
    try:
        return RestoreTier.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--debug', action='store_true', default=None,
                        help='Enable debug mode with verbose output')
    common.add_argument('--dry-run', action='store_true', default=None,
                        help='Perform reads only and report intended changes')
    common.add_argument('--fail-on-errors', action='store_true', default=None,
                        help='Exit with status 1 when any bucket failed')

    scoped = argparse.ArgumentParser(add_help=False)
    scoped.add_argument('--bucket', help='Limit the run to a single bucket')
    scoped.add_argument('--concurrency', type=_positive_int, help='Number of buckets processed in parallel')
    scoped.add_argument('--pace', type=float, dest='pace_seconds',
                        help='Seconds to pause after each bucket')

    rule = argparse.ArgumentParser(add_help=False)
    rule.add_argument('--rule-id', help='Identifier of the compliance rule')
    rule.add_argument('--transitions', help='Schedule as DAYS:CLASS[,DAYS:CLASS...]')
    rule.add_argument('--expiration-days', type=_days_or_zero,
                      help='Days before objects expire (0 drops the expiration)')

    parser = argparse.ArgumentParser(
        prog='s3-housekeeping',
        description='S3 lifecycle and archive-restore housekeeping',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('apply', parents=[common, scoped, rule],
                          help='Overwrite lifecycle configuration on every bucket')
    subparsers.add_parser('merge', parents=[common, scoped, rule],
                          help='Replace or append the compliance rule, keeping other rules')

    purge_parser = subparsers.add_parser('purge', parents=[common, scoped],
                                         help='Back up and delete lifecycle configurations')
    purge_parser.add_argument('--backup-root', help='Directory that receives the backup folder')

    restore_parser = subparsers.add_parser('restore', parents=[common, scoped],
                                           help='Request restores for archived objects')
    restore_parser.add_argument('--days', type=_positive_int, dest='restore_days',
                                help='Days the restored copy stays readable')
    restore_parser.add_argument('--tier', type=_tier, dest='restore_tier',
                                help='Retrieval tier: Bulk, Standard or Expedited')
    restore_parser.add_argument('--max-keys', type=_positive_int, help='Page size for listing calls')
    restore_parser.add_argument('--storage-class', dest='target_storage_class',
                                help='Storage class to restore (default GLACIER)')

    replay_parser = subparsers.add_parser('replay', parents=[common],
                                          help='Re-apply lifecycle backups written by purge')
    replay_parser.add_argument('backup_dir', help='Backup directory created by purge')

    return parser


OVERRIDES = (
    'debug', 'dry_run', 'fail_on_errors', 'bucket', 'concurrency', 'pace_seconds',
    'rule_id', 'expiration_days', 'backup_root', 'restore_days', 'restore_tier',
    'max_keys', 'target_storage_class',
)


def resolve_settings(args: argparse.Namespace, settings: Settings) -> Settings:
    """Layer CLI flags over environment settings."""
    changes = {}
    for name in OVERRIDES:
        value = getattr(args, name, None)
        if value is not None:
            changes[name] = value
    if getattr(args, 'transitions', None):
        changes['transitions'] = parse_transitions(args.transitions)
    if changes.get('expiration_days') == 0:
        changes['expiration_days'] = None
    if 'target_storage_class' in changes:
        changes['target_storage_class'] = changes['target_storage_class'].strip().upper()
    if changes.get('pace_seconds', 0) < 0:
        raise ConfigError("--pace must not be negative")

    settings = replace(settings, **changes)
    settings.canonical_rule()
    return settings


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function to handle command line arguments and execute actions."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = resolve_settings(args, Settings.from_env())
    except ConfigError as e:
        parser.error(str(e))

    setup_logging(settings.debug)

    try:
        client = StorageClient(build_s3_client(settings))

        if args.command == 'replay':
            counters = replay_backups(client, args.backup_dir, dry_run=settings.dry_run)
            totals = counters.snapshot()
            logger.info(f"Done. Restored: {totals['ok']}, Failed: {totals['failed']}")
        else:
            runner = Runner(client, settings)
            if args.command == 'apply':
                counters = runner.apply_replace_all()
            elif args.command == 'merge':
                counters = runner.apply_merge_safe()
            elif args.command == 'purge':
                counters = runner.purge()
            else:
                counters = runner.restore()

    except (BucketListingError, BackupError, ConfigError) as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Operation cancelled by user")
        return 1

    if settings.fail_on_errors and counters.failed:
        return 1
    return 0


if __name__ == '__main__':  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
