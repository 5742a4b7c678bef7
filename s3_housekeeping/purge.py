"""Delete lifecycle configurations, backing each one up first."""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from .client import StorageClient
from .errors import BackupError, describe
from .models import BucketResult, Outcome, RunCounters
from .reconcile import validate_lifecycle_config

logger = logging.getLogger(__name__)

BACKUP_DIR_PREFIX = 'lifecycle-backups-'


def _json_default(value: Any) -> str:
    # Rule dates come back from boto3 as datetime objects
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def serialize_policy(config: Dict[str, Any]) -> str:
    """Render a lifecycle configuration as backup file text.

    Args:
        config: Configuration as returned by GetBucketLifecycleConfiguration

    Returns:
        Indented JSON with datetimes as ISO-8601 strings and a trailing newline
    """
    return json.dumps(config, indent=2, default=_json_default) + '\n'


class BackupStore:
    """Writes one JSON file per bucket under a run-timestamped directory."""

    def __init__(self, root: Union[str, Path] = '.', timestamp: Optional[datetime] = None):
        stamp = (timestamp or datetime.now()).strftime('%Y%m%d-%H%M%S')
        self.directory = Path(root) / f"{BACKUP_DIR_PREFIX}{stamp}"

    def path_for(self, bucket: str) -> Path:
        """Backup file location for a bucket, whether or not it exists yet."""
        return self.directory / f"{bucket}.json"

    def write(self, bucket: str, config: Dict[str, Any]) -> Path:
        """Persist a configuration exactly once.

        Raises:
            BackupError: If the file already exists or cannot be written
        """
        path = self.path_for(bucket)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # 'x' refuses to overwrite an earlier backup
            with open(path, 'x', encoding='utf-8') as f:
                f.write(serialize_policy(config))
                f.flush()
                os.fsync(f.fileno())
        except (OSError, TypeError) as e:
            raise BackupError(f"Failed to back up lifecycle for {bucket}: {e}") from e
        logger.debug(f"Backed up lifecycle for {bucket} to {path}")
        return path


def purge_lifecycle(client: StorageClient, bucket: str, backups: BackupStore,
                    dry_run: bool = False) -> BucketResult:
    """Back up and delete a bucket's lifecycle configuration.

    The backup is always written before the delete call. In dry-run mode the
    backup is still written so operators can inspect what would be removed.

    Args:
        client: Storage client
        bucket: S3 bucket name
        backups: Where backups are written
        dry_run: Skip the delete call

    Returns:
        Result for the bucket
    """
    if not client.head_bucket(bucket):
        return BucketResult.single(bucket, Outcome.SKIPPED, 'no access')

    try:
        existing = client.get_lifecycle(bucket)
    except (ClientError, BotoCoreError) as e:
        return BucketResult.single(bucket, Outcome.FAILED, f"cannot read lifecycle: {describe(e)}")

    if existing is None:
        return BucketResult.single(bucket, Outcome.SKIPPED, 'no lifecycle')

    try:
        backups.write(bucket, existing)
    except BackupError as e:
        logger.error(str(e))
        return BucketResult.single(bucket, Outcome.FAILED, 'backup failed')

    if dry_run:
        return BucketResult.single(bucket, Outcome.OK, 'DRY-RUN, would delete lifecycle')

    try:
        client.delete_lifecycle(bucket)
    except (ClientError, BotoCoreError) as e:
        return BucketResult.single(bucket, Outcome.FAILED, f"delete error: {describe(e)}")

    return BucketResult.single(bucket, Outcome.OK)


def replay_backups(client: StorageClient, backup_dir: Union[str, Path],
                   dry_run: bool = False) -> RunCounters:
    """Re-apply every ``<bucket>.json`` found in a backup directory.

    Args:
        client: Storage client
        backup_dir: Directory written by a purge run
        dry_run: Validate files without writing them back

    Returns:
        Counters for the replay

    Raises:
        BackupError: If the directory does not exist
    """
    directory = Path(backup_dir)
    if not directory.is_dir():
        raise BackupError(f"Backup directory not found: {directory}")

    counters = RunCounters()
    for path in sorted(directory.glob('*.json')):
        bucket = path.stem
        try:
            config = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Invalid backup file {path}: {e}")
            counters.merge(BucketResult.single(bucket, Outcome.FAILED, 'unreadable backup'))
            continue

        if not validate_lifecycle_config(config):
            counters.merge(BucketResult.single(bucket, Outcome.FAILED, 'invalid backup'))
            continue

        if dry_run:
            logger.info(f"DRY-RUN {bucket}: would restore {len(config['Rules'])} rule(s) from {path}")
            counters.merge(BucketResult.single(bucket, Outcome.OK))
            continue

        try:
            client.put_lifecycle(bucket, config)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{bucket}: replay failed ({describe(e)})")
            counters.merge(BucketResult.single(bucket, Outcome.FAILED, f"replay failed: {describe(e)}"))
            continue

        logger.info(f"{bucket}: lifecycle restored from {path.name}")
        counters.merge(BucketResult.single(bucket, Outcome.OK))

    return counters
