"""Roll the compliance lifecycle rule out to a bucket.

Two strategies:

- ``apply_replace_all`` overwrites the whole lifecycle configuration with the
  canonical rule set. Versioning must be enabled first or the bucket fails.
  Nothing is backed up before the overwrite.
- ``apply_merge_safe`` reads the current configuration, replaces or appends
  the canonical rule by ID and writes the result back, leaving every other
  rule untouched. Versioning is enabled on a best-effort basis.
"""

import json
import logging
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from .client import StorageClient
from .errors import describe
from .models import BucketResult, Outcome, VersioningState
from .reconcile import configs_equal, reconcile

logger = logging.getLogger(__name__)


def _versioning_enabled(client: StorageClient, bucket: str) -> bool:
    try:
        return client.get_versioning(bucket) is VersioningState.ENABLED
    except (ClientError, BotoCoreError) as e:
        logger.debug(f"get_bucket_versioning {bucket} failed: {describe(e)}")
        return False


def apply_replace_all(client: StorageClient, bucket: str, policy: Dict[str, Any],
                      dry_run: bool = False) -> BucketResult:
    """Overwrite a bucket's lifecycle configuration.

    Args:
        client: Storage client
        bucket: S3 bucket name
        policy: Complete lifecycle configuration to write
        dry_run: Log the intended calls instead of issuing them

    Returns:
        Result for the bucket
    """
    if not client.head_bucket(bucket):
        return BucketResult.single(bucket, Outcome.SKIPPED, 'no access')

    if not _versioning_enabled(client, bucket):
        if dry_run:
            logger.info(f"DRY-RUN {bucket}: would enable versioning")
        else:
            try:
                client.enable_versioning(bucket)
            except (ClientError, BotoCoreError) as e:
                logger.debug(f"put_bucket_versioning {bucket} failed: {describe(e)}")
                return BucketResult.single(bucket, Outcome.FAILED, 'cannot enable versioning')

    if dry_run:
        logger.info(f"DRY-RUN {bucket}: would replace lifecycle with {len(policy.get('Rules', []))} rule(s)")
        return BucketResult.single(bucket, Outcome.OK, 'dry-run')

    try:
        client.put_lifecycle(bucket, policy)
    except (ClientError, BotoCoreError) as e:
        return BucketResult.single(bucket, Outcome.FAILED, f"policy not applied: {describe(e)}")

    return BucketResult.single(bucket, Outcome.OK)


def apply_merge_safe(client: StorageClient, bucket: str, canonical_rule: Dict[str, Any],
                     dry_run: bool = False) -> BucketResult:
    """Ensure the canonical rule on a bucket while preserving other rules.

    A bucket without a lifecycle configuration is an empty baseline, not a
    skip. A write is skipped when the merged configuration already matches.

    Args:
        client: Storage client
        bucket: S3 bucket name
        canonical_rule: Rule to replace or append, in S3 rule shape
        dry_run: Log the merged configuration instead of writing it

    Returns:
        Result for the bucket
    """
    if not client.head_bucket(bucket):
        return BucketResult.single(bucket, Outcome.SKIPPED, 'no access')

    if not _versioning_enabled(client, bucket):
        if dry_run:
            logger.info(f"DRY-RUN {bucket}: would enable versioning")
        else:
            try:
                client.enable_versioning(bucket)
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"{bucket}: could not enable versioning ({describe(e)}), continuing")

    try:
        existing = client.get_lifecycle(bucket)
    except (ClientError, BotoCoreError) as e:
        return BucketResult.single(bucket, Outcome.FAILED, f"cannot read lifecycle: {describe(e)}")

    merged = reconcile(existing, canonical_rule)

    if configs_equal(existing, merged):
        return BucketResult.single(bucket, Outcome.OK, 'up to date')

    if dry_run:
        logger.info(f"DRY-RUN {bucket}: merged configuration\n{json.dumps(merged, indent=2, default=str)}")
        return BucketResult.single(bucket, Outcome.OK, 'dry-run')

    try:
        client.put_lifecycle(bucket, merged)
    except (ClientError, BotoCoreError) as e:
        return BucketResult.single(bucket, Outcome.FAILED, f"policy not applied: {describe(e)}")

    return BucketResult.single(bucket, Outcome.OK, 'merged')
