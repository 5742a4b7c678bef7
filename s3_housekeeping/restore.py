"""Find archived objects and request temporary restores.

Only one storage class is scanned per pass (GLACIER by default). Restores
are fire-and-forget: this module never polls for completion, and copying
restored objects back to a standard tier is a separate step.
"""

import logging
import threading
import time
from typing import Iterator, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .client import StorageClient
from .errors import describe, error_code
from .models import ArchiveCandidate, BucketResult, Outcome, RestoreRequest, VersioningState

logger = logging.getLogger(__name__)

RESTORE_PACE_SECONDS = 0.02
RESTORE_IN_PROGRESS_CODES = ('RestoreAlreadyInProgress',)


class ListingFailed(Exception):
    """Raised by the candidate iterators when a listing call fails."""


def iter_candidates(client: StorageClient, bucket: str, versioning: VersioningState,
                    storage_class: str, page_size: int,
                    cancel_event: Optional[threading.Event] = None) -> Iterator[ArchiveCandidate]:
    """Yield objects (or versions) of ``storage_class`` page by page.

    Versioned buckets, including suspended ones, are listed by version so
    each candidate carries its version id.

    Raises:
        ListingFailed: If a listing call errors
    """
    if versioning.is_versioned:
        pages = client.iter_version_pages(bucket, page_size)
    else:
        pages = client.iter_object_pages(bucket, page_size)

    while True:
        # Pages are fetched lazily, so stopping here skips the next listing call
        if cancel_event is not None and cancel_event.is_set():
            return
        try:
            items = next(pages, None)
        except (ClientError, BotoCoreError) as e:
            raise ListingFailed(describe(e)) from e
        if items is None:
            return

        for item in items:
            if item.get('StorageClass') != storage_class:
                continue
            yield ArchiveCandidate(
                bucket=bucket,
                key=item['Key'],
                storage_class=storage_class,
                version_id=item.get('VersionId') if versioning.is_versioned else None,
            )


def restore_candidate(client: StorageClient, candidate: ArchiveCandidate,
                      request: RestoreRequest, dry_run: bool = False) -> Outcome:
    if dry_run:
        logger.info(f"DRY-RUN restore: {candidate.uri}")
        return Outcome.OK

    try:
        client.restore_object(candidate.bucket, candidate.key, request, version_id=candidate.version_id)
    except ClientError as e:
        if error_code(e) in RESTORE_IN_PROGRESS_CODES:
            logger.info(f"Restore already in progress: {candidate.uri}")
            return Outcome.SKIPPED
        logger.warning(f"Restore failed: {candidate.uri} ({describe(e)})")
        return Outcome.FAILED
    except BotoCoreError as e:
        logger.warning(f"Restore failed: {candidate.uri} ({e})")
        return Outcome.FAILED

    logger.info(f"Restore requested ({candidate.storage_class}): {candidate.uri}")
    return Outcome.OK


def scan_and_restore(client: StorageClient, bucket: str, storage_class: str,
                     request: RestoreRequest, page_size: int = 1000, dry_run: bool = False,
                     cancel_event: Optional[threading.Event] = None,
                     pace_seconds: float = RESTORE_PACE_SECONDS) -> BucketResult:
    """Request a restore for every object of ``storage_class`` in a bucket.

    Args:
        client: Storage client
        bucket: S3 bucket name
        storage_class: Storage class to look for, e.g. GLACIER
        request: Restore window and retrieval tier
        page_size: Upper bound on items per listing call
        dry_run: Log the targets instead of requesting restores
        cancel_event: Checked before each listing page
        pace_seconds: Delay after each restore request

    Returns:
        Counts for the bucket: one per candidate, or a single skip when the
        bucket is inaccessible
    """
    if not client.head_bucket(bucket):
        return BucketResult.single(bucket, Outcome.SKIPPED, 'no access')

    try:
        versioning = client.get_versioning(bucket)
    except (ClientError, BotoCoreError) as e:
        logger.debug(f"get_bucket_versioning {bucket} failed: {describe(e)}")
        versioning = VersioningState.UNSET

    result = BucketResult(bucket=bucket)
    try:
        for candidate in iter_candidates(client, bucket, versioning, storage_class, page_size, cancel_event):
            result.record(restore_candidate(client, candidate, request, dry_run=dry_run))
            if pace_seconds and not dry_run:
                time.sleep(pace_seconds)
    except ListingFailed as e:
        kind = 'list versions' if versioning.is_versioned else 'list'
        result.record(Outcome.FAILED)
        result.reason = f"{kind}: {e}"
        return result

    if cancel_event is not None and cancel_event.is_set():
        result.reason = 'cancelled'
    elif result.failed:
        result.reason = f"{result.failed} restore(s) failed"
    elif not (result.ok or result.skipped):
        result.reason = f"no {storage_class} objects"
    return result
