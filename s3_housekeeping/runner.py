"""Run a per-bucket workflow across the account and tally the outcomes."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from functools import partial
from typing import Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .apply import apply_merge_safe, apply_replace_all
from .client import StorageClient
from .config import Settings
from .errors import describe
from .logs import status_line
from .models import BucketResult, Outcome, RunCounters
from .purge import BackupStore, purge_lifecycle
from .restore import scan_and_restore

logger = logging.getLogger(__name__)

BucketTask = Callable[[str], BucketResult]

RESTORE_DEFAULT_WORKERS = 4


class Runner:
    """Iterates the bucket scope and runs one workflow per bucket.

    Buckets are processed by a worker pool of ``workers`` threads (1 keeps
    the run strictly sequential). A bucket is never worked on by two threads
    at once, and the cancel event is checked before each bucket starts.
    """

    def __init__(self, client: StorageClient, settings: Settings,
                 cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.settings = settings
        self.cancel_event = cancel_event or threading.Event()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def buckets(self) -> List[str]:
        """Buckets in scope: the single configured bucket, or every bucket.

        Raises:
            BucketListingError: If the account cannot be listed
        """
        if self.settings.bucket:
            return [self.settings.bucket]
        return self.client.list_buckets()

    def _bucket_lock(self, bucket: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(bucket, threading.Lock())

    def _process(self, bucket: str, task: BucketTask, counters: RunCounters) -> None:
        if self.cancel_event.is_set():
            return

        with self._bucket_lock(bucket):
            try:
                result = task(bucket)
            except (ClientError, BotoCoreError) as e:
                result = BucketResult.single(bucket, Outcome.FAILED, describe(e))

        logger.info(status_line(result))
        counters.merge(result)

        if self.settings.pace_seconds:
            time.sleep(self.settings.pace_seconds)

    def run(self, task: BucketTask, label: str, workers: int = 1) -> RunCounters:
        """Run ``task`` over every bucket in scope.

        Args:
            task: Workflow taking a bucket name and returning its result
            label: Word used in the summary line, e.g. "Applied"
            workers: Worker pool size

        Returns:
            Counters for the run

        Raises:
            BucketListingError: If the bucket scope cannot be resolved
        """
        counters = RunCounters()
        logger.info("Fetching buckets...")
        buckets = self.buckets()

        if not buckets:
            logger.info("No buckets found, nothing to do.")
            return counters

        logger.info(f"Processing {len(buckets)} bucket(s) with {workers} worker(s)"
                    f"{' (DRY-RUN)' if self.settings.dry_run else ''}")

        if workers <= 1:
            try:
                for bucket in buckets:
                    self._process(bucket, task, counters)
            except KeyboardInterrupt:
                self.cancel_event.set()
                raise
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self._process, bucket, task, counters) for bucket in buckets]
                try:
                    for future in as_completed(futures):
                        future.result()
                except KeyboardInterrupt:
                    # Queued buckets see the event and return before the pool drains
                    self.cancel_event.set()
                    raise

        if self.cancel_event.is_set():
            logger.warning("Run cancelled before all buckets were processed")

        self.log_summary(counters, label)
        return counters

    def log_summary(self, counters: RunCounters, label: str) -> None:
        totals = counters.snapshot()
        logger.info("-" * 40)
        logger.info(f"Done. {label}: {totals['ok']}, Skipped: {totals['skipped']}, Failed: {totals['failed']}")
        for bucket, reason in counters.failures:
            logger.info(f"  failed: {bucket} ({reason})")

    def apply_replace_all(self) -> RunCounters:
        policy = self.settings.canonical_rule().to_policy()
        task = partial(apply_replace_all, self.client, policy=policy, dry_run=self.settings.dry_run)
        return self.run(task, 'Applied', self.settings.workers(1))

    def apply_merge_safe(self) -> RunCounters:
        rule = self.settings.canonical_rule().to_dict()
        task = partial(apply_merge_safe, self.client, canonical_rule=rule, dry_run=self.settings.dry_run)
        return self.run(task, 'Applied/Merged', self.settings.workers(1))

    def purge(self, backups: Optional[BackupStore] = None) -> RunCounters:
        backups = backups or BackupStore(self.settings.backup_root)
        task = partial(purge_lifecycle, self.client, backups=backups, dry_run=self.settings.dry_run)
        counters = self.run(task, 'Lifecycles deleted', self.settings.workers(1))
        if backups.directory.exists():
            logger.info(f"Backups saved in: {backups.directory}/")
            logger.info(f"Replay with: s3-housekeeping replay {backups.directory}")
        return counters

    def restore(self) -> RunCounters:
        task = partial(
            scan_and_restore,
            self.client,
            storage_class=self.settings.target_storage_class,
            request=self.settings.restore_request(),
            page_size=self.settings.max_keys,
            dry_run=self.settings.dry_run,
            cancel_event=self.cancel_event,
        )
        logger.info(f"Restore window: {self.settings.restore_days} days, tier: {self.settings.restore_tier.value}, "
                    f"class: {self.settings.target_storage_class}")
        counters = self.run(task, 'Restore requests placed', self.settings.workers(RESTORE_DEFAULT_WORKERS))
        logger.info("Next: copy restored objects to a standard tier once the restores complete.")
        return counters
