"""Thin wrapper around the boto3 S3 client.

Workflows talk to S3 only through ``StorageClient`` so tests can hand in a
double that speaks the boto3 method names.
"""

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import BucketListingError, ConfigError, error_code
from .models import RestoreRequest, VersioningState

logger = logging.getLogger(__name__)

NO_LIFECYCLE_CODES = ('NoSuchLifecycleConfiguration',)


def build_s3_client(settings: Settings):
    """Create a boto3 S3 client from settings.

    Credentials come from the default boto3 chain (environment, profile,
    instance role). Each call gets connect/read timeouts and bounded retries.

    Args:
        settings: Runtime settings

    Returns:
        boto3 S3 client
    """
    client_config: Dict[str, Any] = {
        'config': Config(
            connect_timeout=settings.call_timeout,
            read_timeout=settings.call_timeout,
            retries={'mode': 'standard', 'max_attempts': settings.max_attempts},
        ),
    }

    if settings.region:
        client_config['region_name'] = settings.region
        logger.debug(f"Using AWS region: {settings.region}")

    if settings.endpoint_url:
        client_config['endpoint_url'] = settings.endpoint_url
        logger.info(f"Using S3 endpoint: {settings.endpoint_url}")

    if not settings.verify_ssl:
        client_config['verify'] = False
        logger.warning("SSL verification is disabled")
        if settings.ca_bundle:
            logger.warning(f"S3_CA_BUNDLE is set ({settings.ca_bundle}) but SSL verification is disabled - CA bundle will be ignored")
    elif settings.ca_bundle:
        client_config['verify'] = settings.ca_bundle
        logger.info(f"SSL verification is enabled with custom CA Bundle: {settings.ca_bundle}")

    try:
        return boto3.client('s3', **client_config)
    except (BotoCoreError, ValueError) as e:
        raise ConfigError(f"Failed to initialize S3 client: {e}") from e


class StorageClient:
    """S3 operations used by the housekeeping workflows."""

    def __init__(self, s3_client):
        self.s3 = s3_client

    def list_buckets(self) -> List[str]:
        """Return the names of every bucket in the account.

        Raises:
            BucketListingError: If the account cannot be listed (credentials,
                authorization or connectivity)
        """
        try:
            response = self.s3.list_buckets()
        except ClientError as e:
            raise BucketListingError(f"Not authorised to list buckets ({error_code(e)})") from e
        except BotoCoreError as e:
            raise BucketListingError(f"Unable to list buckets: {e}") from e
        return [bucket['Name'] for bucket in response.get('Buckets', [])]

    def head_bucket(self, bucket: str) -> bool:
        """Check bucket access. Returns False when the bucket is missing or forbidden."""
        try:
            self.s3.head_bucket(Bucket=bucket)
            return True
        except ClientError as e:
            logger.debug(f"head_bucket {bucket} failed: {error_code(e)}")
            return False
        except BotoCoreError as e:
            logger.debug(f"head_bucket {bucket} failed: {e}")
            return False

    def get_versioning(self, bucket: str) -> VersioningState:
        """Get the bucket's versioning state.

        Args:
            bucket: S3 bucket name

        Returns:
            UNSET when versioning was never configured
        """
        response = self.s3.get_bucket_versioning(Bucket=bucket)
        return VersioningState.from_status(response.get('Status'))

    def enable_versioning(self, bucket: str) -> None:
        """Turn versioning on for a bucket.

        Args:
            bucket: S3 bucket name
        """
        self.s3.put_bucket_versioning(
            Bucket=bucket,
            VersioningConfiguration={'Status': VersioningState.ENABLED.value},
        )

    def get_lifecycle(self, bucket: str) -> Optional[Dict[str, Any]]:
        """Get the bucket's lifecycle configuration.

        Args:
            bucket: S3 bucket name

        Returns:
            The configuration without ResponseMetadata, or None if the bucket
            has no lifecycle configuration

        Raises:
            ClientError: For any error other than a missing configuration
        """
        try:
            response = self.s3.get_bucket_lifecycle_configuration(Bucket=bucket)
        except ClientError as e:
            if error_code(e) in NO_LIFECYCLE_CODES:
                logger.debug(f"No existing lifecycle configuration on {bucket}")
                return None
            raise

        config = {k: v for k, v in response.items() if k != 'ResponseMetadata'}
        logger.debug(f"Lifecycle configuration for {bucket}: {json.dumps(config, indent=2, default=str)}")
        return config

    def put_lifecycle(self, bucket: str, config: Dict[str, Any]) -> None:
        """Write a lifecycle configuration, replacing whatever is there.

        ``TransitionDefaultMinimumObjectSize`` is returned alongside the rules
        on reads but travels as its own parameter on writes.
        """
        kwargs: Dict[str, Any] = {
            'Bucket': bucket,
            'LifecycleConfiguration': {'Rules': config.get('Rules', [])},
        }
        if config.get('TransitionDefaultMinimumObjectSize'):
            kwargs['TransitionDefaultMinimumObjectSize'] = config['TransitionDefaultMinimumObjectSize']
        logger.debug(f"Configuration payload for {bucket}: {json.dumps(kwargs, indent=2, default=str)}")
        self.s3.put_bucket_lifecycle_configuration(**kwargs)

    def delete_lifecycle(self, bucket: str) -> None:
        """Remove every lifecycle rule from a bucket.

        Args:
            bucket: S3 bucket name
        """
        self.s3.delete_bucket_lifecycle(Bucket=bucket)

    def iter_object_pages(self, bucket: str, page_size: int) -> Iterator[List[Dict[str, Any]]]:
        """Yield current objects one listing page at a time.

        Args:
            bucket: S3 bucket name
            page_size: Upper bound on items per list_objects_v2 call

        Yields:
            The ``Contents`` entries of each page
        """
        paginator = self.s3.get_paginator('list_objects_v2')
        for page in paginator.paginate(Bucket=bucket, PaginationConfig={'PageSize': page_size}):
            yield page.get('Contents', [])

    def iter_version_pages(self, bucket: str, page_size: int) -> Iterator[List[Dict[str, Any]]]:
        """Yield object versions one listing page at a time.

        Args:
            bucket: S3 bucket name
            page_size: Upper bound on items per list_object_versions call

        Yields:
            The ``Versions`` entries of each page (delete markers are left out)
        """
        paginator = self.s3.get_paginator('list_object_versions')
        for page in paginator.paginate(Bucket=bucket, PaginationConfig={'PageSize': page_size}):
            yield page.get('Versions', [])

    def restore_object(self, bucket: str, key: str, request: RestoreRequest,
                       version_id: Optional[str] = None) -> None:
        """Request a temporary restore of an archived object.

        Args:
            bucket: S3 bucket name
            key: Object key
            request: Restore window and retrieval tier
            version_id: Version to restore, for versioned buckets only
        """
        kwargs: Dict[str, Any] = {
            'Bucket': bucket,
            'Key': key,
            'RestoreRequest': request.to_dict(),
        }
        if version_id:
            kwargs['VersionId'] = version_id
        self.s3.restore_object(**kwargs)
