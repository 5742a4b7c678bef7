"""Exceptions raised by s3_housekeeping."""

from botocore.exceptions import ClientError


class HousekeepingError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(HousekeepingError):
    """Raised when a setting is missing or malformed."""


class BucketListingError(HousekeepingError):
    """Raised when the account's buckets cannot be listed at all."""


class BackupError(HousekeepingError):
    """Raised when a lifecycle backup cannot be written."""


def error_code(exc: ClientError) -> str:
    """Return the S3 error code carried by a ClientError."""
    return exc.response.get('Error', {}).get('Code', 'Unknown')


def describe(exc: Exception) -> str:
    """Terse one-line cause for log lines and the run summary."""
    if isinstance(exc, ClientError):
        message = exc.response.get('Error', {}).get('Message', '')
        code = error_code(exc)
        return f"{code}: {message}" if message else code
    return str(exc) or exc.__class__.__name__
