"""S3 lifecycle and archive-restore housekeeping."""

__version__ = '3.1.0'
