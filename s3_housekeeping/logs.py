"""Logging setup and colored status words."""

import logging

from .models import BucketResult, Outcome


class Colors:
    """ANSI color codes for terminal output."""
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RESET = '\033[0m'

    @staticmethod
    def red(text: str) -> str:
        """Return text in red color."""
        return f"{Colors.RED}{text}{Colors.RESET}"

    @staticmethod
    def green(text: str) -> str:
        """Return text in green color."""
        return f"{Colors.GREEN}{text}{Colors.RESET}"

    @staticmethod
    def yellow(text: str) -> str:
        """Return text in yellow color."""
        return f"{Colors.YELLOW}{text}{Colors.RESET}"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger('s3_housekeeping')
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


def status_line(result: BucketResult) -> str:
    """One-line per-bucket status, e.g. ``my-bucket ... skip (no access)``."""
    outcome = result.outcome
    if outcome is Outcome.OK:
        status = Colors.green('ok')
    elif outcome is Outcome.SKIPPED:
        status = Colors.yellow('skip')
    else:
        status = Colors.red('fail')
    if result.reason:
        status = f"{status} ({result.reason})"
    return f"{result.bucket:<60} {status}"
