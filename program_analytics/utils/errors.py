"""
Error handling utilities for Program Analytics

Exception taxonomy surfaced to callers, plus consistent formatting for the
warning blocks that report silently absorbed data anomalies.
"""

import logging
from typing import List, Optional

from .. import config

logger = logging.getLogger(__name__)


class ProgramAnalyticsError(Exception):
    """Base class for every error this package raises."""


class ValidationError(ProgramAnalyticsError, ValueError):
    """Invalid request parameters, raised before any store query."""


class NotFoundError(ProgramAnalyticsError, LookupError):
    """A requested program or survey does not exist in the store."""


class StoreError(ProgramAnalyticsError):
    """The response store failed to answer a query."""

    retryable = False


class StoreTimeoutError(StoreError):
    """The response store did not answer within the configured timeout."""

    retryable = True


class PipelineError(ProgramAnalyticsError):
    """A computation step failed."""

    def __init__(self, message: str, step_name: Optional[str] = None):
        super().__init__(message)
        self.step_name = step_name


def log_error_block(title: str, details: List[str], level: int = logging.WARNING) -> None:
    """
    Log a clearly formatted error or warning block.

    Args:
        title: Error/warning title
        details: List of detail messages
        level: Logging level for the block
    """
    lines = [config.ERROR_SEPARATOR, title, config.ERROR_SEPARATOR]
    lines.extend(f"  {detail}" for detail in details)
    lines.append(config.ERROR_SEPARATOR)
    logger.log(level, "\n".join(lines))
