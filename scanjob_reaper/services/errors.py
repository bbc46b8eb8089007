"""
Reaper exception hierarchy.

- ClusterUnavailableError: the cluster could not be listed (recoverable, the
  cycle is skipped and retried on the next interval)
- InvalidPrefixError: the Job name prefix is unusable (fatal at startup)
"""
from typing import Optional


class ReaperError(Exception):
    """Base class for reaper errors."""


class ClusterUnavailableError(ReaperError):
    """Listing Jobs failed because of a connectivity or authorization error."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class InvalidPrefixError(ReaperError, ValueError):
    """The configured Job name prefix can never match a Kubernetes object name."""
