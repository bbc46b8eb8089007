"""
Job name predicate.

Selects which listed Jobs the reaper manages. Matching is a pure prefix test
on the Job name; anything without a usable name is simply not matched.
"""
import re
from typing import Any, Mapping

from .errors import InvalidPrefixError

# Characters allowed in a Kubernetes object name (RFC 1123 subdomain)
_NAME_CHARS = re.compile(r'^[a-z0-9.-]+$')
_MAX_NAME_LENGTH = 253


def validate_prefix(prefix: Any) -> str:
    """
    Check that a name prefix could match a real Job name.

    Raises:
        InvalidPrefixError: prefix is empty, not a string, too long or uses
            characters Kubernetes never allows in object names
    """
    if not isinstance(prefix, str) or not prefix:
        raise InvalidPrefixError("Job name prefix must be a non-empty string")
    if len(prefix) > _MAX_NAME_LENGTH:
        raise InvalidPrefixError(f"Job name prefix is longer than {_MAX_NAME_LENGTH} characters")
    if not _NAME_CHARS.match(prefix):
        raise InvalidPrefixError(
            f"Job name prefix '{prefix}' may only contain lowercase letters, digits, '-' and '.'"
        )
    return prefix


class JobNameFilter:
    """Matches Jobs whose name begins with a fixed prefix."""

    def __init__(self, prefix: str):
        self.prefix = validate_prefix(prefix)

    def matches(self, job: Any) -> bool:
        if isinstance(job, Mapping):
            name = job.get("name")
        else:
            name = getattr(job, "name", None)
        if not isinstance(name, str):
            return False
        return name.startswith(self.prefix)

    def __call__(self, job: Any) -> bool:
        return self.matches(job)

    def __repr__(self) -> str:
        return f"JobNameFilter(prefix={self.prefix!r})"
