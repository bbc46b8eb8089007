"""
Reaper data model.

ManagedJob is the reaper's view of a batch Job: just the fields the
List -> Filter -> Patch cycle reads. CycleReport records the outcome of one
reconciliation cycle for logs, the status API and the CLI.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from enum import Enum
from dataclasses import dataclass, field


class PatchOutcome(str, Enum):
    """Result of patching one Job"""
    PATCHED = "patched"
    UNCHANGED = "unchanged"  # already at the requested TTL
    SKIPPED = "skipped"  # already below the requested TTL (narrow-only)
    NOT_FOUND = "not_found"  # deleted between list and patch
    FAILED = "failed"

    @property
    def succeeded(self) -> bool:
        return self is not PatchOutcome.FAILED


class CycleTrigger(str, Enum):
    """What started a reconciliation cycle"""
    SCHEDULED = "scheduled"
    MANUAL = "manual"


@dataclass(frozen=True)
class ManagedJob:
    """A platform-owned Job whose deletion is governed by ttlSecondsAfterFinished"""
    namespace: Optional[str]
    name: Optional[str]
    completion_time: Optional[datetime] = None
    ttl_seconds_after_finished: Optional[int] = None
    resource_version: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def finished(self) -> bool:
        return self.completion_time is not None

    @classmethod
    def from_v1_job(cls, job: Any) -> "ManagedJob":
        """
        Build a ManagedJob from a kubernetes V1Job.

        Missing metadata/spec/status sections yield None fields instead of
        raising, so partially-populated objects still convert.
        """
        metadata = getattr(job, "metadata", None)
        spec = getattr(job, "spec", None)
        status = getattr(job, "status", None)

        ttl = getattr(spec, "ttl_seconds_after_finished", None)
        if isinstance(ttl, bool) or not isinstance(ttl, int):
            ttl = None

        return cls(
            namespace=getattr(metadata, "namespace", None),
            name=getattr(metadata, "name", None),
            completion_time=getattr(status, "completion_time", None),
            ttl_seconds_after_finished=ttl,
            resource_version=getattr(metadata, "resource_version", None),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "name": self.name,
            "completion_time": self.completion_time.isoformat() if self.completion_time else None,
            "ttl_seconds_after_finished": self.ttl_seconds_after_finished,
        }


@dataclass
class CycleReport:
    """Outcome of one List -> Filter -> Patch cycle"""
    trigger: CycleTrigger
    ttl_seconds: int
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    listed: int = 0
    matched: int = 0
    outcomes: Dict[PatchOutcome, int] = field(default_factory=dict)
    failures: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def record(self, job: ManagedJob, outcome: PatchOutcome, message: str = ""):
        """Count a per-Job outcome"""
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
        if outcome is PatchOutcome.FAILED:
            self.failures.append(f"{job.key}: {message}" if message else job.key)

    def count(self, outcome: PatchOutcome) -> int:
        return self.outcomes.get(outcome, 0)

    @property
    def skipped_cycle(self) -> bool:
        """True when the List call failed and no Job was looked at"""
        return self.error is not None

    def finish(self):
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for API responses"""
        return {
            "trigger": self.trigger.value,
            "ttl_seconds": self.ttl_seconds,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "listed": self.listed,
            "matched": self.matched,
            "outcomes": {outcome.value: self.count(outcome) for outcome in PatchOutcome},
            "failures": self.failures[-50:],  # Return last 50 failures
            "error": self.error,
        }
