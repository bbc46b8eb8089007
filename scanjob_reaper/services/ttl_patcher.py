"""
TTL Patcher

Narrows spec.ttlSecondsAfterFinished on a single Job. The platform's
TTL-after-finished controller performs the actual deletion once the countdown
elapses; the patcher never deletes anything.

Outcome rules:
- Same value already set: success, no API call in narrow-only mode
- Lower value already set: left alone in narrow-only mode (countdown never goes up)
- Job gone (404): success, the goal is already met
- Job changed since it was listed (409, narrow-only): skipped, the next cycle
  re-reads it
- Anything else: logged and reported as FAILED, never raised
"""
import logging

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError

from ..schemas import ManagedJob, PatchOutcome

logger = logging.getLogger(__name__)


class TTLPatcher:
    """Idempotent, not-found tolerant TTL patcher."""

    def __init__(self, k8s):
        self.k8s = k8s

    async def patch(self, job: ManagedJob, ttl_seconds: int, narrow_only: bool = True) -> PatchOutcome:
        """
        Apply ttl_seconds to a Job.

        Args:
            job: Job to patch (identified by namespace/name)
            ttl_seconds: Remaining lifetime after completion, in seconds
            narrow_only: Skip Jobs already at or below ttl_seconds. The forced
                cleanup path passes False to always apply its value.

        Returns:
            PatchOutcome for the Job
        """
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be a non-negative integer, got {ttl_seconds!r}")

        current = job.ttl_seconds_after_finished
        if narrow_only and current is not None:
            if current == ttl_seconds:
                return PatchOutcome.UNCHANGED
            if current < ttl_seconds:
                logger.debug(
                    f"[REAPER] {job.key} already expires sooner ({current}s < {ttl_seconds}s), leaving it"
                )
                return PatchOutcome.SKIPPED

        # Narrow-only patches are conditional on the listed version so a
        # concurrent shorter TTL is never overwritten
        precondition = {}
        if narrow_only and job.resource_version:
            precondition["resource_version"] = job.resource_version

        try:
            await self.k8s.patch_job_ttl(job.namespace, job.name, ttl_seconds, **precondition)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"[REAPER] {job.key} disappeared before patch, nothing to do")
                return PatchOutcome.NOT_FOUND
            if e.status == 409 and precondition:
                logger.debug(f"[REAPER] {job.key} changed since it was listed, leaving it for the next cycle")
                return PatchOutcome.SKIPPED
            logger.warning(f"[REAPER] Failed to patch {job.key}: {e.status} {e.reason}")
            return PatchOutcome.FAILED
        except (TransportError, OSError) as e:
            logger.warning(f"[REAPER] Failed to patch {job.key}: {e}")
            return PatchOutcome.FAILED

        if current == ttl_seconds:
            return PatchOutcome.UNCHANGED

        logger.info(f"[REAPER] Set ttlSecondsAfterFinished={ttl_seconds} on {job.key}")
        return PatchOutcome.PATCHED
