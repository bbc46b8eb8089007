"""
Reconciliation loop for leftover scan Jobs.

One cycle is List -> Filter -> Patch:
1. Take a full snapshot of Jobs across all namespaces
2. Keep the ones whose name carries the scan-job prefix
3. Patch each match's ttlSecondsAfterFinished, concurrently and independently

ReconciliationScheduler repeats the cycle on a fixed interval with the long
steady-state TTL until stopped. cleanup_now() runs the same cycle once with
the short forced TTL so finished Jobs disappear promptly.

Failure model is best effort: a failed List skips the cycle (the next
interval is the retry), a failed patch is logged and the batch continues.
Nothing short of stop() ends the loop.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .errors import ClusterUnavailableError
from .job_filter import JobNameFilter
from .ttl_patcher import TTLPatcher
from ..schemas import CycleReport, CycleTrigger, ManagedJob, PatchOutcome

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Scheduler lifecycle states"""
    IDLE = "idle"
    RUNNING = "running"


class Reconciler:
    """Runs one List -> Filter -> Patch cycle."""

    def __init__(
        self,
        k8s,
        job_filter: JobNameFilter,
        patcher: Optional[TTLPatcher] = None,
        max_concurrent_patches: int = 10
    ):
        self.k8s = k8s
        self.job_filter = job_filter
        self.patcher = patcher or TTLPatcher(k8s)
        self._semaphore = asyncio.Semaphore(max_concurrent_patches)

    async def list_matching(self) -> List[ManagedJob]:
        """Snapshot and filter. Raises ClusterUnavailableError if the List fails."""
        jobs = await self.k8s.list_jobs()
        return [job for job in jobs if self.job_filter.matches(job)]

    async def run_cycle(
        self,
        ttl_seconds: int,
        narrow_only: bool = True,
        trigger: CycleTrigger = CycleTrigger.SCHEDULED
    ) -> CycleReport:
        """
        Run one reconciliation cycle.

        Args:
            ttl_seconds: Value to set on every matching Job
            narrow_only: Never raise a Job's existing TTL (steady state)
            trigger: What started the cycle (for the report)

        Returns:
            CycleReport (never raises for cluster or patch failures)
        """
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be a non-negative integer, got {ttl_seconds!r}")

        report = CycleReport(trigger=trigger, ttl_seconds=ttl_seconds)

        try:
            jobs = await self.k8s.list_jobs()
        except ClusterUnavailableError as e:
            logger.warning(f"[REAPER] Skipping {trigger.value} cycle, cannot list jobs: {e}")
            report.error = str(e)
            report.finish()
            return report
        except Exception as e:
            logger.error(
                f"[REAPER] Skipping {trigger.value} cycle, unexpected error listing jobs: {e}",
                exc_info=True
            )
            report.error = f"Unexpected error listing jobs: {e}"
            report.finish()
            return report

        # Full snapshot first, then act
        matched = [job for job in jobs if self.job_filter.matches(job)]
        report.listed = len(jobs)
        report.matched = len(matched)

        if matched:
            results = await asyncio.gather(
                *(self._patch_one(job, ttl_seconds, narrow_only) for job in matched)
            )
            for job, (outcome, message) in zip(matched, results):
                report.record(job, outcome, message)

        report.finish()

        patched = report.count(PatchOutcome.PATCHED)
        failed = report.count(PatchOutcome.FAILED)
        if patched or failed:
            logger.info(
                f"[REAPER] {trigger.value} cycle: {report.matched}/{report.listed} jobs matched, "
                f"{patched} patched, {failed} failed (ttl={ttl_seconds}s)"
            )
        else:
            logger.debug(
                f"[REAPER] {trigger.value} cycle: {report.matched}/{report.listed} jobs matched, nothing to patch"
            )
        return report

    async def _patch_one(self, job: ManagedJob, ttl_seconds: int, narrow_only: bool):
        async with self._semaphore:
            try:
                return await self.patcher.patch(job, ttl_seconds, narrow_only=narrow_only), ""
            except Exception as e:
                # One bad Job must never abort the batch
                logger.error(f"[REAPER] Unexpected error patching {job.key}: {e}", exc_info=True)
                return PatchOutcome.FAILED, str(e)


class ReconciliationScheduler:
    """
    Runs the reconciliation cycle forever on a fixed interval.

    IDLE -> RUNNING on start(); RUNNING -> IDLE only on stop(). The stop signal
    is checked before each cycle and after each suspend, and an in-flight cycle
    always runs to completion. The sleep callable is injectable so tests can
    drive the loop without real waiting.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        ttl_seconds: int = 600,
        interval_seconds: float = 300,
        forced_ttl_seconds: int = 1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.reconciler = reconciler
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self.forced_ttl_seconds = forced_ttl_seconds
        self._sleep = sleep

        self.state = SchedulerState.IDLE
        self.cycles_run = 0
        self.last_report: Optional[CycleReport] = None
        self.last_manual_report: Optional[CycleReport] = None

        # Steady and forced cycles never interleave their patches
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    def start(self) -> asyncio.Task:
        """Start the loop as a background task (must be called from a running event loop)."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def run_forever(self) -> None:
        """Run cycles until stop() is called."""
        if self.running:
            raise RuntimeError("Scheduler is already running")

        self.state = SchedulerState.RUNNING
        logger.info(
            f"[REAPER] Scheduler started - prefix={self.reconciler.job_filter.prefix!r}, "
            f"ttl={self.ttl_seconds}s, interval={self.interval_seconds}s"
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.run_once()
                except Exception as e:
                    logger.error(f"[REAPER] Reconciliation cycle failed: {e}", exc_info=True)

                await self._suspend()
        finally:
            self.state = SchedulerState.IDLE
            self._stop_event.clear()
            logger.info(f"[REAPER] Scheduler stopped after {self.cycles_run} cycles")

    async def run_once(self) -> CycleReport:
        """Run one steady-state cycle and remember its report."""
        async with self._cycle_lock:
            report = await self.reconciler.run_cycle(
                self.ttl_seconds,
                narrow_only=True,
                trigger=CycleTrigger.SCHEDULED
            )
        self.cycles_run += 1
        self.last_report = report
        return report

    async def cleanup_now(self, ttl_seconds: Optional[int] = None) -> CycleReport:
        """
        Force prompt deletion of matching Jobs.

        Runs the same cycle once with the forced TTL and always applies it,
        overriding longer steady-state values. Waits for an in-flight
        scheduled cycle to finish first. Does not touch the periodic schedule.
        """
        ttl = self.forced_ttl_seconds if ttl_seconds is None else ttl_seconds
        logger.info(f"[REAPER] Forcing cleanup of {self.reconciler.job_filter.prefix}* with ttl={ttl}s")
        async with self._cycle_lock:
            report = await self.reconciler.run_cycle(ttl, narrow_only=False, trigger=CycleTrigger.MANUAL)
        self.last_manual_report = report
        return report

    def request_stop(self) -> None:
        """Ask the loop to stop after the in-flight cycle (safe from signal handlers)."""
        self._stop_event.set()

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the in-flight cycle to finish."""
        if not self.running and self._task is None:
            return
        self.request_stop()
        if self._task is not None:
            await self._task
            self._task = None

    async def _suspend(self) -> None:
        """Wait one interval, waking early only if stop is requested."""
        if self._stop_event.is_set():
            return

        sleeper = asyncio.ensure_future(self._sleep(self.interval_seconds))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, stopper):
                if not pending.done():
                    pending.cancel()


def build_scheduler(settings=None, k8s=None) -> ReconciliationScheduler:
    """Wire a scheduler from settings. Prefix validation errors surface here, at startup."""
    if settings is None:
        from ..config import get_settings
        settings = get_settings()
    if k8s is None:
        from .kubernetes import get_k8s_client
        k8s = get_k8s_client()

    reconciler = Reconciler(
        k8s,
        JobNameFilter(settings.job_name_prefix),
        max_concurrent_patches=settings.max_concurrent_patches
    )
    return ReconciliationScheduler(
        reconciler,
        ttl_seconds=settings.ttl_seconds,
        interval_seconds=settings.interval_seconds,
        forced_ttl_seconds=settings.forced_ttl_seconds
    )


# Global scheduler instance
_scheduler: Optional[ReconciliationScheduler] = None


def get_scheduler() -> ReconciliationScheduler:
    """Get the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler()
    return _scheduler
