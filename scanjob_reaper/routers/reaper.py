"""
Reaper API
Endpoints for inspecting the reconciliation loop and forcing a cleanup.
"""
from fastapi import APIRouter, HTTPException, Query
from typing import Optional

from ..config import get_settings
from ..services.errors import ClusterUnavailableError
from ..services.reconciler import get_scheduler

router = APIRouter(prefix="/api/reaper", tags=["reaper"])


@router.get("/status")
async def get_reaper_status():
    """Scheduler state, active policy and the most recent cycle reports"""
    settings = get_settings()
    scheduler = get_scheduler()

    return {
        "state": scheduler.state.value,
        "cycles_run": scheduler.cycles_run,
        "policy": {
            "job_name_prefix": scheduler.reconciler.job_filter.prefix,
            "ttl_seconds": scheduler.ttl_seconds,
            "forced_ttl_seconds": scheduler.forced_ttl_seconds,
            "interval_seconds": scheduler.interval_seconds,
            "max_concurrent_patches": settings.max_concurrent_patches,
        },
        "last_report": scheduler.last_report.to_dict() if scheduler.last_report else None,
        "last_manual_report": scheduler.last_manual_report.to_dict() if scheduler.last_manual_report else None,
    }


@router.get("/jobs")
async def list_managed_jobs():
    """List Jobs currently matched by the name prefix"""
    scheduler = get_scheduler()

    try:
        jobs = await scheduler.reconciler.list_matching()
    except ClusterUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    jobs.sort(key=lambda job: (job.namespace or "", job.name or ""))
    return [job.to_dict() for job in jobs]


@router.post("/cleanup")
async def force_cleanup(
    ttl_seconds: Optional[int] = Query(None, ge=0, description="TTL to force (defaults to the forced TTL)")
):
    """Set a short TTL on every matched Job now so the platform deletes them promptly"""
    scheduler = get_scheduler()
    report = await scheduler.cleanup_now(ttl_seconds)

    if report.skipped_cycle:
        raise HTTPException(status_code=503, detail=report.error)

    return report.to_dict()
