from .errors import ReaperError, ClusterUnavailableError, InvalidPrefixError
from .job_filter import JobNameFilter, validate_prefix
from .ttl_patcher import TTLPatcher
from .reconciler import (
    Reconciler,
    ReconciliationScheduler,
    SchedulerState,
    build_scheduler,
    get_scheduler,
)

__all__ = [
    "ReaperError",
    "ClusterUnavailableError",
    "InvalidPrefixError",
    "JobNameFilter",
    "validate_prefix",
    "TTLPatcher",
    "Reconciler",
    "ReconciliationScheduler",
    "SchedulerState",
    "build_scheduler",
    "get_scheduler",
]
