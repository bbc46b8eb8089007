from pydantic import field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

from .services.job_filter import validate_prefix


class Settings(BaseSettings):
    # ==========================================================================
    # TTL Policy
    # ==========================================================================
    # Two-tier policy for leftover scan Jobs:
    # - Steady state: every cycle narrows ttlSecondsAfterFinished to this value
    # - On demand ("cleanup now"): forced value, near-zero for prompt deletion
    ttl_seconds: int = 600  # 10 minutes
    forced_ttl_seconds: int = 1

    # How often the reconciliation cycle runs (default: every 5 minutes)
    interval_seconds: float = 300

    # Jobs whose name starts with this prefix are managed by the reaper
    job_name_prefix: str = "trendmicro-scan-job-"

    # Upper bound on in-flight patch calls within one cycle
    max_concurrent_patches: int = 10

    # ==========================================================================
    # Enforcer Deployment
    # ==========================================================================
    # Namespace the enforcer ServiceAccount/Deployment live in (works cluster-wide)
    namespace: str = "trendmicro-system"
    enforcer_name: str = "scanjob-ttl-enforcer"
    enforcer_image: str = "ghcr.io/homelab/scanjob-reaper:latest"
    enforcer_image_pull_policy: str = "IfNotPresent"

    # Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = "INFO"

    @field_validator('ttl_seconds', 'forced_ttl_seconds')
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if v < 0:
            raise ValueError('TTL must be zero or greater')
        return v

    @field_validator('interval_seconds')
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError('Interval must be greater than zero')
        return v

    @field_validator('max_concurrent_patches')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError('At least one concurrent patch is required')
        return v

    @field_validator('job_name_prefix')
    @classmethod
    def validate_job_name_prefix(cls, v: str) -> str:
        return validate_prefix(v)

    class Config:
        # Environment variables: REAPER_TTL_SECONDS, REAPER_JOB_NAME_PREFIX, ...
        env_prefix = "REAPER_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields from .env file
        case_sensitive = False


@lru_cache()
def get_settings():
    return Settings()
