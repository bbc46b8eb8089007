"""
Test configuration and fixtures for pytest.

Provides fake Kubernetes clients and Job factories so the reconciliation loop
can be exercised without a cluster.
"""

import os
from dataclasses import replace
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from kubernetes import client
from kubernetes.client.rest import ApiException

from scanjob_reaper.schemas import ManagedJob


def pytest_configure(config):
    """
    Pytest hook called before test collection.
    Sets up test environment variables and registers custom markers.
    """
    # Set test environment variables BEFORE any settings are built
    os.environ["REAPER_JOB_NAME_PREFIX"] = "scanjob-"
    os.environ["REAPER_TTL_SECONDS"] = "600"
    os.environ["REAPER_FORCED_TTL_SECONDS"] = "1"
    os.environ["REAPER_INTERVAL_SECONDS"] = "300"
    os.environ["REAPER_LOG_LEVEL"] = "DEBUG"

    from scanjob_reaper.config import get_settings
    get_settings.cache_clear()

    # Register custom markers
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "kubernetes: mark test as touching the Kubernetes client layer")


def make_job(name, namespace="a", ttl=None, completed=True, resource_version=None) -> ManagedJob:
    """Build a ManagedJob the way the lister would."""
    return ManagedJob(
        namespace=namespace,
        name=name,
        completion_time=datetime(2026, 1, 1, tzinfo=timezone.utc) if completed else None,
        ttl_seconds_after_finished=ttl,
        resource_version=resource_version,
    )


def make_v1_job(name, namespace="a", ttl=None, completed=True, resource_version="1") -> client.V1Job:
    """Build a kubernetes V1Job as returned by list_job_for_all_namespaces."""
    return client.V1Job(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, resource_version=resource_version),
        spec=client.V1JobSpec(
            template=client.V1PodTemplateSpec(),
            ttl_seconds_after_finished=ttl
        ),
        status=client.V1JobStatus(
            completion_time=datetime(2026, 1, 1, tzinfo=timezone.utc) if completed else None
        )
    )


def make_job_page(jobs, continue_token=None):
    """A V1JobList-shaped page."""
    return SimpleNamespace(
        items=jobs,
        metadata=SimpleNamespace(_continue=continue_token)
    )


class FakeJobStore:
    """
    In-memory stand-in for KubernetesClient.

    Applies merge patches to its own Jobs so tests can observe state, and
    records every patch call. Each applied patch bumps the Job's resource
    version, and a patch carrying a stale version is rejected with 409 like
    the API server does.
    """

    def __init__(self, jobs=None):
        self.jobs = {job.key: job for job in (jobs or [])}
        self.patch_calls = []
        self.list_calls = 0
        self.list_error = None
        self.patch_errors = {}

    async def list_jobs(self):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.jobs.values())

    async def patch_job_ttl(self, namespace, name, ttl_seconds, resource_version=None):
        key = f"{namespace}/{name}"
        self.patch_calls.append((namespace, name, ttl_seconds))
        if key in self.patch_errors:
            raise self.patch_errors[key]
        if key not in self.jobs:
            raise ApiException(status=404, reason="Not Found")
        job = self.jobs[key]
        if resource_version is not None and resource_version != job.resource_version:
            raise ApiException(status=409, reason="Conflict")
        self.jobs[key] = replace(
            job,
            ttl_seconds_after_finished=ttl_seconds,
            resource_version=str(int(job.resource_version or 0) + 1),
        )


@pytest.fixture
def job_store():
    """Empty fake cluster; tests add Jobs as needed."""
    return FakeJobStore()


@pytest.fixture
def mock_k8s():
    """Bare AsyncMock Kubernetes client for call-shape assertions."""
    k8s = AsyncMock()
    k8s.list_jobs = AsyncMock(return_value=[])
    k8s.patch_job_ttl = AsyncMock(return_value=None)
    return k8s


@pytest.fixture
def settings():
    """Fresh settings built from the test environment."""
    from scanjob_reaper.config import Settings
    return Settings()
