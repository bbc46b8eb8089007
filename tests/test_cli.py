"""
Tests for the scanjob-reaper command line.
"""

import pytest
import yaml
from unittest.mock import patch

from scanjob_reaper import cli
from scanjob_reaper.services.errors import ClusterUnavailableError
from scanjob_reaper.services.reconciler import build_scheduler

from conftest import FakeJobStore, make_job


@pytest.fixture
def store():
    return FakeJobStore([make_job("scanjob-1", ttl=600), make_job("other-1")])


@pytest.fixture
def patched_scheduler(store):
    """Route build_scheduler to the in-memory store."""
    def fake_build(settings=None, k8s=None):
        return build_scheduler(settings, k8s=store)

    with patch("scanjob_reaper.services.reconciler.build_scheduler", side_effect=fake_build):
        yield


@pytest.mark.unit
class TestCLI:
    """Test sub-commands end to end against a fake cluster."""

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_cleanup_forces_ttl(self, patched_scheduler, store, capsys):
        assert cli.main(["cleanup"]) == 0

        assert store.patch_calls == [("a", "scanjob-1", 1)]
        assert "TTL set to 1s" in capsys.readouterr().out

    def test_cleanup_custom_ttl(self, patched_scheduler, store):
        assert cli.main(["cleanup", "--ttl", "30"]) == 0

        assert store.patch_calls == [("a", "scanjob-1", 30)]

    def test_cleanup_rejects_negative_ttl(self):
        with pytest.raises(SystemExit):
            cli.main(["cleanup", "--ttl", "-1"])

    def test_once_runs_steady_state_cycle(self, patched_scheduler, store, capsys):
        assert cli.main(["once"]) == 0

        # Already at 600s, nothing to patch
        assert store.patch_calls == []
        out = capsys.readouterr().out
        assert "Jobs matched: 1" in out
        assert "unchanged" in out

    def test_once_fails_when_cluster_unavailable(self, patched_scheduler, store, capsys):
        store.list_error = ClusterUnavailableError("Cannot reach Kubernetes API")

        assert cli.main(["once"]) == 1
        assert "Cycle skipped" in capsys.readouterr().out

    def test_status_lists_matched_jobs(self, patched_scheduler, capsys):
        assert cli.main(["status"]) == 0

        out = capsys.readouterr().out
        assert "scanjob-1" in out
        assert "other-1" not in out

    def test_status_cluster_unavailable(self, patched_scheduler, store, capsys):
        store.list_error = ClusterUnavailableError("Listing Jobs failed: 403 Forbidden", status=403)

        assert cli.main(["status"]) == 1
        assert "403" in capsys.readouterr().out

    def test_manifests_prints_yaml(self, capsys):
        assert cli.main(["manifests"]) == 0

        documents = list(yaml.safe_load_all(capsys.readouterr().out))
        assert [doc["kind"] for doc in documents] == [
            "ServiceAccount", "ClusterRole", "ClusterRoleBinding", "Deployment"
        ]

    def test_missing_kubernetes_config(self, capsys):
        with patch(
            "scanjob_reaper.services.reconciler.build_scheduler",
            side_effect=RuntimeError("Cannot load Kubernetes configuration"),
        ):
            assert cli.main(["status"]) == 1

        assert "Cannot load Kubernetes configuration" in capsys.readouterr().out
