"""
Unit tests for the enforcer manifests.

Tests the RBAC scope, ServiceAccount wiring, Deployment configuration and
install/remove ordering.
"""

import pytest
import yaml
from unittest.mock import AsyncMock, call

pytest.importorskip("kubernetes")

from kubernetes import client

from scanjob_reaper.services.kubernetes.manifests import (
    build_enforcer_manifests,
    create_cluster_role,
    create_cluster_role_binding,
    create_enforcer_deployment,
    create_service_account,
    install_enforcer,
    remove_enforcer,
    render_enforcer_yaml,
)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestEnforcerManifests:
    """Test manifest contents."""

    def test_cluster_role_scoped_to_jobs(self, settings):
        role = create_cluster_role(settings)

        assert isinstance(role, client.V1ClusterRole)
        assert role.metadata.name == "scanjob-ttl-enforcer"
        assert len(role.rules) == 1
        rule = role.rules[0]
        assert rule.api_groups == ["batch"]
        assert rule.resources == ["jobs"]
        assert set(rule.verbs) == {"get", "list", "watch", "patch", "update"}
        assert "delete" not in rule.verbs

    def test_binding_targets_service_account(self, settings):
        binding = create_cluster_role_binding(settings)

        assert binding.role_ref.kind == "ClusterRole"
        assert binding.role_ref.name == settings.enforcer_name
        subject = binding.subjects[0]
        assert subject.kind == "ServiceAccount"
        assert subject.name == settings.enforcer_name
        assert subject.namespace == settings.namespace

    def test_service_account_namespace(self, settings):
        service_account = create_service_account(settings)

        assert service_account.metadata.namespace == "trendmicro-system"

    def test_deployment_passes_policy_through_env(self, settings):
        deployment = create_enforcer_deployment(settings)
        pod_spec = deployment.spec.template.spec
        container = pod_spec.containers[0]
        env = {var.name: var.value for var in container.env}

        assert deployment.spec.replicas == 1
        assert pod_spec.service_account_name == settings.enforcer_name
        assert env["REAPER_TTL_SECONDS"] == "600"
        assert env["REAPER_FORCED_TTL_SECONDS"] == "1"
        assert env["REAPER_JOB_NAME_PREFIX"] == "scanjob-"
        assert container.command[:2] == ["scanjob-reaper", "serve"]
        assert container.liveness_probe.http_get.path == "/health"

    def test_selector_matches_template_labels(self, settings):
        deployment = create_enforcer_deployment(settings)

        selector = deployment.spec.selector.match_labels
        labels = deployment.spec.template.metadata.labels
        assert all(labels[key] == value for key, value in selector.items())

    def test_render_yaml(self, settings):
        documents = list(yaml.safe_load_all(render_enforcer_yaml(settings)))

        assert [doc["kind"] for doc in documents] == [
            "ServiceAccount", "ClusterRole", "ClusterRoleBinding", "Deployment"
        ]
        assert documents[1]["rules"][0]["resources"] == ["jobs"]
        assert documents[3]["spec"]["template"]["spec"]["serviceAccountName"] == "scanjob-ttl-enforcer"

    def test_build_order(self, settings):
        kinds = [type(obj).__name__ for obj in build_enforcer_manifests(settings)]

        assert kinds == ["V1ServiceAccount", "V1ClusterRole", "V1ClusterRoleBinding", "V1Deployment"]


@pytest.mark.unit
@pytest.mark.kubernetes
class TestInstallRemove:
    """Test install/remove sequencing."""

    @pytest.mark.asyncio
    async def test_install_applies_everything(self, settings):
        k8s = AsyncMock()

        await install_enforcer(k8s, settings)

        k8s.create_namespace_if_not_exists.assert_awaited_once_with("trendmicro-system")
        assert k8s.apply_service_account.await_args.args[1] == "trendmicro-system"
        assert k8s.apply_cluster_role.await_count == 1
        assert k8s.apply_cluster_role_binding.await_count == 1
        assert k8s.apply_deployment.await_args.args[0].metadata.name == "scanjob-ttl-enforcer"

    @pytest.mark.asyncio
    async def test_remove_counts_deleted(self, settings):
        k8s = AsyncMock()
        k8s.delete_deployment.return_value = True
        k8s.delete_cluster_role_binding.return_value = True
        k8s.delete_cluster_role.return_value = False
        k8s.delete_service_account.return_value = True

        deleted = await remove_enforcer(k8s, settings)

        assert deleted == 3
        k8s.delete_deployment.assert_awaited_once_with("scanjob-ttl-enforcer", "trendmicro-system")
        k8s.delete_cluster_role.assert_awaited_once_with("scanjob-ttl-enforcer")
        k8s.delete_service_account.assert_has_awaits([call("scanjob-ttl-enforcer", "trendmicro-system")])
