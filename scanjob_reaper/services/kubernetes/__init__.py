"""
Kubernetes access for the reaper.

- KubernetesClient: List/Patch of Jobs and enforcer resource management
- Manifests: ServiceAccount, ClusterRole, ClusterRoleBinding and Deployment
  the enforcer runs under
"""

from .client import KubernetesClient, get_k8s_client
from .manifests import (
    build_enforcer_manifests,
    render_enforcer_yaml,
    install_enforcer,
    remove_enforcer,
)

__all__ = [
    "KubernetesClient",
    "get_k8s_client",
    "build_enforcer_manifests",
    "render_enforcer_yaml",
    "install_enforcer",
    "remove_enforcer",
]
