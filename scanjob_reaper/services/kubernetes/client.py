"""
Kubernetes Client for the Scan-Job Reaper

Thin async wrapper over the typed Kubernetes API. Blocking client calls run in
worker threads via asyncio.to_thread so the reconciliation loop and the HTTP
server share one event loop.

Read path: cluster-wide Job listing (List step of the reconciliation cycle).
Write path: merge-patch of spec.ttlSecondsAfterFinished (Patch step), plus
create/delete of the enforcer's own RBAC and Deployment.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError
import logging
import asyncio
from typing import List, Optional

from ..errors import ClusterUnavailableError
from ...schemas import ManagedJob

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"

# Page size for a single List call; each call still walks every page
LIST_PAGE_SIZE = 500


class KubernetesClient:
    """
    Manages the Kubernetes API calls the reaper needs.

    Jobs are only ever listed and patched here. Deletion of Jobs is left to the
    platform's TTL-after-finished controller.
    """

    def __init__(self):
        """Initialize Kubernetes client with in-cluster or kubeconfig."""
        try:
            # Try in-cluster config first (enforcer Deployment)
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes configuration")
        except config.ConfigException:
            try:
                # Fall back to kubeconfig (running from a workstation)
                config.load_kube_config()
                logger.info("Loaded kubeconfig")
            except config.ConfigException as e:
                logger.error(f"Failed to load Kubernetes config: {e}")
                raise RuntimeError("Cannot load Kubernetes configuration") from e

        # Initialize API clients
        self.batch_v1 = client.BatchV1Api()
        self.core_v1 = client.CoreV1Api()
        self.apps_v1 = client.AppsV1Api()
        self.rbac_v1 = client.RbacAuthorizationV1Api()

    # =========================================================================
    # JOBS
    # =========================================================================

    async def list_jobs(self) -> List[ManagedJob]:
        """
        Take a fresh snapshot of every Job in every namespace.

        Returns:
            ManagedJob per Job, in no particular order (empty list when there are none)

        Raises:
            ClusterUnavailableError: the API could not be reached or refused the request
        """
        jobs: List[ManagedJob] = []
        continue_token: Optional[str] = None

        try:
            while True:
                kwargs = {"limit": LIST_PAGE_SIZE}
                if continue_token:
                    kwargs["_continue"] = continue_token

                page = await asyncio.to_thread(
                    self.batch_v1.list_job_for_all_namespaces,
                    **kwargs
                )
                jobs.extend(ManagedJob.from_v1_job(item) for item in (page.items or []))

                continue_token = getattr(page.metadata, "_continue", None) if page.metadata else None
                if not continue_token:
                    break
        except ApiException as e:
            raise ClusterUnavailableError(
                f"Listing Jobs failed: {e.status} {e.reason}", status=e.status
            ) from e
        except (TransportError, OSError) as e:
            raise ClusterUnavailableError(f"Cannot reach Kubernetes API: {e}") from e

        logger.debug(f"[K8S] Listed {len(jobs)} jobs across all namespaces")
        return jobs

    async def patch_job_ttl(
        self,
        namespace: str,
        name: str,
        ttl_seconds: int,
        resource_version: Optional[str] = None
    ) -> None:
        """
        Set spec.ttlSecondsAfterFinished on one Job with a JSON merge patch.

        Only the TTL field is sent, so no other field of the Job is touched.
        With resource_version the API server rejects the patch with 409 if the
        Job changed since it was read. ApiException propagates to the caller
        (404 and 409 included).
        """
        body = {"spec": {"ttlSecondsAfterFinished": ttl_seconds}}
        if resource_version:
            body["metadata"] = {"resourceVersion": resource_version}
        await asyncio.to_thread(
            self.batch_v1.patch_namespaced_job,
            name=name,
            namespace=namespace,
            body=body,
            _content_type=MERGE_PATCH
        )
        logger.debug(f"[K8S] Patched job {namespace}/{name} ttlSecondsAfterFinished={ttl_seconds}")

    # =========================================================================
    # ENFORCER RESOURCES
    # =========================================================================

    async def create_namespace_if_not_exists(self, namespace: str) -> None:
        """Create a Kubernetes namespace if it doesn't exist."""
        try:
            await asyncio.to_thread(
                self.core_v1.read_namespace,
                name=namespace
            )
            logger.debug(f"[K8S] Namespace {namespace} already exists")
        except ApiException as e:
            if e.status == 404:
                await asyncio.to_thread(
                    self.core_v1.create_namespace,
                    body=client.V1Namespace(metadata=client.V1ObjectMeta(name=namespace))
                )
                logger.info(f"[K8S] ✅ Created namespace: {namespace}")
            else:
                raise

    async def apply_service_account(self, service_account: client.V1ServiceAccount, namespace: str) -> None:
        """Create or update a ServiceAccount."""
        await self._create_or_patch(
            "ServiceAccount",
            service_account.metadata.name,
            lambda: self.core_v1.create_namespaced_service_account(namespace=namespace, body=service_account),
            lambda: self.core_v1.patch_namespaced_service_account(
                name=service_account.metadata.name, namespace=namespace, body=service_account
            ),
        )

    async def apply_cluster_role(self, role: client.V1ClusterRole) -> None:
        """Create or update a ClusterRole."""
        await self._create_or_patch(
            "ClusterRole",
            role.metadata.name,
            lambda: self.rbac_v1.create_cluster_role(body=role),
            lambda: self.rbac_v1.patch_cluster_role(name=role.metadata.name, body=role),
        )

    async def apply_cluster_role_binding(self, binding: client.V1ClusterRoleBinding) -> None:
        """Create or update a ClusterRoleBinding."""
        await self._create_or_patch(
            "ClusterRoleBinding",
            binding.metadata.name,
            lambda: self.rbac_v1.create_cluster_role_binding(body=binding),
            lambda: self.rbac_v1.patch_cluster_role_binding(name=binding.metadata.name, body=binding),
        )

    async def apply_deployment(self, deployment: client.V1Deployment, namespace: str) -> None:
        """Create or update a Deployment."""
        await self._create_or_patch(
            "Deployment",
            deployment.metadata.name,
            lambda: self.apps_v1.create_namespaced_deployment(namespace=namespace, body=deployment),
            lambda: self.apps_v1.patch_namespaced_deployment(
                name=deployment.metadata.name, namespace=namespace, body=deployment
            ),
        )

    async def delete_deployment(self, name: str, namespace: str) -> bool:
        """Delete a Deployment. Returns False if it was already gone."""
        return await self._delete("Deployment", name, lambda: self.apps_v1.delete_namespaced_deployment(
            name=name, namespace=namespace
        ))

    async def delete_cluster_role_binding(self, name: str) -> bool:
        """Delete a ClusterRoleBinding. Returns False if it was already gone."""
        return await self._delete("ClusterRoleBinding", name, lambda: self.rbac_v1.delete_cluster_role_binding(
            name=name
        ))

    async def delete_cluster_role(self, name: str) -> bool:
        """Delete a ClusterRole. Returns False if it was already gone."""
        return await self._delete("ClusterRole", name, lambda: self.rbac_v1.delete_cluster_role(name=name))

    async def delete_service_account(self, name: str, namespace: str) -> bool:
        """Delete a ServiceAccount. Returns False if it was already gone."""
        return await self._delete("ServiceAccount", name, lambda: self.core_v1.delete_namespaced_service_account(
            name=name, namespace=namespace
        ))

    async def _create_or_patch(self, kind: str, name: str, create, patch) -> None:
        try:
            await asyncio.to_thread(create)
            logger.info(f"[K8S] ✅ Created {kind}: {name}")
        except ApiException as e:
            if e.status == 409:
                logger.info(f"[K8S] {kind} {name} exists, updating...")
                await asyncio.to_thread(patch)
                logger.info(f"[K8S] ✅ Updated {kind}: {name}")
            else:
                raise

    async def _delete(self, kind: str, name: str, delete) -> bool:
        try:
            await asyncio.to_thread(delete)
            logger.info(f"[K8S] Deleted {kind}: {name}")
            return True
        except ApiException as e:
            if e.status != 404:
                raise
            logger.debug(f"[K8S] {kind} {name} not found, nothing to delete")
            return False


# Global instance - lazily initialized
_k8s_client_instance: Optional[KubernetesClient] = None


def get_k8s_client() -> KubernetesClient:
    """Get or create the global Kubernetes client instance."""
    global _k8s_client_instance
    if _k8s_client_instance is None:
        _k8s_client_instance = KubernetesClient()
    return _k8s_client_instance
