"""
Kubernetes client wrapper used by the storage services.

Classifies API failures into the provisioner's exception types so callers
never have to inspect raw ApiException status codes.
"""
import functools
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from urllib3.exceptions import HTTPError

from pgstorage.config.logging import get_logger
from pgstorage.config.settings import Settings, settings
from pgstorage.exceptions import AlreadyExistsError, OrchestrationError, VolumeLookupError

logger = get_logger(__name__)


def to_manifest(obj: Any) -> Dict[str, Any]:
    """Serialize a kubernetes model object into its JSON-ready manifest form."""
    return client.ApiClient().sanitize_for_serialization(obj)


class KubeClient:
    """Thin synchronous wrapper around CoreV1Api."""

    def __init__(self, core_api: client.CoreV1Api):
        self.core_api = core_api

    @classmethod
    def from_settings(cls, app_settings: Settings) -> "KubeClient":
        """
        Build a client from application settings.

        Uses the in-cluster service account when k8s_in_cluster is set,
        otherwise the configured kubeconfig path, otherwise the default
        kubeconfig lookup. The configuration is isolated, not global.
        """
        configuration = client.Configuration()
        if app_settings.k8s_in_cluster:
            config.load_incluster_config(client_configuration=configuration)
        elif app_settings.kubeconfig_path:
            config.load_kube_config(
                config_file=app_settings.kubeconfig_path,
                client_configuration=configuration,
            )
        else:
            config.load_kube_config(client_configuration=configuration)

        logger.info(
            "kubernetes_configuration_loaded",
            host=configuration.host,
            in_cluster=app_settings.k8s_in_cluster,
        )
        return cls(client.CoreV1Api(client.ApiClient(configuration=configuration)))

    def create_pvc(self, namespace: str, body: client.V1PersistentVolumeClaim) -> client.V1PersistentVolumeClaim:
        """
        Create a PersistentVolumeClaim.

        Raises:
            AlreadyExistsError: If a claim with the same name exists
            OrchestrationError: For any other API or connection failure
        """
        name = body.metadata.name
        try:
            return self.core_api.create_namespaced_persistent_volume_claim(
                namespace=namespace,
                body=body,
            )
        except ApiException as e:
            if e.status == 409:
                raise AlreadyExistsError("PersistentVolumeClaim", name, namespace)
            raise OrchestrationError(
                f"failed to create PVC {name} in namespace {namespace}: {e.reason}",
                api_status=e.status,
                reason=e.reason,
            )
        except HTTPError as e:
            raise OrchestrationError(
                f"failed to create PVC {name} in namespace {namespace}: {e}",
                api_status=None,
                reason=type(e).__name__,
            )

    def get_pvc_if_exists(self, name: str, namespace: str) -> Optional[client.V1PersistentVolumeClaim]:
        """
        Read a PersistentVolumeClaim, or None if it does not exist.

        Raises:
            VolumeLookupError: If the read fails for any reason other than not found,
                including an unreachable API server
        """
        try:
            return self.core_api.read_namespaced_persistent_volume_claim(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise VolumeLookupError(
                f"failed to read PVC {name} in namespace {namespace}: {e.reason}",
                api_status=e.status,
                reason=e.reason,
            )
        except HTTPError as e:
            raise VolumeLookupError(
                f"failed to read PVC {name} in namespace {namespace}: {e}",
                api_status=None,
                reason=type(e).__name__,
            )

    def delete_pvc(self, name: str, namespace: str) -> None:
        """
        Delete a PersistentVolumeClaim. A claim that is already gone is not an error.

        Raises:
            OrchestrationError: If the API rejects the deletion or cannot be reached
        """
        try:
            self.core_api.delete_namespaced_persistent_volume_claim(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug("pvc_already_deleted", name=name, namespace=namespace)
                return
            raise OrchestrationError(
                f"failed to delete PVC {name} in namespace {namespace}: {e.reason}",
                api_status=e.status,
                reason=e.reason,
            )
        except HTTPError as e:
            raise OrchestrationError(
                f"failed to delete PVC {name} in namespace {namespace}: {e}",
                api_status=None,
                reason=type(e).__name__,
            )

    def exec_in_pod(
        self, namespace: str, pod: str, container: str, command: List[str]
    ) -> Tuple[str, str, int]:
        """
        Run a command in a pod container and wait for it to finish.

        Returns:
            Tuple of (stdout, stderr, exit code)

        Raises:
            OrchestrationError: If the exec session cannot be opened
        """
        try:
            resp = stream(
                self.core_api.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                container=container,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
        except ApiException as e:
            raise OrchestrationError(
                f"failed to exec in pod {pod} in namespace {namespace}: {e.reason}",
                api_status=e.status,
                reason=e.reason,
            )

        resp.run_forever()
        stdout = resp.read_stdout() or ""
        stderr = resp.read_stderr() or ""
        returncode = resp.returncode
        resp.close()
        return stdout, stderr, returncode if returncode is not None else 0

    def ping(self) -> bool:
        """Check that the API server answers."""
        try:
            self.core_api.get_api_resources()
            return True
        except Exception as e:
            logger.warning("kubernetes_api_unreachable", error=str(e))
            return False


@functools.lru_cache(maxsize=1)
def get_kube_client() -> KubeClient:
    """Shared client built from the global settings on first use."""
    return KubeClient.from_settings(settings)
