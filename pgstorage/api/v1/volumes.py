"""
Volume provisioning API endpoints.

URL Pattern: /api/v1/namespaces/{namespace}
"""
from typing import Optional

from fastapi import APIRouter, Depends, Path, Response, status
from pydantic import BaseModel, Field

from pgstorage.config.logging import get_logger
from pgstorage.config.settings import settings
from pgstorage.exceptions import ValidationError
from pgstorage.models.storage import PgCluster, StorageSpec
from pgstorage.services.kube_client import KubeClient, get_kube_client
from pgstorage.services.pvc_service import (
    ClusterVolumeOrchestrator,
    VolumeClaimGate,
    VolumeProvisioner,
    stream_manifest_sink,
)
from pgstorage.utils.naming import validate_claim_name

router = APIRouter()
logger = get_logger(__name__)


class ProvisionVolumesRequest(BaseModel):
    """Request model for provisioning the volumes of a cluster."""

    cluster: PgCluster = Field(..., description="Cluster storage specification")
    claim_name_prefix: Optional[str] = Field(
        default=None, description="Prefix for claim names (default: cluster name)"
    )
    data_storage: Optional[StorageSpec] = Field(
        default=None, description="Storage for the data volume (default: cluster primary storage)"
    )


def get_provisioner(kube: KubeClient = Depends(get_kube_client)) -> VolumeProvisioner:
    """Provisioner wired with the manifest echo when enabled."""
    sink = stream_manifest_sink() if settings.echo_manifests else None
    return VolumeProvisioner(kube, manifest_sink=sink)


def get_claim_gate(kube: KubeClient = Depends(get_kube_client)) -> VolumeClaimGate:
    return VolumeClaimGate(kube)


@router.post("/clusters/{cluster_name}/volumes", status_code=status.HTTP_200_OK)
def provision_cluster_volumes(
    provision_request: ProvisionVolumesRequest,
    namespace: str = Path(..., description="Kubernetes namespace"),
    cluster_name: str = Path(..., description="Cluster name"),
    provisioner: VolumeProvisioner = Depends(get_provisioner),
):
    """
    Provision the data, WAL and tablespace volumes of a cluster.

    Volumes are handled one at a time. If one fails, the error response
    carries the partial result in details.volumes; volumes created before
    the failure are kept.
    """
    cluster = provision_request.cluster
    if cluster.name != cluster_name:
        raise ValidationError(
            "Cluster name in body does not match path",
            details={"path": cluster_name, "body": cluster.name},
        )

    prefix = provision_request.claim_name_prefix or cluster.name
    if not validate_claim_name(prefix):
        raise ValidationError(
            f"Invalid claim name prefix '{prefix}'",
            details={"claim_name_prefix": prefix},
        )

    data_spec = provision_request.data_storage or cluster.primary_storage

    logger.info(
        "provisioning_cluster_volumes",
        cluster=cluster.name,
        namespace=namespace,
        claim_name_prefix=prefix,
        tablespaces=len(cluster.tablespace_mounts),
    )

    volumes = ClusterVolumeOrchestrator(provisioner).provision(cluster, namespace, prefix, data_spec)
    if volumes.error is not None:
        error = volumes.error
        error.details = {
            **error.details,
            "failed_volume": volumes.failed_volume,
            "volumes": volumes.model_dump(mode="json"),
        }
        raise error

    return {
        "cluster": cluster.name,
        "namespace": namespace,
        "volumes": volumes.model_dump(mode="json"),
    }


@router.get("/volumeclaims/{name}")
def get_volume_claim(
    namespace: str = Path(..., description="Kubernetes namespace"),
    name: str = Path(..., description="Claim name"),
    gate: VolumeClaimGate = Depends(get_claim_gate),
):
    """Report whether a claim exists."""
    return {"name": name, "namespace": namespace, "exists": gate.exists(name, namespace)}


@router.delete("/volumeclaims/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_volume_claim(
    namespace: str = Path(..., description="Kubernetes namespace"),
    name: str = Path(..., description="Claim name"),
    gate: VolumeClaimGate = Depends(get_claim_gate),
):
    """
    Delete a claim if it exists and is labelled for removal.

    A claim without the removal label is left in place; the response is the
    same 204 either way.
    """
    gate.delete_if_exists(name, namespace)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
