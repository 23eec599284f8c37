"""
PVC Service - provisioning of PersistentVolumeClaims for PostgreSQL clusters.

Turns the storage specifications of a cluster into claims:
- the primary data volume
- the write-ahead log volume
- one volume per tablespace

Claims are built as typed kubernetes objects and only serialized by the API
client. Creation is idempotent: a claim that already exists counts as created.
"""
import json
import sys
from typing import Callable, Dict, Optional, TextIO, Tuple

from kubernetes import client
from pydantic import BaseModel, ConfigDict, Field

from pgstorage.config.logging import get_logger
from pgstorage.config.settings import settings
from pgstorage.exceptions import AlreadyExistsError, MalformedSelectorError, StorageError
from pgstorage.models.storage import (
    ClusterVolumeSet,
    PgCluster,
    StorageSpec,
    StorageType,
    VolumeResult,
)
from pgstorage.services.kube_client import KubeClient, to_manifest
from pgstorage.utils.naming import tablespace_claim_name, wal_claim_name

logger = get_logger(__name__)

# Receives every claim manifest right before it is submitted
ManifestSink = Callable[[client.V1PersistentVolumeClaim], None]


def stream_manifest_sink(stream: Optional[TextIO] = None) -> ManifestSink:
    """
    Build a sink that writes claim manifests as indented JSON.

    Args:
        stream: Output stream (default: sys.stdout at call time)
    """
    def sink(pvc: client.V1PersistentVolumeClaim) -> None:
        out = stream or sys.stdout
        out.write(json.dumps(to_manifest(pvc), indent=2) + "\n")

    return sink


def parse_match_labels(raw: str) -> Optional[Tuple[str, str]]:
    """
    Split a "key=value" selector.

    Returns:
        (key, value), or None when raw is empty

    Raises:
        MalformedSelectorError: Unless raw holds exactly one '=' with text on both sides
    """
    if not raw:
        return None
    parts = raw.split("=")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        logger.error("match_labels_malformed", match_labels=raw)
        raise MalformedSelectorError(raw)
    return parts[0], parts[1]


def build_match_labels(key: str, value: str) -> client.V1LabelSelector:
    """Selector binding a claim to volumes labelled key=value."""
    if not key or not value:
        raise MalformedSelectorError(f"{key}={value}")
    return client.V1LabelSelector(match_labels={key: value})


class PvcTemplateFields(BaseModel):
    """Values a claim manifest is built from."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    access_mode: str
    cluster_name: str
    size: str
    storage_class: str = ""
    selector: Optional[client.V1LabelSelector] = None
    labels: Dict[str, str] = Field(default_factory=dict)


def build_pvc_manifest(fields: PvcTemplateFields, dynamic: bool) -> client.V1PersistentVolumeClaim:
    """
    Build a claim from template fields.

    Dynamic claims name a storage class and ignore the selector. Static claims
    carry the selector when one is given and leave the storage class unset.
    """
    spec = client.V1PersistentVolumeClaimSpec(
        access_modes=[fields.access_mode],
        resources=client.V1VolumeResourceRequirements(requests={"storage": fields.size}),
    )
    if dynamic:
        spec.storage_class_name = fields.storage_class
    elif fields.selector is not None:
        spec.selector = fields.selector

    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(name=fields.name, labels=dict(fields.labels)),
        spec=spec,
    )


class VolumeProvisioner:
    """Applies the create-if-needed policy to one logical volume."""

    def __init__(
        self,
        kube: KubeClient,
        manifest_sink: Optional[ManifestSink] = None,
        vendor: Optional[str] = None,
        cluster_label: Optional[str] = None,
    ):
        self.kube = kube
        self.manifest_sink = manifest_sink
        self.vendor = vendor or settings.pvc_vendor
        self.cluster_label = cluster_label or settings.pvc_cluster_label

    def describe(self, spec: StorageSpec, claim_name: str) -> VolumeResult:
        """Result for spec without touching the API."""
        if spec.storage_type == StorageType.EXISTING:
            name = spec.name
        elif spec.storage_type.creates_claim:
            name = claim_name
        else:
            name = ""
        return VolumeResult(claim_name=name, supplemental_groups=list(spec.supplemental_groups))

    def ensure(self, spec: StorageSpec, claim_name: str, cluster_name: str, namespace: str) -> VolumeResult:
        """
        Make sure the volume described by spec is available.

        emptydir and existing specs need no API call. create and dynamic specs
        create claim_name unless it already exists.

        Raises:
            MalformedSelectorError: If match_labels is not a single key=value pair
            OrchestrationError: If the API rejects the creation
        """
        result = self.describe(spec, claim_name)
        if not spec.storage_type.creates_claim:
            logger.debug(
                "pvc_create_not_required",
                storage_type=spec.storage_type.value,
                claim_name=result.claim_name,
            )
            return result

        try:
            self._create(spec, claim_name, cluster_name, namespace)
        except AlreadyExistsError:
            logger.info("pvc_already_exists", name=claim_name, namespace=namespace)
        return result

    def create_pvc(self, spec: StorageSpec, claim_name: str, cluster_name: str, namespace: str) -> str:
        """
        Create the claim for spec and return the name the volume is known by.

        Unlike ensure(), an existing claim is reported as AlreadyExistsError.
        """
        if spec.storage_type == StorageType.EXISTING:
            return spec.name
        if spec.storage_type.creates_claim:
            self._create(spec, claim_name, cluster_name, namespace)
        return claim_name

    def build_manifest(self, spec: StorageSpec, claim_name: str, cluster_name: str) -> client.V1PersistentVolumeClaim:
        """Claim manifest for a create or dynamic spec."""
        dynamic = spec.storage_type == StorageType.DYNAMIC
        selector = None
        if not dynamic:
            match = parse_match_labels(spec.match_labels)
            if match is not None:
                selector = build_match_labels(*match)

        fields = PvcTemplateFields(
            name=claim_name,
            access_mode=spec.access_mode,
            cluster_name=cluster_name,
            size=spec.size,
            storage_class=spec.storage_class,
            selector=selector,
            labels={"vendor": self.vendor, self.cluster_label: cluster_name},
        )
        return build_pvc_manifest(fields, dynamic=dynamic)

    def _create(self, spec: StorageSpec, claim_name: str, cluster_name: str, namespace: str) -> None:
        pvc = self.build_manifest(spec, claim_name, cluster_name)
        if self.manifest_sink is not None:
            self.manifest_sink(pvc)

        try:
            self.kube.create_pvc(namespace, pvc)
        except StorageError as e:
            if not isinstance(e, AlreadyExistsError):
                logger.error("pvc_create_failed", name=claim_name, namespace=namespace, error=e.message)
            raise
        logger.info(
            "pvc_created",
            name=claim_name,
            namespace=namespace,
            storage_type=spec.storage_type.value,
        )


class ClusterVolumeOrchestrator:
    """Provisions data, WAL and tablespace volumes of a cluster, in that order."""

    def __init__(self, provisioner: VolumeProvisioner):
        self.provisioner = provisioner

    def provision(
        self,
        cluster: PgCluster,
        namespace: str,
        claim_name_prefix: str,
        data_spec: StorageSpec,
    ) -> ClusterVolumeSet:
        """
        Provision every volume of the cluster.

        Steps run one at a time; tablespaces follow in name order. The first
        failure stops the sequence: the error is stored on the returned set
        as raised, steps after it keep empty results, and volumes created
        before it are left in place.
        """
        volumes = ClusterVolumeSet(
            tablespaces={name: VolumeResult() for name in cluster.tablespace_mounts}
        )
        log = logger.bind(cluster=cluster.name, namespace=namespace)

        steps = [
            ("data", data_spec, claim_name_prefix),
            ("wal", cluster.wal_storage, wal_claim_name(claim_name_prefix)),
        ]
        for tablespace in sorted(cluster.tablespace_mounts):
            steps.append((
                f"tablespace:{tablespace}",
                cluster.tablespace_mounts[tablespace],
                tablespace_claim_name(claim_name_prefix, tablespace),
            ))

        for volume, spec, claim_name in steps:
            try:
                result = self.provisioner.ensure(spec, claim_name, cluster.name, namespace)
            except StorageError as e:
                self._store(volumes, volume, self.provisioner.describe(spec, claim_name))
                volumes.error = e
                volumes.failed_volume = volume
                log.error(
                    "cluster_volume_provisioning_failed",
                    volume=volume,
                    claim_name=claim_name,
                    provisioned=volumes.provisioned,
                    error=e.message,
                )
                break
            self._store(volumes, volume, result)
            volumes.provisioned += 1

        if volumes.ok:
            log.info("cluster_volumes_provisioned", provisioned=volumes.provisioned)
        return volumes

    @staticmethod
    def _store(volumes: ClusterVolumeSet, volume: str, result: VolumeResult) -> None:
        if volume == "data":
            volumes.data = result
        elif volume == "wal":
            volumes.wal = result
        else:
            volumes.tablespaces[volume.split(":", 1)[1]] = result


class VolumeClaimGate:
    """Existence checks and label-gated deletion of claims."""

    def __init__(self, kube: KubeClient, remove_label: Optional[str] = None):
        self.kube = kube
        self.remove_label = remove_label or settings.pvc_remove_label

    def exists(self, name: str, namespace: str) -> bool:
        """True if the claim exists. Lookup failures count as absent."""
        try:
            return self.kube.get_pvc_if_exists(name, namespace) is not None
        except StorageError as e:
            logger.warning("pvc_lookup_failed", name=name, namespace=namespace, error=e.message)
            return False

    def delete_if_exists(self, name: str, namespace: str) -> None:
        """
        Delete the claim if it exists and carries the removal label set to "true".

        Raises:
            VolumeLookupError: If the claim cannot be read
            OrchestrationError: If the deletion is rejected
        """
        pvc = self.kube.get_pvc_if_exists(name, namespace)
        if pvc is None:
            logger.debug("pvc_not_found", name=name, namespace=namespace)
            return

        labels = (pvc.metadata.labels if pvc.metadata else None) or {}
        if labels.get(self.remove_label) != "true":
            logger.info(
                "pvc_delete_skipped_without_remove_label",
                name=name,
                namespace=namespace,
                label=self.remove_label,
            )
            return

        self.kube.delete_pvc(name, namespace)
        logger.info("pvc_deleted", name=name, namespace=namespace)
