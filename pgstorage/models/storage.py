"""
Pydantic models for cluster storage specifications and provisioning results.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class StorageType(str, Enum):
    """How a logical volume is backed."""

    EMPTY_DIR = "emptydir"  # no claim, pod-local scratch space
    EXISTING = "existing"  # bind to a claim that already exists, by name
    CREATE = "create"  # static claim, optionally bound through a label selector
    DYNAMIC = "dynamic"  # claim provisioned through a storage class

    @property
    def creates_claim(self) -> bool:
        return self in (StorageType.CREATE, StorageType.DYNAMIC)


class StorageSpec(BaseModel):
    """
    Desired storage for one logical volume.

    Accepts both snake_case names and the field names used by the Pgcluster
    custom resource (storagetype, accessmode, matchLabels, ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    storage_type: StorageType = Field(
        default=StorageType.EMPTY_DIR, alias="storagetype", description="Storage type"
    )
    name: str = Field(default="", description="Claim name, only used with storage type 'existing'")
    access_mode: str = Field(default="ReadWriteOnce", alias="accessmode", description="Claim access mode")
    size: str = Field(default="", description="Requested capacity (e.g. '1G')")
    storage_class: str = Field(default="", alias="storageclass", description="Storage class name")
    match_labels: str = Field(
        default="", alias="matchLabels", description="Single 'key=value' selector for static binding"
    )
    supplemental_groups: List[int] = Field(
        default_factory=list,
        alias="supplementalgroups",
        description="Supplemental group IDs required to access the volume",
    )

    @field_validator("storage_type", mode="before")
    @classmethod
    def normalize_storage_type(cls, v: Any) -> Any:
        """An unset storage type means emptydir."""
        if v is None or v == "":
            return StorageType.EMPTY_DIR
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("supplemental_groups", mode="before")
    @classmethod
    def parse_supplemental_groups(cls, v: Any) -> Any:
        """Accept the custom resource's comma separated form, e.g. '65534, 26'."""
        if v is None:
            return []
        if isinstance(v, str):
            groups = []
            for group in v.split(","):
                group = group.strip()
                if not group:
                    continue
                try:
                    groups.append(int(group))
                except ValueError:
                    raise ValueError(f"supplemental group '{group}' is not an integer")
            return groups
        return v

    @model_validator(mode="after")
    def check_existing_claim_name(self) -> "StorageSpec":
        """An existing volume is referenced by name, so the name is required."""
        if self.storage_type == StorageType.EXISTING and not self.name:
            raise ValueError("storage type 'existing' requires a claim name")
        return self


class VolumeResult(BaseModel):
    """Outcome of provisioning one logical volume."""

    model_config = ConfigDict(frozen=True)

    claim_name: str = Field(default="", description="Claim backing the volume, empty for emptydir")
    supplemental_groups: List[int] = Field(default_factory=list, description="Supplemental group IDs")

    @property
    def is_empty(self) -> bool:
        return self.claim_name == ""

    def volume_source(self) -> Dict[str, Any]:
        """
        Pod volume source for this result.

        Returns:
            A persistentVolumeClaim source when a claim backs the volume,
            otherwise an in-memory emptyDir
        """
        if self.claim_name:
            return {"persistentVolumeClaim": {"claimName": self.claim_name}}
        return {"emptyDir": {"medium": "Memory"}}


class ClusterVolumeSet(BaseModel):
    """
    Volumes provisioned for a cluster during one reconciliation pass.

    When a step fails, ``error`` holds the exception exactly as raised and
    ``failed_volume`` names the step; later steps keep empty results.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: VolumeResult = Field(default_factory=VolumeResult, description="Primary data volume")
    wal: VolumeResult = Field(default_factory=VolumeResult, description="Write-ahead log volume")
    tablespaces: Dict[str, VolumeResult] = Field(
        default_factory=dict, description="Tablespace volumes keyed by tablespace name"
    )
    provisioned: int = Field(default=0, description="Number of logical volumes that completed")
    failed_volume: Optional[str] = Field(default=None, description="Step that failed, if any")
    error: Optional[Exception] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.error is None


class PgCluster(BaseModel):
    """The storage-relevant part of a Pgcluster custom resource spec."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=63,
        pattern="^[a-z0-9]([-a-z0-9]*[a-z0-9])?$",
        description="Cluster name (DNS-1123 compliant)",
    )
    primary_storage: StorageSpec = Field(
        default_factory=StorageSpec, alias="PrimaryStorage", description="Primary data storage"
    )
    wal_storage: StorageSpec = Field(
        default_factory=StorageSpec, alias="WALStorage", description="Write-ahead log storage"
    )
    tablespace_mounts: Dict[str, StorageSpec] = Field(
        default_factory=dict, alias="tablespaceMounts", description="Tablespace storage by tablespace name"
    )
