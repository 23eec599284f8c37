from pgstorage.models.storage import (
    ClusterVolumeSet,
    PgCluster,
    StorageSpec,
    StorageType,
    VolumeResult,
)

__all__ = [
    "ClusterVolumeSet",
    "PgCluster",
    "StorageSpec",
    "StorageType",
    "VolumeResult",
]
