"""
Pytest configuration and fixtures.
"""
from typing import AsyncGenerator, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from kubernetes import client

from pgstorage.config.settings import settings
from pgstorage.exceptions import AlreadyExistsError
from pgstorage.main import app
from pgstorage.models.storage import PgCluster, StorageSpec
from pgstorage.services.kube_client import get_kube_client


class FakeKubeClient:
    """In-memory stand-in for KubeClient that records every API call."""

    def __init__(self):
        self.claims: Dict[tuple, client.V1PersistentVolumeClaim] = {}
        self.calls = []
        self.create_errors: Dict[str, Exception] = {}
        self.lookup_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.reachable = True
        self.exec_result = ("", "", 0)
        self.exec_error: Optional[Exception] = None

    def create_pvc(self, namespace, body):
        name = body.metadata.name
        self.calls.append(("create", namespace, name))
        if name in self.create_errors:
            raise self.create_errors[name]
        if (namespace, name) in self.claims:
            raise AlreadyExistsError("PersistentVolumeClaim", name, namespace)
        self.claims[(namespace, name)] = body
        return body

    def get_pvc_if_exists(self, name, namespace):
        self.calls.append(("get", namespace, name))
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.claims.get((namespace, name))

    def delete_pvc(self, name, namespace):
        self.calls.append(("delete", namespace, name))
        if self.delete_error is not None:
            raise self.delete_error
        self.claims.pop((namespace, name), None)

    def exec_in_pod(self, namespace, pod, container, command):
        self.calls.append(("exec", namespace, pod, container, command))
        if self.exec_error is not None:
            raise self.exec_error
        return self.exec_result

    def ping(self):
        return self.reachable

    def add_claim(self, name, namespace, labels=None):
        self.claims[(namespace, name)] = client.V1PersistentVolumeClaim(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels=labels),
        )

    def calls_of(self, kind):
        return [call for call in self.calls if call[0] == kind]

    @property
    def created(self):
        return [call[2] for call in self.calls_of("create")]


@pytest.fixture(scope="session")
def test_settings():
    """Override settings for testing."""
    settings.environment = "testing"
    settings.debug = True
    return settings


@pytest.fixture
def fake_kube():
    return FakeKubeClient()


@pytest_asyncio.fixture
async def test_client(fake_kube) -> AsyncGenerator[AsyncClient, None]:
    """Create test client backed by the in-memory Kubernetes fake."""
    app.dependency_overrides[get_kube_client] = lambda: fake_kube
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def namespace():
    return "pgo"


@pytest.fixture
def create_spec():
    return StorageSpec(storage_type="create", access_mode="ReadWriteOnce", size="1G")


@pytest.fixture
def dynamic_spec():
    return StorageSpec(
        storage_type="dynamic",
        access_mode="ReadWriteOnce",
        size="5G",
        storage_class="standard",
        supplemental_groups=[65534],
    )


@pytest.fixture
def hippo_cluster(create_spec, dynamic_spec):
    """Cluster with WAL storage and two tablespaces declared out of order."""
    return PgCluster(
        name="hippo",
        primary_storage=create_spec,
        wal_storage=dynamic_spec,
        tablespace_mounts={"ocean": dynamic_spec, "lake": create_spec},
    )
