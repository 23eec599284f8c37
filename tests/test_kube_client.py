"""
Tests for the Kubernetes client wrapper's error classification.
"""
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError

from pgstorage.exceptions import AlreadyExistsError, OrchestrationError, VolumeLookupError
from pgstorage.models.storage import PgCluster
from pgstorage.services.kube_client import KubeClient
from pgstorage.services.pvc_service import ClusterVolumeOrchestrator, VolumeProvisioner


@pytest.fixture
def core_api():
    return MagicMock(spec=client.CoreV1Api)


@pytest.fixture
def kube(core_api):
    return KubeClient(core_api)


def _pvc(name="hippo"):
    return client.V1PersistentVolumeClaim(metadata=client.V1ObjectMeta(name=name))


def test_create_pvc(kube, core_api):
    body = _pvc()
    kube.create_pvc("pgo", body)
    core_api.create_namespaced_persistent_volume_claim.assert_called_once_with(namespace="pgo", body=body)


def test_create_conflict_is_already_exists(kube, core_api):
    core_api.create_namespaced_persistent_volume_claim.side_effect = ApiException(status=409, reason="Conflict")
    with pytest.raises(AlreadyExistsError) as exc_info:
        kube.create_pvc("pgo", _pvc())
    assert exc_info.value.details["name"] == "hippo"


def test_create_other_failure(kube, core_api):
    core_api.create_namespaced_persistent_volume_claim.side_effect = ApiException(status=403, reason="Forbidden")
    with pytest.raises(OrchestrationError) as exc_info:
        kube.create_pvc("pgo", _pvc())
    assert not isinstance(exc_info.value, AlreadyExistsError)
    assert exc_info.value.api_status == 403
    assert exc_info.value.reason == "Forbidden"


def test_get_pvc_not_found_returns_none(kube, core_api):
    core_api.read_namespaced_persistent_volume_claim.side_effect = ApiException(status=404, reason="Not Found")
    assert kube.get_pvc_if_exists("hippo", "pgo") is None


def test_get_pvc_failure_is_lookup_error(kube, core_api):
    core_api.read_namespaced_persistent_volume_claim.side_effect = ApiException(status=500, reason="Internal")
    with pytest.raises(VolumeLookupError):
        kube.get_pvc_if_exists("hippo", "pgo")


def test_get_pvc_found(kube, core_api):
    pvc = _pvc()
    core_api.read_namespaced_persistent_volume_claim.return_value = pvc
    assert kube.get_pvc_if_exists("hippo", "pgo") is pvc


def test_delete_pvc_already_gone(kube, core_api):
    core_api.delete_namespaced_persistent_volume_claim.side_effect = ApiException(status=404, reason="Not Found")
    kube.delete_pvc("hippo", "pgo")


def test_delete_pvc_failure(kube, core_api):
    core_api.delete_namespaced_persistent_volume_claim.side_effect = ApiException(status=403, reason="Forbidden")
    with pytest.raises(OrchestrationError):
        kube.delete_pvc("hippo", "pgo")


def test_ping(kube, core_api):
    assert kube.ping()
    core_api.get_api_resources.side_effect = ApiException(status=503, reason="Unavailable")
    assert not kube.ping()


def test_exec_in_pod_collects_output(kube, core_api):
    session = MagicMock()
    session.read_stdout.return_value = "stanza: db\n"
    session.read_stderr.return_value = ""
    session.returncode = 0

    with patch("pgstorage.services.kube_client.stream", return_value=session) as stream:
        result = kube.exec_in_pod("pgo", "hippo-0", "database", ["bash", "-c", "pgbackrest info"])

    assert result == ("stanza: db\n", "", 0)
    stream.assert_called_once()
    assert stream.call_args.kwargs["command"] == ["bash", "-c", "pgbackrest info"]
    assert stream.call_args.kwargs["container"] == "database"
    session.run_forever.assert_called_once()
    session.close.assert_called_once()


def _unreachable():
    return MaxRetryError(None, "/api/v1/namespaces/pgo/persistentvolumeclaims")


def test_create_connection_failure_is_orchestration_error(kube, core_api):
    core_api.create_namespaced_persistent_volume_claim.side_effect = _unreachable()
    with pytest.raises(OrchestrationError) as exc_info:
        kube.create_pvc("pgo", _pvc())
    assert not isinstance(exc_info.value, AlreadyExistsError)
    assert exc_info.value.api_status is None
    assert exc_info.value.reason == "MaxRetryError"


def test_get_connection_failure_is_lookup_error(kube, core_api):
    core_api.read_namespaced_persistent_volume_claim.side_effect = _unreachable()
    with pytest.raises(VolumeLookupError) as exc_info:
        kube.get_pvc_if_exists("hippo", "pgo")
    assert exc_info.value.api_status is None


def test_delete_connection_failure_is_orchestration_error(kube, core_api):
    core_api.delete_namespaced_persistent_volume_claim.side_effect = _unreachable()
    with pytest.raises(OrchestrationError):
        kube.delete_pvc("hippo", "pgo")


def test_unreachable_api_server_yields_partial_volume_set(kube, core_api, create_spec):
    core_api.create_namespaced_persistent_volume_claim.side_effect = _unreachable()
    orchestrator = ClusterVolumeOrchestrator(VolumeProvisioner(kube))

    volumes = orchestrator.provision(PgCluster(name="hippo"), "pgo", "hippo", create_spec)

    assert isinstance(volumes.error, OrchestrationError)
    assert volumes.failed_volume == "data"
    assert volumes.provisioned == 0
    assert volumes.data.claim_name == "hippo"
