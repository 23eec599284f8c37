"""
Tests for claim existence checks and label-gated deletion.
"""
import pytest

from pgstorage.exceptions import OrchestrationError, VolumeLookupError
from pgstorage.services.pvc_service import VolumeClaimGate


@pytest.fixture
def gate(fake_kube):
    return VolumeClaimGate(fake_kube, remove_label="pgremove")


def test_missing_claim_is_not_an_error(gate, fake_kube, namespace):
    gate.delete_if_exists("hippo", namespace)
    assert fake_kube.calls_of("delete") == []


def test_claim_without_remove_label_is_kept(gate, fake_kube, namespace):
    fake_kube.add_claim("hippo", namespace, labels={"pg-cluster": "hippo"})
    gate.delete_if_exists("hippo", namespace)
    assert fake_kube.calls_of("delete") == []
    assert (namespace, "hippo") in fake_kube.claims


@pytest.mark.parametrize("value", ["false", "True", "yes", ""])
def test_remove_label_must_be_literal_true(gate, fake_kube, namespace, value):
    fake_kube.add_claim("hippo", namespace, labels={"pgremove": value})
    gate.delete_if_exists("hippo", namespace)
    assert fake_kube.calls_of("delete") == []


def test_claim_with_remove_label_is_deleted_once(gate, fake_kube, namespace):
    fake_kube.add_claim("hippo", namespace, labels={"pgremove": "true"})
    gate.delete_if_exists("hippo", namespace)
    assert fake_kube.calls_of("delete") == [("delete", namespace, "hippo")]
    assert (namespace, "hippo") not in fake_kube.claims


def test_claim_without_labels_is_kept(gate, fake_kube, namespace):
    fake_kube.add_claim("hippo", namespace)
    gate.delete_if_exists("hippo", namespace)
    assert fake_kube.calls_of("delete") == []


def test_lookup_error_propagates_without_delete(gate, fake_kube, namespace):
    fake_kube.lookup_error = VolumeLookupError("forbidden", api_status=403, reason="Forbidden")
    with pytest.raises(VolumeLookupError):
        gate.delete_if_exists("hippo", namespace)
    assert fake_kube.calls_of("delete") == []


def test_delete_error_propagates(gate, fake_kube, namespace):
    fake_kube.add_claim("hippo", namespace, labels={"pgremove": "true"})
    fake_kube.delete_error = OrchestrationError("conflict", api_status=409)
    with pytest.raises(OrchestrationError):
        gate.delete_if_exists("hippo", namespace)


def test_exists(gate, fake_kube, namespace):
    fake_kube.add_claim("hippo", namespace)
    assert gate.exists("hippo", namespace)
    assert not gate.exists("hippo-wal", namespace)


def test_exists_treats_lookup_error_as_absent(gate, fake_kube, namespace):
    fake_kube.add_claim("hippo", namespace)
    fake_kube.lookup_error = VolumeLookupError("timeout", api_status=504)
    assert gate.exists("hippo", namespace) is False
