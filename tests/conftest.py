"""Pytest fixtures for machine reconciler tests."""

import copy
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.exceptions import ApiException  # type: ignore[import-untyped]

from machine_reconciler.config import Settings
from machine_reconciler.kubernetes_client import KubernetesClient
from machine_reconciler.models import Cluster, Machine
from machine_reconciler.proxmox_client import ProxmoxClient
from machine_reconciler.session import SessionProvider

TEST_TOKEN = "root@pam!reconciler=secretvalue"


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        proxmox_host="pve.test",
        proxmox_api_token=TEST_TOKEN,
        pass_timeout_seconds=5.0,
        address_poll_interval_seconds=0.01,
    )


@pytest.fixture
def mock_proxmox() -> Any:
    """Patch ProxmoxAPI and yield the API mock."""
    with patch("machine_reconciler.proxmox_client.ProxmoxAPI") as mock_api:
        proxmox = MagicMock()
        mock_api.return_value = proxmox
        yield proxmox


@pytest.fixture
def vm_api(mock_proxmox: MagicMock) -> MagicMock:
    """Shortcut to the mocked `nodes(node).qemu(vmid)` resource."""
    return mock_proxmox.nodes.return_value.qemu.return_value


@pytest.fixture
def hypervisor(mock_proxmox: MagicMock) -> ProxmoxClient:
    """Create a ProxmoxClient backed by the mocked API."""
    return ProxmoxClient("pve.test", TEST_TOKEN)


@pytest.fixture
def session_provider(settings: Settings, hypervisor: ProxmoxClient) -> SessionProvider:
    """Create a session provider that hands out the test hypervisor client."""
    return SessionProvider(settings, client_factory=lambda *args, **kwargs: hypervisor)


@pytest.fixture
def mock_k8s_client(settings: Settings) -> MagicMock:
    """Create a mock Kubernetes client."""
    with (
        patch.object(KubernetesClient, "_load_config"),
        patch("machine_reconciler.kubernetes_client.client"),
    ):
        client = MagicMock(spec=KubernetesClient)
        client.settings = settings
        client.replace_machine.side_effect = lambda m: m
        client.replace_cluster_status.side_effect = lambda c: c
        return client


@pytest.fixture
def machine_resource() -> dict[str, Any]:
    """Create a Machine custom object without an address annotation."""
    return {
        "apiVersion": "cluster.x-k8s.io/v1alpha1",
        "kind": "Machine",
        "metadata": {
            "name": "worker-0",
            "namespace": "homelab",
            "uid": "0b8d7e3c-6a57-4d8e-9d1c-7e1c2f0c9a11",
            "resourceVersion": "100",
            "annotations": {"vm-ref": "pve/101"},
        },
        "spec": {"providerSpec": {}},
    }


@pytest.fixture
def cluster_resource() -> dict[str, Any]:
    """Create a Cluster custom object."""
    return {
        "apiVersion": "cluster.x-k8s.io/v1alpha1",
        "kind": "Cluster",
        "metadata": {
            "name": "homelab",
            "namespace": "homelab",
            "resourceVersion": "50",
        },
        "spec": {},
        "status": {},
    }


@pytest.fixture
def machine(machine_resource: dict[str, Any]) -> Machine:
    return Machine.from_resource(machine_resource)


@pytest.fixture
def cluster(cluster_resource: dict[str, Any]) -> Cluster:
    return Cluster.from_resource(cluster_resource)


@pytest.fixture
def running_status() -> dict[str, Any]:
    """Proxmox status record of a running VM."""
    return {"name": "worker-0", "status": "running", "qmpstatus": "running", "vmid": 101}


def _agent_interfaces(*addresses: str) -> dict[str, Any]:
    return {
        "result": [
            {
                "name": "lo",
                "ip-addresses": [
                    {"ip-address-type": "ipv4", "ip-address": "127.0.0.1", "prefix": 8}
                ],
            },
            {
                "name": "eth0",
                "hardware-address": "bc:24:11:00:00:01",
                "ip-addresses": [
                    {"ip-address-type": "ipv4", "ip-address": addr, "prefix": 24}
                    for addr in addresses
                ],
            },
        ]
    }


@pytest.fixture
def agent_interfaces() -> Any:
    """Build guest agent network-get-interfaces responses."""
    return _agent_interfaces


class FakeCustomObjectsApi:
    """In-memory stand-in for CustomObjectsApi with resourceVersion checks."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.calls: list[str] = []
        self.fail_status_updates = False

    def add(self, plural: str, resource: dict[str, Any]) -> None:
        meta = resource["metadata"]
        self.objects[(plural, meta["namespace"], meta["name"])] = copy.deepcopy(resource)

    def get_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str
    ) -> dict[str, Any]:
        key = (plural, namespace, name)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.objects[key])

    def _check_version(self, key: tuple[str, str, str], body: dict[str, Any]) -> dict[str, Any]:
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        stored = self.objects[key]
        if body["metadata"].get("resourceVersion") != stored["metadata"]["resourceVersion"]:
            raise ApiException(status=409, reason="Conflict")
        return stored

    def _bump(self, resource: dict[str, Any]) -> None:
        resource["metadata"]["resourceVersion"] = str(
            int(resource["metadata"]["resourceVersion"]) + 1
        )

    def replace_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        self.calls.append(f"replace:{plural}")
        key = (plural, namespace, name)
        stored = self._check_version(key, body)
        updated = copy.deepcopy(body)
        updated["status"] = copy.deepcopy(stored.get("status"))
        self._bump(updated)
        self.objects[key] = updated
        return copy.deepcopy(updated)

    def replace_namespaced_custom_object_status(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        self.calls.append(f"replace_status:{plural}")
        if self.fail_status_updates:
            raise ApiException(status=500, reason="Internal Server Error")
        key = (plural, namespace, name)
        stored = self._check_version(key, body)
        updated = copy.deepcopy(stored)
        updated["status"] = copy.deepcopy(body.get("status"))
        self._bump(updated)
        self.objects[key] = updated
        return copy.deepcopy(updated)


@pytest.fixture
def fake_store(
    machine_resource: dict[str, Any], cluster_resource: dict[str, Any]
) -> FakeCustomObjectsApi:
    """Create an in-memory store holding the test Machine and Cluster."""
    store = FakeCustomObjectsApi()
    store.add("machines", machine_resource)
    store.add("clusters", cluster_resource)
    return store


@pytest.fixture
def store_k8s_client(settings: Settings, fake_store: FakeCustomObjectsApi) -> KubernetesClient:
    """Create a real KubernetesClient wired to the in-memory store."""
    with (
        patch.object(KubernetesClient, "_load_config"),
        patch("machine_reconciler.kubernetes_client.client"),
    ):
        k8s = KubernetesClient(settings)
    k8s.custom_objects = fake_store
    k8s.core_v1 = MagicMock()
    return k8s
