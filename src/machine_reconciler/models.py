"""Data models for the machine reconciler."""

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

VM_KIND_QEMU = "qemu"


class PowerState(Enum):
    """Power state reported by the hypervisor."""

    POWERED_ON = "poweredOn"
    POWERED_OFF = "poweredOff"
    SUSPENDED = "suspended"
    UNKNOWN = "unknown"

    @classmethod
    def from_proxmox(cls, status: str | None, qmpstatus: str | None = None) -> "PowerState":
        """Map Proxmox `status`/`qmpstatus` fields to a power state."""
        if qmpstatus in ("paused", "suspended", "prelaunch"):
            return cls.SUSPENDED
        if status == "running":
            return cls.POWERED_ON
        if status == "stopped":
            return cls.POWERED_OFF
        if status in ("paused", "suspended"):
            return cls.SUSPENDED
        return cls.UNKNOWN


class ReconcileOutcome(Enum):
    """Terminal success states of a reconciliation pass."""

    ADDRESS_ALREADY_KNOWN = "address_already_known"
    PERSISTED = "persisted"
    INDETERMINATE = "indeterminate"  # VM fetched without power state


@dataclass(frozen=True)
class VMHandle:
    """Reference to a VM on the hypervisor: a type tag plus `<node>/<vmid>`."""

    kind: str
    ref: str

    @classmethod
    def parse(cls, value: str, kind: str = VM_KIND_QEMU) -> "VMHandle":
        """Create a handle from a `<node>/<vmid>` string."""
        node, sep, vmid = value.strip().partition("/")
        if not sep or not node or not vmid.isdigit():
            raise ValueError(f"Invalid VM reference {value!r}, expected <node>/<vmid>")
        return cls(kind=kind, ref=f"{node}/{vmid}")

    @property
    def node(self) -> str:
        return self.ref.split("/", 1)[0]

    @property
    def vmid(self) -> int:
        return int(self.ref.split("/", 1)[1])


@dataclass(frozen=True)
class VMSnapshot:
    """Point-in-time view of the hypervisor fields used during reconciliation."""

    name: str
    power_state: PowerState

    @property
    def is_running(self) -> bool:
        """Check if the VM is powered on."""
        return self.power_state == PowerState.POWERED_ON


@dataclass(frozen=True)
class Machine:
    """Cluster API Machine resource.

    The wrapped resource is never mutated in place. Every change produces a
    new Machine backed by a deep copy, which is what gets submitted.
    """

    resource: dict[str, Any]

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> "Machine":
        """Create a Machine from a custom object returned by the API."""
        return cls(resource=copy.deepcopy(resource))

    def to_resource(self) -> dict[str, Any]:
        """Return an independent copy of the underlying custom object."""
        return copy.deepcopy(self.resource)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.resource.get("metadata") or {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace", "default"))

    @property
    def uid(self) -> str | None:
        return self.metadata.get("uid")

    @property
    def resource_version(self) -> str | None:
        return self.metadata.get("resourceVersion")

    @property
    def annotations(self) -> dict[str, str]:
        return dict(self.metadata.get("annotations") or {})

    def annotation(self, key: str) -> str | None:
        """Get an annotation value, treating empty strings as absent."""
        value = self.annotations.get(key)
        return value or None

    def with_annotation(self, key: str, value: str) -> "Machine":
        """Return a copy of this Machine with one annotation set."""
        resource = self.to_resource()
        metadata = resource.setdefault("metadata", {})
        if metadata.get("annotations") is None:
            metadata["annotations"] = {}
        metadata["annotations"][key] = value
        return Machine(resource=resource)


@dataclass(frozen=True)
class Cluster:
    """Cluster API Cluster resource, copied on every change like Machine."""

    resource: dict[str, Any]

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> "Cluster":
        """Create a Cluster from a custom object returned by the API."""
        return cls(resource=copy.deepcopy(resource))

    def to_resource(self) -> dict[str, Any]:
        """Return an independent copy of the underlying custom object."""
        return copy.deepcopy(self.resource)

    @property
    def metadata(self) -> dict[str, Any]:
        return self.resource.get("metadata") or {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name", ""))

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace", "default"))

    @property
    def annotations(self) -> dict[str, str]:
        return dict(self.metadata.get("annotations") or {})

    @property
    def provider_status(self) -> dict[str, Any] | None:
        status = self.resource.get("status") or {}
        return status.get("providerStatus")

    def with_provider_status(self, provider_status: dict[str, Any]) -> "Cluster":
        """Return a copy of this Cluster with its opaque provider status replaced."""
        resource = self.to_resource()
        if resource.get("status") is None:
            resource["status"] = {}
        resource["status"]["providerStatus"] = copy.deepcopy(provider_status)
        return Cluster(resource=resource)


def format_last_updated(moment: datetime) -> str:
    """Format a timestamp as `2024-01-15 10:00:00.123456 +0000 UTC`."""
    return moment.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S.%f +0000 UTC")


@dataclass
class ClusterProviderStatus:
    """Status payload stored in the Cluster's provider status field."""

    last_updated: str = field(default_factory=lambda: format_last_updated(datetime.now(UTC)))

    def to_dict(self) -> dict[str, str]:
        """Convert to the persisted payload shape."""
        return {"LastUpdated": self.last_updated}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClusterProviderStatus":
        """Create from a persisted payload."""
        return cls(last_updated=str(data.get("LastUpdated", "")))


@dataclass(frozen=True)
class ReconcileResult:
    """Result of a successful reconciliation pass."""

    outcome: ReconcileOutcome
    address: str | None = None
    message: str = ""


class ReconcileError(Exception):
    """Base exception for reconciliation errors."""

    pass


class SessionFailure(ReconcileError):
    """Raised when a hypervisor session cannot be established."""

    pass


class LookupFailure(ReconcileError):
    """Raised when the VM or a control-plane object cannot be read."""

    pass


class NotRunning(ReconcileError):
    """Raised when the VM is not powered on.

    This is a legitimate transient state, the caller should retry later.
    """

    def __init__(self, vm_name: str, power_state: PowerState) -> None:
        self.vm_name = vm_name
        self.power_state = power_state
        super().__init__(
            f"Machine {vm_name} is not running, rather it is in {power_state.value} state"
        )


class ResolutionTimeout(ReconcileError):
    """Raised when the address wait ends because the context expired or was cancelled."""

    pass


class PersistFailure(ReconcileError):
    """Raised when the store rejects a Machine or Cluster write."""

    pass
