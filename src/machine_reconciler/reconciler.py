"""Reconciliation pass for a single Machine."""

import structlog

from .config import Settings
from .inspector import StateInspector
from .kubernetes_client import EVENT_TYPE_NORMAL, EVENT_TYPE_WARNING, KubernetesClient
from .locator import locate_vm
from .models import (
    Cluster,
    Machine,
    NotRunning,
    ReconcileOutcome,
    ReconcileResult,
    ResolutionTimeout,
)
from .resolver import AddressResolver
from .session import SessionProvider
from .writer import StateWriter

logger = structlog.get_logger()


class MachineReconciler:
    """Makes sure a running Machine has its VM address recorded."""

    def __init__(
        self, settings: Settings, k8s_client: KubernetesClient, sessions: SessionProvider
    ) -> None:
        """Initialize reconciler."""
        self.settings = settings
        self.k8s = k8s_client
        self.sessions = sessions
        self.writer = StateWriter(k8s_client, settings.address_annotation)

    def reconcile(self, cluster: Cluster, machine: Machine) -> ReconcileResult:
        """Run one reconciliation pass.

        Steps:
        1. Open a hypervisor session and derive the pass context
        2. Locate and inspect the VM, stop if it is not powered on
        3. Stop if the Machine already records an address
        4. Wait for the address and persist it

        Raises a ReconcileError subclass on any failure. Nothing is retried here.
        """
        with (
            self.sessions.session_for(cluster, machine) as session,
            session.context.child(self.settings.pass_timeout_seconds) as ctx,
        ):
            handle = locate_vm(machine, self.settings.vm_ref_annotation)
            snapshot = StateInspector(session.hypervisor).inspect(handle, ctx)
            if snapshot is None:
                return ReconcileResult(
                    outcome=ReconcileOutcome.INDETERMINATE,
                    message=f"VM {handle.ref} reported no power state",
                )

            if not snapshot.is_running:
                error = NotRunning(snapshot.name, snapshot.power_state)
                logger.warning(
                    "Machine is not running",
                    machine=machine.name,
                    vm=snapshot.name,
                    power_state=snapshot.power_state.value,
                )
                self.k8s.record_event(machine, EVENT_TYPE_WARNING, "NotRunning", str(error))
                raise error

            resolver = AddressResolver(
                session.hypervisor,
                self.settings.address_annotation,
                self.settings.address_poll_interval_seconds,
            )
            existing = resolver.recorded_address(machine)
            if existing:
                logger.debug("Address already recorded", machine=machine.name, address=existing)
                return ReconcileResult(outcome=ReconcileOutcome.ADDRESS_ALREADY_KNOWN, address=existing)

            address = resolver.wait_for_address(handle, ctx)
            if ctx.done:
                raise ResolutionTimeout(
                    f"Context ended while waiting for an address on VM {handle.ref}"
                )
            logger.info("Address detected", machine=machine.name, vm=snapshot.name, address=address)
            self.k8s.record_event(
                machine,
                EVENT_TYPE_NORMAL,
                "AddressDetected",
                f"IP {address} detected for Virtual Machine {snapshot.name}",
            )

            self.writer.record_address(cluster, machine, address)
            return ReconcileResult(outcome=ReconcileOutcome.PERSISTED, address=address)
