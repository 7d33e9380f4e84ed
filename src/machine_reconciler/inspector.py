"""Read the VM's name and power state from the hypervisor."""

import structlog

from .context import ExecutionContext
from .models import LookupFailure, PowerState, VMHandle, VMSnapshot
from .proxmox_client import ProxmoxClient

logger = structlog.get_logger()


class StateInspector:
    """Fetches a fresh VM snapshot on every call."""

    def __init__(self, hypervisor: ProxmoxClient) -> None:
        self.hypervisor = hypervisor

    def inspect(self, handle: VMHandle, ctx: ExecutionContext) -> VMSnapshot | None:
        """Return the VM snapshot, or None if the VM reports no power state.

        Retrieval errors raise LookupFailure. Only a record that came back
        without any status fields yields None.
        """
        if ctx.done:
            raise LookupFailure(f"Context ended before VM {handle.ref} was inspected")

        status = self.hypervisor.get_vm_status(handle)
        if not status.get("status") and not status.get("qmpstatus"):
            logger.warning("VM reported no power state", vm=handle.ref)
            return None

        return VMSnapshot(
            name=str(status.get("name") or handle.ref),
            power_state=PowerState.from_proxmox(status.get("status"), status.get("qmpstatus")),
        )
