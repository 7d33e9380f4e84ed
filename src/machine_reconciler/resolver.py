"""Resolve the VM address, waiting for the hypervisor when none is recorded."""

from concurrent import futures

import structlog

from .context import ExecutionContext
from .models import Machine, ResolutionTimeout, VMHandle
from .proxmox_client import ProxmoxClient

logger = structlog.get_logger()


class AddressResolver:
    """Looks up a Machine's recorded address or waits for the VM to report one."""

    def __init__(
        self, hypervisor: ProxmoxClient, annotation_key: str, poll_interval: float = 5.0
    ) -> None:
        self.hypervisor = hypervisor
        self.annotation_key = annotation_key
        self.poll_interval = poll_interval

    def recorded_address(self, machine: Machine) -> str | None:
        """Return the address already recorded on the Machine, if any."""
        return machine.annotation(self.annotation_key)

    def wait_for_address(self, handle: VMHandle, ctx: ExecutionContext) -> str:
        """Issue one wait for the VM address, bounded by the context.

        The wait runs as a future so the caller's deadline applies even if a
        hypervisor call hangs. When the deadline passes the context is
        cancelled, which stops the wait.
        """
        executor = futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="address-wait")
        try:
            future = executor.submit(
                self.hypervisor.wait_for_address, handle, ctx, self.poll_interval
            )
            try:
                return future.result(timeout=ctx.remaining())
            except futures.TimeoutError as e:
                ctx.cancel()
                future.cancel()
                raise ResolutionTimeout(
                    f"Timed out waiting for an address on VM {handle.ref}"
                ) from e
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
