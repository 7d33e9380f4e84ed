"""Proxmox API wrapper used as the hypervisor side of reconciliation."""

import ipaddress
from typing import Any

import requests
import structlog
from proxmoxer import ProxmoxAPI
from proxmoxer.core import ResourceException

from .context import ExecutionContext
from .models import LookupFailure, ResolutionTimeout, VMHandle

logger = structlog.get_logger()

GUEST_AGENT_UNAVAILABLE_MARKER = "guest agent"


def parse_api_token(api_token: str | None) -> tuple[str, str, str]:
    """Split `user!token_name=secret` into its three components."""
    if api_token is None:
        raise ValueError("Proxmox API token is not set")
    try:
        user_token, secret = api_token.split("=", 1)
        user, token_name = user_token.split("!", 1)
    except ValueError:
        raise ValueError("Proxmox API token must look like user!token_name=secret") from None
    if not user or not token_name or not secret:
        raise ValueError("Proxmox API token must look like user!token_name=secret")
    return user, token_name, secret


def select_address(interfaces: list[dict[str, Any]]) -> str | None:
    """Pick the first routable IPv4 address from guest agent interfaces."""
    for iface in interfaces:
        if iface.get("name") == "lo":
            continue
        for addr in iface.get("ip-addresses") or []:
            if addr.get("ip-address-type") != "ipv4":
                continue
            value = addr.get("ip-address")
            if not value:
                continue
            try:
                ip = ipaddress.IPv4Address(value)
            except ValueError:
                continue
            if ip.is_loopback or ip.is_link_local or ip.is_unspecified:
                continue
            return str(ip)
    return None


class ProxmoxClient:
    """Wrapper around the Proxmox API for VM status and guest agent queries."""

    def __init__(self, host: str, api_token: str | None, verify_ssl: bool = False) -> None:
        self.host = host
        self.user, self.token_name, self.api_token = parse_api_token(api_token)
        self.proxmox = ProxmoxAPI(
            host,
            user=self.user,
            token_name=self.token_name,
            token_value=self.api_token,
            verify_ssl=verify_ssl,
        )

    def get_vm_status(self, handle: VMHandle) -> dict[str, Any]:
        """Retrieve the current status record of a VM."""
        try:
            status = self.proxmox.nodes(handle.node).qemu(handle.vmid).status.current.get()
        except (ResourceException, requests.exceptions.RequestException) as e:
            logger.error("Failed to get VM status", vm=handle.ref, error=str(e))
            raise LookupFailure(f"Failed to get status of VM {handle.ref}: {e}") from e
        return status or {}

    def get_guest_interfaces(self, handle: VMHandle) -> list[dict[str, Any]] | None:
        """Query network interfaces through the QEMU guest agent.

        Returns None while the guest agent is not answering yet.
        """
        try:
            response = (
                self.proxmox.nodes(handle.node)
                .qemu(handle.vmid)
                .agent("network-get-interfaces")
                .get()
            )
        except ResourceException as e:
            message = f"{e.status_message} {e.content}".lower()
            if e.status_code == 500 and GUEST_AGENT_UNAVAILABLE_MARKER in message:
                logger.debug("Guest agent not ready", vm=handle.ref)
                return None
            logger.error("Guest agent query failed", vm=handle.ref, error=str(e))
            raise LookupFailure(f"Guest agent query failed for VM {handle.ref}: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error("Guest agent query failed", vm=handle.ref, error=str(e))
            raise LookupFailure(f"Guest agent query failed for VM {handle.ref}: {e}") from e

        if isinstance(response, dict):
            response = response.get("result")
        if not isinstance(response, list):
            return []
        return response

    def wait_for_address(
        self, handle: VMHandle, ctx: ExecutionContext, poll_interval: float = 5.0
    ) -> str:
        """Block until the guest agent reports an address or the context ends."""
        logger.info("Waiting for VM address", vm=handle.ref)
        while not ctx.done:
            interfaces = self.get_guest_interfaces(handle)
            if interfaces:
                address = select_address(interfaces)
                if address:
                    return address
            if ctx.wait(poll_interval):
                break
        raise ResolutionTimeout(f"Context ended before VM {handle.ref} reported an address")
