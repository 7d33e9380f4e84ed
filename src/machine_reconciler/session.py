"""Hypervisor sessions keyed by a Cluster/Machine pair."""

from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType

import requests
import structlog
from proxmoxer.core import ResourceException

from .config import Settings
from .context import ExecutionContext
from .models import Cluster, Machine, SessionFailure
from .proxmox_client import ProxmoxClient

logger = structlog.get_logger()


@dataclass
class Session:
    """Authenticated hypervisor client plus the context it is valid for."""

    hypervisor: ProxmoxClient
    context: ExecutionContext

    def close(self) -> None:
        self.context.close()

    def __enter__(self) -> "Session":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class SessionProvider:
    """Builds a hypervisor session for a Cluster/Machine pair."""

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[..., ProxmoxClient] = ProxmoxClient,
    ) -> None:
        self.settings = settings
        self.client_factory = client_factory

    def host_for(self, cluster: Cluster, machine: Machine) -> str | None:
        """Resolve the Proxmox host, preferring the Cluster's host annotation."""
        return cluster.annotations.get(self.settings.host_annotation) or self.settings.proxmox_host

    def session_for(self, cluster: Cluster, machine: Machine) -> Session:
        """Create a session for one reconciliation pass."""
        host = self.host_for(cluster, machine)
        if not host:
            raise SessionFailure(
                f"No Proxmox host configured for cluster {cluster.name}, machine {machine.name}"
            )
        try:
            hypervisor = self.client_factory(
                host,
                self.settings.proxmox_api_token,
                verify_ssl=self.settings.proxmox_verify_ssl,
            )
        except (ValueError, ResourceException, requests.exceptions.RequestException) as e:
            logger.error("Failed to create Proxmox session", host=host, error=str(e))
            raise SessionFailure(f"Failed to create Proxmox session for {host}: {e}") from e

        logger.debug("Created Proxmox session", host=host, machine=machine.name)
        return Session(hypervisor=hypervisor, context=ExecutionContext())
