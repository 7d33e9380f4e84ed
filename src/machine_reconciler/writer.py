"""Persist a resolved VM address to the Machine and stamp the Cluster status."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from .kubernetes_client import KubernetesClient
from .models import Cluster, ClusterProviderStatus, Machine, format_last_updated

logger = structlog.get_logger()


class StateWriter:
    """Writes copies of the Machine and Cluster back to the store.

    The Machine is written first. If the Cluster status write then fails the
    Machine annotation stays written and the failure is raised as-is.
    """

    def __init__(
        self,
        k8s_client: KubernetesClient,
        annotation_key: str,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.k8s = k8s_client
        self.annotation_key = annotation_key
        self.clock = clock

    def record_address(
        self, cluster: Cluster, machine: Machine, address: str
    ) -> tuple[Machine, Cluster]:
        """Annotate the Machine with `address`, then update the Cluster timestamp."""
        stored_machine = self.k8s.replace_machine(machine.with_annotation(self.annotation_key, address))
        logger.info("Recorded VM address", machine=machine.name, address=address)

        status = ClusterProviderStatus(last_updated=format_last_updated(self.clock()))
        stored_cluster = self.k8s.replace_cluster_status(cluster.with_provider_status(status.to_dict()))
        logger.info("Updated cluster status", cluster=cluster.name, last_updated=status.last_updated)
        return stored_machine, stored_cluster
