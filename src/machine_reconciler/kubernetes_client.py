"""Kubernetes client wrapper for Cluster API Machine and Cluster objects."""

from datetime import UTC, datetime
from typing import Any, cast

import structlog
from kubernetes import client, config  # type: ignore[import-untyped]
from kubernetes.client.exceptions import ApiException  # type: ignore[import-untyped]
from urllib3.exceptions import HTTPError

from .config import Settings
from .models import Cluster, LookupFailure, Machine, PersistFailure

logger = structlog.get_logger()

MACHINES_PLURAL = "machines"
CLUSTERS_PLURAL = "clusters"

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"


class KubernetesClient:
    """Wrapper for Cluster API custom object operations."""

    def __init__(self, settings: Settings) -> None:
        """Initialize Kubernetes client."""
        self.settings = settings
        self._load_config()
        self.custom_objects = client.CustomObjectsApi()
        self.core_v1 = client.CoreV1Api()

    def _load_config(self) -> None:
        """Load Kubernetes configuration."""
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        except config.ConfigException:
            config.load_kube_config()
            logger.info("Loaded local Kubernetes config")

    def _get(self, plural: str, namespace: str, name: str) -> dict[str, Any]:
        try:
            return cast(
                dict[str, Any],
                self.custom_objects.get_namespaced_custom_object(
                    group=self.settings.api_group,
                    version=self.settings.api_version,
                    namespace=namespace,
                    plural=plural,
                    name=name,
                ),
            )
        except ApiException as e:
            logger.error("Failed to read object", kind=plural, name=name, error=str(e))
            raise LookupFailure(f"Failed to read {plural}/{name} in {namespace}: {e.reason}") from e
        except HTTPError as e:
            logger.error("Kubernetes API unreachable", kind=plural, name=name, error=str(e))
            raise LookupFailure(f"Failed to read {plural}/{name} in {namespace}: {e}") from e

    def get_machine(self, namespace: str, name: str) -> Machine:
        """Read a Machine."""
        return Machine.from_resource(self._get(MACHINES_PLURAL, namespace, name))

    def get_cluster(self, namespace: str, name: str) -> Cluster:
        """Read a Cluster."""
        return Cluster.from_resource(self._get(CLUSTERS_PLURAL, namespace, name))

    def replace_machine(self, machine: Machine) -> Machine:
        """Replace the stored Machine with the given copy.

        The copy carries its resourceVersion, so a stale copy is rejected by
        the API server with a conflict.
        """
        try:
            stored = self.custom_objects.replace_namespaced_custom_object(
                group=self.settings.api_group,
                version=self.settings.api_version,
                namespace=machine.namespace,
                plural=MACHINES_PLURAL,
                name=machine.name,
                body=machine.to_resource(),
            )
        except ApiException as e:
            logger.error("Failed to update Machine", machine=machine.name, status=e.status)
            raise PersistFailure(f"Failed to update Machine {machine.name}: {e.reason}") from e
        except HTTPError as e:
            logger.error("Kubernetes API unreachable", machine=machine.name, error=str(e))
            raise PersistFailure(f"Failed to update Machine {machine.name}: {e}") from e
        return Machine.from_resource(stored)

    def replace_cluster_status(self, cluster: Cluster) -> Cluster:
        """Replace the status subresource of the stored Cluster."""
        try:
            stored = self.custom_objects.replace_namespaced_custom_object_status(
                group=self.settings.api_group,
                version=self.settings.api_version,
                namespace=cluster.namespace,
                plural=CLUSTERS_PLURAL,
                name=cluster.name,
                body=cluster.to_resource(),
            )
        except ApiException as e:
            logger.error("Failed to update Cluster status", cluster=cluster.name, status=e.status)
            raise PersistFailure(
                f"Failed to update status of Cluster {cluster.name}: {e.reason}"
            ) from e
        except HTTPError as e:
            logger.error("Kubernetes API unreachable", cluster=cluster.name, error=str(e))
            raise PersistFailure(f"Failed to update status of Cluster {cluster.name}: {e}") from e
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize Cluster status", cluster=cluster.name, error=str(e))
            raise PersistFailure(f"Failed to serialize status of Cluster {cluster.name}: {e}") from e
        return Cluster.from_resource(stored)

    def record_event(self, machine: Machine, event_type: str, reason: str, message: str) -> bool:
        """Record an Event against a Machine. Failures are logged, not raised."""
        now = datetime.now(UTC)
        body = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{machine.name}."),
            involved_object=client.V1ObjectReference(
                api_version=f"{self.settings.api_group}/{self.settings.api_version}",
                kind="Machine",
                name=machine.name,
                namespace=machine.namespace,
                uid=machine.uid,
                resource_version=machine.resource_version,
            ),
            reason=reason,
            message=message,
            type=event_type,
            source=client.V1EventSource(component=self.settings.event_source),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            self.core_v1.create_namespaced_event(namespace=machine.namespace, body=body)
            return True
        except (ApiException, HTTPError) as e:
            logger.error("Failed to record event", machine=machine.name, reason=reason, error=str(e))
            return False
