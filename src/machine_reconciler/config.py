"""Configuration management for the machine reconciler."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MACHINE_RECONCILER_",
        case_sensitive=False,
    )

    # Proxmox settings
    proxmox_host: str | None = Field(default=None, description="Default Proxmox API host")
    proxmox_api_token: str | None = Field(
        default=None, description="API token in the form user!token_name=secret"
    )
    proxmox_verify_ssl: bool = Field(default=False, description="Verify Proxmox TLS certificate")

    # Cluster API settings
    api_group: str = Field(default="cluster.x-k8s.io", description="Cluster API group")
    api_version: str = Field(default="v1alpha1", description="Cluster API version")

    # Annotation keys
    vm_ref_annotation: str = Field(
        default="vm-ref", description="Machine annotation holding <node>/<vmid>"
    )
    address_annotation: str = Field(
        default="vm-ip-address", description="Machine annotation holding the VM address"
    )
    host_annotation: str = Field(
        default="proxmox-host", description="Cluster annotation overriding the Proxmox host"
    )

    # Reconciliation settings
    pass_timeout_seconds: float = Field(
        default=300.0, description="Lifetime of a single reconciliation pass"
    )
    address_poll_interval_seconds: float = Field(
        default=5.0, description="Interval between guest agent address queries"
    )
    event_source: str = Field(
        default="machine-reconciler", description="Component name on recorded events"
    )

    @property
    def proxmox_configured(self) -> bool:
        """Check if a Proxmox host and token are configured."""
        return bool(self.proxmox_host and self.proxmox_api_token)


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
