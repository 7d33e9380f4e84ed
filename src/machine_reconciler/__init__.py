"""Machine address reconciler for Cluster API machines backed by Proxmox VMs."""

__version__ = "0.1.0"
