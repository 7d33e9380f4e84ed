"""Resolve a Machine to the VM backing it."""

from .models import LookupFailure, Machine, VMHandle


def locate_vm(machine: Machine, annotation_key: str) -> VMHandle:
    """Build the VM handle from the Machine's `<node>/<vmid>` annotation."""
    value = machine.annotation(annotation_key)
    if value is None:
        raise LookupFailure(f"Machine {machine.name} has no {annotation_key} annotation")
    try:
        return VMHandle.parse(value)
    except ValueError as e:
        raise LookupFailure(f"Machine {machine.name}: {e}") from e
