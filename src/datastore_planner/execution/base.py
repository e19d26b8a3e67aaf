"""
Provisioning interfaces.

Goal
Define stable interfaces for creating and destroying volumes without binding
the planner to a specific hypervisor SDK or session handling.

Design notes
A VolumeClient reports outcomes as ProvisionResult values instead of
raising. Anything it does raise is treated as a fault and converted into a
failed result by the provisioner, except CollaboratorAuthError which ends
the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Protocol

from datastore_planner.core.errors import ProvisioningFailure
from datastore_planner.core.types import DiskMode, Transport, Volume


class TaskState(StrEnum):
    """Final state of a hypervisor task."""

    success = "success"
    error = "error"


@dataclass(frozen=True)
class ProvisionResult:
    """
    Outcome of a create or destroy call, or of a whole batch.

    task_state
    success or error.

    error_message
    Human readable reason when task_state is error.
    """

    task_state: TaskState
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.task_state == TaskState.success

    @classmethod
    def success(cls) -> "ProvisionResult":
        return cls(task_state=TaskState.success)

    @classmethod
    def failure(cls, message: str) -> "ProvisionResult":
        return cls(task_state=TaskState.error, error_message=message)

    def raise_for_status(self) -> None:
        """Raise ProvisioningFailure when the result is not a success."""
        if not self.ok:
            raise ProvisioningFailure(self.error_message or "provisioning failed")


@dataclass(frozen=True)
class VolumeRequest:
    """
    Fully resolved volume placement sent to the hypervisor.

    vm_ref identifies the VM the volume is attached to.
    """

    vm_ref: Optional[str]
    mode: DiskMode
    fullpath: str
    size: int
    datastore_name: str
    transport: Transport
    unit_number: int

    @classmethod
    def from_volume(cls, vm_ref: Optional[str], volume: Volume) -> "VolumeRequest":
        return cls(
            vm_ref=vm_ref,
            mode=volume.mode,
            fullpath=volume.fullpath,
            size=volume.size,
            datastore_name=volume.datastore_name,
            transport=volume.transport,
            unit_number=volume.unit_number,
        )


class VolumeClient(Protocol):
    """
    Minimal hypervisor shaped volume interface.

    Real implementations wrap a vSphere SDK session.
    We keep the interface narrow for testability.

    create_volume
    Creates and attaches one volume.

    destroy_volume
    Detaches and deletes one volume.
    """

    def create_volume(self, request: VolumeRequest) -> ProvisionResult:
        """Create one volume."""

    def destroy_volume(self, request: VolumeRequest) -> ProvisionResult:
        """Destroy one volume."""


@dataclass(frozen=True)
class ProvisionerConfig:
    """
    Provisioner configuration.

    skip_empty_volumes
    Volumes of size zero or less are never sent to the hypervisor.
    """

    skip_empty_volumes: bool = True
