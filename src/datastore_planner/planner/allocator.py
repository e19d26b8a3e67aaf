"""
Volume allocator.

alloc_volumes is the only place that creates Volume records. For every
datastore it is handed it:
1) picks the transport of the disk category
2) takes the next unit number on that transport
3) builds the full path
4) records the volume on the VM
5) adds the reserved size to the datastore's unaccounted_space

Step 5 is what makes placement speculative: the ledger's recovery undoes
exactly these deltas when a plan is abandoned.
"""

from __future__ import annotations

import logging
from typing import Iterable

from datastore_planner.core.types import (
    DatastoreResource,
    DiskKind,
    Transport,
    VM,
    Volume,
)

logger = logging.getLogger(__name__)


def transport_for(vm: VM, kind: DiskKind) -> Transport:
    """
    System and swap always sit on the lsilogic controller.

    Split data disks get their own paravirtual controller.
    """
    if kind in (DiskKind.system, DiskKind.swap):
        return Transport.lsilogic
    if kind == DiskKind.data:
        if vm.data_disk.affinity:
            return Transport.lsilogic
        return Transport.paravirtual
    raise ValueError(f"unknown disk kind {kind!r}")


def volume_path(ds: DatastoreResource, vm: VM, transport: Transport, unit_number: int) -> str:
    tier = "shared" if ds.shared else "local"
    return f"[{ds.name}] {vm.name}/{tier}{transport.value}{unit_number}.vmdk"


def alloc_volumes(
    host_name: str,
    kind: DiskKind,
    vm: VM,
    datastores: Iterable[DatastoreResource],
    size: int,
) -> list[Volume]:
    """
    Allocate one volume of the given size on every datastore passed in.

    The VM is bound to host_name. The caller decides how many datastores
    to pass and which size each piece gets.
    """
    vm.host_name = host_name
    disk = vm.disk(kind)
    transport = transport_for(vm, kind)

    volumes: list[Volume] = []
    for ds in datastores:
        unit_number = vm.next_unit_number(transport)
        fullpath = volume_path(ds, vm, transport, unit_number)
        volume = vm.add_volume(
            kind,
            Volume(
                vm_ref=vm.id,
                mode=disk.mode,
                size=size,
                fullpath=fullpath,
                datastore_name=ds.name,
                transport=transport,
                unit_number=unit_number,
            ),
        )
        ds.unaccounted_space += vm.reserved_size(kind, size)
        logger.debug(
            "alloc %s for vm %s on host %s: %s size %d unit %d",
            kind.value,
            vm.name,
            host_name,
            fullpath,
            size,
            unit_number,
        )
        volumes.append(volume)

    return volumes
