"""
Core types.

This file defines the shared data structures used across the planner.

Two families live here:

Capacity records
DatastoreResource and HostResource describe what the inventory reported at
fetch time plus the tentative reservation counter the ledger mutates.

Request records
VM, Disk and Volume describe what a caller asks for and, once the allocator
has run, where each piece of each disk landed.

Important design choice
A datastore that a host sees both as local and as shared is one
DatastoreResource referenced from both maps. Mutating unaccounted_space
through either lookup path must be visible through the other.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from datastore_planner.core.errors import UnknownDatastore
from datastore_planner.core.matching import normalize_patterns

# SCSI unit 7 is taken by the controller itself.
RESERVED_UNIT_NUMBER = 7
DEFAULT_SCSI_KEY = 1000
DISK_DEV_LABEL = "abcdefghijklmnopqrstuvwxyz"


class DiskKind(str, Enum):
    """
    Disk categories a VM requests.

    system
      Boot disk. Its placement also reserves the VM memory size on the
      same datastore for the swap file the hypervisor creates at power on.

    swap
      Guest swap disk.

    data
      Application data, optionally split across datastores.
    """

    system = "system"
    swap = "swap"
    data = "data"


class DiskMode(str, Enum):
    """Provisioning mode forwarded to the create volume call."""

    thin = "thin"
    thick_eager_zeroed = "thick_eager_zeroed"
    thick_lazy_zeroed = "thick_lazy_zeroed"


class Transport(str, Enum):
    """
    Bus / controller type a volume is attached to.

    Each transport has its own unit number sequence on a VM.
    """

    lsilogic = "lsilogic"
    paravirtual = "paravirtual"


class ConnectionState(str, Enum):
    """Host connection state as reported by the inventory."""

    connected = "connected"
    disconnected = "disconnected"
    not_responding = "notResponding"


@dataclass(eq=False)
class DatastoreResource:
    """
    One storage volume as seen from a host.

    free_space is the value observed at fetch time.
    unaccounted_space is the tentative reservation counter. The allocator
    and the ledger are the only writers.

    Identity matters here: two records with the same numbers are still two
    different datastores, so equality is identity.
    """

    name: str
    shared: bool = False
    total_space: int = 0
    free_space: int = 0
    unaccounted_space: int = 0

    @property
    def real_free_space(self) -> int:
        """Free space not yet spoken for. Never negative."""
        return max(0, self.free_space - self.unaccounted_space)


@dataclass(eq=False)
class HostResource:
    """
    One hypervisor host.

    local_datastores and share_datastores map datastore name to record.
    When a name appears in both maps, both entries point at the same record.
    """

    name: str
    cluster: str = ""
    local_datastores: Dict[str, DatastoreResource] = field(default_factory=dict)
    share_datastores: Dict[str, DatastoreResource] = field(default_factory=dict)
    connection_state: ConnectionState = ConnectionState.connected

    def __post_init__(self) -> None:
        self.connection_state = ConnectionState(self.connection_state)
        for name, ds in self.local_datastores.items():
            if name in self.share_datastores:
                self.share_datastores[name] = ds

    def add_datastore(self, ds: DatastoreResource, local: bool, share: bool) -> None:
        """Index a datastore in one or both maps, reusing an existing record of the same name."""
        existing = self.local_datastores.get(ds.name) or self.share_datastores.get(ds.name)
        record = existing or ds
        if local:
            self.local_datastores[ds.name] = record
        if share:
            self.share_datastores[ds.name] = record

    @property
    def local_sum(self) -> int:
        return sum(ds.real_free_space for ds in self.local_datastores.values())

    @property
    def share_sum(self) -> int:
        return sum(ds.real_free_space for ds in self.share_datastores.values())

    @property
    def is_connected(self) -> bool:
        return self.connection_state == ConnectionState.connected

    def pool(self, shared: bool) -> List[DatastoreResource]:
        """
        Candidate datastores for a disk tier.

        Shared disks use the share map when the host has one,
        everything else falls back to the local map.
        """
        if shared and self.share_datastores:
            return list(self.share_datastores.values())
        return list(self.local_datastores.values())

    def find_datastore(self, name: str) -> DatastoreResource:
        """Return the record for a datastore name through either map."""
        ds = self.local_datastores.get(name) or self.share_datastores.get(name)
        if ds is None:
            raise UnknownDatastore(f"host {self.name} cannot see datastore {name}")
        return ds


@dataclass
class Volume:
    """
    One realized piece of a disk.

    fullpath follows the hypervisor convention
    "[datastore] vm_name/<local|shared><transport><unit>.vmdk"
    and is the key of the volume inside its Disk.
    """

    vm_ref: Optional[str]
    mode: DiskMode
    size: int
    fullpath: str
    datastore_name: str
    transport: Transport
    unit_number: int
    scsi_key: int = DEFAULT_SCSI_KEY


@dataclass
class Disk:
    """
    One disk category request.

    affinity False means the data disk is deliberately spread over every
    eligible datastore. System and swap disks always keep affinity.
    """

    kind: DiskKind
    size: int = 0
    shared: bool = False
    mode: DiskMode = DiskMode.thin
    affinity: bool = True
    volumes: Dict[str, Volume] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.kind = DiskKind(self.kind)
        self.mode = DiskMode(self.mode)
        if self.kind in (DiskKind.system, DiskKind.swap):
            self.affinity = True

    @property
    def allocated_size(self) -> int:
        return sum(v.size for v in self.volumes.values())


def _fresh_disk_index() -> Dict[Transport, int]:
    return {t: 0 for t in Transport}


@dataclass
class VM:
    """
    One placement request.

    req_mem
    Memory size of the VM. Reserved next to the system disk.

    datastore_pattern
    Optional list of regular expressions. When set, only datastores whose
    name matches one of them are candidates.

    disk_index
    Next unit number per transport.

    id and host_name are filled in once the VM exists / is placed.
    """

    name: str
    req_mem: int
    system_disk: Disk
    swap_disk: Disk
    data_disk: Disk
    id: Optional[str] = None
    host_name: Optional[str] = None
    datastore_pattern: Optional[List[str]] = None
    disk_index: Dict[Transport, int] = field(default_factory=_fresh_disk_index)

    def __post_init__(self) -> None:
        self.datastore_pattern = normalize_patterns(self.datastore_pattern)

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "VM":
        """
        Build a request from a flat option dict.

        Keys
        name, req_mem, system_size, swap_size, data_size, system_shared,
        data_shared, data_affinity, mode, datastore_pattern

        Defaults
        system disks are shared unless system_shared is False
        swap follows the system tier and defaults to req_mem in size
        data follows the system tier unless data_shared is given
        shared disks are always thin
        """
        req_mem = int(options.get("req_mem") or 0)

        system_shared = options.get("system_shared")
        if system_shared is None:
            system_shared = True
        data_shared = options.get("data_shared")
        if data_shared is None:
            data_shared = system_shared

        requested_mode = options.get("mode")

        def _mode(shared: bool) -> DiskMode:
            if shared or not requested_mode:
                return DiskMode.thin
            return DiskMode(requested_mode)

        swap_size = options.get("swap_size")
        if swap_size is None:
            swap_size = req_mem

        return cls(
            name=str(options["name"]),
            req_mem=req_mem,
            system_disk=Disk(
                kind=DiskKind.system,
                size=int(options.get("system_size") or 0),
                shared=bool(system_shared),
                mode=_mode(bool(system_shared)),
            ),
            swap_disk=Disk(
                kind=DiskKind.swap,
                size=int(swap_size),
                shared=bool(system_shared),
                mode=_mode(bool(system_shared)),
            ),
            data_disk=Disk(
                kind=DiskKind.data,
                size=int(options.get("data_size") or 0),
                shared=bool(data_shared),
                mode=_mode(bool(data_shared)),
                affinity=bool(options.get("data_affinity", False)),
            ),
            id=options.get("id"),
            datastore_pattern=options.get("datastore_pattern"),
        )

    def disk(self, kind: DiskKind) -> Disk:
        """Return the Disk of a category."""
        if kind == DiskKind.system:
            return self.system_disk
        if kind == DiskKind.swap:
            return self.swap_disk
        if kind == DiskKind.data:
            return self.data_disk
        raise ValueError(f"unknown disk kind {kind!r}")

    def disks(self) -> Iterator[Disk]:
        yield self.system_disk
        yield self.swap_disk
        yield self.data_disk

    def reserved_size(self, kind: DiskKind, size: int) -> int:
        """Space a volume of this category takes from its datastore counter."""
        if kind == DiskKind.system:
            return size + self.req_mem
        return size

    def next_unit_number(self, transport: Transport) -> int:
        """
        Hand out the next unit number on a transport.

        The counter jumps over the controller unit,
        so a sequence starting at 5 yields 5, 6, 8, 9.
        """
        unit_number = self.disk_index[transport]
        self.disk_index[transport] = unit_number + 1
        if self.disk_index[transport] == RESERVED_UNIT_NUMBER:
            self.disk_index[transport] = unit_number + 2
        return unit_number

    def add_volume(self, kind: DiskKind, volume: Volume) -> Volume:
        self.disk(kind).volumes[volume.fullpath] = volume
        return volume

    def clone(self) -> "VM":
        """Independent copy of the request, volumes and counters included."""
        return copy.deepcopy(self)

    def os_device_names(self, kind: DiskKind) -> List[str]:
        """
        Guest device names of the volumes of one category.

        Data volumes on their own paravirtual controller start counting
        after the system and swap volumes.
        """
        disk = self.disk(kind)
        offset = 0
        if kind == DiskKind.data and not disk.affinity:
            offset = len(self.system_disk.volumes) + len(self.swap_disk.volumes)
        return sorted(f"/dev/sd{DISK_DEV_LABEL[offset + v.unit_number]}" for v in disk.volumes.values())

    def system_datastore_name(self) -> Optional[str]:
        """Datastore holding the system disk, None before placement."""
        first = next(iter(self.system_disk.volumes.values()), None)
        if first is None:
            return None
        return first.datastore_name
