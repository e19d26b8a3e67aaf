"""
Placement planner.

Purpose
Fit a batch of VM disk sets onto candidate hosts. For every host the whole
batch is tried in the caller's order. The result maps each host that can
take the full batch to the list of planned VMs, so the caller can pick one
host plan and commission it.

Per VM on a host
1) system and swap, candidates sorted by real free space descending with
   the datastore used by the previous VM on this host moved to the front
2) data, candidates sorted ascending, either kept together (affinity) or
   spread over every candidate (split)

Filters applied to every candidate list
the VM datastore name pattern, and the buffer rule: a datastore whose real
free space is at or below buffer_size is never a candidate.

Failure handling
Any InsufficientCapacity while placing a VM abandons the host. Everything
the allocator reserved for that host, the failing VM included, is released
through the ledger's recovery and the planner moves on. Placement errors
never leave this module.

Host plans are alternatives. Once a host plan is complete its tentative
reservations are released as well, so every host is evaluated against the
same snapshot and nothing stays reserved until the caller commissions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from datastore_planner.core.errors import InsufficientCapacity, NoEligibleDatastore
from datastore_planner.core.matching import name_matches
from datastore_planner.core.types import DatastoreResource, DiskKind, HostResource, VM
from datastore_planner.inventory.snapshot import CapacitySnapshot
from datastore_planner.planner.allocator import alloc_volumes
from datastore_planner.planner.ledger import CapacityLedger

logger = logging.getLogger(__name__)


@dataclass
class PlannerConfig:
    """
    Planner configuration.

    buffer_size
    Headroom kept free on every datastore for metadata and rounding.
    Never allocated.

    strict_affinity
    When False, a data disk with affinity that fits on no single datastore
    is still split over several, matching long standing behavior.
    When True, that case fails the host instead.
    """

    buffer_size: int = 512
    strict_affinity: bool = False


class PlacementPlanner:
    """Greedy bin packing of VM disk sets onto the hosts of one snapshot."""

    def __init__(
        self,
        snapshot: CapacitySnapshot,
        config: PlannerConfig | None = None,
        ledger: CapacityLedger | None = None,
    ) -> None:
        self._snapshot = snapshot
        self._config = config or PlannerConfig()
        self._ledger = ledger or CapacityLedger(snapshot)

    @property
    def snapshot(self) -> CapacitySnapshot:
        return self._snapshot

    @property
    def ledger(self) -> CapacityLedger:
        return self._ledger

    def recommendation(self, vms: Sequence[VM], hosts: Iterable[str]) -> dict[str, list[VM]]:
        """
        Plan the batch on every candidate host.

        Hosts are visited by descending local free space. Unknown host names
        are ignored. The requests in vms are never modified, each host works
        on clones.
        """
        known: list[HostResource] = []
        for host_name in dict.fromkeys(hosts):
            host = self._snapshot.get(host_name)
            if host is not None:
                known.append(host)
        known.sort(key=lambda h: h.local_sum, reverse=True)

        solution: dict[str, list[VM]] = {}
        for host in known:
            placed = self._plan_host(host, vms)
            if placed is None:
                continue
            self._ledger.recovery(placed)
            solution[host.name] = placed

        logger.info(
            "recommendation for %d vms: %d of %d hosts fit",
            len(vms),
            len(solution),
            len(known),
        )
        return solution

    def _plan_host(self, host: HostResource, vms: Sequence[VM]) -> Optional[list[VM]]:
        """Place the whole batch on one host, or roll the host back and return None."""
        placed: list[VM] = []
        cached: Optional[DatastoreResource] = None

        for request in vms:
            vm = request.clone()
            try:
                cached = self._place_system_and_swap(host, vm, cached)
                if vm.data_disk.affinity:
                    self._place_data_affinity(host, vm)
                else:
                    self._place_data_split(host, vm)
            except InsufficientCapacity as exc:
                logger.warning("host %s abandoned at vm %s: %s", host.name, vm.name, exc)
                self._ledger.recovery(placed + [vm])
                return None
            placed.append(vm)

        return placed

    def _candidates(
        self,
        host: HostResource,
        vm: VM,
        shared: bool,
        descending: bool,
        cached: Optional[DatastoreResource] = None,
    ) -> list[DatastoreResource]:
        """Sorted, filtered candidate datastores for one disk tier."""
        pool = sorted(host.pool(shared), key=lambda ds: ds.real_free_space, reverse=descending)
        if cached is not None and cached in pool:
            pool.remove(cached)
            pool.insert(0, cached)

        eligible: list[DatastoreResource] = []
        for ds in pool:
            if not name_matches(ds.name, vm.datastore_pattern):
                logger.debug("datastore %s does not match pattern of vm %s", ds.name, vm.name)
                continue
            if ds.real_free_space <= self._config.buffer_size:
                logger.debug("datastore %s is within the buffer, %d left", ds.name, ds.real_free_space)
                continue
            eligible.append(ds)

        if not eligible:
            raise NoEligibleDatastore(
                f"no eligible datastore on host {host.name} for vm {vm.name}",
                host=host.name,
                vm=vm.name,
            )
        return eligible

    def _require(self, host: HostResource, vm: VM, candidates: list[DatastoreResource], size: int, what: str) -> None:
        available = sum(ds.real_free_space for ds in candidates)
        if available < size:
            raise InsufficientCapacity(
                f"{what} of vm {vm.name} needs {size}, host {host.name} has {available}",
                host=host.name,
                vm=vm.name,
            )

    def _place_system_and_swap(
        self,
        host: HostResource,
        vm: VM,
        cached: Optional[DatastoreResource],
    ) -> Optional[DatastoreResource]:
        """
        Place system and swap, return the datastore to prefer for the next VM.

        Both go to the first datastore that holds memory, system and swap.
        Failing that, each goes to the first datastore that holds it alone.
        """
        system = vm.system_disk
        swap = vm.swap_disk
        need_system = vm.req_mem + system.size
        need_all = need_system + swap.size

        candidates = self._candidates(host, vm, system.shared, descending=True, cached=cached)
        self._require(host, vm, candidates, need_all, "system and swap")

        system_done = False
        swap_done = False
        for ds in candidates:
            if not system_done and not swap_done and ds.real_free_space >= need_all:
                alloc_volumes(host.name, DiskKind.system, vm, [ds], system.size)
                alloc_volumes(host.name, DiskKind.swap, vm, [ds], swap.size)
                return ds
            if not system_done and ds.real_free_space >= need_system:
                alloc_volumes(host.name, DiskKind.system, vm, [ds], system.size)
                system_done = True
            elif not swap_done and ds.real_free_space >= swap.size:
                alloc_volumes(host.name, DiskKind.swap, vm, [ds], swap.size)
                swap_done = True
            if system_done and swap_done:
                return cached

        missing = "system" if not system_done else "swap"
        raise InsufficientCapacity(
            f"no single datastore on host {host.name} holds the {missing} disk of vm {vm.name}",
            host=host.name,
            vm=vm.name,
        )

    def _place_data_affinity(self, host: HostResource, vm: VM) -> None:
        """
        Keep the data disk on one datastore when possible.

        Smallest fitting datastore first so large ones stay free for large
        requests. When none fits alone, the disk is spread over datastores
        in ascending order unless strict_affinity is set.
        """
        data = vm.data_disk
        if data.size <= 0:
            return

        buffer_size = self._config.buffer_size
        candidates = self._candidates(host, vm, data.shared, descending=False)
        self._require(host, vm, candidates, data.size, "data")

        pieces: list[tuple[DatastoreResource, int]] = []
        left = data.size
        for ds in candidates:
            usable = ds.real_free_space - buffer_size
            if usable >= left:
                pieces.append((ds, left))
                left = 0
                break
            if self._config.strict_affinity:
                continue
            pieces.append((ds, usable))
            left -= usable

        if left > 0 or not pieces:
            raise InsufficientCapacity(
                f"data of vm {vm.name} does not fit on host {host.name}, {left} left over",
                host=host.name,
                vm=vm.name,
            )

        if len(pieces) > 1:
            logger.warning(
                "data disk of vm %s has affinity but is split over %d datastores on host %s",
                vm.name,
                len(pieces),
                host.name,
            )

        for ds, size in pieces:
            alloc_volumes(host.name, DiskKind.data, vm, [ds], size)

    def _place_data_split(self, host: HostResource, vm: VM) -> None:
        """
        Spread the data disk over every eligible datastore.

        Water filling: each datastore takes an even share of what is left,
        capped by its own free space minus buffer. The last one takes the
        remainder, so the pieces add up to the requested size exactly.
        """
        data = vm.data_disk
        if data.size <= 0:
            return

        buffer_size = self._config.buffer_size
        candidates = self._candidates(host, vm, data.shared, descending=False)
        self._require(host, vm, candidates, data.size, "data")

        pieces: list[tuple[DatastoreResource, int]] = []
        remaining = data.size
        count = len(candidates)
        for index, ds in enumerate(candidates):
            left_count = count - index
            share = remaining if left_count == 1 else remaining // left_count
            take = min(share, ds.real_free_space - buffer_size)
            if take > 0:
                pieces.append((ds, take))
                remaining -= take

        if remaining > 0:
            raise InsufficientCapacity(
                f"data of vm {vm.name} cannot be spread on host {host.name}, {remaining} left over",
                host=host.name,
                vm=vm.name,
            )

        for ds, size in pieces:
            alloc_volumes(host.name, DiskKind.data, vm, [ds], size)
