"""
Capacity ledger.

Purpose
Query and mutate the tentative reservation counters of a CapacitySnapshot.

One counter
Every operation works on DatastoreResource.unaccounted_space. There is no
second "committed" counter. What differs is the phase of the workflow:

commission
  Reserve the space of an accepted plan so later planning calls in the same
  session see it as taken.

decommission
  Release the space of a commissioned plan, for example after its VMs were
  torn down. Exact inverse of commission.

recovery
  Cancel a tentative plan. The allocator already added the deltas while the
  plan was being assembled, recovery takes them back out.

recovery and decommission perform identical arithmetic. Calling both for
the same plan subtracts twice. A plan is either cancelled with recovery
(it was never commissioned) or released with decommission (it was).

Reserved size per volume
system volumes reserve size plus the VM memory, everything else reserves size.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

from datastore_planner.core.errors import UnknownHost
from datastore_planner.core.types import VM
from datastore_planner.inventory.snapshot import CapacitySnapshot

logger = logging.getLogger(__name__)


def required_space(vms: Iterable[VM]) -> tuple[int, int]:
    """
    Aggregate requirement of a batch as (local, share).

    Each disk counts toward the tier it asks for.
    """
    local = 0
    share = 0
    for vm in vms:
        for disk in vm.disks():
            if disk.shared:
                share += disk.size
            else:
                local += disk.size
    return local, share


class CapacityLedger:
    """Reservation bookkeeping over one CapacitySnapshot."""

    def __init__(self, snapshot: CapacitySnapshot) -> None:
        self._snapshot = snapshot

    @property
    def snapshot(self) -> CapacitySnapshot:
        return self._snapshot

    def query_capacity(self, vms: Sequence[VM], hosts: Iterable[str]) -> list[str]:
        """
        Cheap pre filter.

        Keep connected hosts whose local and share sums each cover the batch
        requirement of that tier. Passing the filter does not guarantee that
        the planner finds a placement on the host.
        """
        total_local, total_share = required_space(vms)

        fit_hosts: list[str] = []
        for host_name in hosts:
            host = self._snapshot.get(host_name)
            if host is None:
                continue
            logger.debug(
                "host %s local_sum=%d need %d share_sum=%d need %d state=%s",
                host_name,
                host.local_sum,
                total_local,
                host.share_sum,
                total_share,
                host.connection_state.value,
            )
            if not host.is_connected:
                continue
            if host.local_sum < total_local:
                continue
            if host.share_sum < total_share:
                continue
            fit_hosts.append(host_name)

        return fit_hosts

    def commission(self, vms: Sequence[VM]) -> int:
        """
        Reserve the space of an accepted plan.

        Returns how much the combined free space of the touched hosts dropped.
        """
        if not vms:
            return 0
        before = self._combined_free(vms)
        self._apply(vms, 1)
        difference = before - self._combined_free(vms)
        logger.info("commission of %d vms reserved %d", len(vms), difference)
        return difference

    def decommission(self, vms: Sequence[VM]) -> int:
        """
        Release the space of a commissioned plan.

        Returns how much the combined free space of the touched hosts grew.
        """
        if not vms:
            return 0
        before = self._combined_free(vms)
        self._apply(vms, -1)
        difference = self._combined_free(vms) - before
        logger.info("decommission of %d vms released %d", len(vms), difference)
        return difference

    def recovery(self, vms: Sequence[VM]) -> int:
        """
        Cancel a tentative plan whose deltas were added by the allocator.

        Returns how much the combined free space of the touched hosts grew.
        """
        if not vms:
            return 0
        before = self._combined_free(vms)
        self._apply(vms, -1)
        difference = self._combined_free(vms) - before
        logger.debug("recovery of %d vms released %d", len(vms), difference)
        return difference

    def _apply(self, vms: Sequence[VM], sign: int) -> None:
        for vm in vms:
            placed = [v for disk in vm.disks() for v in disk.volumes.values()]
            if not placed:
                continue
            if vm.host_name is None:
                raise UnknownHost(f"vm {vm.name} has volumes but no host")

            host = self._snapshot.require(vm.host_name)
            for disk in vm.disks():
                for volume in disk.volumes.values():
                    ds = host.find_datastore(volume.datastore_name)
                    delta = vm.reserved_size(disk.kind, volume.size)
                    ds.unaccounted_space += sign * delta
                    logger.debug(
                        "ledger %s%d on %s for vm %s %s, real free now %d",
                        "+" if sign > 0 else "-",
                        delta,
                        ds.name,
                        vm.name,
                        disk.kind.value,
                        ds.real_free_space,
                    )

    def _combined_free(self, vms: Sequence[VM]) -> int:
        total = 0
        seen: set[str] = set()
        for vm in vms:
            if vm.host_name is None or vm.host_name in seen:
                continue
            seen.add(vm.host_name)
            host = self._snapshot.require(vm.host_name)
            total += host.local_sum + host.share_sum
        return total
