"""
Placement session.

A session owns exactly one CapacitySnapshot for its lifetime:

fetch -> query_capacity -> recommendation -> commission or recovery -> close

Every operation runs under one lock, so concurrent callers sharing a
session see the reservation counters change one operation at a time.

Ledger contract at this boundary
recommendation returns host plans with nothing reserved.
commission reserves an accepted host plan.
decommission releases a commissioned plan.
recovery cancels a plan whose deltas the allocator added and that was
never commissioned. Calling both decommission and recovery for one plan
releases its space twice.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from datastore_planner.core.errors import SessionClosed
from datastore_planner.core.matching import PatternSpec
from datastore_planner.core.types import VM
from datastore_planner.execution.base import ProvisionerConfig, ProvisionResult, VolumeClient
from datastore_planner.execution.provisioner import VolumeProvisioner
from datastore_planner.inventory.plugins.base import InventorySource
from datastore_planner.inventory.snapshot import CapacitySnapshot
from datastore_planner.planner.ledger import CapacityLedger
from datastore_planner.planner.planner import PlacementPlanner, PlannerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionConfig:
    """
    Session configuration.

    planner
    Buffer size and affinity policy for placement.

    provisioner
    Options for create and delete calls.
    """

    planner: PlannerConfig = field(default_factory=PlannerConfig)
    provisioner: ProvisionerConfig = field(default_factory=ProvisionerConfig)


class PlacementSession:
    """
    One planning session.

    source
    Where the snapshot comes from.

    client
    Optional volume client. Needed only for create_volumes / delete_volumes.
    """

    def __init__(
        self,
        source: InventorySource,
        client: VolumeClient | None = None,
        config: SessionConfig | None = None,
    ) -> None:
        self._source = source
        self._config = config or SessionConfig()
        self._provisioner = (
            VolumeProvisioner(client, self._config.provisioner) if client is not None else None
        )
        self._lock = threading.RLock()
        self._planner: Optional[PlacementPlanner] = None
        self._closed = False

    def __enter__(self) -> "PlacementSession":
        self.fetch()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def snapshot(self) -> CapacitySnapshot:
        with self._lock:
            return self._planner_locked().snapshot

    def fetch(
        self,
        share_pattern: PatternSpec = None,
        local_pattern: PatternSpec = None,
    ) -> CapacitySnapshot:
        """
        Load a fresh snapshot.

        Every reservation made against the previous snapshot is dropped.
        """
        with self._lock:
            self._check_open()
            return self._fetch_locked(share_pattern, local_pattern).snapshot

    def query_capacity(
        self,
        vms: Sequence[VM],
        hosts: Iterable[str],
        share_pattern: PatternSpec = None,
        local_pattern: PatternSpec = None,
    ) -> list[str]:
        """
        Hosts with enough aggregate slack for the batch.

        Passing a share or local pattern fetches the snapshot again with that
        classification first.
        """
        with self._lock:
            self._check_open()
            if share_pattern is not None or local_pattern is not None:
                planner = self._fetch_locked(share_pattern, local_pattern)
            else:
                planner = self._planner_locked()
            return planner.ledger.query_capacity(vms, hosts)

    def recommendation(self, vms: Sequence[VM], hosts: Iterable[str]) -> dict[str, list[VM]]:
        with self._lock:
            return self._planner_locked().recommendation(vms, hosts)

    def commission(self, vms: Sequence[VM]) -> int:
        with self._lock:
            return self._planner_locked().ledger.commission(vms)

    def decommission(self, vms: Sequence[VM]) -> int:
        with self._lock:
            return self._planner_locked().ledger.decommission(vms)

    def recovery(self, vms: Sequence[VM]) -> int:
        with self._lock:
            return self._planner_locked().ledger.recovery(vms)

    def create_volumes(self, vm: VM) -> ProvisionResult:
        with self._lock:
            self._check_open()
            return self._require_provisioner().create_volumes(vm)

    def delete_volumes(self, vm: VM) -> ProvisionResult:
        with self._lock:
            self._check_open()
            return self._require_provisioner().delete_volumes(vm)

    def close(self) -> None:
        """Discard the snapshot. The session cannot be used afterward."""
        with self._lock:
            self._planner = None
            self._closed = True
            logger.debug("placement session closed")

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosed("placement session is closed")

    def _fetch_locked(
        self,
        share_pattern: PatternSpec = None,
        local_pattern: PatternSpec = None,
    ) -> PlacementPlanner:
        """Build snapshot, ledger and planner together. The planner owns the other two."""
        snapshot = self._source.load(share_pattern=share_pattern, local_pattern=local_pattern)
        planner = PlacementPlanner(snapshot, self._config.planner, CapacityLedger(snapshot))
        self._planner = planner
        logger.info("snapshot fetched with %d hosts", len(snapshot.names()))
        return planner

    def _planner_locked(self) -> PlacementPlanner:
        self._check_open()
        if self._planner is None:
            return self._fetch_locked()
        return self._planner

    def _require_provisioner(self) -> VolumeProvisioner:
        if self._provisioner is None:
            raise ValueError("placement session has no volume client")
        return self._provisioner
