"""
Static inventory source.

Reads a local json file that describes hosts and the datastores they see.
This is useful for dev, tests, offline what-if planning and small demos.

Schema example
{
  "hosts": [
    {
      "name": "esx01",
      "cluster": "cluster-a",
      "connection_state": "connected",
      "datastores": [
        {"name": "esx01-local", "shared": false, "total_space": 200000, "free_space": 150000},
        {"name": "san-01", "shared": true, "total_space": 900000, "free_space": 400000}
      ]
    }
  ]
}

Classification
Without patterns a datastore lands in the share map when "shared" is true
and in the local map otherwise. With share_pattern / local_pattern the
names decide instead, and a datastore matching both lands in both maps as
one record.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from datastore_planner.core.matching import PatternSpec, name_matches, normalize_patterns
from datastore_planner.core.types import ConnectionState, DatastoreResource, HostResource
from datastore_planner.inventory.plugins.base import InventoryLoadResult, InventorySource
from datastore_planner.inventory.snapshot import CapacitySnapshot

logger = logging.getLogger(__name__)


def _datastore_from_dict(obj: dict[str, Any]) -> DatastoreResource:
    """Convert a datastore dict into a DatastoreResource."""
    return DatastoreResource(
        name=str(obj["name"]),
        shared=bool(obj.get("shared", False)),
        total_space=int(obj.get("total_space", 0) or 0),
        free_space=int(obj.get("free_space", 0) or 0),
    )


def _classify(
    ds: DatastoreResource,
    share_pattern: Optional[list[str]],
    local_pattern: Optional[list[str]],
) -> tuple[bool, bool]:
    """Return (local, share) membership for one datastore."""
    if share_pattern is None and local_pattern is None:
        return (not ds.shared, ds.shared)

    share = share_pattern is not None and name_matches(ds.name, share_pattern)
    local = local_pattern is not None and name_matches(ds.name, local_pattern)
    return (local, share)


def _host_from_dict(
    obj: dict[str, Any],
    share_pattern: Optional[list[str]],
    local_pattern: Optional[list[str]],
) -> HostResource:
    """Convert a host dict into a HostResource."""
    host = HostResource(
        name=str(obj["name"]),
        cluster=str(obj.get("cluster", "")),
        connection_state=ConnectionState(str(obj.get("connection_state", "connected"))),
    )

    datastores_obj = obj.get("datastores", []) or []
    for raw in datastores_obj:
        if not isinstance(raw, dict):
            continue
        ds = _datastore_from_dict(raw)
        local, share = _classify(ds, share_pattern, local_pattern)
        if not local and not share:
            logger.debug("host %s skips datastore %s, no pattern matched", host.name, ds.name)
            continue
        host.add_datastore(ds, local=local, share=share)

    return host


def snapshot_from_dict(
    data: dict[str, Any],
    share_pattern: PatternSpec = None,
    local_pattern: PatternSpec = None,
    clusters: Optional[Sequence[str]] = None,
) -> CapacitySnapshot:
    """
    Build a CapacitySnapshot from the schema described in the module docstring.

    clusters restricts the snapshot to hosts of the named clusters.
    """
    share = normalize_patterns(share_pattern)
    local = normalize_patterns(local_pattern)

    snapshot = CapacitySnapshot()
    hosts = data.get("hosts", [])
    if not isinstance(hosts, list):
        return snapshot

    for obj in hosts:
        if not isinstance(obj, dict):
            continue
        if clusters is not None and str(obj.get("cluster", "")) not in clusters:
            continue
        snapshot.add(_host_from_dict(obj, share, local))

    logger.debug("snapshot built with %d hosts", len(snapshot.names()))
    return snapshot


@dataclass(frozen=True)
class StaticInventorySource(InventorySource):
    """
    Load inventory from a local json file.

    path points to a json file that matches the schema described in the module docstring.

    share_pattern and local_pattern are the defaults used when load is called
    without explicit patterns.
    """

    path: Path
    share_pattern: PatternSpec = None
    local_pattern: PatternSpec = None
    clusters: Optional[tuple[str, ...]] = None

    def load(
        self,
        share_pattern: PatternSpec = None,
        local_pattern: PatternSpec = None,
    ) -> CapacitySnapshot:
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if share_pattern is None and local_pattern is None:
            share_pattern = self.share_pattern
            local_pattern = self.local_pattern
        return snapshot_from_dict(data, share_pattern, local_pattern, self.clusters)

    def load_with_evidence(self) -> InventoryLoadResult:
        """Load and report where the snapshot came from and how big it is."""
        snapshot = self.load()
        hosts = snapshot.all()
        evidence: dict[str, object] = {
            "source": str(self.path),
            "hosts": len(hosts),
            "connected_hosts": sum(1 for h in hosts if h.is_connected),
            "local_space": sum(h.local_sum for h in hosts),
            "share_space": sum(h.share_sum for h in hosts),
        }
        return InventoryLoadResult(snapshot=snapshot, evidence=evidence)
