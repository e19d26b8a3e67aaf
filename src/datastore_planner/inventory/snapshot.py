"""
Capacity snapshot.

We keep a simple in memory registry of hosts as the normalized view of the
virtualization inventory at fetch time.

The snapshot is mutated in place by the ledger for the life of a planning
session and discarded, or fetched again, afterward.

A shared datastore name maps to exactly one DatastoreResource across all
hosts, so it carries one reservation counter no matter which host reserved
space on it. Local datastores stay owned by their host: two hosts may both
have a local datastore1 and each keeps its own record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from datastore_planner.core.errors import UnknownHost
from datastore_planner.core.types import DatastoreResource, HostResource


@dataclass
class CapacitySnapshot:
    """
    Host registry keyed by host name.

    This is enough for:
    capacity queries
    placement
    ledger updates
    """

    _hosts: Dict[str, HostResource] = field(default_factory=dict)
    _shared: Dict[str, DatastoreResource] = field(default_factory=dict)

    def add(self, host: HostResource) -> None:
        """Add or replace a host, reusing already known shared datastore records by name."""
        for map_name in ("local_datastores", "share_datastores"):
            ds_map = getattr(host, map_name)
            for name, ds in list(ds_map.items()):
                if not (ds.shared or name in host.share_datastores):
                    continue
                known = self._shared.setdefault(name, ds)
                ds_map[name] = known
        self._hosts[host.name] = host

    def get(self, name: str) -> Optional[HostResource]:
        """Return host record if present."""
        return self._hosts.get(name)

    def require(self, name: str) -> HostResource:
        """Return host record or raise UnknownHost."""
        host = self._hosts.get(name)
        if host is None:
            raise UnknownHost(f"host {name} is not part of the capacity snapshot")
        return host

    def datastore(self, name: str, host: Optional[str] = None) -> Optional[DatastoreResource]:
        """
        Return a datastore record by name.

        With host given the lookup goes through that host only. Without it a
        shared record wins, then the first host in name order that has a
        local datastore of that name.
        """
        if host is not None:
            record = self.require(host)
            return record.local_datastores.get(name) or record.share_datastores.get(name)
        if name in self._shared:
            return self._shared[name]
        for host_name in self.names():
            ds = self._hosts[host_name].local_datastores.get(name)
            if ds is not None:
                return ds
        return None

    def all(self) -> List[HostResource]:
        """Return all hosts as a list."""
        return list(self._hosts.values())

    def names(self) -> List[str]:
        """Return sorted host names. Useful for deterministic outputs."""
        return sorted(self._hosts.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._hosts

    def __iter__(self) -> Iterator[HostResource]:
        """Allow for loops over CapacitySnapshot."""
        return iter(self._hosts.values())
