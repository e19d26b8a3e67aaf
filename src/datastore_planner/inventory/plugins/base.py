"""
Inventory source interfaces.

Goal
Provide pluggable inventory ingestion so the planner does not care whether
hosts come from a vCenter session, a JSON file or a test fixture.

Inventory is normalized into CapacitySnapshot and HostResource objects.

We keep the interface narrow so it is easy to mock in tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from datastore_planner.core.matching import PatternSpec
from datastore_planner.inventory.snapshot import CapacitySnapshot


class InventorySource(Protocol):
    """
    Inventory source interface.

    load returns a fully populated CapacitySnapshot with every counter at zero.

    share_pattern and local_pattern override how datastores are classified
    into the share and local maps of each host.
    """

    def load(
        self,
        share_pattern: PatternSpec = None,
        local_pattern: PatternSpec = None,
    ) -> CapacitySnapshot:
        """Load inventory into a CapacitySnapshot."""


@dataclass(frozen=True)
class InventoryLoadResult:
    """
    Optional result type if you want evidence.

    snapshot is the normalized inventory.
    evidence is structured metadata about source and counts.
    """

    snapshot: CapacitySnapshot
    evidence: dict[str, object]
