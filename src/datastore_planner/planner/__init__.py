"""
Planner package.

This makes the planner folder an explicit package so both Python and mypy
resolve modules consistently.
"""

from datastore_planner.planner.ledger import CapacityLedger, required_space
from datastore_planner.planner.planner import PlacementPlanner, PlannerConfig

__all__ = ["CapacityLedger", "PlacementPlanner", "PlannerConfig", "required_space"]
