"""
Error taxonomy.

We separate error types so callers can react correctly.
Example:
InsufficientCapacity is recovered inside the planner, the host is skipped.
ProvisioningFailure is surfaced after created volumes were rolled back.
CollaboratorAuthError is fatal and ends the session.
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for all planner exceptions."""


class InsufficientCapacity(PlannerError):
    """Raised when the eligible datastores of a host cannot hold a VM disk set."""

    def __init__(self, message: str, host: str = "", vm: str = "") -> None:
        super().__init__(message)
        self.host = host
        self.vm = vm


class NoEligibleDatastore(InsufficientCapacity):
    """Raised when every candidate was dropped by the name pattern or the buffer rule."""


class UnknownHost(PlannerError):
    """Raised when an operation references a host missing from the snapshot."""


class UnknownDatastore(PlannerError):
    """Raised when a volume references a datastore the host cannot see."""


class ProvisioningFailure(PlannerError):
    """Raised when a create or destroy call against the hypervisor did not succeed."""


class TransientFault(PlannerError):
    """Retryable collaborator fault. Converted into a failed result like any other fault."""


class CollaboratorAuthError(PlannerError):
    """Authentication or certificate failure at the collaborator boundary. Never recovered."""


class SessionClosed(PlannerError):
    """Raised when a discarded PlacementSession is used again."""
