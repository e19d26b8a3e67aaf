"""
datastore_planner

This package plans where virtual machine disks land on hypervisor hosts and
their datastores, and tracks tentative reservations across planning calls.

We keep modules small and well separated:
core contains shared data structures, errors and logging setup
inventory contains the capacity snapshot and its sources
planner contains the allocator, the bin packing planner and the ledger
execution contains the volume client interface and provisioning rollback
session ties one snapshot to one lock and one lifetime
"""
