import pytest

from datastore_planner.core.errors import UnknownDatastore, UnknownHost
from datastore_planner.core.types import ConnectionState, DatastoreResource, DiskKind, HostResource, VM
from datastore_planner.inventory.snapshot import CapacitySnapshot
from datastore_planner.planner.allocator import alloc_volumes
from datastore_planner.planner.ledger import CapacityLedger, required_space
from datastore_planner.planner.planner import PlacementPlanner


def _make_snapshot() -> CapacitySnapshot:
    snapshot = CapacitySnapshot()

    esx1 = HostResource(name="esx1", cluster="c1")
    esx1.add_datastore(DatastoreResource(name="local1", free_space=10000), local=True, share=False)
    esx1.add_datastore(DatastoreResource(name="san1", shared=True, free_space=20000), local=False, share=True)
    snapshot.add(esx1)

    esx2 = HostResource(name="esx2", cluster="c1", connection_state=ConnectionState.disconnected)
    esx2.add_datastore(DatastoreResource(name="local2", free_space=90000), local=True, share=False)
    snapshot.add(esx2)

    esx3 = HostResource(name="esx3", cluster="c1")
    esx3.add_datastore(DatastoreResource(name="local3", free_space=1000), local=True, share=False)
    snapshot.add(esx3)
    return snapshot


def _vm(name: str = "vm1") -> VM:
    return VM.from_options(
        {
            "name": name,
            "req_mem": 500,
            "system_size": 2000,
            "swap_size": 1000,
            "data_size": 3000,
            "system_shared": False,
            "data_shared": True,
        }
    )


def _counters(snapshot: CapacitySnapshot) -> dict[str, int]:
    return {
        name: ds.unaccounted_space
        for host in snapshot
        for name, ds in {**host.local_datastores, **host.share_datastores}.items()
    }


def test_required_space_by_tier():
    assert required_space([_vm("a"), _vm("b")]) == (6000, 6000)


def test_query_capacity_filters_state_and_slack():
    snapshot = _make_snapshot()
    ledger = CapacityLedger(snapshot)

    fit = ledger.query_capacity([_vm()], ["esx1", "esx2", "esx3", "ghost"])

    assert fit == ["esx1"]


def test_commission_then_decommission_round_trip():
    snapshot = _make_snapshot()
    planner = PlacementPlanner(snapshot)
    ledger = planner.ledger
    before = _counters(snapshot)

    solution = planner.recommendation([_vm("a"), _vm("b")], ["esx1"])
    plan = solution["esx1"]

    reserved = ledger.commission(plan)
    assert reserved == 2 * (2000 + 500 + 1000 + 3000)
    assert snapshot.datastore("local1").unaccounted_space == 7000
    assert snapshot.datastore("san1").unaccounted_space == 6000

    released = ledger.decommission(plan)
    assert released == reserved
    assert _counters(snapshot) == before


def test_commission_survives_into_next_planning_call():
    snapshot = _make_snapshot()
    planner = PlacementPlanner(snapshot)

    first = planner.recommendation([_vm("a")], ["esx1"])
    planner.ledger.commission(first["esx1"])
    second = planner.recommendation([_vm("b"), _vm("c")], ["esx1"])

    assert second == {}
    assert snapshot.datastore("local1").unaccounted_space == 3500


def test_recovery_restores_host_sums_after_partial_placement():
    snapshot = _make_snapshot()
    ledger = CapacityLedger(snapshot)
    host = snapshot.require("esx1")
    local_before, share_before = host.local_sum, host.share_sum

    vm = _vm()
    alloc_volumes("esx1", DiskKind.system, vm, [host.local_datastores["local1"]], 2000)
    alloc_volumes("esx1", DiskKind.swap, vm, [host.local_datastores["local1"]], 1000)
    alloc_volumes("esx1", DiskKind.data, vm, [host.share_datastores["san1"]], 1200)
    assert host.local_sum == local_before - 3500

    released = ledger.recovery([vm])

    assert released == 4700
    assert host.local_sum == local_before
    assert host.share_sum == share_before


def test_empty_lists_are_no_ops():
    ledger = CapacityLedger(_make_snapshot())

    assert ledger.commission([]) == 0
    assert ledger.decommission([]) == 0
    assert ledger.recovery([]) == 0


def test_datastore_visible_both_ways_is_counted_once():
    snapshot = CapacitySnapshot()
    host = HostResource(name="esx1")
    host.add_datastore(DatastoreResource(name="both", free_space=10000), local=True, share=True)
    snapshot.add(host)
    ledger = CapacityLedger(snapshot)

    vm = _vm()
    alloc_volumes("esx1", DiskKind.data, vm, [host.share_datastores["both"]], 3000)
    ledger.recovery([vm])
    ledger.commission([vm])

    assert host.local_datastores["both"].unaccounted_space == 3000
    assert host.share_datastores["both"].real_free_space == 7000


def test_unknown_references_raise():
    snapshot = _make_snapshot()
    ledger = CapacityLedger(snapshot)

    vm = _vm()
    alloc_volumes("esx9", DiskKind.swap, vm, [DatastoreResource(name="local1", free_space=5000)], 10)
    with pytest.raises(UnknownHost):
        ledger.commission([vm])

    other = _vm()
    alloc_volumes("esx1", DiskKind.swap, other, [DatastoreResource(name="elsewhere", free_space=5000)], 10)
    with pytest.raises(UnknownDatastore):
        ledger.commission([other])
