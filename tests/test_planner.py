from datastore_planner.core.types import DatastoreResource, DiskKind, HostResource, VM
from datastore_planner.inventory.snapshot import CapacitySnapshot
from datastore_planner.planner.planner import PlacementPlanner, PlannerConfig


def _snapshot(**hosts: dict[str, int]) -> CapacitySnapshot:
    """host name -> {local datastore name: free space}"""
    snapshot = CapacitySnapshot()
    for host_name, datastores in hosts.items():
        host = HostResource(name=host_name)
        for ds_name, free in datastores.items():
            host.add_datastore(
                DatastoreResource(name=ds_name, total_space=free * 2, free_space=free),
                local=True,
                share=False,
            )
        snapshot.add(host)
    return snapshot


def _vm(name: str = "vm1", data_affinity: bool = True, **sizes: object) -> VM:
    options = {
        "name": name,
        "req_mem": 500,
        "system_size": 2000,
        "swap_size": 1000,
        "data_size": 3000,
        "system_shared": False,
        "data_affinity": data_affinity,
    }
    options.update(sizes)
    return VM.from_options(options)


def _ds(snapshot: CapacitySnapshot, name: str) -> DatastoreResource:
    ds = snapshot.datastore(name)
    assert ds is not None
    return ds


def test_single_datastore_end_to_end():
    snapshot = _snapshot(esx1={"local1": 10000})
    planner = PlacementPlanner(snapshot)

    solution = planner.recommendation([_vm()], ["esx1"])

    assert list(solution) == ["esx1"]
    vm = solution["esx1"][0]
    assert vm.host_name == "esx1"
    for kind in (DiskKind.system, DiskKind.swap, DiskKind.data):
        volumes = list(vm.disk(kind).volumes.values())
        assert [v.datastore_name for v in volumes] == ["local1"]

    ds = _ds(snapshot, "local1")
    assert ds.unaccounted_space == 0

    reserved = planner.ledger.commission(solution["esx1"])

    assert reserved == 6500
    assert ds.unaccounted_space == 2000 + 500 + 1000 + 3000
    assert ds.real_free_space == 3500


def test_data_too_large_drops_host_and_restores_counter():
    snapshot = _snapshot(esx1={"local1": 10000})
    planner = PlacementPlanner(snapshot)

    solution = planner.recommendation([_vm(data_size=8000)], ["esx1"])

    assert solution == {}
    assert _ds(snapshot, "local1").unaccounted_space == 0


def test_failed_second_vm_rolls_back_first():
    snapshot = _snapshot(esx1={"local1": 10000})
    planner = PlacementPlanner(snapshot)

    solution = planner.recommendation([_vm("a"), _vm("b")], ["esx1"])

    assert solution == {}
    assert _ds(snapshot, "local1").unaccounted_space == 0


def test_affinity_data_lands_on_one_datastore():
    snapshot = _snapshot(esx1={"big": 10000, "small": 3000})
    planner = PlacementPlanner(snapshot)

    solution = planner.recommendation([_vm(data_size=2000, data_affinity=True)], ["esx1"])

    vm = solution["esx1"][0]
    assert vm.system_datastore_name() == "big"
    data = list(vm.data_disk.volumes.values())
    assert len(data) == 1
    assert data[0].datastore_name == "small"
    assert data[0].size == 2000


def test_affinity_data_falls_back_to_split():
    snapshot = _snapshot(esx1={"ds1": 4000, "ds2": 4000})
    planner = PlacementPlanner(snapshot)
    vm = _vm(system_size=1000, swap_size=500, data_size=4000, data_affinity=True)

    solution = planner.recommendation([vm], ["esx1"])

    data = list(solution["esx1"][0].data_disk.volumes.values())
    assert [(v.datastore_name, v.size) for v in data] == [("ds1", 1488), ("ds2", 2512)]


def test_strict_affinity_refuses_split():
    snapshot = _snapshot(esx1={"ds1": 4000, "ds2": 4000})
    planner = PlacementPlanner(snapshot, PlannerConfig(strict_affinity=True))
    vm = _vm(system_size=1000, swap_size=500, data_size=4000, data_affinity=True)

    solution = planner.recommendation([vm], ["esx1"])

    assert solution == {}
    assert _ds(snapshot, "ds1").unaccounted_space == 0
    assert _ds(snapshot, "ds2").unaccounted_space == 0


def test_split_data_sums_to_requested_size():
    snapshot = _snapshot(esx1={"ds1": 6000, "ds2": 4000})
    planner = PlacementPlanner(snapshot)
    vm = _vm(system_size=1000, swap_size=500, data_size=6001, data_affinity=False)

    solution = planner.recommendation([vm], ["esx1"])

    data = list(solution["esx1"][0].data_disk.volumes.values())
    assert len({v.datastore_name for v in data}) == 2
    assert sum(v.size for v in data) == 6001


def test_split_data_caps_small_datastore():
    snapshot = _snapshot(esx1={"ds1": 6000, "ds2": 1500})
    planner = PlacementPlanner(snapshot)
    vm = _vm(system_size=1000, swap_size=500, data_size=4000, data_affinity=False)

    solution = planner.recommendation([vm], ["esx1"])

    data = list(solution["esx1"][0].data_disk.volumes.values())
    assert [(v.datastore_name, v.size) for v in data] == [("ds2", 988), ("ds1", 3012)]


def test_split_data_that_cannot_fit_fails_host():
    snapshot = _snapshot(esx1={"ds1": 6000, "ds2": 1500})
    planner = PlacementPlanner(snapshot)
    vm = _vm(system_size=1000, swap_size=500, data_size=5000, data_affinity=False)

    solution = planner.recommendation([vm], ["esx1"])

    assert solution == {}
    assert _ds(snapshot, "ds1").unaccounted_space == 0
    assert _ds(snapshot, "ds2").unaccounted_space == 0


def test_datastore_inside_buffer_is_never_used():
    snapshot = _snapshot(esx1={"tiny": 512})
    planner = PlacementPlanner(snapshot)
    vm = _vm(req_mem=0, system_size=100, swap_size=0, data_size=0)

    assert planner.recommendation([vm], ["esx1"]) == {}


def test_name_pattern_restricts_candidates():
    snapshot = _snapshot(esx1={"slow-01": 50000, "fast-01": 20000})
    planner = PlacementPlanner(snapshot)
    vm = _vm(datastore_pattern=["^fast"])

    solution = planner.recommendation([vm], ["esx1"])

    placed = solution["esx1"][0]
    names = {v.datastore_name for disk in placed.disks() for v in disk.volumes.values()}
    assert names == {"fast-01"}


def test_next_vm_sticks_to_previous_datastore():
    snapshot = _snapshot(esx1={"ds1": 8000, "ds2": 7900})
    planner = PlacementPlanner(snapshot)
    vms = [_vm("a", data_size=0), _vm("b", data_size=0)]

    solution = planner.recommendation(vms, ["esx1"])

    assert [vm.system_datastore_name() for vm in solution["esx1"]] == ["ds1", "ds1"]


def test_system_and_swap_split_when_no_datastore_holds_both():
    snapshot = _snapshot(esx1={"ds1": 3000, "ds2": 1600})
    planner = PlacementPlanner(snapshot)
    vm = _vm(data_size=0)

    solution = planner.recommendation([vm], ["esx1"])

    placed = solution["esx1"][0]
    assert placed.system_datastore_name() == "ds1"
    assert [v.datastore_name for v in placed.swap_disk.volumes.values()] == ["ds2"]


def test_hosts_visited_by_local_free_space_and_unknown_hosts_ignored():
    snapshot = _snapshot(small={"s1": 8000}, big={"b1": 20000})
    planner = PlacementPlanner(snapshot)

    solution = planner.recommendation([_vm()], ["small", "ghost", "big"])

    assert list(solution) == ["big", "small"]


def test_every_host_plan_sees_the_same_baseline():
    snapshot = CapacitySnapshot()
    for name in ("esx1", "esx2"):
        host = HostResource(name=name)
        host.add_datastore(
            DatastoreResource(name="san1", shared=True, free_space=8000),
            local=False,
            share=True,
        )
        snapshot.add(host)
    planner = PlacementPlanner(snapshot)
    vm = _vm(system_shared=True, data_shared=True)

    solution = planner.recommendation([vm], ["esx1", "esx2"])

    assert sorted(solution) == ["esx1", "esx2"]
    assert _ds(snapshot, "san1").unaccounted_space == 0


def test_request_batch_is_not_modified():
    snapshot = _snapshot(esx1={"local1": 10000})
    planner = PlacementPlanner(snapshot)
    vm = _vm()

    planner.recommendation([vm], ["esx1"])

    assert vm.host_name is None
    assert all(not disk.volumes for disk in vm.disks())


def test_same_local_name_on_two_hosts_keeps_capacity_apart():
    snapshot = _snapshot(esx01={"datastore1": 100000}, esx02={"datastore1": 2000})
    planner = PlacementPlanner(snapshot)

    assert planner.ledger.query_capacity([_vm()], ["esx01", "esx02"]) == ["esx01"]

    solution = planner.recommendation([_vm()], ["esx01", "esx02"])

    assert list(solution) == ["esx01"]
    assert snapshot.require("esx02").local_sum == 2000
