from datastore_planner.core.types import DatastoreResource, DiskKind, Transport, VM
from datastore_planner.planner.allocator import alloc_volumes


def _vm(data_affinity: bool = False) -> VM:
    return VM.from_options(
        {
            "name": "web01",
            "id": "vm-42",
            "req_mem": 500,
            "system_size": 2000,
            "swap_size": 1000,
            "data_size": 3000,
            "system_shared": False,
            "data_affinity": data_affinity,
        }
    )


def test_system_volume_reserves_memory_too():
    vm = _vm()
    ds = DatastoreResource(name="local1", free_space=10000)

    volumes = alloc_volumes("esx1", DiskKind.system, vm, [ds], 2000)

    assert len(volumes) == 1
    assert ds.unaccounted_space == 2500
    assert vm.host_name == "esx1"
    assert volumes[0].vm_ref == "vm-42"
    assert volumes[0].fullpath == "[local1] web01/locallsilogic0.vmdk"
    assert vm.system_disk.volumes[volumes[0].fullpath] is volumes[0]


def test_swap_volume_reserves_its_size_only():
    vm = _vm()
    ds = DatastoreResource(name="local1", free_space=10000)

    alloc_volumes("esx1", DiskKind.swap, vm, [ds], 1000)

    assert ds.unaccounted_space == 1000


def test_split_data_uses_paravirtual_and_one_volume_per_datastore():
    vm = _vm(data_affinity=False)
    ds1 = DatastoreResource(name="san1", shared=True, free_space=10000)
    ds2 = DatastoreResource(name="san2", shared=True, free_space=10000)

    volumes = alloc_volumes("esx1", DiskKind.data, vm, [ds1, ds2], 1500)

    assert [v.transport for v in volumes] == [Transport.paravirtual, Transport.paravirtual]
    assert [v.unit_number for v in volumes] == [0, 1]
    assert volumes[1].fullpath == "[san2] web01/sharedparavirtual1.vmdk"
    assert ds1.unaccounted_space == 1500
    assert ds2.unaccounted_space == 1500


def test_affinity_data_shares_lsilogic_sequence():
    vm = _vm(data_affinity=True)
    ds = DatastoreResource(name="local1", free_space=10000)

    alloc_volumes("esx1", DiskKind.system, vm, [ds], 2000)
    alloc_volumes("esx1", DiskKind.swap, vm, [ds], 1000)
    data = alloc_volumes("esx1", DiskKind.data, vm, [ds], 3000)

    assert data[0].transport == Transport.lsilogic
    assert data[0].unit_number == 2
    assert vm.os_device_names(DiskKind.data) == ["/dev/sdc"]


def test_device_names_offset_for_split_data():
    vm = _vm(data_affinity=False)
    ds = DatastoreResource(name="local1", free_space=100000)

    alloc_volumes("esx1", DiskKind.system, vm, [ds], 2000)
    alloc_volumes("esx1", DiskKind.swap, vm, [ds], 1000)
    alloc_volumes("esx1", DiskKind.data, vm, [ds, ds], 1500)

    assert vm.os_device_names(DiskKind.system) == ["/dev/sda"]
    assert vm.os_device_names(DiskKind.swap) == ["/dev/sdb"]
    assert vm.os_device_names(DiskKind.data) == ["/dev/sdc", "/dev/sdd"]
    assert vm.system_datastore_name() == "local1"
