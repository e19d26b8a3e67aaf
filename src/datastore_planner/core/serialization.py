from __future__ import annotations

from dataclasses import asdict
from typing import Any


def _normalize(obj: Any) -> Any:
    if hasattr(obj, "value"):
        return obj.value
    if isinstance(obj, dict):
        return {str(_normalize(k)): _normalize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_normalize(v) for v in obj]
    return obj


def to_json_safe_dict(obj: Any) -> dict[str, Any]:
    """
    Convert a dataclass object into a JSON safe dict.

    This is intended for transport only.
    """
    raw = asdict(obj)
    normalized = _normalize(raw)
    if not isinstance(normalized, dict):
        raise TypeError("expected dict after normalization")
    return normalized


def solution_to_json(solution: dict[str, list[Any]]) -> dict[str, Any]:
    """
    Placement solution transport shape.

    host name -> list of VM dicts, each carrying its allocated volumes.
    """
    return {
        "hosts": {
            host_name: [to_json_safe_dict(vm) for vm in vms]
            for host_name, vms in solution.items()
        }
    }


def snapshot_to_json(snapshot: Any) -> dict[str, Any]:
    """
    CapacitySnapshot transport shape.

    We only rely on snapshot.all returning HostResource dataclasses.
    real_free_space is a property, so it is added per datastore.
    """
    hosts = []
    for host in snapshot.all():
        raw = to_json_safe_dict(host)
        for map_name in ("local_datastores", "share_datastores"):
            for ds_name, ds in getattr(host, map_name).items():
                raw[map_name][ds_name]["real_free_space"] = ds.real_free_space
        raw["local_sum"] = host.local_sum
        raw["share_sum"] = host.share_sum
        hosts.append(raw)
    return {"hosts": hosts}
