"""
In memory volume client.

This client is used for tests and local simulations.
It behaves like a datastore file table keyed by full path.

Features
- Records every create and destroy call in order
- Can fail a create or destroy for chosen paths
- Can raise a chosen exception for chosen paths
"""

from __future__ import annotations

from dataclasses import dataclass, field

from datastore_planner.execution.base import ProvisionResult, VolumeClient, VolumeRequest


@dataclass
class InMemoryVolumeClient(VolumeClient):
    """
    In memory volume client.

    fail_create / fail_destroy
    Paths whose call returns an error result.

    raise_on
    Mapping of path to exception raised by either call for that path.

    volumes
    Currently existing volumes keyed by full path.

    calls
    ("create" | "destroy", fullpath) in call order.
    """

    fail_create: set[str] = field(default_factory=set)
    fail_destroy: set[str] = field(default_factory=set)
    raise_on: dict[str, Exception] = field(default_factory=dict)
    volumes: dict[str, VolumeRequest] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)

    def create_volume(self, request: VolumeRequest) -> ProvisionResult:
        self.calls.append(("create", request.fullpath))
        if request.fullpath in self.raise_on:
            raise self.raise_on[request.fullpath]
        if request.fullpath in self.fail_create:
            return ProvisionResult.failure(f"create {request.fullpath} rejected")
        if request.fullpath in self.volumes:
            return ProvisionResult.failure(f"{request.fullpath} already exists")
        self.volumes[request.fullpath] = request
        return ProvisionResult.success()

    def destroy_volume(self, request: VolumeRequest) -> ProvisionResult:
        self.calls.append(("destroy", request.fullpath))
        if request.fullpath in self.raise_on:
            raise self.raise_on[request.fullpath]
        if request.fullpath in self.fail_destroy:
            return ProvisionResult.failure(f"destroy {request.fullpath} rejected")
        if self.volumes.pop(request.fullpath, None) is None:
            return ProvisionResult.failure(f"{request.fullpath} does not exist")
        return ProvisionResult.success()
