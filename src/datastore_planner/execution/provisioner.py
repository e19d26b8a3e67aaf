"""
Volume provisioner.

Turns the volumes of a planned VM into create / destroy calls against a
VolumeClient.

create_volumes
Swap volumes first, then data volumes in reverse allocation order. The
system disk is not created here, it arrives with the cloned template.
On the first non success, or on any fault raised by the client, every
volume created in this batch is destroyed again in reverse order and the
failure is returned.

delete_volumes
Destroys swap and data volumes and stops at the first non success.

CollaboratorAuthError is never converted, it propagates to the caller.
"""

from __future__ import annotations

import logging

from datastore_planner.core.errors import CollaboratorAuthError
from datastore_planner.core.types import VM, Volume
from datastore_planner.execution.base import (
    ProvisionerConfig,
    ProvisionResult,
    VolumeClient,
    VolumeRequest,
)

logger = logging.getLogger(__name__)


class VolumeProvisioner:
    """Ordered create / destroy with rollback on partial failure."""

    def __init__(self, client: VolumeClient, config: ProvisionerConfig | None = None) -> None:
        self._client = client
        self._config = config or ProvisionerConfig()

    def _requests(self, vm: VM, volumes: list[Volume]) -> list[VolumeRequest]:
        requests = [VolumeRequest.from_volume(vm.id, v) for v in volumes]
        if self._config.skip_empty_volumes:
            requests = [r for r in requests if r.size > 0]
        return requests

    def create_volumes(self, vm: VM) -> ProvisionResult:
        """Create the swap and data volumes of a placed VM."""
        logger.debug("create volumes for vm %s on host %s", vm.name, vm.host_name)
        volumes = list(vm.swap_disk.volumes.values())
        volumes += list(reversed(list(vm.data_disk.volumes.values())))

        created: list[VolumeRequest] = []
        for request in self._requests(vm, volumes):
            try:
                result = self._client.create_volume(request)
            except CollaboratorAuthError:
                raise
            except Exception as exc:
                logger.exception("create of %s raised, rolling back", request.fullpath)
                self._rollback(created)
                return ProvisionResult.failure(str(exc))

            if not result.ok:
                logger.warning(
                    "create of %s failed: %s, rolling back %d volumes",
                    request.fullpath,
                    result.error_message,
                    len(created),
                )
                self._rollback(created)
                return result
            created.append(request)

        logger.info("created %d volumes for vm %s", len(created), vm.name)
        return ProvisionResult.success()

    def delete_volumes(self, vm: VM) -> ProvisionResult:
        """Destroy the swap and data volumes of a VM."""
        logger.debug("delete volumes for vm %s on host %s", vm.name, vm.host_name)
        volumes = list(vm.swap_disk.volumes.values()) + list(vm.data_disk.volumes.values())

        for request in self._requests(vm, volumes):
            try:
                result = self._client.destroy_volume(request)
            except CollaboratorAuthError:
                raise
            except Exception as exc:
                logger.exception("destroy of %s raised", request.fullpath)
                return ProvisionResult.failure(str(exc))

            if not result.ok:
                logger.warning("destroy of %s failed: %s", request.fullpath, result.error_message)
                return result

        return ProvisionResult.success()

    def _rollback(self, created: list[VolumeRequest]) -> None:
        """
        Destroy what this batch created, newest first.

        A failing destroy is logged and the rollback continues with the rest.
        """
        for request in reversed(created):
            try:
                result = self._client.destroy_volume(request)
            except CollaboratorAuthError:
                raise
            except Exception:
                logger.exception("rollback destroy of %s raised", request.fullpath)
                continue
            if not result.ok:
                logger.error("rollback destroy of %s failed: %s", request.fullpath, result.error_message)
