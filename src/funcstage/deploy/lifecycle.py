"""Deployment lifecycle driver.

Deploys a group of function descriptors under a prefix and tears the same
group down later. Every descriptor becomes one remote call against the
injected deployer; calls run on a thread pool and results come back in
declaration order.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from funcstage.deploy.deployers.base import BaseDeployer
from funcstage.deploy.naming import resource_ids, validate_prefix
from funcstage.deploy.state import (
    compute_descriptor_hash,
    get_stage,
    remove_stage_records,
    update_stage_records,
)
from funcstage.lib.errors import DeploymentError, ResourceNotFoundError
from funcstage.lib.logging_config import get_logger
from funcstage.models.deployment import FunctionResult, FunctionStatus, Operation
from funcstage.models.deployment_state import DeploymentRecord
from funcstage.models.function import FunctionDescriptor, ProjectConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class Target:
    """A function addressed by a lifecycle operation."""

    local_name: str
    resource_id: str
    descriptor: FunctionDescriptor | None = None


class LifecycleDriver:
    """Issue per-function deploy, delete and status calls for a prefix.

    Attributes:
        deployer: Platform client used for every remote call
        region: Region recorded in the manifest
        state_path: Manifest location; None disables the manifest
        max_workers: Number of calls issued in parallel
        fail_fast: Stop issuing calls after the first failure
    """

    def __init__(
        self,
        deployer: BaseDeployer,
        *,
        region: str = "us-central1",
        state_path: Path | None = None,
        max_workers: int = 4,
        fail_fast: bool = False,
    ) -> None:
        self.deployer = deployer
        self.region = region
        self.state_path = state_path
        self.max_workers = max(1, max_workers)
        self.fail_fast = fail_fast

    @classmethod
    def from_config(
        cls,
        config: ProjectConfig,
        deployer: BaseDeployer,
        state_path: Path | None = None,
    ) -> LifecycleDriver:
        """Build a driver using a project's region and execution policy."""
        return cls(
            deployer,
            region=config.region,
            state_path=state_path,
            max_workers=config.execution.max_workers,
            fail_fast=config.execution.fail_fast,
        )

    def deploy(
        self, descriptors: Sequence[FunctionDescriptor], prefix: str
    ) -> list[FunctionResult]:
        """Create or update every descriptor under the prefix.

        Raises:
            ConfigError: If the prefix or descriptor list is invalid
        """
        ids = resource_ids(prefix, descriptors)
        targets = [
            Target(d.local_name, ids[d.local_name], descriptor=d) for d in descriptors
        ]
        logger.info(f"Deploying {len(targets)} function(s) with prefix '{prefix}'")

        results = self._run_all(targets, Operation.DEPLOY, self._deploy_one)

        if self.state_path is not None:
            records = {
                result.local_name: self._record_for(target.descriptor, result)
                for target, result in zip(targets, results)
                if target.descriptor is not None
                and result.status == FunctionStatus.DEPLOYED
            }
            update_stage_records(self.state_path, prefix, records)
        return results

    def delete(
        self,
        descriptors: Sequence[FunctionDescriptor] | None,
        prefix: str,
        include_recorded: bool = True,
    ) -> list[FunctionResult]:
        """Delete every function deployed under the prefix.

        Targets are the functions derived from the descriptors plus, unless
        include_recorded is False, any recorded in the manifest for the
        prefix. Functions already absent are reported as ABSENT.

        Raises:
            ConfigError: If the prefix or descriptor list is invalid
        """
        targets = resolve_targets(
            descriptors, prefix, self.state_path, include_recorded=include_recorded
        )
        logger.info(f"Deleting {len(targets)} function(s) with prefix '{prefix}'")

        results = self._run_all(targets, Operation.DELETE, self._delete_one)

        if self.state_path is not None:
            removed = [
                result.local_name
                for result in results
                if result.status in (FunctionStatus.DELETED, FunctionStatus.ABSENT)
            ]
            remove_stage_records(self.state_path, prefix, removed)
        return results

    def status(
        self,
        descriptors: Sequence[FunctionDescriptor] | None,
        prefix: str,
        include_recorded: bool = True,
    ) -> list[FunctionResult]:
        """Report the platform state of every function under the prefix."""
        targets = resolve_targets(
            descriptors, prefix, self.state_path, include_recorded=include_recorded
        )
        results = self._run_all(targets, Operation.STATUS, self._status_one)

        stage = get_stage(self.state_path, prefix) if self.state_path else None
        if self.state_path is not None and stage is not None:
            refreshed: dict[str, DeploymentRecord] = {}
            for result in results:
                record = stage.records.get(result.local_name)
                if record is None or not result.succeeded:
                    continue
                refreshed[result.local_name] = record.model_copy(
                    update={
                        "status": result.platform_state or result.status.value,
                        "url": result.url or record.url,
                    }
                )
            update_stage_records(self.state_path, prefix, refreshed)
        return results

    def _run_all(
        self,
        targets: list[Target],
        operation: Operation,
        call: Callable[[Target], FunctionResult],
    ) -> list[FunctionResult]:
        if not targets:
            return []

        stop = threading.Event()

        def guarded(target: Target) -> FunctionResult:
            if stop.is_set():
                return FunctionResult(
                    local_name=target.local_name,
                    resource_id=target.resource_id,
                    operation=operation,
                    status=FunctionStatus.SKIPPED,
                    error="Skipped after an earlier failure",
                )
            result = self._timed(target, operation, call)
            if self.fail_fast and not result.succeeded:
                stop.set()
            return result

        workers = min(self.max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(guarded, target) for target in targets]
            return [future.result() for future in futures]

    def _timed(
        self,
        target: Target,
        operation: Operation,
        call: Callable[[Target], FunctionResult],
    ) -> FunctionResult:
        start = time.monotonic()
        try:
            result = call(target)
        except DeploymentError as exc:
            logger.error(f"[{target.resource_id}] {operation.value} failed: {exc}")
            result = self._failed(target, operation, exc.message)
        except Exception as exc:
            logger.exception(
                f"[{target.resource_id}] Unexpected error during {operation.value}"
            )
            result = self._failed(target, operation, str(exc))
        return result.model_copy(
            update={"duration_seconds": time.monotonic() - start}
        )

    def _deploy_one(self, target: Target) -> FunctionResult:
        descriptor = target.descriptor
        if descriptor is None:
            raise DeploymentError(
                operation="deploy",
                message=f"No descriptor for '{target.local_name}'",
            )
        if not Path(descriptor.source_dir).is_dir():
            raise DeploymentError(
                operation="deploy",
                message=f"Source directory {descriptor.source_dir} does not exist",
            )

        deployed = self.deployer.deploy(
            resource_id=target.resource_id,
            entry_point=descriptor.entry_point,
            runtime=descriptor.runtime,
            source_dir=descriptor.source_dir,
            trigger=descriptor.trigger,
        )
        logger.info(f"[{target.resource_id}] Deployed ({deployed.status})")
        return FunctionResult(
            local_name=target.local_name,
            resource_id=deployed.resource_id,
            operation=Operation.DEPLOY,
            status=FunctionStatus.DEPLOYED,
            url=deployed.url,
            platform_state=deployed.status,
        )

    def _delete_one(self, target: Target) -> FunctionResult:
        try:
            self.deployer.destroy(target.resource_id)
        except ResourceNotFoundError:
            logger.info(f"[{target.resource_id}] Already absent")
            status = FunctionStatus.ABSENT
        else:
            logger.info(f"[{target.resource_id}] Deleted")
            status = FunctionStatus.DELETED
        return FunctionResult(
            local_name=target.local_name,
            resource_id=target.resource_id,
            operation=Operation.DELETE,
            status=status,
        )

    def _status_one(self, target: Target) -> FunctionResult:
        try:
            current = self.deployer.get_status(target.resource_id)
        except ResourceNotFoundError:
            return FunctionResult(
                local_name=target.local_name,
                resource_id=target.resource_id,
                operation=Operation.STATUS,
                status=FunctionStatus.ABSENT,
            )
        return FunctionResult(
            local_name=target.local_name,
            resource_id=target.resource_id,
            operation=Operation.STATUS,
            status=FunctionStatus.ACTIVE,
            url=current.url,
            platform_state=current.status,
        )

    def _record_for(
        self, descriptor: FunctionDescriptor, result: FunctionResult
    ) -> DeploymentRecord:
        return DeploymentRecord(
            resource_id=result.resource_id,
            entry_point=descriptor.entry_point,
            runtime=descriptor.runtime,
            region=self.region,
            url=result.url,
            status=result.platform_state or result.status.value,
            config_hash=compute_descriptor_hash(descriptor),
        )

    @staticmethod
    def _failed(target: Target, operation: Operation, message: str) -> FunctionResult:
        return FunctionResult(
            local_name=target.local_name,
            resource_id=target.resource_id,
            operation=operation,
            status=FunctionStatus.FAILED,
            error=message,
        )


def resolve_targets(
    descriptors: Sequence[FunctionDescriptor] | None,
    prefix: str,
    state_path: Path | None = None,
    include_recorded: bool = True,
) -> list[Target]:
    """Resolve delete/status targets from descriptors and the manifest.

    Descriptors come first in declaration order, followed by functions the
    manifest records under the prefix that are no longer declared.

    Raises:
        ConfigError: If the prefix or descriptor list is invalid
    """
    validate_prefix(prefix)
    descriptors = descriptors or []
    ids = resource_ids(prefix, descriptors)
    targets = [
        Target(d.local_name, ids[d.local_name], descriptor=d) for d in descriptors
    ]

    if state_path is None or not include_recorded:
        return targets

    stage = get_stage(state_path, prefix)
    if stage is None:
        return targets

    for local_name in sorted(stage.records):
        if local_name in ids:
            continue
        record = stage.records[local_name]
        logger.debug(
            f"Including recorded function '{record.resource_id}' "
            "not present in the current descriptors"
        )
        targets.append(Target(local_name, record.resource_id))
    return targets
