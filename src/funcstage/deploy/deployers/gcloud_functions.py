"""Google Cloud Functions deployer backed by the gcloud CLI."""

from __future__ import annotations

import json
import random
import shutil
import subprocess  # nosec B404
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from funcstage.deploy.deployers.base import BaseDeployer
from funcstage.lib.errors import (
    CloudSDKNotInstalledError,
    DeploymentError,
    ResourceNotFoundError,
)
from funcstage.lib.logging_config import get_logger
from funcstage.models.deployment import DeployResult, StatusResult
from funcstage.models.function import ProjectConfig, TriggerKind

logger = get_logger(__name__)

# Substrings (lowercased) of gcloud stderr that indicate a transient failure
RETRY_TRIGGERS = (
    "429",
    "quota exceeded",
    "too many requests",
    "500",
    "502",
    "503",
    "504",
    "operationerror",
    "internal error",
    "server error",
    "unavailable",
    "deadline exceeded",
)

NOT_FOUND_MARKERS = ("not_found", "not found", "does not exist")

DESCRIBE_TIMEOUT_SECONDS = 60


def _is_transient(stderr: str) -> bool:
    error_msg_lower = stderr.lower()
    return any(trigger in error_msg_lower for trigger in RETRY_TRIGGERS)


def _is_not_found(stderr: str) -> bool:
    error_msg_lower = stderr.lower()
    return any(marker in error_msg_lower for marker in NOT_FOUND_MARKERS)


def _clean(stderr: str) -> str:
    return " ".join(stderr.split())


class GCloudFunctionsDeployer(BaseDeployer):
    """Deploy HTTP functions to Google Cloud Functions using gcloud."""

    def __init__(
        self,
        config: ProjectConfig,
        gcloud_bin: str = "gcloud",
        backoff_base_seconds: float = 5.0,
    ) -> None:
        """Initialize the gcloud deployer.

        Args:
            config: Project configuration (project, region, flags, policy)
            gcloud_bin: Name or path of the gcloud executable
            backoff_base_seconds: Base delay for exponential retry backoff

        Raises:
            CloudSDKNotInstalledError: If gcloud cannot be found on PATH
        """
        resolved = shutil.which(gcloud_bin)
        if resolved is None:
            raise CloudSDKNotInstalledError(provider="gcp", sdk_name=gcloud_bin)

        self._config = config
        self._gcloud = resolved
        self._backoff_base = backoff_base_seconds
        self._timeout = config.execution.deploy_timeout
        self._max_retries = config.execution.max_retries

    def deploy(
        self,
        *,
        resource_id: str,
        entry_point: str,
        runtime: str,
        source_dir: str,
        trigger: TriggerKind = TriggerKind.HTTP,
        **kwargs: Any,
    ) -> DeployResult:
        """Deploy a function with `gcloud functions deploy`."""
        source = Path(source_dir)
        if not source.is_dir():
            raise DeploymentError(
                operation="deploy",
                message=f"Source directory {source_dir} does not exist or is "
                "not a directory; nothing to upload.",
            )

        cmd = self._deploy_command(
            resource_id=resource_id,
            entry_point=entry_point,
            runtime=runtime,
            source_dir=str(source),
            trigger=trigger,
            env_vars={**self._config.env_vars, **kwargs.get("env_vars", {})},
        )
        logger.info(f"[{resource_id}] Deploying to {self._config.region}")
        self._run(cmd, operation="deploy", resource_id=resource_id)

        try:
            status = self.get_status(resource_id)
        except DeploymentError as exc:
            logger.warning(f"[{resource_id}] Deployed but describe failed: {exc}")
            return DeployResult(resource_id=resource_id, url=None, status="UNKNOWN")

        return DeployResult(
            resource_id=resource_id, url=status.url, status=status.status
        )

    def get_status(self, resource_id: str) -> StatusResult:
        """Describe a function and return its state and URL."""
        cmd = [
            self._gcloud,
            "functions",
            "describe",
            resource_id,
            *self._location_flags(),
            "--format=json",
        ]
        result = self._run(
            cmd,
            operation="status",
            resource_id=resource_id,
            timeout=DESCRIBE_TIMEOUT_SECONDS,
        )

        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise DeploymentError(
                operation="status",
                message=f"Unparseable describe output for {resource_id}: {exc}",
            ) from exc

        return StatusResult(
            status=self._extract_state(payload),
            url=self._extract_url(payload),
        )

    def destroy(self, resource_id: str) -> None:
        """Delete a function with `gcloud functions delete`."""
        cmd = [
            self._gcloud,
            "functions",
            "delete",
            resource_id,
            *self._location_flags(),
            "--quiet",
        ]
        logger.info(f"[{resource_id}] Deleting from {self._config.region}")
        self._run(cmd, operation="delete", resource_id=resource_id)

    def stream_logs(self, resource_id: str, limit: int = 50) -> Iterable[str]:
        """Read recent log lines with `gcloud functions logs read`."""
        cmd = [
            self._gcloud,
            "functions",
            "logs",
            "read",
            resource_id,
            *self._location_flags(),
            f"--limit={limit}",
        ]
        result = self._run(
            cmd,
            operation="logs",
            resource_id=resource_id,
            timeout=DESCRIBE_TIMEOUT_SECONDS,
        )
        return [line for line in result.stdout.splitlines() if line.strip()]

    def _deploy_command(
        self,
        *,
        resource_id: str,
        entry_point: str,
        runtime: str,
        source_dir: str,
        trigger: TriggerKind,
        env_vars: dict[str, str],
    ) -> list[str]:
        if trigger != TriggerKind.HTTP:
            raise DeploymentError(
                operation="deploy",
                message=f"Unsupported trigger kind: {trigger}",
            )

        cmd = [
            self._gcloud,
            "functions",
            "deploy",
            resource_id,
            f"--runtime={runtime}",
            f"--source={source_dir}",
            f"--entry-point={entry_point}",
            "--trigger-http",
            *self._location_flags(),
        ]
        if self._config.allow_unauthenticated:
            cmd.append("--allow-unauthenticated")
        if self._config.memory:
            cmd.append(f"--memory={self._config.memory}")
        if env_vars:
            pairs = ",".join(f"{k}={v}" for k, v in sorted(env_vars.items()))
            cmd.append(f"--set-env-vars={pairs}")
        cmd.append("--quiet")
        return cmd

    def _location_flags(self) -> list[str]:
        flags = [f"--region={self._config.region}"]
        if self._config.gen2:
            flags.append("--gen2")
        if self._config.project:
            flags.append(f"--project={self._config.project}")
        return flags

    def _run(
        self,
        cmd: list[str],
        *,
        operation: str,
        resource_id: str,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a gcloud command, retrying transient failures with backoff.

        Raises:
            ResourceNotFoundError: If gcloud reports the function is missing
            DeploymentError: On non-retriable errors or when retries run out
        """
        call_timeout = timeout or self._timeout
        last_error = "no attempt made"

        for attempt in range(self._max_retries):
            logger.debug(f"[{resource_id}] Running: {' '.join(cmd)}")
            try:
                result = subprocess.run(  # noqa: S603  # nosec B603
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=call_timeout,
                )
            except subprocess.TimeoutExpired:
                last_error = f"timed out after {call_timeout} seconds"
                self._wait_before_retry(attempt, operation, resource_id, last_error)
                continue

            if result.returncode == 0:
                return result

            stderr = result.stderr or ""
            if operation != "deploy" and _is_not_found(stderr):
                raise ResourceNotFoundError(operation, resource_id)

            last_error = _clean(stderr) or f"exit code {result.returncode}"
            if not _is_transient(stderr):
                logger.error(f"[{resource_id}] {operation} failed: {last_error}")
                raise DeploymentError(operation=operation, message=last_error)

            self._wait_before_retry(attempt, operation, resource_id, last_error)

        raise DeploymentError(
            operation=operation,
            message=(
                f"{resource_id}: giving up after {self._max_retries} attempts "
                f"({last_error})"
            ),
        )

    def _wait_before_retry(
        self, attempt: int, operation: str, resource_id: str, reason: str
    ) -> None:
        if attempt >= self._max_retries - 1:
            logger.error(
                f"[{resource_id}] {operation} attempt {attempt + 1}/"
                f"{self._max_retries} failed: {reason}. Max retries reached."
            )
            return
        delay = self._backoff_base * (2**attempt)
        delay += random.uniform(0, self._backoff_base)  # noqa: S311  # nosec B311
        logger.warning(
            f"[{resource_id}] {operation} attempt {attempt + 1}/{self._max_retries} "
            f"failed: {reason}. Retrying in {delay:.1f}s."
        )
        time.sleep(delay)

    @staticmethod
    def _extract_url(payload: dict[str, Any]) -> str | None:
        service_config = payload.get("serviceConfig") or {}
        https_trigger = payload.get("httpsTrigger") or {}
        return (
            payload.get("url") or service_config.get("uri") or https_trigger.get("url")
        )

    @staticmethod
    def _extract_state(payload: dict[str, Any]) -> str:
        # gen2 reports "state", gen1 reports "status"
        return str(payload.get("state") or payload.get("status") or "UNKNOWN")
