"""Pytest configuration and shared fixtures for funcstage tests."""

import logging
import os
import threading
from collections.abc import Generator, Iterable
from pathlib import Path
from typing import Any

import pytest

from funcstage.deploy.deployers.base import BaseDeployer
from funcstage.lib.errors import DeploymentError, ResourceNotFoundError
from funcstage.models.deployment import DeployResult, StatusResult
from funcstage.models.function import FunctionDescriptor, TriggerKind


class InMemoryDeployer(BaseDeployer):
    """Deployer that keeps functions in a dict instead of a cloud project.

    Attributes:
        functions: Active functions keyed by resource id
        calls: (operation, resource_id) tuples in the order they were issued
        fail_on: Resource ids whose calls raise DeploymentError
    """

    def __init__(self, fail_on: Iterable[str] = ()) -> None:
        self.functions: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on = set(fail_on)
        self._lock = threading.Lock()

    def _record(self, operation: str, resource_id: str) -> None:
        with self._lock:
            self.calls.append((operation, resource_id))
        if resource_id in self.fail_on:
            raise DeploymentError(
                operation=operation, message=f"Simulated failure for {resource_id}"
            )

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
        self._record("deploy", resource_id)
        url = f"https://us-central1-test.cloudfunctions.net/{resource_id}"
        with self._lock:
            self.functions[resource_id] = {
                "entry_point": entry_point,
                "runtime": runtime,
                "source_dir": source_dir,
                "url": url,
            }
        return DeployResult(resource_id=resource_id, url=url, status="ACTIVE")

    def get_status(self, resource_id: str) -> StatusResult:
        self._record("status", resource_id)
        function = self.functions.get(resource_id)
        if function is None:
            raise ResourceNotFoundError(operation="status", resource_id=resource_id)
        return StatusResult(status="ACTIVE", url=function["url"])

    def destroy(self, resource_id: str) -> None:
        self._record("delete", resource_id)
        with self._lock:
            if resource_id not in self.functions:
                raise ResourceNotFoundError(
                    operation="delete", resource_id=resource_id
                )
            del self.functions[resource_id]

    def stream_logs(self, resource_id: str, limit: int = 50) -> Iterable[str]:
        self._record("logs", resource_id)
        if resource_id not in self.functions:
            raise ResourceNotFoundError(operation="logs", resource_id=resource_id)
        return [f"I {resource_id} Function execution started"][:limit]


    def active_ids(self) -> set[str]:
        return set(self.functions)


@pytest.fixture
def deployer() -> InMemoryDeployer:
    """Fresh in-memory deployer."""
    return InMemoryDeployer()


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Create a function source directory with a handler file."""
    source = tmp_path / "autodeploy"
    source.mkdir()
    (source / "main.py").write_text(
        "def hello_http(request):\n    return 'Yo, World!'\n", encoding="utf-8"
    )
    return source


@pytest.fixture
def make_descriptor(source_dir: Path):
    """Factory for descriptors that share the temporary source directory."""

    def _make(name: str, **overrides: Any) -> FunctionDescriptor:
        fields: dict[str, Any] = {
            "local_name": name,
            "entry_point": "hello_http",
            "runtime": "python312",
            "source_dir": str(source_dir),
        }
        fields.update(overrides)
        return FunctionDescriptor(**fields)

    return _make


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    """Manifest location inside the temporary directory."""
    return tmp_path / ".funcstage" / "deployments.json"


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Temporary directory for test file operations."""
    return tmp_path


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def project_dir(tmp_path: Path, source_dir: Path) -> Path:
    """Write a funcstage.yaml declaring func1 and func2 next to the source."""
    (tmp_path / "funcstage.yaml").write_text(
        """
region: us-central1
defaults:
  runtime: python312
  entry_point: hello_http
  source: autodeploy
functions:
  - name: func1
  - name: func2
""",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture(autouse=True)
def reset_package_logging() -> Generator[None, None, None]:
    """Drop handlers installed by setup_logging during CLI tests."""
    yield
    package_logger = logging.getLogger("funcstage")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
