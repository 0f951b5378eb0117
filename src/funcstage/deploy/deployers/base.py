"""Base interface for function platform deployers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from funcstage.models.deployment import DeployResult, StatusResult
from funcstage.models.function import TriggerKind


class BaseDeployer(ABC):
    """Abstract base class for function platform clients.

    The lifecycle driver only talks to the platform through this interface,
    so it can be exercised against an in-memory implementation.
    """

    @abstractmethod
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
        """Create or update a function and return its endpoint details.

        Args:
            resource_id: Platform name for the function.
            entry_point: Exported handler symbol in the source.
            runtime: Runtime identifier (e.g. nodejs20).
            source_dir: Directory packaged and uploaded as the function source.
            trigger: Trigger kind (default: HTTP).
            **kwargs: Provider-specific deployment options.

        Returns:
            DeployResult containing resource_id, url, and status.

        Raises:
            DeploymentError: If deployment fails.
        """

    @abstractmethod
    def get_status(self, resource_id: str) -> StatusResult:
        """Retrieve the platform state and URL of a function.

        Args:
            resource_id: Platform name for the function.

        Returns:
            StatusResult containing current status and URL.

        Raises:
            ResourceNotFoundError: If the function does not exist.
            DeploymentError: If status check fails.
        """

    @abstractmethod
    def destroy(self, resource_id: str) -> None:
        """Delete a function by name.

        Args:
            resource_id: Platform name for the function.

        Raises:
            ResourceNotFoundError: If the function does not exist.
            DeploymentError: If the delete operation fails.
        """

    def stream_logs(self, resource_id: str, limit: int = 50) -> Iterable[str]:
        """Return recent log lines for a function.

        Providers without log access keep this default.

        Raises:
            NotImplementedError: When log access is not supported by the provider.
            DeploymentError: If reading logs fails.
        """
        raise NotImplementedError(
            f"{type(self).__name__} does not support reading logs"
        )

