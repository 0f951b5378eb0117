"""Pydantic models for platform call results.

Deployers return DeployResult / StatusResult for single remote calls; the
lifecycle driver wraps every descriptor's outcome in a FunctionResult.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Operation(str, Enum):
    """Lifecycle operations issued per function."""

    DEPLOY = "deploy"
    DELETE = "delete"
    STATUS = "status"


class FunctionStatus(str, Enum):
    """Outcome of a lifecycle operation for one function."""

    DEPLOYED = "DEPLOYED"
    DELETED = "DELETED"
    ACTIVE = "ACTIVE"
    ABSENT = "ABSENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class DeployResult(BaseModel):
    """Result of a single deploy call.

    Attributes:
        resource_id: Name of the deployed function on the platform
        url: HTTPS endpoint of the function (if available)
        status: Platform state reported after deployment (e.g. ACTIVE)
    """

    model_config = ConfigDict(extra="forbid")

    resource_id: str = Field(..., description="Deployed function name")
    url: str | None = Field(default=None, description="Function HTTPS endpoint")
    status: str = Field(..., description="Platform state after deployment")


class StatusResult(BaseModel):
    """Result of a status check operation."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(..., description="Current platform state")
    url: str | None = Field(default=None, description="Function HTTPS endpoint")


class FunctionResult(BaseModel):
    """Per-function outcome of a deploy, delete or status run.

    Attributes:
        local_name: Function name within the group
        resource_id: Derived platform name (prefix-local_name)
        operation: Operation that produced this result
        status: Outcome for this function
        url: HTTPS endpoint when known
        platform_state: Raw state reported by the platform, when queried
        error: Error message when status is FAILED or SKIPPED
        duration_seconds: Wall time spent on the remote call
    """

    model_config = ConfigDict(extra="forbid")

    local_name: str = Field(..., description="Function name within the group")
    resource_id: str = Field(..., description="Platform resource name")
    operation: Operation = Field(..., description="Operation performed")
    status: FunctionStatus = Field(..., description="Outcome")
    url: str | None = Field(default=None, description="Function HTTPS endpoint")
    platform_state: str | None = Field(
        default=None, description="State reported by the platform (e.g. ACTIVE)"
    )
    error: str | None = Field(default=None, description="Failure reason")
    duration_seconds: float | None = Field(
        default=None, description="Time spent on the remote call"
    )

    @property
    def succeeded(self) -> bool:
        """True unless the function failed or was never attempted."""
        return self.status not in (FunctionStatus.FAILED, FunctionStatus.SKIPPED)


def has_failures(results: list[FunctionResult]) -> bool:
    """Return True if any function failed or was skipped."""
    return any(not result.succeeded for result in results)
