"""Pydantic models for function group configuration.

This module defines the schema of funcstage.yaml: the function descriptors
that make up a group and the project-level settings shared by every
deployment of that group.
"""

import re
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class TriggerKind(str, Enum):
    """Supported function trigger types."""

    HTTP = "http"


# Regex patterns for validation
FUNCTION_NAME_PATTERN = re.compile(r"^[a-z](?:[a-z0-9-]*[a-z0-9])?$")
RUNTIME_PATTERN = re.compile(r"^[a-z]+[0-9]+$")
ENTRY_POINT_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
GCP_PROJECT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$")
GCP_MEMORY_PATTERN = re.compile(r"^\d+(Mi|Gi|MB|GB)$")


class FunctionDescriptor(BaseModel):
    """Static declaration of one function's deployment parameters.

    Attributes:
        local_name: Name of the function within the group (e.g. func1)
        entry_point: Exported symbol invoked by the platform (e.g. helloHttp)
        runtime: Platform runtime identifier (e.g. nodejs20, python312)
        trigger: Trigger kind; only HTTP is supported
        source_dir: Directory holding the function source code
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    local_name: str = Field(
        ...,
        validation_alias=AliasChoices("local_name", "name"),
        description="Function name within the group",
    )
    entry_point: str = Field(..., description="Exported handler symbol")
    runtime: str = Field(..., description="Runtime identifier (e.g. nodejs20)")
    trigger: TriggerKind = Field(default=TriggerKind.HTTP, description="Trigger kind")
    source_dir: str = Field(
        ...,
        validation_alias=AliasChoices("source_dir", "source"),
        description="Directory containing the function source",
    )

    @field_validator("local_name")
    @classmethod
    def validate_local_name(cls, v: str) -> str:
        """Validate the function name fragment."""
        if not FUNCTION_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid function name: {v}. Must contain only lowercase letters, "
                "numbers and hyphens, start with a letter and not end with a hyphen."
            )
        return v

    @field_validator("runtime")
    @classmethod
    def validate_runtime(cls, v: str) -> str:
        """Validate runtime identifier shape (language + version)."""
        if not RUNTIME_PATTERN.match(v):
            raise ValueError(
                f"Invalid runtime: {v}. Expected an identifier such as "
                "nodejs20 or python312."
            )
        return v

    @field_validator("entry_point")
    @classmethod
    def validate_entry_point(cls, v: str) -> str:
        """Validate entry point is a plain identifier."""
        if not ENTRY_POINT_PATTERN.match(v):
            raise ValueError(f"Invalid entry point: {v}. Must be an identifier.")
        return v


class FunctionDefaults(BaseModel):
    """Defaults applied to descriptors that omit a field."""

    model_config = ConfigDict(extra="forbid")

    entry_point: str | None = Field(default=None, description="Default entry point")
    runtime: str | None = Field(default=None, description="Default runtime")
    source_dir: str | None = Field(
        default=None,
        validation_alias=AliasChoices("source_dir", "source"),
        description="Default source directory",
    )


class ExecutionSettings(BaseModel):
    """Lifecycle execution policy.

    Attributes:
        max_workers: Number of per-function calls issued in parallel
        fail_fast: Stop scheduling functions after the first failure
        deploy_timeout: Timeout in seconds for a single platform call
        max_retries: Attempts per platform call on transient errors
    """

    model_config = ConfigDict(extra="forbid")

    max_workers: int = Field(default=4, ge=1, le=32, description="Parallel calls")
    fail_fast: bool = Field(
        default=False, description="Stop scheduling after first failure"
    )
    deploy_timeout: int = Field(
        default=600, ge=1, le=3600, description="Per-call timeout in seconds"
    )
    max_retries: int = Field(
        default=3, ge=1, le=10, description="Attempts per call on transient errors"
    )


class ProjectConfig(BaseModel):
    """Main configuration model for a function group (funcstage.yaml).

    Attributes:
        project: GCP project ID (falls back to the gcloud default when unset)
        region: Region the functions are deployed to
        gen2: Deploy 2nd generation functions
        allow_unauthenticated: Make HTTP endpoints publicly invokable
        memory: Optional memory allocation (e.g. 256Mi)
        env_vars: Environment variables set on every function
        defaults: Values applied to functions that omit them
        functions: Function descriptors, in declaration order
        execution: Lifecycle execution policy
    """

    model_config = ConfigDict(extra="forbid")

    project: str | None = Field(default=None, description="GCP project ID")
    region: str = Field(default="us-central1", description="Deployment region")
    gen2: bool = Field(default=True, description="Use 2nd gen Cloud Functions")
    allow_unauthenticated: bool = Field(
        default=True, description="Allow unauthenticated invocations"
    )
    memory: str | None = Field(default=None, description="Memory allocation")
    env_vars: dict[str, str] = Field(
        default_factory=dict, description="Environment variables for every function"
    )
    defaults: FunctionDefaults = Field(
        default_factory=FunctionDefaults, description="Descriptor defaults"
    )
    functions: list[FunctionDescriptor] = Field(
        ..., min_length=1, description="Function descriptors"
    )
    execution: ExecutionSettings = Field(
        default_factory=ExecutionSettings, description="Execution policy"
    )

    @model_validator(mode="before")
    @classmethod
    def apply_defaults(cls, data: Any) -> Any:
        """Fill descriptor fields from the defaults section."""
        if not isinstance(data, dict):
            return data
        defaults = data.get("defaults") or {}
        if not isinstance(defaults, dict):
            return data
        functions = data.get("functions")
        if not isinstance(functions, list):
            return data

        merged: list[Any] = []
        for function in functions:
            if isinstance(function, dict):
                function = dict(function)
                for key, aliases in (
                    ("entry_point", ("entry_point",)),
                    ("runtime", ("runtime",)),
                    ("source_dir", ("source_dir", "source")),
                ):
                    default_value = next(
                        (defaults[a] for a in aliases if defaults.get(a)), None
                    )
                    if default_value and not any(a in function for a in aliases):
                        function[key] = default_value
            merged.append(function)
        return {**data, "functions": merged}

    @field_validator("project")
    @classmethod
    def validate_project(cls, v: str | None) -> str | None:
        """Validate GCP project ID format."""
        if v is not None and not GCP_PROJECT_ID_PATTERN.match(v):
            raise ValueError(
                f"Invalid GCP project ID: {v}. "
                "Must be 6-30 lowercase letters, numbers, and hyphens, "
                "starting with a letter and not ending with a hyphen."
            )
        return v

    @field_validator("memory")
    @classmethod
    def validate_memory(cls, v: str | None) -> str | None:
        """Validate memory format (e.g. 256Mi, 1Gi)."""
        if v is not None and not GCP_MEMORY_PATTERN.match(v):
            raise ValueError(
                f"Invalid memory format: {v}. Must be a number followed by Mi or Gi."
            )
        return v

    @model_validator(mode="after")
    def validate_unique_names(self) -> "ProjectConfig":
        """Reject duplicate local names; they would map to the same resource."""
        seen: set[str] = set()
        duplicates: list[str] = []
        for function in self.functions:
            if function.local_name in seen:
                duplicates.append(function.local_name)
            seen.add(function.local_name)
        if duplicates:
            raise ValueError(
                f"Duplicate function names: {', '.join(sorted(set(duplicates)))}"
            )
        return self

    def select(
        self, names: list[str] | tuple[str, ...] | None
    ) -> list[FunctionDescriptor]:
        """Return descriptors filtered by local name, in declaration order.

        Raises:
            ValueError: If a requested name is not declared
        """
        if not names:
            return list(self.functions)
        declared = {f.local_name for f in self.functions}
        unknown = [n for n in names if n not in declared]
        if unknown:
            raise ValueError(f"Unknown function(s): {', '.join(unknown)}")
        wanted = set(names)
        return [f for f in self.functions if f.local_name in wanted]
