"""Deployment state models for the per-prefix manifest."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DeploymentRecord(BaseModel):
    """Persisted record of one function deployed under a prefix."""

    model_config = ConfigDict(extra="forbid")

    resource_id: str = Field(..., description="Platform function name")
    entry_point: str = Field(..., description="Deployed entry point")
    runtime: str = Field(..., description="Deployed runtime")
    region: str = Field(..., description="Deployment region")
    url: str | None = Field(default=None, description="Function HTTPS endpoint")
    status: str = Field(..., description="Last known status")
    created_at: datetime | None = Field(
        default=None, description="Initial deployment timestamp"
    )
    updated_at: datetime | None = Field(
        default=None, description="Last update timestamp"
    )
    config_hash: str = Field(..., description="Hash of the deployed descriptor")


class StageRecord(BaseModel):
    """All functions recorded under a single prefix."""

    model_config = ConfigDict(extra="forbid")

    records: dict[str, DeploymentRecord] = Field(
        default_factory=dict, description="Records keyed by function local name"
    )


class DeploymentState(BaseModel):
    """Top-level manifest stored on disk."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1.0", description="State file version")
    stages: dict[str, StageRecord] = Field(
        default_factory=dict, description="Stages keyed by prefix"
    )
