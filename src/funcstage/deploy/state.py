"""Deployment manifest helpers.

The manifest records, per prefix, which functions were actually deployed so
teardown does not depend on the current descriptor list alone.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from funcstage.lib.errors import DeploymentError
from funcstage.models.deployment_state import (
    DeploymentRecord,
    DeploymentState,
    StageRecord,
)
from funcstage.models.function import FunctionDescriptor

STATE_VERSION = "1.0"


def get_state_path(config_path: Path) -> Path:
    """Return the manifest path for a funcstage.yaml file."""
    return config_path.parent / ".funcstage" / "deployments.json"


def compute_descriptor_hash(descriptor: FunctionDescriptor) -> str:
    """Compute a deterministic hash for a function descriptor."""
    payload = json.dumps(descriptor.model_dump(mode="json"), sort_keys=True)
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def load_state(state_path: Path) -> DeploymentState:
    """Load the manifest from disk, returning an empty one if missing."""
    if not state_path.exists():
        return DeploymentState(version=STATE_VERSION)

    try:
        content = state_path.read_text(encoding="utf-8")
        if not content.strip():
            return DeploymentState(version=STATE_VERSION)
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to read deployment state at {state_path}: {exc}",
        ) from exc

    try:
        state = DeploymentState.model_validate_json(content)
    except ValidationError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Invalid deployment state format in {state_path}: {exc}",
        ) from exc

    if not state.version:
        state = state.model_copy(update={"version": STATE_VERSION})
    return state


def save_state(state_path: Path, state: DeploymentState) -> None:
    """Persist the manifest to disk.

    The JSON is written to a temporary file next to the manifest and moved
    into place, so an interrupted write leaves the previous manifest intact.
    """
    tmp_path: Path | None = None
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.model_dump(mode="json"), indent=2, sort_keys=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=state_path.parent,
            prefix=f".{state_path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_path = Path(handle.name)
            handle.write(payload)
        os.replace(tmp_path, state_path)
    except OSError as exc:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise DeploymentError(
            operation="state",
            message=f"Failed to write deployment state to {state_path}: {exc}",
        ) from exc


def get_stage(state_path: Path, prefix: str) -> StageRecord | None:
    """Return the recorded functions for a prefix."""
    state = load_state(state_path)
    return state.stages.get(prefix)


def update_stage_records(
    state_path: Path, prefix: str, records: dict[str, DeploymentRecord]
) -> dict[str, DeploymentRecord]:
    """Upsert records under a prefix and persist the manifest.

    Existing records keep their created_at timestamp; updated_at is refreshed.
    """
    if not records:
        return {}

    state = load_state(state_path)
    stage = state.stages.get(prefix) or StageRecord()
    now = datetime.now(timezone.utc)

    updated: dict[str, DeploymentRecord] = {}
    for local_name, record in records.items():
        existing = stage.records.get(local_name)
        created_at = (
            record.created_at or (existing.created_at if existing else None) or now
        )
        updated[local_name] = record.model_copy(
            update={"created_at": created_at, "updated_at": now}
        )

    stage.records.update(updated)
    state.stages[prefix] = stage
    save_state(state_path, state)
    return updated


def remove_stage_records(
    state_path: Path, prefix: str, local_names: Iterable[str]
) -> None:
    """Drop records under a prefix, and the prefix itself once it is empty."""
    names = set(local_names)
    state = load_state(state_path)
    stage = state.stages.get(prefix)
    if stage is None or not names:
        return

    for name in names:
        stage.records.pop(name, None)
    if stage.records:
        state.stages[prefix] = stage
    else:
        state.stages.pop(prefix, None)
    save_state(state_path, state)
