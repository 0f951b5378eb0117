"""funcstage deployment engine.

This package provides the lifecycle driver that deploys and deletes a
function group under a prefix, the per-prefix manifest, and Cloud Build
config generation.
"""

from funcstage.deploy.lifecycle import LifecycleDriver, resolve_targets
from funcstage.deploy.naming import resource_id, validate_prefix

__all__ = [
    "LifecycleDriver",
    "resolve_targets",
    "resource_id",
    "validate_prefix",
]
