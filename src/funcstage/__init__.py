"""funcstage - Prefix-staged deployment of Google Cloud Functions groups.

funcstage deploys a group of HTTP functions declared in funcstage.yaml under
a caller-chosen prefix and tears the same group down later.

Main features:
- Deterministic '<prefix>-<name>' resource ids
- Parallel per-function deploy, delete and status calls
- Idempotent delete driven by a local deployment manifest
- Cloud Build configs with a ``${_PREFIX}`` substitution
"""

from funcstage.config.loader import ConfigLoader
from funcstage.lib.errors import ConfigError, DeploymentError, FuncStageError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "DeploymentError",
    "FuncStageError",
]
