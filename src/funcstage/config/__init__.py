"""Configuration loading and validation for funcstage.

Main components:
- ConfigLoader: Load and validate funcstage.yaml files
- Environment variable substitution (${VAR} pattern)
- Validation utilities for configuration data
"""

from funcstage.config.env_loader import load_env_file, substitute_env_vars
from funcstage.config.loader import ConfigLoader

__all__ = [
    "ConfigLoader",
    "substitute_env_vars",
    "load_env_file",
]
