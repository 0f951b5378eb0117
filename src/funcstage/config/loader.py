"""Configuration loader for funcstage function groups.

This module provides the ConfigLoader class for loading, parsing, and
validating funcstage.yaml files.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from funcstage.config.defaults import ENV_VAR_MAP, EXECUTION_KEYS
from funcstage.config.env_loader import load_env_file, substitute_env_vars
from funcstage.config.validator import flatten_pydantic_errors
from funcstage.lib.errors import ConfigError, FileNotFoundError
from funcstage.models.function import ProjectConfig

logger = logging.getLogger(__name__)


def _parse_env_value(field_name: str, value: str) -> Any:
    """Parse an override value to the type its field expects.

    Raises:
        ValueError: If value cannot be parsed
    """
    if field_name == "max_workers":
        return int(value)
    if field_name == "fail_fast":
        return value.lower() in ("true", "1", "yes", "on")
    return value


def _env_overrides(env_vars: os._Environ[str] | dict[str, str]) -> dict[str, Any]:
    """Collect configuration overrides from FUNCSTAGE_* variables."""
    overrides: dict[str, Any] = {}
    for field_name, env_var_name in ENV_VAR_MAP.items():
        raw = env_vars.get(env_var_name)
        if not raw:
            continue
        try:
            overrides[field_name] = _parse_env_value(field_name, raw)
        except ValueError:
            logger.warning(f"Ignoring {env_var_name}={raw!r}: not a valid value")
    return overrides


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any] | None:
    """Read a YAML file after substituting ``${VAR}`` references.

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text)
    content = yaml.safe_load(substituted)
    return content if content else None


class ConfigLoader:
    """Loads and validates function group configuration from YAML files.

    This class handles:
    - Loading a .env file next to the configuration
    - Environment variable substitution
    - FUNCSTAGE_* environment overrides
    - Resolving function source directories relative to the config file
    - Converting validation errors into human-readable messages
    """

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize the loader.

        Args:
            env: Environment mapping used for overrides (default: os.environ)
        """
        self._env = env

    def load(self, file_path: str) -> ProjectConfig:
        """Load and validate a funcstage.yaml file.

        Configuration precedence (highest to lowest):
        1. FUNCSTAGE_* environment variables
        2. funcstage.yaml settings
        3. Model defaults

        Args:
            file_path: Path to funcstage.yaml

        Returns:
            Validated ProjectConfig with absolute source directories

        Raises:
            FileNotFoundError: If file doesn't exist
            ConfigError: If YAML parsing or validation fails
        """
        path = Path(file_path)
        load_env_file(path.parent / ".env")

        try:
            raw = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise FileNotFoundError(
                file_path,
                f"Configuration file not found at {file_path}. "
                f"Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {file_path}: {str(e)}",
            ) from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                "yaml_parse", f"Expected a mapping at the top of {file_path}"
            )

        merged = self._apply_overrides(raw)

        try:
            config = ProjectConfig.model_validate(merged)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e, merged))
            raise ConfigError(
                "config_validation",
                f"Invalid configuration in {file_path}:\n{error_text}",
            ) from e

        return self.resolve_source_dirs(config, path.parent.resolve())

    def _apply_overrides(self, raw: dict[str, Any]) -> dict[str, Any]:
        env = self._env if self._env is not None else os.environ
        overrides = _env_overrides(env)
        if not overrides:
            return raw

        merged = dict(raw)
        execution = dict(merged.get("execution") or {})
        for key, value in overrides.items():
            logger.debug(f"Overriding '{key}' from environment")
            if key in EXECUTION_KEYS:
                execution[key] = value
            else:
                merged[key] = value
        if execution:
            merged["execution"] = execution
        return merged

    @staticmethod
    def resolve_source_dirs(config: ProjectConfig, base_dir: Path) -> ProjectConfig:
        """Return a copy of the config with absolute source directories."""
        functions = []
        for function in config.functions:
            source = Path(function.source_dir)
            if not source.is_absolute():
                source = (base_dir / source).resolve()
            functions.append(function.model_copy(update={"source_dir": str(source)}))
        return config.model_copy(update={"functions": functions})
