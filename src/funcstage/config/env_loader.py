"""Environment variable handling for funcstage configuration.

Supports ``${VAR}`` and ``${VAR:-default}`` references inside funcstage.yaml
and loading a ``.env`` file that sits next to the configuration.
"""

import os
import re
from pathlib import Path

from dotenv import load_dotenv

from funcstage.lib.errors import ConfigError

ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR}`` references with environment values.

    Cloud Build style substitutions (``${_PREFIX}``) start with an underscore
    and are left untouched.

    Args:
        text: Raw configuration text

    Returns:
        Text with environment references resolved

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """

    def replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        raise ConfigError(
            field=name,
            message=f"Environment variable '{name}' is not set and has no default.",
        )

    return ENV_VAR_PATTERN.sub(replace, text)


def load_env_file(path: Path) -> bool:
    """Load a .env file without overriding variables already set.

    Returns:
        True if the file existed and was loaded
    """
    if not path.is_file():
        return False
    return bool(load_dotenv(path, override=False))
