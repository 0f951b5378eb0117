"""Prefix validation and resource id derivation."""

from __future__ import annotations

import re
from collections.abc import Iterable

from funcstage.lib.errors import ConfigError
from funcstage.models.function import FunctionDescriptor

PREFIX_PATTERN = re.compile(r"^[a-z](?:[a-z0-9-]*[a-z0-9])?$")

# Cloud Functions names are limited to 63 characters
MAX_RESOURCE_ID_LENGTH = 63


def validate_prefix(prefix: str) -> str:
    """Validate a stage prefix and return it unchanged.

    Raises:
        ConfigError: If the prefix is empty or not a valid name fragment
    """
    if not prefix:
        raise ConfigError(field="prefix", message="A non-empty prefix is required.")
    if not PREFIX_PATTERN.match(prefix):
        raise ConfigError(
            field="prefix",
            message=(
                f"Invalid prefix: {prefix}. Must contain only lowercase letters, "
                "numbers and hyphens, start with a letter and not end with a hyphen."
            ),
        )
    return prefix


def resource_id(prefix: str, local_name: str) -> str:
    """Return the platform name for a function deployed under a prefix.

    Example:
        >>> resource_id("myprefix", "func1")
        'myprefix-func1'
    """
    return f"{prefix}-{local_name}"


def resource_ids(
    prefix: str, descriptors: Iterable[FunctionDescriptor]
) -> dict[str, str]:
    """Map each descriptor's local name to its resource id.

    Raises:
        ConfigError: If the prefix is invalid, a name repeats, or an id is too long
    """
    validate_prefix(prefix)
    ids: dict[str, str] = {}
    for descriptor in descriptors:
        name = descriptor.local_name
        if name in ids:
            raise ConfigError(
                field="functions",
                message=f"Function '{name}' is declared more than once.",
            )
        rid = resource_id(prefix, name)
        if len(rid) > MAX_RESOURCE_ID_LENGTH:
            raise ConfigError(
                field="prefix",
                message=(
                    f"Resource id '{rid}' is {len(rid)} characters; "
                    f"the limit is {MAX_RESOURCE_ID_LENGTH}."
                ),
            )
        ids[name] = rid
    return ids
