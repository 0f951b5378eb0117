"""Validation utilities for funcstage configuration."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError


def _format_location(loc: tuple[Any, ...], data: Any) -> str:
    """Render an error location, naming functions instead of list indices.

    ``("functions", 1, "runtime")`` becomes ``functions[func2].runtime`` when
    the raw input has a name for that entry.
    """
    parts: list[str] = []
    node = data
    for item in loc:
        if isinstance(item, int):
            label = str(item)
            if isinstance(node, list) and 0 <= item < len(node):
                node = node[item]
                if isinstance(node, dict):
                    label = str(node.get("name") or node.get("local_name") or item)
            else:
                node = None
            parts.append(f"[{label}]")
            continue
        node = node.get(item) if isinstance(node, dict) else None
        parts.append(f".{item}" if parts else str(item))
    return "".join(parts) or "unknown"


def flatten_pydantic_errors(
    exc: PydanticValidationError, data: Any | None = None
) -> list[str]:
    """Flatten a pydantic ValidationError into readable messages.

    Args:
        exc: Pydantic ValidationError exception
        data: The raw input that failed validation, used to name list entries

    Returns:
        One message per field error
    """
    errors: list[str] = []

    for error in exc.errors():
        field_path = _format_location(tuple(error.get("loc", ())), data)
        msg = error.get("msg", "Unknown error")

        if error.get("type") == "value_error":
            received = error.get("input")
            formatted = f"Field '{field_path}': {msg} (received: {received!r})"
        else:
            formatted = f"Field '{field_path}': {msg}"
        errors.append(formatted)

    return errors if errors else ["Validation failed with unknown error"]
