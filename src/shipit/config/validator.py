"""Render pydantic validation errors as ``shipit.yaml`` error lines."""

from collections.abc import Sequence

from pydantic import ValidationError as PydanticValidationError

SCALAR_TYPES = (str, int, float, bool)


def config_path(loc: Sequence[str | int]) -> str:
    """Render an error location as a dotted key path with list indexes.

    Example:
        >>> config_path(("stages", "production", "hosts", 0, "address"))
        'stages.production.hosts[0].address'
    """
    path = ""
    for item in loc:
        if isinstance(item, int):
            path += f"[{item}]"
        else:
            path = f"{path}.{item}" if path else str(item)
    return path or "(top level)"


def format_config_errors(exc: PydanticValidationError) -> list[str]:
    """Turn a ValidationError into one ``path: problem`` line per error.

    Missing and unknown keys get fixed wording. Errors raised by our own
    validators show the rejected value when it is a scalar.
    """
    lines: list[str] = []

    for error in exc.errors():
        path = config_path(error.get("loc", ()))
        kind = error.get("type", "")
        msg = error.get("msg", "invalid value")

        if kind == "missing":
            lines.append(f"{path}: required key is missing")
        elif kind == "extra_forbidden":
            lines.append(f"{path}: unknown key")
        elif kind == "value_error":
            msg = msg.removeprefix("Value error, ")
            value = error.get("input")
            if isinstance(value, SCALAR_TYPES):
                lines.append(f"{path}: {msg} (got {value!r})")
            else:
                lines.append(f"{path}: {msg}")
        else:
            lines.append(f"{path}: {msg}")

    return lines or ["invalid configuration"]
