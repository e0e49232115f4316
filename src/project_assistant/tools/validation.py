"""Argument validation against a ToolSpec's parameter schema."""

from typing import Any

from project_assistant.telemetry import get_logger
from project_assistant.tools.types import (
    CONFIRMED_PARAM,
    ToolParameter,
    ToolSpec,
    ToolValidationError,
)

log = get_logger(__name__)

_PYTHON_TYPES: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "object": dict,
    "array": list,
}


def _check_value(param: ToolParameter, value: Any) -> Any:
    # bool is an int subclass; never accept it for numeric parameters
    if param.type in ("integer", "number") and isinstance(value, bool):
        raise ToolValidationError(
            f"Parameter '{param.name}' must be {param.type}, got boolean",
            details={"parameter": param.name},
        )
    if param.type == "integer" and isinstance(value, float) and value.is_integer():
        value = int(value)

    if not isinstance(value, _PYTHON_TYPES[param.type]):
        raise ToolValidationError(
            f"Parameter '{param.name}' must be {param.type}, got {type(value).__name__}",
            details={"parameter": param.name},
        )

    if param.enum is not None and value not in param.enum:
        allowed = ", ".join(str(v) for v in param.enum)
        raise ToolValidationError(
            f"Parameter '{param.name}' must be one of: {allowed}",
            details={"parameter": param.name, "allowed": list(param.enum)},
        )

    if param.minimum is not None and value < param.minimum:
        raise ToolValidationError(
            f"Parameter '{param.name}' must be at least {param.minimum:g}",
            details={"parameter": param.name},
        )
    if param.maximum is not None and value > param.maximum:
        raise ToolValidationError(
            f"Parameter '{param.name}' must be at most {param.maximum:g}",
            details={"parameter": param.name},
        )
    return value


def validate_arguments(spec: ToolSpec, arguments: Any) -> dict[str, Any]:
    """Validate and normalize raw arguments for a tool.

    Unknown parameters are dropped with a warning rather than rejected; models
    regularly send extras. Optional parameters with a default are filled in,
    so equivalent calls normalize to the same cache key.

    Args:
        spec: Tool spec to validate against.
        arguments: Raw arguments from the model.

    Returns:
        Cleaned arguments. Mutating tools always carry a boolean ``confirmed``.

    Raises:
        ToolValidationError: On a missing required parameter, a wrong type,
            a value outside its enum domain or numeric bounds.
    """
    if not isinstance(arguments, dict):
        raise ToolValidationError("Tool arguments must be a JSON object")

    known = {param.name for param in spec.parameters}
    if spec.mutating:
        known.add(CONFIRMED_PARAM)
    invalid = sorted(set(arguments) - known)
    if invalid:
        log.warning(
            "tool_call_invalid_parameters_filtered",
            tool_name=spec.name,
            invalid_parameters=invalid,
            valid_parameters=sorted(known),
        )

    cleaned: dict[str, Any] = {}
    for param in spec.parameters:
        value = arguments.get(param.name)
        if value is None:
            if param.required:
                raise ToolValidationError(
                    f"Missing required parameter '{param.name}'",
                    details={"parameter": param.name},
                )
            if param.default is not None:
                cleaned[param.name] = param.default
            continue
        cleaned[param.name] = _check_value(param, value)

    if spec.mutating:
        confirmed = arguments.get(CONFIRMED_PARAM, False)
        if confirmed is None:
            confirmed = False
        if not isinstance(confirmed, bool):
            raise ToolValidationError(
                f"Parameter '{CONFIRMED_PARAM}' must be boolean",
                details={"parameter": CONFIRMED_PARAM},
            )
        cleaned[CONFIRMED_PARAM] = confirmed

    return cleaned
