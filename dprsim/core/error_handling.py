"""
Error taxonomy and validation helpers.
"""

from typing import Any, Optional

from catchery import log_warning


class SimulationError(Exception):
    """Base class for every error raised by the simulator."""


class SimulationInputError(SimulationError, ValueError):
    """Raised when a build, target, scenario or iteration count is malformed."""


class NoValidActionError(SimulationError, RuntimeError):
    """Raised when a turn has no selectable action."""


# ==============================================================================
# VALIDATION HELPERS
# ==============================================================================
# Helpers that correct out-of-range inputs with a logged warning and continue.


def ensure_int_in_range(
    value: Any,
    param_name: str,
    min_val: int,
    max_val: Optional[int] = None,
    default: Optional[int] = None,
    context: Optional[dict[str, Any]] = None,
) -> int:
    """
    Ensures a value is an integer within the specified range, correcting if needed.
    Logs a warning for out-of-range values but continues execution.

    Args:
        value: The value to check
        param_name: Human-readable parameter name for error messages
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive), or None for no upper bound
        default: Value used when the input is not a number, defaults to min_val
        context: Additional context for logging

    Returns:
        int: The value clamped into range
    """
    fallback = min_val if default is None else default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        log_warning(
            f"{param_name} must be an integer, got: {type(value).__name__}, "
            f"correcting to {fallback}",
            {**(context or {}), "param_name": param_name, "value": value},
        )
        return fallback
    corrected = int(value)
    if corrected < min_val:
        corrected = min_val
    elif max_val is not None and corrected > max_val:
        corrected = max_val
    if corrected != value:
        log_warning(
            f"{param_name} out of range [{min_val}, {max_val}], got: {value}, "
            f"correcting to {corrected}",
            {
                **(context or {}),
                "param_name": param_name,
                "value": value,
                "corrected_to": corrected,
            },
        )
    return corrected
