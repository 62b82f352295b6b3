"""
Input validation for simulation calls.
"""

from typing import Any, List, Optional

from catchery import log_warning

from dprsim.core.error_handling import SimulationInputError


class ValidationResult:
    def __init__(self, is_valid: bool = True, errors: Optional[List[str]] = None):
        self.is_valid = is_valid
        self.errors = errors or []

    def add_error(self, error: str) -> None:
        self.is_valid = False
        self.errors.append(error)

    def merge(self, other: "ValidationResult") -> None:
        if not other.is_valid:
            self.is_valid = False
            self.errors.extend(other.errors)


def validate_build(build: Any) -> ValidationResult:
    """
    Validates that a build can be simulated.

    Args:
        build (Build): The build to check.

    Returns:
        ValidationResult: The collected errors.

    """
    result = ValidationResult()
    if not build.levels:
        result.add_error(f"Build '{build.name}' has no class levels")
    elif build.total_level > 20:
        result.add_error(
            f"Build '{build.name}' has {build.total_level} levels, at most 20 allowed"
        )
    if build.get_proficiency_bonus() < 0:
        result.add_error("Proficiency bonus must not be negative")
    crit_range = build.get_crit_range()
    if not 1 <= crit_range <= 20:
        result.add_error(f"Crit range must be between 1 and 20, got {crit_range}")
    for level, count in build.get_spell_slots().items():
        if not 1 <= level <= 9:
            result.add_error(f"Spell slot level must be between 1 and 9, got {level}")
        if count < 0:
            result.add_error(f"Spell slot count must not be negative, got {count}")
    if build.equipment.healing_potions < 0:
        result.add_error("Healing potions must not be negative")
    if not build.policies.allowed_actions:
        result.add_error("At least one action kind must be allowed")
    if build.policies.power_attack_threshold < 0:
        result.add_error("Power attack threshold must not be negative")
    return result


def validate_target(target: Any) -> ValidationResult:
    """Validates the armor class, hit points and defenses of a target."""
    result = ValidationResult()
    if target.armor_class < 1:
        result.add_error(f"Target AC must be positive, got {target.armor_class}")
    if target.hit_points < 1:
        result.add_error(f"Target hit points must be positive, got {target.hit_points}")
    if target.legendary_resistances < 0:
        result.add_error("Legendary resistances must not be negative")
    overlap = target.immunities & target.resistances
    if overlap:
        names = ", ".join(sorted(str(damage_type) for damage_type in overlap))
        result.add_error(f"Damage types both resisted and immune: {names}")
    return result


def validate_scenario(scenario: Any) -> ValidationResult:
    """Validates round and encounter counts and enemy action definitions."""
    result = ValidationResult()
    if scenario.rounds < 1:
        result.add_error(f"Scenario needs at least one round, got {scenario.rounds}")
    if scenario.encounters < 1:
        result.add_error(
            f"Scenario needs at least one encounter, got {scenario.encounters}"
        )
    for action in scenario.enemy_actions:
        if not action.name:
            result.add_error("Enemy action has no name")
        if not 0.0 <= action.probability <= 1.0:
            result.add_error(
                f"Enemy action '{action.name}' probability must be in [0, 1], "
                f"got {action.probability}"
            )
        if action.condition and action.condition_duration < 1:
            result.add_error(
                f"Enemy action '{action.name}' condition must last at least one round"
            )
    return result


def validate_iterations(iterations: Any) -> ValidationResult:
    result = ValidationResult()
    if isinstance(iterations, bool) or not isinstance(iterations, int):
        result.add_error(f"Iterations must be an integer, got {iterations!r}")
    elif iterations <= 0:
        result.add_error(f"Iterations must be positive, got {iterations}")
    return result


def ensure_valid(result: ValidationResult, what: str) -> None:
    """
    Raises if a validation result holds errors.

    Every error is logged before raising.

    Args:
        result (ValidationResult): The result to check.
        what (str): What was validated, used in the messages.

    Raises:
        SimulationInputError: If the result is not valid.

    """
    if result.is_valid:
        return
    for error in result.errors:
        log_warning(f"Invalid {what}: {error}", {"what": what, "error": error})
    raise SimulationInputError(f"Invalid {what}: " + "; ".join(result.errors))
