"""
Core system module for the simulator.

This module contains the fundamental components the rest of the package is
built on: constants and enumerations, the seeded random generator, dice
expressions, descriptive statistics, errors, input validation and logging.
"""

from .constants import (
    ActionKind,
    AdvantageState,
    CasterType,
    Cover,
    DamageSourceKind,
    DamageType,
    Lighting,
    RerollMechanic,
    RestType,
    SmitePolicy,
    Terrain,
)
from .dice_parser import (
    DiceRoller,
    ParsedDice,
    double_dice,
    expected_value,
    max_value,
    min_value,
    parse_dice_expression,
    positive_dice_terms,
)
from .error_handling import (
    NoValidActionError,
    SimulationError,
    SimulationInputError,
    ensure_int_in_range,
)
from .logging import get_logger, setup_logging
from .rng import SeededRandom
from .statistics import (
    ConfidenceInterval,
    confidence_interval,
    mean,
    median,
    normal_inverse,
    percentiles,
    standard_deviation,
    t_critical_value,
)
from .validation import (
    ValidationResult,
    ensure_valid,
    validate_build,
    validate_iterations,
    validate_scenario,
    validate_target,
)

__all__ = [
    # Constants
    "ActionKind",
    "AdvantageState",
    "CasterType",
    "Cover",
    "DamageSourceKind",
    "DamageType",
    "Lighting",
    "RerollMechanic",
    "RestType",
    "SmitePolicy",
    "Terrain",
    # Dice
    "DiceRoller",
    "ParsedDice",
    "double_dice",
    "expected_value",
    "max_value",
    "min_value",
    "parse_dice_expression",
    "positive_dice_terms",
    # Errors
    "NoValidActionError",
    "SimulationError",
    "SimulationInputError",
    "ensure_int_in_range",
    # Logging
    "get_logger",
    "setup_logging",
    # Random
    "SeededRandom",
    # Statistics
    "ConfidenceInterval",
    "confidence_interval",
    "mean",
    "median",
    "normal_inverse",
    "percentiles",
    "standard_deviation",
    "t_critical_value",
    # Validation
    "ValidationResult",
    "ensure_valid",
    "validate_build",
    "validate_iterations",
    "validate_scenario",
    "validate_target",
]
