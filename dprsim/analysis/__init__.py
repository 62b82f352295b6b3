"""
Analysis module for the simulator.

This module contains the deterministic analyzers built on the probability
library: the power attack optimizer and the level progression analyzer.
"""

from .level_analysis import (
    LevelAnalysis,
    analyze_build_at_level,
    analyze_build_progression,
)
from .power_attack import (
    Buff,
    PowerAttackAnalysis,
    analyze_power_attack,
    analyze_power_attack_with_buffs,
    calculate_break_even_ac,
    generate_power_attack_recommendations,
)

__all__ = [
    "LevelAnalysis",
    "analyze_build_at_level",
    "analyze_build_progression",
    "Buff",
    "PowerAttackAnalysis",
    "analyze_power_attack",
    "analyze_power_attack_with_buffs",
    "calculate_break_even_ac",
    "generate_power_attack_recommendations",
]
