"""
Combat system module for the simulator.

This module handles the combat mechanics: closed-form probabilities, damage
sources, the per-run combat state, scenarios, action selection, the Monte
Carlo engine and the aggregation of its runs.
"""

from .probability import AttackProbabilities, calculate_attack_probabilities
from .damage import AttackSequence, DamageSource, calculate_dpr
from .combat_state import CombatState, TemporaryEffect
from .scenario import CombatScenario, EnemyAction, Environment
from .actions import (
    AttackAction,
    ItemAction,
    MovementAction,
    SpecialAction,
    SpellAction,
    choose_action,
)
from .results import MonteCarloResults, SimulationRun, aggregate_runs
from .monte_carlo import MonteCarloEngine

__all__ = [
    "AttackProbabilities",
    "calculate_attack_probabilities",
    "AttackSequence",
    "DamageSource",
    "calculate_dpr",
    "CombatState",
    "TemporaryEffect",
    "CombatScenario",
    "EnemyAction",
    "Environment",
    "AttackAction",
    "ItemAction",
    "MovementAction",
    "SpecialAction",
    "SpellAction",
    "choose_action",
    "MonteCarloResults",
    "SimulationRun",
    "aggregate_runs",
    "MonteCarloEngine",
]
