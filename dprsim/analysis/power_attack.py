"""
Power attack analysis for Great Weapon Master and Sharpshooter.

Compares the expected damage of a normal attack profile with the same
profile at -5 to hit and +10 weapon damage, finds the armor class where the
two break even, and sweeps the comparison across armor classes, advantage
states and combinations of buffs. Everything here is closed form, nothing
is sampled.
"""

import math
from itertools import combinations
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dprsim.character.build import Target
from dprsim.combat.damage import AttackSequence, calculate_dpr
from dprsim.combat.probability import (
    crit_probability_for_state,
    hit_probability_for_state,
)
from dprsim.core.constants import (
    BREAK_EVEN_MAX_AC,
    BREAK_EVEN_MAX_ITERATIONS,
    BREAK_EVEN_MIN_AC,
    BREAK_EVEN_TOLERANCE,
    DEFAULT_CRIT_RANGE,
    DEFAULT_POWER_ATTACK_THRESHOLD,
    POWER_ATTACK_DAMAGE,
    POWER_ATTACK_PENALTY,
    AdvantageState,
)

NO_BUFFS = "No Buffs"


class BreakEvenResult(BaseModel):
    """Outcome of the break-even armor class search."""

    model_config = ConfigDict(frozen=True)

    ac: float = Field(description="Armor class where both profiles are closest")
    delta: float = Field(description="Power attack DPR minus normal DPR at that AC")
    iterations: int = Field(description="Bisection steps taken")
    converged: bool = Field(description="Whether |delta| reached the tolerance")


class PowerAttackAnalysis(BaseModel):
    """Normal versus power attack expected damage at one armor class."""

    model_config = ConfigDict(frozen=True)

    normal_dpr: float = Field(description="Expected DPR without power attack")
    power_attack_dpr: float = Field(description="Expected DPR with power attack")
    expected_value_delta: float = Field(description="Power attack DPR minus normal DPR")
    should_use_power_attack: bool = Field(description="Whether the delta meets the threshold")
    break_even_ac: Optional[float] = Field(
        default=None, description="Armor class where the profiles break even"
    )
    threshold: float = Field(description="Minimum delta to recommend power attack")
    converged: Optional[bool] = Field(
        default=None, description="Whether the break-even search converged"
    )


class PowerAttackRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    ac: int = Field(description="Armor class")
    normal_dpr: float = Field(description="Expected DPR without power attack")
    power_attack_dpr: float = Field(description="Expected DPR with power attack")
    recommended: bool = Field(description="Whether power attack is recommended")
    advantage: float = Field(description="Power attack DPR minus normal DPR")


class Buff(BaseModel):
    """An additive bonus, e.g. Bless as +2.5 to hit on average."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Name of the buff")
    attack_bonus: float = Field(default=0.0, description="Bonus to attack rolls")
    damage_bonus: int = Field(default=0, description="Bonus to weapon damage")


class BuffAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    buff_combination: str = Field(description="Names of the active buffs")
    attack_bonus: float = Field(description="Attack bonus with the buffs")
    analysis: PowerAttackAnalysis = Field(description="Analysis with the buffs")
    recommendation: str = Field(description="Human readable recommendation")


class PowerAttackThreshold(BaseModel):
    model_config = ConfigDict(frozen=True)

    condition: str = Field(description="Advantage state, as a display name")
    break_even_ac: float = Field(description="Break-even armor class")
    converged: bool = Field(description="Whether the break-even search converged")
    recommendation: str = Field(description="Human readable recommendation")


# ============================================================================
# CORE COMPARISON
# ============================================================================


def _profile(
    attack_bonus: float,
    target_ac: float,
    sequence: AttackSequence,
    advantage_state: AdvantageState,
    crit_range: int,
) -> AttackSequence:
    return sequence.model_copy(
        update={
            "hit_probability": hit_probability_for_state(
                attack_bonus, target_ac, advantage_state
            ),
            "crit_probability": crit_probability_for_state(crit_range, advantage_state),
        }
    )


def _compare(
    attack_bonus: float,
    target_ac: float,
    sequence: AttackSequence,
    advantage_state: AdvantageState,
    target: Optional[Target],
    crit_range: int,
) -> tuple[float, float]:
    normal = _profile(attack_bonus, target_ac, sequence, advantage_state, crit_range)
    powered = _profile(
        attack_bonus + POWER_ATTACK_PENALTY,
        target_ac,
        sequence,
        advantage_state,
        crit_range,
    ).weapon_sources_with_bonus(POWER_ATTACK_DAMAGE)
    return calculate_dpr(normal, target), calculate_dpr(powered, target)


def analyze_power_attack(
    attack_bonus: float,
    target_ac: float,
    attack_sequence: AttackSequence,
    advantage_state: AdvantageState = AdvantageState.NORMAL,
    threshold: float = DEFAULT_POWER_ATTACK_THRESHOLD,
    target: Optional[Target] = None,
    crit_range: int = DEFAULT_CRIT_RANGE,
    include_break_even: bool = True,
) -> PowerAttackAnalysis:
    """
    Compares a normal attack profile with its power attack counterpart.

    The power attack profile has -5 to hit and +10 flat damage on every
    weapon-sourced damage term. Other terms (spells, features) are unchanged.

    Args:
        attack_bonus (float): The normal attack bonus.
        target_ac (float): The target's armor class.
        attack_sequence (AttackSequence): Damage sources and number of attacks,
            its probabilities are recomputed.
        advantage_state (AdvantageState): How the d20 is rolled.
        threshold (float): Minimum DPR gain to recommend power attack.
        target (Optional[Target]): Applies resistances when given.
        crit_range (int): Lowest natural roll that crits.
        include_break_even (bool): Also search the break-even armor class.

    Returns:
        PowerAttackAnalysis: The comparison.

    """
    normal_dpr, power_dpr = _compare(
        attack_bonus, target_ac, attack_sequence, advantage_state, target, crit_range
    )
    delta = power_dpr - normal_dpr
    break_even: Optional[BreakEvenResult] = None
    if include_break_even:
        break_even = calculate_break_even_ac(
            attack_bonus, attack_sequence, advantage_state, target, crit_range
        )
    return PowerAttackAnalysis(
        normal_dpr=normal_dpr,
        power_attack_dpr=power_dpr,
        expected_value_delta=delta,
        should_use_power_attack=delta >= threshold,
        break_even_ac=break_even.ac if break_even else None,
        threshold=threshold,
        converged=break_even.converged if break_even else None,
    )


def calculate_break_even_ac(
    attack_bonus: float,
    attack_sequence: AttackSequence,
    advantage_state: AdvantageState = AdvantageState.NORMAL,
    target: Optional[Target] = None,
    crit_range: int = DEFAULT_CRIT_RANGE,
    min_ac: float = BREAK_EVEN_MIN_AC,
    max_ac: float = BREAK_EVEN_MAX_AC,
    max_iterations: int = BREAK_EVEN_MAX_ITERATIONS,
    tolerance: float = BREAK_EVEN_TOLERANCE,
) -> BreakEvenResult:
    """
    Bisects the armor class where power attack stops paying off.

    The search runs over a continuous AC interval. A positive delta at the
    midpoint moves the lower bound up, anything else moves the upper bound
    down. The midpoint with the smallest |delta| is kept as the estimate, so
    a search that never reaches the tolerance still returns its best guess
    with `converged` set to False.

    Args:
        attack_bonus (float): The normal attack bonus.
        attack_sequence (AttackSequence): Damage sources and number of attacks.
        advantage_state (AdvantageState): How the d20 is rolled.
        target (Optional[Target]): Applies resistances when given.
        crit_range (int): Lowest natural roll that crits.
        min_ac (float): Lower bound of the search.
        max_ac (float): Upper bound of the search.
        max_iterations (int): Bisection step cap.
        tolerance (float): |delta| considered a break even.

    Returns:
        BreakEvenResult: The estimate and whether it converged.

    """
    low, high = min_ac, max_ac
    best_ac = (low + high) / 2
    best_delta = math.inf
    for iteration in range(1, max_iterations + 1):
        ac = (low + high) / 2
        normal_dpr, power_dpr = _compare(
            attack_bonus, ac, attack_sequence, advantage_state, target, crit_range
        )
        delta = power_dpr - normal_dpr
        if abs(delta) < abs(best_delta):
            best_ac, best_delta = ac, delta
        if abs(delta) <= tolerance:
            return BreakEvenResult(ac=ac, delta=delta, iterations=iteration, converged=True)
        if delta > 0:
            low = ac
        else:
            high = ac
    return BreakEvenResult(
        ac=best_ac, delta=best_delta, iterations=max_iterations, converged=False
    )


# ============================================================================
# SWEEPS
# ============================================================================


def generate_power_attack_recommendations(
    attack_bonus: float,
    attack_sequence: AttackSequence,
    advantage_state: AdvantageState = AdvantageState.NORMAL,
    target: Optional[Target] = None,
    ac_range: tuple[int, int] = (10, 25),
    threshold: float = 0.0,
) -> list[PowerAttackRecommendation]:
    """
    Compares both profiles at every integer armor class of a range.

    Args:
        attack_bonus (float): The normal attack bonus.
        attack_sequence (AttackSequence): Damage sources and number of attacks.
        advantage_state (AdvantageState): How the d20 is rolled.
        target (Optional[Target]): Applies resistances when given.
        ac_range (tuple[int, int]): Inclusive armor class range.
        threshold (float): Minimum DPR gain to recommend power attack.

    Returns:
        list[PowerAttackRecommendation]: One entry per armor class.

    """
    low, high = ac_range
    recommendations: list[PowerAttackRecommendation] = []
    for ac in range(low, high + 1):
        analysis = analyze_power_attack(
            attack_bonus,
            ac,
            attack_sequence,
            advantage_state,
            threshold,
            target,
            include_break_even=False,
        )
        recommendations.append(
            PowerAttackRecommendation(
                ac=ac,
                normal_dpr=analysis.normal_dpr,
                power_attack_dpr=analysis.power_attack_dpr,
                recommended=analysis.should_use_power_attack,
                advantage=analysis.expected_value_delta,
            )
        )
    return recommendations


def analyze_advantage_states(
    attack_bonus: float,
    target_ac: float,
    attack_sequence: AttackSequence,
    target: Optional[Target] = None,
    threshold: float = DEFAULT_POWER_ATTACK_THRESHOLD,
) -> dict[AdvantageState, PowerAttackAnalysis]:
    """Runs `analyze_power_attack` under every advantage state."""
    return {
        state: analyze_power_attack(
            attack_bonus, target_ac, attack_sequence, state, threshold, target
        )
        for state in AdvantageState
    }


def analyze_power_attack_with_buffs(
    base_attack_bonus: float,
    target_ac: float,
    attack_sequence: AttackSequence,
    buffs: Optional[list[Buff]] = None,
    target: Optional[Target] = None,
    threshold: float = DEFAULT_POWER_ATTACK_THRESHOLD,
) -> list[BuffAnalysis]:
    """
    Runs the comparison for every subset of a list of buffs.

    Attack and damage bonuses of the buffs in a subset add up. The number
    of subsets is 2^N, so this is meant for a handful of buffs.

    Args:
        base_attack_bonus (float): The attack bonus without buffs.
        target_ac (float): The target's armor class.
        attack_sequence (AttackSequence): Damage sources and number of attacks.
        buffs (Optional[list[Buff]]): The buffs to combine.
        target (Optional[Target]): Applies resistances when given.
        threshold (float): Minimum DPR gain to recommend power attack.

    Returns:
        list[BuffAnalysis]: One entry per subset, the empty subset first.

    """
    buffs = buffs or []
    results: list[BuffAnalysis] = []
    for size in range(len(buffs) + 1):
        for subset in combinations(buffs, size):
            attack_bonus = base_attack_bonus + sum(buff.attack_bonus for buff in subset)
            damage_bonus = sum(buff.damage_bonus for buff in subset)
            sequence = attack_sequence.weapon_sources_with_bonus(damage_bonus)
            analysis = analyze_power_attack(
                attack_bonus,
                target_ac,
                sequence,
                threshold=threshold,
                target=target,
            )
            break_even = analysis.break_even_ac or 0.0
            if analysis.should_use_power_attack:
                recommendation = f"Use power attack (AC <= {break_even:.1f})"
            else:
                recommendation = f"Don't use power attack (AC >= {break_even:.1f})"
            results.append(
                BuffAnalysis(
                    buff_combination=" + ".join(buff.name for buff in subset) or NO_BUFFS,
                    attack_bonus=attack_bonus,
                    analysis=analysis,
                    recommendation=recommendation,
                )
            )
    return results


def get_power_attack_thresholds(
    attack_bonus: float,
    attack_sequence: AttackSequence,
    target: Optional[Target] = None,
) -> list[PowerAttackThreshold]:
    """Break-even armor class under every advantage state."""
    thresholds: list[PowerAttackThreshold] = []
    for state in AdvantageState:
        result = calculate_break_even_ac(attack_bonus, attack_sequence, state, target)
        thresholds.append(
            PowerAttackThreshold(
                condition=state.display_name,
                break_even_ac=result.ac,
                converged=result.converged,
                recommendation=f"Use power attack when target AC <= {result.ac:.1f}",
            )
        )
    return thresholds


def format_power_attack_advice(analysis: PowerAttackAnalysis) -> str:
    if analysis.should_use_power_attack:
        return f"Use Power Attack (+{analysis.expected_value_delta:.1f} DPR)"
    return f"Don't Use Power Attack ({analysis.expected_value_delta:.1f} DPR)"
