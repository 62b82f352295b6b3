"""
Closed-form combat probabilities.

Every function here is pure and deterministic: the same inputs always give
the same floating-point result. The power-attack optimizer and the level
analyzer are built on these functions and never sample.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dprsim.core.constants import (
    D20,
    DEFAULT_CRIT_RANGE,
    MAX_HIT_PROBABILITY,
    MIN_HIT_PROBABILITY,
    AdvantageState,
)

BONUS_DICE_PATTERN = re.compile(r"^([+-]?)(\d+)d(\d+)(?:\+(\d+))?$")


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


# ============================================================================
# ATTACK ROLLS
# ============================================================================


def hit_probability(attack_bonus: float, armor_class: float) -> float:
    """
    Probability that a single d20 attack hits.

    A natural 1 always misses and a natural 20 always hits, so the result
    stays within [0.05, 0.95]. Real-valued armor classes are accepted.

    Args:
        attack_bonus (float): The total attack bonus.
        armor_class (float): The target's armor class.

    Returns:
        float: The hit probability.

    """
    required = clamp(armor_class - attack_bonus, 1, D20)
    return clamp((21 - required) / D20, MIN_HIT_PROBABILITY, MAX_HIT_PROBABILITY)


def crit_probability(crit_range: int = DEFAULT_CRIT_RANGE) -> float:
    """Fraction of d20 faces that score a critical hit."""
    return clamp((21 - crit_range) / D20, 0.0, 1.0)


def advantage_transform(p: float) -> float:
    return 1 - (1 - p) ** 2


def disadvantage_transform(p: float) -> float:
    return p**2


def elven_accuracy_transform(p: float) -> float:
    return 1 - (1 - p) ** 3


def advantage_hit_probability(attack_bonus: float, armor_class: float) -> float:
    return advantage_transform(hit_probability(attack_bonus, armor_class))


def disadvantage_hit_probability(attack_bonus: float, armor_class: float) -> float:
    return disadvantage_transform(hit_probability(attack_bonus, armor_class))


def elven_accuracy_hit_probability(attack_bonus: float, armor_class: float) -> float:
    return elven_accuracy_transform(hit_probability(attack_bonus, armor_class))


def advantage_crit_probability(crit_range: int = DEFAULT_CRIT_RANGE) -> float:
    return advantage_transform(crit_probability(crit_range))


def disadvantage_crit_probability(crit_range: int = DEFAULT_CRIT_RANGE) -> float:
    return disadvantage_transform(crit_probability(crit_range))


def elven_accuracy_crit_probability(crit_range: int = DEFAULT_CRIT_RANGE) -> float:
    return elven_accuracy_transform(crit_probability(crit_range))


def natural_one_probability(state: AdvantageState = AdvantageState.NORMAL) -> float:
    """Probability that the kept d20 of an attack shows a natural 1."""
    one = 1 / D20
    if state == AdvantageState.ADVANTAGE:
        return one**2
    if state == AdvantageState.DISADVANTAGE:
        return 1 - (1 - one) ** 2
    if state == AdvantageState.ELVEN_ACCURACY:
        return one**3
    return one


def halfling_luck_hit_probability(
    attack_bonus: float,
    armor_class: float,
    state: AdvantageState = AdvantageState.NORMAL,
) -> float:
    """
    Hit probability when a kept natural 1 is rerolled once.

    The reroll is a single d20 made only when the kept roll is a 1, so the
    result is p_state + P(kept 1) * p, which is p + p/20 on a straight roll
    rather than an advantage curve. The reroll never lifts the hit chance
    above 0.95.

    Args:
        attack_bonus (float): The total attack bonus.
        armor_class (float): The target's armor class.
        state (AdvantageState): How the d20 is rolled before the reroll.

    Returns:
        float: The hit probability.

    """
    p = hit_probability(attack_bonus, armor_class)
    p_state = hit_probability_for_state(attack_bonus, armor_class, state)
    lucky = p_state + natural_one_probability(state) * p
    return clamp(lucky, MIN_HIT_PROBABILITY, max(MAX_HIT_PROBABILITY, p_state))


def halfling_luck_crit_probability(
    crit_range: int = DEFAULT_CRIT_RANGE,
    state: AdvantageState = AdvantageState.NORMAL,
) -> float:
    """Crit probability when a kept natural 1 is rerolled once."""
    crit = crit_probability(crit_range)
    lucky = natural_one_probability(state) * crit
    return crit_probability_for_state(crit_range, state) + lucky


def hit_probability_for_state(
    attack_bonus: float, armor_class: float, state: AdvantageState
) -> float:
    """Dispatches the hit probability on an advantage state."""
    if state == AdvantageState.ADVANTAGE:
        return advantage_hit_probability(attack_bonus, armor_class)
    if state == AdvantageState.DISADVANTAGE:
        return disadvantage_hit_probability(attack_bonus, armor_class)
    if state == AdvantageState.ELVEN_ACCURACY:
        return elven_accuracy_hit_probability(attack_bonus, armor_class)
    return hit_probability(attack_bonus, armor_class)


def crit_probability_for_state(
    crit_range: int = DEFAULT_CRIT_RANGE,
    state: AdvantageState = AdvantageState.NORMAL,
) -> float:
    """Dispatches the crit probability on an advantage state."""
    if state == AdvantageState.ADVANTAGE:
        return advantage_crit_probability(crit_range)
    if state == AdvantageState.DISADVANTAGE:
        return disadvantage_crit_probability(crit_range)
    if state == AdvantageState.ELVEN_ACCURACY:
        return elven_accuracy_crit_probability(crit_range)
    return crit_probability(crit_range)


# ============================================================================
# MULTI-ATTACK AGGREGATION
# ============================================================================


def multi_attack_hit_probability(p: float, num_attacks: int) -> float:
    """
    Probability of at least one hit among independent attacks.

    Args:
        p (float): Single-attack hit probability.
        num_attacks (int): Number of attacks.

    Returns:
        float: 1 - (1 - p)^n, 0 when there are no attacks.

    """
    if num_attacks <= 0:
        return 0.0
    if num_attacks == 1:
        return p
    return 1 - (1 - p) ** num_attacks


def multi_attack_crit_probability(p: float, num_attacks: int) -> float:
    return multi_attack_hit_probability(p, num_attacks)


def expected_hits(p: float, num_attacks: int) -> float:
    return p * max(0, num_attacks)


def expected_crits(p: float, num_attacks: int) -> float:
    return p * max(0, num_attacks)


# ============================================================================
# SAVING THROWS
# ============================================================================


def save_success_probability(save_dc: float, save_bonus: float) -> float:
    """
    Probability that a creature succeeds on a saving throw.

    Args:
        save_dc (float): The save DC.
        save_bonus (float): The creature's save bonus.

    Returns:
        float: The success probability, clamped to [0.05, 0.95].

    """
    required = clamp(save_dc - save_bonus, 1, D20)
    return clamp((21 - required) / D20, MIN_HIT_PROBABILITY, MAX_HIT_PROBABILITY)


def save_failure_probability(save_dc: float, save_bonus: float) -> float:
    return 1 - save_success_probability(save_dc, save_bonus)


def save_for_half_expected_damage(
    full_damage: float, failure_probability: float, half_on_success: bool = True
) -> float:
    """
    Expected damage of a saving-throw effect.

    Args:
        full_damage (float): Damage dealt on a failed save.
        failure_probability (float): Probability the save fails.
        half_on_success (bool): Whether a successful save still takes half.

    Returns:
        float: full * fail + 0.5 * full * success.

    """
    expected = full_damage * failure_probability
    if half_on_success:
        expected += 0.5 * full_damage * (1 - failure_probability)
    return expected


def legendary_resistance_failure_probability(
    base_failure: float, legendary_resistances: int, encounter_saves: int
) -> float:
    """
    Blended save failure rate over an encounter against legendary resistance.

    The first min(resistances, saves) attempts are forced successes and the
    remaining attempts fail at the base rate.

    Args:
        base_failure (float): Failure probability of a single save.
        legendary_resistances (int): Uses of Legendary Resistance.
        encounter_saves (int): Saves forced during the encounter.

    Returns:
        float: The average failure probability per save.

    """
    if legendary_resistances <= 0:
        return base_failure
    if encounter_saves <= legendary_resistances:
        return 0.0
    normal_saves = encounter_saves - legendary_resistances
    return normal_saves * base_failure / encounter_saves


def magic_resistance_failure_probability(save_dc: float, save_bonus: float) -> float:
    """Failure probability when the save is rolled with advantage."""
    return save_failure_probability(save_dc, save_bonus) ** 2


def magic_resistance_save_probability(save_dc: float, save_bonus: float) -> float:
    return 1 - magic_resistance_failure_probability(save_dc, save_bonus)


# ============================================================================
# BONUS DICE AND REROLLS
# ============================================================================


def bonus_dice_expectation(expr: str) -> float:
    """
    Expected value of a signed bonus die such as Bless ("1d4") or Bane ("-1d4").

    Args:
        expr (str): The expression, `[+-]NdS[+B]`.

    Returns:
        float: The signed expectation, 0.0 when the expression is malformed.

    """
    match = BONUS_DICE_PATTERN.match((expr or "").strip())
    if not match:
        return 0.0
    sign, count, sides, bonus = match.groups()
    multiplier = -1 if sign == "-" else 1
    expectation = int(count) * (int(sides) + 1) / 2 + int(bonus or 0)
    return multiplier * expectation


def combined_bonus_expectation(bonus_dice: list[str]) -> float:
    return sum(bonus_dice_expectation(expr) for expr in bonus_dice)


def effective_attack_bonus(base_attack_bonus: float, bonus_dice: list[str]) -> float:
    return base_attack_bonus + combined_bonus_expectation(bonus_dice)


def gwf_reroll_expectation(sides: int) -> float:
    """
    Expected value of one die when 1s and 2s are rerolled once.

    A reroll replaces the face with a fresh uniform draw, so each rerolled
    face contributes the plain average instead of its own value.

    Args:
        sides (int): Number of faces.

    Returns:
        float: ((S(S+1)/2 - 3) + 2 * (S+1)/2) / S, the plain average for S <= 2.

    """
    if sides <= 0:
        return 0.0
    if sides <= 2:
        return (sides + 1) / 2
    kept = sides * (sides + 1) / 2 - 3
    rerolled = 2 * (sides + 1) / 2
    return (kept + rerolled) / sides


def elemental_adept_expectation(sides: int) -> float:
    """Expected value of one die when a 1 counts as a 2."""
    if sides <= 0:
        return 0.0
    if sides == 1:
        return 2.0
    return (sides * (sides + 1) / 2 + 1) / sides


# ============================================================================
# MASTER CALCULATION
# ============================================================================


class AttackProbabilities(BaseModel):
    """Probabilities for one attack profile, and aggregates for several."""

    model_config = ConfigDict(frozen=True)

    hit_probability: float = Field(description="Single-attack hit probability")
    crit_probability: float = Field(description="Single-attack crit probability")
    effective_attack_bonus: float = Field(
        description="Attack bonus including the expectation of bonus dice"
    )
    bonus_dice_expectation: float = Field(
        description="Expectation contributed by bonus dice"
    )
    multi_attack_hit_probability: Optional[float] = Field(
        default=None, description="Probability of at least one hit"
    )
    multi_attack_crit_probability: Optional[float] = Field(
        default=None, description="Probability of at least one crit"
    )
    expected_hits: Optional[float] = Field(
        default=None, description="Expected number of hits"
    )
    expected_crits: Optional[float] = Field(
        default=None, description="Expected number of crits"
    )


def calculate_attack_probabilities(
    attack_bonus: float,
    armor_class: float,
    crit_range: int = DEFAULT_CRIT_RANGE,
    advantage_state: AdvantageState = AdvantageState.NORMAL,
    bonus_dice: Optional[list[str]] = None,
    halfling_luck: bool = False,
    num_attacks: int = 1,
) -> AttackProbabilities:
    """
    Computes every probability of an attack profile in one call.

    Args:
        attack_bonus (float): The base attack bonus.
        armor_class (float): The target's armor class.
        crit_range (int): Lowest natural roll that crits.
        advantage_state (AdvantageState): How the d20 is rolled.
        bonus_dice (Optional[list[str]]): Signed bonus dice added to the roll.
        halfling_luck (bool): Reroll a kept natural 1 once, under any state.
        num_attacks (int): Number of attacks for the aggregates.

    Returns:
        AttackProbabilities: The computed probabilities.

    """
    bonus_expectation = combined_bonus_expectation(bonus_dice or [])
    effective = attack_bonus + bonus_expectation

    if halfling_luck:
        hit = halfling_luck_hit_probability(effective, armor_class, advantage_state)
        crit = halfling_luck_crit_probability(crit_range, advantage_state)
    else:
        hit = hit_probability_for_state(effective, armor_class, advantage_state)
        crit = crit_probability_for_state(crit_range, advantage_state)

    extra: dict[str, float] = {}
    if num_attacks > 1:
        extra = {
            "multi_attack_hit_probability": multi_attack_hit_probability(
                hit, num_attacks
            ),
            "multi_attack_crit_probability": multi_attack_crit_probability(
                crit, num_attacks
            ),
            "expected_hits": expected_hits(hit, num_attacks),
            "expected_crits": expected_crits(crit, num_attacks),
        }
    return AttackProbabilities(
        hit_probability=hit,
        crit_probability=crit,
        effective_attack_bonus=effective,
        bonus_dice_expectation=bonus_expectation,
        **extra,
    )
