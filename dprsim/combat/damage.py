"""
Damage module for the simulator.

Describes damage as a list of typed sources (weapon dice, spell dice,
feature dice), and resolves them either in closed form, for the
deterministic analyzers, or by rolling, for the Monte Carlo engine. Both
paths double dice (never flat bonuses) on a critical hit and apply the
target's immunities, resistances and vulnerabilities per damage type.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dprsim.character.build import Target
from dprsim.combat.probability import (
    elemental_adept_expectation,
    gwf_reroll_expectation,
)
from dprsim.core.constants import DamageSourceKind, DamageType, RerollMechanic
from dprsim.core.dice_parser import (
    DiceRoller,
    ParsedDice,
    expected_value,
    parse_dice_expression,
    positive_dice_terms,
)

# Elemental Adept counts every 1 on a damage die as this value.
ELEMENTAL_ADEPT_MINIMUM = 2


class DamageSource(BaseModel):
    """A single typed damage term, e.g. the weapon dice of an attack."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="What deals the damage, e.g. 'Weapon'")
    dice: ParsedDice = Field(description="Dice, flat bonus and damage type")
    source: DamageSourceKind = Field(
        default=DamageSourceKind.WEAPON,
        description="Where the damage comes from",
    )
    on_crit_double: bool = Field(
        default=True, description="Whether the dice are doubled on a crit"
    )
    reroll_mechanic: RerollMechanic = Field(
        default=RerollMechanic.NONE, description="Reroll rule applied to the dice"
    )

    @property
    def damage_type(self) -> DamageType:
        return self.dice.damage_type

    def with_bonus(self, extra: int) -> "DamageSource":
        """Returns a copy whose flat bonus is increased by `extra`."""
        return self.model_copy(
            update={"dice": self.dice.model_copy(update={"bonus": self.dice.bonus + extra})}
        )

    def critical_dice(self, is_crit: bool) -> ParsedDice:
        if is_crit and self.on_crit_double:
            return self.dice.model_copy(update={"count": self.dice.count * 2})
        return self.dice


class DamageBreakdown(BaseModel):
    """Expected damage of a list of sources, before and after resistances."""

    model_config = ConfigDict(frozen=True)

    expected: float = Field(default=0.0, description="Expected damage")
    by_type: dict[DamageType, float] = Field(
        default_factory=dict, description="Expected damage by damage type"
    )
    after_resistances: float = Field(
        default=0.0, description="Expected damage after the target's defenses"
    )
    after_resistances_by_type: dict[DamageType, float] = Field(
        default_factory=dict,
        description="Expected damage by type after the target's defenses",
    )


class AttackSequence(BaseModel):
    """An attack profile: hit and crit odds plus the damage dealt on a hit."""

    model_config = ConfigDict(frozen=True)

    hit_probability: float = Field(
        default=0.0, description="Probability that an attack hits, crits included"
    )
    crit_probability: float = Field(
        default=0.0, description="Probability that an attack crits"
    )
    normal_damage: list[DamageSource] = Field(
        default_factory=list, description="Damage dealt by every hit"
    )
    crit_damage: list[DamageSource] = Field(
        default_factory=list, description="Extra damage dealt only by a crit"
    )
    num_attacks: int = Field(default=1, description="Number of attacks")

    def weapon_sources_with_bonus(self, extra: int) -> "AttackSequence":
        """Returns a copy with `extra` flat damage on every weapon source."""
        return self.model_copy(
            update={
                "normal_damage": [
                    source.with_bonus(extra)
                    if source.source == DamageSourceKind.WEAPON
                    else source
                    for source in self.normal_damage
                ]
            }
        )


def expected_dice_damage(dice: ParsedDice, reroll: RerollMechanic) -> float:
    """
    Closed-form expected value of a dice term under a reroll rule.

    Args:
        dice (ParsedDice): The dice term.
        reroll (RerollMechanic): The reroll rule.

    Returns:
        float: The expected damage.

    """
    if dice.count == 0 or dice.sides == 0:
        return float(dice.bonus)
    if reroll == RerollMechanic.GREAT_WEAPON_FIGHTING:
        per_die = gwf_reroll_expectation(dice.sides)
    elif reroll == RerollMechanic.ELEMENTAL_ADEPT:
        per_die = elemental_adept_expectation(dice.sides)
    else:
        per_die = (dice.sides + 1) / 2
    return dice.count * per_die + dice.bonus


def expected_expression_damage(expr: str, reroll: RerollMechanic) -> float:
    """
    Closed-form expected value of a whole dice expression under a reroll rule.

    The rule applies to the added dice only, as it does when rolling.

    Args:
        expr (str): The dice expression, e.g. "8d6+2d6".
        reroll (RerollMechanic): The reroll rule.

    Returns:
        float: The expected damage.

    """
    expected = expected_value(expr)
    if reroll == RerollMechanic.NONE:
        return expected
    for dice in positive_dice_terms(expr):
        expected += expected_dice_damage(dice, reroll) - dice.average
    return expected


def calculate_total_damage(
    sources: list[DamageSource],
    is_crit: bool = False,
    target: Optional[Target] = None,
) -> DamageBreakdown:
    """
    Expected damage of several sources.

    Args:
        sources (list[DamageSource]): The damage sources.
        is_crit (bool): Double the dice of sources that double on a crit.
        target (Optional[Target]): Applies the target's defenses when given.

    Returns:
        DamageBreakdown: Totals before and after the target's defenses.

    """
    by_type: dict[DamageType, float] = {}
    resisted: dict[DamageType, float] = {}
    for source in sources:
        dice = source.critical_dice(is_crit)
        damage = max(0.0, expected_dice_damage(dice, source.reroll_mechanic))
        by_type[dice.damage_type] = by_type.get(dice.damage_type, 0.0) + damage
        multiplier = target.damage_multiplier(dice.damage_type) if target else 1.0
        resisted[dice.damage_type] = (
            resisted.get(dice.damage_type, 0.0) + damage * multiplier
        )
    return DamageBreakdown(
        expected=sum(by_type.values()),
        by_type=by_type,
        after_resistances=sum(resisted.values()),
        after_resistances_by_type=resisted,
    )


def calculate_dpr(sequence: AttackSequence, target: Optional[Target] = None) -> float:
    """
    Expected damage per round of an attack sequence.

    Each attack deals (hit - crit) * normal + crit * critical, where the
    critical damage doubles the dice of doubling sources and adds the
    crit-only sources.

    Args:
        sequence (AttackSequence): The attack profile.
        target (Optional[Target]): Applies the target's defenses when given.

    Returns:
        float: The expected damage of all attacks in the sequence.

    """
    if sequence.num_attacks <= 0:
        return 0.0
    normal = calculate_total_damage(sequence.normal_damage, False, target)
    critical = calculate_total_damage(
        sequence.normal_damage + sequence.crit_damage, True, target
    )
    normal_hit = max(0.0, sequence.hit_probability - sequence.crit_probability)
    per_attack = (
        normal_hit * normal.after_resistances
        + sequence.crit_probability * critical.after_resistances
    )
    return per_attack * sequence.num_attacks


# ============================================================================
# SOURCE CONSTRUCTORS
# ============================================================================


def weapon_damage(
    weapon_dice: str,
    ability_modifier: int,
    damage_type: DamageType = DamageType.SLASHING,
    magic_bonus: int = 0,
    reroll_mechanic: RerollMechanic = RerollMechanic.NONE,
) -> DamageSource:
    dice = parse_dice_expression(weapon_dice, damage_type)
    return DamageSource(
        name="Weapon",
        dice=dice.model_copy(update={"bonus": dice.bonus + ability_modifier + magic_bonus}),
        source=DamageSourceKind.WEAPON,
        on_crit_double=True,
        reroll_mechanic=reroll_mechanic,
    )


def feature_damage(
    feature_dice: str,
    damage_type: DamageType,
    feature_name: str,
    on_crit_double: bool = False,
) -> DamageSource:
    return DamageSource(
        name=feature_name,
        dice=parse_dice_expression(feature_dice, damage_type),
        source=DamageSourceKind.FEATURE,
        on_crit_double=on_crit_double,
    )


def brutal_critical(weapon: DamageSource, extra_dice: int) -> list[DamageSource]:
    """Extra weapon dice rolled on a crit, which are not doubled again."""
    if extra_dice <= 0 or weapon.dice.sides == 0:
        return []
    return [
        DamageSource(
            name="Brutal Critical",
            dice=ParsedDice(
                count=extra_dice,
                sides=weapon.dice.sides,
                bonus=0,
                damage_type=weapon.damage_type,
            ),
            source=DamageSourceKind.FEATURE,
            on_crit_double=False,
            reroll_mechanic=weapon.reroll_mechanic,
        )
    ]


# ============================================================================
# ROLLED DAMAGE
# ============================================================================


def roll_damage_source(
    roller: DiceRoller,
    source: DamageSource,
    is_crit: bool = False,
    target: Optional[Target] = None,
) -> int:
    """
    Rolls one damage source and applies the target's defenses.

    Args:
        roller (DiceRoller): The dice roller.
        source (DamageSource): The source to roll.
        is_crit (bool): Double the dice when the source doubles on a crit.
        target (Optional[Target]): Applies the target's defenses when given.

    Returns:
        int: The damage dealt, never negative.

    """
    dice = source.critical_dice(is_crit)
    rolled = max(0, roll_damage_expression(roller, str(dice), source.reroll_mechanic))
    if target is None:
        return rolled
    return target.modify_damage(rolled, dice.damage_type)


def roll_damage_expression(
    roller: DiceRoller, expr: str, reroll: RerollMechanic = RerollMechanic.NONE
) -> int:
    """Rolls a dice expression under a reroll rule, before any defenses."""
    if reroll == RerollMechanic.GREAT_WEAPON_FIGHTING:
        return roller.roll_damage_with_rerolls(expr, reroll_twos=True)
    if reroll == RerollMechanic.ELEMENTAL_ADEPT:
        return roller.roll_damage_with_minimum(expr, ELEMENTAL_ADEPT_MINIMUM)
    return roller.roll(expr)


def roll_damage_sources(
    roller: DiceRoller,
    sources: list[DamageSource],
    is_crit: bool = False,
    target: Optional[Target] = None,
) -> int:
    return sum(roll_damage_source(roller, source, is_crit, target) for source in sources)
