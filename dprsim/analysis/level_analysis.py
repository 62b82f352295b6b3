"""
Level progression analysis.

Replays a build at every character level from 1 to 20 and estimates, in
closed form, what it looks like at each one: proficiency, hit points,
attacks, spell slots, DPR under three advantage states, the features it
gains and the breakpoints worth planning around.
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dprsim.character.build import Build, ClassLevel, Target
from dprsim.character.progression import (
    brutal_critical_dice,
    features_at_level,
    multiclass_spell_slots,
    proficiency_bonus,
    sneak_attack_dice,
    superiority_die,
)
from dprsim.combat.damage import (
    AttackSequence,
    DamageSource,
    brutal_critical,
    calculate_dpr,
    weapon_damage,
)
from dprsim.combat.probability import (
    crit_probability_for_state,
    hit_probability_for_state,
    save_failure_probability,
    save_for_half_expected_damage,
)
from dprsim.core.constants import (
    DEFAULT_TARGET_AC,
    MAX_LEVEL,
    MIN_LEVEL,
    AdvantageState,
    DamageType,
)
from dprsim.core.error_handling import ensure_int_in_range
from dprsim.core.validation import ensure_valid, validate_build

# Chance per round that an off-turn attack is available.
OPPORTUNITY_ATTACK_CHANCE = 0.3
RIPOSTE_CHANCE = 0.2
OPPORTUNITY_SNEAK_ATTACK_CHANCE = 0.1
OPPORTUNITY_HUNTERS_MARK_CHANCE = 0.2

HUNTERS_MARK_AVERAGE = 3.5
D6_AVERAGE = 3.5
ARCANE_TRICKSTER_DAMAGE = 2.0
ELDRITCH_KNIGHT_CANTRIP_USAGE = 0.3
# (minimum character level, average Fire Bolt damage)
CANTRIP_TIERS = ((17, 22.0), (11, 16.5), (5, 11.0), (1, 5.5))
# (minimum class level, average damage, uses per round)
RANGER_AOE_TIERS = ((17, 17.5, 0.3), (13, 14.0, 0.25), (9, 10.5, 0.2))
ELDRITCH_KNIGHT_AOE_TIERS = ((13, 28.0, 0.2), (7, 9.0, 0.15))
# (minimum class level, average save-for-half damage)
RANGER_SAVE_TIERS = ((9, 10.5), (5, 7.0))
# (maximum character level, average creatures caught in an area)
AOE_TARGETS = ((4, 1.5), (8, 2.0), (12, 2.5), (16, 3.0))
AOE_TARGETS_EPIC = 3.5

DPR_STATES = (
    AdvantageState.NORMAL,
    AdvantageState.ADVANTAGE,
    AdvantageState.DISADVANTAGE,
)
MAJOR_FEATURE_MARKERS = ("Extra Attack", "Fighting Style")


class DPRTriple(BaseModel):
    model_config = ConfigDict(frozen=True)

    normal: float = Field(default=0.0, description="DPR rolling normally")
    advantage: float = Field(default=0.0, description="DPR with advantage")
    disadvantage: float = Field(default=0.0, description="DPR with disadvantage")

    def __add__(self, other: "DPRTriple") -> "DPRTriple":
        return DPRTriple(
            normal=self.normal + other.normal,
            advantage=self.advantage + other.advantage,
            disadvantage=self.disadvantage + other.disadvantage,
        )


class Breakpoints(BaseModel):
    model_config = ConfigDict(frozen=True)

    extra_attack: bool = Field(
        default=False, description="Attacks per action increased at this level"
    )
    asi: bool = Field(default=False, description="An ability score improvement is gained")
    spell_level: Optional[int] = Field(
        default=None, description="A new spell slot level unlocked at this level"
    )
    major_feature: Optional[str] = Field(
        default=None, description="The most notable feature gained"
    )

    @property
    def reached(self) -> bool:
        return (
            self.extra_attack
            or self.asi
            or self.spell_level is not None
            or self.major_feature is not None
        )


class LevelAnalysis(BaseModel):
    """Snapshot of a build at one character level."""

    model_config = ConfigDict(frozen=True)

    level: int = Field(description="Character level")
    proficiency_bonus: int = Field(description="Proficiency bonus")
    hit_points_average: int = Field(description="Hit points taking the die average")
    hit_points_max: int = Field(description="Hit points taking the die maximum")
    attacks_per_action: int = Field(description="Attacks per Attack action")
    spell_slots: dict[int, int] = Field(
        default_factory=dict, description="Spell slots by spell level"
    )
    dpr: DPRTriple = Field(description="Expected DPR by advantage state")
    features: list[str] = Field(
        default_factory=list, description="Features gained at this level"
    )
    breakpoints: Breakpoints = Field(
        default_factory=Breakpoints, description="Notable thresholds reached"
    )
    class_levels: dict[str, int] = Field(
        default_factory=dict, description="Levels per class at this level"
    )


# ============================================================================
# CLASS LEVEL DISTRIBUTION
# ============================================================================


def distribute_class_levels(levels: list[ClassLevel], level: int) -> list[ClassLevel]:
    """
    Fits a build's class levels to a character level.

    A build above the level is scaled down proportionally: every class but
    the last gets max(1, floor(class level * level / total)), capped so each
    later class keeps at least one level, and the last class absorbs the
    remainder. Classes are only dropped when there are more classes than
    levels, so a multiclass build at level 1 keeps only its starting class.
    A build below the level extends its primary class.

    Args:
        levels (list[ClassLevel]): The build's class levels.
        level (int): The character level.

    Returns:
        list[ClassLevel]: The fitted class levels.

    """
    total = sum(entry.level for entry in levels)
    if total == level or not levels:
        return [entry.model_copy() for entry in levels]
    if total < level:
        primary = levels.index(Build(levels=levels).primary_class)
        return [
            entry.model_copy(update={"level": entry.level + level - total})
            if index == primary
            else entry.model_copy()
            for index, entry in enumerate(levels)
        ]
    kept = levels[:level]
    scale = level / total
    fitted: list[ClassLevel] = []
    remaining = level
    for index, entry in enumerate(kept):
        later = len(kept) - index - 1
        if later == 0:
            share = remaining
        else:
            share = min(remaining - later, max(1, math.floor(entry.level * scale)))
        remaining -= share
        fitted.append(entry.model_copy(update={"level": share}))
    return fitted


def _class_levels_by_name(levels: list[ClassLevel]) -> dict[str, int]:
    by_name: dict[str, int] = {}
    for entry in levels:
        by_name[entry.class_name] = by_name.get(entry.class_name, 0) + entry.level
    return by_name


def _build_at_level(build: Build, level: int) -> Build:
    return build.model_copy(
        update={
            "levels": distribute_class_levels(build.levels, level),
            "proficiency_bonus": proficiency_bonus(level),
            "spell_slots": None,
        }
    )


def _max_hit_points(build: Build) -> int:
    con = build.abilities.modifier("constitution")
    return sum(max(1, entry.die + con) * entry.level for entry in build.levels)


# ============================================================================
# DPR ESTIMATES
# ============================================================================


def _hit_chances(attack_bonus: float, armor_class: float) -> list[float]:
    return [hit_probability_for_state(attack_bonus, armor_class, state) for state in DPR_STATES]


def _triple(values: list[float]) -> DPRTriple:
    normal, advantage, disadvantage = values
    return DPRTriple(normal=normal, advantage=advantage, disadvantage=disadvantage)


def _scaled(chances: list[float], damage: float) -> DPRTriple:
    return _triple([chance * damage for chance in chances])


def _flat(value: float) -> DPRTriple:
    return DPRTriple(normal=value, advantage=value, disadvantage=value)


def _weapon_sequence(build: Build, attacks: int) -> AttackSequence:
    weapon = build.equipment.main_hand
    source = weapon_damage(
        weapon.damage if weapon else "1d4",
        build.damage_bonus(weapon),
        weapon.damage_type if weapon else DamageType.BLUDGEONING,
        reroll_mechanic=build.weapon_reroll(weapon),
    )
    crit_extra: list[DamageSource] = []
    if weapon is None or not weapon.is_ranged:
        crit_extra = brutal_critical(
            source, brutal_critical_dice(build.class_level("barbarian"))
        )
    return AttackSequence(normal_damage=[source], crit_damage=crit_extra, num_attacks=attacks)


def _weapon_dpr(build: Build, target: Target, attacks: int) -> DPRTriple:
    weapon = build.equipment.main_hand
    attack_bonus = build.attack_bonus(weapon)
    crit_range = build.get_crit_range()
    sequence = _weapon_sequence(build, attacks)
    values = []
    for state in DPR_STATES:
        values.append(
            calculate_dpr(
                sequence.model_copy(
                    update={
                        "hit_probability": hit_probability_for_state(
                            attack_bonus, target.armor_class, state
                        ),
                        "crit_probability": crit_probability_for_state(crit_range, state),
                    }
                ),
                target,
            )
        )
    return _triple(values)


def _aoe_targets(level: int) -> float:
    for maximum, targets in AOE_TARGETS:
        if level <= maximum:
            return targets
    return AOE_TARGETS_EPIC


def _tier(tiers: tuple, level: int) -> Optional[tuple]:
    for tier in tiers:
        if level >= tier[0]:
            return tier
    return None


def _aoe_dpr(tiers: tuple, class_level: int, level: int, dc: int, target: Target) -> DPRTriple:
    tier = _tier(tiers, class_level)
    if tier is None:
        return DPRTriple()
    _, damage, usage = tier
    failure = save_failure_probability(dc, target.save_bonus)
    per_target = save_for_half_expected_damage(damage, failure)
    return _flat(per_target * _aoe_targets(level) * usage)


def _spell_dpr(build: Build, target: Target, level: int) -> DPRTriple:
    """
    Spell damage of the half and third casters whose spells complement
    their weapon attacks: Rangers, Eldritch Knights and Arcane Tricksters.
    """
    total = DPRTriple()
    prof = build.get_proficiency_bonus()
    ranger = build.class_level("ranger")
    if ranger >= 2:
        bonus = prof + build.abilities.modifier("wisdom")
        dc = 8 + bonus
        total += _scaled(_hit_chances(bonus, target.armor_class), HUNTERS_MARK_AVERAGE)
        save_tier = _tier(RANGER_SAVE_TIERS, ranger)
        if save_tier is not None:
            failure = save_failure_probability(dc, target.save_bonus)
            total += _flat(save_for_half_expected_damage(save_tier[1], failure))
        total += _aoe_dpr(RANGER_AOE_TIERS, ranger, level, dc, target)
    for entry in build.levels:
        if entry.level < 3:
            continue
        if entry.is_class("fighter") and entry.has_subclass("eldritch knight"):
            bonus = prof + build.abilities.modifier("intelligence")
            cantrip = _tier(CANTRIP_TIERS, level)
            total += _scaled(
                _hit_chances(bonus, target.armor_class),
                cantrip[1] * ELDRITCH_KNIGHT_CANTRIP_USAGE,
            )
            total += _aoe_dpr(ELDRITCH_KNIGHT_AOE_TIERS, entry.level, level, 8 + bonus, target)
        elif entry.is_class("rogue") and entry.has_subclass("arcane trickster"):
            bonus = prof + build.abilities.modifier("intelligence")
            total += _scaled(_hit_chances(bonus, target.armor_class), ARCANE_TRICKSTER_DAMAGE)
    return total


def _off_turn_dpr(build: Build, target: Target) -> DPRTriple:
    """
    Damage dealt outside the build's turn, each source weighted by the
    chance it comes up in a round.
    """
    weapon = build.equipment.main_hand
    chances = _hit_chances(build.attack_bonus(weapon), target.armor_class)
    single = calculate_dpr(
        _weapon_sequence(build, 1).model_copy(update={"hit_probability": 1.0}), target
    )
    total = _scaled(chances, single * OPPORTUNITY_ATTACK_CHANCE)
    fighter = build.class_level("fighter")
    if fighter >= 3 and build.has_subclass("battle master"):
        riposte = single + (superiority_die(fighter) + 1) / 2
        total += _scaled(chances, riposte * RIPOSTE_CHANCE)
    rogue = build.class_level("rogue")
    if rogue:
        sneak = sneak_attack_dice(rogue) * D6_AVERAGE
        total += _scaled(chances, sneak * OPPORTUNITY_SNEAK_ATTACK_CHANCE)
    if build.class_level("ranger") >= 2:
        total += _scaled(chances, HUNTERS_MARK_AVERAGE * OPPORTUNITY_HUNTERS_MARK_CHANCE)
    return total


# ============================================================================
# FEATURES AND BREAKPOINTS
# ============================================================================


def _features_gained(
    previous: dict[str, int], current: list[ClassLevel]
) -> list[tuple[str, str]]:
    """Features of every class whose level rose since the previous level."""
    gained: list[tuple[str, str]] = []
    for class_name, class_level in _class_levels_by_name(current).items():
        for new_level in range(previous.get(class_name, 0) + 1, class_level + 1):
            for feature in features_at_level(class_name, new_level):
                gained.append((feature.name, feature.category))
    return gained


def _new_spell_level(previous: dict[int, int], current: dict[int, int]) -> Optional[int]:
    unlocked = [level for level, count in current.items() if count and not previous.get(level)]
    return max(unlocked) if unlocked else None


def _major_feature(features: list[tuple[str, str]]) -> Optional[str]:
    for name, category in features:
        if any(marker in name for marker in MAJOR_FEATURE_MARKERS):
            return name
        if name.startswith("Sneak Attack (") or (
            category == "subclass" and not name.endswith("Feature")
        ):
            return name
    return None


# ============================================================================
# ENTRY POINTS
# ============================================================================


def analyze_build_at_level(
    build: Build,
    level: int,
    target_ac: int = DEFAULT_TARGET_AC,
    previous_levels: Optional[list[ClassLevel]] = None,
) -> LevelAnalysis:
    """
    Analyzes a build at one character level.

    Args:
        build (Build): The build, at any level.
        level (int): The character level to analyze, clamped to 1-20.
        target_ac (int): Armor class the DPR figures are computed against.
        previous_levels (Optional[list[ClassLevel]]): Class levels at the
            previous character level, fitted from the build when omitted.

    Returns:
        LevelAnalysis: The snapshot.

    """
    level = ensure_int_in_range(level, "level", MIN_LEVEL, MAX_LEVEL)
    leveled = _build_at_level(build, level)
    if previous_levels is None:
        previous_levels = (
            distribute_class_levels(build.levels, level - 1) if level > MIN_LEVEL else []
        )
    previous_build = build.model_copy(update={"levels": previous_levels})
    target = Target(armor_class=target_ac)

    attacks = leveled.get_attacks_per_action()
    spell_slots = multiclass_spell_slots(leveled.levels)
    dpr = (
        _weapon_dpr(leveled, target, attacks)
        + _spell_dpr(leveled, target, level)
        + _off_turn_dpr(leveled, target)
    )

    gained = _features_gained(_class_levels_by_name(previous_levels), leveled.levels)
    previous_attacks = previous_build.get_attacks_per_action() if previous_levels else 1
    breakpoints = Breakpoints(
        extra_attack=attacks > previous_attacks
        or any(name.startswith("Extra Attack") for name, _ in gained),
        asi=any(category == "asi" for _, category in gained),
        spell_level=_new_spell_level(multiclass_spell_slots(previous_levels), spell_slots),
        major_feature=_major_feature(gained),
    )
    return LevelAnalysis(
        level=level,
        proficiency_bonus=leveled.get_proficiency_bonus(),
        hit_points_average=leveled.max_hit_points(),
        hit_points_max=_max_hit_points(leveled),
        attacks_per_action=attacks,
        spell_slots=spell_slots,
        dpr=dpr,
        features=[name for name, _ in gained],
        breakpoints=breakpoints,
        class_levels=_class_levels_by_name(leveled.levels),
    )


def analyze_build_progression(
    build: Build, target_ac: int = DEFAULT_TARGET_AC
) -> list[LevelAnalysis]:
    """
    Analyzes a build at every character level from 1 to 20.

    Args:
        build (Build): The build, at any level.
        target_ac (int): Armor class the DPR figures are computed against.

    Returns:
        list[LevelAnalysis]: Twenty snapshots, ordered by level.

    Raises:
        SimulationInputError: If the build has no class levels.

    """
    ensure_valid(validate_build(build), "build")
    analyses: list[LevelAnalysis] = []
    previous: list[ClassLevel] = []
    for level in range(MIN_LEVEL, MAX_LEVEL + 1):
        analysis = analyze_build_at_level(build, level, target_ac, previous)
        analyses.append(analysis)
        previous = distribute_class_levels(build.levels, level)
    return analyses
