"""
Combat actions module for the simulator.

Defines the closed set of actions a turn can resolve (attack, spell, item,
movement and special actions), builds them from a character build, scores
them in closed form with the probability library and selects the best one.
The Monte Carlo engine resolves the selected action by rolling dice.
"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dprsim.character.build import Build, SpellProfile, Target, Weapon
from dprsim.character.progression import brutal_critical_dice, sneak_attack_dice
from dprsim.combat.combat_state import CombatState
from dprsim.combat.damage import (
    AttackSequence,
    DamageSource,
    brutal_critical,
    calculate_dpr,
    calculate_total_damage,
    expected_expression_damage,
    feature_damage,
    weapon_damage,
)
from dprsim.combat.probability import (
    AttackProbabilities,
    calculate_attack_probabilities,
    crit_probability_for_state,
    hit_probability_for_state,
    magic_resistance_failure_probability,
    multi_attack_hit_probability,
    save_failure_probability,
    save_for_half_expected_damage,
)
from dprsim.core.constants import (
    ACTION_PRIORITY,
    ADVANTAGE_CONDITIONS,
    DEFAULT_CRIT_RANGE,
    DEFAULT_MOVEMENT,
    DISADVANTAGE_CONDITIONS,
    FEAT_ELVEN_ACCURACY,
    FEAT_GREAT_WEAPON_MASTER,
    FEAT_SHARPSHOOTER,
    FEATURE_COLOSSUS_SLAYER,
    POWER_ATTACK_DAMAGE,
    POWER_ATTACK_PENALTY,
    TARGET_ADVANTAGE_CONDITIONS,
    TRAIT_HALFLING_LUCK,
    ActionKind,
    AdvantageState,
    DamageType,
    RerollMechanic,
)
from dprsim.core.dice_parser import double_dice, expected_value
from dprsim.core.error_handling import NoValidActionError

HEALING_POTION = "healing_potion"
HEALING_POTION_DICE = "2d4+2"
UNARMED_DAMAGE = "1d4"

FAVOURABLE_STATES = frozenset({AdvantageState.ADVANTAGE, AdvantageState.ELVEN_ACCURACY})


# ============================================================================
# ACTION VARIANTS
# ============================================================================


class CombatAction(BaseModel):
    """Base class of the actions a turn can resolve."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Name of the action")
    action_type: Literal["attack", "spell", "item", "movement", "special"] = Field(
        description="Variant tag of the action"
    )

    @property
    def kind(self) -> ActionKind:
        return ActionKind[self.action_type.upper()]


class AttackAction(CombatAction):
    """A weapon attack, repeated once per attack granted by the Attack action."""

    action_type: Literal["attack"] = Field(default="attack", description="Variant tag")
    weapon: Optional[Weapon] = Field(default=None, description="None for unarmed")
    attack_bonus: int = Field(description="Total attack bonus, power attack included")
    advantage_state: AdvantageState = Field(
        default=AdvantageState.NORMAL, description="How the d20 is rolled"
    )
    halfling_luck: bool = Field(default=False, description="Reroll natural 1s once")
    crit_range: int = Field(
        default=DEFAULT_CRIT_RANGE, description="Lowest natural roll that crits"
    )
    bonus_dice: list[str] = Field(
        default_factory=list, description="Signed dice added to each attack roll"
    )
    num_attacks: int = Field(default=1, description="Attacks made by the action")
    damage: list[DamageSource] = Field(
        default_factory=list, description="Damage dealt by every hit"
    )
    crit_damage: list[DamageSource] = Field(
        default_factory=list, description="Extra damage dealt only by crits"
    )
    once_per_turn: list[DamageSource] = Field(
        default_factory=list,
        description="Damage added to the first qualifying hit of the turn",
    )
    power_attack: bool = Field(
        default=False, description="Great Weapon Master or Sharpshooter is used"
    )
    off_hand: bool = Field(default=False, description="This is the off-hand attack")

    @property
    def is_melee(self) -> bool:
        return self.weapon is None or not self.weapon.is_ranged

    def probabilities(self, armor_class: float) -> AttackProbabilities:
        return calculate_attack_probabilities(
            self.attack_bonus,
            armor_class,
            crit_range=self.crit_range,
            advantage_state=self.advantage_state,
            bonus_dice=self.bonus_dice,
            halfling_luck=self.halfling_luck,
            num_attacks=self.num_attacks,
        )

    def sequence(self, armor_class: float) -> AttackSequence:
        probabilities = self.probabilities(armor_class)
        return AttackSequence(
            hit_probability=probabilities.hit_probability,
            crit_probability=probabilities.crit_probability,
            normal_damage=self.damage,
            crit_damage=self.crit_damage,
            num_attacks=self.num_attacks,
        )


class SpellAction(CombatAction):
    """A damaging spell cast with the action, or with the bonus action."""

    action_type: Literal["spell"] = Field(default="spell", description="Variant tag")
    spell: SpellProfile = Field(description="The spell cast")
    slot_level: int = Field(default=0, description="Slot level spent, 0 for cantrips")
    damage: str = Field(description="Damage expression at this slot and level")
    attack_bonus: int = Field(default=0, description="Spell attack bonus")
    save_dc: int = Field(default=10, description="Spell save DC")
    advantage_state: AdvantageState = Field(
        default=AdvantageState.NORMAL, description="How a spell attack is rolled"
    )
    reroll_mechanic: RerollMechanic = Field(
        default=RerollMechanic.NONE, description="Reroll rule of the damage dice"
    )


class ItemAction(CombatAction):
    action_type: Literal["item"] = Field(default="item", description="Variant tag")
    item: str = Field(default=HEALING_POTION, description="Item consumed")
    healing: str = Field(default=HEALING_POTION_DICE, description="Healing dice")


class MovementAction(CombatAction):
    action_type: Literal["movement"] = Field(default="movement", description="Variant tag")
    distance: int = Field(default=DEFAULT_MOVEMENT, description="Extra feet of movement")


class SpecialAction(CombatAction):
    action_type: Literal["special"] = Field(default="special", description="Variant tag")
    maneuver: Literal["dodge"] = Field(default="dodge", description="What is done")


ActionVariant = Union[AttackAction, SpellAction, ItemAction, MovementAction, SpecialAction]


# ============================================================================
# ATTACK CONSTRUCTION
# ============================================================================


def effective_advantage(
    build: Build, target: Target, state: Optional[CombatState] = None
) -> AdvantageState:
    """
    Combines the policy advantage state with conditions.

    Attacker conditions such as `invisible` grant advantage, others such as
    `poisoned` impose disadvantage, and some target conditions grant
    advantage to attackers. Any mix of advantage and disadvantage cancels
    out. Elven Accuracy upgrades advantage.

    Args:
        build (Build): The attacking build.
        target (Target): The target.
        state (Optional[CombatState]): Current conditions of the build, the
            build's starting conditions are used when omitted.

    Returns:
        AdvantageState: The state the d20 is rolled with.

    """
    conditions = state.resources.conditions if state is not None else build.conditions
    policy = build.policies.advantage_state
    favourable = (
        policy in FAVOURABLE_STATES
        or any(condition in ADVANTAGE_CONDITIONS for condition in conditions)
        or any(condition in TARGET_ADVANTAGE_CONDITIONS for condition in target.conditions)
    )
    unfavourable = policy == AdvantageState.DISADVANTAGE or any(
        condition in DISADVANTAGE_CONDITIONS for condition in conditions
    )
    if favourable and unfavourable:
        return AdvantageState.NORMAL
    if favourable:
        if policy == AdvantageState.ELVEN_ACCURACY or build.has_feature(
            FEAT_ELVEN_ACCURACY
        ):
            return AdvantageState.ELVEN_ACCURACY
        return AdvantageState.ADVANTAGE
    if unfavourable:
        return AdvantageState.DISADVANTAGE
    return AdvantageState.NORMAL


def once_per_turn_sources(
    build: Build, weapon: Optional[Weapon], advantage: AdvantageState
) -> list[DamageSource]:
    """
    Damage a build adds to its first qualifying hit of a turn.

    Sneak Attack needs a finesse or ranged weapon, or advantage. Colossus
    Slayer needs three ranger levels and the feature.

    Args:
        build (Build): The build.
        weapon (Optional[Weapon]): The weapon used.
        advantage (AdvantageState): The advantage state of the attack.

    Returns:
        list[DamageSource]: The qualifying sources.

    """
    sources: list[DamageSource] = []
    damage_type = weapon.damage_type if weapon else DamageType.BLUDGEONING
    dice = sneak_attack_dice(build.class_level("rogue"))
    qualifies = advantage in FAVOURABLE_STATES or (
        weapon is not None and (weapon.is_finesse or weapon.is_ranged)
    )
    if dice and qualifies:
        sources.append(
            feature_damage(f"{dice}d6", damage_type, "Sneak Attack", on_crit_double=True)
        )
    if build.class_level("ranger") >= 3 and build.has_feature(FEATURE_COLOSSUS_SLAYER):
        sources.append(feature_damage("1d8", damage_type, "Colossus Slayer"))
    return sources


def power_attack_feat(build: Build, weapon: Optional[Weapon]) -> Optional[str]:
    """Returns the power attack feat usable with a weapon, if any."""
    if weapon is None:
        return None
    if weapon.is_ranged and build.has_feature(FEAT_SHARPSHOOTER):
        return FEAT_SHARPSHOOTER
    if not weapon.is_ranged and weapon.is_heavy and build.has_feature(
        FEAT_GREAT_WEAPON_MASTER
    ):
        return FEAT_GREAT_WEAPON_MASTER
    return None


def power_attack_delta(action: AttackAction, target: Target) -> float:
    """
    Expected DPR gained by trading -5 to hit for +10 weapon damage.

    Args:
        action (AttackAction): The attack without power attack.
        target (Target): The target.

    Returns:
        float: Power attack DPR minus normal DPR.

    """
    normal = action.sequence(target.armor_class)
    powered = action.model_copy(
        update={"attack_bonus": action.attack_bonus + POWER_ATTACK_PENALTY}
    ).sequence(target.armor_class)
    powered = powered.weapon_sources_with_bonus(POWER_ATTACK_DAMAGE)
    return calculate_dpr(powered, target) - calculate_dpr(normal, target)


def build_attack_action(
    build: Build,
    target: Target,
    weapon: Optional[Weapon] = None,
    off_hand: bool = False,
    state: Optional[CombatState] = None,
) -> AttackAction:
    """
    Builds the attack action of a build against a target.

    Power attack is applied when the policy allows it, the build has the
    matching feat and the expected DPR gain reaches the policy threshold.

    Args:
        build (Build): The attacking build.
        target (Target): The target.
        weapon (Optional[Weapon]): The weapon, the main hand when omitted.
        off_hand (bool): Build the single off-hand attack instead.
        state (Optional[CombatState]): Current state, for conditions.

    Returns:
        AttackAction: The attack action.

    """
    if weapon is None and not off_hand:
        weapon = build.equipment.main_hand
    advantage = effective_advantage(build, target, state)
    reroll = build.weapon_reroll(weapon)
    damage_type = weapon.damage_type if weapon else DamageType.BLUDGEONING
    source = weapon_damage(
        weapon.damage if weapon else UNARMED_DAMAGE,
        build.damage_bonus(weapon, off_hand),
        damage_type,
        reroll_mechanic=reroll,
    )
    crit_extra: list[DamageSource] = []
    if weapon is None or not weapon.is_ranged:
        crit_extra = brutal_critical(
            source, brutal_critical_dice(build.class_level("barbarian"))
        )
    action = AttackAction(
        name=f"Attack ({weapon.name if weapon else 'Unarmed'})",
        weapon=weapon,
        attack_bonus=build.attack_bonus(weapon),
        advantage_state=advantage,
        halfling_luck=build.has_feature(TRAIT_HALFLING_LUCK),
        crit_range=build.get_crit_range(),
        bonus_dice=list(build.policies.bonus_dice),
        num_attacks=1 if off_hand else build.get_attacks_per_action(),
        damage=[source],
        crit_damage=crit_extra,
        once_per_turn=once_per_turn_sources(build, weapon, advantage),
        off_hand=off_hand,
    )
    if off_hand or not build.policies.use_power_attack:
        return action
    if power_attack_feat(build, weapon) is None:
        return action
    if power_attack_delta(action, target) < build.policies.power_attack_threshold:
        return action
    return action.model_copy(
        update={
            "name": f"{action.name} [power attack]",
            "attack_bonus": action.attack_bonus + POWER_ATTACK_PENALTY,
            "damage": [source.with_bonus(POWER_ATTACK_DAMAGE)],
            "power_attack": True,
        }
    )


def build_spell_action(
    build: Build,
    target: Target,
    spell: SpellProfile,
    slot_level: int = 0,
    state: Optional[CombatState] = None,
) -> SpellAction:
    if spell.is_cantrip:
        damage = spell.cantrip_damage(build.total_level)
    else:
        damage = spell.damage_at_slot(max(slot_level, spell.level))
    return SpellAction(
        name=spell.name if spell.is_cantrip else f"{spell.name} (level {slot_level})",
        spell=spell,
        slot_level=0 if spell.is_cantrip else slot_level,
        damage=damage,
        attack_bonus=build.spell_attack_bonus(),
        save_dc=build.spell_save_dc(),
        advantage_state=effective_advantage(build, target, state),
        reroll_mechanic=build.spell_reroll(spell),
    )


# ============================================================================
# AVAILABILITY, SCORING AND SELECTION
# ============================================================================


def is_wounded(state: CombatState) -> bool:
    return state.resources.hit_points * 2 <= state.resources.max_hit_points


def available_actions(
    build: Build, target: Target, state: CombatState
) -> list[ActionVariant]:
    """
    Lists the main actions a build may take this turn.

    Args:
        build (Build): The acting build.
        target (Target): The target.
        state (CombatState): The current state of the run.

    Returns:
        list[ActionVariant]: Actions allowed by the build's policies, in
        tie-break order.

    """
    allowed = build.policies.allowed_actions
    actions: list[ActionVariant] = []
    if ActionKind.ATTACK in allowed:
        actions.append(build_attack_action(build, target, state=state))
    if ActionKind.SPELL in allowed:
        for spell in build.spells:
            if not spell.damage or spell.bonus_action:
                continue
            if spell.is_cantrip:
                actions.append(build_spell_action(build, target, spell, state=state))
                continue
            slot = state.lowest_slot(spell.level)
            if slot is not None:
                actions.append(build_spell_action(build, target, spell, slot, state))
    if (
        ActionKind.ITEM in allowed
        and state.has_item(HEALING_POTION)
        and is_wounded(state)
    ):
        actions.append(ItemAction(name="Drink Healing Potion"))
    if ActionKind.MOVEMENT in allowed:
        actions.append(MovementAction(name="Dash"))
    if ActionKind.SPECIAL in allowed:
        actions.append(SpecialAction(name="Dodge"))
    return actions


def rider_damage_sources(build: Build, state: Optional[CombatState]) -> list[DamageSource]:
    """Damage added to every weapon hit by the active concentration rider."""
    if state is None or state.resources.concentration is None:
        return []
    for spell in build.spells:
        if spell.name == state.resources.concentration and spell.rider_damage:
            return [
                feature_damage(spell.rider_damage, spell.rider_damage_type, spell.name)
            ]
    return []


def score_attack(
    action: AttackAction,
    build: Build,
    target: Target,
    state: Optional[CombatState] = None,
) -> float:
    """
    Closed-form expected damage of an attack action.

    Weapon damage of every attack, plus rider damage per hit and
    once-per-turn damage weighted by the chance of at least one hit.

    Args:
        action (AttackAction): The attack.
        build (Build): The attacking build.
        target (Target): The target.
        state (Optional[CombatState]): Current state, for active riders.

    Returns:
        float: The expected damage.

    """
    probabilities = action.probabilities(target.armor_class)
    expected = calculate_dpr(action.sequence(target.armor_class), target)
    riders = rider_damage_sources(build, state)
    if riders:
        expected += (
            probabilities.hit_probability
            * action.num_attacks
            * calculate_total_damage(riders, False, target).after_resistances
        )
    if action.once_per_turn:
        expected += (
            multi_attack_hit_probability(probabilities.hit_probability, action.num_attacks)
            * calculate_total_damage(action.once_per_turn, False, target).after_resistances
        )
    return expected


def score_spell(
    action: SpellAction, target: Target, state: Optional[CombatState] = None
) -> float:
    """
    Closed-form expected damage of a spell.

    Spell attacks double their dice on a crit. Saving throws account for
    Magic Resistance, and a remaining Legendary Resistance negates a failed
    save, which leaves only the half damage of a save-for-half spell.

    Args:
        action (SpellAction): The spell.
        target (Target): The target.
        state (Optional[CombatState]): Current state, for legendary resistances.

    Returns:
        float: The expected damage.

    """
    multiplier = target.damage_multiplier(action.spell.damage_type)
    reroll = action.reroll_mechanic
    full = expected_expression_damage(action.damage, reroll) * multiplier
    if action.spell.attack_roll:
        hit = hit_probability_for_state(
            action.attack_bonus, target.armor_class, action.advantage_state
        )
        crit = crit_probability_for_state(DEFAULT_CRIT_RANGE, action.advantage_state)
        critical = (
            expected_expression_damage(double_dice(action.damage), reroll) * multiplier
        )
        return max(0.0, hit - crit) * full + crit * critical
    if target.magic_resistance:
        failure = magic_resistance_failure_probability(action.save_dc, target.save_bonus)
    else:
        failure = save_failure_probability(action.save_dc, target.save_bonus)
    if state is not None and state.target_legendary_resistances > 0:
        failure = 0.0
    return save_for_half_expected_damage(full, failure, action.spell.half_on_save)


def score_action(
    action: ActionVariant,
    build: Build,
    target: Target,
    state: Optional[CombatState] = None,
) -> float:
    """
    Scores an action by its closed-form expected value.

    Damaging actions score their expected damage, a healing item its
    expected healing, movement and special actions zero.

    Args:
        action (ActionVariant): The action to score.
        build (Build): The acting build.
        target (Target): The target.
        state (Optional[CombatState]): The current state of the run.

    Returns:
        float: The score.

    """
    if isinstance(action, AttackAction):
        return score_attack(action, build, target, state)
    if isinstance(action, SpellAction):
        return score_spell(action, target, state)
    if isinstance(action, ItemAction):
        if state is not None and not is_wounded(state):
            return 0.0
        return expected_value(action.healing)
    return 0.0


def select_action(
    actions: list[ActionVariant], scores: list[float]
) -> ActionVariant:
    """
    Picks the highest-scoring action.

    Ties go to the variant that comes first in the order attack, spell,
    item, movement, special, and then to the earliest action in the list.

    Args:
        actions (list[ActionVariant]): Candidate actions.
        scores (list[float]): Score of each candidate.

    Returns:
        ActionVariant: The selected action.

    Raises:
        NoValidActionError: If there is no candidate.

    """
    if not actions:
        raise NoValidActionError("No valid action available this turn")
    best = 0
    for index in range(1, len(actions)):
        if scores[index] > scores[best]:
            best = index
        elif scores[index] == scores[best] and ACTION_PRIORITY.index(
            actions[index].kind
        ) < ACTION_PRIORITY.index(actions[best].kind):
            best = index
    return actions[best]


def choose_action(
    build: Build, target: Target, state: CombatState
) -> tuple[ActionVariant, float]:
    """Lists, scores and selects the main action of a turn."""
    actions = available_actions(build, target, state)
    scores = [score_action(action, build, target, state) for action in actions]
    action = select_action(actions, scores)
    return action, scores[actions.index(action)]
