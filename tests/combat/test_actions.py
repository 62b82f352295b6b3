"""
Tests for action construction, scoring and selection.
"""

import pytest

from dprsim.character.build import (
    Abilities,
    Build,
    ClassLevel,
    Equipment,
    Policies,
    SpellProfile,
    Target,
    Weapon,
)
from dprsim.combat.actions import (
    AttackAction,
    ItemAction,
    MovementAction,
    SpecialAction,
    SpellAction,
    available_actions,
    build_attack_action,
    build_spell_action,
    choose_action,
    effective_advantage,
    once_per_turn_sources,
    power_attack_delta,
    rider_damage_sources,
    score_action,
    score_spell,
    select_action,
)
from dprsim.combat.combat_state import CombatState, Resources, TemporaryEffect
from dprsim.core.constants import ActionKind, AdvantageState, DamageType, RerollMechanic
from dprsim.core.error_handling import NoValidActionError


def _state(hit_points=40, max_hit_points=40, spell_slots=None, items=None):
    return CombatState(
        resources=Resources(
            hit_points=hit_points,
            max_hit_points=max_hit_points,
            spell_slots=spell_slots or {},
            items=items or {},
        )
    )


@pytest.fixture
def great_weapon_master(fighter):
    return fighter.model_copy(
        update={
            "features": ["Great Weapon Master"],
            "policies": Policies(use_power_attack=True, power_attack_threshold=0.0),
        }
    )


# ============================================================================
# ADVANTAGE
# ============================================================================


def test_effective_advantage_policy(fighter, target):
    """Test that the policy state is used without conditions."""
    assert effective_advantage(fighter, target) == AdvantageState.NORMAL
    reckless = fighter.model_copy(
        update={"policies": Policies(advantage_state=AdvantageState.ADVANTAGE)}
    )
    assert effective_advantage(reckless, target) == AdvantageState.ADVANTAGE


def test_advantage_and_disadvantage_cancel(fighter, target):
    """Test that a poisoned attacker with advantage rolls normally."""
    build = fighter.model_copy(
        update={
            "policies": Policies(advantage_state=AdvantageState.ADVANTAGE),
            "conditions": ["poisoned"],
        }
    )
    assert effective_advantage(build, target) == AdvantageState.NORMAL


def test_conditions_change_the_roll(fighter, target):
    """Test attacker and target conditions."""
    poisoned = _state()
    poisoned.add_condition("poisoned")
    assert effective_advantage(fighter, target, poisoned) == AdvantageState.DISADVANTAGE
    paralyzed = target.model_copy(update={"conditions": ["paralyzed"]})
    assert effective_advantage(fighter, paralyzed) == AdvantageState.ADVANTAGE


def test_elven_accuracy_upgrades_advantage(fighter, target):
    """Test that the feat turns advantage into three dice."""
    build = fighter.model_copy(
        update={
            "features": ["Elven Accuracy"],
            "conditions": ["invisible"],
        }
    )
    assert effective_advantage(build, target) == AdvantageState.ELVEN_ACCURACY


# ============================================================================
# ATTACK CONSTRUCTION
# ============================================================================


def test_build_attack_action(fighter, target):
    """Test the attack action of a level 5 fighter."""
    action = build_attack_action(fighter, target)
    assert action.kind == ActionKind.ATTACK
    assert action.name == "Attack (Greatsword)"
    assert action.num_attacks == 2
    assert action.attack_bonus == 7
    assert str(action.damage[0].dice) == "2d6+4"
    assert action.is_melee
    assert not action.power_attack


def test_unarmed_attack(target):
    """Test that a build without a weapon attacks unarmed."""
    build = Build(levels=[ClassLevel(class_name="Monk", level=1)])
    action = build_attack_action(build, target)
    assert action.name == "Attack (Unarmed)"
    assert action.damage[0].damage_type == DamageType.BLUDGEONING


def test_power_attack_applies_against_low_ac(great_weapon_master):
    """Test that power attack is used when it gains damage."""
    action = build_attack_action(great_weapon_master, Target(armor_class=10))
    assert action.power_attack
    assert action.name.endswith("[power attack]")
    assert action.attack_bonus == 2
    assert action.damage[0].dice.bonus == 14


def test_power_attack_skipped_against_high_ac(great_weapon_master):
    """Test that power attack is skipped when it loses damage."""
    target = Target(armor_class=25)
    action = build_attack_action(great_weapon_master, target)
    assert not action.power_attack
    assert power_attack_delta(action, target) < 0


def test_power_attack_needs_a_heavy_weapon(great_weapon_master, rapier):
    """Test that Great Weapon Master needs a heavy melee weapon."""
    build = great_weapon_master.model_copy(
        update={"equipment": Equipment(main_hand=rapier)}
    )
    assert not build_attack_action(build, Target(armor_class=10)).power_attack


def test_off_hand_attack_is_a_single_attack(target):
    """Test the off-hand attack."""
    shortsword = Weapon(name="Shortsword", damage="1d6", properties=["finesse", "light"])
    build = Build(
        levels=[ClassLevel(class_name="Fighter", level=5)],
        abilities=Abilities(dexterity=16),
        equipment=Equipment(main_hand=shortsword, off_hand=shortsword),
    )
    action = build_attack_action(build, target, shortsword, off_hand=True)
    assert action.num_attacks == 1
    assert action.off_hand
    assert action.damage[0].dice.bonus == 0


def test_brutal_critical_on_melee_attacks(target, greatsword):
    """Test that barbarians add crit-only weapon dice."""
    build = Build(
        levels=[ClassLevel(class_name="Barbarian", level=9)],
        equipment=Equipment(main_hand=greatsword),
    )
    action = build_attack_action(build, target)
    assert len(action.crit_damage) == 1
    assert action.crit_damage[0].dice.sides == 6


def test_sneak_attack_qualification(rogue, rapier, greatsword):
    """Test that Sneak Attack needs finesse, range or advantage."""
    sources = once_per_turn_sources(rogue, rapier, AdvantageState.NORMAL)
    assert [source.name for source in sources] == ["Sneak Attack"]
    assert sources[0].dice.count == 3
    assert sources[0].on_crit_double
    assert once_per_turn_sources(rogue, greatsword, AdvantageState.NORMAL) == []
    assert len(once_per_turn_sources(rogue, greatsword, AdvantageState.ADVANTAGE)) == 1


def test_colossus_slayer(target):
    """Test that Colossus Slayer needs three ranger levels and the feature."""
    bow = Weapon(name="Longbow", kind="ranged", damage="1d8", damage_type=DamageType.PIERCING)
    ranger = Build(
        levels=[ClassLevel(class_name="Ranger", level=3)],
        features=["Colossus Slayer"],
        equipment=Equipment(main_hand=bow),
    )
    sources = once_per_turn_sources(ranger, bow, AdvantageState.NORMAL)
    assert [source.name for source in sources] == ["Colossus Slayer"]
    assert not sources[0].on_crit_double


# ============================================================================
# SPELLS AND AVAILABILITY
# ============================================================================


def test_build_spell_action(fire_bolt, fireball, target):
    """Test cantrip scaling and slot spending in spell actions."""
    wizard = Build(
        levels=[ClassLevel(class_name="Wizard", level=5)],
        abilities=Abilities(intelligence=16),
        spells=[fire_bolt, fireball],
    )
    cantrip = build_spell_action(wizard, target, fire_bolt)
    assert cantrip.damage == "2d10"
    assert cantrip.slot_level == 0
    assert cantrip.attack_bonus == 6
    leveled = build_spell_action(wizard, target, fireball, 3)
    assert leveled.name == "Fireball (level 3)"
    assert leveled.save_dc == 14


def test_available_actions_respect_slots_and_policies(fire_bolt, fireball, target):
    """Test that only castable spells and allowed kinds are listed."""
    wizard = Build(
        levels=[ClassLevel(class_name="Wizard", level=5)],
        spells=[fire_bolt, fireball],
    )
    with_slots = available_actions(wizard, target, _state(spell_slots={3: 1}))
    assert [action.kind for action in with_slots] == [
        ActionKind.ATTACK,
        ActionKind.SPELL,
        ActionKind.SPELL,
    ]
    without_slots = available_actions(wizard, target, _state(spell_slots={1: 2}))
    assert len(without_slots) == 2


def test_available_actions_item_only_when_wounded(fighter, target):
    """Test that potions are offered to a wounded build."""
    build = fighter.model_copy(
        update={
            "policies": Policies(
                allowed_actions={
                    ActionKind.ATTACK,
                    ActionKind.ITEM,
                    ActionKind.MOVEMENT,
                    ActionKind.SPECIAL,
                }
            )
        }
    )
    healthy = available_actions(build, target, _state(items={"healing_potion": 1}))
    assert not any(isinstance(action, ItemAction) for action in healthy)
    wounded = available_actions(
        build, target, _state(hit_points=10, items={"healing_potion": 1})
    )
    kinds = [action.kind for action in wounded]
    assert kinds == [
        ActionKind.ATTACK,
        ActionKind.ITEM,
        ActionKind.MOVEMENT,
        ActionKind.SPECIAL,
    ]


def test_rider_damage_follows_concentration(target):
    """Test that a concentration rider adds damage to weapon hits."""
    hunters_mark = SpellProfile(
        name="Hunter's Mark",
        level=1,
        rider_damage="1d6",
        concentration=True,
        bonus_action=True,
    )
    build = Build(levels=[ClassLevel(class_name="Ranger", level=2)], spells=[hunters_mark])
    state = _state()
    assert rider_damage_sources(build, state) == []
    state.start_concentration(TemporaryEffect(name="Hunter's Mark", duration=10))
    riders = rider_damage_sources(build, state)
    assert len(riders) == 1
    assert riders[0].dice.sides == 6


# ============================================================================
# SCORING AND SELECTION
# ============================================================================


def test_score_attack_matches_closed_form(fighter, target):
    """Test that an attack scores its expected DPR."""
    action = build_attack_action(fighter, target)
    # Two attacks at 55% to hit: (0.50 * 11 + 0.05 * 18) each.
    assert score_action(action, fighter, target) == pytest.approx(12.8)


def test_score_spell_attack_doubles_dice_on_crit(fire_bolt):
    """Test the expected damage of a spell attack."""
    action = SpellAction(name="Fire Bolt", spell=fire_bolt, damage="1d10", attack_bonus=5)
    target = Target(armor_class=15)
    assert score_spell(action, target) == pytest.approx(0.5 * 5.5 + 0.05 * 11)


def test_elemental_adept_raises_the_spell_score(fire_bolt):
    """Test that a 1 counting as a 2 flows into the spell's expected damage."""
    adept = Build(
        levels=[ClassLevel(class_name="Sorcerer", level=1)],
        abilities=Abilities(charisma=16),
        features=["Elemental Adept (fire)"],
        spells=[fire_bolt],
    )
    target = Target(armor_class=15)
    action = build_spell_action(adept, target, fire_bolt)
    assert action.reroll_mechanic == RerollMechanic.ELEMENTAL_ADEPT
    assert action.attack_bonus == 5
    assert score_spell(action, target) == pytest.approx(0.5 * 5.6 + 0.05 * 11.2)


def test_score_spell_save_and_resistances(fireball):
    """Test save-for-half scoring, magic resistance and legendary resistance."""
    action = SpellAction(name="Fireball", spell=fireball, damage="8d6", save_dc=15)
    target = Target(save_bonus=2)
    assert score_spell(action, target) == pytest.approx(28 * 0.6 + 14 * 0.4)
    resisted = Target(save_bonus=2, resistances={DamageType.FIRE})
    assert score_spell(action, resisted) == pytest.approx(14 * 0.6 + 7 * 0.4)
    magic = Target(save_bonus=2, magic_resistance=True)
    assert score_spell(action, magic) == pytest.approx(28 * 0.36 + 14 * 0.64)
    state = _state()
    state.target_legendary_resistances = 1
    assert score_spell(action, target, state) == pytest.approx(14.0)


def test_score_item_and_utility_actions(fighter, target):
    """Test that healing only scores when wounded and utilities score zero."""
    potion = ItemAction(name="Drink Healing Potion")
    assert score_action(potion, fighter, target, _state()) == 0.0
    assert score_action(potion, fighter, target, _state(hit_points=10)) == 7.0
    assert score_action(MovementAction(name="Dash"), fighter, target) == 0.0
    assert score_action(SpecialAction(name="Dodge"), fighter, target) == 0.0


def test_select_action_breaks_ties_by_kind(fire_bolt):
    """Test that an attack wins a tie against a spell listed first."""
    spell = SpellAction(name="Fire Bolt", spell=fire_bolt, damage="1d10")
    attack = AttackAction(name="Attack", attack_bonus=5)
    assert select_action([spell, attack], [4.0, 4.0]) is attack
    assert select_action([spell, attack], [4.5, 4.0]) is spell


def test_select_action_keeps_list_order_within_a_kind():
    """Test that the first of two equal actions of one kind wins."""
    first = MovementAction(name="Dash")
    second = MovementAction(name="Disengage")
    assert select_action([first, second], [0.0, 0.0]) is first


def test_select_action_without_candidates():
    """Test that an empty turn raises."""
    with pytest.raises(NoValidActionError):
        select_action([], [])


def test_choose_action_prefers_the_better_spell(fighter, fireball):
    """Test that a strong spell beats a weak attack."""
    build = fighter.model_copy(update={"spells": [fireball]})
    target = Target(armor_class=30, save_bonus=0)
    action, score = choose_action(build, target, _state(spell_slots={3: 1}))
    assert isinstance(action, SpellAction)
    assert score > 0
