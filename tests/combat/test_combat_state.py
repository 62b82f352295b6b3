"""
Tests for the per-run combat state.
"""

import pytest

from dprsim.combat.combat_state import CombatState, Resources, TemporaryEffect
from dprsim.core.constants import UNCONSCIOUS


@pytest.fixture
def state():
    return CombatState(
        resources=Resources(
            hit_points=30,
            max_hit_points=30,
            spell_slots={1: 2, 2: 1, 3: 0},
            class_resources={"action_surge": 1},
            items={"healing_potion": 1},
        )
    )


def test_damage_and_healing(state):
    """Test hit point bounds."""
    assert state.take_damage(12) == 12
    assert state.resources.hit_points == 18
    assert state.heal(100) == 12
    assert state.resources.hit_points == 30
    assert state.take_damage(-5) == 0


def test_dropping_to_zero_knocks_out(state):
    """Test that 0 HP adds unconscious and ends concentration."""
    state.start_concentration(TemporaryEffect(name="Bless", duration=10))
    assert state.take_damage(50) == 30
    assert not state.is_conscious
    assert state.has_condition(UNCONSCIOUS)
    assert state.resources.concentration is None
    state.heal(5)
    assert state.is_conscious
    assert not state.has_condition(UNCONSCIOUS)


def test_effects_expire_and_lift_conditions(state):
    """Test that ticking removes expired effects and their conditions."""
    state.add_effect(
        TemporaryEffect(name="Web", duration=2, data={"condition": "restrained"})
    )
    assert state.has_condition("restrained")
    assert state.tick_effects() == []
    assert state.has_condition("restrained")
    expired = state.tick_effects()
    assert [effect.name for effect in expired] == ["Web"]
    assert not state.has_condition("restrained")


def test_shared_condition_survives_one_expiry(state):
    """Test that a condition stays while another effect applies it."""
    state.add_effect(TemporaryEffect(name="A", duration=1, data={"condition": "prone"}))
    state.add_effect(TemporaryEffect(name="B", duration=3, data={"condition": "prone"}))
    state.tick_effects()
    assert state.has_condition("prone")


def test_concentration_replaces_previous_effect(state):
    """Test that only one concentration effect is active."""
    state.start_concentration(TemporaryEffect(name="Hex", duration=10))
    state.start_concentration(TemporaryEffect(name="Hunter's Mark", duration=10))
    assert state.resources.concentration == "Hunter's Mark"
    assert state.get_effect("Hex") is None
    assert state.break_concentration() == "Hunter's Mark"
    assert state.break_concentration() is None


def test_concentration_ends_when_its_effect_expires(state):
    """Test that an expiring concentration effect clears concentration."""
    state.start_concentration(TemporaryEffect(name="Hex", duration=1))
    state.tick_effects()
    assert state.resources.concentration is None


def test_spell_slots(state):
    """Test slot lookups and spending."""
    assert state.lowest_slot() == 1
    assert state.lowest_slot(2) == 2
    assert state.lowest_slot(3) is None
    assert state.highest_slot() == 2
    assert state.remaining_slots() == 3
    assert state.spend_slot(2)
    assert not state.spend_slot(2)
    assert state.resources_used == {"spell_slot_2": 1}


def test_class_resources_and_items(state):
    """Test spending resources and items records their use."""
    assert state.spend_resource("action_surge")
    assert not state.spend_resource("action_surge")
    assert not state.spend_resource("rage")
    assert state.spend_item("healing_potion")
    assert not state.has_item("healing_potion")
    assert state.resources_used == {"action_surge": 1, "healing_potion": 1}


def test_end_encounter_clears_effects(state):
    """Test that an encounter's effects, concentration and rage end."""
    state.raging = True
    state.start_concentration(TemporaryEffect(name="Hex", duration=10))
    state.add_effect(TemporaryEffect(name="Web", duration=5, data={"condition": "restrained"}))
    state.end_encounter()
    assert state.temporary_effects == []
    assert state.resources.concentration is None
    assert not state.raging
    assert not state.has_condition("restrained")


def test_reset_action_economy(state):
    """Test that a new round restores actions and ends Dodge."""
    state.action_economy.action = False
    state.dodging = True
    state.reset_action_economy()
    assert state.action_economy.action
    assert state.action_economy.bonus_action
    assert not state.dodging


def test_snapshot_is_independent(state):
    """Test that snapshots do not share mutable state."""
    snapshot = state.snapshot()
    state.take_damage(10)
    assert snapshot.resources.hit_points == 30
