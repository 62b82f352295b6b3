"""
Shared fixtures for the simulator tests.
"""

import pytest

from dprsim.character.build import (
    Abilities,
    Build,
    ClassLevel,
    Equipment,
    SpellProfile,
    Target,
    Weapon,
)
from dprsim.core.constants import DamageType


@pytest.fixture
def greatsword():
    return Weapon(
        name="Greatsword",
        damage="2d6",
        damage_type=DamageType.SLASHING,
        properties=["heavy", "two-handed"],
    )


@pytest.fixture
def rapier():
    return Weapon(
        name="Rapier",
        damage="1d8",
        damage_type=DamageType.PIERCING,
        properties=["finesse"],
    )


@pytest.fixture
def fighter(greatsword):
    """A level 5 fighter with a greatsword, +7 to hit and 2d6+4 damage."""
    return Build(
        name="Fighter",
        levels=[ClassLevel(class_name="Fighter", level=5)],
        abilities=Abilities(strength=18, dexterity=12, constitution=14),
        equipment=Equipment(main_hand=greatsword),
    )


@pytest.fixture
def rogue(rapier):
    """A level 5 rogue with a rapier."""
    return Build(
        name="Rogue",
        levels=[ClassLevel(class_name="Rogue", level=5)],
        abilities=Abilities(strength=10, dexterity=18, constitution=12),
        equipment=Equipment(main_hand=rapier),
    )


@pytest.fixture
def fire_bolt():
    return SpellProfile(
        name="Fire Bolt",
        level=0,
        damage="1d10",
        damage_type=DamageType.FIRE,
    )


@pytest.fixture
def fireball():
    return SpellProfile(
        name="Fireball",
        level=3,
        damage="8d6",
        damage_type=DamageType.FIRE,
        attack_roll=False,
        half_on_save=True,
        upcast_dice="1d6",
    )


@pytest.fixture
def target():
    return Target(name="Ogre", armor_class=15, hit_points=100, save_bonus=2)
