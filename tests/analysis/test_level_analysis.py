"""
Tests for the level progression analysis.
"""

import pytest

from dprsim.analysis.level_analysis import (
    analyze_build_at_level,
    analyze_build_progression,
    distribute_class_levels,
)
from dprsim.character.build import Abilities, Build, ClassLevel, Equipment, Weapon
from dprsim.core.constants import DamageType
from dprsim.core.error_handling import SimulationInputError


@pytest.fixture
def progression(fighter):
    return analyze_build_progression(fighter)


@pytest.fixture
def ranger():
    longbow = Weapon(
        name="Longbow", kind="ranged", damage="1d8", damage_type=DamageType.PIERCING
    )
    return Build(
        name="Ranger",
        levels=[ClassLevel(class_name="Ranger", level=5)],
        abilities=Abilities(dexterity=16, wisdom=14),
        equipment=Equipment(main_hand=longbow),
    )


def test_progression_covers_every_level(progression):
    """Test that the progression has one snapshot per level."""
    assert [analysis.level for analysis in progression] == list(range(1, 21))
    assert progression[0].proficiency_bonus == 2
    assert progression[-1].proficiency_bonus == 6


def test_hit_points_never_decrease(progression):
    """Test average and maximum hit points along the progression."""
    averages = [analysis.hit_points_average for analysis in progression]
    assert averages == sorted(averages)
    # d10 + 2 at level 1, then 6 + 2 per level.
    assert averages[0] == 12
    assert averages[1] == 20
    assert all(
        analysis.hit_points_max >= analysis.hit_points_average for analysis in progression
    )


def test_fighter_breakpoints(progression):
    """Test Extra Attack and ASI breakpoints of a fighter."""
    by_level = {analysis.level: analysis for analysis in progression}
    assert not by_level[4].breakpoints.extra_attack
    assert by_level[4].breakpoints.asi
    assert by_level[5].breakpoints.extra_attack
    assert by_level[5].breakpoints.major_feature == "Extra Attack"
    assert by_level[11].breakpoints.extra_attack
    assert by_level[20].attacks_per_action == 4
    assert "Action Surge" in by_level[2].features
    assert by_level[1].breakpoints.reached


def test_dpr_follows_advantage_state(progression):
    """Test that advantage never lowers DPR and disadvantage never raises it."""
    for analysis in progression:
        assert analysis.dpr.advantage >= analysis.dpr.normal >= analysis.dpr.disadvantage
        assert analysis.dpr.normal > 0


def test_dpr_grows_with_extra_attack(progression):
    """Test the DPR jump at the second attack."""
    assert progression[4].dpr.normal > progression[3].dpr.normal * 1.5


def test_distribute_extends_primary_class():
    """Test a build below the requested level."""
    levels = [
        ClassLevel(class_name="Fighter", level=3),
        ClassLevel(class_name="Rogue", level=2),
    ]
    fitted = distribute_class_levels(levels, 10)
    assert [(entry.class_name, entry.level) for entry in fitted] == [
        ("Fighter", 8),
        ("Rogue", 2),
    ]


def test_distribute_scales_down():
    """Test a build above the requested level."""
    levels = [
        ClassLevel(class_name="Fighter", level=3),
        ClassLevel(class_name="Rogue", level=2),
    ]
    fitted = distribute_class_levels(levels, 3)
    assert [(entry.class_name, entry.level) for entry in fitted] == [
        ("Fighter", 1),
        ("Rogue", 2),
    ]
    first = distribute_class_levels(levels, 1)
    assert [(entry.class_name, entry.level) for entry in first] == [("Fighter", 1)]


def test_distribute_keeps_every_class_that_fits():
    """Test that a large first class never crowds out the later ones."""
    levels = [
        ClassLevel(class_name="Fighter", level=18),
        ClassLevel(class_name="Rogue", level=1),
        ClassLevel(class_name="Wizard", level=1),
    ]
    fitted = distribute_class_levels(levels, 3)
    assert [(entry.class_name, entry.level) for entry in fitted] == [
        ("Fighter", 1),
        ("Rogue", 1),
        ("Wizard", 1),
    ]
    for level in range(3, 20):
        fitted = distribute_class_levels(levels, level)
        assert len(fitted) == 3
        assert sum(entry.level for entry in fitted) == level
        assert all(entry.level >= 1 for entry in fitted)
    two = distribute_class_levels(levels, 2)
    assert [(entry.class_name, entry.level) for entry in two] == [
        ("Fighter", 1),
        ("Rogue", 1),
    ]


def test_distribute_extends_the_first_of_tied_classes():
    """Test that the primary class wins ties by coming first."""
    levels = [
        ClassLevel(class_name="Rogue", level=2),
        ClassLevel(class_name="Fighter", level=2),
    ]
    fitted = distribute_class_levels(levels, 6)
    assert [(entry.class_name, entry.level) for entry in fitted] == [
        ("Rogue", 4),
        ("Fighter", 2),
    ]


def test_distribute_keeps_matching_levels():
    """Test that a build at its own level is unchanged."""
    levels = [ClassLevel(class_name="Wizard", level=4)]
    fitted = distribute_class_levels(levels, 4)
    assert fitted == levels
    assert fitted[0] is not levels[0]


def test_multiclass_progression_levels(fighter):
    """Test the class split reported at each level."""
    build = fighter.model_copy(
        update={
            "levels": [
                ClassLevel(class_name="Fighter", level=3),
                ClassLevel(class_name="Rogue", level=2),
            ]
        }
    )
    progression = analyze_build_progression(build)
    assert progression[0].class_levels == {"Fighter": 1}
    assert progression[4].class_levels == {"Fighter": 3, "Rogue": 2}
    assert progression[9].class_levels == {"Fighter": 8, "Rogue": 2}
    assert all(sum(a.class_levels.values()) == a.level for a in progression)


def test_paladin_spell_level_breakpoints(greatsword):
    """Test that new slot levels are reported when unlocked."""
    paladin = Build(
        levels=[ClassLevel(class_name="Paladin", level=5)],
        abilities=Abilities(strength=16, charisma=14),
        equipment=Equipment(main_hand=greatsword),
    )
    progression = analyze_build_progression(paladin)
    assert progression[0].breakpoints.spell_level is None
    assert progression[1].breakpoints.spell_level == 1
    assert progression[2].breakpoints.spell_level is None
    assert progression[4].breakpoints.spell_level == 2
    assert progression[4].spell_slots == {1: 4, 2: 2}


def test_ranger_spells_add_damage(ranger):
    """Test that Hunter's Mark raises DPR from level 2."""
    first = analyze_build_at_level(ranger, 1)
    second = analyze_build_at_level(ranger, 2)
    assert second.dpr.normal > first.dpr.normal


def test_target_ac_lowers_dpr(fighter):
    """Test that a tougher target takes less damage."""
    easy = analyze_build_at_level(fighter, 5, target_ac=10)
    hard = analyze_build_at_level(fighter, 5, target_ac=20)
    assert easy.dpr.normal > hard.dpr.normal


def test_level_is_clamped(fighter, mocker):
    """Test that an out-of-range level is corrected and logged."""
    warning = mocker.patch("dprsim.core.error_handling.log_warning")
    assert analyze_build_at_level(fighter, 25).level == 20
    assert analyze_build_at_level(fighter, 0).level == 1
    assert warning.call_count == 2


def test_build_without_levels_is_rejected():
    """Test that an empty build cannot be analyzed."""
    with pytest.raises(SimulationInputError):
        analyze_build_progression(Build())
