"""
Tests for the closed-form probability library.
"""

import pytest

from dprsim.combat.probability import (
    advantage_hit_probability,
    bonus_dice_expectation,
    calculate_attack_probabilities,
    combined_bonus_expectation,
    crit_probability,
    crit_probability_for_state,
    disadvantage_hit_probability,
    elemental_adept_expectation,
    elven_accuracy_hit_probability,
    expected_hits,
    gwf_reroll_expectation,
    halfling_luck_hit_probability,
    hit_probability,
    hit_probability_for_state,
    legendary_resistance_failure_probability,
    magic_resistance_failure_probability,
    magic_resistance_save_probability,
    multi_attack_crit_probability,
    multi_attack_hit_probability,
    natural_one_probability,
    save_failure_probability,
    save_for_half_expected_damage,
    save_success_probability,
)
from dprsim.core.constants import AdvantageState


def test_hit_probability():
    """Test the single-attack hit chance."""
    assert hit_probability(5, 15) == pytest.approx(0.55)
    assert hit_probability(7, 17.5) == pytest.approx(0.525)


def test_hit_probability_is_bounded():
    """Test that natural 1s miss and natural 20s hit."""
    assert hit_probability(30, 10) == 0.95
    assert hit_probability(0, 30) == 0.05
    for bonus in range(-5, 20):
        for ac in range(1, 40):
            assert 0.05 <= hit_probability(bonus, ac) <= 0.95


def test_hit_probability_is_monotonic_in_armor_class():
    """Test that a higher AC never raises the hit chance."""
    for state in AdvantageState:
        previous = 1.0
        for ac in range(1, 35):
            current = hit_probability_for_state(5, ac, state)
            assert current <= previous
            previous = current


def test_advantage_states_are_ordered():
    """Test that advantage helps and disadvantage hurts at every AC."""
    for ac in range(5, 30):
        normal = hit_probability(6, ac)
        assert disadvantage_hit_probability(6, ac) <= normal
        assert normal <= advantage_hit_probability(6, ac)
        assert advantage_hit_probability(6, ac) <= elven_accuracy_hit_probability(6, ac)


def test_advantage_transforms():
    """Test the advantage, disadvantage and elven accuracy curves."""
    assert advantage_hit_probability(5, 15) == pytest.approx(1 - 0.45**2)
    assert disadvantage_hit_probability(5, 15) == pytest.approx(0.55**2)
    assert elven_accuracy_hit_probability(5, 15) == pytest.approx(1 - 0.45**3)


def test_crit_probability():
    """Test crit chances for expanded crit ranges and advantage states."""
    assert crit_probability(20) == pytest.approx(0.05)
    assert crit_probability(19) == pytest.approx(0.10)
    assert crit_probability(18) == pytest.approx(0.15)
    assert crit_probability_for_state(20, AdvantageState.ADVANTAGE) == pytest.approx(
        0.0975
    )
    assert crit_probability_for_state(20, AdvantageState.DISADVANTAGE) == pytest.approx(
        0.0025
    )


def test_halfling_luck():
    """Test that rerolling natural 1s adds p / 20."""
    assert halfling_luck_hit_probability(5, 15) == pytest.approx(0.55 * 1.05)


def test_multi_attack_aggregates():
    """Test at-least-one-hit and expected hit counts."""
    assert multi_attack_hit_probability(0.5, 0) == 0.0
    assert multi_attack_hit_probability(0.5, 1) == 0.5
    assert multi_attack_hit_probability(0.5, 3) == pytest.approx(0.875)
    assert expected_hits(0.6, 3) == pytest.approx(1.8)


def test_saving_throws():
    """Test save success and failure chances."""
    assert save_success_probability(15, 2) == pytest.approx(0.4)
    assert save_failure_probability(15, 2) == pytest.approx(0.6)
    assert save_success_probability(5, 10) == 0.95
    assert save_success_probability(40, 0) == 0.05
    assert magic_resistance_failure_probability(15, 2) == pytest.approx(0.36)


def test_save_for_half():
    """Test expected damage of save-for-half and save-negates effects."""
    assert save_for_half_expected_damage(28, 0.6) == pytest.approx(22.4)
    assert save_for_half_expected_damage(28, 0.6, False) == pytest.approx(16.8)


def test_legendary_resistance():
    """Test the blended failure rate against legendary resistance."""
    assert legendary_resistance_failure_probability(0.6, 0, 5) == 0.6
    assert legendary_resistance_failure_probability(0.6, 3, 2) == 0.0
    assert legendary_resistance_failure_probability(0.6, 1, 4) == pytest.approx(0.45)


@pytest.mark.parametrize(
    "expr, expected",
    [("1d4", 2.5), ("-1d4", -2.5), ("+1d6", 3.5), ("1d4+1", 3.5), ("bless", 0.0)],
)
def test_bonus_dice_expectation(expr, expected):
    """Test signed bonus dice such as Bless and Bane."""
    assert bonus_dice_expectation(expr) == expected


def test_reroll_expectations():
    """Test Great Weapon Fighting and Elemental Adept closed forms."""
    assert gwf_reroll_expectation(6) == pytest.approx(25 / 6)
    assert gwf_reroll_expectation(12) == pytest.approx(88 / 12)
    assert gwf_reroll_expectation(2) == 1.5
    assert gwf_reroll_expectation(0) == 0.0
    assert elemental_adept_expectation(6) == pytest.approx(22 / 6)


def test_calculate_attack_probabilities_with_bless():
    """Test the master calculation with bonus dice and several attacks."""
    result = calculate_attack_probabilities(5, 15, bonus_dice=["1d4"], num_attacks=2)
    assert result.effective_attack_bonus == 7.5
    assert result.bonus_dice_expectation == 2.5
    assert result.hit_probability == pytest.approx(0.675)
    assert result.multi_attack_hit_probability == pytest.approx(1 - 0.325**2)
    assert result.expected_hits == pytest.approx(1.35)
    assert result.expected_crits == pytest.approx(0.1)


def test_calculate_attack_probabilities_single_attack_has_no_aggregates():
    """Test that aggregates are only filled for several attacks."""
    result = calculate_attack_probabilities(5, 15)
    assert result.multi_attack_hit_probability is None
    assert result.expected_hits is None


def test_halfling_luck_applies_under_every_state():
    """Test that a kept natural 1 is rerolled under advantage and disadvantage."""
    lucky = calculate_attack_probabilities(
        5, 15, advantage_state=AdvantageState.ADVANTAGE, halfling_luck=True
    )
    assert lucky.hit_probability == pytest.approx(0.7975 + 0.55 / 400)
    assert lucky.hit_probability > advantage_hit_probability(5, 15)
    unlucky = calculate_attack_probabilities(
        5, 15, advantage_state=AdvantageState.DISADVANTAGE, halfling_luck=True
    )
    assert unlucky.hit_probability == pytest.approx(0.3025 + 0.55 * 39 / 400)
    plain = calculate_attack_probabilities(5, 15, halfling_luck=True)
    assert plain.hit_probability == pytest.approx(0.5775)
    assert plain.crit_probability == pytest.approx(0.05 + 0.05 / 20)


def test_halfling_luck_is_capped():
    """Test that the reroll never lifts the hit chance above 0.95."""
    assert halfling_luck_hit_probability(14, 15) == pytest.approx(0.95)
    assert halfling_luck_hit_probability(0, 40) == pytest.approx(0.05 * 1.05)
    assert halfling_luck_hit_probability(
        14, 15, AdvantageState.ADVANTAGE
    ) == pytest.approx(advantage_hit_probability(14, 15))


def test_natural_one_probability():
    """Test the chance that the kept d20 is a natural 1."""
    assert natural_one_probability() == pytest.approx(1 / 20)
    assert natural_one_probability(AdvantageState.ADVANTAGE) == pytest.approx(1 / 400)
    assert natural_one_probability(AdvantageState.DISADVANTAGE) == pytest.approx(39 / 400)
    assert natural_one_probability(AdvantageState.ELVEN_ACCURACY) == pytest.approx(1 / 8000)


def test_probabilities_are_deterministic():
    """Test that identical inputs give identical results."""
    first = calculate_attack_probabilities(6, 16, 19, AdvantageState.ADVANTAGE, ["1d4"])
    second = calculate_attack_probabilities(6, 16, 19, AdvantageState.ADVANTAGE, ["1d4"])
    assert first == second


def test_combined_bonus_dice():
    """Test that Bless and Bane cancel out on average."""
    assert combined_bonus_expectation(["1d4", "-1d4"]) == 0.0
    assert combined_bonus_expectation(["1d4", "1d6"]) == pytest.approx(6.0)
    assert combined_bonus_expectation([]) == 0.0


def test_multi_attack_crit_probability():
    """Test the chance of at least one crit among several attacks."""
    assert multi_attack_crit_probability(0.05, 2) == pytest.approx(0.0975)
    assert multi_attack_crit_probability(0.05, 0) == 0.0


def test_magic_resistance_save_probability():
    """Test the save chance of a target rolling with advantage."""
    assert magic_resistance_save_probability(15, 2) == pytest.approx(0.64)
