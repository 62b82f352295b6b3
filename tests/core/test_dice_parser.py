"""
Tests for dice expression parsing, closed-form properties and rolling.
"""

import pytest

from dprsim.combat.probability import (
    gwf_reroll_expectation,
    halfling_luck_hit_probability,
)
from dprsim.core.constants import AdvantageState, DamageType
from dprsim.core.dice_parser import (
    DiceRoller,
    double_dice,
    expected_value,
    max_value,
    min_value,
    parse_dice_expression,
    positive_dice_terms,
)
from dprsim.core.rng import SeededRandom


@pytest.fixture
def roller():
    return DiceRoller(SeededRandom(42))


def test_parse_simple_term():
    """Test parsing a dice term with a bonus."""
    parsed = parse_dice_expression("2d6+3", DamageType.FIRE)
    assert parsed.count == 2
    assert parsed.sides == 6
    assert parsed.bonus == 3
    assert parsed.damage_type == DamageType.FIRE
    assert parsed.average == 10.0


def test_parse_implicit_count_and_penalty():
    """Test that 'd8' means one die and a trailing penalty is negative."""
    assert parse_dice_expression("d8").count == 1
    assert parse_dice_expression("1d6-1").bonus == -1


def test_parse_flat_number():
    """Test that a bare number parses as a flat value."""
    parsed = parse_dice_expression("5")
    assert parsed.sides == 0
    assert parsed.bonus == 5
    assert str(parsed) == "5"


@pytest.mark.parametrize("expr", ["", "abc", "2d", "1d6+1d8", "d"])
def test_parse_rejects_malformed_terms(expr):
    """Test that the strict parser raises on anything but a single term."""
    with pytest.raises(ValueError):
        parse_dice_expression(expr)


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("2d6+3", 10.0),
        ("1d8+1d6+2", 10.0),
        ("3*(1d4+1)", 10.5),
        ("1d6-2", 1.5),
        ("4", 4.0),
        (" 1d10 + 2 ", 7.5),
    ],
)
def test_expected_value(expr, expected):
    """Test closed-form expectations of composite expressions."""
    assert expected_value(expr) == pytest.approx(expected)


@pytest.mark.parametrize("expr", ["", "garbage", "1d6+", "101d6", "1d1001"])
def test_invalid_expressions_degrade_to_zero(expr, roller):
    """Test that invalid expressions evaluate to zero instead of raising."""
    assert expected_value(expr) == 0.0
    assert min_value(expr) == 0
    assert max_value(expr) == 0
    assert roller.roll(expr) == 0


def test_min_and_max_values():
    """Test the bounds of expressions with and without subtraction."""
    assert min_value("2d6+3") == 5
    assert max_value("2d6+3") == 15
    assert min_value("1d4-1d4") == -3
    assert max_value("1d4-1d4") == 3
    assert max_value("2*(1d6+1)") == 14


def test_positive_dice_terms():
    """Test listing added dice, scaled composites included."""
    assert [str(term) for term in positive_dice_terms("2d6+1d8+3")] == ["2d6", "1d8"]
    assert [str(term) for term in positive_dice_terms("2*(1d4+1-1d6)")] == ["1d4", "1d4"]
    assert positive_dice_terms("5") == []


@pytest.mark.parametrize(
    "expr, doubled",
    [
        ("2d6+3", "4d6+3"),
        ("1d8+1d6+2", "2d8+2d6+2"),
        ("3*(1d4+1)", "3*(2d4+1)"),
        ("7", "7"),
    ],
)
def test_double_dice_keeps_flat_bonuses(expr, doubled):
    """Test that crits double dice but never flat modifiers."""
    assert double_dice(expr) == doubled


def test_double_dice_returns_invalid_input_unchanged():
    """Test that an unparseable expression is returned as is."""
    assert double_dice("nonsense") == "nonsense"


@pytest.mark.parametrize("expr", ["1d20", "2d6+3", "1d8+1d6+2", "3*(1d4+1)", "1d6-2"])
def test_rolls_stay_within_bounds(expr, roller):
    """Test that every roll lies between the expression's bounds."""
    lo, hi = min_value(expr), max_value(expr)
    for _ in range(500):
        assert lo <= roller.roll(expr) <= hi


def test_roll_is_reproducible():
    """Test that two rollers with the same seed roll the same totals."""
    first = DiceRoller(SeededRandom(5))
    second = DiceRoller(SeededRandom(5))
    assert [first.roll("3d8+2") for _ in range(20)] == [
        second.roll("3d8+2") for _ in range(20)
    ]


def test_roll_with_advantage_replaces_the_d20():
    """Test that the d20 term is rolled with advantage and the bonus kept."""
    roller = DiceRoller(SeededRandom(17))
    twin = SeededRandom(17)
    for _ in range(50):
        expected = max(twin.roll_d20(), twin.roll_d20()) + 5
        assert roller.roll_with_advantage("1d20+5", AdvantageState.ADVANTAGE) == expected


def test_roll_d20_under_every_state(roller):
    """Test that natural rolls stay on the die under every state."""
    for state in AdvantageState:
        for _ in range(100):
            assert 1 <= roller.roll_d20(state, reroll_ones=True) <= 20


def test_great_weapon_fighting_rerolls_raise_the_mean():
    """Test that rerolling ones and twos approaches its closed form."""
    roller = DiceRoller(SeededRandom(2024))
    samples = 20000
    total = sum(
        roller.roll_damage_with_rerolls("2d6", reroll_twos=True) for _ in range(samples)
    )
    assert total / samples == pytest.approx(2 * gwf_reroll_expectation(6), abs=0.1)


def test_rerolls_keep_flat_bonus():
    """Test that reroll rolling still adds the flat bonus."""
    roller = DiceRoller(SeededRandom(1))
    for _ in range(100):
        assert 5 <= roller.roll_damage_with_rerolls("1d6+4", reroll_ones=True) <= 10


def test_roll_with_minimum_raises_low_dice():
    """Test that added dice count at least the minimum, subtracted ones do not."""
    roller = DiceRoller(SeededRandom(3))
    for _ in range(200):
        assert 6 <= roller.roll_damage_with_minimum("3d4", 2) <= 12
        assert -4 <= roller.roll_damage_with_minimum("1d4-1d6", 2) <= 3
    assert roller.roll_damage_with_minimum("nonsense", 2) == 0


def test_halfling_luck_rerolls_under_disadvantage():
    """Test that rerolled natural 1s match the closed form under disadvantage."""
    roller = DiceRoller(SeededRandom(99))
    samples = 40000
    hits = sum(
        1
        for _ in range(samples)
        if roller.roll_d20(AdvantageState.DISADVANTAGE, reroll_ones=True) >= 11
    )
    assert hits / samples == pytest.approx(
        halfling_luck_hit_probability(0, 11, AdvantageState.DISADVANTAGE), abs=0.01
    )
