"""
Tests for the power attack analysis.
"""

import pytest

from dprsim.analysis.power_attack import (
    NO_BUFFS,
    Buff,
    PowerAttackAnalysis,
    analyze_advantage_states,
    analyze_power_attack,
    analyze_power_attack_with_buffs,
    calculate_break_even_ac,
    format_power_attack_advice,
    generate_power_attack_recommendations,
    get_power_attack_thresholds,
)
from dprsim.combat.damage import AttackSequence, weapon_damage
from dprsim.core.constants import AdvantageState


@pytest.fixture
def sequence():
    """A single greatsword attack, 2d6+4."""
    return AttackSequence(normal_damage=[weapon_damage("2d6", 4)], num_attacks=1)


def test_break_even_of_a_greatsword(sequence):
    """Test the break-even AC of +7 to hit with 2d6+4."""
    result = calculate_break_even_ac(7, sequence)
    # 10p - 5.25 = 0 at p = 0.525, i.e. AC 17.5: the first midpoint.
    assert result.ac == pytest.approx(17.5)
    assert result.converged
    assert result.iterations == 1
    assert abs(result.delta) <= 1e-6


def test_break_even_reports_best_guess_when_not_converged(sequence):
    """Test an iteration cap too small to reach the tolerance."""
    result = calculate_break_even_ac(7, sequence, min_ac=5, max_ac=20, max_iterations=1)
    assert not result.converged
    assert result.iterations == 1
    assert result.ac == 12.5
    assert result.delta > 0


def test_break_even_bisects_off_midpoint(sequence):
    """Test a break-even that needs several bisection steps."""
    result = calculate_break_even_ac(9.5, sequence)
    assert result.converged
    assert result.iterations > 1
    assert result.ac == pytest.approx(20.0, abs=1e-4)


def test_analysis_at_low_and_high_ac(sequence):
    """Test the comparison on both sides of the break-even."""
    low = analyze_power_attack(7, 10, sequence)
    assert low.should_use_power_attack
    assert low.expected_value_delta == pytest.approx(3.75)
    assert low.break_even_ac == pytest.approx(17.5)
    assert low.converged

    high = analyze_power_attack(7, 25, sequence)
    assert not high.should_use_power_attack
    assert high.normal_dpr == pytest.approx(2.0)
    assert high.power_attack_dpr == pytest.approx(1.4)
    assert high.expected_value_delta == pytest.approx(-0.6)


def test_analysis_without_break_even(sequence):
    """Test skipping the break-even search."""
    analysis = analyze_power_attack(7, 15, sequence, include_break_even=False)
    assert analysis.break_even_ac is None
    assert analysis.converged is None


def test_threshold_gates_the_recommendation(sequence):
    """Test that a small gain is not enough under a high threshold."""
    # Delta at AC 17 is +0.25.
    assert analyze_power_attack(7, 17, sequence, threshold=0.0).should_use_power_attack
    assert not analyze_power_attack(7, 17, sequence, threshold=0.5).should_use_power_attack


def test_recommendations_flip_at_break_even(sequence):
    """Test the sweep across armor classes."""
    recommendations = generate_power_attack_recommendations(7, sequence)
    assert [entry.ac for entry in recommendations] == list(range(10, 26))
    by_ac = {entry.ac: entry for entry in recommendations}
    assert by_ac[17].recommended
    assert by_ac[17].advantage == pytest.approx(0.25)
    assert not by_ac[18].recommended
    assert by_ac[18].advantage == pytest.approx(-0.25)
    assert all(by_ac[ac].recommended for ac in range(10, 18))
    assert not any(by_ac[ac].recommended for ac in range(18, 26))


def test_advantage_raises_break_even(sequence):
    """Test that advantage favours power attack at higher ACs."""
    analyses = analyze_advantage_states(7, 15, sequence)
    assert set(analyses) == set(AdvantageState)
    normal = analyses[AdvantageState.NORMAL].break_even_ac
    assert analyses[AdvantageState.ADVANTAGE].break_even_ac > normal
    assert analyses[AdvantageState.DISADVANTAGE].break_even_ac < normal
    assert (
        analyses[AdvantageState.ELVEN_ACCURACY].break_even_ac
        > analyses[AdvantageState.ADVANTAGE].break_even_ac
    )


def test_buff_combinations(sequence):
    """Test that every subset of buffs is analysed, starting with none."""
    bless = Buff(name="Bless", attack_bonus=2.5)
    enlarge = Buff(name="Enlarge", damage_bonus=2)
    results = analyze_power_attack_with_buffs(7, 15, sequence, [bless, enlarge])
    assert [entry.buff_combination for entry in results] == [
        NO_BUFFS,
        "Bless",
        "Enlarge",
        "Bless + Enlarge",
    ]
    assert results[0].attack_bonus == 7
    assert results[1].attack_bonus == 9.5
    assert results[0].recommendation == "Use power attack (AC <= 17.5)"
    assert results[1].recommendation == "Use power attack (AC <= 20.0)"
    assert results[1].analysis.break_even_ac > results[0].analysis.break_even_ac


def test_no_buffs(sequence):
    """Test the analysis without any buff."""
    results = analyze_power_attack_with_buffs(7, 15, sequence)
    assert len(results) == 1
    assert results[0].buff_combination == NO_BUFFS


def test_thresholds_per_advantage_state(sequence):
    """Test the break-even table of every advantage state."""
    thresholds = get_power_attack_thresholds(7, sequence)
    assert [entry.condition for entry in thresholds] == [
        "Normal",
        "Advantage",
        "Disadvantage",
        "Elven accuracy",
    ]
    assert thresholds[0].break_even_ac == pytest.approx(17.5)
    assert thresholds[0].recommendation == "Use power attack when target AC <= 17.5"
    assert all(entry.converged for entry in thresholds)


def test_advice_format():
    """Test the human readable advice."""
    use = PowerAttackAnalysis(
        normal_dpr=10.0,
        power_attack_dpr=13.0,
        expected_value_delta=3.0,
        should_use_power_attack=True,
        threshold=0.5,
    )
    skip = use.model_copy(
        update={"expected_value_delta": -1.5, "should_use_power_attack": False}
    )
    assert format_power_attack_advice(use) == "Use Power Attack (+3.0 DPR)"
    assert format_power_attack_advice(skip) == "Don't Use Power Attack (-1.5 DPR)"
