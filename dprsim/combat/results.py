"""
Result aggregation for Monte Carlo simulations.

Turns the raw per-run records of a simulation into a distributional report
built on the statistics library, plus heuristic tactical insights. The
insights are annotations for a reader, not guarantees.
"""

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dprsim.character.build import Target
from dprsim.combat.combat_state import CombatState
from dprsim.combat.scenario import CombatScenario
from dprsim.core.constants import UNCONSCIOUS
from dprsim.core.statistics import (
    ConfidenceInterval,
    confidence_interval,
    mean,
    median,
    percentiles,
    standard_deviation,
)

LOW_HIT_RATE = 0.5
HIGH_VARIATION = 0.5
DEPLETION_THRESHOLD = 0.9
LATE_ROUND_FALLOFF = 0.8
LOW_DEFEAT_RATE = 0.5
HIGH_KNOCKOUT_RATE = 0.1
MAX_STRATEGIES = 3


class SimulationRun(BaseModel):
    """The outcome of one simulated run."""

    model_config = ConfigDict(frozen=True)

    total_damage: int = Field(description="Damage dealt over the whole run.")
    damage_by_round: list[int] = Field(
        description="Damage per round, encounters laid end to end."
    )
    damage_by_encounter: list[int] = Field(
        default_factory=list, description="Damage per encounter."
    )
    hit_count: int = Field(default=0, description="Attack rolls that hit.")
    miss_count: int = Field(default=0, description="Attack rolls that missed.")
    crit_count: int = Field(default=0, description="Attack rolls that crit.")
    max_miss_streak: int = Field(
        default=0, description="Longest run of consecutive misses."
    )
    resources_used: dict[str, int] = Field(
        default_factory=dict, description="Resources spent, by name."
    )
    resources_available: dict[str, int] = Field(
        default_factory=dict,
        description="Resources available over the run, rests included.",
    )
    conditions: list[str] = Field(
        default_factory=list, description="Conditions on the build at the end."
    )
    final_state: Optional[CombatState] = Field(
        default=None, description="Snapshot of the state at the end of the run."
    )

    @property
    def attacks(self) -> int:
        return self.hit_count + self.miss_count


class DamageStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    mean: float = Field(default=0.0, description="Mean total damage.")
    median: float = Field(default=0.0, description="Median total damage.")
    standard_deviation: float = Field(
        default=0.0, description="Sample standard deviation of total damage."
    )
    confidence_interval: ConfidenceInterval = Field(
        default_factory=ConfidenceInterval,
        description="Confidence interval of the mean total damage.",
    )
    percentiles: dict[float, float] = Field(
        default_factory=dict, description="Percentiles of total damage."
    )
    by_round_mean: list[float] = Field(
        default_factory=list, description="Mean damage of each round."
    )
    by_round_confidence_interval: list[ConfidenceInterval] = Field(
        default_factory=list, description="Confidence interval of each round."
    )
    by_encounter_mean: list[float] = Field(
        default_factory=list, description="Mean damage of each encounter."
    )


class AccuracyStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    hit_rate: float = Field(default=0.0, description="Mean per-run hit rate.")
    crit_rate: float = Field(default=0.0, description="Mean per-run crit rate.")
    max_miss_streak: int = Field(
        default=0, description="Longest miss streak over all runs."
    )
    average_miss_streak: float = Field(
        default=0.0, description="Mean of the longest miss streak of each run."
    )


class ResourceStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    utilization: dict[str, float] = Field(
        default_factory=dict, description="Fraction of each resource spent."
    )
    efficiency: dict[str, float] = Field(
        default_factory=dict, description="Mean damage per unit of each resource."
    )


class OutcomeStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    defeat_rate: float = Field(
        default=0.0, description="Fraction of runs that dropped the target."
    )
    average_rounds_to_defeat: Optional[float] = Field(
        default=None, description="Mean rounds needed when the target dropped."
    )
    knockout_rate: float = Field(
        default=0.0, description="Fraction of runs that ended with the build at 0 HP."
    )


class TacticalInsights(BaseModel):
    model_config = ConfigDict(frozen=True)

    optimal_rounds: list[int] = Field(
        default_factory=list, description="Rounds with the highest mean damage."
    )
    weakest_rounds: list[int] = Field(
        default_factory=list, description="Rounds with the lowest mean damage."
    )
    best_strategies: list[str] = Field(
        default_factory=list, description="Most frequently chosen actions."
    )
    risk_factors: list[str] = Field(
        default_factory=list, description="Flagged weaknesses of the build."
    )


class MonteCarloResults(BaseModel):
    """The aggregate report of one simulation call."""

    model_config = ConfigDict(frozen=True)

    runs: int = Field(description="Number of runs aggregated.")
    seed: int = Field(description="Seed the generator started from.")
    scenario: CombatScenario = Field(description="The simulated scenario.")
    damage: DamageStatistics = Field(description="Damage statistics.")
    accuracy: AccuracyStatistics = Field(description="Accuracy statistics.")
    resources: ResourceStatistics = Field(description="Resource statistics.")
    outcome: OutcomeStatistics = Field(description="Defeat statistics.")
    insights: TacticalInsights = Field(description="Heuristic insights.")


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def rounds_to_defeat(damage_by_round: Sequence[int], hit_points: int) -> Optional[int]:
    """
    Returns the 1-based round at which cumulative damage reaches `hit_points`.

    Args:
        damage_by_round (Sequence[int]): Damage of each round.
        hit_points (int): Hit points of the target.

    Returns:
        Optional[int]: The round, or None if the target survives.

    """
    total = 0
    for index, damage in enumerate(damage_by_round, start=1):
        total += damage
        if total >= hit_points:
            return index
    return None


def _damage_statistics(runs: Sequence[SimulationRun]) -> DamageStatistics:
    totals = [run.total_damage for run in runs]
    round_count = max((len(run.damage_by_round) for run in runs), default=0)
    by_round: list[list[int]] = [
        [run.damage_by_round[i] if i < len(run.damage_by_round) else 0 for run in runs]
        for i in range(round_count)
    ]
    encounter_count = max((len(run.damage_by_encounter) for run in runs), default=0)
    by_encounter = [
        mean(
            [
                run.damage_by_encounter[i] if i < len(run.damage_by_encounter) else 0
                for run in runs
            ]
        )
        for i in range(encounter_count)
    ]
    return DamageStatistics(
        mean=mean(totals),
        median=median(totals),
        standard_deviation=standard_deviation(totals),
        confidence_interval=confidence_interval(totals),
        percentiles=percentiles(totals),
        by_round_mean=[mean(values) for values in by_round],
        by_round_confidence_interval=[confidence_interval(values) for values in by_round],
        by_encounter_mean=by_encounter,
    )


def _accuracy_statistics(runs: Sequence[SimulationRun]) -> AccuracyStatistics:
    streaks = [run.max_miss_streak for run in runs]
    return AccuracyStatistics(
        hit_rate=mean([_ratio(run.hit_count, run.attacks) for run in runs]),
        crit_rate=mean([_ratio(run.crit_count, run.attacks) for run in runs]),
        max_miss_streak=max(streaks, default=0),
        average_miss_streak=mean(streaks),
    )


def _resource_statistics(runs: Sequence[SimulationRun]) -> ResourceStatistics:
    used: Counter[str] = Counter()
    available: Counter[str] = Counter()
    for run in runs:
        used.update(run.resources_used)
        available.update(run.resources_available)
    mean_damage = mean([run.total_damage for run in runs])
    utilization: dict[str, float] = {}
    efficiency: dict[str, float] = {}
    for name in sorted(set(used) | set(available)):
        utilization[name] = min(1.0, _ratio(used[name], available[name]))
        if used[name]:
            efficiency[name] = mean_damage / (used[name] / len(runs))
    return ResourceStatistics(utilization=utilization, efficiency=efficiency)


def _outcome_statistics(
    runs: Sequence[SimulationRun], target: Optional[Target]
) -> OutcomeStatistics:
    knocked_out = sum(1 for run in runs if UNCONSCIOUS in run.conditions)
    knockout_rate = _ratio(knocked_out, len(runs))
    if target is None:
        return OutcomeStatistics(knockout_rate=knockout_rate)
    defeats = [
        found
        for found in (rounds_to_defeat(run.damage_by_round, target.hit_points) for run in runs)
        if found is not None
    ]
    return OutcomeStatistics(
        defeat_rate=_ratio(len(defeats), len(runs)),
        average_rounds_to_defeat=mean(defeats) if defeats else None,
        knockout_rate=knockout_rate,
    )


def _rank_rounds(by_round_mean: Sequence[float]) -> tuple[list[int], list[int]]:
    count = len(by_round_mean)
    if count == 0:
        return [], []
    share = max(1, math.ceil(count / 3))
    ranked = sorted(range(count), key=lambda i: (-by_round_mean[i], i))
    optimal = [i + 1 for i in ranked[:share]]
    if count == 1:
        return optimal, []
    ascending = sorted(range(count), key=lambda i: (by_round_mean[i], i))
    weakest = [i + 1 for i in ascending[:share] if i + 1 not in optimal]
    return optimal, weakest


def _best_strategies(decisions: Iterable[str]) -> list[str]:
    counts = Counter(decisions)
    total = sum(counts.values())
    return [
        f"{name} ({count / total:.0%} of decisions)"
        for name, count in counts.most_common(MAX_STRATEGIES)
    ]


def _risk_factors(
    damage: DamageStatistics,
    accuracy: AccuracyStatistics,
    resources: ResourceStatistics,
    outcome: OutcomeStatistics,
    scenario: CombatScenario,
    target: Optional[Target],
) -> list[str]:
    risks: list[str] = []
    if accuracy.hit_rate and accuracy.hit_rate < LOW_HIT_RATE:
        against = f" against AC {target.armor_class}" if target else ""
        risks.append(f"Low hit rate ({accuracy.hit_rate:.0%}){against}")
    if damage.mean > 0 and damage.standard_deviation / damage.mean > HIGH_VARIATION:
        risks.append("High damage variance between runs")
    depleted = [
        name for name, used in resources.utilization.items() if used >= DEPLETION_THRESHOLD
    ]
    if depleted:
        risks.append(f"Resource depletion: {', '.join(depleted)}")
    rounds = damage.by_round_mean[: scenario.rounds]
    if len(rounds) > 1 and rounds[0] > 0 and rounds[-1] < rounds[0] * LATE_ROUND_FALLOFF:
        risks.append("Damage falls off in later rounds")
    if target is not None and outcome.defeat_rate < LOW_DEFEAT_RATE:
        risks.append(
            f"Target survives most runs (defeated in {outcome.defeat_rate:.0%})"
        )
    if outcome.knockout_rate > HIGH_KNOCKOUT_RATE:
        risks.append(f"Build drops to 0 hit points in {outcome.knockout_rate:.0%} of runs")
    risks.extend(scenario.environment.advisories())
    return risks


def aggregate_runs(
    runs: Sequence[SimulationRun],
    seed: int,
    scenario: CombatScenario,
    target: Optional[Target] = None,
    decisions: Iterable[str] = (),
) -> MonteCarloResults:
    """
    Aggregates raw runs into the final report.

    Args:
        runs (Sequence[SimulationRun]): The raw runs.
        seed (int): The seed of the simulation.
        scenario (CombatScenario): The simulated scenario.
        target (Optional[Target]): The target, enables defeat statistics.
        decisions (Iterable[str]): Names of the chosen actions.

    Returns:
        MonteCarloResults: The aggregated report.

    """
    damage = _damage_statistics(runs)
    accuracy = _accuracy_statistics(runs)
    resources = _resource_statistics(runs) if runs else ResourceStatistics()
    outcome = _outcome_statistics(runs, target)
    optimal, weakest = _rank_rounds(damage.by_round_mean)
    insights = TacticalInsights(
        optimal_rounds=optimal,
        weakest_rounds=weakest,
        best_strategies=_best_strategies(decisions),
        risk_factors=_risk_factors(
            damage, accuracy, resources, outcome, scenario, target
        ),
    )
    return MonteCarloResults(
        runs=len(runs),
        seed=seed,
        scenario=scenario,
        damage=damage,
        accuracy=accuracy,
        resources=resources,
        outcome=outcome,
        insights=insights,
    )
