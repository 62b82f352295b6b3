"""
Monte Carlo combat simulation.

Plays a build against a target round by round, rolling every die with one
seeded generator, and aggregates the runs into distributional statistics.
Each run owns its combat state: hit points, spell slots and class resources
persist across the encounters of a run and are restored by rests.
"""

import asyncio
from collections import Counter, deque
from collections.abc import Callable
from typing import Optional

from catchery import log_debug

from dprsim.character.build import Build, Target, Weapon
from dprsim.character.progression import (
    SHORT_REST_RESOURCES,
    class_resources,
    rage_damage_bonus,
)
from dprsim.combat.actions import (
    HEALING_POTION,
    ActionVariant,
    AttackAction,
    ItemAction,
    MovementAction,
    SpecialAction,
    SpellAction,
    build_attack_action,
    build_spell_action,
    choose_action,
    rider_damage_sources,
)
from dprsim.combat.combat_state import CombatState, Resources, TemporaryEffect
from dprsim.combat.damage import (
    feature_damage,
    roll_damage_expression,
    roll_damage_source,
    roll_damage_sources,
)
from dprsim.combat.results import MonteCarloResults, SimulationRun, aggregate_runs
from dprsim.combat.scenario import CombatScenario, EnemyAction
from dprsim.core.constants import (
    DECISION_LOG_CAPACITY,
    DEFAULT_CRIT_RANGE,
    DEFAULT_ITERATIONS,
    FEAT_POLEARM_MASTER,
    PROGRESS_INTERVAL,
    DamageType,
    RestType,
    SmitePolicy,
)
from dprsim.core.dice_parser import DiceRoller, double_dice
from dprsim.core.rng import SeededRandom
from dprsim.core.validation import (
    ensure_valid,
    validate_build,
    validate_iterations,
    validate_scenario,
    validate_target,
)

ProgressCallback = Callable[[float], None]

SMITE_BASE_DICE = 2
SMITE_MAX_DICE = 5
MIN_CONCENTRATION_DC = 10


class _RunTally:
    """Attack roll counters of a single run."""

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0
        self.crits = 0
        self.streak = 0
        self.max_streak = 0

    def record(self, hit: bool, crit: bool) -> None:
        if hit:
            self.hits += 1
            self.crits += int(crit)
            self.streak = 0
            return
        self.misses += 1
        self.streak += 1
        self.max_streak = max(self.max_streak, self.streak)


class _Turn:
    """Per-turn bookkeeping, reset for every turn and reaction."""

    def __init__(self, remaining_rounds: int) -> None:
        self.remaining_rounds = remaining_rounds
        self.once_per_turn_used = False


class MonteCarloEngine:
    """
    Runs seeded Monte Carlo simulations of a build against a target.

    An engine owns a single generator, so two engines built with the same
    seed produce identical results. `simulate` must not be awaited
    concurrently on the same engine.
    """

    def __init__(self, seed: Optional[int] = None) -> None:
        self.rng = SeededRandom(seed)
        self.roller = DiceRoller(self.rng)
        self.decisions: deque[str] = deque(maxlen=DECISION_LOG_CAPACITY)

    # ==========================================================================
    # ENTRY POINTS
    # ==========================================================================

    async def simulate(
        self,
        build: Build,
        target: Target,
        scenario: Optional[CombatScenario] = None,
        iterations: int = DEFAULT_ITERATIONS,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> MonteCarloResults:
        """
        Simulates `iterations` independent runs and aggregates them.

        The generator restarts from the engine's seed, so repeated calls with
        the same inputs return the same results. Every PROGRESS_INTERVAL runs
        the progress callback receives the completed fraction and control is
        yielded to the event loop.

        Args:
            build (Build): The simulated build.
            target (Target): The target it attacks.
            scenario (Optional[CombatScenario]): Rounds, encounters, rests
                and enemy actions, the default scenario when omitted.
            iterations (int): Number of runs.
            progress_callback (Optional[ProgressCallback]): Receives the
                completed fraction, ending with 1.0.

        Returns:
            MonteCarloResults: The aggregated results.

        Raises:
            SimulationInputError: If an input is invalid, before any roll.
            NoValidActionError: If a turn has no selectable action.

        """
        scenario = scenario if scenario is not None else CombatScenario()
        ensure_valid(validate_build(build), "build")
        ensure_valid(validate_target(target), "target")
        ensure_valid(validate_scenario(scenario), "scenario")
        ensure_valid(validate_iterations(iterations), "iterations")

        self.rng.reset()
        seed = self.rng.get_seed()
        self.decisions.clear()
        log_debug(
            f"Starting simulation of '{build.name}' against '{target.name}'",
            {
                "seed": seed,
                "iterations": iterations,
                "rounds": scenario.rounds,
                "encounters": scenario.encounters,
            },
        )
        runs: list[SimulationRun] = []
        for index in range(1, iterations + 1):
            runs.append(self.run_once(build, target, scenario))
            if index % PROGRESS_INTERVAL == 0:
                log_debug(
                    "Simulation progress",
                    {"completed": index, "iterations": iterations},
                )
                if progress_callback is not None:
                    progress_callback(index / iterations)
                await asyncio.sleep(0)
        if progress_callback is not None:
            progress_callback(1.0)

        results = aggregate_runs(runs, seed, scenario, target, self.decisions)
        log_debug(
            f"Finished simulation of '{build.name}'",
            {"seed": seed, "runs": results.runs, "mean_damage": results.damage.mean},
        )
        return results

    def simulate_sync(
        self,
        build: Build,
        target: Target,
        scenario: Optional[CombatScenario] = None,
        iterations: int = DEFAULT_ITERATIONS,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> MonteCarloResults:
        """Runs `simulate` to completion on a fresh event loop."""
        return asyncio.run(
            self.simulate(build, target, scenario, iterations, progress_callback)
        )

    # ==========================================================================
    # SINGLE RUN
    # ==========================================================================

    def run_once(
        self, build: Build, target: Target, scenario: CombatScenario
    ) -> SimulationRun:
        """
        Plays one run: every encounter of the scenario with rests in between.

        Args:
            build (Build): The simulated build.
            target (Target): The target it attacks.
            scenario (CombatScenario): The scenario.

        Returns:
            SimulationRun: The raw outcome of the run.

        """
        state = self.initial_state(build)
        available: Counter[str] = Counter(self._resource_pool(state))
        tally = _RunTally()
        damage_by_round: list[int] = []
        damage_by_encounter: list[int] = []
        rounds_played = 0

        for encounter in range(1, scenario.encounters + 1):
            if encounter > 1:
                available.update(
                    self.apply_rest(build, state, scenario.rest_type, encounter - 1)
                )
            state.encounter = encounter
            state.target_legendary_resistances = target.legendary_resistances
            encounter_damage = 0
            for round_number in range(1, scenario.rounds + 1):
                state.round = round_number
                turn = _Turn(scenario.total_rounds - rounds_played)
                damage = self._play_round(build, target, scenario, state, tally, turn)
                damage_by_round.append(damage)
                encounter_damage += damage
                rounds_played += 1
            damage_by_encounter.append(encounter_damage)
            state.end_encounter()

        return SimulationRun(
            total_damage=sum(damage_by_round),
            damage_by_round=damage_by_round,
            damage_by_encounter=damage_by_encounter,
            hit_count=tally.hits,
            miss_count=tally.misses,
            crit_count=tally.crits,
            max_miss_streak=tally.max_streak,
            resources_used=dict(state.resources_used),
            resources_available=dict(available),
            conditions=list(state.resources.conditions),
            final_state=state.snapshot(),
        )

    def initial_state(self, build: Build) -> CombatState:
        """Builds the fresh state a run starts from."""
        max_hit_points = build.max_hit_points()
        items: dict[str, int] = {}
        if build.equipment.healing_potions > 0:
            items[HEALING_POTION] = build.equipment.healing_potions
        return CombatState(
            resources=Resources(
                hit_points=max_hit_points,
                max_hit_points=max_hit_points,
                spell_slots=build.get_spell_slots(),
                class_resources=class_resources(build.levels),
                items=items,
                conditions=list(build.conditions),
            )
        )

    def _resource_pool(self, state: CombatState) -> dict[str, int]:
        pool = {
            f"spell_slot_{level}": count
            for level, count in state.resources.spell_slots.items()
            if count > 0
        }
        pool.update(state.resources.class_resources)
        pool.update(state.resources.items)
        return pool

    def apply_rest(
        self, build: Build, state: CombatState, rest_type: RestType, completed: int
    ) -> dict[str, int]:
        """
        Applies the rest taken after an encounter.

        A short rest restores Action Surge. A long rest restores hit points,
        spell slots and every class resource. MIXED takes a short rest after
        each encounter and a long rest after every second one.

        Args:
            build (Build): The build, for its maximum resources.
            state (CombatState): The state to restore.
            rest_type (RestType): The rest cadence.
            completed (int): Encounters completed so far.

        Returns:
            dict[str, int]: Units restored per resource.

        """
        if rest_type == RestType.MIXED:
            rest_type = RestType.LONG if completed % 2 == 0 else RestType.SHORT
        if rest_type == RestType.NONE:
            return {}

        restored: dict[str, int] = {}
        maximum = class_resources(build.levels)
        for name, uses in maximum.items():
            if rest_type == RestType.SHORT and name not in SHORT_REST_RESOURCES:
                continue
            missing = uses - state.resources.class_resources.get(name, 0)
            if missing > 0:
                restored[name] = missing
            state.resources.class_resources[name] = uses
        if rest_type == RestType.SHORT:
            return restored

        state.heal(state.resources.max_hit_points)
        for level, count in build.get_spell_slots().items():
            missing = count - state.resources.spell_slots.get(level, 0)
            if missing > 0:
                restored[f"spell_slot_{level}"] = missing
            state.resources.spell_slots[level] = count
        return restored

    # ==========================================================================
    # ROUND PIPELINE
    # ==========================================================================

    def _play_round(
        self,
        build: Build,
        target: Target,
        scenario: CombatScenario,
        state: CombatState,
        tally: _RunTally,
        turn: _Turn,
    ) -> int:
        state.turn += 1
        state.reset_action_economy()
        damage = 0
        if state.is_conscious:
            damage += self._take_main_action(build, target, state, tally, turn)
            if (
                state.round == 1
                and build.policies.use_action_surge
                and state.spend_resource("action_surge")
            ):
                damage += self._take_main_action(build, target, state, tally, turn)
            damage += self._take_bonus_action(build, target, state, tally, turn)
        damage += self._enemy_phase(build, target, scenario, state, tally, turn)
        state.tick_effects()
        return damage

    def _take_main_action(
        self,
        build: Build,
        target: Target,
        state: CombatState,
        tally: _RunTally,
        turn: _Turn,
    ) -> int:
        action, _ = choose_action(build, target, state)
        self.decisions.append(action.name)
        state.action_economy.action = False
        return self._resolve(action, build, target, state, tally, turn)

    def _resolve(
        self,
        action: ActionVariant,
        build: Build,
        target: Target,
        state: CombatState,
        tally: _RunTally,
        turn: _Turn,
    ) -> int:
        if isinstance(action, AttackAction):
            return self._resolve_attack(action, build, target, state, tally, turn)
        if isinstance(action, SpellAction):
            return self._resolve_spell(action, target, state, tally)
        if isinstance(action, ItemAction):
            if state.spend_item(action.item):
                state.heal(self.roller.roll(action.healing))
        elif isinstance(action, MovementAction):
            state.action_economy.movement += action.distance
        elif isinstance(action, SpecialAction):
            state.dodging = True
        return 0

    def _take_bonus_action(
        self,
        build: Build,
        target: Target,
        state: CombatState,
        tally: _RunTally,
        turn: _Turn,
    ) -> int:
        """
        Resolves the bonus action, by priority: Rage, a concentration rider
        spell, a damaging bonus-action spell, an off-hand attack and the
        Polearm Master butt attack.
        """
        if not state.action_economy.bonus_action:
            return 0
        state.action_economy.bonus_action = False

        if (
            state.round == 1
            and build.policies.use_rage
            and not state.raging
            and state.spend_resource("rage")
        ):
            state.raging = True
            return 0

        if state.resources.concentration is None:
            for spell in build.spells:
                if not (spell.bonus_action and spell.is_rider):
                    continue
                slot = 0 if spell.is_cantrip else state.lowest_slot(spell.level)
                if slot is None:
                    continue
                if slot:
                    state.spend_slot(slot)
                state.start_concentration(
                    TemporaryEffect(name=spell.name, duration=spell.duration)
                )
                return 0

        for spell in build.spells:
            if not (spell.bonus_action and spell.damage):
                continue
            if spell.concentration and state.resources.concentration is not None:
                continue
            slot = 0 if spell.is_cantrip else state.lowest_slot(spell.level)
            if slot is None:
                continue
            action = build_spell_action(build, target, spell, slot, state)
            return self._resolve_spell(action, target, state, tally)

        main_hand = build.equipment.main_hand
        off_hand = build.equipment.off_hand
        if (
            off_hand is not None
            and main_hand is not None
            and not main_hand.has_property("two-handed")
        ):
            action = build_attack_action(build, target, off_hand, True, state)
            return self._resolve_attack(action, build, target, state, tally, turn)

        if (
            main_hand is not None
            and not main_hand.is_ranged
            and build.has_feature(FEAT_POLEARM_MASTER)
        ):
            butt_end = Weapon(
                name=f"{main_hand.name} (butt end)",
                damage="1d4",
                damage_type=DamageType.BLUDGEONING,
                properties=main_hand.properties,
                to_hit_bonus=main_hand.to_hit_bonus,
                damage_bonus=main_hand.damage_bonus,
            )
            action = build_attack_action(build, target, butt_end, state=state)
            action = action.model_copy(update={"num_attacks": 1})
            return self._resolve_attack(action, build, target, state, tally, turn)
        return 0

    def _enemy_phase(
        self,
        build: Build,
        target: Target,
        scenario: CombatScenario,
        state: CombatState,
        tally: _RunTally,
        turn: _Turn,
    ) -> int:
        dealt = 0
        for enemy in scenario.enemy_actions:
            if not self.rng.chance(self._firing_probability(enemy, state)):
                continue
            if enemy.damage:
                taken = state.take_damage(max(0, self.roller.roll(enemy.damage)))
                if taken and state.resources.concentration is not None:
                    self._concentration_save(build, state, taken)
            if enemy.condition:
                # The end of this round ticks once before the build's next turn.
                state.add_effect(
                    TemporaryEffect(
                        name=f"{enemy.name}: {enemy.condition}",
                        duration=enemy.condition_duration + 1,
                        data={"condition": enemy.condition.lower()},
                    )
                )
            if enemy.effect is not None:
                enemy.effect(state)
            if (
                enemy.provokes_reaction
                and state.action_economy.reaction
                and state.is_conscious
            ):
                state.action_economy.reaction = False
                action = build_attack_action(build, target, state=state)
                action = action.model_copy(update={"num_attacks": 1})
                reaction = _Turn(turn.remaining_rounds)
                dealt += self._resolve_attack(action, build, target, state, tally, reaction)
        return dealt

    def _firing_probability(self, enemy: EnemyAction, state: CombatState) -> float:
        """Dodging makes damaging actions roll twice to land."""
        if state.dodging and enemy.damage:
            return enemy.probability**2
        return enemy.probability

    def _concentration_save(self, build: Build, state: CombatState, damage: int) -> None:
        dc = max(MIN_CONCENTRATION_DC, damage // 2)
        roll = self.rng.roll_d20() + build.abilities.modifier("constitution")
        if roll < dc:
            state.break_concentration()

    # ==========================================================================
    # ACTION RESOLUTION
    # ==========================================================================

    def _resolve_attack(
        self,
        action: AttackAction,
        build: Build,
        target: Target,
        state: CombatState,
        tally: _RunTally,
        turn: _Turn,
    ) -> int:
        """
        Rolls every attack of an attack action.

        A natural 1 always misses, a natural roll within the crit range
        always hits and crits, anything else hits when the total meets the
        target's AC.

        Returns:
            int: Damage dealt after the target's defenses.

        """
        rage = 0
        if state.raging and action.is_melee and build.uses_strength(action.weapon):
            rage = rage_damage_bonus(build.class_level("barbarian"))
        sources = [source.with_bonus(rage) for source in action.damage]
        sources += rider_damage_sources(build, state)

        total = 0
        for _ in range(action.num_attacks):
            natural = self.roller.roll_d20(action.advantage_state, action.halfling_luck)
            is_crit = natural >= action.crit_range
            roll = natural + action.attack_bonus
            roll += sum(self.roller.roll(expr) for expr in action.bonus_dice)
            hit = natural != 1 and (is_crit or roll >= target.armor_class)
            tally.record(hit, is_crit and hit)
            if not hit:
                continue
            damage = roll_damage_sources(self.roller, sources, is_crit, target)
            if is_crit:
                damage += roll_damage_sources(self.roller, action.crit_damage, True, target)
            if action.once_per_turn and (
                not turn.once_per_turn_used or build.policies.allow_repeat_once_per_turn
            ):
                turn.once_per_turn_used = True
                damage += roll_damage_sources(
                    self.roller, action.once_per_turn, is_crit, target
                )
            damage += self._smite(action, build, target, state, is_crit, turn)
            total += damage
        return total

    def _smite(
        self,
        action: AttackAction,
        build: Build,
        target: Target,
        state: CombatState,
        is_crit: bool,
        turn: _Turn,
    ) -> int:
        """
        Adds Divine Smite to a melee hit according to the smite policy.

        Smite spends the lowest slot, or the highest one on a crit, for 2d8
        radiant damage plus 1d8 per slot level above the first, up to 5d8.
        """
        policy = build.policies.smite_policy
        if policy == SmitePolicy.NEVER or not action.is_melee:
            return 0
        if build.class_level("paladin") < 2:
            return 0
        if policy == SmitePolicy.ON_CRIT and not is_crit:
            return 0
        if (
            policy == SmitePolicy.OPTIMAL
            and not is_crit
            and state.remaining_slots() < turn.remaining_rounds
        ):
            return 0
        slot = state.highest_slot() if is_crit else state.lowest_slot()
        if slot is None:
            return 0
        state.spend_slot(slot)
        dice = min(SMITE_MAX_DICE, SMITE_BASE_DICE + slot - 1)
        smite = feature_damage(
            f"{dice}d8", DamageType.RADIANT, "Divine Smite", on_crit_double=True
        )
        return roll_damage_source(self.roller, smite, is_crit, target)

    def _resolve_spell(
        self,
        action: SpellAction,
        target: Target,
        state: CombatState,
        tally: _RunTally,
    ) -> int:
        """
        Casts a damaging spell, spending its slot.

        Spell attacks roll against AC and count toward the hit tally, saving
        throws are rolled by the target.
        """
        spell = action.spell
        if action.slot_level and not state.spend_slot(action.slot_level):
            return 0
        if spell.concentration:
            state.start_concentration(
                TemporaryEffect(name=spell.name, duration=spell.duration)
            )
        if spell.attack_roll:
            natural = self.roller.roll_d20(action.advantage_state)
            is_crit = natural >= DEFAULT_CRIT_RANGE
            hit = natural != 1 and (
                is_crit or natural + action.attack_bonus >= target.armor_class
            )
            tally.record(hit, is_crit and hit)
            if not hit:
                return 0
            expr = double_dice(action.damage) if is_crit else action.damage
            rolled = roll_damage_expression(self.roller, expr, action.reroll_mechanic)
            return target.modify_damage(max(0, rolled), spell.damage_type)
        rolled = max(
            0, roll_damage_expression(self.roller, action.damage, action.reroll_mechanic)
        )
        if self._target_saves(action.save_dc, target, state):
            rolled = rolled // 2 if spell.half_on_save else 0
        return target.modify_damage(rolled, spell.damage_type)

    def _target_saves(self, save_dc: int, target: Target, state: CombatState) -> bool:
        """
        Rolls the target's saving throw.

        A natural 20 succeeds and a natural 1 fails. Magic Resistance rolls
        with advantage, and a failed save is turned into a success while
        Legendary Resistances remain.
        """
        if target.magic_resistance:
            natural = self.rng.roll_advantage()
        else:
            natural = self.rng.roll_d20()
        saved = natural == 20 or (natural != 1 and natural + target.save_bonus >= save_dc)
        if not saved and state.target_legendary_resistances > 0:
            state.target_legendary_resistances -= 1
            saved = True
        return saved
