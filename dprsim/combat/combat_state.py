"""
Combat state module for the simulator.

Holds the mutable bookkeeping of one simulated run: round and turn
counters, hit points, spell slots, class resources, concentration,
conditions, the action economy and temporary effects. A state is owned by
a single run and is only ever written by the engine driving that run.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from dprsim.core.constants import DEFAULT_MOVEMENT, UNCONSCIOUS


class TemporaryEffect(BaseModel):
    """
    An effect that lasts a number of rounds, e.g. a concentration spell or
    a condition inflicted by an enemy.
    """

    name: str = Field(description="The name of the effect.")
    duration: int = Field(description="Remaining duration in rounds.")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Payload of the effect, e.g. rider damage or a condition.",
    )

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if not self.name:
            raise ValueError("name must be a non-empty string")

    @property
    def condition(self) -> Optional[str]:
        return self.data.get("condition")

    @property
    def is_concentration(self) -> bool:
        return bool(self.data.get("concentration"))

    def is_expired(self) -> bool:
        return self.duration <= 0


class Resources(BaseModel):
    """Expendable resources of the build."""

    hit_points: int = Field(description="Current hit points.")
    max_hit_points: int = Field(description="Maximum hit points.")
    spell_slots: dict[int, int] = Field(
        default_factory=dict, description="Remaining spell slots by spell level."
    )
    class_resources: dict[str, int] = Field(
        default_factory=dict,
        description="Remaining class resources, e.g. rage or action surge.",
    )
    items: dict[str, int] = Field(
        default_factory=dict, description="Consumable items carried, by name."
    )
    concentration: Optional[str] = Field(
        default=None, description="Name of the spell being concentrated on."
    )
    conditions: list[str] = Field(
        default_factory=list, description="Conditions affecting the build."
    )


class ActionEconomy(BaseModel):
    """What the build can still do this round."""

    action: bool = Field(default=True, description="The action is available.")
    bonus_action: bool = Field(default=True, description="The bonus action is available.")
    reaction: bool = Field(default=True, description="The reaction is available.")
    movement: int = Field(default=DEFAULT_MOVEMENT, description="Feet of movement left.")


class CombatState(BaseModel):
    """
    Per-run mutable state threaded through the round pipeline.
    """

    round: int = Field(default=0, description="Current round, 1-based once started.")
    turn: int = Field(default=0, description="Turns taken in the run.")
    encounter: int = Field(default=1, description="Current encounter, 1-based.")
    resources: Resources = Field(description="Expendable resources.")
    action_economy: ActionEconomy = Field(
        default_factory=ActionEconomy, description="Remaining actions this round."
    )
    temporary_effects: list[TemporaryEffect] = Field(
        default_factory=list, description="Effects with a remaining duration."
    )
    target_legendary_resistances: int = Field(
        default=0,
        description="Legendary resistances the target has left this encounter.",
    )
    resources_used: dict[str, int] = Field(
        default_factory=dict, description="Resources spent so far, by name."
    )
    raging: bool = Field(default=False, description="The build is raging.")
    dodging: bool = Field(default=False, description="The build took the Dodge action.")

    # ------------------------------------------------------------------
    # Round lifecycle
    # ------------------------------------------------------------------

    def reset_action_economy(self, movement: int = DEFAULT_MOVEMENT) -> None:
        self.action_economy = ActionEconomy(movement=movement)
        self.dodging = False

    def tick_effects(self) -> list[TemporaryEffect]:
        """
        Decrements every effect's duration and removes the expired ones.

        Conditions carried by expired effects are lifted and an expiring
        concentration effect clears concentration.

        Returns:
            list[TemporaryEffect]: The effects that expired.

        """
        expired: list[TemporaryEffect] = []
        for effect in self.temporary_effects:
            effect.duration -= 1
            if effect.is_expired():
                expired.append(effect)
        for effect in expired:
            self._remove_effect(effect)
        return expired

    def end_encounter(self) -> None:
        """Ends concentration, rage and every temporary effect."""
        for effect in list(self.temporary_effects):
            self._remove_effect(effect)
        self.resources.concentration = None
        self.raging = False

    def _remove_effect(self, effect: TemporaryEffect) -> None:
        self.temporary_effects.remove(effect)
        if effect.condition and not self._condition_still_applied(effect.condition):
            self.remove_condition(effect.condition)
        if effect.is_concentration and self.resources.concentration == effect.name:
            self.resources.concentration = None

    def _condition_still_applied(self, condition: str) -> bool:
        return any(effect.condition == condition for effect in self.temporary_effects)

    # ------------------------------------------------------------------
    # Effects and conditions
    # ------------------------------------------------------------------

    def add_effect(self, effect: TemporaryEffect) -> None:
        self.temporary_effects.append(effect)
        if effect.condition:
            self.add_condition(effect.condition)

    def get_effect(self, name: str) -> Optional[TemporaryEffect]:
        for effect in self.temporary_effects:
            if effect.name == name:
                return effect
        return None

    def has_condition(self, condition: str) -> bool:
        return condition.lower() in self.resources.conditions

    def add_condition(self, condition: str) -> None:
        condition = condition.lower()
        if condition not in self.resources.conditions:
            self.resources.conditions.append(condition)

    def remove_condition(self, condition: str) -> None:
        condition = condition.lower()
        if condition in self.resources.conditions:
            self.resources.conditions.remove(condition)

    def start_concentration(self, effect: TemporaryEffect) -> None:
        """Starts concentrating on a new effect, ending any previous one."""
        self.break_concentration()
        effect.data["concentration"] = True
        self.resources.concentration = effect.name
        self.add_effect(effect)

    def break_concentration(self) -> Optional[str]:
        """
        Ends the current concentration effect.

        Returns:
            Optional[str]: The name of the dropped effect, if any.

        """
        name = self.resources.concentration
        if name is None:
            return None
        effect = self.get_effect(name)
        if effect is not None:
            self._remove_effect(effect)
        self.resources.concentration = None
        return name

    # ------------------------------------------------------------------
    # Hit points
    # ------------------------------------------------------------------

    @property
    def is_conscious(self) -> bool:
        return self.resources.hit_points > 0

    def take_damage(self, amount: int) -> int:
        """
        Reduces hit points, never below zero.

        Args:
            amount (int): The damage taken.

        Returns:
            int: The hit points actually lost.

        """
        lost = min(max(0, amount), self.resources.hit_points)
        self.resources.hit_points -= lost
        if self.resources.hit_points == 0:
            self.add_condition(UNCONSCIOUS)
            self.break_concentration()
            self.raging = False
        return lost

    def heal(self, amount: int) -> int:
        before = self.resources.hit_points
        self.resources.hit_points = min(
            self.resources.max_hit_points, before + max(0, amount)
        )
        if self.resources.hit_points > 0:
            self.remove_condition(UNCONSCIOUS)
        return self.resources.hit_points - before

    # ------------------------------------------------------------------
    # Spell slots and class resources
    # ------------------------------------------------------------------

    def lowest_slot(self, min_level: int = 1) -> Optional[int]:
        for level in sorted(self.resources.spell_slots):
            if level >= min_level and self.resources.spell_slots[level] > 0:
                return level
        return None

    def highest_slot(self, min_level: int = 1) -> Optional[int]:
        for level in sorted(self.resources.spell_slots, reverse=True):
            if level >= min_level and self.resources.spell_slots[level] > 0:
                return level
        return None

    def remaining_slots(self) -> int:
        return sum(self.resources.spell_slots.values())

    def spend_slot(self, level: int) -> bool:
        """
        Spends one slot of the given level.

        Args:
            level (int): The slot level.

        Returns:
            bool: False if no slot of that level remains.

        """
        if self.resources.spell_slots.get(level, 0) <= 0:
            return False
        self.resources.spell_slots[level] -= 1
        self._record_use(f"spell_slot_{level}")
        return True

    def has_resource(self, name: str) -> bool:
        return self.resources.class_resources.get(name, 0) > 0

    def spend_resource(self, name: str) -> bool:
        if not self.has_resource(name):
            return False
        self.resources.class_resources[name] -= 1
        self._record_use(name)
        return True

    def has_item(self, name: str) -> bool:
        return self.resources.items.get(name, 0) > 0

    def spend_item(self, name: str) -> bool:
        if not self.has_item(name):
            return False
        self.resources.items[name] -= 1
        self._record_use(name)
        return True

    def _record_use(self, name: str) -> None:
        self.resources_used[name] = self.resources_used.get(name, 0) + 1

    def snapshot(self) -> "CombatState":
        return self.model_copy(deep=True)
