"""
Combat scenarios.

A scenario is read-only input shared by every run of a simulation: how many
rounds and encounters to play, how the build rests in between, what the
enemies do each round and the environment the fight takes place in.
"""

from collections.abc import Callable
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from dprsim.core.constants import Cover, Lighting, RestType, Terrain


class EnemyAction(BaseModel):
    """
    Something an enemy may do each round.

    Each action fires independently with its own probability. When it fires
    it may damage the build, inflict a timed condition, run a custom hook on
    the combat state and provoke the build's reaction.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="The name of the enemy action.")
    probability: float = Field(description="Chance the action fires each round.")
    damage: Optional[str] = Field(
        default=None, description="Damage dealt to the build, as a dice expression."
    )
    condition: Optional[str] = Field(
        default=None, description="Condition inflicted on the build."
    )
    condition_duration: int = Field(
        default=1, description="Rounds the inflicted condition lasts."
    )
    provokes_reaction: bool = Field(
        default=False,
        description="The action gives the build an opportunity attack.",
    )
    effect: Optional[Callable[[Any], Any]] = Field(
        default=None,
        exclude=True,
        description="Custom hook called with the combat state when the action fires.",
    )


class Environment(BaseModel):
    """Environmental descriptors, reported as advisory context only."""

    model_config = ConfigDict(frozen=True)

    lighting: Lighting = Field(default=Lighting.BRIGHT, description="Light level.")
    terrain: Terrain = Field(default=Terrain.NORMAL, description="Terrain type.")
    cover: Cover = Field(default=Cover.NONE, description="Cover of the target.")

    def advisories(self) -> list[str]:
        notes: list[str] = []
        if self.lighting == Lighting.DARKNESS:
            notes.append("Fighting in darkness may impose disadvantage")
        if self.cover != Cover.NONE:
            notes.append(f"{self.cover.display_name} cover raises the target's AC")
        if self.terrain == Terrain.HAZARDOUS:
            notes.append("Hazardous terrain may deal extra damage to the build")
        elif self.terrain == Terrain.DIFFICULT:
            notes.append("Difficult terrain limits movement")
        return notes


class CombatScenario(BaseModel):
    """How a simulated day of combat unfolds."""

    model_config = ConfigDict(frozen=True)

    rounds: int = Field(default=3, description="Rounds per encounter.")
    encounters: int = Field(default=1, description="Encounters per run.")
    rest_type: RestType = Field(
        default=RestType.NONE, description="Rest taken between encounters."
    )
    enemy_actions: list[EnemyAction] = Field(
        default_factory=list, description="Enemy actions resolved every round."
    )
    environment: Environment = Field(
        default_factory=Environment, description="Environmental descriptors."
    )

    @property
    def total_rounds(self) -> int:
        return self.rounds * self.encounters
