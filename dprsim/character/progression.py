"""
Class progression tables.

Hit dice, attacks per action, class features, spell slot progressions and
the class resources the simulator tracks, indexed by class level.
"""

import math
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from dprsim.core.constants import CasterType

if TYPE_CHECKING:
    from dprsim.character.build import ClassLevel

DEFAULT_HIT_DIE = 8

HIT_DICE: dict[str, int] = {
    "fighter": 10,
    "rogue": 8,
    "ranger": 10,
    "barbarian": 12,
    "paladin": 10,
    "wizard": 6,
    "sorcerer": 6,
    "warlock": 8,
    "bard": 8,
    "cleric": 8,
    "druid": 8,
    "monk": 8,
    "artificer": 8,
}

THIRD_CASTER_SUBCLASSES = frozenset({"eldritch knight", "arcane trickster"})

# Slots per spell level (index 0 is level 1) by caster level.
FULL_CASTER_SLOTS: dict[int, tuple[int, ...]] = {
    1: (2,),
    2: (3,),
    3: (4, 2),
    4: (4, 3),
    5: (4, 3, 2),
    6: (4, 3, 3),
    7: (4, 3, 3, 1),
    8: (4, 3, 3, 2),
    9: (4, 3, 3, 3, 1),
    10: (4, 3, 3, 3, 2),
    11: (4, 3, 3, 3, 2, 1),
    12: (4, 3, 3, 3, 2, 1),
    13: (4, 3, 3, 3, 2, 1, 1),
    14: (4, 3, 3, 3, 2, 1, 1),
    15: (4, 3, 3, 3, 2, 1, 1, 1),
    16: (4, 3, 3, 3, 2, 1, 1, 1),
    17: (4, 3, 3, 3, 2, 1, 1, 1, 1),
    18: (4, 3, 3, 3, 3, 1, 1, 1, 1),
    19: (4, 3, 3, 3, 3, 2, 1, 1, 1),
    20: (4, 3, 3, 3, 3, 2, 2, 1, 1),
}

HALF_CASTER_SLOTS: dict[int, tuple[int, ...]] = {
    1: (),
    2: (2,),
    3: (3,),
    4: (3,),
    5: (4, 2),
    6: (4, 2),
    7: (4, 3),
    8: (4, 3),
    9: (4, 3, 2),
    10: (4, 3, 2),
    11: (4, 3, 3),
    12: (4, 3, 3),
    13: (4, 3, 3, 1),
    14: (4, 3, 3, 1),
    15: (4, 3, 3, 2),
    16: (4, 3, 3, 2),
    17: (4, 3, 3, 3, 1),
    18: (4, 3, 3, 3, 1),
    19: (4, 3, 3, 3, 2),
    20: (4, 3, 3, 3, 2),
}

THIRD_CASTER_SLOTS: dict[int, tuple[int, ...]] = {
    1: (),
    2: (),
    3: (2,),
    4: (3,),
    5: (3,),
    6: (3,),
    7: (4, 2),
    8: (4, 2),
    9: (4, 2),
    10: (4, 3),
    11: (4, 3),
    12: (4, 3),
    13: (4, 3, 2),
    14: (4, 3, 2),
    15: (4, 3, 2),
    16: (4, 3, 3),
    17: (4, 3, 3),
    18: (4, 3, 3),
    19: (4, 3, 3, 1),
    20: (4, 3, 3, 1),
}


class ClassFeature(BaseModel):
    """A feature a class gains at a given level."""

    name: str = Field(description="The name of the feature.")
    level: int = Field(description="The class level the feature is gained at.")
    category: str = Field(
        default="core",
        description="One of 'core', 'subclass', 'asi' or 'spell'.",
    )
    description: str = Field(default="", description="Short rules summary.")


class ClassProgression(BaseModel):
    """
    Represents a class with its hit die, attack progression, features and
    spellcasting progression.
    """

    name: str = Field(description="The name of the class.")
    hit_die: int = Field(description="The hit die size of the class.")
    caster_type: CasterType = Field(
        default=CasterType.NONE,
        description="How the class contributes to spellcasting.",
    )
    attacks_per_action: dict[int, int] = Field(
        default_factory=lambda: {1: 1},
        description="Class level at which the number of attacks per action changes.",
    )
    features: list[ClassFeature] = Field(
        default_factory=list,
        description="Features gained by class level.",
    )

    def get_attacks_per_action(self, level: int) -> int:
        """
        Returns the attacks per Attack action at a class level.

        Args:
            level (int): The class level.

        Returns:
            int: The number of attacks.

        """
        attacks = 1
        for threshold in sorted(self.attacks_per_action):
            if level >= threshold:
                attacks = self.attacks_per_action[threshold]
        return attacks

    def get_features_at_level(self, level: int) -> list[ClassFeature]:
        return [feature for feature in self.features if feature.level == level]

    def get_features_up_to_level(self, level: int) -> list[ClassFeature]:
        return [feature for feature in self.features if feature.level <= level]

    def __hash__(self) -> int:
        return hash(self.name)


def _asi(levels: Iterable[int]) -> list[ClassFeature]:
    return [
        ClassFeature(
            name="Ability Score Improvement",
            level=level,
            category="asi",
            description="Increase ability scores or take a feat",
        )
        for level in levels
    ]


def _features(*entries: tuple[str, int, str]) -> list[ClassFeature]:
    return [
        ClassFeature(name=name, level=level, category=category)
        for name, level, category in entries
    ]


STANDARD_ASI_LEVELS = (4, 8, 12, 16, 19)

CLASS_PROGRESSIONS: dict[str, ClassProgression] = {
    "fighter": ClassProgression(
        name="Fighter",
        hit_die=10,
        attacks_per_action={1: 1, 5: 2, 11: 3, 20: 4},
        features=sorted(
            _features(
                ("Fighting Style", 1, "core"),
                ("Second Wind", 1, "core"),
                ("Action Surge", 2, "core"),
                ("Martial Archetype", 3, "subclass"),
                ("Extra Attack", 5, "core"),
                ("Martial Archetype Feature", 7, "subclass"),
                ("Indomitable", 9, "core"),
                ("Martial Archetype Feature", 10, "subclass"),
                ("Extra Attack (2)", 11, "core"),
                ("Indomitable (2 uses)", 13, "core"),
                ("Martial Archetype Feature", 15, "subclass"),
                ("Action Surge (2 uses)", 17, "core"),
                ("Martial Archetype Feature", 18, "subclass"),
                ("Extra Attack (3)", 20, "core"),
            )
            + _asi((4, 6, 8, 12, 14, 16, 19)),
            key=lambda feature: feature.level,
        ),
    ),
    "rogue": ClassProgression(
        name="Rogue",
        hit_die=8,
        features=sorted(
            _features(
                ("Expertise", 1, "core"),
                ("Sneak Attack", 1, "core"),
                ("Thieves' Cant", 1, "core"),
                ("Cunning Action", 2, "core"),
                ("Roguish Archetype", 3, "subclass"),
                ("Sneak Attack (2d6)", 3, "core"),
                ("Uncanny Dodge", 5, "core"),
                ("Sneak Attack (3d6)", 5, "core"),
                ("Expertise", 6, "core"),
                ("Evasion", 7, "core"),
                ("Sneak Attack (4d6)", 7, "core"),
                ("Roguish Archetype Feature", 9, "subclass"),
                ("Sneak Attack (5d6)", 9, "core"),
                ("Reliable Talent", 11, "core"),
                ("Sneak Attack (6d6)", 11, "core"),
                ("Roguish Archetype Feature", 13, "subclass"),
                ("Sneak Attack (7d6)", 13, "core"),
                ("Blindsense", 14, "core"),
                ("Sneak Attack (8d6)", 15, "core"),
                ("Roguish Archetype Feature", 17, "subclass"),
                ("Sneak Attack (9d6)", 17, "core"),
                ("Elusive", 18, "core"),
                ("Sneak Attack (10d6)", 19, "core"),
                ("Stroke of Luck", 20, "core"),
            )
            + _asi((4, 8, 10, 12, 16, 19)),
            key=lambda feature: feature.level,
        ),
    ),
    "ranger": ClassProgression(
        name="Ranger",
        hit_die=10,
        caster_type=CasterType.HALF,
        attacks_per_action={1: 1, 5: 2},
        features=sorted(
            _features(
                ("Favored Enemy", 1, "core"),
                ("Natural Explorer", 1, "core"),
                ("Fighting Style", 2, "core"),
                ("Spellcasting", 2, "spell"),
                ("Ranger Archetype", 3, "subclass"),
                ("Primeval Awareness", 3, "core"),
                ("Extra Attack", 5, "core"),
                ("Favored Enemy (2nd)", 6, "core"),
                ("Ranger Archetype Feature", 7, "subclass"),
                ("Land's Stride", 8, "core"),
                ("Natural Explorer (3rd)", 10, "core"),
                ("Ranger Archetype Feature", 11, "subclass"),
                ("Vanish", 14, "core"),
                ("Ranger Archetype Feature", 15, "subclass"),
                ("Feral Senses", 18, "core"),
                ("Foe Slayer", 20, "core"),
            )
            + _asi(STANDARD_ASI_LEVELS),
            key=lambda feature: feature.level,
        ),
    ),
    "barbarian": ClassProgression(
        name="Barbarian",
        hit_die=12,
        attacks_per_action={1: 1, 5: 2},
        features=sorted(
            _features(
                ("Rage", 1, "core"),
                ("Unarmored Defense", 1, "core"),
                ("Reckless Attack", 2, "core"),
                ("Primal Path", 3, "subclass"),
                ("Extra Attack", 5, "core"),
                ("Brutal Critical", 9, "core"),
                ("Brutal Critical (2 dice)", 13, "core"),
                ("Brutal Critical (3 dice)", 17, "core"),
                ("Primal Champion", 20, "core"),
            )
            + _asi(STANDARD_ASI_LEVELS),
            key=lambda feature: feature.level,
        ),
    ),
    "paladin": ClassProgression(
        name="Paladin",
        hit_die=10,
        caster_type=CasterType.HALF,
        attacks_per_action={1: 1, 5: 2},
        features=sorted(
            _features(
                ("Lay on Hands", 1, "core"),
                ("Fighting Style", 2, "core"),
                ("Spellcasting", 2, "spell"),
                ("Divine Smite", 2, "core"),
                ("Sacred Oath", 3, "subclass"),
                ("Extra Attack", 5, "core"),
                ("Aura of Protection", 6, "core"),
                ("Improved Divine Smite", 11, "core"),
            )
            + _asi(STANDARD_ASI_LEVELS),
            key=lambda feature: feature.level,
        ),
    ),
    "monk": ClassProgression(
        name="Monk",
        hit_die=8,
        attacks_per_action={1: 1, 5: 2},
        features=sorted(
            _features(
                ("Martial Arts", 1, "core"),
                ("Ki", 2, "core"),
                ("Monastic Tradition", 3, "subclass"),
                ("Extra Attack", 5, "core"),
            )
            + _asi(STANDARD_ASI_LEVELS),
            key=lambda feature: feature.level,
        ),
    ),
    "artificer": ClassProgression(
        name="Artificer",
        hit_die=8,
        caster_type=CasterType.HALF,
        features=_asi(STANDARD_ASI_LEVELS),
    ),
}

for _name in ("wizard", "sorcerer", "cleric", "druid", "bard"):
    CLASS_PROGRESSIONS[_name] = ClassProgression(
        name=_name.capitalize(),
        hit_die=HIT_DICE[_name],
        caster_type=CasterType.FULL,
        features=_asi(STANDARD_ASI_LEVELS),
    )
# Pact magic follows its own rules and is not modelled as slots.
CLASS_PROGRESSIONS["warlock"] = ClassProgression(
    name="Warlock", hit_die=8, features=_asi(STANDARD_ASI_LEVELS)
)


def get_class_progression(class_name: str) -> Optional[ClassProgression]:
    return CLASS_PROGRESSIONS.get((class_name or "").strip().lower())


def proficiency_bonus(level: int) -> int:
    """
    Proficiency bonus for a total character level.

    Args:
        level (int): The character level.

    Returns:
        int: +2 at level 1, rising by one every four levels to +6 at 17.

    """
    if level >= 17:
        return 6
    if level >= 13:
        return 5
    if level >= 9:
        return 4
    if level >= 5:
        return 3
    return 2


def hit_die_for(class_name: str) -> int:
    return HIT_DICE.get((class_name or "").strip().lower(), DEFAULT_HIT_DIE)


def attacks_per_action(class_name: str, level: int) -> int:
    progression = get_class_progression(class_name)
    if progression is None:
        return 1
    return progression.get_attacks_per_action(level)


def features_at_level(class_name: str, level: int) -> list[ClassFeature]:
    progression = get_class_progression(class_name)
    if progression is None:
        return []
    return progression.get_features_at_level(level)


def caster_type(class_name: str, subclass: Optional[str] = None) -> CasterType:
    """
    Returns how a class (and subclass) contributes to spellcasting.

    Fighters and rogues only cast through the Eldritch Knight and Arcane
    Trickster subclasses.

    Args:
        class_name (str): The class name.
        subclass (Optional[str]): The subclass name, if any.

    Returns:
        CasterType: The caster type.

    """
    progression = get_class_progression(class_name)
    if progression is not None and progression.caster_type != CasterType.NONE:
        return progression.caster_type
    if subclass and subclass.strip().lower() in THIRD_CASTER_SUBCLASSES:
        return CasterType.THIRD
    return CasterType.NONE


def _slots_from_row(row: tuple[int, ...]) -> dict[int, int]:
    return {index + 1: count for index, count in enumerate(row) if count > 0}


def class_spell_slots(
    class_name: str, level: int, subclass: Optional[str] = None
) -> dict[int, int]:
    """
    Spell slots of a single-class caster at a class level.

    Args:
        class_name (str): The class name.
        level (int): The class level.
        subclass (Optional[str]): The subclass name, if any.

    Returns:
        dict[int, int]: Spell level to number of slots.

    """
    level = max(1, min(20, level))
    kind = caster_type(class_name, subclass)
    if kind == CasterType.FULL:
        return _slots_from_row(FULL_CASTER_SLOTS[level])
    if kind == CasterType.HALF:
        return _slots_from_row(HALF_CASTER_SLOTS[level])
    if kind == CasterType.THIRD:
        return _slots_from_row(THIRD_CASTER_SLOTS[level])
    return {}


def multiclass_spell_slots(class_levels: Iterable["ClassLevel"]) -> dict[int, int]:
    """
    Spell slots of a build, combining casters by multiclass caster level.

    A single casting class uses its own table. Several casting classes add
    full levels, half their half-caster levels and a third of their
    third-caster levels (each rounded down) and read the full-caster table.

    Args:
        class_levels (Iterable[ClassLevel]): The build's class levels.

    Returns:
        dict[int, int]: Spell level to number of slots.

    """
    casters = [
        (entry, caster_type(entry.class_name, entry.subclass))
        for entry in class_levels
    ]
    casters = [(entry, kind) for entry, kind in casters if kind != CasterType.NONE]
    if not casters:
        return {}
    if len(casters) == 1:
        entry, _ = casters[0]
        return class_spell_slots(entry.class_name, entry.level, entry.subclass)
    caster_level = 0
    for entry, kind in casters:
        if kind == CasterType.FULL:
            caster_level += entry.level
        elif kind == CasterType.HALF:
            caster_level += entry.level // 2
        else:
            caster_level += entry.level // 3
    if caster_level <= 0:
        return {}
    return _slots_from_row(FULL_CASTER_SLOTS[min(20, caster_level)])


# ============================================================================
# CLASS RESOURCES AND SCALING FEATURES
# ============================================================================


def action_surge_uses(fighter_level: int) -> int:
    if fighter_level >= 17:
        return 2
    if fighter_level >= 2:
        return 1
    return 0


def rage_uses(barbarian_level: int) -> int:
    if barbarian_level <= 0:
        return 0
    if barbarian_level >= 17:
        return 6
    if barbarian_level >= 12:
        return 5
    if barbarian_level >= 6:
        return 4
    if barbarian_level >= 3:
        return 3
    return 2


def rage_damage_bonus(barbarian_level: int) -> int:
    if barbarian_level >= 16:
        return 4
    if barbarian_level >= 9:
        return 3
    if barbarian_level >= 1:
        return 2
    return 0


def brutal_critical_dice(barbarian_level: int) -> int:
    if barbarian_level >= 17:
        return 3
    if barbarian_level >= 13:
        return 2
    if barbarian_level >= 9:
        return 1
    return 0


def sneak_attack_dice(rogue_level: int) -> int:
    if rogue_level <= 0:
        return 0
    return math.ceil(rogue_level / 2)


def superiority_die(fighter_level: int) -> int:
    if fighter_level >= 18:
        return 12
    if fighter_level >= 10:
        return 10
    return 8


def class_resources(class_levels: Iterable["ClassLevel"]) -> dict[str, int]:
    """
    Starting class resources of a build.

    Args:
        class_levels (Iterable[ClassLevel]): The build's class levels.

    Returns:
        dict[str, int]: Resource name to available uses.

    """
    resources: dict[str, int] = {}
    for entry in class_levels:
        name = entry.class_name.strip().lower()
        if name == "fighter" and action_surge_uses(entry.level):
            resources["action_surge"] = action_surge_uses(entry.level)
        elif name == "barbarian":
            resources["rage"] = rage_uses(entry.level)
    return resources


# Resources restored by a short rest; everything is restored by a long rest.
SHORT_REST_RESOURCES = frozenset({"action_surge"})
