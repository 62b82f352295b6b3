"""
Character module for the simulator.

This module contains the build and target models and the class progression
tables (hit dice, attacks, features, spell slots and class resources).
"""

from .build import (
    Abilities,
    Build,
    ClassLevel,
    Equipment,
    Policies,
    SpellProfile,
    Target,
    Weapon,
)
from .progression import (
    ClassFeature,
    ClassProgression,
    class_resources,
    get_class_progression,
    multiclass_spell_slots,
    proficiency_bonus,
)

__all__ = [
    "Abilities",
    "Build",
    "ClassLevel",
    "Equipment",
    "Policies",
    "SpellProfile",
    "Target",
    "Weapon",
    "ClassFeature",
    "ClassProgression",
    "class_resources",
    "get_class_progression",
    "multiclass_spell_slots",
    "proficiency_bonus",
]
