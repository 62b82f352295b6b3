"""
Constants and enumerations for the simulator.

Defines global tunables (generator parameters, search bounds, default
iteration counts) and the enumerations shared by the probability library,
the Monte Carlo engine and the analyzers: advantage states, damage types,
action kinds, rest cadence and environmental descriptors.
"""

from enum import Enum

# Linear congruential generator parameters (Numerical Recipes).
LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2**32

# Dice limits accepted by the expression evaluator.
MAX_DICE_COUNT = 100
MAX_DICE_SIDES = 1000

# Combat defaults.
D20 = 20
DEFAULT_CRIT_RANGE = 20
DEFAULT_MOVEMENT = 30
MIN_HIT_PROBABILITY = 0.05
MAX_HIT_PROBABILITY = 0.95

# Monte Carlo defaults.
DEFAULT_ITERATIONS = 10_000
PROGRESS_INTERVAL = 100
DECISION_LOG_CAPACITY = 1_000

# Power attack (Great Weapon Master / Sharpshooter) trade.
POWER_ATTACK_PENALTY = -5
POWER_ATTACK_DAMAGE = 10
DEFAULT_POWER_ATTACK_THRESHOLD = 0.5
BREAK_EVEN_MIN_AC = 5.0
BREAK_EVEN_MAX_AC = 30.0
BREAK_EVEN_MAX_ITERATIONS = 50
BREAK_EVEN_TOLERANCE = 1e-6

# Level progression.
MIN_LEVEL = 1
MAX_LEVEL = 20
DEFAULT_TARGET_AC = 15


class NiceEnum(Enum):
    """An enumeration that provides a nicer string representation."""

    def __str__(self) -> str:
        return self.name

    @property
    def display_name(self) -> str:
        return self.name.replace("_", " ").lower().capitalize()


class AdvantageState(NiceEnum):
    """Defines how a d20 is rolled for an attack."""

    NORMAL = "NORMAL"
    ADVANTAGE = "ADVANTAGE"
    DISADVANTAGE = "DISADVANTAGE"
    ELVEN_ACCURACY = "ELVEN_ACCURACY"


class DamageType(NiceEnum):
    """Defines various types of damage that can be inflicted."""

    PIERCING = "PIERCING"
    SLASHING = "SLASHING"
    BLUDGEONING = "BLUDGEONING"
    FIRE = "FIRE"
    COLD = "COLD"
    LIGHTNING = "LIGHTNING"
    THUNDER = "THUNDER"
    POISON = "POISON"
    NECROTIC = "NECROTIC"
    RADIANT = "RADIANT"
    PSYCHIC = "PSYCHIC"
    FORCE = "FORCE"
    ACID = "ACID"
    UNTYPED = "UNTYPED"


class DamageSourceKind(NiceEnum):
    """Defines where a damage term comes from."""

    WEAPON = "WEAPON"
    SPELL = "SPELL"
    FEAT = "FEAT"
    FEATURE = "FEATURE"


class RerollMechanic(NiceEnum):
    """Defines the damage reroll rule applied to a damage term."""

    NONE = "NONE"
    GREAT_WEAPON_FIGHTING = "GREAT_WEAPON_FIGHTING"
    ELEMENTAL_ADEPT = "ELEMENTAL_ADEPT"


class ActionKind(NiceEnum):
    """Defines the closed set of action variants a turn can resolve."""

    ATTACK = "ATTACK"
    SPELL = "SPELL"
    ITEM = "ITEM"
    MOVEMENT = "MOVEMENT"
    SPECIAL = "SPECIAL"


# Tie-break order when two actions score the same.
ACTION_PRIORITY: tuple[ActionKind, ...] = (
    ActionKind.ATTACK,
    ActionKind.SPELL,
    ActionKind.ITEM,
    ActionKind.MOVEMENT,
    ActionKind.SPECIAL,
)


class SmitePolicy(NiceEnum):
    """Defines when resource-spending smite damage is added to a hit."""

    NEVER = "NEVER"
    ON_CRIT = "ON_CRIT"
    OPTIMAL = "OPTIMAL"
    ALWAYS = "ALWAYS"


class RestType(NiceEnum):
    """Defines the rest cadence between encounters."""

    NONE = "NONE"
    SHORT = "SHORT"
    LONG = "LONG"
    MIXED = "MIXED"


class Lighting(NiceEnum):
    BRIGHT = "BRIGHT"
    DIM = "DIM"
    DARKNESS = "DARKNESS"


class Terrain(NiceEnum):
    NORMAL = "NORMAL"
    DIFFICULT = "DIFFICULT"
    HAZARDOUS = "HAZARDOUS"


class Cover(NiceEnum):
    NONE = "NONE"
    PARTIAL = "PARTIAL"
    HEAVY = "HEAVY"


class CasterType(NiceEnum):
    """Defines how a class contributes to multiclass spellcasting."""

    NONE = "NONE"
    FULL = "FULL"
    HALF = "HALF"
    THIRD = "THIRD"


# Conditions on the attacker that change the attack roll.
ADVANTAGE_CONDITIONS = frozenset({"invisible", "hidden"})
DISADVANTAGE_CONDITIONS = frozenset(
    {"blinded", "poisoned", "prone", "restrained", "frightened"}
)
UNCONSCIOUS = "unconscious"
# Conditions on the target that grant advantage to attackers.
TARGET_ADVANTAGE_CONDITIONS = frozenset(
    {"blinded", "paralyzed", "restrained", "stunned", "unconscious"}
)

# Feats, traits and fighting styles recognised by name (case-insensitive).
FEAT_GREAT_WEAPON_MASTER = "great weapon master"
FEAT_SHARPSHOOTER = "sharpshooter"
FEAT_POLEARM_MASTER = "polearm master"
FEAT_ELVEN_ACCURACY = "elven accuracy"
FEAT_ELEMENTAL_ADEPT = "elemental adept"
TRAIT_HALFLING_LUCK = "halfling luck"
FEATURE_COLOSSUS_SLAYER = "colossus slayer"
STYLE_GREAT_WEAPON_FIGHTING = "great weapon fighting"
STYLE_DUELING = "dueling"
STYLE_ARCHERY = "archery"
STYLE_TWO_WEAPON_FIGHTING = "two-weapon fighting"
