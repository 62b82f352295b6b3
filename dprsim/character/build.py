"""
Character builds and combat targets.

These models are the input contract of the simulator: collaborators fill
them in (from forms, saved files or tests) and the engine only reads them.
Shape checks run in `model_post_init`; cross-field checks that need the
whole build live in `dprsim.core.validation`.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from dprsim.character.progression import (
    attacks_per_action,
    get_class_progression,
    hit_die_for,
    multiclass_spell_slots,
    proficiency_bonus,
)
from dprsim.core.constants import (
    DEFAULT_CRIT_RANGE,
    DEFAULT_POWER_ATTACK_THRESHOLD,
    FEAT_ELEMENTAL_ADEPT,
    STYLE_ARCHERY,
    STYLE_DUELING,
    STYLE_GREAT_WEAPON_FIGHTING,
    STYLE_TWO_WEAPON_FIGHTING,
    ActionKind,
    AdvantageState,
    DamageType,
    RerollMechanic,
    SmitePolicy,
)
from dprsim.core.dice_parser import parse_dice_expression

ABILITY_NAMES = (
    "strength",
    "dexterity",
    "constitution",
    "intelligence",
    "wisdom",
    "charisma",
)

FIGHTING_STYLE_BONUS = 2


def ability_modifier(score: int) -> int:
    return (score - 10) // 2


class Abilities(BaseModel):
    """The six ability scores."""

    strength: int = Field(default=10, description="Strength score")
    dexterity: int = Field(default=10, description="Dexterity score")
    constitution: int = Field(default=10, description="Constitution score")
    intelligence: int = Field(default=10, description="Intelligence score")
    wisdom: int = Field(default=10, description="Wisdom score")
    charisma: int = Field(default=10, description="Charisma score")

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        for name in ABILITY_NAMES:
            score = getattr(self, name)
            if not 1 <= score <= 30:
                raise ValueError(f"{name} must be between 1 and 30, got {score}")

    def modifier(self, ability: str) -> int:
        """
        Returns the modifier of an ability.

        Args:
            ability (str): The ability name, e.g. "strength".

        Returns:
            int: The ability modifier.

        """
        return ability_modifier(getattr(self, ability.lower()))


class ClassLevel(BaseModel):
    """Levels taken in one class."""

    class_name: str = Field(description="The class name, e.g. 'Fighter'")
    subclass: Optional[str] = Field(default=None, description="The subclass name")
    level: int = Field(default=1, description="Levels taken in this class")
    hit_die: Optional[int] = Field(
        default=None,
        description="Hit die override, the class table is used when omitted",
    )

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if not self.class_name or not self.class_name.strip():
            raise ValueError("class_name must be a non-empty string")
        if not 1 <= self.level <= 20:
            raise ValueError(f"level must be between 1 and 20, got {self.level}")

    @property
    def die(self) -> int:
        return self.hit_die if self.hit_die else hit_die_for(self.class_name)

    def is_class(self, name: str) -> bool:
        return self.class_name.strip().lower() == name.strip().lower()

    def has_subclass(self, name: str) -> bool:
        return bool(self.subclass) and self.subclass.strip().lower() == name.lower()


class Weapon(BaseModel):
    """A weapon wielded by a build."""

    name: str = Field(description="The weapon name")
    kind: Literal["melee", "ranged"] = Field(
        default="melee", description="Melee or ranged weapon"
    )
    damage: str = Field(default="1d8", description="Base damage dice, e.g. '2d6'")
    damage_type: DamageType = Field(
        default=DamageType.SLASHING, description="Damage type dealt"
    )
    properties: list[str] = Field(
        default_factory=list,
        description="Weapon properties: finesse, light, heavy, two-handed, ...",
    )
    to_hit_bonus: int = Field(default=0, description="Magic bonus to attack rolls")
    damage_bonus: int = Field(default=0, description="Magic bonus to damage rolls")

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        parse_dice_expression(self.damage, self.damage_type)
        self.properties = [prop.strip().lower() for prop in self.properties]

    def has_property(self, prop: str) -> bool:
        return prop.lower() in self.properties

    @property
    def is_ranged(self) -> bool:
        return self.kind == "ranged"

    @property
    def is_finesse(self) -> bool:
        return self.has_property("finesse")

    @property
    def is_heavy(self) -> bool:
        return self.has_property("heavy")

    @property
    def is_two_handed(self) -> bool:
        """True for weapons Great Weapon Fighting applies to."""
        return self.has_property("two-handed") or self.has_property("versatile")

    @property
    def die_sides(self) -> int:
        return parse_dice_expression(self.damage).sides


class SpellProfile(BaseModel):
    """
    A damaging spell, or a concentration rider that adds damage to hits.

    Cantrips (level 0) are free to cast and scale their dice with character
    level. Leveled spells spend a slot and may add upcast dice per slot level
    above their own.
    """

    name: str = Field(description="The spell name")
    level: int = Field(default=0, description="Spell level, 0 for a cantrip")
    damage: str = Field(default="", description="Damage dice on a hit or failed save")
    damage_type: DamageType = Field(
        default=DamageType.FORCE, description="Damage type dealt"
    )
    attack_roll: bool = Field(
        default=True,
        description="Resolved by a spell attack roll, otherwise by a saving throw",
    )
    half_on_save: bool = Field(
        default=False, description="A successful save still takes half damage"
    )
    upcast_dice: Optional[str] = Field(
        default=None, description="Extra dice per slot level above the spell's level"
    )
    bonus_action: bool = Field(
        default=False, description="Cast as a bonus action instead of an action"
    )
    concentration: bool = Field(default=False, description="Requires concentration")
    rider_damage: Optional[str] = Field(
        default=None,
        description="Damage added to each weapon hit while the spell is active",
    )
    rider_damage_type: DamageType = Field(
        default=DamageType.FORCE, description="Damage type of the rider damage"
    )
    duration: int = Field(default=10, description="Duration in rounds")

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if not self.name or not self.name.strip():
            raise ValueError("name must be a non-empty string")
        if not 0 <= self.level <= 9:
            raise ValueError(f"level must be between 0 and 9, got {self.level}")
        if not self.damage and not self.rider_damage:
            raise ValueError(f"spell '{self.name}' deals no damage")
        if self.rider_damage and not self.concentration:
            raise ValueError(f"rider spell '{self.name}' must require concentration")
        if self.duration < 1:
            raise ValueError("duration must be at least one round")

    @property
    def is_cantrip(self) -> bool:
        return self.level == 0

    @property
    def is_rider(self) -> bool:
        return self.rider_damage is not None and not self.damage

    def damage_at_slot(self, slot_level: int) -> str:
        """
        Returns the damage expression when cast with a given slot.

        Args:
            slot_level (int): The slot level spent.

        Returns:
            str: The damage expression including upcast dice.

        """
        extra_levels = slot_level - self.level
        if not self.damage or not self.upcast_dice or extra_levels <= 0:
            return self.damage
        upcast = parse_dice_expression(self.upcast_dice)
        parts = [self.damage]
        if upcast.sides:
            parts.append(f"{upcast.count * extra_levels}d{upcast.sides}")
        if upcast.bonus:
            parts.append(str(upcast.bonus * extra_levels))
        return "+".join(parts)

    def cantrip_damage(self, character_level: int) -> str:
        """Scales a cantrip's dice at character levels 5, 11 and 17."""
        tier = 1 + sum(1 for step in (5, 11, 17) if character_level >= step)
        if tier == 1:
            return self.damage
        try:
            parsed = parse_dice_expression(self.damage)
        except ValueError:
            return self.damage
        if not parsed.sides:
            return self.damage
        return str(parsed.model_copy(update={"count": parsed.count * tier}))


class Equipment(BaseModel):
    main_hand: Optional[Weapon] = Field(default=None, description="Main-hand weapon")
    off_hand: Optional[Weapon] = Field(default=None, description="Off-hand weapon")
    healing_potions: int = Field(default=0, description="Potions of healing carried")


class Policies(BaseModel):
    """Per-build tactical choices."""

    smite_policy: SmitePolicy = Field(
        default=SmitePolicy.NEVER, description="When smite damage is added to hits"
    )
    allow_repeat_once_per_turn: bool = Field(
        default=False,
        description="Apply once-per-turn damage to every qualifying hit",
    )
    advantage_state: AdvantageState = Field(
        default=AdvantageState.NORMAL,
        description="Baseline advantage state of attack rolls",
    )
    allowed_actions: set[ActionKind] = Field(
        default_factory=lambda: {ActionKind.ATTACK, ActionKind.SPELL},
        description="Action variants the build may choose from",
    )
    use_power_attack: bool = Field(
        default=False,
        description="Use Great Weapon Master or Sharpshooter when it pays off",
    )
    power_attack_threshold: float = Field(
        default=DEFAULT_POWER_ATTACK_THRESHOLD,
        description="Minimum expected DPR gain before power attacking",
    )
    use_action_surge: bool = Field(
        default=True, description="Spend Action Surge on the first round"
    )
    use_rage: bool = Field(default=True, description="Enter Rage on the first round")
    bonus_dice: list[str] = Field(
        default_factory=list,
        description="Signed dice added to attack rolls, e.g. '1d4' for Bless",
    )


class Build(BaseModel):
    """
    A character build: ability scores, class levels, equipment, features
    and the policies that drive its choices in combat.
    """

    name: str = Field(default="Unnamed Build", description="The build name")
    levels: list[ClassLevel] = Field(
        default_factory=list,
        description="Class levels, the first entry is the starting class",
    )
    abilities: Abilities = Field(default_factory=Abilities, description="Scores")
    equipment: Equipment = Field(default_factory=Equipment, description="Gear")
    features: list[str] = Field(
        default_factory=list, description="Feats, traits and class features by name"
    )
    fighting_styles: list[str] = Field(
        default_factory=list, description="Fighting styles by name"
    )
    spells: list[SpellProfile] = Field(
        default_factory=list, description="Damaging spells the build can cast"
    )
    conditions: list[str] = Field(
        default_factory=list, description="Conditions the build starts with"
    )
    policies: Policies = Field(default_factory=Policies, description="Tactics")
    spell_slots: Optional[dict[int, int]] = Field(
        default=None,
        description="Spell slots by level, derived from class levels when omitted",
    )
    proficiency_bonus: Optional[int] = Field(
        default=None,
        description="Proficiency bonus, derived from total level when omitted",
    )
    crit_range: Optional[int] = Field(
        default=None,
        description="Lowest natural roll that crits, derived from features when omitted",
    )

    def model_post_init(self, _: Any) -> None:
        """Normalizes names after model initialization."""
        self.conditions = [condition.strip().lower() for condition in self.conditions]

    # ------------------------------------------------------------------
    # Levels
    # ------------------------------------------------------------------

    @property
    def total_level(self) -> int:
        return sum(entry.level for entry in self.levels)

    def class_level(self, class_name: str) -> int:
        return sum(entry.level for entry in self.levels if entry.is_class(class_name))

    def has_subclass(self, subclass: str) -> bool:
        return any(entry.has_subclass(subclass) for entry in self.levels)

    @property
    def primary_class(self) -> Optional[ClassLevel]:
        """The class with the most levels, the first one on ties."""
        best: Optional[ClassLevel] = None
        for entry in self.levels:
            if best is None or entry.level > best.level:
                best = entry
        return best

    def get_proficiency_bonus(self) -> int:
        if self.proficiency_bonus is not None:
            return self.proficiency_bonus
        return proficiency_bonus(max(1, self.total_level))

    def get_attacks_per_action(self) -> int:
        attacks = 1
        for entry in self.levels:
            attacks = max(attacks, attacks_per_action(entry.class_name, entry.level))
        return attacks

    def get_spell_slots(self) -> dict[int, int]:
        if self.spell_slots is not None:
            return dict(self.spell_slots)
        return multiclass_spell_slots(self.levels)

    def get_crit_range(self) -> int:
        """
        Returns the crit range, honouring the Champion's Improved and
        Superior Critical.
        """
        if self.crit_range is not None:
            return self.crit_range
        champion = sum(
            entry.level
            for entry in self.levels
            if entry.is_class("fighter") and entry.has_subclass("champion")
        )
        if champion >= 15:
            return 18
        if champion >= 3:
            return 19
        return DEFAULT_CRIT_RANGE

    def max_hit_points(self) -> int:
        """
        Hit points at full health.

        The first level of the starting class grants its maximum hit die,
        every later level the die average (die / 2 + 1). The Constitution
        modifier is added per level, with a minimum of 1 per level.

        Returns:
            int: The maximum hit points.

        """
        con = self.abilities.modifier("constitution")
        total = 0
        first = True
        for entry in self.levels:
            for _ in range(entry.level):
                roll = entry.die if first else entry.die // 2 + 1
                total += max(1, roll + con)
                first = False
        return total

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def has_feature(self, name: str) -> bool:
        wanted = name.strip().lower()
        if any(feature.strip().lower() == wanted for feature in self.features):
            return True
        for entry in self.levels:
            progression = get_class_progression(entry.class_name)
            if progression is None:
                continue
            for feature in progression.get_features_up_to_level(entry.level):
                if feature.name.lower() == wanted:
                    return True
        return False

    def has_fighting_style(self, name: str) -> bool:
        wanted = name.strip().lower()
        return any(style.strip().lower() == wanted for style in self.fighting_styles)

    # ------------------------------------------------------------------
    # Attacks
    # ------------------------------------------------------------------

    def attack_ability_modifier(self, weapon: Optional[Weapon]) -> int:
        """
        Returns the ability modifier used by a weapon.

        Finesse weapons use the better of Strength and Dexterity, ranged
        weapons Dexterity, everything else (unarmed included) Strength.

        Args:
            weapon (Optional[Weapon]): The weapon, None for unarmed.

        Returns:
            int: The ability modifier.

        """
        strength = self.abilities.modifier("strength")
        dexterity = self.abilities.modifier("dexterity")
        if weapon is None:
            return strength
        if weapon.is_finesse:
            return max(strength, dexterity)
        if weapon.is_ranged:
            return dexterity
        return strength

    def uses_strength(self, weapon: Optional[Weapon]) -> bool:
        """True for melee attacks made with Strength."""
        if weapon is not None and weapon.is_ranged:
            return False
        strength = self.abilities.modifier("strength")
        return self.attack_ability_modifier(weapon) == strength

    def attack_bonus(self, weapon: Optional[Weapon] = None) -> int:
        bonus = self.get_proficiency_bonus() + self.attack_ability_modifier(weapon)
        if weapon is not None:
            bonus += weapon.to_hit_bonus
            if weapon.is_ranged and self.has_fighting_style(STYLE_ARCHERY):
                bonus += FIGHTING_STYLE_BONUS
        return bonus

    def damage_bonus(self, weapon: Optional[Weapon], off_hand: bool = False) -> int:
        """
        Returns the flat damage bonus of a weapon attack.

        Off-hand attacks add the ability modifier only with the Two-Weapon
        Fighting style, or when the modifier is negative. Dueling adds +2 to
        a one-handed melee weapon with nothing in the off hand.

        Args:
            weapon (Optional[Weapon]): The weapon, None for unarmed.
            off_hand (bool): Whether this is the off-hand attack.

        Returns:
            int: The flat damage bonus.

        """
        modifier = self.attack_ability_modifier(weapon)
        if off_hand and modifier > 0 and not self.has_fighting_style(
            STYLE_TWO_WEAPON_FIGHTING
        ):
            modifier = 0
        bonus = modifier
        if weapon is not None:
            bonus += weapon.damage_bonus
            if (
                not off_hand
                and not weapon.is_ranged
                and not weapon.is_two_handed
                and self.equipment.off_hand is None
                and self.has_fighting_style(STYLE_DUELING)
            ):
                bonus += FIGHTING_STYLE_BONUS
        return bonus

    def weapon_reroll(self, weapon: Optional[Weapon]) -> RerollMechanic:
        if (
            weapon is not None
            and not weapon.is_ranged
            and weapon.is_two_handed
            and self.has_fighting_style(STYLE_GREAT_WEAPON_FIGHTING)
        ):
            return RerollMechanic.GREAT_WEAPON_FIGHTING
        return RerollMechanic.NONE

    # ------------------------------------------------------------------
    # Spellcasting
    # ------------------------------------------------------------------

    def spellcasting_modifier(self) -> int:
        return max(
            self.abilities.modifier("intelligence"),
            self.abilities.modifier("wisdom"),
            self.abilities.modifier("charisma"),
        )

    def spell_reroll(self, spell: SpellProfile) -> RerollMechanic:
        """
        Returns the reroll rule of a spell's damage dice.

        Elemental Adept is taken once per damage type, e.g. the feature
        "Elemental Adept (fire)", and treats every 1 rolled on the damage
        dice of a spell of that type as a 2.

        Args:
            spell (SpellProfile): The spell cast.

        Returns:
            RerollMechanic: ELEMENTAL_ADEPT for a matching damage type.

        """
        chosen = f"{FEAT_ELEMENTAL_ADEPT} ({spell.damage_type.value})"
        if self.has_feature(chosen):
            return RerollMechanic.ELEMENTAL_ADEPT
        return RerollMechanic.NONE

    def spell_attack_bonus(self) -> int:
        return self.get_proficiency_bonus() + self.spellcasting_modifier()

    def spell_save_dc(self) -> int:
        return 8 + self.spell_attack_bonus()


class Target(BaseModel):
    """The creature the build attacks."""

    name: str = Field(default="Target", description="The target name")
    armor_class: int = Field(default=15, description="Armor class")
    hit_points: int = Field(default=100, description="Hit points")
    save_bonus: int = Field(default=2, description="Bonus to saving throws")
    resistances: set[DamageType] = Field(
        default_factory=set, description="Damage types dealt half damage"
    )
    immunities: set[DamageType] = Field(
        default_factory=set, description="Damage types dealt no damage"
    )
    vulnerabilities: set[DamageType] = Field(
        default_factory=set, description="Damage types dealt double damage"
    )
    legendary_resistances: int = Field(
        default=0, description="Failed saves turned into successes per encounter"
    )
    magic_resistance: bool = Field(
        default=False, description="Advantage on saves against spells"
    )
    conditions: list[str] = Field(
        default_factory=list, description="Conditions affecting the target"
    )

    def model_post_init(self, _: Any) -> None:
        """Normalizes names after model initialization."""
        self.conditions = [condition.strip().lower() for condition in self.conditions]

    def damage_multiplier(self, damage_type: DamageType) -> float:
        if damage_type in self.immunities:
            return 0.0
        if damage_type in self.resistances:
            return 0.5
        if damage_type in self.vulnerabilities:
            return 2.0
        return 1.0

    def modify_damage(self, amount: int, damage_type: DamageType) -> int:
        """
        Applies immunity, resistance and vulnerability to rolled damage.

        Args:
            amount (int): The rolled damage.
            damage_type (DamageType): Its type.

        Returns:
            int: 0 when immune, half rounded down when resistant, double when
            vulnerable, otherwise the amount unchanged.

        """
        if amount <= 0:
            return 0
        if damage_type in self.immunities:
            return 0
        if damage_type in self.resistances:
            return amount // 2
        if damage_type in self.vulnerabilities:
            return amount * 2
        return amount
