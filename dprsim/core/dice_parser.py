"""
Dice parser module for the simulator.

Evaluates compact dice notation ("2d6+3", "1d8+1d6+2", "3*(1d4+1)") against
a seeded generator, and computes closed-form properties (expected, minimum
and maximum value) of the same expressions without sampling.

Rolling never raises: an expression that cannot be parsed evaluates to 0 and
a warning is logged. `parse_dice_expression` is the strict counterpart used
where silently degrading would hide a configuration error.
"""

import re
from functools import lru_cache
from typing import Any

from catchery import log_warning
from pydantic import BaseModel, ConfigDict, Field

from dprsim.core.constants import (
    D20,
    MAX_DICE_COUNT,
    MAX_DICE_SIDES,
    AdvantageState,
    DamageType,
)
from dprsim.core.rng import SeededRandom

# A single dice term of the form NdS[+B][-B].
DICE_PATTERN = re.compile(r"^(\d*)[dD](\d+)(?:\+(\d+))?(?:-(\d+))?$")
# A scaled composite of the form k*(expr).
COMPOSITE_PATTERN = re.compile(r"^(\d+)\*\((.+)\)$")
# A signed sum of dice and numeric terms.
SUM_PATTERN = re.compile(r"^[+-]?(?:\d*[dD]\d+|\d+)(?:[+-](?:\d*[dD]\d+|\d+))*$")
TERM_PATTERN = re.compile(r"([+-]?)(?:(\d*)[dD](\d+)|(\d+))")

# (sign, count, sides); sides == 0 marks a flat number stored in count.
Term = tuple[int, int, int]


class ParsedDice(BaseModel):
    """A single dice term with its flat modifier and damage type."""

    model_config = ConfigDict(frozen=True)

    count: int = Field(description="Number of dice rolled")
    sides: int = Field(description="Number of faces per die, 0 for a flat value")
    bonus: int = Field(default=0, description="Flat modifier added to the roll")
    damage_type: DamageType = Field(
        default=DamageType.UNTYPED,
        description="Type of damage the expression deals",
    )

    def model_post_init(self, _: Any) -> None:
        """Validates fields after model initialization."""
        if self.count < 0 or self.count > MAX_DICE_COUNT:
            raise ValueError(f"count must be in [0, {MAX_DICE_COUNT}]")
        if self.sides < 0 or self.sides > MAX_DICE_SIDES:
            raise ValueError(f"sides must be in [0, {MAX_DICE_SIDES}]")

    @property
    def average(self) -> float:
        return self.count * (self.sides + 1) / 2 + self.bonus

    def __str__(self) -> str:
        if self.sides == 0:
            return str(self.bonus)
        expr = f"{self.count}d{self.sides}"
        if self.bonus > 0:
            expr += f"+{self.bonus}"
        elif self.bonus < 0:
            expr += f"{self.bonus}"
        return expr


def _normalize(expr: str) -> str:
    return re.sub(r"\s+", "", expr or "")


@lru_cache(maxsize=1024)
def _parse(expr: str) -> tuple[int, tuple[Term, ...]]:
    """
    Splits an expression into a scale factor and a tuple of signed terms.

    Args:
        expr (str): A whitespace-free dice expression.

    Returns:
        tuple[int, tuple[Term, ...]]: The composite scale (1 when absent) and
        the terms of the inner expression.

    Raises:
        ValueError: If the expression is malformed or exceeds the dice limits.

    """
    if not expr:
        raise ValueError("empty dice expression")
    scale = 1
    composite = COMPOSITE_PATTERN.match(expr)
    if composite:
        scale = int(composite.group(1))
        expr = composite.group(2)
    if not SUM_PATTERN.match(expr):
        raise ValueError(f"unrecognized dice expression '{expr}'")
    terms: list[Term] = []
    for sign, count, sides, number in TERM_PATTERN.findall(expr):
        factor = -1 if sign == "-" else 1
        if number:
            terms.append((factor, int(number), 0))
            continue
        n = int(count) if count else 1
        s = int(sides)
        if n > MAX_DICE_COUNT or s > MAX_DICE_SIDES or s < 1:
            raise ValueError(
                f"dice term {n}d{s} exceeds limits "
                f"({MAX_DICE_COUNT} dice, {MAX_DICE_SIDES} sides)"
            )
        terms.append((factor, n, s))
    return scale, tuple(terms)


def _try_parse(expr: str) -> tuple[int, tuple[Term, ...]] | None:
    try:
        return _parse(_normalize(expr))
    except ValueError as e:
        log_warning(
            f"Invalid dice expression, evaluating to 0: {e}",
            {"expression": expr},
        )
        return None


def parse_dice_expression(
    expr: str, damage_type: DamageType = DamageType.UNTYPED
) -> ParsedDice:
    """
    Parses a single `NdS[+B][-B]` term or a bare number.

    Args:
        expr (str): The expression to parse.
        damage_type (DamageType): The damage type attached to the result.

    Returns:
        ParsedDice: The parsed term.

    Raises:
        ValueError: If the expression is not a single dice term.

    """
    clean = _normalize(expr)
    if clean.lstrip("-").isdigit():
        return ParsedDice(count=0, sides=0, bonus=int(clean), damage_type=damage_type)
    match = DICE_PATTERN.match(clean)
    if not match:
        raise ValueError(f"Invalid dice expression: '{expr}'")
    count = int(match.group(1)) if match.group(1) else 1
    bonus = int(match.group(3) or 0) - int(match.group(4) or 0)
    return ParsedDice(
        count=count,
        sides=int(match.group(2)),
        bonus=bonus,
        damage_type=damage_type,
    )


def expected_value(expr: str) -> float:
    """
    Computes the closed-form expected value of an expression.

    Args:
        expr (str): The dice expression.

    Returns:
        float: The expected value, 0.0 for an unparseable expression.

    """
    parsed = _try_parse(expr)
    if parsed is None:
        return 0.0
    scale, terms = parsed
    total = 0.0
    for sign, count, sides in terms:
        total += sign * (count if sides == 0 else count * (sides + 1) / 2)
    return scale * total


def min_value(expr: str) -> int:
    """Returns the lowest value an expression can roll."""
    parsed = _try_parse(expr)
    if parsed is None:
        return 0
    scale, terms = parsed
    total = 0
    for sign, count, sides in terms:
        if sides == 0:
            total += sign * count
        else:
            total += count if sign > 0 else -count * sides
    return scale * total


def max_value(expr: str) -> int:
    """Returns the highest value an expression can roll."""
    parsed = _try_parse(expr)
    if parsed is None:
        return 0
    scale, terms = parsed
    total = 0
    for sign, count, sides in terms:
        if sides == 0:
            total += sign * count
        else:
            total += count * sides if sign > 0 else -count
    return scale * total


def positive_dice_terms(expr: str) -> list[ParsedDice]:
    """
    Lists the added dice terms of an expression, scaled composites included.

    Flat numbers and subtracted dice are left out, and a scaled composite
    repeats its terms: "2*(1d4+1-1d6)" gives two 1d4 terms.

    Args:
        expr (str): The dice expression.

    Returns:
        list[ParsedDice]: One term per added dice group, empty when unparseable.

    """
    parsed = _try_parse(expr)
    if parsed is None:
        return []
    scale, terms = parsed
    return [
        ParsedDice(count=count, sides=sides)
        for _ in range(scale)
        for sign, count, sides in terms
        if sides and sign > 0
    ]


def _format_terms(terms: tuple[Term, ...]) -> str:
    parts: list[str] = []
    for sign, count, sides in terms:
        body = str(count) if sides == 0 else f"{count}d{sides}"
        if sign < 0:
            parts.append(f"-{body}")
        elif parts:
            parts.append(f"+{body}")
        else:
            parts.append(body)
    return "".join(parts) or "0"


def double_dice(expr: str) -> str:
    """
    Doubles the dice of an expression for a critical hit.

    Flat modifiers are left untouched: "2d6+3" becomes "4d6+3".

    Args:
        expr (str): The dice expression.

    Returns:
        str: The doubled expression, or the input unchanged when unparseable.

    """
    parsed = _try_parse(expr)
    if parsed is None:
        return expr
    scale, terms = parsed
    doubled = tuple(
        (sign, count * 2 if sides else count, sides) for sign, count, sides in terms
    )
    inner = _format_terms(doubled)
    return inner if scale == 1 else f"{scale}*({inner})"


class DiceRoller:
    """Evaluates dice expressions against a seeded generator."""

    def __init__(self, rng: SeededRandom) -> None:
        self.rng = rng

    def roll(self, expr: str) -> int:
        """
        Rolls an expression.

        Args:
            expr (str): The dice expression.

        Returns:
            int: The rolled total, 0 when the expression cannot be parsed.

        """
        parsed = _try_parse(expr)
        if parsed is None:
            return 0
        scale, terms = parsed
        return scale * self._roll_terms(terms)

    def roll_d20(
        self, state: AdvantageState = AdvantageState.NORMAL, reroll_ones: bool = False
    ) -> int:
        """
        Rolls a natural d20 under an advantage state.

        Args:
            state (AdvantageState): How the d20 is rolled.
            reroll_ones (bool): Reroll a natural 1 once (Halfling Luck).

        Returns:
            int: The kept natural roll.

        """
        if state == AdvantageState.ADVANTAGE:
            natural = self.rng.roll_advantage()
        elif state == AdvantageState.DISADVANTAGE:
            natural = self.rng.roll_disadvantage()
        elif state == AdvantageState.ELVEN_ACCURACY:
            natural = self.rng.roll_elven_accuracy()
        else:
            natural = self.rng.roll_d20()
        if reroll_ones and natural == 1:
            natural = self.rng.roll_d20()
        return natural

    def roll_with_advantage(self, expr: str, state: AdvantageState) -> int:
        """
        Rolls an expression whose d20 is rolled under an advantage state.

        The first positive `1d20` term is replaced, every other term is
        rolled normally so flat bonuses and penalties are preserved.

        Args:
            expr (str): The dice expression, e.g. "1d20+5".
            state (AdvantageState): How the d20 is rolled.

        Returns:
            int: The rolled total.

        """
        parsed = _try_parse(expr)
        if parsed is None:
            return 0
        scale, terms = parsed
        for index, (sign, count, sides) in enumerate(terms):
            if sign > 0 and count == 1 and sides == D20:
                rest = terms[:index] + terms[index + 1 :]
                return scale * (self.roll_d20(state) + self._roll_terms(rest))
        return scale * self._roll_terms(terms)

    def roll_damage_with_rerolls(
        self, expr: str, reroll_ones: bool = False, reroll_twos: bool = False
    ) -> int:
        """
        Rolls damage, rerolling low faces once.

        A die showing 1 (with `reroll_ones`) or 1-2 (with `reroll_twos`) is
        rolled again and the second result stands.

        Args:
            expr (str): The dice expression.
            reroll_ones (bool): Reroll ones.
            reroll_twos (bool): Reroll ones and twos.

        Returns:
            int: The rolled total.

        """
        parsed = _try_parse(expr)
        if parsed is None:
            return 0
        scale, terms = parsed
        total = 0
        for sign, count, sides in terms:
            if sides == 0:
                total += sign * count
                continue
            for _ in range(count):
                value = self.rng.roll_die(sides)
                if (reroll_ones and value == 1) or (reroll_twos and value <= 2):
                    value = self.rng.roll_die(sides)
                total += sign * value
        return scale * total

    def roll_damage_with_minimum(self, expr: str, minimum: int) -> int:
        """
        Rolls damage where every added die counts at least `minimum`.

        Subtracted dice and flat numbers are rolled normally.

        Args:
            expr (str): The dice expression.
            minimum (int): The lowest value a die can count as.

        Returns:
            int: The rolled total.

        """
        parsed = _try_parse(expr)
        if parsed is None:
            return 0
        scale, terms = parsed
        total = 0
        for sign, count, sides in terms:
            if sides == 0:
                total += sign * count
            elif sign < 0:
                total -= self.rng.roll_dice(count, sides)
            else:
                total += sum(
                    max(minimum, self.rng.roll_die(sides)) for _ in range(count)
                )
        return scale * total

    def _roll_terms(self, terms: tuple[Term, ...]) -> int:
        total = 0
        for sign, count, sides in terms:
            if sides == 0:
                total += sign * count
            else:
                total += sign * self.rng.roll_dice(count, sides)
        return total
