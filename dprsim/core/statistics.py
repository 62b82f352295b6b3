"""
Descriptive and inferential statistics over simulation samples.

Every function tolerates empty input and returns neutral zero values
instead of raising.
"""

import math
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PERCENTILES: tuple[float, ...] = (5, 25, 50, 75, 95)

# Two-sided Student t critical values keyed by degrees of freedom and
# confidence level. Lookups snap to the nearest tabulated df; no
# interpolation is performed, which is a known precision limitation for
# df between table rows.
T_TABLE: dict[int, dict[float, float]] = {
    1: {0.90: 6.314, 0.95: 12.706, 0.99: 63.657},
    2: {0.90: 2.920, 0.95: 4.303, 0.99: 9.925},
    3: {0.90: 2.353, 0.95: 3.182, 0.99: 5.841},
    4: {0.90: 2.132, 0.95: 2.776, 0.99: 4.604},
    5: {0.90: 2.015, 0.95: 2.571, 0.99: 4.032},
    10: {0.90: 1.812, 0.95: 2.228, 0.99: 3.169},
    20: {0.90: 1.725, 0.95: 2.086, 0.99: 2.845},
    30: {0.90: 1.697, 0.95: 2.042, 0.99: 2.750},
}

LARGE_SAMPLE_SIZE = 30

# Coefficients of Acklam's rational approximation of the normal inverse.
_A = (
    -3.969683028665376e01,
    2.209460984245205e02,
    -2.759285104469687e02,
    1.383577518672690e02,
    -3.066479806614716e01,
    2.506628277459239e00,
)
_B = (
    -5.447609879822406e01,
    1.615858368580409e02,
    -1.556989798598866e02,
    6.680131188771972e01,
    -1.328068155288572e01,
)
_C = (
    -7.784894002430293e-03,
    -3.223964580411365e-01,
    -2.400758277161838e00,
    -2.549732539343734e00,
    4.374664141464968e00,
    2.938163982698783e00,
)
_D = (
    7.784695709041462e-03,
    3.224671290700398e-01,
    2.445134137142996e00,
    3.754408661907416e00,
)
_P_LOW = 0.02425
_P_HIGH = 1 - _P_LOW


class ConfidenceInterval(BaseModel):
    """A symmetric confidence interval around a sample mean."""

    model_config = ConfigDict(frozen=True)

    lower: float = Field(default=0.0, description="Lower bound of the interval")
    upper: float = Field(default=0.0, description="Upper bound of the interval")
    margin: float = Field(default=0.0, description="Half-width of the interval")
    confidence: float = Field(default=0.95, description="Confidence level")


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def standard_deviation(values: Sequence[float]) -> float:
    """
    Computes the sample standard deviation (N - 1 denominator).

    Args:
        values (Sequence[float]): The sample.

    Returns:
        float: The standard deviation, 0.0 when fewer than two values.

    """
    n = len(values)
    if n <= 1:
        return 0.0
    avg = mean(values)
    variance = sum((v - avg) ** 2 for v in values) / (n - 1)
    return math.sqrt(variance)


def percentiles(
    values: Sequence[float], ps: Iterable[float] = DEFAULT_PERCENTILES
) -> dict[float, float]:
    """
    Computes percentiles by linear interpolation between order statistics.

    The p-th percentile sits at index p/100 * (N - 1) of the sorted sample.

    Args:
        values (Sequence[float]): The sample.
        ps (Iterable[float]): Requested percentiles in [0, 100].

    Returns:
        dict[float, float]: Percentile to value, every value 0.0 when the
        sample is empty.

    """
    requested = list(ps)
    if not values:
        return {p: 0.0 for p in requested}
    ordered = sorted(values)
    last = len(ordered) - 1
    result: dict[float, float] = {}
    for p in requested:
        index = min(max(p, 0), 100) / 100 * last
        lower = math.floor(index)
        upper = math.ceil(index)
        if lower == upper:
            result[p] = float(ordered[lower])
        else:
            weight = index - lower
            result[p] = ordered[lower] * (1 - weight) + ordered[upper] * weight
    return result


def median(values: Sequence[float]) -> float:
    return percentiles(values, [50])[50]


def normal_inverse(p: float) -> float:
    """
    Inverse of the standard normal CDF.

    Uses Acklam's rational approximation, with a relative error around 1e-9
    over the open interval (0, 1).

    Args:
        p (float): A probability.

    Returns:
        float: The quantile, infinite at the closed bounds.

    """
    if p <= 0:
        return -math.inf
    if p >= 1:
        return math.inf
    if p < _P_LOW:
        q = math.sqrt(-2 * math.log(p))
        return (
            ((((_C[0] * q + _C[1]) * q + _C[2]) * q + _C[3]) * q + _C[4]) * q + _C[5]
        ) / ((((_D[0] * q + _D[1]) * q + _D[2]) * q + _D[3]) * q + 1)
    if p > _P_HIGH:
        q = math.sqrt(-2 * math.log(1 - p))
        return -(
            ((((_C[0] * q + _C[1]) * q + _C[2]) * q + _C[3]) * q + _C[4]) * q + _C[5]
        ) / ((((_D[0] * q + _D[1]) * q + _D[2]) * q + _D[3]) * q + 1)
    q = p - 0.5
    r = q * q
    return (
        (((((_A[0] * r + _A[1]) * r + _A[2]) * r + _A[3]) * r + _A[4]) * r + _A[5]) * q
    ) / (((((_B[0] * r + _B[1]) * r + _B[2]) * r + _B[3]) * r + _B[4]) * r + 1)


def t_critical_value(df: int, confidence: float = 0.95) -> float:
    """
    Two-sided t critical value for the given degrees of freedom.

    Args:
        df (int): Degrees of freedom.
        confidence (float): Confidence level.

    Returns:
        float: The critical value from the nearest tabulated df, or the
        normal approximation for df >= 30 or an untabulated confidence.

    """
    normal = normal_inverse((1 + confidence) / 2)
    if df >= LARGE_SAMPLE_SIZE:
        return normal
    nearest = min(T_TABLE, key=lambda tabulated: (abs(tabulated - df), tabulated))
    row = T_TABLE[nearest]
    for level, value in row.items():
        if math.isclose(level, confidence):
            return value
    return normal


def confidence_interval(
    values: Sequence[float], confidence: float = 0.95
) -> ConfidenceInterval:
    """
    Computes mean +/- critical value * standard error.

    Args:
        values (Sequence[float]): The sample.
        confidence (float): Confidence level.

    Returns:
        ConfidenceInterval: The interval, all zeros for an empty sample.

    """
    n = len(values)
    if n == 0:
        return ConfidenceInterval(confidence=confidence)
    avg = mean(values)
    if n == 1:
        return ConfidenceInterval(lower=avg, upper=avg, confidence=confidence)
    standard_error = standard_deviation(values) / math.sqrt(n)
    if n >= LARGE_SAMPLE_SIZE:
        critical = normal_inverse((1 + confidence) / 2)
    else:
        critical = t_critical_value(n - 1, confidence)
    margin = critical * standard_error
    return ConfidenceInterval(
        lower=avg - margin,
        upper=avg + margin,
        margin=margin,
        confidence=confidence,
    )
