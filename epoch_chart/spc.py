"""
Individuals Chart Statistics
============================
Control statistics for an individuals and moving range (n=1) chart.

An Epoch is one regime of control statistics: center line, moving range
average, control limits, warning boundaries and the moving range limit.
The baseline Epoch is computed from the first 8 measurements; later Epochs
come from the re-baseline rules in rules.py.

Formulas:
    dpa   = mean(values)
    mra   = mean(moving ranges)
    lcl   = dpa - (3 / d2) * mra
    ucl   = dpa + (3 / d2) * mra
    mrucl = D4 * mra
    dla   = (lcl + dpa) / 2
    dua   = (dpa + ucl) / 2

Rounding:
    Moving ranges and Epoch fields are rounded to 2 decimals (half away from
    zero) when they are created, and later rows compare against the rounded
    values. Pass precision=None to keep full floating-point precision.
"""

import math
from dataclasses import dataclass, field, asdict, replace
from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Dict, Any, Optional, List, Sequence

import numpy as np

from .errors import InsufficientDataError, MalformedMeasurementError


# =============================================================================
# CONTROL CONSTANTS
# =============================================================================

# Moving range of 2 consecutive points
D2 = 1.128
D4 = 3.27
SIGMA_MULTIPLIER = 3

BASELINE_SIZE = 8
BASELINE_FIRST_ROW = 2
DEFAULT_DECIMALS = 2


class RuleLabel(Enum):
    """Label of the rule that produced an Epoch."""
    BASELINE = "Baseline"
    RULE_2 = "Rule 2"
    RULE_3 = "Rule 3"


# =============================================================================
# ROUNDING AND MOVING RANGE
# =============================================================================

def round_half_away(value: float, decimals: int = DEFAULT_DECIMALS) -> float:
    """
    Round to a fixed number of decimals, ties away from zero.

    Works on the shortest decimal representation of the float, so 1.005
    rounds to 1.01 rather than the 1.0 that binary rounding gives.
    """
    quantum = Decimal(1).scaleb(-decimals)
    d = Decimal(repr(float(value)))
    with localcontext() as ctx:
        # quantize needs every integer digit plus the kept decimals
        ctx.prec = max(ctx.prec, d.adjusted() + decimals + 2)
        return float(d.quantize(quantum, rounding=ROUND_HALF_UP))


def moving_range(
    prev_value: float,
    curr_value: float,
    precision: Optional[int] = DEFAULT_DECIMALS,
) -> float:
    """Absolute difference between consecutive measurements."""
    mr = abs(float(curr_value) - float(prev_value))
    if precision is None:
        return mr
    return round_half_away(mr, precision)


def is_blank(value: Any) -> bool:
    """True for an empty cell (None, empty string or NaN)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    return False


def to_measurement(value: Any, row: int) -> float:
    """
    Coerce a raw cell value into a measurement.

    Raises:
        MalformedMeasurementError: If the cell is empty, boolean, non-numeric
            or not finite.
    """
    if is_blank(value):
        raise MalformedMeasurementError(f"Row {row}: measurement is empty", row=row)
    if isinstance(value, (bool, np.bool_)):
        raise MalformedMeasurementError(
            f"Row {row}: measurement is not numeric ({value!r})", row=row
        )
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedMeasurementError(
            f"Row {row}: measurement is not numeric ({value!r})", row=row
        ) from None
    if not math.isfinite(number):
        raise MalformedMeasurementError(
            f"Row {row}: measurement is not finite ({value!r})", row=row
        )
    return number


# =============================================================================
# EPOCH
# =============================================================================

@dataclass(frozen=True)
class Epoch:
    """One regime of control statistics."""
    dpa: float    # Data point average (center line)
    mra: float    # Moving range average
    lcl: float    # Lower control limit
    dla: float    # Lower warning boundary
    dua: float    # Upper warning boundary
    ucl: float    # Upper control limit
    mrucl: float  # Moving range upper control limit
    label: RuleLabel = RuleLabel.BASELINE

    NUMERIC_FIELDS = ('dpa', 'mra', 'lcl', 'dla', 'dua', 'ucl', 'mrucl')

    def rounded(self, decimals: int = DEFAULT_DECIMALS) -> 'Epoch':
        """Copy with every numeric field rounded half away from zero."""
        return replace(self, **{
            name: round_half_away(getattr(self, name), decimals)
            for name in self.NUMERIC_FIELDS
        })

    def numeric_values(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in self.NUMERIC_FIELDS}

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['label'] = self.label.value
        return result


def compute_epoch(
    values: Sequence[float],
    moving_ranges: Sequence[float],
    label: RuleLabel,
    precision: Optional[int] = DEFAULT_DECIMALS,
) -> Epoch:
    """
    Compute an Epoch from a window of measurements and its moving ranges.

    Args:
        values: Measurements in the governing window
        moving_ranges: Moving ranges associated with the window
        label: Rule that produced the Epoch
        precision: Decimals to round every field to, or None for full precision

    Returns:
        Epoch with all control statistics
    """
    if len(values) == 0 or len(moving_ranges) == 0:
        raise ValueError("Need at least one value and one moving range for an epoch")

    dpa = float(np.mean(np.asarray(values, dtype=float)))
    mra = float(np.mean(np.asarray(moving_ranges, dtype=float)))

    half_width = (SIGMA_MULTIPLIER / D2) * mra
    lcl = dpa - half_width
    ucl = dpa + half_width

    epoch = Epoch(
        dpa=dpa,
        mra=mra,
        lcl=lcl,
        dla=(lcl + dpa) / 2,
        dua=(dpa + ucl) / 2,
        ucl=ucl,
        mrucl=D4 * mra,
        label=label,
    )

    if precision is not None:
        epoch = epoch.rounded(precision)

    return epoch


# =============================================================================
# BASELINE
# =============================================================================

@dataclass
class BaselineResult:
    """Baseline Epoch and the window it was computed from."""
    epoch: Epoch
    measurements: List[float]
    # One entry per baseline row; the first row has no moving range
    moving_ranges: List[Optional[float]] = field(default_factory=list)
    first_row: int = BASELINE_FIRST_ROW

    @property
    def last_row(self) -> int:
        return self.first_row + len(self.measurements) - 1

    @property
    def rows(self) -> range:
        return range(self.first_row, self.last_row + 1)


def calculate_baseline(
    values: Sequence[Any],
    first_row: int = BASELINE_FIRST_ROW,
    precision: Optional[int] = DEFAULT_DECIMALS,
) -> BaselineResult:
    """
    Calculate the baseline Epoch from the first 8 measurements.

    Args:
        values: Raw cell values starting at the first data row; only the
            first 8 are used
        first_row: Store row of the first value
        precision: Decimals for moving ranges and Epoch fields, or None

    Returns:
        BaselineResult with the "Baseline" Epoch and 7 moving ranges

    Raises:
        InsufficientDataError: If fewer than 8 non-empty values are present
        MalformedMeasurementError: If a baseline value is not numeric
    """
    window = list(values[:BASELINE_SIZE])
    n_populated = sum(1 for v in window if not is_blank(v))

    if n_populated < BASELINE_SIZE:
        raise InsufficientDataError(
            f"Need {BASELINE_SIZE} measurements in rows {first_row}-"
            f"{first_row + BASELINE_SIZE - 1} for a baseline, got {n_populated}"
        )

    measurements = [to_measurement(v, first_row + i) for i, v in enumerate(window)]

    moving_ranges: List[Optional[float]] = [None]
    for prev_value, curr_value in zip(measurements[:-1], measurements[1:]):
        moving_ranges.append(moving_range(prev_value, curr_value, precision))

    epoch = compute_epoch(
        measurements,
        moving_ranges[1:],
        RuleLabel.BASELINE,
        precision=precision,
    )

    return BaselineResult(
        epoch=epoch,
        measurements=measurements,
        moving_ranges=moving_ranges,
        first_row=first_row,
    )
