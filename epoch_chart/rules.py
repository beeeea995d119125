"""
Sequential Rule Evaluation
==========================
Advances an individuals chart one row at a time after the baseline.

For each row r:
- Rule 1 (signal only): value beyond the control limits AND moving range
  above the moving range limit of the previous row's Epoch.
- Rule 2 (re-baseline over 8): rows r-7..r all above or all below the
  previous center line. A new Epoch is computed over those 8 rows and
  rewritten onto all of them.
- Rule 3 (re-baseline over 4): at least 3 of rows r-3..r above the upper
  warning boundary, or at least 3 below the lower one. Only checked when
  Rule 2 did not fire. A new Epoch is computed and rewritten onto the 4 rows.
- Otherwise the row inherits the previous row's Epoch and label unchanged.

The evaluation is a fold: RuleEvaluator carries the row records forward and
each step depends on the fully resolved previous step, including any
retroactive rewrite.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Sequence, Tuple

from .spc import (
    BASELINE_FIRST_ROW,
    BASELINE_SIZE,
    DEFAULT_DECIMALS,
    BaselineResult,
    Epoch,
    RuleLabel,
    calculate_baseline,
    compute_epoch,
    moving_range,
    to_measurement,
)

logger = logging.getLogger(__name__)


RULE_2_WINDOW = 8
RULE_3_WINDOW = 4
RULE_3_MIN_HITS = 3


@dataclass
class RowRecord:
    """
    Derived values for one store row.

    The epoch is replaced when a later row re-baselines over this one;
    signal and trigger are fixed once the row has been evaluated.
    """
    row_index: int
    measurement: float
    moving_range: Optional[float]
    epoch: Epoch
    signal: bool = False
    trigger: Optional[RuleLabel] = None

    @property
    def label(self) -> RuleLabel:
        return self.epoch.label

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'row': self.row_index,
            'measurement': self.measurement,
            'moving_range': self.moving_range,
        }
        result.update(self.epoch.numeric_values())
        result.update({
            'trigger': self.trigger.value if self.trigger else None,
            'label': self.label.value,
            'signal': self.signal,
        })
        return result


@dataclass
class StepOutcome:
    """Result of evaluating one row."""
    record: RowRecord
    # First row retroactively rewritten with the record's Epoch, if any
    rewrite_start: Optional[int] = None

    @property
    def rebaselined(self) -> bool:
        return self.record.trigger is not None

    @property
    def rewritten_rows(self) -> range:
        """Preceding rows that now carry the record's Epoch."""
        if self.rewrite_start is None:
            return range(0)
        return range(self.rewrite_start, self.record.row_index)


@dataclass
class ChartResult:
    """Complete result of a chart pass."""
    records: List[RowRecord]
    rebaselines: List[Tuple[int, RuleLabel]] = field(default_factory=list)

    @property
    def first_row(self) -> int:
        return self.records[0].row_index

    @property
    def last_row(self) -> int:
        return self.records[-1].row_index

    @property
    def signal_rows(self) -> List[int]:
        return [r.row_index for r in self.records if r.signal]

    def record_for(self, row: int) -> RowRecord:
        return self.records[row - self.first_row]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'first_row': self.first_row,
            'last_row': self.last_row,
            'n_rows': len(self.records),
            'signal_rows': self.signal_rows,
            'rebaselines': [
                {'row': row, 'rule': label.value} for row, label in self.rebaselines
            ],
            'rows': [r.to_dict() for r in self.records],
        }


# =============================================================================
# RULES
# =============================================================================

def rule_1_fires(value: float, mr: float, prev: Epoch) -> bool:
    """Point beyond the control limits with an out-of-limit moving range."""
    beyond_limits = value > prev.ucl or value < prev.lcl
    return beyond_limits and mr > prev.mrucl


def rule_2_fires(window: Sequence[float], prev: Epoch) -> bool:
    """Every value in the window on the same side of the center line."""
    all_above = all(v > prev.dpa for v in window)
    all_below = all(v < prev.dpa for v in window)
    return all_above or all_below


def rule_3_fires(window: Sequence[float], prev: Epoch) -> bool:
    """At least 3 values beyond the same warning boundary."""
    above = sum(1 for v in window if v > prev.dua)
    below = sum(1 for v in window if v < prev.dla)
    return above >= RULE_3_MIN_HITS or below >= RULE_3_MIN_HITS


# =============================================================================
# EVALUATOR
# =============================================================================

class RuleEvaluator:
    """
    Row-by-row state machine over an individuals chart.

    Usage:
        evaluator = RuleEvaluator(calculate_baseline(values[:8]))
        for value in values[8:]:
            outcome = evaluator.step(value)
        result = evaluator.result()
    """

    def __init__(
        self,
        baseline: BaselineResult,
        precision: Optional[int] = DEFAULT_DECIMALS,
    ):
        self.precision = precision
        self.records: List[RowRecord] = [
            RowRecord(
                row_index=row,
                measurement=value,
                moving_range=mr,
                epoch=baseline.epoch,
            )
            for row, value, mr in zip(
                baseline.rows, baseline.measurements, baseline.moving_ranges
            )
        ]
        self.rebaselines: List[Tuple[int, RuleLabel]] = []

    @property
    def last_row(self) -> int:
        return self.records[-1].row_index

    @property
    def next_row(self) -> int:
        return self.last_row + 1

    def _rebaseline(
        self,
        row: int,
        value: float,
        mr: float,
        window_size: int,
        label: RuleLabel,
    ) -> Tuple[Epoch, int]:
        history = self.records[-(window_size - 1):]
        epoch = compute_epoch(
            [r.measurement for r in history] + [value],
            [r.moving_range for r in history] + [mr],
            label,
            precision=self.precision,
        )
        for record in history:
            record.epoch = epoch

        self.rebaselines.append((row, label))
        logger.info(
            f"{label.value} re-baselined rows {history[0].row_index}-{row}: "
            f"dpa={epoch.dpa}, lcl={epoch.lcl}, ucl={epoch.ucl}"
        )
        return epoch, history[0].row_index

    def step(self, value: float) -> StepOutcome:
        """
        Evaluate the next row.

        Args:
            value: Measurement at row next_row

        Returns:
            StepOutcome with the new row record and the rewritten range
        """
        row = self.next_row
        prev_record = self.records[-1]
        prev = prev_record.epoch

        mr = moving_range(prev_record.measurement, value, self.precision)
        signal = rule_1_fires(value, mr, prev)
        if signal:
            logger.info(f"Rule 1 signal at row {row}: value={value}, mr={mr}")

        trigger = None
        rewrite_start = None
        epoch = prev

        window_8 = [r.measurement for r in self.records[-(RULE_2_WINDOW - 1):]] + [value]
        window_4 = window_8[-RULE_3_WINDOW:]

        if len(window_8) == RULE_2_WINDOW and rule_2_fires(window_8, prev):
            trigger = RuleLabel.RULE_2
            epoch, rewrite_start = self._rebaseline(row, value, mr, RULE_2_WINDOW, trigger)
        elif rule_3_fires(window_4, prev):
            trigger = RuleLabel.RULE_3
            epoch, rewrite_start = self._rebaseline(row, value, mr, RULE_3_WINDOW, trigger)
        else:
            logger.debug(f"Row {row}: inherits {prev.label.value} epoch")

        record = RowRecord(
            row_index=row,
            measurement=value,
            moving_range=mr,
            epoch=epoch,
            signal=signal,
            trigger=trigger,
        )
        self.records.append(record)

        return StepOutcome(record=record, rewrite_start=rewrite_start)

    def result(self) -> ChartResult:
        return ChartResult(records=list(self.records), rebaselines=list(self.rebaselines))


def evaluate_series(
    values: Sequence[Any],
    first_row: int = BASELINE_FIRST_ROW,
    precision: Optional[int] = DEFAULT_DECIMALS,
) -> ChartResult:
    """
    Run the baseline and every rule step over an in-memory series.

    Args:
        values: Raw measurements starting at the first data row
        first_row: Store row of the first value
        precision: Decimals for moving ranges and Epoch fields, or None

    Returns:
        ChartResult with one record per value

    Raises:
        InsufficientDataError: If the baseline window is incomplete
        MalformedMeasurementError: If any value is empty or non-numeric
    """
    baseline = calculate_baseline(values, first_row=first_row, precision=precision)
    evaluator = RuleEvaluator(baseline, precision=precision)

    for raw_value in values[BASELINE_SIZE:]:
        evaluator.step(to_measurement(raw_value, evaluator.next_row))

    return evaluator.result()
