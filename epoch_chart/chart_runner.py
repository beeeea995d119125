"""
Chart Runner
============
Runs a complete chart pass against a tabular store:

1. Read the measurement column from the first data row to the last
   populated row (at least 8 rows required).
2. Compute the baseline and write it flat onto all 8 baseline rows.
3. Advance row by row, writing each evaluated row and, when Rule 2 or
   Rule 3 re-baselines, rewriting the preceding rows of its window.

Writes are applied row by row with no rollback. A failing row stops the
pass before that row is written; rows already written stay written.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from .config_validation import ChartConfig
from .errors import ChartError, InsufficientDataError, StoreAccessError
from .rules import ChartResult, RowRecord, RuleEvaluator
from .spc import BASELINE_SIZE, calculate_baseline, to_measurement
from .store import TabularStore, apply_epoch, write_row_record
from .traceability import RunContext, compute_config_hash, compute_series_hash

logger = logging.getLogger(__name__)


@dataclass
class ChartRunReport:
    """Outcome of a successful chart run."""
    config_name: str
    result: ChartResult
    input_hash: str
    config_hash: str
    context: RunContext = field(default_factory=RunContext)

    @property
    def rows_processed(self) -> int:
        return len(self.result.records)

    @property
    def message(self) -> str:
        return (
            f"SPC chart updated: rows {self.result.first_row}-{self.result.last_row}, "
            f"{len(self.result.rebaselines)} re-baselines, "
            f"{len(self.result.signal_rows)} Rule 1 signals"
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'config_name': self.config_name,
            'rows_processed': self.rows_processed,
            'input_hash': self.input_hash,
            'config_hash': self.config_hash,
        }
        result.update(self.context.to_dict())
        return result


def _read_measurements(store: TabularStore, config: ChartConfig) -> list:
    first_row = config.first_data_row
    try:
        last_row = store.last_populated_row()
    except ChartError:
        raise
    except Exception as e:
        raise StoreAccessError(f"Cannot determine last populated row: {e}") from e

    n_rows = last_row - first_row + 1
    if n_rows < BASELINE_SIZE:
        raise InsufficientDataError(
            f"Need at least {BASELINE_SIZE} measurement rows starting at row "
            f"{first_row}, found {max(n_rows, 0)}"
        )

    try:
        return store.read_series(first_row, last_row, config.columns.measurement)
    except ChartError:
        raise
    except Exception as e:
        raise StoreAccessError(f"Cannot read measurements: {e}") from e


def _write_records(
    store: TabularStore,
    record: RowRecord,
    rewritten: range,
    config: ChartConfig,
) -> None:
    """Write one evaluated row, after rewriting the rows of a re-baseline window."""
    row = record.row_index
    try:
        if rewritten:
            apply_epoch(
                store, record.epoch,
                rewritten.start, rewritten.stop - 1,
                config.columns, config.decimals,
            )
        write_row_record(store, record, config.columns, config.decimals)
    except ChartError:
        raise
    except Exception as e:
        raise StoreAccessError(f"Cannot write row {row}: {e}", row=row) from e


def run_chart(store: TabularStore, config: Optional[ChartConfig] = None) -> ChartRunReport:
    """
    Compute the baseline and evaluate every following row of a store.

    Args:
        store: Tabular store holding the measurement column
        config: Chart configuration (defaults to the standard layout)

    Returns:
        ChartRunReport with the in-memory result of the pass

    Raises:
        InsufficientDataError: Fewer than 8 measurements; nothing is written
        MalformedMeasurementError: Empty or non-numeric measurement; the pass
            stops before writing that row
        StoreAccessError: The store failed to read or write
    """
    config = config or ChartConfig()
    first_row = config.first_data_row

    logger.info(f"Starting chart run '{config.config_name}'")

    try:
        raw_values = _read_measurements(store, config)

        baseline = calculate_baseline(raw_values, first_row=first_row, precision=config.precision)
        evaluator = RuleEvaluator(baseline, precision=config.precision)
        for record in evaluator.records:
            _write_records(store, record, range(0), config)
        logger.info(
            f"Baseline rows {baseline.first_row}-{baseline.last_row}: "
            f"dpa={baseline.epoch.dpa}, mra={baseline.epoch.mra}"
        )

        for raw_value in raw_values[BASELINE_SIZE:]:
            value = to_measurement(raw_value, evaluator.next_row)
            outcome = evaluator.step(value)
            _write_records(store, outcome.record, outcome.rewritten_rows, config)

    except ChartError as e:
        logger.error(f"Chart run '{config.config_name}' failed: {e}")
        raise

    report = ChartRunReport(
        config_name=config.config_name,
        result=evaluator.result(),
        input_hash=compute_series_hash(raw_values),
        config_hash=compute_config_hash(config.to_dict()),
    )
    logger.info(report.message)
    return report


def format_chart_summary(report: ChartRunReport) -> str:
    """Format a chart run as markdown summary."""
    result = report.result
    lines = [
        f"## SPC Chart: {report.config_name}",
        "",
        f"**Rows Processed:** {report.rows_processed} "
        f"(rows {result.first_row}-{result.last_row})",
        f"**Input Hash:** {report.input_hash}",
        "",
    ]

    current = result.records[-1].epoch
    lines.extend([
        "### Current Control Limits",
        f"- Rule: {current.label.value}",
        f"- Center Line (DPA): {current.dpa:.2f}",
        f"- UCL: {current.ucl:.2f}",
        f"- LCL: {current.lcl:.2f}",
        f"- MR UCL: {current.mrucl:.2f}",
        "",
        "### Re-baselines",
    ])

    if result.rebaselines:
        for row, label in result.rebaselines:
            lines.append(f"- Row {row}: {label.value}")
    else:
        lines.append("- None")

    lines.extend(["", "### Rule 1 Signals"])
    if result.signal_rows:
        lines.append("- Rows: " + ", ".join(str(r) for r in result.signal_rows))
    else:
        lines.append("- None")

    return "\n".join(lines)
