"""
Command-line entry point.

Usage:
    epoch-chart measurements.xlsx
    epoch-chart measurements.xlsx --summary
    python -m epoch_chart measurements.xlsx --config chart_config.json
"""

import argparse
import logging
import sys
from typing import Optional, List

from .chart_runner import format_chart_summary, run_chart
from .config_validation import load_chart_config
from .errors import ChartError
from .store import WorkbookStore


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="epoch-chart",
        description="Compute the baseline and rule-based re-baselines of an "
                    "individuals SPC chart held in an Excel workbook",
    )
    parser.add_argument("workbook", help="Path to the .xlsx workbook to update in place")
    parser.add_argument("--config", default=None, help="Chart configuration JSON file")
    parser.add_argument("--summary", action="store_true",
                        help="Print a markdown summary of the run instead of one line")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_chart_config(args.config)
        store = WorkbookStore.open(
            args.workbook,
            sheet_name=config.sheet_name,
            measurement_column=config.columns.measurement,
        )
        report = run_chart(store, config)
        store.save()
    except (ChartError, FileNotFoundError, ValueError) as e:
        print(f"SPC chart run failed: {e}", file=sys.stderr)
        return 1

    print(format_chart_summary(report) if args.summary else report.message)
    return 0
