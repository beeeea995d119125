"""
Package Export Tests
====================
Verify the public API is exported from epoch_chart/__init__.py.
"""

import sys
from pathlib import Path

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


class TestPackageExports:
    """Verify the public API is importable from the package root."""

    def test_version(self):
        from epoch_chart import __version__, PROCESSING_VERSION
        assert __version__ == "1.0.0"
        assert PROCESSING_VERSION == "1.0.0"

    def test_core_exports(self):
        from epoch_chart import (Epoch, RuleLabel, calculate_baseline, moving_range,
                                 RuleEvaluator, evaluate_series, run_chart)
        assert callable(calculate_baseline)
        assert callable(moving_range)
        assert callable(evaluate_series)
        assert callable(run_chart)
        assert RuleLabel.RULE_2.value == "Rule 2"
        assert Epoch is not None
        assert RuleEvaluator is not None

    def test_error_hierarchy(self):
        from epoch_chart import (ChartError, InsufficientDataError,
                                 MalformedMeasurementError, StoreAccessError)
        assert issubclass(InsufficientDataError, ChartError)
        assert issubclass(InsufficientDataError, ValueError)
        assert issubclass(MalformedMeasurementError, ValueError)
        assert issubclass(StoreAccessError, RuntimeError)

    def test_docstring_example(self):
        from epoch_chart import DataFrameStore, run_chart
        store = DataFrameStore.from_values([10, 12, 11, 13, 12, 14, 13, 15, 20])
        report = run_chart(store)
        assert report.rows_processed == 9
        assert report.result.signal_rows == []
