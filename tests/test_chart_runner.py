"""
Test Suite for Chart Runs
=========================
End-to-end tests for chart_runner.py against in-memory and Excel stores.

Run with: python -m pytest tests/test_chart_runner.py -v
"""

import sys
import tempfile
from pathlib import Path

import pandas as pd
import pytest
from openpyxl import Workbook, load_workbook

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from epoch_chart.chart_runner import ChartRunReport, format_chart_summary, run_chart
from epoch_chart.config_validation import ChartConfig
from epoch_chart.errors import InsufficientDataError, MalformedMeasurementError, StoreAccessError
from epoch_chart.rules import evaluate_series
from epoch_chart.spc import RuleLabel
from epoch_chart.store import DataFrameStore, WorkbookStore


BASELINE_VALUES = [10, 12, 11, 13, 12, 14, 13, 15]
RULE_2_VALUES = BASELINE_VALUES + [13, 14, 13, 14, 13]
EPOCH_COLUMNS = ['E', 'G', 'H', 'I', 'J', 'K', 'L']


def epoch_cells(store, row):
    return [store.read_cell(row, c) for c in EPOCH_COLUMNS]


class TestBaselineRun:
    """Baseline written flat onto rows 2-9."""

    def test_all_baseline_rows_identical(self):
        store = DataFrameStore.from_values(BASELINE_VALUES)

        run_chart(store)

        expected = [12.5, 1.57, 8.32, 10.41, 14.59, 16.68, 5.14]
        for row in range(2, 10):
            assert epoch_cells(store, row) == expected
            assert store.read_cell(row, 'N') == 'Baseline'
            assert store.read_cell(row, 'M') is None
            assert store.read_cell(row, 'O') is None

        print(f"✓ Baseline written to rows 2-9: {expected}")

    def test_moving_range_column(self):
        store = DataFrameStore.from_values(BASELINE_VALUES)

        run_chart(store)

        assert store.read_cell(2, 'F') is None
        assert store.read_series(3, 9, 'F') == [2.0, 1.0, 2.0, 1.0, 2.0, 1.0, 2.0]

    def test_insufficient_data_writes_nothing(self):
        store = DataFrameStore.from_values(BASELINE_VALUES[:7])
        before = store.to_frame()

        with pytest.raises(InsufficientDataError):
            run_chart(store)

        pd.testing.assert_frame_equal(store.to_frame(), before)

    def test_gap_in_baseline_writes_nothing(self):
        values = list(BASELINE_VALUES) + [13]
        values[2] = None
        store = DataFrameStore.from_values(values)

        with pytest.raises(InsufficientDataError):
            run_chart(store)

        assert store.read_cell(2, 'E') is None


class TestSequentialRun:
    """Rows 10 onward."""

    def test_rule_1_signal_row(self):
        store = DataFrameStore.from_values(BASELINE_VALUES + [21])

        report = run_chart(store)

        assert store.read_cell(10, 'O') is True
        assert store.read_cell(10, 'F') == 6.0
        assert store.read_cell(10, 'N') == 'Baseline'
        assert store.read_cell(10, 'M') is None
        assert epoch_cells(store, 10) == epoch_cells(store, 9)
        assert report.result.signal_rows == [10]

    def test_rule_2_rewrite_extent(self):
        store = DataFrameStore.from_values(RULE_2_VALUES)

        run_chart(store)

        rule_2 = [13.63, 1.38, 9.97, 11.80, 15.45, 17.28, 4.50]
        for row in range(7, 15):
            assert epoch_cells(store, row) == rule_2
            assert store.read_cell(row, 'N') == 'Rule 2'
        for row in range(2, 7):
            assert store.read_cell(row, 'E') == 12.5
            assert store.read_cell(row, 'N') == 'Baseline'

        assert store.read_cell(14, 'M') == 'Rule 2'
        assert all(store.read_cell(row, 'M') is None for row in range(2, 14))

    def test_inherited_rows_after_rebaseline(self):
        store = DataFrameStore.from_values(BASELINE_VALUES + [15, 16, 15, 15])

        run_chart(store)

        assert store.read_cell(11, 'M') == 'Rule 3'
        for row in (12, 13):
            assert epoch_cells(store, row) == epoch_cells(store, 11)
            assert store.read_cell(row, 'N') == 'Rule 3'
            assert store.read_cell(row, 'M') is None

    def test_matches_in_memory_fold(self):
        values = RULE_2_VALUES + [16, 17, 12, 11, 10, 9, 25]
        store = DataFrameStore.from_values(values)

        report = run_chart(store)

        assert report.result.to_dict() == evaluate_series(values).to_dict()
        for record in report.result.records:
            assert store.read_cell(record.row_index, 'E') == record.epoch.dpa
            assert store.read_cell(record.row_index, 'N') == record.label.value

    def test_rerun_is_identical(self):
        store = DataFrameStore.from_values(RULE_2_VALUES + [16, 17, 12, 11])

        first = run_chart(store)
        snapshot = store.to_frame()
        second = run_chart(store)

        pd.testing.assert_frame_equal(store.to_frame(), snapshot)
        assert first.input_hash == second.input_hash
        assert first.config_hash == second.config_hash

    def test_malformed_row_halts_pass(self):
        store = DataFrameStore.from_values(BASELINE_VALUES + [13, 'bad', 14])

        with pytest.raises(MalformedMeasurementError) as exc_info:
            run_chart(store)

        assert exc_info.value.row == 11
        assert store.read_cell(10, 'N') == 'Baseline'
        assert store.read_cell(11, 'E') is None
        assert store.read_cell(12, 'E') is None

    def test_write_failure_is_store_error(self):
        """A store that fails mid-pass surfaces as StoreAccessError for that row."""

        class UnwritableStore(DataFrameStore):
            def write_cell(self, row, column, value):
                if row == 10 and column == 'E':
                    raise OSError("disk gone")
                super().write_cell(row, column, value)

        store = UnwritableStore(DataFrameStore.from_values(BASELINE_VALUES + [13, 14]).df)

        with pytest.raises(StoreAccessError) as exc_info:
            run_chart(store)

        assert exc_info.value.row == 10
        assert isinstance(exc_info.value.__cause__, OSError)
        assert store.read_cell(9, 'N') == 'Baseline'
        assert store.read_cell(11, 'F') is None

    def test_gap_inside_sequence_is_malformed(self):
        store = DataFrameStore.from_values(BASELINE_VALUES + [13, None, 14])

        with pytest.raises(MalformedMeasurementError) as exc_info:
            run_chart(store)

        assert exc_info.value.row == 11


class TestRunConfiguration:
    """Config-driven variations."""

    def test_full_precision_rounds_only_on_write(self):
        store = DataFrameStore.from_values(RULE_2_VALUES)
        config = ChartConfig(rounding='full')

        report = run_chart(store, config)

        assert report.result.record_for(14).epoch.dpa == 13.625
        assert store.read_cell(14, 'E') == 13.63

    def test_custom_header_row(self):
        store = DataFrameStore()
        store.write_cell(3, 'D', 'DP')
        for offset, value in enumerate(BASELINE_VALUES + [21]):
            store.write_cell(4 + offset, 'D', value)

        report = run_chart(store, ChartConfig(header_row=3))

        assert report.result.first_row == 4
        assert store.read_cell(4, 'N') == 'Baseline'
        assert store.read_cell(12, 'O') is True


class TestReport:
    """Tests for ChartRunReport and format_chart_summary."""

    def test_report_fields(self):
        store = DataFrameStore.from_values(RULE_2_VALUES + [21])

        report = run_chart(store)

        assert isinstance(report, ChartRunReport)
        assert report.rows_processed == 14
        assert report.input_hash.startswith('sha256:')
        assert 'rows 2-15' in report.message
        assert report.to_dict()['config_name'] == 'Default I-MR Chart'

    def test_summary(self):
        store = DataFrameStore.from_values(RULE_2_VALUES)

        summary = format_chart_summary(run_chart(store))

        assert '## SPC Chart: Default I-MR Chart' in summary
        assert '- Row 14: Rule 2' in summary
        assert '- Rule: Rule 2' in summary


class TestWorkbookRun:
    """Full pass against an Excel workbook."""

    def test_workbook_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'line.xlsx'
            wb = Workbook()
            ws = wb.active
            ws['D1'] = 'DP'
            for offset, value in enumerate(RULE_2_VALUES):
                ws.cell(row=2 + offset, column=4, value=value)
            wb.save(path)

            store = WorkbookStore.open(path)
            report = run_chart(store)
            store.save()

            ws = load_workbook(path).active
            assert ws['E2'].value == 12.5
            assert ws['N2'].value == 'Baseline'
            assert ws['E7'].value == 13.63
            assert ws['N7'].value == 'Rule 2'
            assert ws['M14'].value == 'Rule 2'
            assert ws['M13'].value is None
            assert report.result.rebaselines == [(14, RuleLabel.RULE_2)]


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, '-v']))
