"""
Tabular Store Access
====================
The chart reads measurements from, and writes derived columns back to, a
grid of cells addressed by 1-based row number and column letter.

TabularStore is the protocol the chart runner consumes. Two implementations:
- DataFrameStore: in-memory pandas table (tests, notebooks, pipelines)
- WorkbookStore: an openpyxl worksheet loaded from an .xlsx file

apply_epoch() and write_row_record() are the only writers of derived
columns. Both round numeric values at the write boundary.
"""

import logging
from pathlib import Path
from typing import Protocol, Any, Optional, List, Sequence, Union, runtime_checkable
from zipfile import BadZipFile

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.utils import column_index_from_string, get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from .config_validation import ColumnLayout
from .errors import StoreAccessError
from .rules import RowRecord
from .spc import DEFAULT_DECIMALS, Epoch, is_blank, round_half_away

logger = logging.getLogger(__name__)


@runtime_checkable
class TabularStore(Protocol):
    """Grid of cells holding the measurement series and derived columns."""

    def read_series(self, start_row: int, end_row: int, column: str) -> List[Any]:
        """Values of rows start_row..end_row (inclusive) in one column."""
        ...

    def read_cell(self, row: int, column: str) -> Any:
        ...

    def write_cell(self, row: int, column: str, value: Any) -> None:
        ...

    def last_populated_row(self) -> int:
        """Last row with a non-empty measurement, 0 if there is none."""
        ...


def _check_address(row: int, column: str) -> int:
    """Validate a cell address and return the 1-based column index."""
    if row < 1:
        raise StoreAccessError(f"Invalid row number {row}", row=row)
    try:
        return column_index_from_string(column)
    except (ValueError, TypeError):
        raise StoreAccessError(f"Invalid column {column!r}", row=row) from None


# =============================================================================
# WRITERS
# =============================================================================

def apply_epoch(
    store: TabularStore,
    epoch: Epoch,
    start_row: int,
    end_row: int,
    layout: Optional[ColumnLayout] = None,
    decimals: int = DEFAULT_DECIMALS,
) -> None:
    """
    Rewrite the Epoch columns and rule label of a contiguous row range.

    Used for the flat baseline and for retroactive re-baselines. Trigger
    markers, signals and moving ranges of the range are left untouched.
    """
    layout = layout or ColumnLayout()
    values = epoch.rounded(decimals).numeric_values()

    for row in range(start_row, end_row + 1):
        for name, column in layout.epoch_columns().items():
            store.write_cell(row, column, values[name])
        store.write_cell(row, layout.label, epoch.label.value)

    logger.debug(f"Applied {epoch.label.value} epoch to rows {start_row}-{end_row}")


def write_row_record(
    store: TabularStore,
    record: RowRecord,
    layout: Optional[ColumnLayout] = None,
    decimals: int = DEFAULT_DECIMALS,
) -> None:
    """Write every derived column of one evaluated row."""
    layout = layout or ColumnLayout()
    row = record.row_index

    mr = record.moving_range
    store.write_cell(row, layout.moving_range, None if mr is None else round_half_away(mr, decimals))
    apply_epoch(store, record.epoch, row, row, layout, decimals)
    store.write_cell(row, layout.trigger, record.trigger.value if record.trigger else None)
    store.write_cell(row, layout.signal, True if record.signal else None)


def header_labels(layout: Optional[ColumnLayout] = None) -> dict:
    """Column letter -> header text for a fresh sheet."""
    layout = layout or ColumnLayout()
    return {
        layout.measurement: 'DP',
        layout.dpa: 'DPA',
        layout.moving_range: 'MR',
        layout.mra: 'MRA',
        layout.lcl: 'LCL',
        layout.dla: 'DLA',
        layout.dua: 'DUA',
        layout.ucl: 'UCL',
        layout.mrucl: 'MRUCL',
        layout.trigger: 'Trigger',
        layout.label: 'Rule',
        layout.signal: 'Rule 1',
    }


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class DataFrameStore:
    """
    Tabular store backed by a pandas DataFrame.

    The frame index holds store row numbers and the columns hold column
    letters. Missing cells read as None; writes outside the frame enlarge it.
    """

    def __init__(self, df: Optional[pd.DataFrame] = None, measurement_column: str = 'D'):
        if df is None:
            df = pd.DataFrame(dtype=object)
        self.df = df.astype(object)
        self.measurement_column = measurement_column

    @classmethod
    def from_values(
        cls,
        values: Sequence[Any],
        layout: Optional[ColumnLayout] = None,
        header_row: int = 1,
    ) -> 'DataFrameStore':
        """Build a sheet with a header row and measurements below it."""
        layout = layout or ColumnLayout()
        store = cls(measurement_column=layout.measurement)
        for column, text in header_labels(layout).items():
            store.write_cell(header_row, column, text)
        for offset, value in enumerate(values):
            store.write_cell(header_row + 1 + offset, layout.measurement, value)
        return store

    def read_cell(self, row: int, column: str) -> Any:
        _check_address(row, column)
        if row not in self.df.index or column not in self.df.columns:
            return None
        value = self.df.at[row, column]
        if not isinstance(value, str) and pd.isna(value):
            return None
        return value

    def read_series(self, start_row: int, end_row: int, column: str) -> List[Any]:
        return [self.read_cell(row, column) for row in range(start_row, end_row + 1)]

    def write_cell(self, row: int, column: str, value: Any) -> None:
        _check_address(row, column)
        if row not in self.df.index:
            # Reindexing keeps every column object-typed
            self.df = self.df.reindex(self.df.index.union(pd.RangeIndex(1, row + 1)))
        if column not in self.df.columns:
            self.df[column] = pd.Series([None] * len(self.df), index=self.df.index, dtype=object)
        self.df.at[row, column] = value

    def last_populated_row(self) -> int:
        if self.measurement_column not in self.df.columns:
            return 0
        populated = [
            row for row, value in self.df[self.measurement_column].items()
            if not is_blank(value)
        ]
        return int(max(populated)) if populated else 0

    def to_frame(self) -> pd.DataFrame:
        """Copy of the sheet with rows and columns in store order."""
        columns = sorted(self.df.columns, key=column_index_from_string)
        return self.df.sort_index()[columns].copy()


# =============================================================================
# EXCEL STORE
# =============================================================================

class WorkbookStore:
    """
    Tabular store backed by an openpyxl worksheet.

    Changes live in memory until save() is called, so a failed run leaves
    the workbook file untouched.
    """

    def __init__(
        self,
        workbook: Workbook,
        sheet_name: Optional[str] = None,
        path: Optional[Union[str, Path]] = None,
        measurement_column: str = 'D',
    ):
        self.workbook = workbook
        self.path = Path(path) if path is not None else None
        self.measurement_column = measurement_column
        if sheet_name is None:
            self.sheet = workbook.active
        elif sheet_name in workbook.sheetnames:
            self.sheet = workbook[sheet_name]
        else:
            raise StoreAccessError(f"Worksheet '{sheet_name}' not found")

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        sheet_name: Optional[str] = None,
        measurement_column: str = 'D',
    ) -> 'WorkbookStore':
        """Load a workbook from disk."""
        path = Path(path)
        try:
            workbook = load_workbook(path)
        except (OSError, InvalidFileException, BadZipFile, KeyError, ValueError) as e:
            raise StoreAccessError(f"Cannot open workbook {path}: {e}") from e
        logger.info(f"Opened workbook {path}")
        return cls(workbook, sheet_name, path=path, measurement_column=measurement_column)

    def read_cell(self, row: int, column: str) -> Any:
        col_idx = _check_address(row, column)
        if row > self.sheet.max_row or col_idx > self.sheet.max_column:
            return None
        return self.sheet.cell(row=row, column=col_idx).value

    def read_series(self, start_row: int, end_row: int, column: str) -> List[Any]:
        return [self.read_cell(row, column) for row in range(start_row, end_row + 1)]

    def write_cell(self, row: int, column: str, value: Any) -> None:
        col_idx = _check_address(row, column)
        try:
            self.sheet.cell(row=row, column=col_idx, value=value)
        except (ValueError, TypeError) as e:
            raise StoreAccessError(
                f"Cannot write {value!r} to {get_column_letter(col_idx)}{row}: {e}", row=row
            ) from e

    def last_populated_row(self) -> int:
        col_idx = _check_address(1, self.measurement_column)
        for row in range(self.sheet.max_row, 0, -1):
            if not is_blank(self.sheet.cell(row=row, column=col_idx).value):
                return row
        return 0

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the workbook to disk."""
        target = Path(path) if path is not None else self.path
        if target is None:
            raise StoreAccessError("No path given to save the workbook to")
        try:
            self.workbook.save(target)
        except OSError as e:
            raise StoreAccessError(f"Cannot save workbook {target}: {e}") from e
        logger.info(f"Saved workbook {target}")
        return target
