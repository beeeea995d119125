"""
SPC Epoch Chart
===============
Individuals and moving range control chart with rule-based re-baselining,
computed over a tabular store (Excel workbook or in-memory table).

Modules:
- spc: control constants, rounding, Epoch, baseline calculation
- rules: Rule 1/2/3 evaluation as a row-by-row fold
- store: TabularStore protocol, DataFrameStore, WorkbookStore
- chart_runner: full pass against a store
- config_validation: pydantic configuration schema
- export: CSV / Excel / JSON export of a processed chart
- traceability: input hashing and run context

Usage:
    from epoch_chart import DataFrameStore, run_chart
    store = DataFrameStore.from_values([10, 12, 11, 13, 12, 14, 13, 15, 20])
    report = run_chart(store)
"""

from .errors import (
    ChartError,
    InsufficientDataError,
    MalformedMeasurementError,
    StoreAccessError,
)

from .spc import (
    D2,
    D4,
    BASELINE_SIZE,
    RuleLabel,
    Epoch,
    BaselineResult,
    round_half_away,
    moving_range,
    to_measurement,
    compute_epoch,
    calculate_baseline,
)

from .rules import (
    RowRecord,
    StepOutcome,
    ChartResult,
    RuleEvaluator,
    rule_1_fires,
    rule_2_fires,
    rule_3_fires,
    evaluate_series,
)

from .config_validation import (
    RoundingMode,
    ColumnLayout,
    ChartConfig,
    validate_chart_config,
    load_chart_config,
)

from .store import (
    TabularStore,
    DataFrameStore,
    WorkbookStore,
    apply_epoch,
    write_row_record,
)

from .chart_runner import (
    ChartRunReport,
    run_chart,
    format_chart_summary,
)

from .export import (
    chart_to_dataframe,
    epochs_to_dataframe,
    export_chart_csv,
    export_chart_excel,
    export_chart_json,
)

from .traceability import (
    PROCESSING_VERSION,
    RunContext,
    compute_series_hash,
    compute_config_hash,
)

__version__ = "1.0.0"
