"""
Chart Export
============
Export a processed chart with its run metadata.

Supported Formats:
- CSV with a '#' metadata header
- Excel with Data, Epochs and Metadata sheets
- JSON with full structure
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Union

import pandas as pd

from .rules import ChartResult


ROW_COLUMNS = [
    'row', 'measurement', 'moving_range',
    'dpa', 'mra', 'lcl', 'dla', 'dua', 'ucl', 'mrucl',
    'trigger', 'label', 'signal',
]


def chart_to_dataframe(result: ChartResult) -> pd.DataFrame:
    """One row per store row with every derived column."""
    return pd.DataFrame([r.to_dict() for r in result.records], columns=ROW_COLUMNS)


def epochs_to_dataframe(result: ChartResult) -> pd.DataFrame:
    """
    One row per contiguous run of rows governed by the same Epoch.

    Rows re-baselined retroactively are attributed to the Epoch they carry
    after the full pass.
    """
    spans = []
    for record in result.records:
        if spans and spans[-1]['epoch'] == record.epoch:
            spans[-1]['end_row'] = record.row_index
            continue
        spans.append({
            'epoch': record.epoch,
            'start_row': record.row_index,
            'end_row': record.row_index,
        })

    rows = []
    for span in spans:
        row = {
            'label': span['epoch'].label.value,
            'start_row': span['start_row'],
            'end_row': span['end_row'],
        }
        row.update(span['epoch'].numeric_values())
        rows.append(row)

    return pd.DataFrame(rows)


def export_chart_csv(
    result: ChartResult,
    output_path: Union[str, Path],
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Export chart rows to CSV with optional metadata header.

    Args:
        result: Chart result
        output_path: Output file path
        metadata: Additional metadata to include in header

    Returns:
        Path to exported file
    """
    output_path = Path(output_path)
    export_df = chart_to_dataframe(result)

    if metadata:
        with open(output_path, 'w') as f:
            f.write("# SPC Epoch Chart Export\n")
            f.write(f"# Export Date: {datetime.now().isoformat()}\n")
            for key, value in metadata.items():
                f.write(f"# {key}: {value}\n")
            f.write("#\n")

        export_df.to_csv(output_path, mode='a', index=False)
    else:
        export_df.to_csv(output_path, index=False)

    return output_path


def export_chart_excel(
    result: ChartResult,
    output_path: Union[str, Path],
    run_info: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Export chart to Excel with multiple sheets.

    Sheets:
    - Data: One row per store row
    - Epochs: Row spans governed by each Epoch
    - Metadata: Run information (if provided)
    """
    output_path = Path(output_path)

    with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
        chart_to_dataframe(result).to_excel(writer, sheet_name='Data', index=False)
        epochs_to_dataframe(result).to_excel(writer, sheet_name='Epochs', index=False)

        if run_info:
            meta_df = pd.DataFrame([
                {'Field': k, 'Value': str(v)}
                for k, v in run_info.items()
            ])
            meta_df.to_excel(writer, sheet_name='Metadata', index=False)

    return output_path


def export_chart_json(
    result: ChartResult,
    output_path: Union[str, Path],
    run_info: Optional[Dict[str, Any]] = None,
) -> Path:
    """Export chart to JSON with epochs and row detail."""
    output_path = Path(output_path)

    data = {
        'export_info': {
            'export_date': datetime.now().isoformat(),
            'format_version': '1.0',
        },
        'run_info': run_info or {},
        'epochs': epochs_to_dataframe(result).to_dict(orient='records'),
        'chart': result.to_dict(),
    }

    with open(output_path, 'w') as f:
        json.dump(data, f, indent=2, default=str)

    return output_path
