"""
Chart Configuration Validation
==============================
Schema validation for chart run configuration using pydantic.

Key Principle: Fail fast on bad configs. A typo in a column letter should
raise an immediate, clear error - not silently write results into the
wrong column.

The column layout is a fixed contract with the tabular store. It can be
declared here but is never inferred from the sheet contents.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .spc import BASELINE_FIRST_ROW, DEFAULT_DECIMALS


COLUMN_PATTERN = r'^[A-Z]{1,3}$'


class RoundingMode(str, Enum):
    """How derived values are carried between rows."""
    STORED = "stored"  # Round on creation, later rows use the rounded values
    FULL = "full"      # Full precision internally, round only when writing


class ColumnLayout(BaseModel):
    """Column letter for every quantity written to the store."""
    model_config = ConfigDict(extra='forbid')

    measurement: str = Field("D", pattern=COLUMN_PATTERN, description="Measurement (DP)")
    dpa: str = Field("E", pattern=COLUMN_PATTERN, description="Data point average")
    moving_range: str = Field("F", pattern=COLUMN_PATTERN, description="Moving range")
    mra: str = Field("G", pattern=COLUMN_PATTERN, description="Moving range average")
    lcl: str = Field("H", pattern=COLUMN_PATTERN, description="Lower control limit")
    dla: str = Field("I", pattern=COLUMN_PATTERN, description="Lower warning boundary")
    dua: str = Field("J", pattern=COLUMN_PATTERN, description="Upper warning boundary")
    ucl: str = Field("K", pattern=COLUMN_PATTERN, description="Upper control limit")
    mrucl: str = Field("L", pattern=COLUMN_PATTERN, description="Moving range limit")
    trigger: str = Field("M", pattern=COLUMN_PATTERN, description="Re-baseline trigger marker")
    label: str = Field("N", pattern=COLUMN_PATTERN, description="Persistent rule label")
    signal: str = Field("O", pattern=COLUMN_PATTERN, description="Rule 1 signal flag")

    @field_validator('*', mode='before')
    @classmethod
    def normalize_letter(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode='after')
    def check_distinct_columns(self):
        seen: Dict[str, str] = {}
        for name, column in self.model_dump().items():
            if column in seen:
                raise ValueError(
                    f"Column {column} assigned to both '{seen[column]}' and '{name}'"
                )
            seen[column] = name
        return self

    def epoch_columns(self) -> Dict[str, str]:
        """Epoch field name -> column letter."""
        return {
            'dpa': self.dpa,
            'mra': self.mra,
            'lcl': self.lcl,
            'dla': self.dla,
            'dua': self.dua,
            'ucl': self.ucl,
            'mrucl': self.mrucl,
        }


class ChartConfig(BaseModel):
    """Complete configuration for a chart run."""
    model_config = ConfigDict(extra='forbid')

    config_name: str = Field("Default I-MR Chart", min_length=1, description="Configuration name")
    description: Optional[str] = Field(None, description="Configuration description")
    sheet_name: Optional[str] = Field(None, description="Worksheet to process (None = active sheet)")
    header_row: int = Field(BASELINE_FIRST_ROW - 1, ge=1, description="Row holding the column headers")
    rounding: RoundingMode = Field(RoundingMode.STORED, description="Rounding contract")
    decimals: int = Field(DEFAULT_DECIMALS, ge=0, le=10, description="Decimals kept for derived values")
    columns: ColumnLayout = Field(default_factory=ColumnLayout)

    @property
    def first_data_row(self) -> int:
        return self.header_row + 1

    @property
    def precision(self) -> Optional[int]:
        """Decimals applied during computation, or None for full precision."""
        if self.rounding == RoundingMode.STORED:
            return self.decimals
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode='json', exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChartConfig':
        """Create from dictionary."""
        return cls(**data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'ChartConfig':
        """Load from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls(**data)


def validate_chart_config(config: Dict[str, Any]) -> ChartConfig:
    """
    Validate a configuration dictionary.

    Raises:
        ValueError: If validation fails with detailed error message
    """
    try:
        return ChartConfig.from_dict(config)
    except ValidationError as e:
        raise ValueError(f"Configuration validation failed:\n{e}") from e


def load_chart_config(path: Optional[Union[str, Path]] = None) -> ChartConfig:
    """
    Load and validate a configuration file, or return the defaults.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid JSON or fails validation
    """
    if path is None:
        return ChartConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, 'r') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {path}: {e}") from e

    return validate_chart_config(config)
