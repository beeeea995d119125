"""
Run Traceability
================
Every chart run records a hash of the measurement series it consumed, the
configuration it ran under, and when and by whom it was performed. Two runs
with the same hashes must produce identical rows.
"""

import getpass
import hashlib
import json
import platform
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, Sequence


# Increment when calculation methods change
PROCESSING_VERSION = "1.0.0"


def compute_series_hash(values: Sequence[Any]) -> str:
    """
    Compute SHA-256 hash of a raw measurement series.

    Returns:
        Hex string of SHA-256 hash prefixed with 'sha256:'
    """
    series_str = json.dumps(list(values), default=str)
    sha256_hash = hashlib.sha256(series_str.encode('utf-8'))
    return f"sha256:{sha256_hash.hexdigest()}"


def compute_config_hash(config: Dict[str, Any]) -> str:
    """Hash of a configuration dictionary, keys sorted for deterministic output."""
    config_str = json.dumps(config, sort_keys=True, default=str)
    sha256_hash = hashlib.sha256(config_str.encode('utf-8'))
    return f"sha256:{sha256_hash.hexdigest()}"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return 'unknown'


@dataclass
class RunContext:
    """Who ran the chart, where, when, and with which processing version."""
    analyst_username: str = field(default_factory=_current_user)
    analyst_hostname: str = field(default_factory=platform.node)
    analysis_timestamp_utc: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    processing_version: str = PROCESSING_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
