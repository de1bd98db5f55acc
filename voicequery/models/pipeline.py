"""Data models for the voice-to-SQL pipeline."""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import numpy as np


@dataclass
class PipelineJob:
    """State of a single voice query invocation; never reused."""
    schema_snapshot: str
    deadline_seconds: float
    samples: Optional[np.ndarray] = None
    transcription: str = ""
    generated_sql: str = ""


@dataclass
class VoiceQueryResult:
    """Rows produced by executing generated SQL on a secondary connection."""
    sql: str
    transcription: str
    columns: List[str] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
