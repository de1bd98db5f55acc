"""Event models for pub/sub status reporting."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class StatusEvent:
    """Progress message emitted while recording, transcribing or querying."""
    stage: str    # "schema", "listening", "transcribing", "remote", "query"
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
