"""Model catalog data models."""

from dataclasses import dataclass


@dataclass
class ModelInfo:
    """Local status of one recognition model."""
    name: str            # e.g. "base.en"
    file_path: str       # model directory
    file_size: int       # bytes on disk, 0 when not downloaded
    is_downloaded: bool
    description: str
