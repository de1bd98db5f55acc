"""Per-call settings for recording, transcription and voice query."""

from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError

from ..errors import ConfigError


def default_model_path() -> str:
    """Directory that holds downloaded models when nothing else is configured."""
    return str(Path.home() / ".voicequery" / "models")


class WhisperSettings(BaseModel):
    """Configuration surface; every field may be overridden per call."""

    # Model settings
    model: str = "base.en"
    model_path: str = Field(default_factory=default_model_path)
    language: str = "auto"
    threads: int = Field(default=0, ge=0)  # 0 = auto-detect
    translate: bool = False
    use_gpu: bool = False

    # Recording settings
    device_id: int = Field(default=-1, ge=-1)  # -1 = system default
    max_duration: float = Field(default=15.0, gt=0)
    silence_duration: float = Field(default=1.0, gt=0)
    silence_threshold: float = Field(default=0.001, ge=0, le=1)

    # Voice query settings
    text_to_sql_url: str = "http://localhost:4000/generate-sql"
    text_to_sql_timeout: float = Field(default=15, gt=0)
    voice_query_show_sql: bool = False
    voice_query_timeout: float = Field(default=30, gt=0)

    verbose: bool = False

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "WhisperSettings":
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid whisper settings: {e}") from e

    def override(self, **overrides: Any) -> "WhisperSettings":
        """Return a validated copy; None values keep the current setting."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        unknown = set(updates) - set(type(self).model_fields)
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        return self.from_mapping({**self.model_dump(), **updates})
