"""Exception taxonomy shared by capture, transcription and voice query."""

from typing import Optional


class VoiceQueryError(Exception):
    """Base class for every error raised by voicequery."""


class DeviceError(VoiceQueryError):
    """Audio devices could not be enumerated, opened or closed."""


class CaptureError(VoiceQueryError):
    """No usable audio was produced."""


class ModelError(VoiceQueryError):
    """Model file is missing, corrupt or incompatible with the request."""


class InferenceError(VoiceQueryError):
    """The recognition engine reported a failure."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class RemoteServiceError(VoiceQueryError):
    """The text-to-SQL service failed or answered with something unusable."""

    def __init__(self, message: str, body: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.body = body
        self.status = status


class PipelineTimeoutError(VoiceQueryError, TimeoutError):
    """The overall voice query deadline elapsed before the worker finished."""


class ConfigError(VoiceQueryError):
    """Invalid configuration value or model identifier."""


class QueryExecutionError(VoiceQueryError):
    """Generated SQL failed against the host database."""


class HostBusyError(VoiceQueryError):
    """Nested work was dispatched on a connection that is already busy."""
