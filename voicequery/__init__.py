"""voicequery - speech capture, transcription and voice-to-SQL."""

__version__ = "0.1.0"
