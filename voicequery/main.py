"""Command line entry point for voicequery."""

import argparse
import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .audio.capture import DeviceCapture
from .audio.levels import measure_mic_level
from .audio.recorder import SilenceGatedRecorder
from .config import VoiceQueryConfig, WhisperSettings
from .errors import VoiceQueryError
from .models.events import StatusEvent
from .models.transcription import TranscriptionResult
from .status import StatusPublisher, subscribe_status, unsubscribe_status
from .transcription import model_manager
from .transcription.context_cache import ModelContextCache
from .transcription.orchestrator import TranscriptionOrchestrator
from .voice_query.executor import BoundedPipelineExecutor
from .voice_query.host import QueryHost

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = str(Path.home() / ".voicequery" / "logs" / "voicequery.log")


def setup_logging(config: VoiceQueryConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', DEFAULT_LOG_FILE)
    console_output = config.get('logging.console_output', True)

    handlers: List[logging.Handler] = []

    # File handler - always write to file
    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - stderr, so command output on stdout stays clean
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info(f"voicequery {__version__} starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def version_string() -> str:
    try:
        engine_version = version("faster-whisper")
    except PackageNotFoundError:
        engine_version = "not installed"
    return f"voicequery {__version__} (faster-whisper {engine_version})"


class App:
    """Wires the shared model cache into the recorder, orchestrator and executor."""

    def __init__(self, config: VoiceQueryConfig, console: Optional[Console] = None,
                 err_console: Optional[Console] = None):
        self.config = config
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.status = StatusPublisher(enabled=False)
        self.capture = DeviceCapture()
        self.cache = ModelContextCache()
        self.orchestrator = TranscriptionOrchestrator(self.cache, self.status)
        self.executor = BoundedPipelineExecutor(self.orchestrator, recorder_factory=self.new_recorder,
                                                status=self.status)

    def new_recorder(self) -> SilenceGatedRecorder:
        return SilenceGatedRecorder(self.capture)

    def settings(self, **overrides: Any) -> WhisperSettings:
        settings = self.config.settings(**overrides)
        self.set_verbose(settings.verbose)
        return settings

    def set_verbose(self, enabled: bool) -> None:
        if enabled and not self.status.enabled:
            subscribe_status(self.print_status)
        elif not enabled and self.status.enabled:
            unsubscribe_status(self.print_status)
        self.status.enabled = enabled

    def print_status(self, event: StatusEvent) -> None:
        self.err_console.print(f"[dim]{escape(event.message)}[/dim]")

    def shutdown(self) -> None:
        self.set_verbose(False)
        self.cache.shutdown()

    # Commands

    def list_devices(self) -> None:
        devices = self.capture.list_devices()
        if not devices:
            self.console.print("No audio capture devices found")
            return
        table = Table(title="Audio capture devices")
        table.add_column("id", justify="right")
        table.add_column("name")
        for device in devices:
            table.add_row(str(device.id), device.name)
        self.console.print(table)

    def list_models(self, settings: WhisperSettings) -> None:
        table = Table(title=f"Models in {settings.model_path}")
        table.add_column("name")
        table.add_column("downloaded")
        table.add_column("size (MB)", justify="right")
        table.add_column("description")
        for info in model_manager.list_models(settings.model_path):
            size = f"{info.file_size / 1e6:.1f}" if info.is_downloaded else "-"
            table.add_row(info.name, "yes" if info.is_downloaded else "no", size, info.description)
        self.console.print(table)

    def download_model(self, name: str, settings: WhisperSettings) -> None:
        with self.console.status(f"Downloading {name}..."):
            info = model_manager.download_model(name, settings.model_path)
        self.console.print(f"Model {info.name} ready at {info.file_path}")

    def print_transcription(self, result: TranscriptionResult, segments: bool) -> None:
        if not segments:
            self.console.print(escape(result.full_text))
            return
        table = Table(title=f"Transcription ({result.detected_language})")
        for column in ("segment_id", "start_time", "end_time", "text", "confidence", "language"):
            table.add_column(column)
        for segment in result.segments:
            table.add_row(str(segment.segment_id), f"{segment.start_time:.2f}", f"{segment.end_time:.2f}",
                          escape(segment.text), f"{segment.confidence:.3f}", segment.language)
        self.console.print(table)

    def transcribe_files(self, paths: List[str], settings: WhisperSettings, segments: bool) -> bool:
        """Transcribe each file; a failure is reported and the rest continue."""
        all_ok = True
        for path in paths:
            try:
                result = self.orchestrator.transcribe_file(path, settings)
            except VoiceQueryError as e:
                logger.error(f"Failed to transcribe {path}: {e}")
                result = TranscriptionResult.from_error(e, source=path)
            if len(paths) > 1:
                self.console.print(f"[bold]{escape(path)}[/bold]")
            if result.success:
                self.print_transcription(result, segments)
            else:
                all_ok = False
                self.err_console.print(f"[red]Error: {escape(result.error)}[/red]")
        return all_ok

    def record(self, settings: WhisperSettings, duration: float, segments: bool) -> None:
        self.err_console.print(f"Recording for {duration:g} seconds...")
        outcome = self.new_recorder().record_for(duration, device_id=settings.device_id)
        self._transcribe_outcome(outcome, settings, segments)

    def record_auto(self, settings: WhisperSettings, segments: bool) -> None:
        self.err_console.print("Listening... (stops after silence)")
        outcome = self.new_recorder().record_until_silence(
            max_duration=settings.max_duration,
            silence_duration=settings.silence_duration,
            threshold=settings.silence_threshold,
            device_id=settings.device_id,
        )
        self._transcribe_outcome(outcome, settings, segments)

    def _transcribe_outcome(self, outcome, settings: WhisperSettings, segments: bool) -> None:
        if not outcome.has_audio:
            self.console.print("No audio captured")
            return
        self.print_transcription(self.orchestrator.transcribe(outcome.samples, settings), segments)

    def mic_level(self, settings: WhisperSettings, duration: float) -> None:
        self.err_console.print(f"Measuring microphone level for {duration:g} seconds...")
        level = measure_mic_level(duration, settings.device_id, recorder=self.new_recorder())
        self.console.print(level.describe())

    def voice_to_sql(self, settings: WhisperSettings, database: str) -> None:
        with QueryHost(database) as host:
            self.console.print(self.executor.voice_to_sql(host, settings))

    def voice_query(self, settings: WhisperSettings, database: str, with_sql: bool) -> None:
        with QueryHost(database) as host:
            result = self.executor.voice_query(host, settings, include_sql=with_sql)
        table = Table(title=escape(result.transcription))
        for column in result.columns:
            table.add_column(column)
        for row in result.rows:
            table.add_row(*("NULL" if value is None else escape(str(value)) for value in row))
        self.console.print(table)

    def show_config(self, settings: WhisperSettings) -> None:
        table = Table(title="Effective settings")
        table.add_column("setting")
        table.add_column("value")
        for key, value in settings.model_dump().items():
            table.add_row(key, str(value))
        self.console.print(table)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voicequery",
        description="voicequery - speech capture, transcription and voice-to-SQL",
    )
    parser.add_argument("--config", type=str, help="Path to configuration YAML file")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config, else INFO)"
    )

    # Per-call overrides of the 'whisper' config section
    parser.add_argument("--model", type=str, help="Model name, e.g. base.en or large-v3")
    parser.add_argument("--model-path", type=str, help="Directory holding downloaded models")
    parser.add_argument("--device-id", type=int, help="Capture device id (-1 = system default)")
    parser.add_argument("--language", type=str, help="Language code, or 'auto' to detect")
    parser.add_argument("--threads", type=int, help="Inference threads (0 = min(8, CPU count))")
    parser.add_argument("--translate", action="store_true", default=None, help="Translate to English")
    parser.add_argument("--gpu", dest="use_gpu", action="store_true", default=None, help="Run inference on CUDA")
    parser.add_argument("--verbose", action="store_true", default=None, help="Print progress messages")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("devices", help="List audio capture devices")
    subparsers.add_parser("models", help="List available models and their download status")

    download = subparsers.add_parser("download-model", help="Download a model")
    download.add_argument("name", help="Model name")

    transcribe = subparsers.add_parser("transcribe", help="Transcribe audio files")
    transcribe.add_argument("files", nargs="+", help="Audio files in any format PyAV can decode")
    transcribe.add_argument("--segments", action="store_true", help="Show per-segment rows")

    record = subparsers.add_parser("record", help="Record for a fixed duration and transcribe")
    record.add_argument("--duration", type=float, default=5.0, help="Seconds to record (default: 5)")
    record.add_argument("--segments", action="store_true", help="Show per-segment rows")

    record_auto = subparsers.add_parser("record-auto", help="Record until silence and transcribe")
    record_auto.add_argument("--max-duration", type=float, help="Upper bound in seconds")
    record_auto.add_argument("--silence-duration", type=float, help="Silence that ends the recording")
    record_auto.add_argument("--threshold", dest="silence_threshold", type=float, help="RMS silence threshold")
    record_auto.add_argument("--segments", action="store_true", help="Show per-segment rows")

    mic_level = subparsers.add_parser("mic-level", help="Measure microphone level")
    mic_level.add_argument("--duration", type=float, default=3.0, help="Seconds to measure (default: 3)")

    for name, help_text in (("voice-to-sql", "Speak a question and print the generated SQL"),
                            ("voice-query", "Speak a question and run the generated SQL")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--database", required=True, help="SQLite database file or URI")
        sub.add_argument("--url", dest="text_to_sql_url", help="Text-to-SQL service URL")
        sub.add_argument("--timeout", dest="voice_query_timeout", type=float,
                         help="Overall deadline in seconds")
        if name == "voice-query":
            sub.add_argument("--with-sql", action="store_true",
                             help="Prepend _generated_sql and _transcription columns")

    subparsers.add_parser("config", help="Show effective settings")
    subparsers.add_parser("version", help="Show version information")
    return parser


def collect_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    names = ("model", "model_path", "device_id", "language", "threads", "translate", "use_gpu",
             "verbose", "max_duration", "silence_duration", "silence_threshold",
             "text_to_sql_url", "voice_query_timeout")
    return {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}


def run_command(app: App, args: argparse.Namespace) -> int:
    command = args.command
    if command == "version":
        app.console.print(version_string())
        return 0
    if command == "devices":
        app.list_devices()
        return 0

    settings = app.settings(**collect_overrides(args))
    if command == "models":
        app.list_models(settings)
    elif command == "download-model":
        app.download_model(args.name, settings)
    elif command == "transcribe":
        return 0 if app.transcribe_files(args.files, settings, args.segments) else 1
    elif command == "record":
        app.record(settings, args.duration, args.segments)
    elif command == "record-auto":
        app.record_auto(settings, args.segments)
    elif command == "mic-level":
        app.mic_level(settings, args.duration)
    elif command == "voice-to-sql":
        app.voice_to_sql(settings, args.database)
    elif command == "voice-query":
        app.voice_query(settings, args.database, args.with_sql)
    elif command == "config":
        app.show_config(settings)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for voicequery."""
    args = build_parser().parse_args(argv)
    err_console = Console(stderr=True)

    try:
        config = VoiceQueryConfig(args.config)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
    except VoiceQueryError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    app = App(config, err_console=err_console)
    try:
        return run_command(app, args)
    except KeyboardInterrupt:
        err_console.print("\nInterrupted")
        return 130
    except VoiceQueryError as e:
        logger.error(f"Command {args.command} failed: {e}")
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    finally:
        app.shutdown()


if __name__ == "__main__":
    sys.exit(main())
