"""Capture, transcribe and generate SQL under one overall deadline."""

import concurrent.futures
import logging
import threading
from typing import Callable, Optional

from ..audio.recorder import SilenceGatedRecorder
from ..config.settings import WhisperSettings
from ..errors import CaptureError, PipelineTimeoutError
from ..models.pipeline import PipelineJob, VoiceQueryResult
from ..status import StatusPublisher
from ..transcription.orchestrator import TranscriptionOrchestrator
from .host import QueryHost, run_query
from .http_client import TextToSqlClient

logger = logging.getLogger(__name__)

NO_SPEECH_MESSAGE = "No speech detected. Please try again."
METADATA_COLUMNS = ["_generated_sql", "_transcription"]


class BoundedPipelineExecutor:
    """Runs the voice pipeline on a worker thread and waits with a deadline.

    Each invocation gets its own daemon thread. On timeout the caller gets
    PipelineTimeoutError but the worker is not stopped: it may keep the
    microphone open and the model busy until it finishes, and its result is
    discarded.
    """

    def __init__(self, orchestrator: TranscriptionOrchestrator,
                 recorder_factory: Callable[[], SilenceGatedRecorder] = SilenceGatedRecorder,
                 client_factory: Callable[[str, float], TextToSqlClient] = TextToSqlClient,
                 status: Optional[StatusPublisher] = None):
        self.orchestrator = orchestrator
        self.recorder_factory = recorder_factory
        self.client_factory = client_factory
        self.status = status or StatusPublisher(enabled=False)

    def run(self, host: QueryHost, settings: WhisperSettings,
            device_id: Optional[int] = None) -> PipelineJob:
        """Produce generated SQL for one spoken question.

        The schema is read here, on the calling thread; everything else runs
        on the worker.

        Raises:
            PipelineTimeoutError: if ``settings.voice_query_timeout`` elapses first
        """
        device_id = settings.device_id if device_id is None else device_id
        self.status.publish("schema", "Extracting database schema...")
        job = PipelineJob(schema_snapshot=host.schema_snapshot(),
                          deadline_seconds=settings.voice_query_timeout)

        future: concurrent.futures.Future = concurrent.futures.Future()

        def work() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                self._record_and_generate(job, settings, device_id)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(job)

        worker = threading.Thread(target=work, name="VoiceQueryWorker", daemon=True)
        worker.start()

        try:
            return future.result(timeout=job.deadline_seconds)
        except concurrent.futures.TimeoutError:
            # The worker may finish between the wait expiring and this check.
            if future.done():
                return future.result(timeout=0)
            logger.warning(f"Voice query deadline of {job.deadline_seconds}s elapsed; "
                           f"worker {worker.name} left running")
            raise PipelineTimeoutError(
                f"Voice query timed out after {job.deadline_seconds:g} seconds. "
                f"Increase voice_query_timeout if needed.")

    def _record_and_generate(self, job: PipelineJob, settings: WhisperSettings, device_id: int) -> None:
        recorder = self.recorder_factory()
        self.status.publish("listening", "Listening...")
        outcome = recorder.record_until_silence(
            max_duration=settings.max_duration,
            silence_duration=settings.silence_duration,
            threshold=settings.silence_threshold,
            device_id=device_id,
        )
        self.status.publish("listening", "Stopped")
        if not outcome.has_audio:
            raise CaptureError(NO_SPEECH_MESSAGE)
        job.samples = outcome.samples

        self.status.publish("transcribing", "Transcribing...")
        transcription = self.orchestrator.transcribe(job.samples, settings)
        job.transcription = transcription.full_text.strip()
        if not job.transcription:
            raise CaptureError(NO_SPEECH_MESSAGE)
        self.status.publish("transcribing", f"Transcribed: '{job.transcription}'")

        client = self.client_factory(settings.text_to_sql_url, settings.text_to_sql_timeout)
        self.status.publish("remote", "Text-to-SQL request sent...")
        job.generated_sql = client.generate_sql_sync(job.schema_snapshot, job.transcription)
        self.status.publish("remote", "Text-to-SQL response received")

    def voice_to_sql(self, host: QueryHost, settings: WhisperSettings,
                     device_id: Optional[int] = None) -> str:
        return self.run(host, settings, device_id).generated_sql

    def voice_query(self, host: QueryHost, settings: WhisperSettings,
                    device_id: Optional[int] = None, include_sql: bool = False) -> VoiceQueryResult:
        """Generate SQL from speech and execute it on a secondary connection.

        The primary connection stays busy for the whole call.
        """
        include_sql = include_sql or settings.voice_query_show_sql
        with host.dispatching():
            connection = host.open_secondary()
            try:
                job = self.run(host, settings, device_id)
                self.status.publish("query", f"SQL: {job.generated_sql}")
                columns, rows = run_query(connection, job.generated_sql)
            finally:
                connection.close()

        if include_sql:
            columns = METADATA_COLUMNS + columns
            rows = [(job.generated_sql, job.transcription) + row for row in rows]
        self.status.publish("query", f"{len(rows)} row(s)")
        return VoiceQueryResult(sql=job.generated_sql, transcription=job.transcription,
                                columns=columns, rows=rows)
