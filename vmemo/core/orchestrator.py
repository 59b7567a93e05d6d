"""
Pipeline orchestration: capture, persist, transcribe, format, render.

PipelineOrchestrator owns the single CaptureSession and drives it through

    idle -> recording -> processing -> transcribing -> formatting -> complete -> idle

Any state can fall into error; a new start() or upload_audio() leaves it.
Only one run exists at a time, and a start or stop arriving while a
transition is in flight is rejected rather than queued.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional
import asyncio
import logging
import time

from ..audio.artifact import AudioArtifact
from ..audio.recorder import AudioRecorder
from ..config import Settings, SettingsStore
from ..formatting.formatter import FormattedDocument, FormatterService
from ..formatting.template_engine import TemplateEngine, TemplateVariables
from ..transcription.transcriber import TranscriptionResult, VoxmlxTranscriber
from .storage import LocalFileStore

logger = logging.getLogger(__name__)


class OrchestratorError(Exception):
    """Base exception for orchestrator errors."""
    pass


class ConflictError(OrchestratorError):
    """Raised when a session is active or a transition is already running."""
    pass


class NotActiveError(OrchestratorError):
    """Raised when stop() is called with no recording in progress."""
    pass


class RecordingStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    FORMATTING = "formatting"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class CaptureSession:
    status: RecordingStatus = RecordingStatus.IDLE
    started_at: Optional[float] = None
    duration: float = 0.0  # seconds
    audio: Optional[AudioArtifact] = None
    audio_path: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PipelineEvent:
    """Notification sent to listeners on each stage change and duration tick."""
    kind: str  # "stage" or "tick"
    status: RecordingStatus
    duration: float = 0.0
    message: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class RunResult:
    audio_path: str
    transcript_path: str
    transcription: TranscriptionResult
    document: Optional[FormattedDocument]
    content: str


Listener = Callable[[PipelineEvent], None]


def file_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC timestamp safe for file names, e.g. 2026-10-17T09-05-03."""
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat().replace(":", "-").replace(".", "-")[:19]


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def title_from_transcript(text: str) -> str:
    first_words = " ".join(text.split()[:5])
    if len(first_words) > 50:
        return first_words[:47] + "..."
    return first_words or "Untitled Recording"


def format_date(moment: datetime) -> str:
    return f"{moment:%B} {moment.day}, {moment.year}"


def format_time(moment: datetime) -> str:
    return moment.strftime("%I:%M %p")


class PipelineOrchestrator:
    """
    Drives recordings and uploads through the processing pipeline.

    Args:
        store: Settings store; a snapshot is taken at the start of each run
        device: Capture device with async start() and stop() -> AudioArtifact
        file_store: Where recordings and transcripts are written
        transcriber_factory: Builds a transcriber from a Settings snapshot
        formatter_factory: Builds a formatter from a Settings snapshot
        template_engine_factory: Builds a template engine from a Settings snapshot
        tick_interval: Seconds between duration ticks while recording
        clock: Wall-clock source in seconds
    """

    def __init__(
        self,
        store: SettingsStore,
        device=None,
        file_store: Optional[LocalFileStore] = None,
        transcriber_factory: Callable[[Settings], VoxmlxTranscriber] = VoxmlxTranscriber.from_settings,
        formatter_factory: Callable[[Settings], FormatterService] = FormatterService,
        template_engine_factory: Callable[[Settings], TemplateEngine] = TemplateEngine,
        tick_interval: float = 1.0,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.device = device or AudioRecorder()
        self.file_store = file_store or LocalFileStore()
        self.transcriber_factory = transcriber_factory
        self.formatter_factory = formatter_factory
        self.template_engine_factory = template_engine_factory
        self.tick_interval = tick_interval
        self.clock = clock

        self.last_result: Optional[RunResult] = None
        self.last_error: Optional[BaseException] = None

        self._session = CaptureSession()
        self._settings: Optional[Settings] = None
        self._busy = False
        self._tick_task: Optional[asyncio.Task] = None
        self._auto_stop_task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get_state(self) -> CaptureSession:
        """Copy of the current session."""
        return replace(self._session)

    def is_recording(self) -> bool:
        return self._session.status is RecordingStatus.RECORDING

    def _check_can_begin(self) -> None:
        if self._busy:
            raise ConflictError("Another operation is already in progress")
        if self._session.status not in (RecordingStatus.IDLE, RecordingStatus.ERROR):
            raise ConflictError(f"A session is already active ({self._session.status.value})")

    async def start(self) -> None:
        """
        Begin capturing audio.

        Raises:
            ConflictError: If a session is active or a transition is running
            Exception: Whatever the capture device raises; the session moves to error
        """
        self._check_can_begin()
        self._busy = True
        try:
            settings = self.store.snapshot()
            try:
                await self.device.start()
            except Exception as e:
                self._fail(e)
                raise

            self._settings = settings
            self._session = CaptureSession(status=RecordingStatus.RECORDING, started_at=self.clock())
            self._tick_task = asyncio.create_task(self._tick())
            self._emit_stage(RecordingStatus.RECORDING, "Recording started")
        finally:
            self._busy = False

    async def stop(self) -> RunResult:
        """
        Stop capturing and run the captured audio through the pipeline.

        Raises:
            NotActiveError: If nothing is being recorded
            ConflictError: If a transition is already running
            Exception: Any stage failure, after the session moves to error
        """
        if self._busy:
            raise ConflictError("Another operation is already in progress")
        if self._session.status is not RecordingStatus.RECORDING:
            raise NotActiveError("No recording in progress")

        self._busy = True
        try:
            self._stop_tick()
            if self._session.started_at is not None:
                self._session.duration = self.clock() - self._session.started_at
            self._set_status(RecordingStatus.PROCESSING, "Saving audio file...")
            return await self._run(self._capture_and_process)
        finally:
            self._busy = False

    async def upload_audio(self, artifact: AudioArtifact) -> RunResult:
        """
        Run an existing audio artifact through the pipeline, skipping capture.

        Raises:
            ConflictError: If a session is active or a transition is running
            Exception: Any stage failure, after the session moves to error
        """
        self._check_can_begin()
        self._busy = True
        try:
            self._settings = self.store.snapshot()
            self._session = CaptureSession(status=RecordingStatus.PROCESSING, audio=artifact)
            self._emit_stage(RecordingStatus.PROCESSING, "Processing uploaded file...")
            return await self._run(lambda: self._process(artifact))
        finally:
            self._busy = False

    async def wait_for_auto_stop(self) -> None:
        """Wait for a duration-triggered stop to finish, if one is running."""
        if self._auto_stop_task is not None:
            await asyncio.gather(self._auto_stop_task, return_exceptions=True)

    async def _run(self, pipeline) -> RunResult:
        try:
            result = await pipeline()
        except Exception as e:
            self._fail(e)
            raise
        self.last_result = result
        self.last_error = None
        return result

    async def _capture_and_process(self) -> RunResult:
        artifact = await self.device.stop()
        self._session.audio = artifact
        return await self._process(artifact)

    async def _process(self, artifact: AudioArtifact) -> RunResult:
        settings = self._settings
        timestamp = file_timestamp()
        folder = settings.recording_folder

        if not self.file_store.exists(folder):
            self.file_store.mkdir(folder)

        audio_path = f"{folder}/recording-{timestamp}.{artifact.extension}"
        self.file_store.write(audio_path, artifact.data)
        self._session.audio_path = audio_path
        logger.info(f"Audio saved to {audio_path}")

        self._set_status(RecordingStatus.TRANSCRIBING, "Converting speech to text with voxmlx...")
        transcriber = self.transcriber_factory(settings)
        transcription = await transcriber.transcribe(self.file_store.resolve(audio_path))

        document: Optional[FormattedDocument] = None
        content = transcription.text
        if settings.auto_format:
            self._set_status(RecordingStatus.FORMATTING, "Formatting transcript with AI...")
            formatter = self.formatter_factory(settings)
            document = await formatter.format(transcription.text, settings.default_template)
            content = document.content

        transcript_path = f"{folder}/transcript-{timestamp}.md"
        now = datetime.now()
        variables = TemplateVariables(
            date=format_date(now),
            time=format_time(now),
            datetime=datetime.now(timezone.utc).isoformat(),
            title=title_from_transcript(transcription.text),
            duration=format_duration(transcription.duration or self._session.duration),
            audio_path=audio_path,
            transcript_path=transcript_path,
            speaker_count=transcription.speaker_count,
            language=transcription.language,
            content=content,
            summary=document.summary if document else None,
            custom_fields=dict(settings.custom_fields),
        )
        final_document = self.template_engine_factory(settings).render(variables)

        if not self.file_store.exists(folder):
            self.file_store.mkdir(folder)
        self.file_store.write(transcript_path, final_document)
        logger.info(f"Transcript saved to {transcript_path}")

        if not settings.keep_audio_files:
            self.file_store.remove(audio_path)
            logger.debug(f"Removed {audio_path}")

        self._set_status(RecordingStatus.COMPLETE, f"Saved to {transcript_path}")
        self._session = CaptureSession()

        return RunResult(
            audio_path=audio_path,
            transcript_path=transcript_path,
            transcription=transcription,
            document=document,
            content=final_document,
        )

    async def _tick(self) -> None:
        while self._session.status is RecordingStatus.RECORDING:
            await asyncio.sleep(self.tick_interval)
            if self._session.status is not RecordingStatus.RECORDING:
                return

            self._session.duration = self.clock() - self._session.started_at
            self._emit(PipelineEvent(
                kind="tick", status=RecordingStatus.RECORDING, duration=self._session.duration
            ))

            if self._session.duration >= self._settings.max_recording_seconds:
                logger.info("Maximum recording duration reached")
                self._emit_stage(RecordingStatus.RECORDING, "Maximum recording duration reached")
                self._auto_stop_task = asyncio.current_task()
                try:
                    await self.stop()
                except Exception as e:
                    # Outcome is on last_error, the tick has no caller to raise to
                    logger.error(f"Automatic stop failed: {e}")
                return

    def _stop_tick(self) -> None:
        task, self._tick_task = self._tick_task, None
        # The tick calls stop() itself at max duration and must not cancel itself
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    def _set_status(self, status: RecordingStatus, message: str = "") -> None:
        self._session.status = status
        self._emit_stage(status, message)

    def _fail(self, error: BaseException) -> None:
        message = str(error) or error.__class__.__name__
        self._stop_tick()
        self._session.status = RecordingStatus.ERROR
        self._session.error = message
        self.last_error = error
        logger.error(f"Pipeline failed: {message}")
        self._emit(PipelineEvent(
            kind="stage",
            status=RecordingStatus.ERROR,
            duration=self._session.duration,
            message=message,
            error=message,
        ))

    def _emit_stage(self, status: RecordingStatus, message: str = "") -> None:
        self._emit(PipelineEvent(
            kind="stage", status=status, duration=self._session.duration, message=message
        ))

    def _emit(self, event: PipelineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Listener failed on {event.kind} event: {e}")
