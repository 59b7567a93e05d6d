"""
Speech-to-text transcription using the voxmlx CLI.

Locates (and if needed installs) the voxmlx executable, converts audio
containers it cannot read, runs it on the file and parses its output
into an immutable TranscriptionResult.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import json
import logging
import shutil
import time

from ..audio.converter import AudioConverter, ConversionFailedError
from .installer import ToolInstaller
from .process import (
    CommandError,
    CommandTimeoutError,
    extended_path,
    run_command,
)

logger = logging.getLogger(__name__)

TOOL_NAME = "voxmlx"
TRANSCRIBE_TIMEOUT = 600.0
PROBE_TIMEOUT = 30.0

FALLBACK_LOCATIONS = (
    Path.home() / ".local" / "bin" / TOOL_NAME,
    Path("/opt/homebrew/bin") / TOOL_NAME,
)


class TranscriptionError(Exception):
    """Base exception for transcription errors."""
    pass


class TranscriptionTimeoutError(TranscriptionError):
    """Raised when voxmlx does not finish within the timeout."""
    pass


@dataclass(frozen=True)
class TranscriptionSegment:
    """A single speaker turn with timing information."""
    speaker: str
    text: str
    start: float  # seconds
    end: float    # seconds


@dataclass(frozen=True)
class TranscriptionMetadata:
    model: str
    processing_time: float  # seconds
    audio_path: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class TranscriptionResult:
    """Complete transcription result with metadata."""
    text: str
    duration: float
    language: str
    speaker_count: int
    segments: Tuple[TranscriptionSegment, ...]
    metadata: TranscriptionMetadata


def parse_tool_output(stdout: str) -> Dict[str, Any]:
    """
    Parse voxmlx stdout.

    JSON output is used as-is. Anything else is treated as the plain
    transcript text with default metadata.
    """
    try:
        data = json.loads(stdout)
    except ValueError:
        data = None

    if not isinstance(data, dict):
        return {"text": stdout.strip(), "duration": 0, "language": "unknown", "segments": []}
    return data


def build_segments(raw_segments: Any) -> Tuple[TranscriptionSegment, ...]:
    segments = []
    for raw in raw_segments or []:
        segments.append(TranscriptionSegment(
            speaker=str(raw.get("speaker", "")),
            text=str(raw.get("text", "")),
            start=float(raw.get("startTime", 0) or 0),
            end=float(raw.get("endTime", 0) or 0),
        ))
    return tuple(segments)


class VoxmlxTranscriber:
    """
    Runs voxmlx on audio files.

    Args:
        tool_path: Configured executable path (empty means auto-detect)
        model: Model name recorded in the result metadata
        converter: AudioConverter for unsupported containers
        installer: ToolInstaller used when the tool is missing
        timeout: Seconds before a transcription is abandoned
    """

    def __init__(
        self,
        tool_path: str = "",
        model: str = "",
        converter: Optional[AudioConverter] = None,
        installer: Optional[ToolInstaller] = None,
        timeout: float = TRANSCRIBE_TIMEOUT
    ):
        self.tool_path = tool_path
        self.model = model
        self.converter = converter or AudioConverter()
        self.installer = installer or ToolInstaller(verify=self.is_available)
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "VoxmlxTranscriber":
        return cls(tool_path=settings.tool_path, model=settings.tool_model)

    def find_executable(self) -> str:
        """
        Resolve the voxmlx executable.

        Order: configured path, PATH lookup (extended), known install
        locations. Falls back to the bare name so the probe reports it.
        """
        if self.tool_path:
            return self.tool_path

        found = shutil.which(TOOL_NAME, path=extended_path())
        if found:
            return found

        for location in FALLBACK_LOCATIONS:
            if location.exists():
                return str(location)

        return TOOL_NAME

    async def is_available(self) -> bool:
        """Probe the executable with --version."""
        try:
            await run_command([self.find_executable(), "--version"], timeout=PROBE_TIMEOUT)
        except CommandError as e:
            logger.debug(f"{TOOL_NAME} probe failed: {e}")
            return False
        return True

    async def get_version(self) -> Optional[str]:
        try:
            result = await run_command([self.find_executable(), "--version"], timeout=PROBE_TIMEOUT)
        except CommandError:
            return None
        return result.stdout.strip() or None

    async def ensure_available(self) -> None:
        """
        Make sure voxmlx can be run, installing it when the probe fails.

        Raises:
            InstallerError: If installation is impossible or fails
        """
        if await self.is_available():
            return
        logger.info(f"{TOOL_NAME} not found, attempting to install")
        await self.installer.install()

    async def transcribe(self, audio_path: Union[str, Path]) -> TranscriptionResult:
        """
        Transcribe an audio file.

        Args:
            audio_path: Path to the audio file

        Returns:
            TranscriptionResult with text, segments and metadata

        Raises:
            TranscriptionTimeoutError: If voxmlx runs past the timeout
            ConversionFailedError: If the audio cannot be converted to WAV
            TranscriptionError: For any other transcription failure
        """
        await self.ensure_available()

        source = Path(audio_path)
        converted: Optional[Path] = None
        start_time = time.time()

        try:
            target = source
            if self.converter.needs_conversion(source):
                converted = await self.converter.convert_to_wav(source)
                target = converted

            args = [self.find_executable(), "--audio", str(target.resolve())]
            try:
                result = await run_command(args, timeout=self.timeout)
            except CommandTimeoutError as e:
                raise TranscriptionTimeoutError(
                    "Transcription timed out. The audio file may be too long."
                ) from e

            stderr = result.stderr.strip()
            if stderr and "Loading" not in stderr and "Processing" not in stderr:
                logger.warning(f"{TOOL_NAME} stderr: {stderr}")

            data = parse_tool_output(result.stdout)
        except (TranscriptionError, ConversionFailedError):
            raise
        except Exception as e:
            raise TranscriptionError(f"Transcription failed: {e}") from e
        finally:
            if converted is not None:
                self.converter.cleanup(converted)

        processing_time = time.time() - start_time
        logger.info(f"Transcribed {source.name} in {processing_time:.2f}s")

        return TranscriptionResult(
            text=str(data.get("text", "")),
            duration=float(data.get("duration") or 0),
            language=data.get("language") or "unknown",
            speaker_count=len(data.get("speakers") or []) or 1,
            segments=build_segments(data.get("segments")),
            metadata=TranscriptionMetadata(
                model=self.model,
                processing_time=processing_time,
                audio_path=str(audio_path),
            ),
        )
