"""
Audio container conversion with ffmpeg.

voxmlx only reads a handful of containers. Anything else (webm and m4a
from browsers and phones) is converted to 16 kHz mono PCM WAV first.
"""

from pathlib import Path
from typing import Union
import logging

from ..transcription.process import (
    CommandError,
    CommandNotFoundError,
    run_command,
)

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({"wav", "flac", "mp3", "ogg"})
CONVERSION_TIMEOUT = 120.0
FFMPEG_INSTALL_HINT = "ffmpeg not found. Please install: brew install ffmpeg (macOS) or apt install ffmpeg (Linux)"


class ConversionFailedError(Exception):
    """Raised when an audio file cannot be converted."""
    pass


class AudioConverter:
    """Converts unsupported audio containers to WAV for transcription."""

    def __init__(self, ffmpeg: str = "ffmpeg", timeout: float = CONVERSION_TIMEOUT):
        self.ffmpeg = ffmpeg
        self.timeout = timeout

    def needs_conversion(self, path: Union[str, Path]) -> bool:
        return Path(path).suffix.lower().lstrip(".") not in SUPPORTED_EXTENSIONS

    async def convert_to_wav(self, input_path: Union[str, Path]) -> Path:
        """
        Convert an audio file to 16 kHz mono PCM WAV next to the input.

        Returns:
            Path of the converted file

        Raises:
            ConversionFailedError: If ffmpeg is missing or exits non-zero
        """
        source = Path(input_path)
        output = source.with_suffix(".wav")
        args = [
            self.ffmpeg, "-y",
            "-i", str(source),
            "-ar", "16000",
            "-ac", "1",
            "-c:a", "pcm_s16le",
            str(output),
        ]

        logger.info(f"Converting {source.name} to WAV")
        try:
            await run_command(args, timeout=self.timeout)
        except CommandNotFoundError as e:
            raise ConversionFailedError(FFMPEG_INSTALL_HINT) from e
        except CommandError as e:
            # ffmpeg may have written part of the output before failing
            self.cleanup(output)
            # ffmpeg prints its banner first, the cause is at the end
            tail = (e.stderr or str(e)).strip()[-500:]
            raise ConversionFailedError(f"Audio conversion failed: {tail}") from e

        return output

    def cleanup(self, path: Union[str, Path]) -> None:
        """Delete an intermediate file. Failures are logged, not raised."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete converted file {path}: {e}")

    async def check_ffmpeg(self) -> bool:
        try:
            await run_command([self.ffmpeg, "-version"], timeout=self.timeout)
        except CommandError:
            return False
        return True
