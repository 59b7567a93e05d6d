"""
Microphone capture using PyAudio.

The recorder is the pipeline's capture device: start() acquires the
microphone, stop() releases it and returns the take as a WAV
AudioArtifact. PyAudio is an optional dependency (the `capture` extra);
it is imported when recording starts.
"""

import asyncio
import io
import logging
import wave
from typing import Any, Dict, List, Optional

from .artifact import AudioArtifact

logger = logging.getLogger(__name__)


class AudioRecorderError(Exception):
    """Base exception for audio recorder errors."""
    pass


class MicrophonePermissionError(AudioRecorderError):
    """Raised when microphone permissions are not granted."""
    pass


class DeviceError(AudioRecorderError):
    """Raised when no audio input devices are available."""
    pass


def load_pyaudio():
    """Import PyAudio, turning a missing install into a recorder error."""
    try:
        import pyaudio
    except ImportError as e:
        raise AudioRecorderError(
            "PyAudio is required for recording. Install it with: pip install 'vmemo[capture]'"
        ) from e
    return pyaudio


class AudioRecorder:
    """
    Async microphone recorder producing WAV artifacts.

    Args:
        sample_rate: Sample rate in Hz (16kHz matches the transcription input)
        chunk_size: Frames read per buffer
        channels: 1 for mono, 2 for stereo

    Example:
        >>> recorder = AudioRecorder()
        >>> await recorder.start()
        >>> artifact = await recorder.stop()
        >>> artifact.mime_type
        'audio/wav'
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1
    ):
        if sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate}")
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        if channels not in (1, 2):
            raise ValueError(f"Channels must be 1 or 2, got {channels}")

        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.sample_width = 2  # 16-bit

        self._audio = None
        self._stream = None
        self._is_recording = False
        self._frames: List[bytes] = []
        self._recording_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """
        Acquire the microphone and begin buffering audio.

        Raises:
            AudioRecorderError: If already recording or the stream cannot be opened
            MicrophonePermissionError: If microphone access is denied
            DeviceError: If no input devices are available
        """
        if self._is_recording:
            raise AudioRecorderError("Recording already in progress")

        pyaudio = load_pyaudio()
        try:
            self._audio = pyaudio.PyAudio()
            if not self._has_input_devices():
                raise DeviceError("No audio input devices found")

            self._frames = []
            try:
                self._stream = self._audio.open(
                    format=pyaudio.paInt16,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    frames_per_buffer=self.chunk_size,
                )
            except OSError as e:
                if "device" in str(e).lower() or "input" in str(e).lower():
                    raise MicrophonePermissionError(self._permission_hint()) from e
                raise AudioRecorderError(f"Failed to open audio stream: {e}") from e

            self._is_recording = True
            self._recording_task = asyncio.create_task(self._record_loop())
            logger.info(f"Recording started: {self.sample_rate}Hz, {self.channels} channel(s)")

        except AudioRecorderError:
            self._release()
            raise
        except Exception as e:
            self._release()
            raise AudioRecorderError(f"Failed to start recording: {e}") from e

    async def stop(self) -> AudioArtifact:
        """
        Release the microphone and return the captured audio.

        Raises:
            AudioRecorderError: If not recording
        """
        if not self._is_recording:
            raise AudioRecorderError("Not currently recording")

        self._is_recording = False
        try:
            if self._recording_task:
                await self._recording_task
        finally:
            self._recording_task = None
            self._release()

        artifact = AudioArtifact(data=self._wav_bytes(), mime_type="audio/wav")
        logger.info(f"Recording stopped: {len(artifact.data)} bytes captured")
        return artifact

    def is_recording(self) -> bool:
        return self._is_recording

    async def _record_loop(self) -> None:
        loop = asyncio.get_event_loop()
        while self._is_recording and self._stream is not None:
            try:
                # Blocking read, keep it off the event loop
                data = await loop.run_in_executor(
                    None, lambda: self._stream.read(self.chunk_size, exception_on_overflow=False)
                )
            except OSError as e:
                logger.warning(f"Audio read error: {e}")
                break
            if data:
                self._frames.append(data)
        logger.debug("Recording loop ended")

    def _wav_bytes(self) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(self.channels)
            wav_file.setsampwidth(self.sample_width)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(b"".join(self._frames))
        return buffer.getvalue()

    def _has_input_devices(self) -> bool:
        try:
            for index in range(self._audio.get_device_count()):
                if self._audio.get_device_info_by_index(index).get("maxInputChannels", 0) > 0:
                    return True
        except OSError as e:
            logger.warning(f"Error checking input devices: {e}")
        return False

    def _permission_hint(self) -> str:
        return (
            "Microphone access denied. On macOS:\n"
            "1. Open System Settings → Privacy & Security → Microphone\n"
            "2. Enable microphone access for your terminal\n"
            "3. Restart the terminal and try again"
        )

    def _release(self) -> None:
        """Close the stream and terminate PyAudio."""
        try:
            if self._stream is not None:
                if self._stream.is_active():
                    self._stream.stop_stream()
                self._stream.close()
            if self._audio is not None:
                self._audio.terminate()
        except OSError as e:
            logger.warning(f"Error during cleanup: {e}")
        finally:
            self._stream = None
            self._audio = None

    async def __aenter__(self) -> "AudioRecorder":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._is_recording:
            await self.stop()


def list_input_devices() -> List[Dict[str, Any]]:
    """
    List audio input devices.

    Raises:
        DeviceError: If the devices cannot be enumerated
    """
    pyaudio = load_pyaudio()
    audio = pyaudio.PyAudio()
    devices = []
    try:
        for index in range(audio.get_device_count()):
            info = audio.get_device_info_by_index(index)
            if info.get("maxInputChannels", 0) > 0:
                devices.append({
                    "index": index,
                    "name": info.get("name", "Unknown"),
                    "channels": info.get("maxInputChannels", 0),
                    "sample_rate": int(info.get("defaultSampleRate", 0)),
                })
    except OSError as e:
        raise DeviceError(f"Failed to enumerate audio devices: {e}") from e
    finally:
        audio.terminate()
    return devices
