"""
Integration tests for VMemo components.

These tests verify that components work together correctly and catch
common integration issues like missing methods or incompatible interfaces.
"""

import asyncio
import dataclasses
import inspect
import io
import sys
import wave
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from conftest import PipelineHarness, make_document, make_transcription
from vmemo import __version__
from vmemo.audio.artifact import AudioArtifact
from vmemo.audio.recorder import AudioRecorder, AudioRecorderError, DeviceError, load_pyaudio
from vmemo.config import Settings, SettingsStore
from vmemo.core.orchestrator import PipelineOrchestrator
from vmemo.formatting.formatter import FormatterService
from vmemo.main import VMemoApp, cli
from vmemo.transcription.transcriber import VoxmlxTranscriber
from vmemo.ui.terminal import TerminalUI


def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=200)


class TestMethodExistence:
    """Test that all required methods exist on components."""

    def test_audio_recorder_methods(self):
        recorder = AudioRecorder()
        assert inspect.iscoroutinefunction(recorder.start)
        assert inspect.iscoroutinefunction(recorder.stop)
        assert not inspect.iscoroutinefunction(recorder.is_recording)

    def test_transcriber_methods(self):
        transcriber = VoxmlxTranscriber()
        assert inspect.iscoroutinefunction(transcriber.transcribe)
        assert inspect.iscoroutinefunction(transcriber.ensure_available)
        assert not inspect.iscoroutinefunction(transcriber.find_executable)

    def test_formatter_methods(self):
        assert inspect.iscoroutinefunction(FormatterService().format)

    def test_orchestrator_methods(self, tmp_path):
        orchestrator = PipelineOrchestrator(SettingsStore(tmp_path / "v.yaml"), device=Mock())
        assert inspect.iscoroutinefunction(orchestrator.start)
        assert inspect.iscoroutinefunction(orchestrator.stop)
        assert inspect.iscoroutinefunction(orchestrator.upload_audio)
        assert not inspect.iscoroutinefunction(orchestrator.get_state)

    def test_terminal_ui_methods(self):
        ui = TerminalUI(quiet_console())
        # handle_event is a synchronous orchestrator listener
        assert not inspect.iscoroutinefunction(ui.handle_event)
        assert inspect.iscoroutinefunction(ui.show_error)
        assert inspect.iscoroutinefunction(ui.show_success)


class TestDataStructures:
    """Test that data structures are compatible between components."""

    def test_results_are_immutable(self):
        transcription = make_transcription()
        document = make_document()
        with pytest.raises(dataclasses.FrozenInstanceError):
            transcription.text = "changed"
        with pytest.raises(dataclasses.FrozenInstanceError):
            document.title = "changed"
        assert isinstance(transcription.segments, tuple)

    @pytest.mark.parametrize("mime_type, extension", [
        ("audio/webm;codecs=opus", "webm"),
        ("audio/ogg", "ogg"),
        ("audio/mp4", "m4a"),
        ("audio/mpeg", "mp3"),
        ("audio/wav", "wav"),
        ("audio/x-wav", "wav"),
        ("application/octet-stream", "webm"),
    ])
    def test_artifact_extension(self, mime_type, extension):
        assert AudioArtifact(b"", mime_type).extension == extension

    def test_artifact_from_path(self, tmp_path):
        audio = tmp_path / "memo.m4a"
        audio.write_bytes(b"data")
        artifact = AudioArtifact.from_path(audio)
        assert artifact.data == b"data"
        assert artifact.extension == "m4a"

    def test_artifact_rejects_non_audio(self, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        with pytest.raises(ValueError, match="audio file"):
            AudioArtifact.from_path(notes)


class FakeStream:
    def __init__(self):
        self.closed = False

    def read(self, frames, exception_on_overflow=True):
        return b"\x01\x00" * frames

    def is_active(self):
        return not self.closed

    def stop_stream(self):
        pass

    def close(self):
        self.closed = True


def fake_pyaudio(input_channels=1):
    module = Mock()
    module.paInt16 = 8
    instance = module.PyAudio.return_value
    instance.get_device_count.return_value = 1
    instance.get_device_info_by_index.return_value = {"maxInputChannels": input_channels}
    instance.open.return_value = FakeStream()
    return module


class TestAudioRecorder:

    @pytest.mark.asyncio
    async def test_records_wav_artifact(self):
        module = fake_pyaudio()
        with patch("vmemo.audio.recorder.load_pyaudio", return_value=module):
            recorder = AudioRecorder(sample_rate=16000, chunk_size=256)
            await recorder.start()
            assert recorder.is_recording()
            await asyncio.sleep(0.05)
            artifact = await recorder.stop()

        assert not recorder.is_recording()
        assert artifact.mime_type == "audio/wav"
        with wave.open(io.BytesIO(artifact.data), "rb") as wav_file:
            assert wav_file.getframerate() == 16000
            assert wav_file.getnchannels() == 1
            assert wav_file.getnframes() > 0
        module.PyAudio.return_value.terminate.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_input_devices(self):
        with patch("vmemo.audio.recorder.load_pyaudio", return_value=fake_pyaudio(input_channels=0)):
            with pytest.raises(DeviceError):
                await AudioRecorder().start()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        with pytest.raises(AudioRecorderError):
            await AudioRecorder().stop()

    def test_missing_pyaudio(self):
        with patch.dict(sys.modules, {"pyaudio": None}):
            with pytest.raises(AudioRecorderError, match="vmemo\\[capture\\]"):
                load_pyaudio()


@pytest.mark.asyncio
class TestMockedIntegration:
    """Test the app with the pipeline wired to fakes and input mocked."""

    def _app(self, tmp_path, settings=None):
        harness = PipelineHarness(tmp_path, settings or Settings(recording_folder="recs"))
        app = VMemoApp(harness.store, console=quiet_console())
        app._orchestrator = harness.orchestrator
        harness.orchestrator.add_listener(app.ui.handle_event)
        return app, harness

    async def test_record_session_with_copy(self, tmp_path):
        app, harness = self._app(tmp_path)

        with patch("builtins.input", return_value=""), \
             patch("vmemo.main.pyperclip.copy") as mock_clipboard:
            code = await app.record(copy=True)

        assert code == 0
        assert harness.device.stop_calls == 1
        result = harness.orchestrator.last_result
        mock_clipboard.assert_called_once_with(result.content)
        output = app.console.file.getvalue()
        assert "Transcript saved" in output
        assert "Copied to clipboard" in output

    async def test_record_error_is_displayed(self, tmp_path):
        app, harness = self._app(tmp_path)
        harness.device.start_error = OSError("Microphone not found")

        code = await app.record()

        assert code == 1
        assert "Microphone not found" in app.console.file.getvalue()

    async def test_upload_session(self, tmp_path):
        app, harness = self._app(tmp_path)
        audio = tmp_path / "memo.wav"
        audio.write_bytes(b"RIFF")

        code = await app.upload(audio)

        assert code == 0
        assert "recording" not in harness.stages
        assert harness.stages[-1] == "complete"

    async def test_pipeline_failure_is_displayed(self, tmp_path):
        app, harness = self._app(tmp_path)
        harness.formatter.format.side_effect = RuntimeError("anthropic API key not configured")
        audio = tmp_path / "memo.wav"
        audio.write_bytes(b"RIFF")

        code = await app.upload(audio)

        assert code == 1
        output = app.console.file.getvalue()
        assert "API key not configured" in output
        assert "vmemo config set" in output


class TestCli:
    """Exercise the click commands end to end."""

    @pytest.fixture
    def invoke(self, tmp_path):
        runner = CliRunner()
        config_path = str(tmp_path / "vmemo.yaml")

        def run(*args):
            with patch("vmemo.main.setup_logging"):
                return runner.invoke(cli, ["--config", config_path, *args], env={"COLUMNS": "200"})
        return run

    def test_version(self, invoke):
        result = invoke("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_templates(self, invoke):
        result = invoke("templates")
        assert result.exit_code == 0
        assert "meeting-notes" in result.output
        assert "Voice Journal" in result.output

    def test_config_set_and_show(self, invoke, tmp_path):
        result = invoke("config", "set", "providers.openai.api_key", "sk-abcdef1234")
        assert result.exit_code == 0
        assert "sk-abcdef1234" in (tmp_path / "vmemo.yaml").read_text()

        shown = invoke("config", "show")
        assert shown.exit_code == 0
        assert "****1234" in shown.output
        assert "sk-abcdef1234" not in shown.output

    def test_config_set_unknown_key(self, invoke):
        result = invoke("config", "set", "nope", "1")
        assert result.exit_code == 1
        assert "Unknown setting: nope" in result.output

    def test_upload_rejects_non_audio(self, invoke, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("not audio")
        result = invoke("upload", str(notes))
        assert result.exit_code == 1
        assert "audio file" in result.output
