"""Shared fixtures and fakes for the VMemo test suite."""

from typing import List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from vmemo.audio.artifact import AudioArtifact
from vmemo.config import Settings, SettingsStore
from vmemo.core.orchestrator import PipelineEvent, PipelineOrchestrator
from vmemo.core.storage import LocalFileStore
from vmemo.formatting.formatter import FormattedDocument, FormattingMetadata
from vmemo.transcription.transcriber import (
    TranscriptionMetadata,
    TranscriptionResult,
    TranscriptionSegment,
)


class FakeDevice:
    """Capture device returning a fixed WAV artifact."""

    def __init__(self, data: bytes = b"RIFF----WAVEfmt ", start_error: Optional[Exception] = None):
        self.data = data
        self.start_error = start_error
        self.gate = None  # set to an asyncio.Event to hold start() open
        self.release = None  # set to an asyncio.Event to hold stop() open
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self) -> None:
        self.start_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.start_error:
            raise self.start_error

    async def stop(self) -> AudioArtifact:
        self.stop_calls += 1
        if self.release is not None:
            await self.release.wait()
        return AudioArtifact(data=self.data, mime_type="audio/wav")


def make_transcription(
    text: str = "Let's plan the launch for next week and review the budget",
    duration: float = 125.0
) -> TranscriptionResult:
    return TranscriptionResult(
        text=text,
        duration=duration,
        language="en",
        speaker_count=2,
        segments=(TranscriptionSegment(speaker="A", text=text, start=0.0, end=duration),),
        metadata=TranscriptionMetadata(model="test-model", processing_time=0.5, audio_path="x.wav"),
    )


def make_document(content: str = "# Launch Plan\n\n## Summary\n\nPlan the launch.") -> FormattedDocument:
    return FormattedDocument(
        content=content,
        title="Launch Plan",
        summary="Plan the launch.",
        action_items=None,
        decisions=None,
        metadata=FormattingMetadata(
            provider="anthropic", model="m", template_id="meeting-notes",
            tokens_used=15, processing_time=0.1,
        ),
    )


class PipelineHarness:
    """An orchestrator wired to fakes, with every emitted event recorded."""

    def __init__(self, tmp_path, settings: Settings, tick_interval: float = 60.0, clock=None):
        self.store = SettingsStore(tmp_path / "vmemo.yaml", settings=settings)
        self.device = FakeDevice()
        self.file_store = LocalFileStore(tmp_path)
        self.transcriber = Mock()
        self.transcriber.transcribe = AsyncMock(return_value=make_transcription())
        self.formatter = Mock()
        self.formatter.format = AsyncMock(return_value=make_document())
        self.transcriber_factory = Mock(return_value=self.transcriber)
        self.formatter_factory = Mock(return_value=self.formatter)
        self.events: List[PipelineEvent] = []

        kwargs = {}
        if clock is not None:
            kwargs["clock"] = clock
        self.orchestrator = PipelineOrchestrator(
            self.store,
            device=self.device,
            file_store=self.file_store,
            transcriber_factory=self.transcriber_factory,
            formatter_factory=self.formatter_factory,
            tick_interval=tick_interval,
            **kwargs
        )
        self.orchestrator.add_listener(self.events.append)

    @property
    def stages(self) -> List[str]:
        return [event.status.value for event in self.events if event.kind == "stage"]


@pytest.fixture
def settings() -> Settings:
    return Settings(recording_folder="recs")


@pytest.fixture
def harness(tmp_path, settings) -> PipelineHarness:
    return PipelineHarness(tmp_path, settings)


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff instant."""
    sleep = AsyncMock()
    monkeypatch.setattr("vmemo.formatting.retry.asyncio.sleep", sleep)
    return sleep
