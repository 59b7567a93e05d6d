"""
Main application entry point for VMemo.

This module provides the command-line interface and wires the recorder,
transcriber, formatter and template engine into the pipeline.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import pyperclip
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .audio.artifact import AudioArtifact
from .audio.recorder import AudioRecorder, list_input_devices
from .config import DEFAULT_CONFIG_PATH, SettingsStore, settings_to_dict
from .core.orchestrator import PipelineOrchestrator, RunResult
from .core.storage import LocalFileStore
from .formatting.template_engine import TemplateEngine
from .transcription.transcriber import VoxmlxTranscriber
from .ui.terminal import TerminalUI

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=debug)],
        force=True
    )


class VMemoApp:
    """
    Main application class that coordinates all components.

    Handles recording sessions and uploads from the pipeline's start
    through display and clipboard copy of the finished document.
    """

    def __init__(self, store: SettingsStore, console: Optional[Console] = None):
        self.store = store
        self.console = console or Console()
        self.ui = TerminalUI(self.console, show_notifications=store.settings.show_notifications)
        self._orchestrator: Optional[PipelineOrchestrator] = None

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = PipelineOrchestrator(
                self.store,
                device=AudioRecorder(),
                file_store=LocalFileStore(),
            )
            self._orchestrator.add_listener(self.ui.handle_event)
        return self._orchestrator

    async def record(self, copy: bool = False) -> int:
        """
        Record until Enter is pressed (or the maximum duration), then process.

        Returns:
            Process exit code
        """
        orchestrator = self.orchestrator
        try:
            await orchestrator.start()
        except Exception as e:
            await self.ui.show_error(e)
            return 1

        self.ui.show_recording_status()

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, input)
        except EOFError:
            pass

        try:
            if orchestrator.is_recording():
                result = await orchestrator.stop()
            else:
                # The maximum duration stopped the recording while we waited
                await orchestrator.wait_for_auto_stop()
                if orchestrator.last_error is not None:
                    raise orchestrator.last_error
                result = orchestrator.last_result
        except Exception as e:
            await self.ui.show_error(e)
            return 1

        return await self._finish(result, copy)

    async def upload(self, path: Path, copy: bool = False) -> int:
        """Process an existing audio file."""
        try:
            artifact = AudioArtifact.from_path(path)
            result = await self.orchestrator.upload_audio(artifact)
        except Exception as e:
            await self.ui.show_error(e)
            return 1
        return await self._finish(result, copy)

    async def install(self) -> int:
        """Make sure voxmlx is installed."""
        transcriber = VoxmlxTranscriber.from_settings(self.store.snapshot())
        if await transcriber.is_available():
            version = await transcriber.get_version()
            self.ui.show_message(f"✅ voxmlx is installed ({version or transcriber.find_executable()})")
            return 0

        try:
            with self.console.status("Installing voxmlx... This may take a few minutes."):
                strategy = await transcriber.installer.install()
        except Exception as e:
            await self.ui.show_error(e)
            return 1

        self.ui.show_message(f"✅ voxmlx installed with {strategy}")
        return 0

    async def _finish(self, result: Optional[RunResult], copy: bool) -> int:
        if result is None:
            await self.ui.show_error(RuntimeError("Recording ended without a result"))
            return 1

        copied = False
        if copy:
            copied = self._copy_to_clipboard(result.content)
        await self.ui.show_success(result, copied=copied)
        return 0

    def _copy_to_clipboard(self, text: str) -> bool:
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as e:
            self.console.print(f"[yellow]⚠️  Could not copy to clipboard: {e}[/yellow]")
            return False
        return True


def load_store(config_path: str) -> SettingsStore:
    store = SettingsStore(config_path)
    try:
        store.load()
    except ValueError as e:
        raise click.ClickException(str(e))
    return store


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--config', 'config_path',
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help='Path to the YAML settings file'
)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx: click.Context, config_path: str, debug: bool) -> None:
    """
    VMemo - voice memos turned into structured markdown notes.

    Records audio, transcribes it with voxmlx, and formats the transcript
    with an LLM into a markdown template.
    """
    store = load_store(config_path)
    setup_logging(debug or store.settings.debug_mode)
    ctx.obj = store


def _run(coro) -> None:
    try:
        code = asyncio.run(coro)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user.")
        sys.exit(130)
    sys.exit(code)


@cli.command()
@click.option('--copy', is_flag=True, help='Copy the finished document to the clipboard')
@click.pass_obj
def record(store: SettingsStore, copy: bool) -> None:
    """Record from the microphone. Press Enter to stop."""
    _run(VMemoApp(store).record(copy=copy))


@cli.command()
@click.argument('audio_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--copy', is_flag=True, help='Copy the finished document to the clipboard')
@click.pass_obj
def upload(store: SettingsStore, audio_file: Path, copy: bool) -> None:
    """Transcribe and format an existing audio file."""
    _run(VMemoApp(store).upload(audio_file, copy=copy))


@cli.command()
@click.pass_obj
def install(store: SettingsStore) -> None:
    """Install the voxmlx transcription tool if it is missing."""
    _run(VMemoApp(store).install())


@cli.command()
@click.pass_obj
def templates(store: SettingsStore) -> None:
    """List the available templates."""
    settings = store.snapshot()
    TerminalUI().show_templates(
        TemplateEngine(settings).available_templates(), settings.default_template
    )


@cli.command()
def devices() -> None:
    """List microphone input devices."""
    ui = TerminalUI()
    try:
        found = list_input_devices()
    except Exception as e:
        asyncio.run(ui.show_error(e))
        sys.exit(1)
    for device in found:
        ui.show_message(
            f"[{device['index']}] {device['name']} "
            f"({device['channels']} ch, {device['sample_rate']} Hz)", style="white"
        )


@cli.group()
def config() -> None:
    """Show or change settings."""


@config.command('show')
@click.pass_obj
def config_show(store: SettingsStore) -> None:
    """Print the current settings."""
    TerminalUI().show_settings(settings_to_dict(store.settings))


@config.command('set')
@click.argument('key')
@click.argument('value')
@click.pass_obj
def config_set(store: SettingsStore, key: str, value: str) -> None:
    """Set KEY (dot notation, e.g. providers.openai.api_key) to VALUE and save."""
    try:
        store.set(key, value)
    except KeyError as e:
        raise click.ClickException(e.args[0])
    except (TypeError, ValueError) as e:
        raise click.ClickException(f"Invalid value for {key}: {e}")
    store.save()
    TerminalUI().show_message(f"✅ {key} updated in {store.path}")


if __name__ == "__main__":
    cli()
