"""
Rich-based terminal user interface.

Renders pipeline events as a live status line and shows results,
errors, templates and settings as Rich panels and tables.
"""

from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text

from ..core.orchestrator import PipelineEvent, RecordingStatus, RunResult, format_duration

STAGE_ICONS = {
    RecordingStatus.RECORDING: "🔴",
    RecordingStatus.PROCESSING: "💾",
    RecordingStatus.TRANSCRIBING: "🎧",
    RecordingStatus.FORMATTING: "🤖",
    RecordingStatus.COMPLETE: "✅",
    RecordingStatus.ERROR: "❌",
}


class TerminalUI:
    """
    Terminal front end for the pipeline.

    Register handle_event() as an orchestrator listener to get a spinner
    that follows the pipeline stages and the recording clock.

    Args:
        console: Rich console to draw on
        show_notifications: Print a line for each stage change
    """

    def __init__(self, console: Optional[Console] = None, show_notifications: bool = True):
        self.console = console or Console()
        self.show_notifications = show_notifications
        self._progress: Optional[Progress] = None
        self._task_id = None

    def handle_event(self, event: PipelineEvent) -> None:
        """Orchestrator listener."""
        if event.kind == "tick":
            self._update_progress(f"🔴 Recording {format_duration(event.duration)}  (Enter to stop)")
            return

        if event.status in (RecordingStatus.COMPLETE, RecordingStatus.ERROR):
            self._stop_progress()
        else:
            icon = STAGE_ICONS.get(event.status, "")
            self._update_progress(f"{icon} {event.message or event.status.value.title()}")

        if self.show_notifications and event.message and event.status is not RecordingStatus.ERROR:
            self.console.print(f"[dim]{event.message}[/dim]")

    def show_recording_status(self) -> None:
        panel = Panel(
            Text("🔴 RECORDING", style="bold red") + Text("\n\nSpeak now... Press Enter to stop", style="white"),
            title="Recording Audio",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        )
        self.console.print(panel)

    def _update_progress(self, description: str) -> None:
        if self._progress is None:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=self.console,
                transient=True
            )
            self._progress.start()
            self._task_id = self._progress.add_task(description, total=None)
        else:
            self._progress.update(self._task_id, description=description)

    def _stop_progress(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    async def show_error(self, error: Exception) -> None:
        """
        Display an error panel with guidance for common failures.

        Args:
            error: Exception to display
        """
        self._stop_progress()

        error_message = str(error) or error.__class__.__name__
        lowered = error_message.lower()

        if "api key" in lowered:
            guidance = "\n\n💡 Set the key with: vmemo config set providers.<provider>.api_key <key>"
        elif "ffmpeg" in lowered:
            guidance = "\n\n💡 Install ffmpeg to convert this audio format."
        elif "apple silicon" in lowered or "python 3" in lowered:
            guidance = "\n\n💡 voxmlx needs an Apple Silicon Mac with Python 3.10 or newer."
        elif "permission" in lowered or "microphone" in lowered:
            guidance = "\n\n💡 Try checking your microphone permissions in System Settings."
        elif "rate limit" in lowered or "server error" in lowered:
            guidance = "\n\n💡 Try again - the service might be temporarily busy."
        elif "timed out" in lowered:
            guidance = "\n\n💡 Try a shorter recording."
        else:
            guidance = ""

        panel = Panel(
            Text(f"❌ {error_message}{guidance}", style="red"),
            title="Error",
            title_align="center",
            border_style="red",
            padding=(1, 2)
        )
        self.console.print(panel)

    async def show_success(self, result: RunResult, copied: bool = False) -> None:
        """
        Display the saved document.

        Args:
            result: Finished run
            copied: Whether the document was copied to the clipboard
        """
        self._stop_progress()

        self.console.print(Panel(
            Markdown(result.content),
            title=result.document.title if result.document else "Transcript",
            border_style="cyan",
            padding=(1, 2)
        ))

        lines = [f"✅ Transcript saved: {result.transcript_path}", f"🎙️  Audio: {result.audio_path}"]
        if copied:
            lines.append("📋 Copied to clipboard!")
        if result.document and result.document.action_items:
            lines.append(f"📝 {len(result.document.action_items)} action item(s)")

        self.console.print(Panel(
            "\n".join(lines),
            title="Success",
            title_align="center",
            border_style="green",
            padding=(1, 2)
        ))

    def show_templates(self, templates: List[Dict[str, str]], default_id: str) -> None:
        table = Table(
            title="Templates",
            title_style="bold cyan",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold white"
        )
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="magenta")
        table.add_column("Description", style="white")

        for template in templates:
            marker = " ⭐" if template["id"] == default_id else ""
            table.add_row(template["id"] + marker, template["name"], template["description"])

        self.console.print(table)

    def show_settings(self, data: Dict[str, Any]) -> None:
        """Display settings as a flattened key/value table with keys masked."""
        table = Table(title="Settings", box=box.ROUNDED, header_style="bold white")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="white")

        for key, value in _flatten(data):
            if key.endswith("api_key") and value:
                value = "****" + str(value)[-4:]
            elif key.endswith("content") or key.endswith("system_prompt"):
                value = (str(value)[:40] + "...") if value and len(str(value)) > 40 else value
            table.add_row(key, "" if value is None else str(value))

        self.console.print(table)

    def show_message(self, message: str, style: str = "green") -> None:
        self.console.print(f"[{style}]{message}[/{style}]")


def _flatten(data: Dict[str, Any], prefix: str = ""):
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            yield from _flatten(value, path + ".")
        else:
            yield path, value
