"""
Async subprocess helper for the external tools (voxmlx, pip, pipx, ffmpeg).

Tools are found through an extended PATH so Homebrew and user-local
installs resolve even when the parent process was started with a minimal
environment.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence
import asyncio
import logging
import os

logger = logging.getLogger(__name__)

# 50 MiB, large transcripts come back as JSON on stdout
DEFAULT_OUTPUT_LIMIT = 50 * 1024 * 1024
READ_CHUNK_SIZE = 64 * 1024


class CommandError(Exception):
    """Base exception for external command failures."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CommandNotFoundError(CommandError):
    """Raised when the executable does not exist."""
    pass


class CommandTimeoutError(CommandError):
    """Raised when a command runs past its timeout and is killed."""
    pass


class OutputLimitExceededError(CommandError):
    """Raised when a command writes more output than accepted; the process is killed."""
    pass


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def extended_path() -> str:
    """PATH with the usual tool install locations in front."""
    home = Path.home()
    entries = [
        "/opt/homebrew/bin",
        "/usr/local/bin",
        str(home / ".local" / "bin"),
        "/usr/bin",
        "/bin",
    ]
    current = os.environ.get("PATH", "")
    if current:
        entries.append(current)
    return os.pathsep.join(entries)


def extended_path_env() -> Dict[str, str]:
    """Copy of the process environment using extended_path()."""
    env = dict(os.environ)
    env["PATH"] = extended_path()
    return env


async def read_stream(stream: asyncio.StreamReader, limit: Optional[int] = None) -> bytes:
    """
    Read a stream to EOF in chunks.

    Raises:
        OutputLimitExceededError: As soon as more than limit bytes arrive
    """
    chunks = []
    size = 0
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if limit is not None and size > limit:
            raise OutputLimitExceededError(f"Output exceeded {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


async def run_command(
    args: Sequence[str],
    timeout: Optional[float] = None,
    output_limit: int = DEFAULT_OUTPUT_LIMIT,
    check: bool = True
) -> CommandResult:
    """
    Run a command without a shell and collect its output.

    Args:
        args: Executable followed by its arguments
        timeout: Seconds before the process is killed (None waits forever)
        output_limit: Maximum bytes accepted on stdout
        check: Raise CommandError on a non-zero exit status

    Returns:
        CommandResult with decoded stdout and stderr

    Raises:
        CommandNotFoundError: If the executable cannot be found
        CommandTimeoutError: If the timeout expires
        OutputLimitExceededError: As soon as stdout passes output_limit
        CommandError: On non-zero exit (when check is set)
    """
    logger.debug(f"Running: {' '.join(args)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=extended_path_env(),
        )
    except FileNotFoundError as e:
        raise CommandNotFoundError(f"Command not found: {args[0]}") from e

    try:
        stdout, stderr, _ = await asyncio.wait_for(
            asyncio.gather(
                read_stream(process.stdout, output_limit),
                read_stream(process.stderr),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        await _kill(process)
        raise CommandTimeoutError(f"Command timed out after {timeout:.0f}s: {args[0]}")
    except OutputLimitExceededError as e:
        await _kill(process)
        raise OutputLimitExceededError(
            f"Output of {args[0]} exceeded {output_limit} bytes", returncode=process.returncode
        ) from e

    result = CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )

    if check and not result.ok:
        detail = result.stderr.strip() or result.stdout.strip() or "no output"
        raise CommandError(
            f"{args[0]} exited with status {result.returncode}: {detail}",
            returncode=result.returncode,
            stderr=result.stderr,
        )

    return result
