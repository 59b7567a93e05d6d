"""
Bootstrap installer for the voxmlx transcription tool.

voxmlx runs on MLX, so installation needs Apple Silicon and a modern
Python. Preconditions are checked first, then install strategies are
tried in order until one produces a working executable.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple
import asyncio
import logging
import platform
import re
import shutil

from .process import CommandError, extended_path, run_command

logger = logging.getLogger(__name__)

PACKAGE_NAME = "voxmlx"
MIN_PYTHON = (3, 10)
INSTALL_TIMEOUT = 300.0

PYTHON_CANDIDATES = (
    "/opt/homebrew/bin/python3",
    "python3.12",
    "python3.11",
    "python3.10",
    "/usr/local/bin/python3",
    "python3",
)

PYTHON_PLACEHOLDER = "{python}"


class InstallerError(Exception):
    """Base exception for installer errors."""
    pass


class PreconditionFailedError(InstallerError):
    """Raised when the host cannot run voxmlx at all."""

    def __init__(self, requirement: str, message: str):
        super().__init__(message)
        self.requirement = requirement


class InstallationFailedError(InstallerError):
    """Raised when every install strategy has failed."""

    def __init__(self, attempts: List[Tuple[str, str]], hint: str):
        summary = "; ".join(f"{name}: {reason}" for name, reason in attempts)
        super().__init__(
            f"Could not install {PACKAGE_NAME} ({summary}). Install manually: {hint}"
        )
        self.attempts = attempts
        self.hint = hint


@dataclass(frozen=True)
class InstallStrategy:
    """One way of installing the package; '{python}' is replaced by the interpreter."""
    name: str
    args: Tuple[str, ...]
    timeout: float = INSTALL_TIMEOUT

    def command(self, python: str) -> List[str]:
        return [python if arg == PYTHON_PLACEHOLDER else arg for arg in self.args]


DEFAULT_STRATEGIES: Tuple[InstallStrategy, ...] = (
    InstallStrategy("pipx", ("pipx", "install", PACKAGE_NAME)),
    InstallStrategy(
        "pip (user)",
        (PYTHON_PLACEHOLDER, "-m", "pip", "install", PACKAGE_NAME, "--user", "--break-system-packages"),
    ),
    InstallStrategy(
        "pip (system)",
        (PYTHON_PLACEHOLDER, "-m", "pip", "install", PACKAGE_NAME, "--break-system-packages"),
    ),
)


def summarize_failure(message: str) -> str:
    """Reduce an install failure to a short human-readable reason."""
    lowered = message.lower()
    if "no matching distribution" in lowered or "could not find a version" in lowered:
        return "Package not found"
    if "externally-managed-environment" in lowered or "externally managed" in lowered:
        return "System Python restrictions"
    return message.strip()[:80]


def parse_python_version(output: str) -> Optional[Tuple[int, int]]:
    match = re.search(r"Python (\d+)\.(\d+)", output)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


@dataclass
class ToolInstaller:
    """
    Installs voxmlx using an ordered list of strategies.

    Args:
        verify: Async predicate that reports whether the tool now works.
                Every strategy is judged by the same predicate.
        strategies: Install strategies in the order they are tried
        python_candidates: Interpreters checked for the version requirement
        settle_delay: Seconds to wait after an install before verifying
    """
    verify: Callable[[], Awaitable[bool]]
    strategies: Sequence[InstallStrategy] = DEFAULT_STRATEGIES
    python_candidates: Sequence[str] = PYTHON_CANDIDATES
    settle_delay: float = 2.0
    attempts: List[Tuple[str, str]] = field(default_factory=list)

    async def install(self) -> str:
        """
        Install the tool.

        Returns:
            Name of the strategy that succeeded

        Raises:
            PreconditionFailedError: If the host fails a precondition; nothing is attempted
            InstallationFailedError: If every strategy fails
        """
        python = await self.check_preconditions()
        logger.info(f"Installing {PACKAGE_NAME} using {python}")

        self.attempts = []
        for strategy in self.strategies:
            reason = await self._attempt(strategy, python)
            if reason is None:
                logger.info(f"{PACKAGE_NAME} installed with {strategy.name}")
                return strategy.name
            logger.warning(f"Install with {strategy.name} failed: {reason}")
            self.attempts.append((strategy.name, reason))

        raise InstallationFailedError(list(self.attempts), self.manual_hint(python))

    async def _attempt(self, strategy: InstallStrategy, python: str) -> Optional[str]:
        """Run one strategy; returns None on success or a failure summary."""
        try:
            await run_command(strategy.command(python), timeout=strategy.timeout)
        except CommandError as e:
            return summarize_failure(f"{e} {e.stderr}")

        await asyncio.sleep(self.settle_delay)
        if await self.verify():
            return None
        return "Not installed"

    async def check_preconditions(self) -> str:
        """
        Check architecture and Python version.

        Returns:
            Path or name of a suitable Python interpreter

        Raises:
            PreconditionFailedError: Naming the unmet requirement
        """
        machine = platform.machine()
        if machine != "arm64":
            raise PreconditionFailedError(
                "architecture",
                f"{PACKAGE_NAME} requires Apple Silicon (arm64), this machine is {machine or 'unknown'}",
            )

        python = await self.find_python()
        if python is None:
            required = ".".join(str(part) for part in MIN_PYTHON)
            raise PreconditionFailedError(
                "python",
                f"Python {required}+ is required. Install it with: brew install python@3.12",
            )
        return python

    async def find_python(self) -> Optional[str]:
        """Find the first candidate interpreter meeting MIN_PYTHON."""
        for candidate in self.python_candidates:
            try:
                result = await run_command([candidate, "--version"], timeout=10)
            except CommandError:
                continue
            # Python 3 prints the version on stdout, very old releases used stderr
            version = parse_python_version(result.stdout + result.stderr)
            if version and version >= MIN_PYTHON:
                logger.debug(f"Using {candidate} (Python {version[0]}.{version[1]})")
                return candidate
        return None

    def manual_hint(self, python: str) -> str:
        if shutil.which("pipx", path=extended_path()) is None:
            return f"brew install pipx && pipx install {PACKAGE_NAME}"
        return f"{python} -m pip install {PACKAGE_NAME} --break-system-packages"
