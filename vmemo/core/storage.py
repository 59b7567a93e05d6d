"""Persisted-file store for recordings and transcripts."""

from pathlib import Path
from typing import Union
import logging

logger = logging.getLogger(__name__)


class LocalFileStore:
    """
    Stores files under a base directory.

    Paths handed to the store are relative to base_dir; absolute paths
    are used as-is.
    """

    def __init__(self, base_dir: Union[str, Path, None] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def resolve(self, path: Union[str, Path]) -> Path:
        return (self.base_dir / path).resolve()

    def exists(self, path: Union[str, Path]) -> bool:
        return self.resolve(path).exists()

    def mkdir(self, path: Union[str, Path]) -> None:
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    def write(self, path: Union[str, Path], data: Union[bytes, str]) -> Path:
        """Write bytes or UTF-8 text, returning the absolute path written."""
        target = self.resolve(path)
        if isinstance(data, str):
            target.write_text(data, encoding="utf-8")
        else:
            target.write_bytes(data)
        logger.debug(f"Wrote {target}")
        return target

    def remove(self, path: Union[str, Path]) -> None:
        self.resolve(path).unlink(missing_ok=True)
