"""Opaque captured or uploaded audio handed to the pipeline."""

from dataclasses import dataclass
from pathlib import Path
from typing import Union
import mimetypes

# MIME subtype fragment -> file extension, checked in order
EXTENSION_BY_SUBTYPE = (
    ("webm", "webm"),
    ("ogg", "ogg"),
    ("mp4", "m4a"),
    ("mpeg", "mp3"),
    ("wav", "wav"),
    ("flac", "flac"),
)
DEFAULT_EXTENSION = "webm"

# Extensions the mimetypes table misses or reports as video
MIME_BY_EXTENSION = {
    ".webm": "audio/webm",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
}


@dataclass(frozen=True)
class AudioArtifact:
    data: bytes
    mime_type: str = "audio/wav"

    @property
    def extension(self) -> str:
        """File extension for persisting this audio."""
        mime = self.mime_type.lower()
        for subtype, extension in EXTENSION_BY_SUBTYPE:
            if subtype in mime:
                return extension
        return DEFAULT_EXTENSION

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "AudioArtifact":
        """
        Read an audio file from disk.

        Raises:
            ValueError: If the file is not an audio file
            OSError: If the file cannot be read
        """
        path = Path(path)
        mime_type = MIME_BY_EXTENSION.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0]
        if not mime_type or not mime_type.startswith("audio/"):
            raise ValueError(f"Please select an audio file: {path.name}")
        return cls(data=path.read_bytes(), mime_type=mime_type)
