"""File information models."""

from datetime import datetime

from pydantic import BaseModel


def format_size(size_bytes: int | float) -> str:
    """Convert bytes to a binary-unit string ("1.50 MiB")."""
    if size_bytes < 0:
        return ""
    size = float(size_bytes)
    if size < 1024:
        return f"{int(size)} B"
    for unit in ["KiB", "MiB", "GiB", "TiB"]:
        size /= 1024
        if size < 1024:
            return f"{size:.2f} {unit}"
    return f"{size / 1024:.2f} PiB"


class FileInfo(BaseModel):
    """Filesystem facts about one input file."""

    path: str
    filename: str
    extension: str
    size_bytes: int
    modified: datetime | None = None

    @property
    def size_human(self) -> str:
        """Return human-readable file size."""
        return format_size(self.size_bytes)
