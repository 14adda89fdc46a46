"""Pydantic models for mediaprobe."""

from .file import FileInfo, format_size
from .options import DEFAULT_PARSE_SPEED, AnalyzeOptions
from .report import Field, Report, Stream, StreamKind

__all__ = [
    # Report contract
    "Report",
    "Stream",
    "Field",
    "StreamKind",
    # Options
    "AnalyzeOptions",
    "DEFAULT_PARSE_SPEED",
    # File
    "FileInfo",
    "format_size",
]
