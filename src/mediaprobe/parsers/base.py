"""Parser base class and the facts every parser extracts."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, ClassVar

from mediaprobe.models import AnalyzeOptions, StreamKind
from mediaprobe.sniff import ContainerFormat


@dataclass
class TrackInfo:
    """Facts about one elementary stream, before formatting."""

    kind: StreamKind
    id: str = ""
    format: str = ""
    format_profile: str = ""
    codec_id: str = ""
    duration: float | None = None
    bit_rate: float | None = None
    bit_rate_mode: str = ""
    stream_size: int | None = None
    width: int | None = None
    height: int | None = None
    display_aspect_ratio: str = ""
    frame_rate: float | None = None
    frame_rate_mode: str = ""
    frame_count: int | None = None
    channels: int | None = None
    sample_rate: float | None = None
    bit_depth: int | None = None
    language: str = ""
    title: str = ""
    default: bool | None = None
    forced: bool | None = None
    encoded_date: datetime | None = None
    tagged_date: datetime | None = None
    # Fields without a dedicated attribute ("Menu" chapter entries, ...)
    extra: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerInfo:
    """Facts about a whole container, before formatting."""

    format: ContainerFormat
    format_name: str = ""
    format_profile: str = ""
    codec_id: str = ""
    duration: float | None = None
    overall_bit_rate: float | None = None
    overall_bit_rate_mode: str = ""
    title: str = ""
    encoded_date: datetime | None = None
    tagged_date: datetime | None = None
    writing_application: str = ""
    writing_library: str = ""
    tracks: list[TrackInfo] = field(default_factory=list)
    # Set when a structural fault stopped part of the parse
    truncated: bool = False
    extra: dict[str, str] = field(default_factory=dict)

    def tracks_of(self, kind: StreamKind) -> list[TrackInfo]:
        return [t for t in self.tracks if t.kind is kind]

    @property
    def max_track_duration(self) -> float | None:
        durations = [t.duration for t in self.tracks if t.duration]
        return max(durations) if durations else None


# Decoding faults a parser turns into a partial, truncated result
DECODE_ERRORS = (struct.error, IndexError, ValueError)


def read_at(fh: BinaryIO, offset: int, length: int) -> bytes:
    """Read up to ``length`` bytes at ``offset``; short at end of file."""
    if length <= 0 or offset < 0:
        return b""
    fh.seek(offset)
    return fh.read(length)


class BaseParser(ABC):
    """Abstract base class for container parsers.

    A parser is a pure function over a bounded read of one file: it opens
    nothing itself, keeps no buffer after ``parse`` returns and reports
    structural faults through ``ContainerInfo.truncated`` instead of raising.

    Attributes:
        format: Container family handled by this parser
        name: Human-readable name of the parser
    """

    format: ClassVar[ContainerFormat] = ContainerFormat.UNKNOWN
    name: ClassVar[str] = "base"

    def __init__(self, options: AnalyzeOptions | None = None):
        self.options = options or AnalyzeOptions()

    @abstractmethod
    def parse(self, fh: BinaryIO, size: int) -> ContainerInfo:
        """Extract container facts.

        Args:
            fh: Seekable binary file handle positioned anywhere
            size: File size in bytes

        Returns:
            ContainerInfo with whatever could be extracted
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, parse_speed={self.options.parse_speed})"


# Head and tail windows read by the packet-stream parsers
MIN_WINDOW = 512 * 1024
WINDOW_SPAN = 32 * 1024 * 1024


def scan_windows(size: int, options: AnalyzeOptions) -> list[tuple[int, int]]:
    """Byte ranges to scan: the whole file, or a head and a tail window.

    Window length grows with the parse speed; a parse speed of 1.0 always
    scans the whole file.
    """
    if options.exhaustive:
        return [(0, size)]
    window = MIN_WINDOW + int(WINDOW_SPAN * options.parse_speed)
    if 2 * window >= size:
        return [(0, size)]
    return [(0, window), (size - window, size)]
