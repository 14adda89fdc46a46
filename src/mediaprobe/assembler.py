"""Report assembly.

Turns the facts a parser extracted (``ContainerInfo``) into the
Report/Stream/Field contract: values are formatted as text, streams are
numbered per kind and fields are ranked into the canonical display order.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass

from mediaprobe._version import __version__
from mediaprobe.grouping import FileGroup
from mediaprobe.models import Field, Report, Stream, StreamKind, format_size
from mediaprobe.parsers.base import ContainerInfo, TrackInfo
from mediaprobe.utils.formatting import (
    channel_layout_name,
    format_bit_depth,
    format_bitrate,
    format_channels,
    format_duration,
    format_frame_rate,
    format_language,
    format_pixels,
    format_sample_rate,
    format_utc,
)

logger = logging.getLogger(__name__)

GENERAL_FIELD_ORDER = (
    "Complete name",
    "Complete name (last)",
    "Count of files",
    "Format",
    "Format version",
    "Format profile",
    "Codec ID",
    "File size",
    "Duration",
    "Overall bit rate mode",
    "Overall bit rate",
    "Movie name",
    "Encoded date",
    "Tagged date",
    "Writing application",
    "Writing library",
    "Is truncated",
)

STREAM_FIELD_ORDER = (
    "ID",
    "Format",
    "Format version",
    "Format profile",
    "Codec ID",
    "Duration",
    "Bit rate mode",
    "Bit rate",
    "Maximum bit rate",
    "Width",
    "Height",
    "Display aspect ratio",
    "Frame rate mode",
    "Frame rate",
    "Frame count",
    "Channel(s)",
    "Channel layout",
    "Sampling rate",
    "Bit depth",
    "Stream size",
    "Title",
    "Language",
    "Default",
    "Forced",
    "Encoded date",
    "Tagged date",
)

_GENERAL_RANKS = {name: rank for rank, name in enumerate(GENERAL_FIELD_ORDER)}
_STREAM_RANKS = {name: rank for rank, name in enumerate(STREAM_FIELD_ORDER)}
UNRANKED = 1000


@dataclass(frozen=True)
class AppInfo:
    """Name and version stamped on reports and renderer footers."""

    name: str = "mediaprobe"
    version: str = __version__

    @property
    def label(self) -> str:
        return f"{self.name} - {self.version}"


def field_rank(kind: StreamKind, name: str) -> int:
    ranks = _GENERAL_RANKS if kind is StreamKind.GENERAL else _STREAM_RANKS
    return ranks.get(name, UNRANKED)


def sort_fields(fields: list[Field]) -> list[Field]:
    """Canonical order: ranked names first, then the rest alphabetically.

    The sort is stable, so equal keys keep their insertion order.
    """
    return sorted(fields, key=lambda f: (f.rank, f.name if f.rank >= UNRANKED else ""))


class _FieldList:
    """Collects fields for one stream, skipping empty values and duplicates."""

    def __init__(self, kind: StreamKind):
        self.kind = kind
        self.fields: list[Field] = []
        self._names: set[str] = set()

    def add(self, name: str, value: str | None) -> None:
        if not value or name in self._names:
            return
        self._names.add(name)
        self.fields.append(Field(name=name, value=value, rank=field_rank(self.kind, name)))

    def build(self, index: int = 1) -> Stream:
        return Stream(kind=self.kind, index=index, fields=tuple(sort_fields(self.fields)))


def _yes_no(flag: bool | None) -> str:
    if flag is None:
        return ""
    return "Yes" if flag else "No"


def merge_infos(infos: list[ContainerInfo]) -> ContainerInfo:
    """Merge the parse results of a continuous file group into one.

    Durations and stream sizes are summed; tracks of later files are
    matched to the first file's tracks by kind and ID, falling back to
    their position among tracks of the same kind.
    """
    merged = copy.deepcopy(infos[0])
    durations = [info.duration or info.max_track_duration for info in infos]
    known = [d for d in durations if d]
    merged.duration = sum(known) if known else None
    merged.overall_bit_rate = None
    merged.truncated = any(info.truncated for info in infos)
    for other in infos[1:]:
        for track in merged.tracks:
            match = _matching_track(track, merged, other)
            if match is None:
                logger.debug("no %s track %s in a later file of the group", track.kind.value, track.id or "?")
                continue
            if track.duration and match.duration:
                track.duration += match.duration
            if track.stream_size is not None and match.stream_size is not None:
                track.stream_size += match.stream_size
            if track.frame_count is not None and match.frame_count is not None:
                track.frame_count += match.frame_count
    for track in merged.tracks:
        if track.stream_size and track.duration and track.kind in (StreamKind.VIDEO, StreamKind.AUDIO):
            track.bit_rate = track.stream_size * 8 / track.duration
    return merged


def _matching_track(track: TrackInfo, merged: ContainerInfo, other: ContainerInfo) -> TrackInfo | None:
    candidates = other.tracks_of(track.kind)
    if track.id:
        for candidate in candidates:
            if candidate.id == track.id:
                return candidate
    position = next(i for i, t in enumerate(merged.tracks_of(track.kind)) if t is track)
    return candidates[position] if position < len(candidates) else None


class ReportAssembler:
    """Builds immutable reports from parser output.

    Args:
        app: Name/version stamped on every report
    """

    def __init__(self, app: AppInfo | None = None):
        self.app = app or AppInfo()

    def assemble(self, group: FileGroup, info: ContainerInfo | None) -> Report:
        """Build the report of one analysis unit.

        ``info`` is None for files of unknown format, which yield a General
        stream with file-level facts only.
        """
        file_size = group.total_size
        general = self._general(group, info, file_size)
        streams = [general]
        if info is not None:
            ordinals: dict[StreamKind, int] = {}
            for track in info.tracks:
                ordinals[track.kind] = ordinals.get(track.kind, 0) + 1
                streams.append(self._stream(track, ordinals[track.kind], file_size))
        return Report(ref=group.representative, streams=tuple(streams), created_by=self.app.label)

    def _general(self, group: FileGroup, info: ContainerInfo | None, file_size: int) -> Stream:
        fields = _FieldList(StreamKind.GENERAL)
        fields.add("Complete name", group.representative)
        if group.is_group:
            fields.add("Complete name (last)", group.last)
            fields.add("Count of files", str(len(group.paths)))
        fields.add("File size", format_size(file_size))
        if info is None:
            return fields.build()

        fields.add("Format", info.format_name)
        fields.add("Format profile", info.format_profile)
        fields.add("Codec ID", info.codec_id)
        duration = info.duration or info.max_track_duration
        fields.add("Duration", format_duration(duration))
        overall = info.overall_bit_rate
        if not overall and duration and file_size:
            overall = file_size * 8 / duration
        if overall:
            fields.add("Overall bit rate mode", info.overall_bit_rate_mode)
            fields.add("Overall bit rate", format_bitrate(overall))
        fields.add("Movie name", info.title)
        fields.add("Encoded date", format_utc(info.encoded_date))
        fields.add("Tagged date", format_utc(info.tagged_date))
        fields.add("Writing application", info.writing_application)
        fields.add("Writing library", info.writing_library)
        if info.truncated:
            fields.add("Is truncated", "Yes")
        for name, value in info.extra.items():
            fields.add(name, value)
        return fields.build()

    def _stream(self, track: TrackInfo, index: int, file_size: int) -> Stream:
        fields = _FieldList(track.kind)
        fields.add("ID", track.id)
        fields.add("Format", track.format)
        fields.add("Format profile", track.format_profile)
        fields.add("Codec ID", track.codec_id)
        fields.add("Duration", format_duration(track.duration))
        if track.bit_rate:
            fields.add("Bit rate mode", track.bit_rate_mode)
            fields.add("Bit rate", format_bitrate(track.bit_rate))
        fields.add("Width", format_pixels(track.width))
        fields.add("Height", format_pixels(track.height))
        fields.add("Display aspect ratio", track.display_aspect_ratio)
        if track.frame_rate:
            fields.add("Frame rate mode", track.frame_rate_mode)
            fields.add("Frame rate", format_frame_rate(track.frame_rate))
        if track.frame_count:
            fields.add("Frame count", str(track.frame_count))
        fields.add("Channel(s)", format_channels(track.channels))
        fields.add("Channel layout", channel_layout_name(track.channels))
        fields.add("Sampling rate", format_sample_rate(track.sample_rate))
        fields.add("Bit depth", format_bit_depth(track.bit_depth))
        if track.stream_size:
            size_text = format_size(track.stream_size)
            if file_size:
                size_text += f" ({round(track.stream_size * 100 / file_size)}%)"
            fields.add("Stream size", size_text)
        fields.add("Title", track.title)
        fields.add("Language", format_language(track.language))
        fields.add("Default", _yes_no(track.default))
        fields.add("Forced", _yes_no(track.forced))
        fields.add("Encoded date", format_utc(track.encoded_date))
        fields.add("Tagged date", format_utc(track.tagged_date))
        for name, value in track.extra.items():
            fields.add(name, value)
        return fields.build(index)


def assemble_report(group: FileGroup, info: ContainerInfo | None, app: AppInfo | None = None) -> Report:
    """Convenience wrapper around ``ReportAssembler.assemble``."""
    return ReportAssembler(app).assemble(group, info)
