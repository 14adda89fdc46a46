"""PES header decoding and presentation timestamp tracking.

Shared by the transport and program stream parsers. Timestamps are 33-bit
values on a 90 kHz clock and wrap around roughly every 26.5 hours.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mediaprobe.models import StreamKind
from mediaprobe.parsers.base import TrackInfo
from mediaprobe.parsers.elementary import apply_header, read_stream_header

PTS_CLOCK = 90_000
PTS_WRAP = 1 << 33
PTS_MASK = PTS_WRAP - 1

START_CODE_PREFIX = b"\x00\x00\x01"

PACK_HEADER = 0xBA
SYSTEM_HEADER = 0xBB
PROGRAM_STREAM_MAP = 0xBC
PRIVATE_STREAM_1 = 0xBD
PADDING_STREAM = 0xBE
PRIVATE_STREAM_2 = 0xBF

# Stream ids whose PES packets carry no optional header
_NO_OPTIONAL_HEADER = frozenset(
    {PROGRAM_STREAM_MAP, PADDING_STREAM, PRIVATE_STREAM_2, 0xF0, 0xF1, 0xF2, 0xF8, 0xFF}
)


def is_video_stream_id(stream_id: int) -> bool:
    return 0xE0 <= stream_id <= 0xEF


def is_audio_stream_id(stream_id: int) -> bool:
    return 0xC0 <= stream_id <= 0xDF


def decode_timestamp(data: bytes, pos: int = 0) -> int | None:
    """Decode a 5-byte PTS/DTS field.

    Layout: ``0010 PPP1 PPPPPPPP PPPPPPP1 PPPPPPPP PPPPPPP1`` where P are
    the 33 timestamp bits. Returns None when a marker bit is missing.
    """
    if pos + 5 > len(data):
        return None
    b0, b1, b2, b3, b4 = data[pos : pos + 5]
    if not (b0 & 0x01 and b2 & 0x01 and b4 & 0x01):
        return None
    return ((b0 >> 1) & 0x07) << 30 | b1 << 22 | (b2 >> 1) << 15 | b3 << 7 | b4 >> 1


@dataclass
class PESHeader:
    """Parsed PES packet header.

    ``payload_offset`` is relative to the start code. ``packet_length`` is
    the declared PES_packet_length (0 means unbounded, video in TS).
    """

    stream_id: int
    packet_length: int
    payload_offset: int
    pts: int | None = None
    dts: int | None = None
    mpeg2: bool = True


def parse_pes_header(data: bytes, pos: int = 0) -> PESHeader | None:
    """Parse the PES header starting at ``data[pos]`` (the 00 00 01 prefix).

    Handles both MPEG-2 optional headers and MPEG-1 style headers with
    stuffing bytes. Returns None if the bytes do not form a PES header.
    """
    if pos + 6 > len(data) or data[pos : pos + 3] != START_CODE_PREFIX:
        return None
    stream_id = data[pos + 3]
    if stream_id < PACK_HEADER:
        return None
    packet_length = data[pos + 4] << 8 | data[pos + 5]
    if stream_id in _NO_OPTIONAL_HEADER:
        return PESHeader(stream_id, packet_length, 6, mpeg2=False)

    if pos + 9 <= len(data) and data[pos + 6] & 0xC0 == 0x80:
        flags = data[pos + 7]
        header_length = data[pos + 8]
        header = PESHeader(stream_id, packet_length, 9 + header_length)
        if flags & 0x80:
            header.pts = decode_timestamp(data, pos + 9)
            if flags & 0x40:
                header.dts = decode_timestamp(data, pos + 14)
        return header

    # MPEG-1: stuffing, optional STD buffer size, then the timestamp flags
    cursor = pos + 6
    end = min(len(data), pos + 6 + 16)
    while cursor < end and data[cursor] == 0xFF:
        cursor += 1
    if cursor >= len(data):
        return None
    if data[cursor] & 0xC0 == 0x40:
        cursor += 2
        if cursor >= len(data):
            return None
    marker = data[cursor] & 0xF0
    header = PESHeader(stream_id, packet_length, 0, mpeg2=False)
    if marker == 0x20:
        header.pts = decode_timestamp(data, cursor)
        cursor += 5
    elif marker == 0x30:
        header.pts = decode_timestamp(data, cursor)
        header.dts = decode_timestamp(data, cursor + 5)
        cursor += 10
    elif data[cursor] == 0x0F:
        cursor += 1
    else:
        return None
    header.payload_offset = cursor - pos
    return header


def pts_delta(start: int, end: int) -> int:
    """Ticks from ``start`` to ``end`` modulo the 33-bit wrap."""
    return (end - start) % PTS_WRAP


class PTSTracker:
    """Tracks the presentation time span of one elementary stream.

    Timestamps are unwrapped relative to the first one seen, so a stream
    crossing the 33-bit boundary still measures a positive span.
    """

    def __init__(self):
        self.count = 0
        self._min = 0
        self._max = 0
        self._last_raw: int | None = None
        self._offset = 0

    def add(self, pts: int | None) -> None:
        if pts is None:
            return
        pts &= PTS_MASK
        if self._last_raw is not None:
            # A large backward step is a wrap, not reordering
            if self._last_raw - pts > PTS_WRAP // 2:
                self._offset += PTS_WRAP
            elif pts - self._last_raw > PTS_WRAP // 2:
                self._offset -= PTS_WRAP
        self._last_raw = pts
        value = pts + self._offset
        if not self.count:
            self._min = self._max = value
        else:
            self._min = min(self._min, value)
            self._max = max(self._max, value)
        self.count += 1

    @property
    def has_span(self) -> bool:
        return self.count >= 2 and self._max > self._min

    @property
    def span_ticks(self) -> int:
        return self._max - self._min if self.count else 0

    @property
    def duration(self) -> float | None:
        """Span between the lowest and highest timestamp, in seconds."""
        if not self.has_span:
            return None
        return self.span_ticks / PTS_CLOCK

    @property
    def lowest(self) -> int | None:
        return self._min & PTS_MASK if self.count else None

    @property
    def highest(self) -> int | None:
        return self._max & PTS_MASK if self.count else None

    def frame_rate(self) -> float | None:
        """Timestamped packets per second over the measured span.

        An approximation: one timestamp is counted per PES packet, which
        matches one frame per packet muxing but not every encoder.
        """
        return safe_rate(self.count - 1, self.duration)


def safe_rate(count: float | None, seconds: float | None) -> float | None:
    """``count / seconds``, or None when either side is unusable."""
    if not count or not seconds or count <= 0 or seconds <= 0:
        return None
    return count / seconds


def span_duration(first: int | None, last: int | None) -> float | None:
    """Seconds from ``first`` to ``last``, allowing one wrap in between."""
    if first is None or last is None:
        return None
    delta = pts_delta(first, last)
    if delta == 0 or delta > PTS_WRAP // 2:
        return None
    return delta / PTS_CLOCK


# Elementary stream bytes kept per stream for header reads
SAMPLE_BYTES = 64 * 1024


@dataclass
class ESCounter:
    """Timestamps and byte counts for one elementary stream.

    Timestamps from the head window and the tail window are tracked
    separately; only the head keeps a payload sample for header reads.
    """

    head: PTSTracker = field(default_factory=PTSTracker)
    tail: PTSTracker = field(default_factory=PTSTracker)
    pes_count: int = 0
    bytes: int = 0
    sample: bytearray = field(default_factory=bytearray)

    def add_pes(self, header: PESHeader, tail: bool) -> None:
        (self.tail if tail else self.head).add(header.pts)
        self.pes_count += 1

    def add_payload(self, payload: bytes, tail: bool) -> None:
        self.bytes += len(payload)
        if not tail and len(self.sample) < SAMPLE_BYTES:
            self.sample += payload[: SAMPLE_BYTES - len(self.sample)]

    def duration(self, full_scan: bool) -> float | None:
        if full_scan or not self.tail.count:
            return self.head.duration
        return span_duration(self.head.lowest, self.tail.highest)


def fill_track(track: TrackInfo, counter: ESCounter, full_scan: bool, share: float, estimate_frame_rate: bool) -> None:
    """Set timing, size and rate fields of a packetized stream's track.

    ``share`` scales byte counts from the scanned windows to the whole
    file. The frame rate estimate counts timestamped PES packets over the
    measured span; a frame rate read from a sequence header wins.
    """
    track.duration = counter.duration(full_scan)
    apply_header(track, read_stream_header(track.format, bytes(counter.sample)))
    if track.kind in (StreamKind.VIDEO, StreamKind.AUDIO) and counter.bytes:
        if full_scan:
            track.stream_size = counter.bytes
        if track.bit_rate is None and track.duration:
            track.bit_rate = counter.bytes * share * 8 / track.duration
    if track.kind is StreamKind.VIDEO:
        if track.frame_rate is None and estimate_frame_rate:
            track.frame_rate = counter.head.frame_rate()
        track.bit_rate_mode = track.bit_rate_mode or "Variable"
