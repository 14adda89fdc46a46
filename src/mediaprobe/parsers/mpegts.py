"""MPEG transport stream parser.

Demultiplexes fixed-size packets by PID. PID 0 carries the PAT, which
names the PMT PIDs; each PMT lists the elementary streams and their types.
PES headers on those PIDs give presentation timestamps, from which
durations, bit rates and an approximate frame rate are measured.

Large files are read as a head window and a tail window: timestamps from
the head give the start, timestamps from the tail give the end, and byte
counts are extrapolated from the share of scanned bytes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO

from mediaprobe.models import StreamKind
from mediaprobe.parsers.base import (
    DECODE_ERRORS,
    BaseParser,
    ContainerFormat,
    ContainerInfo,
    TrackInfo,
    read_at,
    scan_windows,
)
from mediaprobe.parsers.pes import ESCounter, PTSTracker, fill_track, parse_pes_header
from mediaprobe.sniff import TS_SYNC, find_ts_sync, ts_packet_size
from mediaprobe.utils.formatting import format_hex_id, normalize_language

logger = logging.getLogger(__name__)

PAT_PID = 0x0000
NULL_PID = 0x1FFF
TABLE_PAT = 0x00
TABLE_PMT = 0x02

# Descriptor tags
DESC_REGISTRATION = 0x05
DESC_ISO639_LANGUAGE = 0x0A
DESC_TELETEXT = 0x56
DESC_DVB_SUBTITLE = 0x59
DESC_AC3 = 0x6A
DESC_EAC3 = 0x7A
DESC_DTS = 0x7B

REGISTRATION_HDMV = b"HDMV"

STREAM_TYPES = {
    0x01: (StreamKind.VIDEO, "MPEG Video"),
    0x02: (StreamKind.VIDEO, "MPEG Video"),
    0x10: (StreamKind.VIDEO, "MPEG-4 Visual"),
    0x1B: (StreamKind.VIDEO, "AVC"),
    0x24: (StreamKind.VIDEO, "HEVC"),
    0xEA: (StreamKind.VIDEO, "VC-1"),
    0x03: (StreamKind.AUDIO, "MPEG Audio"),
    0x04: (StreamKind.AUDIO, "MPEG Audio"),
    0x0F: (StreamKind.AUDIO, "AAC"),
    0x11: (StreamKind.AUDIO, "AAC"),
    0x81: (StreamKind.AUDIO, "AC-3"),
    0x87: (StreamKind.AUDIO, "E-AC-3"),
    0x06: (StreamKind.TEXT, "Private"),
    0x90: (StreamKind.TEXT, "PGS"),
}

# Blu-ray (HDMV registration) reuses user-private stream types
HDMV_STREAM_TYPES = {
    0x80: (StreamKind.AUDIO, "PCM"),
    0x81: (StreamKind.AUDIO, "AC-3"),
    0x82: (StreamKind.AUDIO, "DTS"),
    0x83: (StreamKind.AUDIO, "AC-3"),
    0x84: (StreamKind.AUDIO, "E-AC-3"),
    0x85: (StreamKind.AUDIO, "DTS"),
    0x86: (StreamKind.AUDIO, "DTS"),
    0x90: (StreamKind.TEXT, "PGS"),
    0x91: (StreamKind.TEXT, "PGS"),
    0x92: (StreamKind.TEXT, "TextST"),
}

# Private data (stream type 0x06) identified by a descriptor
PRIVATE_DESCRIPTOR_TYPES = {
    DESC_AC3: (StreamKind.AUDIO, "AC-3"),
    DESC_EAC3: (StreamKind.AUDIO, "E-AC-3"),
    DESC_DTS: (StreamKind.AUDIO, "DTS"),
    DESC_DVB_SUBTITLE: (StreamKind.TEXT, "DVB Subtitle"),
    DESC_TELETEXT: (StreamKind.TEXT, "Teletext"),
}


def map_stream_type(stream_type: int, registration: bytes = b"") -> tuple[StreamKind, str] | None:
    """Classify a PMT stream type, honoring the HDMV registration."""
    if registration == REGISTRATION_HDMV and stream_type in HDMV_STREAM_TYPES:
        return HDMV_STREAM_TYPES[stream_type]
    return STREAM_TYPES.get(stream_type)


def iter_descriptors(data: bytes, start: int, end: int):
    """Yields (tag, payload) for each descriptor in ``data[start:end]``."""
    pos = start
    while pos + 2 <= end:
        tag, length = data[pos], data[pos + 1]
        if pos + 2 + length > end:
            return
        yield tag, data[pos + 2 : pos + 2 + length]
        pos += 2 + length


def parse_pat(section: bytes) -> list[tuple[int, int]]:
    """Returns (program_number, pmt_pid) pairs, skipping the network PID."""
    if len(section) < 12 or section[0] != TABLE_PAT:
        return []
    section_length = ((section[1] & 0x0F) << 8) | section[2]
    end = min(3 + section_length - 4, len(section))
    programs = []
    for pos in range(8, end - 3, 4):
        program = (section[pos] << 8) | section[pos + 1]
        pid = ((section[pos + 2] & 0x1F) << 8) | section[pos + 3]
        if program != 0:
            programs.append((program, pid))
    return programs


@dataclass
class PMTEntry:
    pid: int
    stream_type: int
    kind: StreamKind
    format: str
    language: str = ""


def parse_pmt(section: bytes) -> list[PMTEntry]:
    """Elementary streams listed by a PMT section, in table order."""
    if len(section) < 16 or section[0] != TABLE_PMT:
        return []
    section_length = ((section[1] & 0x0F) << 8) | section[2]
    end = min(3 + section_length - 4, len(section))
    program_info_length = ((section[10] & 0x0F) << 8) | section[11]
    registration = b""
    for tag, payload in iter_descriptors(section, 12, 12 + program_info_length):
        if tag == DESC_REGISTRATION:
            registration = payload[:4]
    entries = []
    pos = 12 + program_info_length
    while pos + 5 <= end:
        stream_type = section[pos]
        pid = ((section[pos + 1] & 0x1F) << 8) | section[pos + 2]
        es_info_length = ((section[pos + 3] & 0x0F) << 8) | section[pos + 4]
        descriptors = list(iter_descriptors(section, pos + 5, min(pos + 5 + es_info_length, end)))
        pos += 5 + es_info_length
        stream_registration = registration
        language = ""
        private_type = None
        for tag, payload in descriptors:
            if tag == DESC_REGISTRATION:
                stream_registration = payload[:4]
            elif tag == DESC_ISO639_LANGUAGE and len(payload) >= 3:
                language = payload[:3].decode("latin-1")
            elif tag == DESC_DVB_SUBTITLE and len(payload) >= 3 and not language:
                language = payload[:3].decode("latin-1")
            if tag in PRIVATE_DESCRIPTOR_TYPES and private_type is None:
                private_type = PRIVATE_DESCRIPTOR_TYPES[tag]
        mapped = map_stream_type(stream_type, stream_registration)
        if stream_type == 0x06 and private_type is not None:
            mapped = private_type
        if mapped is None:
            logger.debug("ignoring PID 0x%X with stream type 0x%02X", pid, stream_type)
            continue
        kind, name = mapped
        entries.append(PMTEntry(pid, stream_type, kind, name, language))
    return entries


@dataclass
class _PIDStream(ESCounter):
    entry: PMTEntry | None = None


class _Demuxer:
    """Packet demultiplexer state shared by the scanned windows."""

    def __init__(self, packet_size: int):
        self.packet_size = packet_size
        self.lead = packet_size - 188
        self.pmt_pids: set[int] = set()
        self.streams: dict[int, _PIDStream] = {}
        self.order: list[int] = []
        self.orphans: dict[int, PTSTracker] = {}
        self.sections: dict[int, bytearray] = {}
        self.lost_sync = 0
        self.scanned = 0

    def feed(self, data: bytes, first_sync: int, tail: bool) -> None:
        """Process every packet in ``data``; ``first_sync`` indexes a 0x47."""
        size = self.packet_size
        pos = first_sync
        while pos + 188 <= len(data):
            if data[pos] != TS_SYNC:
                pos = self._resync(data, pos + 1)
                continue
            self._packet(data[pos : pos + 188], tail)
            self.scanned += size
            pos += size

    def _resync(self, data: bytes, pos: int) -> int:
        self.lost_sync += 1
        size = self.packet_size
        while True:
            pos = data.find(bytes((TS_SYNC,)), pos)
            if pos < 0 or pos + size >= len(data):
                return len(data)
            if data[pos + size] == TS_SYNC:
                logger.debug("resynchronized at offset %d", pos)
                return pos
            pos += 1

    def _packet(self, packet: bytes, tail: bool) -> None:
        pid = ((packet[1] & 0x1F) << 8) | packet[2]
        if pid == NULL_PID or packet[1] & 0x80:
            return
        pusi = bool(packet[1] & 0x40)
        adaptation = (packet[3] >> 4) & 0x03
        if not adaptation & 0x01:
            return
        start = 4
        if adaptation & 0x02:
            start += 1 + packet[4]
        if start >= 188:
            return
        payload = packet[start:]
        if pid == PAT_PID or pid in self.pmt_pids:
            self._section(pid, payload, pusi)
        elif pid in self.streams:
            self._pes(self.streams[pid], payload, pusi, tail)
        elif pusi and not tail:
            header = parse_pes_header(payload)
            if header is not None:
                self.orphans.setdefault(pid, PTSTracker()).add(header.pts)

    def _section(self, pid: int, payload: bytes, pusi: bool) -> None:
        if pusi:
            pointer = payload[0]
            buf = bytearray(payload[1 + pointer :])
            self.sections[pid] = buf
        else:
            buf = self.sections.get(pid)
            if buf is None:
                return
            buf += payload
        if len(buf) < 3:
            return
        section_length = ((buf[1] & 0x0F) << 8) | buf[2]
        if len(buf) < 3 + section_length:
            return
        section = bytes(buf[: 3 + section_length])
        del self.sections[pid]
        if pid == PAT_PID:
            for program, pmt_pid in parse_pat(section):
                if pmt_pid not in self.pmt_pids:
                    logger.debug("program %d maps to PMT PID 0x%X", program, pmt_pid)
                    self.pmt_pids.add(pmt_pid)
        else:
            for entry in parse_pmt(section):
                if entry.pid not in self.streams:
                    self.streams[entry.pid] = _PIDStream(entry=entry)
                    self.order.append(entry.pid)

    def _pes(self, stream: _PIDStream, payload: bytes, pusi: bool, tail: bool) -> None:
        if pusi:
            header = parse_pes_header(payload)
            if header is None:
                return
            stream.add_pes(header, tail)
            payload = payload[header.payload_offset :]
        elif not stream.pes_count:
            return
        stream.add_payload(payload, tail)


class MPEGTSParser(BaseParser):
    """Parser for MPEG transport streams (188-byte) and BDAV/M2TS (192-byte)."""

    format = ContainerFormat.MPEG_TS
    name = "mpegts"

    def parse(self, fh: BinaryIO, size: int) -> ContainerInfo:
        head = read_at(fh, 0, 64 * 1024)
        packet_size = ts_packet_size(head) or 188
        info = ContainerInfo(
            format=self.format,
            format_name="BDAV" if packet_size == 192 else "MPEG-TS",
            overall_bit_rate_mode="Variable",
        )
        demux = _Demuxer(packet_size)
        windows = scan_windows(size, self.options)
        try:
            for index, (start, end) in enumerate(windows):
                data = read_at(fh, start, end - start)
                offset = find_ts_sync(data, packet_size)
                if offset is None:
                    logger.debug("no packet sync in window %d-%d", start, end)
                    info.truncated = True
                    continue
                demux.feed(data, offset + demux.lead, tail=index > 0)
        except DECODE_ERRORS as e:
            logger.warning("packet walk stopped early: %s", e)
            info.truncated = True
        if demux.lost_sync:
            logger.debug("lost packet sync %d times", demux.lost_sync)

        full_scan = len(windows) == 1
        share = size / demux.scanned if demux.scanned and not full_scan else 1.0
        for pid in demux.order:
            stream = demux.streams[pid]
            if not stream.pes_count:
                continue
            info.tracks.append(self._build_track(stream, full_scan, share))

        if demux.streams:
            info.duration = info.max_track_duration
        else:
            # No program tables: timing from any PES seen
            logger.debug("no PAT/PMT found; reporting timing only")
            durations = [t.duration for t in demux.orphans.values() if t.duration]
            info.duration = max(durations) if durations else None
        return info

    def _build_track(self, stream: _PIDStream, full_scan: bool, share: float) -> TrackInfo:
        entry = stream.entry
        track = TrackInfo(kind=entry.kind, id=format_hex_id(entry.pid), format=entry.format)
        track.codec_id = str(entry.stream_type)
        track.language = normalize_language(entry.language)
        fill_track(track, stream, full_scan, share, not self.options.summary_only)
        return track
