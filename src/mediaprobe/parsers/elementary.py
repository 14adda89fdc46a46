"""Elementary stream header readers.

These read only the fixed header of a stream (sequence header, sequence
parameter set, frame header, sync info) to recover geometry and audio
parameters. No payload is decoded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from mediaprobe.parsers.base import TrackInfo
from mediaprobe.utils.formatting import format_aspect_ratio, format_bitrate

logger = logging.getLogger(__name__)

MPEG_VIDEO_FRAME_RATES = {
    1: 24000 / 1001,
    2: 24.0,
    3: 25.0,
    4: 30000 / 1001,
    5: 30.0,
    6: 50.0,
    7: 60000 / 1001,
    8: 60.0,
}
MPEG_VIDEO_ASPECT_RATIOS = {2: "4:3", 3: "16:9", 4: "2.21:1"}

_MPEG_AUDIO_BITRATES = {
    # (version 1?, layer) -> kb/s by index 1..14
    (True, 1): (32, 64, 96, 128, 160, 192, 224, 256, 288, 320, 352, 384, 416, 448),
    (True, 2): (32, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 384),
    (True, 3): (32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320),
    (False, 1): (32, 48, 56, 64, 80, 96, 112, 128, 144, 160, 176, 192, 224, 256),
    (False, 2): (8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160),
    (False, 3): (8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160),
}
_MPEG_AUDIO_SAMPLE_RATES = {
    3: (44100, 48000, 32000),
    2: (22050, 24000, 16000),
    0: (11025, 12000, 8000),
}
_MPEG_AUDIO_VERSIONS = {3: "Version 1", 2: "Version 2", 0: "Version 2.5"}

AC3_BITRATES = (32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 384, 448, 512, 576, 640)
AC3_SAMPLE_RATES = (48000, 44100, 32000)
# Full-bandwidth channels per audio coding mode
AC3_ACMOD_CHANNELS = (2, 1, 2, 3, 3, 4, 4, 5)

AAC_SAMPLE_RATES = (96000, 88200, 64000, 48000, 44100, 32000, 24000, 22050, 16000, 12000, 11025, 8000, 7350)
AAC_PROFILES = {1: "Main", 2: "LC", 3: "SSR", 4: "LTP", 5: "HE-AAC", 29: "HE-AACv2"}
# channel_configuration -> channel count
AAC_CHANNELS = {1: 1, 2: 2, 3: 3, 4: 4, 5: 5, 6: 6, 7: 8}

AVC_PROFILES = {
    66: "Baseline",
    77: "Main",
    88: "Extended",
    100: "High",
    110: "High 10",
    122: "High 4:2:2",
    244: "High 4:4:4 Predictive",
}
# Profiles whose SPS carries chroma format, bit depth and scaling lists
AVC_HIGH_PROFILE_IDS = frozenset({100, 110, 122, 244, 44, 83, 86, 118, 128, 138, 139, 134})
# aspect_ratio_idc -> sample aspect ratio
AVC_SAMPLE_ASPECT_RATIOS = {
    1: (1, 1),
    2: (12, 11),
    3: (10, 11),
    4: (16, 11),
    5: (40, 33),
    6: (24, 11),
    7: (20, 11),
    8: (32, 11),
    9: (80, 33),
    10: (18, 11),
    11: (15, 11),
    12: (64, 33),
    13: (160, 99),
    14: (4, 3),
    15: (3, 2),
    16: (2, 1),
}
HEVC_PROFILES = {1: "Main", 2: "Main 10", 3: "Main Still", 4: "Format Range"}

AVC_SPS_NAL_TYPE = 7
HEVC_SPS_NAL_TYPE = 33


@dataclass
class StreamHeader:
    """Parameters recovered from an elementary stream header."""

    format: str
    format_version: str = ""
    format_profile: str = ""
    width: int | None = None
    height: int | None = None
    display_aspect_ratio: str = ""
    frame_rate: float | None = None
    bit_rate: float | None = None
    max_bit_rate: float | None = None
    channels: int | None = None
    sample_rate: float | None = None
    bit_depth: int | None = None


class _BitReader:
    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.bit = pos * 8

    def read(self, count: int) -> int:
        value = 0
        for _ in range(count):
            byte = self.data[self.bit >> 3]
            value = (value << 1) | ((byte >> (7 - (self.bit & 7))) & 1)
            self.bit += 1
        return value

    def skip(self, count: int) -> None:
        self.bit += count

    def ue(self) -> int:
        """Unsigned exp-Golomb code."""
        zeros = 0
        while not self.read(1):
            zeros += 1
            if zeros > 31:
                raise ValueError("exp-Golomb code longer than 32 bits")
        return (1 << zeros) - 1 + self.read(zeros)

    def se(self) -> int:
        value = self.ue()
        return (value + 1) // 2 if value & 1 else -(value // 2)


def avc_profile_name(profile_idc: int, level_idc: int) -> str:
    """Profile and level bytes as "High@L4.1"."""
    profile = AVC_PROFILES.get(profile_idc, str(profile_idc))
    level = str(level_idc // 10) if level_idc % 10 == 0 else f"{level_idc // 10}.{level_idc % 10}"
    return f"{profile}@L{level}"


def hevc_profile_name(profile_idc: int, level_idc: int, high_tier: bool) -> str:
    profile = HEVC_PROFILES.get(profile_idc, str(profile_idc))
    level = f"{level_idc / 30:.1f}".rstrip("0").rstrip(".")
    return f"{profile}@L{level}@{'High' if high_tier else 'Main'}"


def iter_nal_units(data: bytes) -> Iterator[bytes]:
    """Yield the NAL units of an Annex-B byte stream, without start codes."""
    pos = data.find(b"\x00\x00\x01")
    while pos >= 0:
        start = pos + 3
        pos = data.find(b"\x00\x00\x01", start)
        end = len(data) if pos < 0 else pos
        # Trailing zeros belong to the next four-byte start code
        while end > start and data[end - 1] == 0:
            end -= 1
        if end > start:
            yield data[start:end]


def nal_payload(nal: bytes, header_size: int) -> bytes:
    """Strip the NAL header and the emulation prevention bytes (00 00 03)."""
    out = bytearray()
    zeros = 0
    for byte in nal[header_size:]:
        if zeros >= 2 and byte == 0x03:
            zeros = 0
            continue
        out.append(byte)
        zeros = zeros + 1 if byte == 0 else 0
    return bytes(out)


def _cropped(size: int, crop_start: int, crop_end: int, unit: int) -> int:
    crop = (crop_start + crop_end) * unit
    return size - crop if size > crop else size


def _skip_scaling_list(reader: _BitReader, size: int) -> None:
    last = next_scale = 8
    for _ in range(size):
        if next_scale:
            next_scale = (last + reader.se() + 256) % 256
        if next_scale:
            last = next_scale


def _video_geometry(header: StreamHeader, sar: tuple[int, int] | None) -> None:
    if sar and header.width and header.height:
        header.display_aspect_ratio = format_aspect_ratio(header.width * sar[0], header.height * sar[1])
    elif header.width and header.height:
        header.display_aspect_ratio = format_aspect_ratio(header.width, header.height)


def _read_sample_aspect_ratio(reader: _BitReader) -> tuple[int, int] | None:
    """aspect_ratio_info of a VUI, after its present flag."""
    idc = reader.read(8)
    if idc == 255:
        width, height = reader.read(16), reader.read(16)
        return (width, height) if width and height else None
    return AVC_SAMPLE_ASPECT_RATIOS.get(idc)


def parse_avc_sps(rbsp: bytes) -> StreamHeader | None:
    """Parse an H.264 sequence parameter set (NAL header already stripped)."""
    reader = _BitReader(rbsp)
    try:
        profile_idc = reader.read(8)
        reader.skip(8)
        level_idc = reader.read(8)
        reader.ue()
        chroma_format = 1
        bit_depth = 8
        if profile_idc in AVC_HIGH_PROFILE_IDS:
            chroma_format = reader.ue()
            if chroma_format == 3:
                reader.skip(1)
            bit_depth = reader.ue() + 8
            reader.ue()
            reader.skip(1)
            if reader.read(1):
                for index in range(12 if chroma_format == 3 else 8):
                    if reader.read(1):
                        _skip_scaling_list(reader, 16 if index < 6 else 64)
        reader.ue()
        poc_type = reader.ue()
        if poc_type == 0:
            reader.ue()
        elif poc_type == 1:
            reader.skip(1)
            reader.se()
            reader.se()
            for _ in range(reader.ue()):
                reader.se()
        reader.ue()
        reader.skip(1)
        width = (reader.ue() + 1) * 16
        map_units = reader.ue() + 1
        frame_mbs_only = reader.read(1)
        height = map_units * 16 * (2 - frame_mbs_only)
        if not frame_mbs_only:
            reader.skip(1)
        reader.skip(1)
        if reader.read(1):
            crop = [reader.ue() for _ in range(4)]
            if chroma_format in (0, 3):
                unit_x, unit_y = 1, 1
            else:
                unit_x, unit_y = 2, 2 if chroma_format == 1 else 1
            unit_y *= 2 - frame_mbs_only
            width = _cropped(width, crop[0], crop[1], unit_x)
            height = _cropped(height, crop[2], crop[3], unit_y)
    except (IndexError, ValueError):
        return None

    header = StreamHeader(
        format="AVC",
        format_profile=avc_profile_name(profile_idc, level_idc),
        width=width,
        height=height,
        bit_depth=bit_depth,
    )
    sar = None
    try:
        if reader.read(1):
            if reader.read(1):
                sar = _read_sample_aspect_ratio(reader)
            if reader.read(1):
                reader.skip(1)
            if reader.read(1):
                reader.skip(4)
                if reader.read(1):
                    reader.skip(24)
            if reader.read(1):
                reader.ue()
                reader.ue()
            if reader.read(1):
                units, time_scale = reader.read(32), reader.read(32)
                if units and time_scale:
                    header.frame_rate = time_scale / (2 * units)
    except (IndexError, ValueError):
        logger.debug("AVC VUI cut short")
    _video_geometry(header, sar)
    return header


def _skip_sub_layer_levels(reader: _BitReader, sub_layers: int) -> None:
    """Sub-layer part of profile_tier_level, after general_level_idc."""
    flags = [(reader.read(1), reader.read(1)) for _ in range(sub_layers)]
    if sub_layers:
        reader.skip(2 * (8 - sub_layers))
    for profile_present, level_present in flags:
        reader.skip((88 if profile_present else 0) + (8 if level_present else 0))


def _skip_hevc_scaling_list_data(reader: _BitReader) -> None:
    for size_id in range(4):
        for _ in range(0, 6, 3 if size_id == 3 else 1):
            if not reader.read(1):
                reader.ue()
                continue
            if size_id > 1:
                reader.se()
            for _ in range(min(64, 1 << (4 + (size_id << 1)))):
                reader.se()


def _skip_short_term_ref_pic_sets(reader: _BitReader, count: int) -> None:
    delta_pocs: list[int] = []
    for index in range(count):
        if index and reader.read(1):
            reader.skip(1)
            reader.ue()
            used = 0
            for _ in range(delta_pocs[index - 1] + 1):
                if reader.read(1) or reader.read(1):
                    used += 1
            delta_pocs.append(used)
        else:
            negative, positive = reader.ue(), reader.ue()
            for _ in range(negative + positive):
                reader.ue()
                reader.skip(1)
            delta_pocs.append(negative + positive)


def parse_hevc_sps(rbsp: bytes) -> StreamHeader | None:
    """Parse an H.265 sequence parameter set (NAL header already stripped)."""
    reader = _BitReader(rbsp)
    try:
        reader.skip(4)
        sub_layers = reader.read(3)
        reader.skip(1)
        reader.skip(2)
        high_tier = bool(reader.read(1))
        profile_idc = reader.read(5)
        # Compatibility and constraint flags
        reader.skip(80)
        level_idc = reader.read(8)
        _skip_sub_layer_levels(reader, sub_layers)
        reader.ue()
        chroma_format = reader.ue()
        if chroma_format == 3:
            reader.skip(1)
        width = reader.ue()
        height = reader.ue()
        if reader.read(1):
            crop = [reader.ue() for _ in range(4)]
            unit_x = 2 if chroma_format in (1, 2) else 1
            unit_y = 2 if chroma_format == 1 else 1
            width = _cropped(width, crop[0], crop[1], unit_x)
            height = _cropped(height, crop[2], crop[3], unit_y)
        bit_depth = reader.ue() + 8
    except (IndexError, ValueError):
        return None

    header = StreamHeader(
        format="HEVC",
        format_profile=hevc_profile_name(profile_idc, level_idc, high_tier),
        width=width,
        height=height,
        bit_depth=bit_depth,
    )
    sar = None
    try:
        reader.ue()
        poc_lsb_bits = reader.ue() + 4
        ordering_all = reader.read(1)
        for _ in range(sub_layers + 1 if ordering_all else 1):
            reader.ue()
            reader.ue()
            reader.ue()
        for _ in range(6):
            reader.ue()
        if reader.read(1) and reader.read(1):
            _skip_hevc_scaling_list_data(reader)
        reader.skip(2)
        if reader.read(1):
            reader.skip(8)
            reader.ue()
            reader.ue()
            reader.skip(1)
        _skip_short_term_ref_pic_sets(reader, reader.ue())
        if reader.read(1):
            for _ in range(reader.ue()):
                reader.skip(poc_lsb_bits + 1)
        reader.skip(2)
        if reader.read(1):
            if reader.read(1):
                sar = _read_sample_aspect_ratio(reader)
            if reader.read(1):
                reader.skip(1)
            if reader.read(1):
                reader.skip(4)
                if reader.read(1):
                    reader.skip(24)
            if reader.read(1):
                reader.ue()
                reader.ue()
            reader.skip(3)
            if reader.read(1):
                for _ in range(4):
                    reader.ue()
            if reader.read(1):
                units, time_scale = reader.read(32), reader.read(32)
                if units and time_scale:
                    header.frame_rate = time_scale / units
    except (IndexError, ValueError):
        logger.debug("HEVC SPS cut short after the picture size")
    _video_geometry(header, sar)
    return header


def _find_sps(data: bytes, hevc: bool) -> StreamHeader | None:
    for nal in iter_nal_units(data):
        if hevc and (nal[0] >> 1) & 0x3F == HEVC_SPS_NAL_TYPE:
            return parse_hevc_sps(nal_payload(nal, 2))
        if not hevc and nal[0] & 0x1F == AVC_SPS_NAL_TYPE:
            return parse_avc_sps(nal_payload(nal, 1))
    return None


def parse_mpeg_video_sequence(data: bytes) -> StreamHeader | None:
    """Find and parse an MPEG-1/2 video sequence header (00 00 01 B3)."""
    pos = data.find(b"\x00\x00\x01\xb3")
    if pos < 0 or pos + 12 > len(data):
        return None
    b = data[pos + 4 : pos + 12]
    width = (b[0] << 4) | (b[1] >> 4)
    height = ((b[1] & 0x0F) << 8) | b[2]
    aspect_code = b[3] >> 4
    rate_code = b[3] & 0x0F
    if not width or not height or rate_code not in MPEG_VIDEO_FRAME_RATES:
        return None
    bit_rate_value = (b[4] << 10) | (b[5] << 2) | (b[6] >> 6)
    header = StreamHeader(
        format="MPEG Video",
        format_version="Version 1",
        width=width,
        height=height,
        frame_rate=MPEG_VIDEO_FRAME_RATES[rate_code],
    )
    if bit_rate_value and bit_rate_value != 0x3FFFF:
        header.max_bit_rate = bit_rate_value * 400.0
    # A sequence extension marks MPEG-2
    ext = data.find(b"\x00\x00\x01\xb5", pos + 12)
    if ext >= 0 and ext + 5 < len(data) and data[ext + 4] >> 4 == 1:
        header.format_version = "Version 2"
        header.display_aspect_ratio = MPEG_VIDEO_ASPECT_RATIOS.get(aspect_code, "")
        if not header.display_aspect_ratio and aspect_code == 1:
            header.display_aspect_ratio = format_aspect_ratio(width, height)
    else:
        header.display_aspect_ratio = format_aspect_ratio(width, height)
    return header


def parse_mpeg_audio_header(data: bytes, pos: int = 0) -> StreamHeader | None:
    """Parse an MPEG audio frame header at ``data[pos]``."""
    if pos + 4 > len(data):
        return None
    b0, b1, b2, b3 = data[pos : pos + 4]
    if b0 != 0xFF or b1 & 0xE0 != 0xE0:
        return None
    version = (b1 >> 3) & 0x03
    layer_bits = (b1 >> 1) & 0x03
    bitrate_index = b2 >> 4
    rate_index = (b2 >> 2) & 0x03
    if version == 1 or layer_bits == 0 or bitrate_index in (0, 15) or rate_index == 3:
        return None
    layer = 4 - layer_bits
    kbps = _MPEG_AUDIO_BITRATES[(version == 3, layer)][bitrate_index - 1]
    return StreamHeader(
        format="MPEG Audio",
        format_version=_MPEG_AUDIO_VERSIONS[version],
        format_profile=f"Layer {layer}",
        bit_rate=kbps * 1000.0,
        channels=1 if b3 >> 6 == 3 else 2,
        sample_rate=float(_MPEG_AUDIO_SAMPLE_RATES[version][rate_index]),
    )


def parse_ac3_header(data: bytes, pos: int = 0) -> StreamHeader | None:
    """Parse AC-3 or E-AC-3 sync info at ``data[pos]`` (0B 77)."""
    if pos + 8 > len(data) or data[pos] != 0x0B or data[pos + 1] != 0x77:
        return None
    bsid = data[pos + 5] >> 3
    if bsid > 10:
        return _parse_eac3_header(data, pos)
    fscod = data[pos + 4] >> 6
    frmsizecod = data[pos + 4] & 0x3F
    if fscod == 3 or frmsizecod >> 1 >= len(AC3_BITRATES):
        return None
    reader = _BitReader(data, pos + 6)
    acmod = reader.read(3)
    if acmod & 0x01 and acmod != 1:
        reader.read(2)
    if acmod & 0x04:
        reader.read(2)
    if acmod == 2:
        reader.read(2)
    lfeon = reader.read(1)
    return StreamHeader(
        format="AC-3",
        bit_rate=AC3_BITRATES[frmsizecod >> 1] * 1000.0,
        channels=AC3_ACMOD_CHANNELS[acmod] + lfeon,
        sample_rate=float(AC3_SAMPLE_RATES[fscod]),
    )


def _parse_eac3_header(data: bytes, pos: int) -> StreamHeader | None:
    frame_bytes = (((data[pos + 2] & 0x07) << 8 | data[pos + 3]) + 1) * 2
    fscod = data[pos + 4] >> 6
    code = (data[pos + 4] >> 4) & 0x03
    if fscod == 3:
        if code == 3:
            return None
        sample_rate = AC3_SAMPLE_RATES[code] / 2
        blocks = 6
    else:
        sample_rate = AC3_SAMPLE_RATES[fscod]
        blocks = (1, 2, 3, 6)[code]
    acmod = (data[pos + 4] >> 1) & 0x07
    lfeon = data[pos + 4] & 0x01
    return StreamHeader(
        format="E-AC-3",
        bit_rate=frame_bytes * 8 * sample_rate / (blocks * 256),
        channels=AC3_ACMOD_CHANNELS[acmod] + lfeon,
        sample_rate=float(sample_rate),
    )


def parse_adts_header(data: bytes, pos: int = 0) -> StreamHeader | None:
    """Parse an AAC ADTS header at ``data[pos]``."""
    if pos + 7 > len(data):
        return None
    b0, b1, b2, b3 = data[pos : pos + 4]
    if b0 != 0xFF or b1 & 0xF6 != 0xF0:
        return None
    object_type = (b2 >> 6) + 1
    rate_index = (b2 >> 2) & 0x0F
    channel_config = ((b2 & 0x01) << 2) | (b3 >> 6)
    if rate_index >= len(AAC_SAMPLE_RATES):
        return None
    return StreamHeader(
        format="AAC",
        format_profile=AAC_PROFILES.get(object_type, ""),
        channels=AAC_CHANNELS.get(channel_config),
        sample_rate=float(AAC_SAMPLE_RATES[rate_index]),
    )


def _scan(data: bytes, parse, sync: bytes) -> StreamHeader | None:
    pos = data.find(sync)
    while pos >= 0:
        header = parse(data, pos)
        if header is not None:
            return header
        pos = data.find(sync, pos + 1)
    return None


def read_stream_header(format_name: str, data: bytes) -> StreamHeader | None:
    """Find the header of a stream already classified by name in ``data``."""
    if not data:
        return None
    if format_name == "MPEG Video":
        return parse_mpeg_video_sequence(data)
    if format_name == "MPEG Audio":
        return _scan(data, parse_mpeg_audio_header, b"\xff")
    if format_name in ("AC-3", "E-AC-3"):
        return _scan(data, parse_ac3_header, b"\x0b\x77")
    if format_name == "AAC":
        return _scan(data, parse_adts_header, b"\xff")
    if format_name in ("AVC", "HEVC"):
        return _find_sps(data, hevc=format_name == "HEVC")
    return None


def apply_header(track: TrackInfo, header: StreamHeader | None) -> None:
    """Fill fields of ``track`` that the container left empty."""
    if header is None:
        return
    if header.format and header.format != track.format:
        track.format = header.format
    if header.format_version:
        track.extra.setdefault("Format version", header.format_version)
    if header.max_bit_rate:
        track.extra.setdefault("Maximum bit rate", format_bitrate(header.max_bit_rate))
    track.format_profile = track.format_profile or header.format_profile
    track.width = track.width or header.width
    track.height = track.height or header.height
    track.display_aspect_ratio = track.display_aspect_ratio or header.display_aspect_ratio
    if header.frame_rate:
        track.frame_rate = header.frame_rate
    track.channels = track.channels or header.channels
    track.sample_rate = track.sample_rate or header.sample_rate
    track.bit_depth = track.bit_depth or header.bit_depth
    if header.bit_rate and track.bit_rate is None:
        track.bit_rate = header.bit_rate
        if track.format in ("AC-3", "E-AC-3", "MPEG Audio"):
            track.bit_rate_mode = "Constant"
