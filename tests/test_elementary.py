"""Tests for elementary stream header readers."""

import builders
from mediaprobe.models import StreamKind
from mediaprobe.parsers.base import TrackInfo
from mediaprobe.parsers.elementary import (
    apply_header,
    iter_nal_units,
    nal_payload,
    parse_ac3_header,
    parse_adts_header,
    parse_avc_sps,
    parse_mpeg_audio_header,
    parse_mpeg_video_sequence,
    read_stream_header,
)


def test_mpeg2_sequence_header():
    header = parse_mpeg_video_sequence(b"\x00" * 7 + builders.MPEG2_SEQUENCE)
    assert (header.width, header.height) == (720, 576)
    assert header.frame_rate == 25.0
    assert header.format_version == "Version 2"
    assert header.display_aspect_ratio == "16:9"
    assert header.max_bit_rate == 6_000_000


def test_mpeg1_sequence_header_without_extension():
    header = parse_mpeg_video_sequence(builders.MPEG2_SEQUENCE[:12])
    assert header.format_version == "Version 1"
    assert header.display_aspect_ratio == "1.25:1"


def test_mpeg_audio_header():
    header = parse_mpeg_audio_header(builders.MPEG_AUDIO_FRAME)
    assert header.format_profile == "Layer 2"
    assert header.bit_rate == 256_000
    assert header.sample_rate == 48000
    assert header.channels == 2


def test_mpeg_audio_rejects_reserved_values():
    assert parse_mpeg_audio_header(b"\xff\xfd\xf4\x00") is None


def test_ac3_header():
    header = parse_ac3_header(builders.AC3_FRAME)
    assert header.channels == 6
    assert header.bit_rate == 384_000


def test_adts_header():
    header = parse_adts_header(bytes([0xFF, 0xF1, 0x4C, 0x80, 0x00, 0x1F, 0xFC]))
    assert header.format_profile == "LC"
    assert header.sample_rate == 48000
    assert header.channels == 2


def test_header_search_skips_false_sync():
    data = b"\xff\x00" + builders.MPEG_AUDIO_FRAME
    assert read_stream_header("MPEG Audio", data).bit_rate == 256_000
    assert read_stream_header("Private", data) is None


def test_apply_header_keeps_container_values():
    track = TrackInfo(kind=StreamKind.AUDIO, format="MPEG Audio", channels=1)
    apply_header(track, parse_mpeg_audio_header(builders.MPEG_AUDIO_FRAME))
    assert track.channels == 1
    assert track.sample_rate == 48000
    assert track.bit_rate_mode == "Constant"
    assert track.extra["Format version"] == "Version 1"


def test_nal_units_split_on_start_codes():
    data = b"\x00\x00\x00\x01\x09\xf0\x00\x00\x01\x67\x64\x00"
    assert list(iter_nal_units(data)) == [b"\x09\xf0", b"\x67\x64"]


def test_nal_payload_drops_emulation_prevention():
    assert nal_payload(b"\x67\x00\x00\x03\x01\x00\x00\x03\x00", 1) == b"\x00\x00\x01\x00\x00\x00"


def test_avc_sps():
    header = read_stream_header("AVC", builders.AVC_AUD + builders.avc_sps() + bytes(40))
    assert header.format == "AVC"
    assert header.format_profile == "High@L4"
    assert (header.width, header.height) == (1920, 1080)
    assert header.display_aspect_ratio == "16:9"
    assert header.frame_rate == 25.0
    assert header.bit_depth == 8


def test_avc_sps_extended_sample_aspect_ratio():
    header = read_stream_header("AVC", builders.avc_sps(720, 576, time_scale=60, sar=(64, 45)))
    assert (header.width, header.height) == (720, 576)
    assert header.display_aspect_ratio == "16:9"
    assert header.frame_rate == 30.0


def test_avc_sps_cut_before_picture_size():
    assert parse_avc_sps(b"\x64\x00\x28") is None


def test_hevc_sps():
    header = read_stream_header("HEVC", builders.HEVC_AUD + builders.hevc_sps())
    assert header.format == "HEVC"
    assert header.format_profile == "Main@L4@Main"
    assert (header.width, header.height) == (1920, 1080)
    assert header.display_aspect_ratio == "16:9"
    assert header.frame_rate == 25.0


def test_sps_of_other_codec_ignored():
    assert read_stream_header("HEVC", builders.AVC_AUD + builders.avc_sps()) is None
