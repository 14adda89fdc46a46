"""Tests for container format detection."""

import io

import builders
from mediaprobe.sniff import ContainerFormat, find_ts_sync, sniff, sniff_bytes, ts_packet_size


def test_mp4_by_ftyp():
    assert sniff_bytes(builders.build_mp4()) is ContainerFormat.MP4


def test_mp4_leading_mdat():
    data = builders.box(b"mdat", bytes(64)) + builders.box(b"moov", b"")
    assert sniff_bytes(data) is ContainerFormat.MP4


def test_matroska_magic():
    assert sniff_bytes(builders.build_mkv()) is ContainerFormat.MATROSKA
    assert sniff_bytes(builders.build_mkv(doc_type="webm")) is ContainerFormat.MATROSKA


def test_transport_stream_188():
    data = builders.build_ts()
    assert sniff_bytes(data) is ContainerFormat.MPEG_TS
    assert ts_packet_size(data) == 188


def test_transport_stream_192():
    data = builders.build_ts(packet_size=192)
    assert sniff_bytes(data) is ContainerFormat.MPEG_TS
    assert ts_packet_size(data) == 192


def test_transport_stream_leading_junk():
    data = builders.build_ts(junk=b"\x00" * 5)
    assert sniff_bytes(data) is ContainerFormat.MPEG_TS
    assert find_ts_sync(data, 188) == 5


def test_single_sync_byte_is_not_ts():
    assert sniff_bytes(b"\x47" + bytes(400)) is ContainerFormat.UNKNOWN


def test_program_stream_pack():
    assert sniff_bytes(builders.build_ps()) is ContainerFormat.MPEG_PS


def test_program_stream_without_pack_needs_extension():
    data = builders.pes(0xE0, 90000, bytes(100))
    assert sniff_bytes(data, "clip.vob") is ContainerFormat.MPEG_PS
    assert sniff_bytes(data, "clip.bin") is ContainerFormat.UNKNOWN


def test_unknown_and_empty():
    assert sniff_bytes(b"") is ContainerFormat.UNKNOWN
    assert sniff_bytes(b"hello world, this is not media") is ContainerFormat.UNKNOWN


def test_sniff_restores_position():
    fh = io.BytesIO(builders.build_mkv())
    fh.seek(17)
    assert sniff(fh, "x.mkv") is ContainerFormat.MATROSKA
    assert fh.tell() == 17
