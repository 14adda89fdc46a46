"""Byte builders for small synthetic container files.

Only the structures the parsers read are filled in; everything else is
zero or a fixed placeholder.
"""

import struct

# -- MP4 ---------------------------------------------------------------------


def box(kind: bytes, payload: bytes = b"") -> bytes:
    return struct.pack(">I", 8 + len(payload)) + kind + payload


def full_box(kind: bytes, version: int, payload: bytes, flags: int = 0) -> bytes:
    return box(kind, struct.pack(">I", (version << 24) | flags) + payload)


def ftyp(major: bytes = b"isom", compatible: tuple = (b"isom", b"iso2", b"avc1", b"mp41")) -> bytes:
    return box(b"ftyp", major + struct.pack(">I", 0x200) + b"".join(compatible))


def mvhd(timescale: int, duration: int, version: int = 0, created: int = 0, modified: int = 0) -> bytes:
    if version == 1:
        body = struct.pack(">QQIQ", created, modified, timescale, duration)
    else:
        body = struct.pack(">IIII", created, modified, timescale, duration)
    return full_box(b"mvhd", version, body + bytes(80))


def tkhd(track_id: int, duration: int, width: int = 0, height: int = 0) -> bytes:
    body = struct.pack(">IIIII", 0, 0, track_id, 0, duration)
    body += bytes(8) + struct.pack(">hhhh", 0, 0, 0, 0) + bytes(36)
    body += struct.pack(">II", width << 16, height << 16)
    return full_box(b"tkhd", 0, body, flags=3)


def pack_language(code: str) -> int:
    return ((ord(code[0]) - 0x60) << 10) | ((ord(code[1]) - 0x60) << 5) | (ord(code[2]) - 0x60)


def mdhd(timescale: int, duration: int, language: str = "eng") -> bytes:
    body = struct.pack(">IIIIHH", 0, 0, timescale, duration, pack_language(language), 0)
    return full_box(b"mdhd", 0, body)


def hdlr(handler: bytes, name: str = "") -> bytes:
    return full_box(b"hdlr", 0, struct.pack(">I", 0) + handler + bytes(12) + name.encode() + b"\x00")


def visual_entry(tag: bytes, width: int, height: int, children: bytes = b"") -> bytes:
    body = bytes(6) + struct.pack(">H", 1) + bytes(16)
    body += struct.pack(">HHII", width, height, 0x480000, 0x480000)
    body += bytes(4) + struct.pack(">H", 1) + bytes(32) + struct.pack(">Hh", 0x18, -1)
    return box(tag, body + children)


def audio_entry(tag: bytes, channels: int, bits: int, rate: int, children: bytes = b"") -> bytes:
    body = bytes(6) + struct.pack(">H", 1)
    body += struct.pack(">HHI", 0, 0, 0)
    body += struct.pack(">HHHHI", channels, bits, 0, 0, rate << 16)
    return box(tag, body + children)


def avcc(profile: int = 100, level: int = 41) -> bytes:
    return box(b"avcC", bytes([1, profile, 0, level, 0xFF, 0xE0]))


def esds(object_type: int = 0x40, avg_bit_rate: int = 128000, max_bit_rate: int = 128000) -> bytes:
    # AudioSpecificConfig: AAC LC, 48 kHz, 2 channels
    dsi = bytes([0x05, 2, 0x11, 0x90])
    config = bytes([object_type, 0x15, 0, 0, 0]) + struct.pack(">II", max_bit_rate, avg_bit_rate) + dsi
    decoder = bytes([0x04, len(config)]) + config
    es_payload = struct.pack(">HB", 1, 0) + decoder + bytes([0x06, 1, 2])
    return full_box(b"esds", 0, bytes([0x03, len(es_payload)]) + es_payload)


def stsd(entry: bytes) -> bytes:
    return full_box(b"stsd", 0, struct.pack(">I", 1) + entry)


def stts(entries: list) -> bytes:
    body = struct.pack(">I", len(entries))
    for count, delta in entries:
        body += struct.pack(">II", count, delta)
    return full_box(b"stts", 0, body)


def stsz(sizes: list) -> bytes:
    return full_box(b"stsz", 0, struct.pack(">II", 0, len(sizes)) + b"".join(struct.pack(">I", s) for s in sizes))


def trak(header: bytes, media_header: bytes, handler: bytes, sample_table: bytes, edits: bytes = b"") -> bytes:
    stbl = box(b"stbl", sample_table)
    mdia = box(b"mdia", media_header + handler + box(b"minf", stbl))
    return box(b"trak", header + edits + mdia)


def edts(entries: list, version: int = 0) -> bytes:
    """Edit list of (segment_duration, media_time) pairs; media_time -1 is an empty edit."""
    entry_format = ">QqHH" if version == 1 else ">IiHH"
    body = struct.pack(">I", len(entries)) + b"".join(struct.pack(entry_format, seg, mt, 1, 0) for seg, mt in entries)
    return box(b"edts", full_box(b"elst", version, body))


def udta_text(tag: bytes, text: str) -> bytes:
    data = text.encode()
    return box(tag, struct.pack(">HH", len(data), 0x55C4) + data)


def video_trak(frames: int = 250, frame_size: int = 1000, edits: bytes = b"") -> bytes:
    return trak(
        tkhd(1, 10000, 1920, 1080),
        mdhd(25, frames, "eng"),
        hdlr(b"vide", "VideoHandler"),
        stsd(visual_entry(b"avc1", 1920, 1080, avcc()))
        + stts([(frames, 1)])
        + stsz([frame_size] * frames),
        edits,
    )


def audio_trak() -> bytes:
    return trak(
        tkhd(2, 10000),
        mdhd(48000, 480000, "ger"),
        hdlr(b"soun", "SoundHandler"),
        stsd(audio_entry(b"mp4a", 2, 16, 48000, esds())) + stts([(469, 1024)]),
    )


def build_mp4(mvhd_version: int = 0, created: int = 0, mdat_size: int = 4096, extra_moov: bytes = b"") -> bytes:
    moov = box(
        b"moov",
        mvhd(1000, 10000, mvhd_version, created, created)
        + video_trak()
        + audio_trak()
        + box(b"udta", udta_text(b"\xa9too", "Lavf58.29.100"))
        + extra_moov,
    )
    return ftyp() + moov + box(b"mdat", bytes(mdat_size))


# -- Matroska ----------------------------------------------------------------


def ebml_id(eid: int) -> bytes:
    return eid.to_bytes((eid.bit_length() + 7) // 8, "big")


def ebml_size(length: int) -> bytes:
    return b"\x01" + length.to_bytes(7, "big")


UNKNOWN_EBML_SIZE = b"\x01" + b"\xff" * 7


def element(eid: int, payload: bytes) -> bytes:
    return ebml_id(eid) + ebml_size(len(payload)) + payload


def uint_element(eid: int, value: int) -> bytes:
    return element(eid, value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big"))


def float_element(eid: int, value: float) -> bytes:
    return element(eid, struct.pack(">d", value))


def string_element(eid: int, value: str) -> bytes:
    return element(eid, value.encode())


def ebml_header(doc_type: str = "matroska", version: int = 4) -> bytes:
    return element(
        0x1A45DFA3,
        uint_element(0x4286, 1) + string_element(0x4282, doc_type) + uint_element(0x4287, version),
    )


def mkv_info(duration_ms: float = 10000.0, title: str = "Sample") -> bytes:
    return element(
        0x1549A966,
        uint_element(0x2AD7B1, 1_000_000)
        + float_element(0x4489, duration_ms)
        + string_element(0x7BA9, title)
        + string_element(0x4D80, "libebml v1.4.2")
        + string_element(0x5741, "mkvmerge v70.0.0"),
    )


def mkv_video_entry(number: int = 1, uid: int = 111) -> bytes:
    return element(
        0xAE,
        uint_element(0xD7, number)
        + uint_element(0x73C5, uid)
        + uint_element(0x83, 1)
        + string_element(0x86, "V_MPEG4/ISO/AVC")
        + element(0x63A2, bytes([1, 100, 0, 40]))
        + uint_element(0x23E383, 40_000_000)
        + element(0xE0, uint_element(0xB0, 1280) + uint_element(0xBA, 720)),
    )


def mkv_audio_entry(number: int = 2, uid: int = 222, language: str = "ger", channels: int = 6) -> bytes:
    return element(
        0xAE,
        uint_element(0xD7, number)
        + uint_element(0x73C5, uid)
        + uint_element(0x83, 2)
        + string_element(0x86, "A_AAC")
        + element(0x63A2, bytes([0x11, 0x90]))
        + string_element(0x22B59C, language)
        + uint_element(0x88, 0)
        + element(0xE1, float_element(0xB5, 48000.0) + uint_element(0x9F, channels)),
    )


def mkv_tracks(*entries: bytes) -> bytes:
    return element(0x1654AE6B, b"".join(entries or (mkv_video_entry(), mkv_audio_entry())))


def simple_block(track: int, timecode: int, size: int) -> bytes:
    return element(0xA3, bytes([0x80 | track]) + struct.pack(">hB", timecode, 0x80) + bytes(size))


def mkv_cluster(blocks: int = 10, video_size: int = 1000, audio_size: int = 500) -> bytes:
    body = uint_element(0xE7, 0)
    for i in range(blocks):
        body += simple_block(1, i * 1000, video_size) + simple_block(2, i * 1000, audio_size)
    return element(0x1F43B675, body)


def mkv_chapters(*chapters: tuple) -> bytes:
    atoms = b""
    for start_ns, title in chapters:
        atoms += element(0xB6, uint_element(0x91, start_ns) + element(0x80, string_element(0x85, title)))
    return element(0x1043A770, element(0x45B9, atoms))


def mkv_seek_head(targets: list) -> bytes:
    seeks = b""
    for eid, position in targets:
        seeks += element(0x4DBB, element(0x53AB, ebml_id(eid)) + element(0x53AC, position.to_bytes(8, "big")))
    return element(0x114D9B74, seeks)


def build_mkv(doc_type: str = "matroska", segment_body: bytes | None = None, unknown_size: bool = False) -> bytes:
    if segment_body is None:
        segment_body = mkv_info() + mkv_tracks() + mkv_cluster()
    size = UNKNOWN_EBML_SIZE if unknown_size else ebml_size(len(segment_body))
    return ebml_header(doc_type) + ebml_id(0x18538067) + size + segment_body


# -- MPEG-TS / MPEG-PS --------------------------------------------------------


def encode_pts(pts: int, prefix: int = 0x2) -> bytes:
    return bytes(
        [
            (prefix << 4) | ((pts >> 29) & 0x0E) | 0x01,
            (pts >> 22) & 0xFF,
            ((pts >> 14) & 0xFE) | 0x01,
            (pts >> 7) & 0xFF,
            ((pts << 1) & 0xFE) | 0x01,
        ]
    )


def pes(stream_id: int, pts: int, data: bytes, bounded: bool = True) -> bytes:
    header = bytes([0x80, 0x80, 0x05]) + encode_pts(pts)
    length = len(header) + len(data) if bounded else 0
    return b"\x00\x00\x01" + bytes([stream_id]) + struct.pack(">H", length) + header + data


# MPEG-2 video: 720x576, 16:9, 25 fps, 6 Mb/s, followed by a sequence extension
MPEG2_SEQUENCE = bytes.fromhex("000001b32d0240330ea62000") + bytes.fromhex("000001b5148a00010000")
# MPEG-1 Layer II, 256 kb/s, 48 kHz, stereo
MPEG_AUDIO_FRAME = bytes.fromhex("fffdc400")
# AC-3, 48 kHz, 384 kb/s, 3/2 + LFE
AC3_FRAME = bytes.fromhex("0b770000") + bytes([0x1C, 0x40, 0xE1, 0x00])


def ts_packet(pid: int, payload: bytes, pusi: bool = False, cc: int = 0) -> bytes:
    """One 188-byte packet; short payloads are padded with adaptation stuffing."""
    assert len(payload) <= 184
    header = bytes([0x47, (0x40 if pusi else 0) | (pid >> 8), pid & 0xFF])
    stuffing = 184 - len(payload)
    if stuffing == 0:
        return header + bytes([0x10 | (cc & 0x0F)]) + payload
    if stuffing == 1:
        adaptation = b"\x00"
    else:
        adaptation = bytes([stuffing - 1]) + (b"\x00" + b"\xff" * (stuffing - 2))
    return header + bytes([0x30 | (cc & 0x0F)]) + adaptation + payload


def psi_packet(pid: int, section: bytes) -> bytes:
    payload = b"\x00" + section
    return ts_packet(pid, payload + b"\xff" * (184 - len(payload)), pusi=True)


def pat_section(pmt_pid: int = 0x1000, program: int = 1) -> bytes:
    body = struct.pack(">HBBB", 1, 0xC1, 0, 0) + struct.pack(">HH", program, 0xE000 | pmt_pid)
    length = len(body) + 4
    return bytes([0x00, 0xB0 | (length >> 8), length & 0xFF]) + body + bytes(4)


def iso639_descriptor(language: str) -> bytes:
    return bytes([0x0A, 4]) + language.encode() + b"\x00"


def pmt_section(streams: list, program: int = 1, pcr_pid: int = 0x100, program_descriptors: bytes = b"") -> bytes:
    """``streams`` holds (stream_type, pid, descriptors) tuples."""
    body = struct.pack(">HBBB", program, 0xC1, 0, 0)
    body += struct.pack(">HH", 0xE000 | pcr_pid, 0xF000 | len(program_descriptors)) + program_descriptors
    for stream_type, pid, descriptors in streams:
        body += struct.pack(">BHH", stream_type, 0xE000 | pid, 0xF000 | len(descriptors)) + descriptors
    length = len(body) + 4
    return bytes([0x02, 0xB0 | (length >> 8), length & 0xFF]) + body + bytes(4)


def build_ts(
    frames: int = 25,
    packet_size: int = 188,
    junk: bytes = b"",
    with_tables: bool = True,
    video_type: int = 0x02,
    video_header: bytes = MPEG2_SEQUENCE,
) -> bytes:
    packets = []
    if with_tables:
        packets.append(psi_packet(0, pat_section()))
        packets.append(
            psi_packet(0x1000, pmt_section([(video_type, 0x100, b""), (0x03, 0x101, iso639_descriptor("eng"))]))
        )
    for i in range(frames):
        video = (video_header if i == 0 else b"") + bytes(150 - (len(video_header) if i == 0 else 0))
        packets.append(ts_packet(0x100, pes(0xE0, 90000 + i * 3600, video, bounded=False), pusi=True, cc=i))
        audio = MPEG_AUDIO_FRAME + bytes(96)
        packets.append(ts_packet(0x101, pes(0xC0, 90000 + i * 2160, audio), pusi=True, cc=i))
    if packet_size == 192:
        packets = [struct.pack(">I", i * 1000) + p for i, p in enumerate(packets)]
    return junk + b"".join(packets)


MPEG2_PACK = b"\x00\x00\x01\xba" + bytes([0x44, 0, 4, 0, 4, 1, 1, 0x89, 0xC3, 0xF8])
MPEG1_PACK = b"\x00\x00\x01\xba" + bytes([0x21, 0, 1, 0, 1, 0x80, 0x1B, 0x91])


def build_ps(frames: int = 25, pack: bytes = MPEG2_PACK, start_pts: int = 90000) -> bytes:
    out = b""
    for i in range(frames):
        out += pack
        video = (MPEG2_SEQUENCE if i == 0 else b"") + bytes(200)
        out += pes(0xE0, start_pts + i * 3600, video)
        out += pes(0xC0, start_pts + i * 2160, MPEG_AUDIO_FRAME + bytes(96))
        out += pes(0xBD, start_pts + i * 2880, bytes([0x80, 1, 0, 1]) + AC3_FRAME + bytes(100))
    return out + b"\x00\x00\x01\xb9"


# -- H.264 / HEVC ------------------------------------------------------------


class BitWriter:
    """MSB-first bit writer for parameter sets."""

    def __init__(self):
        self.bits = []

    def u(self, count: int, value: int) -> "BitWriter":
        self.bits.extend((value >> (count - 1 - i)) & 1 for i in range(count))
        return self

    def ue(self, value: int) -> "BitWriter":
        code = value + 1
        return self.u(code.bit_length() - 1, 0).u(code.bit_length(), code)

    def rbsp(self) -> bytes:
        """The bits followed by rbsp_trailing_bits, as bytes."""
        bits = self.bits + [1]
        bits += [0] * (-len(bits) % 8)
        return bytes(int("".join(map(str, bits[i : i + 8])), 2) for i in range(0, len(bits), 8))


def annexb_nal(header: bytes, rbsp: bytes) -> bytes:
    """Four-byte start code, NAL header and the payload with emulation prevention."""
    out = bytearray(b"\x00\x00\x00\x01" + header)
    zeros = 0
    for byte in rbsp:
        if zeros >= 2 and byte <= 3:
            out.append(3)
            zeros = 0
        out.append(byte)
        zeros = zeros + 1 if byte == 0 else 0
    return bytes(out)


def avc_sps(width: int = 1920, height: int = 1080, time_scale: int = 50, sar: tuple | None = (1, 1)) -> bytes:
    """High@L4 4:2:0 progressive SPS; frame rate is time_scale / 2."""
    mbs_wide, mbs_high = -(-width // 16), -(-height // 16)
    w = BitWriter()
    w.u(8, 100).u(8, 0).u(8, 40).ue(0)
    w.ue(1).ue(0).ue(0).u(1, 0).u(1, 0)  # 4:2:0, 8-bit, no scaling matrix
    w.ue(0).ue(0).ue(0)  # frame_num bits, POC type 0
    w.ue(4).u(1, 0)
    w.ue(mbs_wide - 1).ue(mbs_high - 1)
    w.u(1, 1).u(1, 1)  # frame_mbs_only, direct_8x8_inference
    w.u(1, 1).ue(0).ue((mbs_wide * 16 - width) // 2).ue(0).ue((mbs_high * 16 - height) // 2)
    w.u(1, 1)  # VUI
    if sar is None:
        w.u(1, 0)
    elif sar == (1, 1):
        w.u(1, 1).u(8, 1)
    else:
        w.u(1, 1).u(8, 255).u(16, sar[0]).u(16, sar[1])
    w.u(1, 0).u(1, 0).u(1, 0)
    w.u(1, 1).u(32, 1).u(32, time_scale).u(1, 1)
    w.u(1, 0).u(1, 0).u(1, 0).u(1, 0)
    return annexb_nal(b"\x67", w.rbsp())


def hevc_sps(width: int = 1920, height: int = 1080, time_scale: int = 25) -> bytes:
    """Main@L4@Main 4:2:0 SPS with two short-term reference sets and VUI timing."""
    padded = -(-height // 16) * 16
    w = BitWriter()
    w.u(4, 0).u(3, 0).u(1, 1)
    w.u(2, 0).u(1, 0).u(5, 1).u(32, 0x60000000).u(4, 0b1001).u(43, 0).u(1, 0).u(8, 120)
    w.ue(0).ue(1).ue(width).ue(padded)
    w.u(1, 1).ue(0).ue(0).ue(0).ue((padded - height) // 2)
    w.ue(0).ue(0).ue(4)  # 8-bit, 8-bit POC LSB
    w.u(1, 1).ue(4).ue(0).ue(0)
    w.ue(0).ue(3).ue(0).ue(3).ue(1).ue(1)
    w.u(1, 0).u(1, 0).u(1, 1).u(1, 0)  # SAO on; no scaling lists or PCM
    w.ue(2)
    w.ue(1).ue(0).ue(0).u(1, 1)
    w.u(1, 1).u(1, 0).ue(0).u(1, 1).u(1, 1)  # predicted from the first set
    w.u(1, 1).ue(1).u(8, 0x5A).u(1, 1)  # one long-term POC
    w.u(1, 1).u(1, 1)
    w.u(1, 1)  # VUI
    w.u(1, 0).u(1, 0)
    w.u(1, 1).u(3, 5).u(1, 0).u(1, 0)
    w.u(1, 0).u(3, 0).u(1, 0)
    w.u(1, 1).u(32, 1).u(32, time_scale).u(1, 0).u(1, 0)
    w.u(1, 0).u(1, 0)
    return annexb_nal(bytes([33 << 1, 1]), w.rbsp())


# Access unit delimiter ahead of the parameter sets
AVC_AUD = bytes.fromhex("0000000109f0")
HEVC_AUD = bytes.fromhex("000000014601") + b"\x50"
