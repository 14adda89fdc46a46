"""Value formatting for report fields.

All report values are text; these helpers produce the display strings
("1 min 30 s", "5 000 kb/s", "48.0 kHz").
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

# Channel count -> layout name
CHANNEL_LAYOUT_NAMES = {
    1: "Mono",
    2: "Stereo",
    3: "2.1",
    4: "Quad",
    5: "5.0",
    6: "5.1",
    7: "6.1",
    8: "7.1",
}

LANGUAGE_NAMES = {
    "ar": "Arabic",
    "cs": "Czech",
    "da": "Danish",
    "de": "German",
    "el": "Greek",
    "en": "English",
    "es": "Spanish",
    "fi": "Finnish",
    "fr": "French",
    "he": "Hebrew",
    "hi": "Hindi",
    "hu": "Hungarian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "nl": "Dutch",
    "no": "Norwegian",
    "pl": "Polish",
    "pt": "Portuguese",
    "ru": "Russian",
    "sv": "Swedish",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "zh": "Chinese",
}

# ISO 639-2 (B and T variants) -> ISO 639-1
LANGUAGE_3_TO_2 = {
    "ara": "ar",
    "ces": "cs",
    "cze": "cs",
    "dan": "da",
    "deu": "de",
    "ger": "de",
    "ell": "el",
    "gre": "el",
    "eng": "en",
    "spa": "es",
    "fin": "fi",
    "fra": "fr",
    "fre": "fr",
    "heb": "he",
    "hin": "hi",
    "hun": "hu",
    "ita": "it",
    "jpn": "ja",
    "kor": "ko",
    "dut": "nl",
    "nld": "nl",
    "nor": "no",
    "pol": "pl",
    "por": "pt",
    "rus": "ru",
    "swe": "sv",
    "tur": "tr",
    "ukr": "uk",
    "chi": "zh",
    "zho": "zh",
}

MP4_EPOCH = datetime(1904, 1, 1, tzinfo=timezone.utc)
MATROSKA_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


def format_thousands(value: int) -> str:
    """Group digits by three with spaces: 1234567 -> "1 234 567"."""
    return f"{value:,}".replace(",", " ")


def format_duration(seconds: float | None) -> str:
    """Format a duration for display.

    Under a second: "900 ms"; under a minute: "5 s 120 ms";
    otherwise "1 min 30 s" or "1 h 2 min 3 s".
    """
    if not seconds or seconds <= 0:
        return ""
    total_ms = int(round(seconds * 1000))
    if total_ms < 1000:
        return f"{total_ms} ms"
    total_sec, rem_ms = divmod(total_ms, 1000)
    if total_sec == 59 and rem_ms >= 500:
        total_sec, rem_ms = 60, 0
    if total_sec < 60:
        return f"{total_sec} s {rem_ms} ms"
    hours, rest = divmod(total_sec, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours} h {minutes} min {secs} s"
    return f"{minutes} min {secs} s"


def format_bitrate(bits_per_second: float | None) -> str:
    if not bits_per_second or bits_per_second <= 0:
        return ""
    if bits_per_second >= 10_000_000:
        return f"{bits_per_second / 1_000_000:.1f} Mb/s"
    if bits_per_second < 1000:
        return f"{bits_per_second:.0f} b/s"
    return f"{format_thousands(int(round(bits_per_second / 1000)))} kb/s"


def rationalize_frame_rate(rate: float) -> tuple[int, int]:
    """Return (numerator, denominator) for NTSC-style rates, else (0, 0)."""
    if rate <= 0:
        return 0, 0
    scaled = rate * 1.001
    nearest = round(scaled)
    if nearest > 0 and abs(scaled - nearest) < 0.0005 * nearest and abs(rate - nearest) > 0.001:
        return nearest * 1000, 1001
    return 0, 0


def format_frame_rate(rate: float | None) -> str:
    if not rate or rate <= 0 or math.isinf(rate):
        return ""
    num, den = rationalize_frame_rate(rate)
    if num and den > 1:
        return f"{num / den:.3f} ({num}/{den}) FPS"
    return f"{rate:.3f} FPS"


def format_pixels(value: int | None) -> str:
    if not value:
        return ""
    return f"{value} pixels"


def format_channels(count: int | None) -> str:
    if not count:
        return ""
    if count == 1:
        return "1 channel"
    return f"{count} channels"


def channel_layout_name(count: int | None) -> str:
    """Layout name for a channel count (1 -> Mono, 6 -> 5.1)."""
    if not count:
        return ""
    return CHANNEL_LAYOUT_NAMES.get(count, "")


def format_sample_rate(rate: float | None) -> str:
    if not rate or rate <= 0:
        return ""
    if rate >= 1000:
        return f"{rate / 1000:.1f} kHz"
    return f"{rate:.0f} Hz"


def format_bit_depth(bits: int | None) -> str:
    if not bits:
        return ""
    return f"{bits} bits"


def format_aspect_ratio(width: int, height: int) -> str:
    """Display aspect ratio ("16:9", "4:3", or "1.85:1")."""
    if width <= 0 or height <= 0:
        return ""
    ratio = width / height
    for name, value in (("16:9", 16 / 9), ("4:3", 4 / 3), ("1:1", 1.0), ("21:9", 64 / 27)):
        if abs(ratio - value) < 0.01:
            return name
    return f"{ratio:.3f}".rstrip("0").rstrip(".") + ":1"


def format_hex_id(value: int) -> str:
    """Render an identifier as "256 (0x100)"."""
    return f"{value} (0x{value:X})"


def format_utc(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def mp4_time(seconds_since_1904: int) -> datetime | None:
    """Convert an MP4 timestamp (seconds since 1904) to a UTC datetime."""
    if seconds_since_1904 <= 0:
        return None
    try:
        return MP4_EPOCH + timedelta(seconds=seconds_since_1904)
    except OverflowError:
        return None


def matroska_time(nanoseconds_since_2001: int) -> datetime | None:
    """Convert a Matroska DateUTC value to a UTC datetime."""
    try:
        return MATROSKA_EPOCH + timedelta(microseconds=nanoseconds_since_2001 // 1000)
    except OverflowError:
        return None


def normalize_language(code: str | None) -> str:
    """Normalize a language code to ISO 639-1 where known; "" for undetermined."""
    if not code:
        return ""
    code = code.strip().strip("\x00").replace("_", "-")
    if not code:
        return ""
    parts = code.split("-")
    lang = parts[0].lower()
    if lang in ("und", "mul", "zxx", ""):
        return ""
    lang = LANGUAGE_3_TO_2.get(lang, lang)
    if len(parts) > 1 and parts[1]:
        return f"{lang}-{parts[1].upper()}"
    return lang


def format_language(code: str | None) -> str:
    """Human language name for a code ("eng" -> "English")."""
    normalized = normalize_language(code)
    if not normalized:
        return ""
    base = normalized.split("-")[0]
    return LANGUAGE_NAMES.get(base, normalized)
