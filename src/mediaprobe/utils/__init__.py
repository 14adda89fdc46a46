"""Utility functions for mediaprobe."""

from mediaprobe.utils.formatting import (
    format_bitrate,
    format_duration,
    format_frame_rate,
    format_hex_id,
    format_language,
    format_utc,
)

__all__ = [
    "format_bitrate",
    "format_duration",
    "format_frame_rate",
    "format_hex_id",
    "format_language",
    "format_utc",
]
