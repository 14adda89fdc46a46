"""Quiet output formatter - one-line summary."""

from __future__ import annotations

import os

from mediaprobe.models import Report, StreamKind


def format_quiet(report: Report) -> str:
    """Format a report as a one-line summary.

    Format: filename | format | duration | WxH | stream counts
    """
    general = report.general
    parts = [os.path.basename(report.ref)]
    parts.append(general.get("Format") or "Unknown")
    parts.append(general.get("Duration") or "N/A")

    videos = report.streams_of(StreamKind.VIDEO)
    width = videos[0].get("Width") if videos else None
    height = videos[0].get("Height") if videos else None
    if width and height:
        parts.append(f"{width.split()[0]}x{height.split()[0]}")
    else:
        parts.append("N/A")

    counts = []
    for kind in (StreamKind.VIDEO, StreamKind.AUDIO, StreamKind.TEXT, StreamKind.IMAGE, StreamKind.MENU):
        n = report.count(kind)
        if n:
            counts.append(f"{n} {kind.value.lower()}")
    parts.append(", ".join(counts) or "no streams")
    return " | ".join(parts)


def format_quiet_list(reports: list[Report]) -> str:
    """Format multiple reports as one-line summaries, one per line."""
    return "\n".join(format_quiet(r) for r in reports)
