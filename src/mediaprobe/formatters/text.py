"""Text output formatter - "Name : value" blocks, one per stream."""

from __future__ import annotations

from mediaprobe.assembler import AppInfo
from mediaprobe.models import Report

NAME_WIDTH = 41


def _line(name: str, value: str) -> str:
    return f"{name.ljust(NAME_WIDTH)}: {value}"


def format_text(report: Report) -> str:
    """Format a report as titled blocks of aligned name/value lines.

    Streams appear in report order, each under its display title
    ("General", "Video", "Audio #2"), separated by a blank line.
    """
    blocks = []
    for stream in report.streams:
        lines = [report.title(stream)]
        lines.extend(_line(field.name, field.value) for field in stream.fields)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"


def format_text_list(reports: list[Report], app: AppInfo | None = None) -> str:
    """Format several reports, followed by a footer naming the producer.

    Args:
        reports: Reports to render, in order
        app: Name/version printed in the footer; omitted when None

    Returns:
        The rendered text
    """
    body = "\n".join(format_text(report) for report in reports)
    if app is None:
        return body
    return f"{body}\n{_line('ReportBy', app.label)}\n"
