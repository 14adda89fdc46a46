"""JSON output formatter."""

from __future__ import annotations

import json
from typing import Any

from mediaprobe.models import Report


def to_dict(report: Report) -> dict[str, Any]:
    """Convert a report to a dictionary.

    Fields keep their canonical order as the key order of each stream's
    ``fields`` mapping.

    Args:
        report: Report object

    Returns:
        Dictionary representation
    """
    return {
        "ref": report.ref,
        "created_by": report.created_by,
        "streams": [
            {
                "kind": stream.kind.value,
                "index": stream.index,
                "title": report.title(stream),
                "fields": stream.as_dict(),
            }
            for stream in report.streams
        ],
    }


def format_json(report: Report, indent: int = 2) -> str:
    """Format a report as a JSON object string."""
    return json.dumps(to_dict(report), indent=indent, ensure_ascii=False)


def format_json_list(reports: list[Report], indent: int = 2) -> str:
    """Format multiple reports as a JSON array.

    Args:
        reports: List of Report objects
        indent: JSON indentation level

    Returns:
        JSON array formatted string
    """
    return json.dumps([to_dict(r) for r in reports], indent=indent, ensure_ascii=False)
