"""Output formatters for mediaprobe."""

from .json import format_json, format_json_list, to_dict
from .quiet import format_quiet, format_quiet_list
from .text import NAME_WIDTH, format_text, format_text_list

__all__ = [
    "format_text",
    "format_text_list",
    "format_json",
    "format_json_list",
    "format_quiet",
    "format_quiet_list",
    "to_dict",
    "NAME_WIDTH",
]
