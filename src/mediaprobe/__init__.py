"""mediaprobe - media container analysis.

Reports technical metadata (format, duration, bit rates, per-track codec,
geometry and audio facts) of MP4/QuickTime, Matroska/WebM, MPEG-TS and
MPEG-PS files without decoding any media samples.

Usage:
    from mediaprobe import analyze, analyze_file, AnalyzeOptions

    # Analyze a single file
    report = analyze_file("movie.mkv")
    print(report.general.get("Duration"))

    # Analyze a batch, merging numbered VOB files
    result = analyze(["VIDEO_TS"], AnalyzeOptions(test_continuous_file_names=True))
    for report in result.reports:
        print(format_text(report))
"""

from mediaprobe._version import __version__
from mediaprobe.analyze import AnalyzeResult, analyze, analyze_file, expand_paths, get_file_info
from mediaprobe.assembler import AppInfo, assemble_report
from mediaprobe.errors import AnalyzeError, MediaprobeError, UnitError
from mediaprobe.formatters import (
    format_json,
    format_quiet,
    format_text,
    to_dict,
)
from mediaprobe.grouping import FileGroup, group_files
from mediaprobe.models import (
    AnalyzeOptions,
    Field,
    FileInfo,
    Report,
    Stream,
    StreamKind,
)
from mediaprobe.sniff import ContainerFormat, sniff

__all__ = [
    # Version
    "__version__",
    # Main functions
    "analyze",
    "analyze_file",
    "expand_paths",
    "get_file_info",
    "AnalyzeResult",
    # Pipeline stages
    "sniff",
    "ContainerFormat",
    "group_files",
    "FileGroup",
    "assemble_report",
    "AppInfo",
    # Models
    "Report",
    "Stream",
    "Field",
    "StreamKind",
    "AnalyzeOptions",
    "FileInfo",
    # Formatters
    "format_text",
    "format_json",
    "format_quiet",
    "to_dict",
    # Errors
    "MediaprobeError",
    "UnitError",
    "AnalyzeError",
]
