"""
Command-line interface for mediaprobe.

Usage:
  mediaprobe movie.mkv                        # Text report
  mediaprobe --output json *.mp4              # JSON array
  mediaprobe --output quiet recordings/       # One line per file
  mediaprobe --test-continuous-file-names VTS_01_1.VOB
  mediaprobe --parse-speed 1 -o report.txt stream.ts
"""

from __future__ import annotations

import argparse
import logging
import sys

from mediaprobe._version import __version__
from mediaprobe.analyze import analyze
from mediaprobe.assembler import AppInfo
from mediaprobe.config import OUTPUT_FORMATS, get_config
from mediaprobe.errors import AnalyzeError
from mediaprobe.formatters import format_json_list, format_quiet_list, format_text_list
from mediaprobe.models import AnalyzeOptions, Report

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediaprobe",
        description="Report technical metadata of MP4, Matroska, MPEG-TS and MPEG-PS files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Settings not given on the command line come from MEDIAPROBE_* environment
variables, then ~/.mediaprobe/config.yaml, then built-in defaults.

Examples:
  mediaprobe movie.mkv
  mediaprobe --output json -o report.json *.mp4
  mediaprobe --test-continuous-file-names VTS_01_1.VOB
        """,
    )
    parser.add_argument("files", nargs="+", metavar="FILE", help="Media file(s) or directories to analyze")
    parser.add_argument("--output", choices=OUTPUT_FORMATS, help="Report format (default: text)")
    parser.add_argument("-o", "--output-file", metavar="PATH", help="Write the report to PATH instead of stdout")
    parser.add_argument(
        "--parse-speed",
        type=float,
        metavar="FLOAT",
        help="0 reads container summaries only, 1 scans everything (default: 0.5)",
    )
    parser.add_argument(
        "--test-continuous-file-names",
        action="store_true",
        default=None,
        help="Merge sequentially numbered files (disc1.vob, disc2.vob) into one report",
    )
    parser.add_argument("--jobs", type=int, metavar="N", help="Number of files analyzed in parallel")
    parser.add_argument("--file-limit", type=int, metavar="N", help="Analyze at most N files or groups")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logging")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def render(reports: list[Report], output_format: str, app: AppInfo) -> str:
    """Render reports in the requested output format."""
    if output_format == "json":
        return format_json_list(reports) + "\n"
    if output_format == "quiet":
        return format_quiet_list(reports) + "\n"
    return format_text_list(reports, app)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for mediaprobe CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    config = get_config()
    analysis = config.analysis
    try:
        options = AnalyzeOptions(
            parse_speed=args.parse_speed if args.parse_speed is not None else analysis.parse_speed,
            test_continuous_file_names=(
                args.test_continuous_file_names
                if args.test_continuous_file_names is not None
                else analysis.test_continuous_file_names
            ),
            max_workers=args.jobs if args.jobs is not None else analysis.max_workers,
            file_limit=args.file_limit if args.file_limit is not None else analysis.file_limit,
        )
    except ValueError as e:
        parser.error(str(e))

    app = AppInfo()
    try:
        result = analyze(args.files, options, app)
    except AnalyzeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for error in result.errors:
        print(f"Error: {error}", file=sys.stderr)

    output = render(result.reports, args.output or config.output.format, app)
    if args.output_file:
        with open(args.output_file, "w", encoding="utf-8") as f:
            f.write(output)
        logger.info("report saved to %s", args.output_file)
    else:
        sys.stdout.write(output)

    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
