"""Core analysis functions."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime

from mediaprobe.assembler import AppInfo, ReportAssembler, merge_infos
from mediaprobe.errors import AnalyzeError, UnitError
from mediaprobe.grouping import FileGroup, group_files
from mediaprobe.models import AnalyzeOptions, FileInfo, Report
from mediaprobe.parsers import ContainerInfo, get_parser
from mediaprobe.sniff import sniff

logger = logging.getLogger(__name__)


@dataclass
class AnalyzeResult:
    """Outcome of a batch analysis.

    Attributes:
        reports: One report per analysis unit, in input order
        success_count: Number of units that produced a report
        errors: Per-unit failures, in input order
    """

    reports: list[Report]
    success_count: int
    errors: list[UnitError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def get_file_info(path: str) -> FileInfo:
    """Get basic file information.

    Args:
        path: Path to the file

    Returns:
        FileInfo object with file details
    """
    stat = os.stat(path)
    return FileInfo(
        path=os.path.abspath(path),
        filename=os.path.basename(path),
        extension=os.path.splitext(path)[1].lower(),
        size_bytes=stat.st_size,
        modified=datetime.fromtimestamp(stat.st_mtime),
    )


def expand_paths(paths: list[str]) -> list[str]:
    """Replace each directory by its regular files, sorted by name.

    Other paths pass through unchanged, missing ones included, so that
    their failure is reported for that unit.
    """
    expanded = []
    for path in paths:
        if not os.path.isdir(path):
            expanded.append(path)
            continue
        try:
            names = sorted(os.listdir(path))
        except OSError as e:
            logger.warning("cannot list directory %s: %s", path, e)
            expanded.append(path)
            continue
        expanded.extend(
            os.path.join(path, name) for name in names if os.path.isfile(os.path.join(path, name))
        )
    return expanded


def _parse_file(path: str, options: AnalyzeOptions) -> ContainerInfo | None:
    """Sniff and parse one file; None when its format is unknown.

    Raises:
        UnitError: If the file cannot be opened or read
    """
    try:
        with open(path, "rb") as fh:
            size = os.fstat(fh.fileno()).st_size
            fmt = sniff(fh, path)
            parser = get_parser(fmt, options)
            if parser is None:
                logger.info("%s: unknown container format", path)
                return None
            logger.debug("%s: parsing with %r", path, parser)
            return parser.parse(fh, size)
    except OSError as e:
        raise UnitError(path, e.strerror or str(e)) from e


def analyze_unit(group: FileGroup, options: AnalyzeOptions, assembler: ReportAssembler) -> Report:
    """Analyze one unit (a file or a continuous group) into a report.

    Raises:
        UnitError: If any file of the unit cannot be opened or read
    """
    infos = [_parse_file(path, options) for path in group.paths]
    info = infos[0]
    if info is not None and group.is_group:
        info = merge_infos([i for i in infos if i is not None and i.format is info.format])
    return assembler.assemble(group, info)


def analyze(
    paths: list[str],
    options: AnalyzeOptions | None = None,
    app: AppInfo | None = None,
) -> AnalyzeResult:
    """Analyze files and return their reports in input order.

    Directories expand to their files. With ``test_continuous_file_names``
    sequentially numbered files are merged into one report. Units run on a
    bounded thread pool; each worker owns its file handle and result slot.

    Args:
        paths: Files or directories to analyze
        options: Analysis options (defaults when omitted)
        app: Name/version stamped on the reports

    Returns:
        AnalyzeResult with the reports, their count and per-unit errors

    Raises:
        AnalyzeError: If no unit produced a report
    """
    options = options or AnalyzeOptions()
    assembler = ReportAssembler(app)
    groups = group_files(expand_paths(paths), options.test_continuous_file_names)
    if options.file_limit is not None and len(groups) > options.file_limit:
        logger.info("file limit reached: analyzing %d of %d units", options.file_limit, len(groups))
        groups = groups[: options.file_limit]

    slots: list[Report | UnitError | None] = [None] * len(groups)
    workers = min(options.max_workers, len(groups))
    if workers <= 1:
        for index, group in enumerate(groups):
            slots[index] = _run(group, options, assembler)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(_run, group, options, assembler): i for i, group in enumerate(groups)}
            for future in as_completed(futures):
                slots[futures[future]] = future.result()

    reports = [slot for slot in slots if isinstance(slot, Report)]
    errors = [slot for slot in slots if isinstance(slot, UnitError)]
    if not reports:
        raise AnalyzeError(errors)
    return AnalyzeResult(reports=reports, success_count=len(reports), errors=errors)


def _run(group: FileGroup, options: AnalyzeOptions, assembler: ReportAssembler) -> Report | UnitError:
    try:
        return analyze_unit(group, options, assembler)
    except UnitError as e:
        logger.warning("failed to analyze %s: %s", e.path, e.message)
        return e


def analyze_file(path: str, options: AnalyzeOptions | None = None, app: AppInfo | None = None) -> Report:
    """Analyze a single file.

    Args:
        path: Path to the media file
        options: Analysis options (defaults when omitted)
        app: Name/version stamped on the report

    Returns:
        Report for the file

    Raises:
        FileNotFoundError: If the file does not exist
        UnitError: If the file cannot be read
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")
    options = options or AnalyzeOptions()
    group = group_files([path], options.test_continuous_file_names)[0]
    return analyze_unit(group, options, ReportAssembler(app))
