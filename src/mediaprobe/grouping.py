"""Continuous-filename grouping.

Sequentially numbered files (``VTS_01_1.VOB``, ``VTS_01_2.VOB`` or
``disc1.vob``, ``disc2.vob``) are one recording split on disk. The grouper
turns the input path list into analysis units before any file is parsed,
looking only at names and sizes.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_TRAILING_DIGITS = re.compile(r"^(?P<prefix>.*?)(?P<digits>\d+)$")


@dataclass(frozen=True)
class NumberedName:
    """A file name split around its trailing number."""

    directory: str
    prefix: str
    digits: str
    extension: str

    @property
    def index(self) -> int:
        return int(self.digits)

    @property
    def key(self) -> tuple[str, str, int, str]:
        return self.directory, self.prefix, len(self.digits), self.extension


def split_numbered_name(path: str) -> NumberedName | None:
    """Split ``path`` into directory, prefix, number and extension.

    Returns None when the stem does not end in digits.
    """
    directory, base = os.path.split(os.path.abspath(path))
    stem, extension = os.path.splitext(base)
    match = _TRAILING_DIGITS.match(stem)
    if match is None:
        return None
    return NumberedName(directory, match.group("prefix"), match.group("digits"), extension)


@dataclass
class FileGroup:
    """One analysis unit: a single file or a run of continuous files.

    ``paths`` is ordered by file number; the first path is the unit's
    representative.
    """

    paths: list[str]
    sizes: list[int] = field(default_factory=list)

    @property
    def representative(self) -> str:
        return self.paths[0]

    @property
    def last(self) -> str:
        return self.paths[-1]

    @property
    def is_group(self) -> bool:
        return len(self.paths) > 1

    @property
    def total_size(self) -> int:
        return sum(self.sizes)


def _file_size(path: str) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def _siblings(name: NumberedName) -> list[tuple[int, str]]:
    """Numbered files on disk sharing ``name``'s key, from its index on."""
    try:
        entries = os.listdir(name.directory)
    except OSError as exc:
        logger.debug("cannot list %s: %s", name.directory, exc)
        return []
    found = []
    for entry in entries:
        path = os.path.join(name.directory, entry)
        other = split_numbered_name(path)
        if other is None or other.key != name.key or other.index < name.index:
            continue
        if os.path.isfile(path):
            found.append((other.index, path))
    return found


def group_files(paths: list[str], test_continuous_file_names: bool = False) -> list[FileGroup]:
    """Turn input paths into analysis units, in input order.

    With grouping disabled every path is its own unit. Otherwise a numbered
    path collects every file with the same directory, prefix, digit count
    and extension whose number is not lower than its own, whether listed in
    the input or only present on disk. Paths already collected by an
    earlier unit are not analyzed again.
    """
    if not test_continuous_file_names:
        return [FileGroup([path], [_file_size(path)]) for path in paths]

    consumed: set[str] = set()
    groups: list[FileGroup] = []
    for path in paths:
        absolute = os.path.abspath(path)
        if absolute in consumed:
            logger.debug("%s already belongs to a continuous group", path)
            continue
        name = split_numbered_name(path)
        members: list[tuple[int, str]] = []
        if name is not None:
            candidates = {os.path.abspath(p): idx for idx, p in _siblings(name)}
            for other_path in paths:
                other = split_numbered_name(other_path)
                if other is not None and other.key == name.key and other.index >= name.index:
                    candidates.setdefault(os.path.abspath(other_path), other.index)
            members = sorted(
                (idx, p) for p, idx in candidates.items() if p not in consumed
            )
        if len(members) < 2 or members[0][1] != absolute:
            consumed.add(absolute)
            groups.append(FileGroup([path], [_file_size(path)]))
            continue
        # Keep the caller's spelling for the representative
        member_paths = [path] + [p for _, p in members[1:]]
        consumed.update(p for _, p in members)
        logger.info("grouped %d continuous files starting at %s", len(member_paths), path)
        groups.append(FileGroup(member_paths, [_file_size(p) for p in member_paths]))
    return groups
