"""Exception types for mediaprobe."""

from __future__ import annotations


class MediaprobeError(Exception):
    """Base class for all mediaprobe errors."""


class UnitError(MediaprobeError):
    """An analysis unit could not be opened or read.

    Only the unit named by ``path`` is affected; the rest of a batch
    continues.
    """

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class AnalyzeError(MediaprobeError):
    """No analysis unit of a batch produced a report."""

    def __init__(self, errors: list[UnitError]):
        if errors:
            detail = "; ".join(str(e) for e in errors)
            message = f"no report produced ({len(errors)} failed): {detail}"
        else:
            message = "no input files to analyze"
        super().__init__(message)
        self.errors = errors
