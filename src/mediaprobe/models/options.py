"""Analysis options."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from mediaprobe.config import MediaprobeConfig

DEFAULT_PARSE_SPEED = 0.5


class AnalyzeOptions(BaseModel):
    """Options consumed by the sniffer, the grouper and every parser.

    Attributes:
        parse_speed: 0.0-1.0. Low values rely on container summary fields
            only; high values force exhaustive sample-table/PES scans.
        test_continuous_file_names: Merge sequentially numbered files into
            one analysis unit.
        max_workers: Upper bound of the worker pool analysing units.
        file_limit: Stop after this many analysis units.
    """

    model_config = ConfigDict(frozen=True)

    parse_speed: float = DEFAULT_PARSE_SPEED
    test_continuous_file_names: bool = False
    max_workers: int = Field(default=4, ge=1)
    file_limit: int | None = Field(default=None, ge=1)

    @field_validator("parse_speed", mode="before")
    @classmethod
    def _clamp_parse_speed(cls, value: object) -> float:
        if value is None:
            return DEFAULT_PARSE_SPEED
        speed = float(value)  # type: ignore[arg-type]
        if math.isnan(speed):
            return DEFAULT_PARSE_SPEED
        return min(max(speed, 0.0), 1.0)

    @classmethod
    def from_config(cls, config: MediaprobeConfig | None = None) -> AnalyzeOptions:
        """Build options from the layered configuration."""
        if config is None:
            from mediaprobe.config import get_config

            config = get_config()
        analysis = config.analysis
        return cls(
            parse_speed=analysis.parse_speed,
            test_continuous_file_names=analysis.test_continuous_file_names,
            max_workers=analysis.max_workers,
            file_limit=analysis.file_limit,
        )

    @property
    def exhaustive(self) -> bool:
        """True when every sample table / PES walk must run to completion."""
        return self.parse_speed >= 1.0

    @property
    def summary_only(self) -> bool:
        """True when only container-level summary fields may be used."""
        return self.parse_speed <= 0.0
