"""Report/Stream/Field models.

These models are the contract handed to every renderer. Values are always
text so that each renderer only projects them.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field as PydanticField, model_validator


class StreamKind(str, Enum):
    """Kind of a stream inside a report."""

    GENERAL = "General"
    VIDEO = "Video"
    AUDIO = "Audio"
    TEXT = "Text"
    IMAGE = "Image"
    MENU = "Menu"


class Field(BaseModel):
    """A single name/value pair of a stream.

    ``rank`` positions the field in the canonical display order; it is
    assigned by the report assembler, not by insertion order.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    rank: int = 0


class Stream(BaseModel):
    """One logical track, or the file-level General pseudo-track."""

    model_config = ConfigDict(frozen=True)

    kind: StreamKind
    index: int = PydanticField(default=1, ge=1)
    fields: tuple[Field, ...] = ()

    @model_validator(mode="after")
    def _unique_names(self) -> Stream:
        seen: set[str] = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(f"duplicate field {field.name!r} in {self.kind.value} stream")
            seen.add(field.name)
        return self

    def get(self, name: str) -> str | None:
        """Return the value of field ``name`` or None."""
        for field in self.fields:
            if field.name == name:
                return field.value
        return None

    def __contains__(self, name: object) -> bool:
        return any(field.name == name for field in self.fields)

    @property
    def names(self) -> list[str]:
        return [field.name for field in self.fields]

    def as_dict(self) -> dict[str, str]:
        """Return fields as an ordered name -> value mapping."""
        return {field.name: field.value for field in self.fields}


class Report(BaseModel):
    """Analysis result for one file or one merged group of continuous files."""

    model_config = ConfigDict(frozen=True)

    ref: str
    streams: tuple[Stream, ...]
    created_by: str = ""

    @model_validator(mode="after")
    def _single_general(self) -> Report:
        generals = [s for s in self.streams if s.kind is StreamKind.GENERAL]
        if len(generals) != 1:
            raise ValueError(f"a report needs exactly one General stream, got {len(generals)}")
        if self.streams[0].kind is not StreamKind.GENERAL:
            raise ValueError("the General stream must come first")
        return self

    @property
    def general(self) -> Stream:
        return self.streams[0]

    def streams_of(self, kind: StreamKind) -> list[Stream]:
        """Return the streams of one kind in ordinal order."""
        return [s for s in self.streams if s.kind is kind]

    def count(self, kind: StreamKind) -> int:
        return len(self.streams_of(kind))

    def title(self, stream: Stream) -> str:
        """Return the display title of a stream ("Audio #2" when numbered)."""
        if stream.kind is StreamKind.GENERAL or self.count(stream.kind) <= 1:
            return stream.kind.value
        return f"{stream.kind.value} #{stream.index}"
