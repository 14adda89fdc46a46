"""Container parsers for mediaprobe."""

from mediaprobe.parsers.base import BaseParser, ContainerInfo, TrackInfo
from mediaprobe.parsers.matroska import MatroskaParser
from mediaprobe.parsers.mp4 import MP4Parser
from mediaprobe.parsers.mpegps import MPEGPSParser
from mediaprobe.parsers.mpegts import MPEGTSParser
from mediaprobe.sniff import ContainerFormat

# One parser per container variant; UNKNOWN has none
_PARSERS: dict[ContainerFormat, type[BaseParser]] = {
    parser_cls.format: parser_cls for parser_cls in (MP4Parser, MatroskaParser, MPEGTSParser, MPEGPSParser)
}


def get_parser(fmt: ContainerFormat, options=None) -> BaseParser | None:
    """Get a parser instance for a sniffed container format.

    Args:
        fmt: Format returned by the sniffer
        options: AnalyzeOptions passed to the parser

    Returns:
        Parser instance, or None for formats without a parser
    """
    parser_cls = _PARSERS.get(fmt)
    if parser_cls is None:
        return None
    return parser_cls(options)


def supported_formats() -> list[ContainerFormat]:
    return list(_PARSERS)


__all__ = [
    # Base class
    "BaseParser",
    "ContainerFormat",
    "ContainerInfo",
    "TrackInfo",
    # Parsers
    "MP4Parser",
    "MatroskaParser",
    "MPEGTSParser",
    "MPEGPSParser",
    # Functions
    "get_parser",
    "supported_formats",
]
