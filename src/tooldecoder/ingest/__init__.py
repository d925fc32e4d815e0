"""Ingestion — parsers for CAM tool library formats."""

from tooldecoder.exceptions import UnsupportedFormatError
from tooldecoder.ingest.aspire_binary import AspireBinaryParser
from tooldecoder.ingest.aspire_relational import AspireRelationalParser
from tooldecoder.ingest.base import BaseParser, BinaryParser
from tooldecoder.ingest.carveco import CarveCoParser
from tooldecoder.ingest.detect import (
    DetectedFormat,
    FileFormat,
    FileInfo,
    detect_file_type,
    detect_tool_format,
    get_supported_extensions,
    require_parser_name,
)
from tooldecoder.ingest.estlcam import EstlcamParser

__all__ = [
    "AspireBinaryParser",
    "AspireRelationalParser",
    "BaseParser",
    "BinaryParser",
    "CarveCoParser",
    "DetectedFormat",
    "EstlcamParser",
    "FileFormat",
    "FileInfo",
    "detect_file_type",
    "detect_tool_format",
    "get_parser",
    "get_supported_extensions",
    "require_parser_name",
]

_PARSER_MAP: dict[str, type[BaseParser]] = {
    "aspire_relational": AspireRelationalParser,
    "aspire_binary": AspireBinaryParser,
    "carveco": CarveCoParser,
    "estlcam": EstlcamParser,
}


def get_parser(parser_name: str, **kwargs: int) -> BaseParser:
    """Return a parser instance for the given parser name.

    Args:
        parser_name: Parser identifier (e.g. ``"carveco"``, ``"estlcam"``).
        **kwargs: Passed to the parser constructor (``max_file_size``).

    Returns:
        A new parser instance.

    Raises:
        UnsupportedFormatError: If no parser is registered for the given name.
    """
    cls = _PARSER_MAP.get(parser_name)
    if cls is None:
        raise UnsupportedFormatError(f"No parser for format: {parser_name!r}")
    return cls(**kwargs)
