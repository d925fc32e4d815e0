"""File format detection by extension and header signature.

Maps a tool library to a parser name. Extensions that several CAM
applications share (``.tool``) are resolved by a chain of header detectors,
first match wins.
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from tooldecoder.exceptions import ParseError, UnsupportedFormatError

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "TOOL_DETECTORS",
    "DetectedFormat",
    "FileFormat",
    "FileInfo",
    "detect_aspire_binary",
    "detect_file_type",
    "detect_tool_format",
    "get_supported_extensions",
    "require_parser_name",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class FileFormat(str, Enum):
    """Tool library format."""

    ASPIRE_RELATIONAL = "aspire_relational"
    ASPIRE_BINARY = "aspire_binary"
    CARVECO = "carveco"
    ESTLCAM = "estlcam"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Detection results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DetectedFormat:
    """Parser binding returned by a header detector."""

    format: FileFormat
    name: str
    parser_name: str


@dataclass(frozen=True)
class FileInfo:
    """Result of file type detection."""

    path: Path
    format: FileFormat
    format_name: str
    parser_name: str


# ---------------------------------------------------------------------------
# Extension mapping
# ---------------------------------------------------------------------------

_EXTENSION_MAP: dict[str, DetectedFormat] = {
    ".vtdb": DetectedFormat(FileFormat.ASPIRE_RELATIONAL, "Aspire 12", "aspire_relational"),
    ".tdb": DetectedFormat(FileFormat.CARVECO, "CarveCo", "carveco"),
    ".tl": DetectedFormat(FileFormat.ESTLCAM, "ESTLcam", "estlcam"),
}

# Extensions whose producer is identified from the file header.
_AMBIGUOUS_EXTENSIONS = frozenset({".tool"})

# ---------------------------------------------------------------------------
# .tool header detectors
# ---------------------------------------------------------------------------

HEADER_READ_SIZE = 256

_ASPIRE_BINARY_VERSION = 3
_ASPIRE_GROUP_MARKER = b"mcToolGroupMarker"
_ASPIRE_MARKER_OFFSET = 14
_ASPIRE_SIGNATURE_SIZE = _ASPIRE_MARKER_OFFSET + len(_ASPIRE_GROUP_MARKER)


def detect_aspire_binary(header: bytes) -> DetectedFormat | None:
    """Recognize the Aspire 9 / Vectric binary tool library.

    Layout of the first 31 bytes::

        0x00  int32 LE = 3            file version
        0x04  int32 LE                record count (not checked)
        0x08  FF FF                   record start marker
        0x0A  01 00                   record type indicator
        0x0C  int16 LE = 17           marker name length
        0x0E  "mcToolGroupMarker"     17 ASCII bytes
    """
    if len(header) < _ASPIRE_SIGNATURE_SIZE:
        return None
    if struct.unpack_from("<i", header, 0)[0] != _ASPIRE_BINARY_VERSION:
        return None
    if header[8:10] != b"\xff\xff" or header[10:12] != b"\x01\x00":
        return None
    if struct.unpack_from("<h", header, 12)[0] != len(_ASPIRE_GROUP_MARKER):
        return None
    if header[_ASPIRE_MARKER_OFFSET:_ASPIRE_SIGNATURE_SIZE] != _ASPIRE_GROUP_MARKER:
        return None
    return DetectedFormat(FileFormat.ASPIRE_BINARY, "Aspire 9", "aspire_binary")


# Append new .tool producers here; earlier detectors take precedence.
TOOL_DETECTORS: list[Callable[[bytes], DetectedFormat | None]] = [
    detect_aspire_binary,
]


def detect_tool_format(header: bytes) -> DetectedFormat | None:
    """Run the detector chain over a file header; ``None`` when nothing matches."""
    prefix = header[:HEADER_READ_SIZE]
    for detector in TOOL_DETECTORS:
        result = detector(prefix)
        if result is not None:
            logger.debug("Header matched %s", result.name)
            return result
    return None


def _read_header(path: Path) -> bytes:
    try:
        with path.open("rb") as f:
            return f.read(HEADER_READ_SIZE)
    except OSError as exc:
        raise ParseError(f"Cannot read header of {path.name}: {exc}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def detect_file_type(path: Path) -> FileInfo:
    """Detect the tool library format of *path*.

    Returns:
        A :class:`FileInfo`; ``parser_name`` is empty when no parser can
        handle the file.

    Raises:
        ParseError: If *path* does not exist or its header cannot be read.
    """
    if not path.exists():
        raise ParseError(f"File does not exist: {path}")

    if not path.is_file():
        raise ParseError(f"Not a file: {path}")

    ext = path.suffix.lower()
    detected = _EXTENSION_MAP.get(ext)
    if detected is None and ext in _AMBIGUOUS_EXTENSIONS:
        detected = detect_tool_format(_read_header(path))

    if detected is None:
        logger.debug("No parser for %s", path.name)
        return FileInfo(path=path, format=FileFormat.UNKNOWN, format_name="", parser_name="")

    logger.debug(
        "Detected %s: format=%s, parser=%s", path.name, detected.format, detected.parser_name
    )
    return FileInfo(
        path=path,
        format=detected.format,
        format_name=detected.name,
        parser_name=detected.parser_name,
    )


def require_parser_name(info: FileInfo) -> str:
    """Return the parser name for *info* or raise ``UnsupportedFormatError``."""
    if not info.parser_name:
        supported = ", ".join(sorted(get_supported_extensions()))
        raise UnsupportedFormatError(
            f"No parser can handle {info.path.name}. Supported: {supported}"
        )
    return info.parser_name


_SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(_EXTENSION_MAP) | _AMBIGUOUS_EXTENSIONS


def get_supported_extensions() -> frozenset[str]:
    """Return all file extensions recognized by the detection module."""
    return _SUPPORTED_EXTENSIONS
