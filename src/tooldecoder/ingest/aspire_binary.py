"""Aspire 9 / Vectric binary tool library parser (.tool).

The format has no record index. Tool records are recovered by testing every
offset against the fixed tool header layout::

    +0   int32   header version (= 2)
    +4   int32   subtype
    +8   float32 radius
    +12  float32 tip geometry
    +16  int32   constant (= 6)
    +20  byte    0
    +21  5 x float64  diameter, stepdown, stepover, feed rate, plunge rate
    +61  4 x int32    flute count, spindle speed, tool number, name length
    +77  ASCII name

Rates are stored in inches per minute; every tool is imperial.
"""

from __future__ import annotations

import logging
import math
import struct
from collections.abc import Iterator
from dataclasses import dataclass

from tooldecoder.ingest.base import BinaryParser
from tooldecoder.ingest.typemap import aspire_binary_type_name, map_aspire_binary_type
from tooldecoder.types import IntermediateTool
from tooldecoder.units import per_min_to_per_sec

__all__ = ["AspireBinaryParser", "ToolHeader", "extract_root_group_name", "parse_tool_header"]

logger = logging.getLogger(__name__)

_HEADER_VERSION = 2
_VERSION_TAG = struct.pack("<i", _HEADER_VERSION)
_HEADER_CONSTANT = 6
_CONSTANT_OFFSET = 16
_NAME_OFFSET = 77  # name length lives at +73
_VALID_SUBTYPES = frozenset({0, 1, 2, 3, 4, 6, 8, 9})
_ANGLED_SUBTYPES = frozenset({3, 4, 6, 9})  # V-Bit, Engraving, Drill, Diamond Drag

_HEADER = struct.Struct("<iiffiB")
_CUTTING = struct.Struct("<5d4i")

_MAX_NAME_LENGTH = 200
_MAX_RADIUS = 10.0
_MAX_DIAMETER = 100.0
_MAX_SPINDLE_SPEED = 1_000_000

# The mcToolGroupMarker signature ends at 31; the root group header follows.
_ROOT_GROUP_OFFSET = 31
_DEFAULT_CATEGORY = "Default"


@dataclass(frozen=True)
class ToolHeader:
    """Validated 21-byte tool header."""

    subtype: int
    radius: float
    tip_geometry: float


def _decode_name(raw: bytes) -> str:
    return raw.decode("ascii", errors="replace").rstrip("\x00").strip()


def _read_root_group_name(data: bytes) -> str | None:
    if len(data) < _ROOT_GROUP_OFFSET + _NAME_OFFSET:
        return None

    (name_length,) = struct.unpack_from("<i", data, _ROOT_GROUP_OFFSET + _NAME_OFFSET - 4)
    if not 0 < name_length <= _MAX_NAME_LENGTH:
        return None

    start = _ROOT_GROUP_OFFSET + _NAME_OFFSET
    if start + name_length > len(data):
        return None

    return _decode_name(data[start : start + name_length]) or None


def extract_root_group_name(data: bytes) -> str:
    """Read the root group name that serves as category for every tool."""
    name = _read_root_group_name(data)
    if name is None:
        logger.warning("No root group name found, using category %r", _DEFAULT_CATEGORY)
        return _DEFAULT_CATEGORY
    return name


def parse_tool_header(data: bytes, pos: int) -> ToolHeader | None:
    """Validate the fixed tool header at *pos*; ``None`` if it does not fit."""
    if pos < 0 or pos + _NAME_OFFSET > len(data):
        return None

    version, subtype, radius, tip_geometry, constant, zero = _HEADER.unpack_from(data, pos)
    if version != _HEADER_VERSION or subtype not in _VALID_SUBTYPES:
        return None
    if not math.isfinite(radius) or not 0 < radius < _MAX_RADIUS:
        return None
    if not math.isfinite(tip_geometry) or tip_geometry < 0:
        return None
    if constant != _HEADER_CONSTANT or zero != 0:
        return None
    return ToolHeader(subtype=subtype, radius=radius, tip_geometry=tip_geometry)


def _included_angle(header: ToolHeader) -> float:
    if header.subtype not in _ANGLED_SUBTYPES or header.tip_geometry <= 0:
        return 0.0
    return round(math.degrees(2 * math.atan(header.radius / header.tip_geometry)), 1)


def _parse_record(data: bytes, pos: int, category: str) -> IntermediateTool | None:
    header = parse_tool_header(data, pos)
    if header is None:
        return None

    (
        diameter,
        stepdown,
        stepover,
        feed_rate,
        plunge_rate,
        flute_count,
        spindle_speed,
        _tool_number,
        name_length,
    ) = _CUTTING.unpack_from(data, pos + _HEADER.size)

    if not 1 <= name_length <= _MAX_NAME_LENGTH:
        return None
    if not math.isfinite(diameter) or not 0 < diameter < _MAX_DIAMETER:
        return None
    if not 0 < spindle_speed < _MAX_SPINDLE_SPEED:
        return None
    if not all(map(math.isfinite, (stepdown, stepover, plunge_rate))):
        return None
    if not math.isfinite(feed_rate) or feed_rate < 0:
        return None

    name_start = pos + _NAME_OFFSET
    if name_start + name_length > len(data):
        return None
    name = _decode_name(data[name_start : name_start + name_length])
    if not name:
        return None

    return IntermediateTool(
        name=name,
        tool_type=map_aspire_binary_type(header.subtype, name),
        source_type=aspire_binary_type_name(header.subtype),
        diameter=diameter,
        flute_count=flute_count or 2,
        included_angle=_included_angle(header),
        feed_rate=per_min_to_per_sec(feed_rate),
        plunge_rate=per_min_to_per_sec(plunge_rate),
        pass_depth=stepdown,
        step_over=stepover,
        spindle_speed=spindle_speed,
        tip_radius=header.radius,
        metric_tool=False,
        category=category,
    )


def _candidate_offsets(data: bytes) -> Iterator[int]:
    """Yield offsets whose version tag and header constant both match.

    Both checks are fixed-width integer compares, so the scan stays linear.
    """
    last = len(data) - _NAME_OFFSET
    pos = data.find(_VERSION_TAG)
    while 0 <= pos <= last:
        if struct.unpack_from("<i", data, pos + _CONSTANT_OFFSET)[0] == _HEADER_CONSTANT:
            yield pos
        pos = data.find(_VERSION_TAG, pos + 1)


class AspireBinaryParser(BinaryParser):
    """Parser for Aspire 9 ``.tool`` binary libraries."""

    format_name = "Aspire 9"

    def supported_extensions(self) -> frozenset[str]:
        return frozenset({".tool"})

    def parse_bytes(self, data: bytes) -> list[IntermediateTool]:
        category = extract_root_group_name(data)

        tools: list[IntermediateTool] = []
        seen_names: set[int] = set()
        rejected = 0
        for pos in _candidate_offsets(data):
            tool = _parse_record(data, pos, category)
            if tool is None:
                rejected += 1
                continue

            # Overlapping false-positive headers can describe the same record.
            name_offset = pos + _NAME_OFFSET
            if name_offset in seen_names:
                continue
            seen_names.add(name_offset)
            tools.append(tool)

        logger.debug("Rejected %d candidate headers", rejected)
        return tools
