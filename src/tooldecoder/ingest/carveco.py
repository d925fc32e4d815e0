"""CarveCo tool database parser (.tdb).

The file interleaves ASCII ``tpmDB_*`` markers, UTF-16 group names and
fixed-layout tool records without any record count. Parsing runs in two
stages:

1. Index the buffer: marker offsets, subgroup names (materials and
   operation types), unit contexts and the active range of every tool-type
   marker.
2. Decode each tool record into a :class:`RawToolRecord`, then resolve its
   type, category and unit flag from the most recent preceding context.

UTF-16 strings are stored as ``FF FE FF <char count> <UTF-16LE units>``.
"""

from __future__ import annotations

import bisect
import logging
import math
import re
import struct
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from tooldecoder.ingest.base import BinaryParser
from tooldecoder.ingest.typemap import (
    CARVECO_TOOL_MARKERS,
    carveco_marker_from_name,
    carveco_type_name,
    map_carveco_type,
)
from tooldecoder.types import IntermediateTool
from tooldecoder.units import per_min_to_per_sec

__all__ = [
    "CarveCoIndex",
    "CarveCoParser",
    "ContextTimeline",
    "OPERATION_TYPES",
    "RawToolRecord",
    "build_index",
    "parse_tool_record",
    "read_utf16_string",
    "resolve_tool",
]

logger = logging.getLogger(__name__)

_V = TypeVar("_V")

GROUP_START = "tpmDB_GroupStart"
GROUP_END = "tpmDB_GroupEnd"

_UTF16_PREFIX = b"\xff\xfe\xff"
_SUBGROUP_SUFFIX = b"\x80\x02" + _UTF16_PREFIX
_TOOL_RECORD_HEADER = b"\x05\x01\x00\x00\x00" + _UTF16_PREFIX
_SECTION_END = b"\x01\x0c\x80"

_METRIC_FLAG = 0x01
_MAX_DIAMETER = 500.0
_DEFAULT_CATEGORY = "Default"

# Subgroup names that repeat under every material. Anything else is a material.
OPERATION_TYPES = frozenset(
    {
        "Roughing and 2D Finishing",
        "3D Finishing",
        "Engraving",
        "V-Carving",
        "Ogee and Roundover",
        "Raised Panel",
        "End Mills",
        "Ball Nosed End Mills",
    }
)

_ANGLE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*deg", re.IGNORECASE)

# stepover, spindle speed, feed rate, plunge rate, parameter flags, flute count
_MACHINING = struct.Struct("<4diB")


# ---------------------------------------------------------------------------
# Low-level readers
# ---------------------------------------------------------------------------


def read_utf16_string(data: bytes, offset: int) -> tuple[str, int] | None:
    """Read a prefixed UTF-16 string.

    Returns:
        ``(value, bytes_consumed)``, or ``None`` when there is no string
        prefix at *offset* or the characters run past the buffer.
    """
    if offset + 3 >= len(data) or data[offset : offset + 3] != _UTF16_PREFIX:
        return None

    char_count = data[offset + 3]
    start = offset + 4
    end = start + char_count * 2
    if end > len(data):
        return None
    return data[start:end].decode("utf-16-le", errors="replace"), end - offset


def _find_all(data: bytes, pattern: bytes) -> list[int]:
    positions = []
    pos = data.find(pattern)
    while pos != -1:
        positions.append(pos)
        pos = data.find(pattern, pos + 1)
    return positions


# ---------------------------------------------------------------------------
# Context cascade
# ---------------------------------------------------------------------------


@dataclass
class ContextTimeline(Generic[_V]):
    """Ordered ``(offset, value)`` pairs; a query sees the latest value before it."""

    offsets: list[int] = field(default_factory=list)
    values: list[_V] = field(default_factory=list)

    def add(self, offset: int, value: _V) -> None:
        index = bisect.bisect_right(self.offsets, offset)
        self.offsets.insert(index, offset)
        self.values.insert(index, value)

    def value_before(self, offset: int) -> _V | None:
        index = bisect.bisect_left(self.offsets, offset)
        return self.values[index - 1] if index else None

    def __len__(self) -> int:
        return len(self.offsets)


@dataclass(frozen=True)
class _TypeRange:
    start: int
    end: int
    marker: str


@dataclass
class CarveCoIndex:
    """Structural index of a CarveCo buffer."""

    type_ranges: list[_TypeRange] = field(default_factory=list)
    _type_starts: list[int] = field(default_factory=list, repr=False)
    units: ContextTimeline[bool] = field(default_factory=ContextTimeline)
    materials: ContextTimeline[str] = field(default_factory=ContextTimeline)
    operations: ContextTimeline[str] = field(default_factory=ContextTimeline)

    def marker_at(self, offset: int) -> str | None:
        """Return the tool-type marker whose active range contains *offset*."""
        index = bisect.bisect_right(self._type_starts, offset) - 1
        if index < 0:
            return None
        type_range = self.type_ranges[index]
        return type_range.marker if offset < type_range.end else None

    def add_type_range(self, start: int, end: int, marker: str) -> None:
        """Append a marker range; ranges must be added in offset order."""
        self.type_ranges.append(_TypeRange(start=start, end=end, marker=marker))
        self._type_starts.append(start)


def build_index(data: bytes) -> CarveCoIndex:
    """Locate markers, subgroups and unit contexts in *data*."""
    index = CarveCoIndex()

    group_starts = _find_all(data, GROUP_START.encode("ascii"))
    group_ends = _find_all(data, GROUP_END.encode("ascii"))
    tool_markers = sorted(
        (pos, marker)
        for marker in CARVECO_TOOL_MARKERS
        for pos in _find_all(data, marker.encode("ascii"))
    )

    for pos in _find_all(data, _SUBGROUP_SUFFIX):
        result = read_utf16_string(data, pos + 2)
        if result is None or not result[0]:
            continue
        name = result[0]
        if name in OPERATION_TYPES:
            index.operations.add(pos, name)
        else:
            index.materials.add(pos, name)
            index.operations.add(pos, "")  # a new material leaves the operation group

    for pos in group_starts:
        # marker, one type byte, then the unit context name
        result = read_utf16_string(data, pos + len(GROUP_START) + 1)
        if result is None:
            continue
        index.units.add(pos, "metric" in result[0].lower())

    boundaries = sorted(
        [pos for pos, _ in tool_markers]
        + _find_all(data, _SECTION_END)
        + group_ends
        + group_starts
    )
    for pos, marker in tool_markers:
        next_boundary = bisect.bisect_right(boundaries, pos)
        end = boundaries[next_boundary] if next_boundary < len(boundaries) else len(data)
        index.add_type_range(pos, end, marker)

    logger.debug(
        "Indexed %d type markers, %d materials, %d unit contexts",
        len(index.type_ranges),
        len(index.materials),
        len(index.units),
    )
    return index


# ---------------------------------------------------------------------------
# Tool records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawToolRecord:
    """Fields decoded from one tool record, before context resolution."""

    offset: int
    name: str
    metric: bool
    diameter: float
    notes: str
    step_over: float
    spindle_speed: float
    feed_rate: float
    plunge_rate: float
    flute_count: int
    included_angle: float


def _angle_from_name(name: str) -> float:
    match = _ANGLE_RE.search(name)
    return float(match.group(1)) if match else 0.0


def parse_tool_record(data: bytes, offset: int) -> RawToolRecord | None:
    """Decode the tool record whose header starts at *offset*."""
    cursor = offset + 5  # 05 01 00 00 00

    result = read_utf16_string(data, cursor)
    if result is None:
        return None
    name, consumed = result
    cursor += consumed

    if cursor >= len(data):
        return None
    metric = data[cursor] == _METRIC_FLAG
    cursor += 4  # unit flag + 3 padding bytes

    if cursor + 16 > len(data):
        return None
    (diameter,) = struct.unpack_from("<d", data, cursor)
    if not math.isfinite(diameter) or not 0 < diameter <= _MAX_DIAMETER:
        return None
    cursor += 16  # diameter + shank diameter

    description = read_utf16_string(data, cursor)
    notes = ""
    if description is not None:
        notes, consumed = description
        cursor += consumed

    if cursor + _MACHINING.size > len(data):
        return None
    step_over, spindle_speed, feed_rate, plunge_rate, _flags, flute_count = (
        _MACHINING.unpack_from(data, cursor)
    )
    if not all(map(math.isfinite, (step_over, spindle_speed, feed_rate, plunge_rate))):
        return None

    return RawToolRecord(
        offset=offset,
        name=name,
        metric=metric,
        diameter=diameter,
        notes=notes,
        step_over=step_over,
        spindle_speed=spindle_speed,
        feed_rate=per_min_to_per_sec(feed_rate),
        plunge_rate=per_min_to_per_sec(plunge_rate),
        flute_count=flute_count,
        included_angle=_angle_from_name(name),
    )


def resolve_tool(record: RawToolRecord, index: CarveCoIndex) -> IntermediateTool:
    """Attach type, category and unit context to a decoded record."""
    marker = index.marker_at(record.offset)
    if marker is None:
        marker = carveco_marker_from_name(record.name)

    material = index.materials.value_before(record.offset)
    operation = index.operations.value_before(record.offset) or ""

    metric = index.units.value_before(record.offset)
    if metric is None:
        metric = record.metric
    if material and "inch" in material.lower():
        metric = False

    return IntermediateTool(
        name=record.name,
        tool_type=map_carveco_type(marker),
        source_type=carveco_type_name(marker),
        diameter=record.diameter,
        flute_count=record.flute_count or 2,
        included_angle=record.included_angle,
        notes=record.notes,
        feed_rate=record.feed_rate,
        plunge_rate=record.plunge_rate,
        step_over=record.step_over,
        spindle_speed=record.spindle_speed,
        metric_tool=metric,
        category=material or _DEFAULT_CATEGORY,
        operation=operation,
    )


class CarveCoParser(BinaryParser):
    """Parser for CarveCo ``.tdb`` tool databases."""

    format_name = "CarveCo"

    def supported_extensions(self) -> frozenset[str]:
        return frozenset({".tdb"})

    def parse_bytes(self, data: bytes) -> list[IntermediateTool]:
        index = build_index(data)

        tools: list[IntermediateTool] = []
        headers = _find_all(data, _TOOL_RECORD_HEADER)
        for pos in headers:
            record = parse_tool_record(data, pos)
            if record is None:
                logger.debug("Skipping malformed tool record at 0x%X", pos)
                continue
            tools.append(resolve_tool(record, index))

        logger.debug("Decoded %d of %d tool record headers", len(tools), len(headers))
        return tools
