"""ESTLcam tool library parser (.tl).

A ``.tl`` file is gzip-compressed. The decompressed stream holds::

    0x00  "z/"                    magic
    0x04  int32 LE                tool count
    0x0C  records, separated by a 4-byte gap

Each record is ``DEF_PS`` followed by typed key/value pairs and closed by the
key ``Last`` plus one trailing string. Strings carry a one-byte length prefix
and are UTF-8. Values are tagged ``D`` (float64 LE) or ``S`` (string).

The stream has no resynchronization point, so any structural mismatch
aborts the whole file.
"""

from __future__ import annotations

import gzip
import logging
import math
import struct
import zlib
from typing import TYPE_CHECKING

from tooldecoder.exceptions import MalformedRecordError, ParseError
from tooldecoder.ingest.base import BinaryParser
from tooldecoder.ingest.typemap import estlcam_type_name, map_estlcam_type
from tooldecoder.types import IntermediateTool
from tooldecoder.units import per_min_to_per_sec

if TYPE_CHECKING:
    from collections.abc import Mapping

__all__ = ["EstlcamParser", "RecordReader"]

logger = logging.getLogger(__name__)

_MAGIC = b"z/"
_COUNT_OFFSET = 4
_RECORDS_OFFSET = 12
_RECORD_GAP = 4
_MAX_TOOLS = 10_000

_RECORD_MARKER = "DEF_PS"
_TERMINATOR = "Last"
_SEPARATOR = 0x01
_TAG_FLOAT = 0x44  # "D"
_TAG_STRING = 0x53  # "S"

_FLOAT = struct.Struct("<d")

# Types whose Angle field describes the cutting tip.
_ANGLED_TYPES = frozenset({"Fase", "Gravur", "Bohrer"})
_CATEGORY = "ESTLcam"

FieldValue = float | str


class RecordReader:
    """Cursor over a decompressed ESTLcam stream; every read is bounds-checked."""

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = data
        self.pos = pos

    def _require(self, size: int) -> None:
        if self.pos + size > len(self.data):
            raise MalformedRecordError(
                f"Unexpected end of data at offset {self.pos} (need {size} bytes)"
            )

    def read_byte(self) -> int:
        self._require(1)
        value = self.data[self.pos]
        self.pos += 1
        return value

    def read_string(self) -> str:
        length = self.read_byte()
        self._require(length)
        raw = self.data[self.pos : self.pos + length]
        self.pos += length
        return raw.decode("utf-8", errors="replace")

    def read_float(self) -> float:
        self._require(_FLOAT.size)
        (value,) = _FLOAT.unpack_from(self.data, self.pos)
        self.pos += _FLOAT.size
        return value

    def skip(self, size: int) -> None:
        self._require(size)
        self.pos += size

    def read_value(self) -> FieldValue:
        tag_offset = self.pos
        tag = self.read_byte()
        if tag == _TAG_FLOAT:
            return self.read_float()
        if tag == _TAG_STRING:
            return self.read_string()
        raise MalformedRecordError(f"Unknown type tag 0x{tag:02x} at offset {tag_offset}")

    def read_record(self) -> dict[str, FieldValue]:
        """Read one ``DEF_PS`` record up to and including its terminator."""
        start = self.pos
        marker = self.read_string()
        if marker != _RECORD_MARKER:
            raise MalformedRecordError(
                f"Expected {_RECORD_MARKER} marker at offset {start}, got {marker!r}"
            )

        fields: dict[str, FieldValue] = {}
        while True:
            key = self.read_string()
            if key == _TERMINATOR:
                self.read_string()
                return fields

            separator_offset = self.pos
            separator = self.read_byte()
            if separator != _SEPARATOR:
                raise MalformedRecordError(
                    f"Expected separator 0x01 at offset {separator_offset}, got 0x{separator:02x}"
                )
            fields[key] = self.read_value()


def _number(fields: Mapping[str, FieldValue], key: str) -> float:
    value = fields.get(key)
    if isinstance(value, float) and math.isfinite(value):
        return value
    return 0.0


def _fields_to_tool(fields: Mapping[str, FieldValue]) -> IntermediateTool:
    tag = fields.get("Type")
    if not isinstance(tag, str) or not tag:
        tag = "Normal"

    name = fields.get("Name")
    diameter = _number(fields, "Diameter")
    feed_rate = per_min_to_per_sec(_number(fields, "F"))
    plunge_angle = _number(fields, "Plunge_Angle")
    stepover_percent = _number(fields, "Stepover")

    return IntermediateTool(
        name=name if isinstance(name, str) else "",
        tool_type=map_estlcam_type(tag),
        source_type=estlcam_type_name(tag),
        diameter=diameter,
        flute_count=int(_number(fields, "Flutes")),
        included_angle=_number(fields, "Angle") if tag in _ANGLED_TYPES else 0.0,
        length=_number(fields, "H_Cut"),
        feed_rate=feed_rate,
        plunge_rate=feed_rate * math.sin(math.radians(plunge_angle)),
        pass_depth=_number(fields, "Dpp"),
        step_over=stepover_percent / 100 * diameter,
        spindle_speed=_number(fields, "Rpm"),
        tip_radius=_number(fields, "R_Edge"),
        metric_tool=True,
        category=_CATEGORY,
    )


class EstlcamParser(BinaryParser):
    """Parser for ESTLcam ``.tl`` tool libraries."""

    format_name = "ESTLcam"

    def supported_extensions(self) -> frozenset[str]:
        return frozenset({".tl"})

    def parse_bytes(self, data: bytes) -> list[IntermediateTool]:
        try:
            stream = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise ParseError(f"Failed to decompress {self.format_name} file: {e}") from e

        if len(stream) < _COUNT_OFFSET + 4 or stream[: len(_MAGIC)] != _MAGIC:
            raise ParseError(f"Invalid {self.format_name} file: missing 'z/' magic bytes")

        (tool_count,) = struct.unpack_from("<i", stream, _COUNT_OFFSET)
        if not 0 <= tool_count <= _MAX_TOOLS:
            raise ParseError(f"Invalid {self.format_name} tool count: {tool_count}")

        logger.debug("Decompressed %d bytes, %d tools declared", len(stream), tool_count)

        reader = RecordReader(stream, _RECORDS_OFFSET)
        tools = []
        for i in range(tool_count):
            if i:
                reader.skip(_RECORD_GAP)
            tools.append(_fields_to_tool(reader.read_record()))
        return tools
