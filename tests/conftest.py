"""Shared fixtures for tooldecoder tests.

Tool libraries are synthesized byte-for-byte so no vendor sample files are
needed. Each ``make_*`` fixture returns a builder function.
"""

from __future__ import annotations

import gzip
import sqlite3
import struct
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest

from tooldecoder.config import ToolDecoderConfig
from tooldecoder.types import IntermediateTool, ToolType

if TYPE_CHECKING:
    from pathlib import Path

# ---------------------------------------------------------------------------
# Aspire 12 (.vtdb)
# ---------------------------------------------------------------------------

_VTDB_SCHEMA = """
    CREATE TABLE material (id INTEGER PRIMARY KEY, name TEXT);
    CREATE TABLE tool_geometry (
        id INTEGER PRIMARY KEY, name_format TEXT, notes TEXT, tool_type INTEGER,
        units INTEGER, diameter REAL, included_angle REAL, flat_diameter REAL,
        num_flutes INTEGER, flute_length REAL, tip_radius REAL
    );
    CREATE TABLE tool_cutting_data (
        id INTEGER PRIMARY KEY, rate_units INTEGER, feed_rate REAL, plunge_rate REAL,
        spindle_speed REAL, stepdown REAL, stepover REAL
    );
    CREATE TABLE tool_entity (
        id INTEGER PRIMARY KEY, tool_geometry_id INTEGER, tool_cutting_data_id INTEGER,
        material_id INTEGER
    );
    CREATE TABLE tool_tree_entry (id INTEGER PRIMARY KEY, tool_geometry_id INTEGER, name TEXT);
"""

_VTDB_TOOL_DEFAULTS: dict[str, Any] = {
    "name_format": "End Mill ({Diameter|F}\")",
    "notes": "",
    "tool_type": 1,
    "units": 1,
    "diameter": 0.25,
    "included_angle": None,
    "flat_diameter": None,
    "num_flutes": 2,
    "flute_length": 1.0,
    "tip_radius": None,
    "rate_units": 4,
    "feed_rate": 100.0,
    "plunge_rate": 30.0,
    "spindle_speed": 18000.0,
    "stepdown": 0.125,
    "stepover": 0.1,
    "material": "Hardwood",
    "tree_name": None,
}


def build_vtdb(path: Path, tools: list[dict[str, Any]]) -> Path:
    """Write an Aspire 12 database with one geometry/cutting-data pair per tool."""
    conn = sqlite3.connect(path)
    try:
        conn.executescript(_VTDB_SCHEMA)
        materials: dict[str, int] = {}
        for i, overrides in enumerate(tools, start=1):
            tool = {**_VTDB_TOOL_DEFAULTS, **overrides}
            conn.execute(
                "INSERT INTO tool_geometry VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    i,
                    tool["name_format"],
                    tool["notes"],
                    tool["tool_type"],
                    tool["units"],
                    tool["diameter"],
                    tool["included_angle"],
                    tool["flat_diameter"],
                    tool["num_flutes"],
                    tool["flute_length"],
                    tool["tip_radius"],
                ),
            )
            conn.execute(
                "INSERT INTO tool_cutting_data VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    i,
                    tool["rate_units"],
                    tool["feed_rate"],
                    tool["plunge_rate"],
                    tool["spindle_speed"],
                    tool["stepdown"],
                    tool["stepover"],
                ),
            )
            material_id = None
            if tool["material"] is not None:
                if tool["material"] not in materials:
                    materials[tool["material"]] = len(materials) + 1
                    conn.execute(
                        "INSERT INTO material VALUES (?, ?)",
                        (materials[tool["material"]], tool["material"]),
                    )
                material_id = materials[tool["material"]]
            conn.execute("INSERT INTO tool_entity VALUES (?, ?, ?, ?)", (i, i, i, material_id))
            if tool["tree_name"] is not None:
                conn.execute(
                    "INSERT INTO tool_tree_entry VALUES (?, ?, ?)", (i, i, tool["tree_name"])
                )
        conn.commit()
    finally:
        conn.close()
    return path


# ---------------------------------------------------------------------------
# Aspire 9 (.tool)
# ---------------------------------------------------------------------------

ASPIRE_BINARY_SIGNATURE = (
    struct.pack("<ii", 3, 0) + b"\xff\xff\x01\x00" + struct.pack("<h", 17) + b"mcToolGroupMarker"
)


def aspire_tool_record(
    name: str,
    *,
    subtype: int = 1,
    radius: float = 0.125,
    tip: float = 0.0,
    diameter: float = 0.25,
    stepdown: float = 0.1,
    stepover: float = 0.1,
    feed: float = 50.0,
    plunge: float = 20.0,
    flutes: int = 2,
    spindle: int = 18000,
    number: int = 1,
) -> bytes:
    """Encode one binary tool record (21-byte header, cutting data, name)."""
    raw_name = name.encode("ascii")
    return (
        struct.pack("<iiffiB", 2, subtype, radius, tip, 6, 0)
        + struct.pack(
            "<5d4i",
            diameter,
            stepdown,
            stepover,
            feed,
            plunge,
            flutes,
            spindle,
            number,
            len(raw_name),
        )
        + raw_name
    )


def build_aspire_binary(records: list[bytes], group_name: str = "Router Bits") -> bytes:
    """Signature, root group header (name length at +73, name at +77), then records."""
    raw_group = group_name.encode("ascii")
    root = bytes(73) + struct.pack("<i", len(raw_group)) + raw_group
    return ASPIRE_BINARY_SIGNATURE + root + bytes(8) + b"".join(records) + bytes(8)


# ---------------------------------------------------------------------------
# CarveCo (.tdb)
# ---------------------------------------------------------------------------

CARVECO_SECTION_END = b"\x01\x0c\x80"


def utf16(text: str) -> bytes:
    return b"\xff\xfe\xff" + bytes([len(text)]) + text.encode("utf-16-le")


def carveco_group_start(context: str) -> bytes:
    return b"tpmDB_GroupStart" + b"\x00" + utf16(context)


def carveco_subgroup(name: str) -> bytes:
    return b"\x80\x02" + utf16(name)


def carveco_tool(
    name: str,
    *,
    metric: bool = True,
    diameter: float = 6.0,
    description: str = "",
    stepover: float = 2.4,
    spindle: float = 18000.0,
    feed: float = 1200.0,
    plunge: float = 300.0,
    flutes: int = 2,
) -> bytes:
    """Encode one tool record starting at its ``05 01 00 00 00`` header."""
    record = (
        b"\x05\x01\x00\x00\x00"
        + utf16(name)
        + bytes([1 if metric else 0, 0, 0, 0])
        + struct.pack("<dd", diameter, diameter)
    )
    if description:
        record += utf16(description)
    return record + struct.pack("<4diB", stepover, spindle, feed, plunge, 0, flutes)


# ---------------------------------------------------------------------------
# ESTLcam (.tl)
# ---------------------------------------------------------------------------


def estlcam_string(text: str) -> bytes:
    raw = text.encode("utf-8")
    return bytes([len(raw)]) + raw


def estlcam_record(fields: dict[str, float | str]) -> bytes:
    """Encode a ``DEF_PS`` record; str values are tagged S, numbers D."""
    out = estlcam_string("DEF_PS")
    for key, value in fields.items():
        out += estlcam_string(key) + b"\x01"
        if isinstance(value, str):
            out += b"S" + estlcam_string(value)
        else:
            out += b"D" + struct.pack("<d", float(value))
    return out + estlcam_string("Last") + estlcam_string("")


def build_estlcam_stream(records: list[bytes], count: int | None = None) -> bytes:
    """Uncompressed stream: magic, count at 4, records from 12 with 4-byte gaps."""
    declared = len(records) if count is None else count
    return b"z/\x00\x00" + struct.pack("<i", declared) + bytes(4) + bytes(4).join(records)


def build_estlcam(records: list[bytes], count: int | None = None) -> bytes:
    return gzip.compress(build_estlcam_stream(records, count))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> ToolDecoderConfig:
    """A config with all default values."""
    return ToolDecoderConfig()


@pytest.fixture
def make_tool() -> Callable[..., IntermediateTool]:
    """Builder for intermediate tools with sensible defaults."""

    def _make(name: str = "1/4 End Mill", **kwargs: Any) -> IntermediateTool:
        values: dict[str, Any] = {
            "tool_type": ToolType.END_MILL,
            "source_type": "End Mill",
            "diameter": 0.25,
            "flute_count": 2,
            "feed_rate": 1.5,
            "plunge_rate": 0.5,
            "pass_depth": 0.125,
            "step_over": 0.1,
            "spindle_speed": 18000.0,
        }
        values.update(kwargs)
        return IntermediateTool(name=name, **values)

    return _make


@pytest.fixture
def vtdb_file(tmp_path: Path) -> Callable[[list[dict[str, Any]]], Path]:
    def _make(tools: list[dict[str, Any]], name: str = "tools.vtdb") -> Path:
        return build_vtdb(tmp_path / name, tools)

    return _make


@pytest.fixture
def aspire_binary_file(tmp_path: Path) -> Path:
    """A .tool library with an end mill, a V-bit and an incompatible engraving tool."""
    data = build_aspire_binary(
        [
            aspire_tool_record("1/4 End Mill"),
            aspire_tool_record("90 deg V-Bit", subtype=3, radius=0.25, tip=0.25, diameter=0.5),
            aspire_tool_record("Engraver", subtype=4, radius=0.05, tip=0.1),
        ]
    )
    path = tmp_path / "library.tool"
    path.write_bytes(data)
    return path


@pytest.fixture
def carveco_data() -> bytes:
    """Metric CarveCo buffer: one material, two typed tools, one name-only tool."""
    return b"".join(
        [
            b"header",
            carveco_group_start("Metric Tools"),
            carveco_subgroup("Aluminum"),
            carveco_subgroup("End Mills"),
            b"tpmDB_SlotDrillTool",
            carveco_tool("6mm End Mill", description="2 flute upcut", flutes=2),
            CARVECO_SECTION_END,
            carveco_subgroup("V-Carving"),
            b"tpmDB_VBitTool",
            carveco_tool("60 deg V-Bit", diameter=12.0),
            CARVECO_SECTION_END,
            b"tpmDB_OgeeTool",
            carveco_tool("Ogee Bit", diameter=25.0),
            CARVECO_SECTION_END,
            carveco_tool("3mm Ball Nose", diameter=3.0),
        ]
    )


@pytest.fixture
def carveco_file(tmp_path: Path, carveco_data: bytes) -> Path:
    path = tmp_path / "library.tdb"
    path.write_bytes(carveco_data)
    return path


@pytest.fixture
def estlcam_records() -> list[bytes]:
    return [
        estlcam_record(
            {
                "Name": "6mm Flat",
                "Type": "Normal",
                "Diameter": 6.0,
                "F": 1200.0,
                "Plunge_Angle": 90.0,
                "Stepover": 75.0,
                "Angle": 30.0,
                "Flutes": 3.0,
                "H_Cut": 22.0,
                "Dpp": 2.0,
                "Rpm": 20000.0,
                "R_Edge": 0.0,
            }
        ),
        estlcam_record(
            {
                "Name": "90° Fase",
                "Type": "Fase",
                "Diameter": 10.0,
                "F": 600.0,
                "Plunge_Angle": 30.0,
                "Stepover": 20.0,
                "Angle": 90.0,
            }
        ),
        estlcam_record({"Name": "Taper", "Type": "Kegel", "Diameter": 3.0}),
    ]


@pytest.fixture
def estlcam_file(tmp_path: Path, estlcam_records: list[bytes]) -> Path:
    path = tmp_path / "library.tl"
    path.write_bytes(build_estlcam(estlcam_records))
    return path
