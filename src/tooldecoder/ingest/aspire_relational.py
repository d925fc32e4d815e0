"""Aspire 12 tool database parser (.vtdb, SQLite).

Tools are rows of a join across geometry, cutting data, material and tool
tree tables. Display names come from the ``name_format`` template, e.g.
``End Mill ({Diameter|F}")`` → ``End Mill (1/4")``.
"""

from __future__ import annotations

import logging
import math
import re
import sqlite3
from typing import TYPE_CHECKING, Any

from tooldecoder.exceptions import ParseError
from tooldecoder.ingest.base import BaseParser
from tooldecoder.ingest.typemap import aspire_type_name, map_aspire_type
from tooldecoder.types import IntermediateTool
from tooldecoder.units import rate_to_per_sec

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

__all__ = ["AspireRelationalParser", "format_imperial_fraction", "resolve_name_format"]

logger = logging.getLogger(__name__)

_UNITS_IMPERIAL = 1

_TOOL_QUERY = """
    SELECT
        tg.id AS geometry_id,
        tg.name_format,
        tg.notes,
        tg.tool_type,
        tg.units,
        tg.diameter,
        tg.included_angle,
        tg.flat_diameter,
        tg.num_flutes,
        tg.flute_length,
        tg.tip_radius,
        tcd.rate_units,
        tcd.feed_rate,
        tcd.plunge_rate,
        tcd.spindle_speed,
        tcd.stepdown,
        tcd.stepover,
        m.name AS material_name,
        tte.name AS tree_name
    FROM tool_entity te
    JOIN tool_geometry tg ON te.tool_geometry_id = tg.id
    JOIN tool_cutting_data tcd ON te.tool_cutting_data_id = tcd.id
    LEFT JOIN material m ON te.material_id = m.id
    LEFT JOIN tool_tree_entry tte ON tte.tool_geometry_id = tg.id
    WHERE te.material_id IS NOT NULL
"""

_TOKEN_RE = re.compile(r"\{([^}]+)\}")

# 1/32 .. 32/32 in lowest terms
_FRACTIONS: tuple[tuple[int, int], ...] = (
    (1, 32), (1, 16), (3, 32), (1, 8), (5, 32), (3, 16), (7, 32), (1, 4),
    (9, 32), (5, 16), (11, 32), (3, 8), (13, 32), (7, 16), (15, 32), (1, 2),
    (17, 32), (9, 16), (19, 32), (5, 8), (21, 32), (11, 16), (23, 32), (3, 4),
    (25, 32), (13, 16), (27, 32), (7, 8), (29, 32), (15, 16), (31, 32), (1, 1),
)  # fmt: skip
_FRACTION_TOLERANCE = 0.01
_WHOLE_TOLERANCE = 0.001


def _format_number(value: float) -> str:
    """Render a number without a trailing ``.0`` (``6.0`` → ``6``)."""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def format_imperial_fraction(inches: float | None) -> str:
    """Render inches as a whole number plus the nearest 1/32 fraction.

    ``0.25`` → ``1/4``, ``1.5`` → ``1 1/2``, ``1.0`` → ``1``. Values more
    than 0.01 from any 32nd fall back to a trimmed decimal.
    """
    if inches is None:
        return "0"
    whole = math.floor(inches)
    frac = inches - whole

    if frac < _WHOLE_TOLERANCE:
        return str(whole)

    num, den = min(_FRACTIONS, key=lambda f: abs(frac - f[0] / f[1]))
    if abs(frac - num / den) > _FRACTION_TOLERANCE:
        return f"{inches:.4f}".rstrip("0").rstrip(".")

    if num == den:
        return str(whole + 1)
    fraction = f"{num}/{den}"
    return f"{whole} {fraction}" if whole > 0 else fraction


def resolve_name_format(template: str | None, row: Mapping[str, Any]) -> str:
    """Expand ``{Field}`` / ``{Field|Format}`` tokens of an Aspire name template.

    Unrecognized tokens are left untouched.
    """
    if not template:
        return ""

    imperial = row["units"] == _UNITS_IMPERIAL

    def _optional(key: str) -> str:
        value = row[key]
        return "" if value is None else _format_number(value)

    def _replace(match: re.Match[str]) -> str:
        field = match.group(1).split("|", 1)[0].strip()

        if field == "Tool Type":
            return aspire_type_name(row["tool_type"])
        if field == "Diameter":
            diameter = row["diameter"]
            # Imperial diameters always render as fractions, with or without |F.
            if imperial:
                return format_imperial_fraction(diameter)
            return "0" if diameter is None else _format_number(diameter)
        if field == "Included Angle":
            return _optional("included_angle")
        if field == "Flat Diameter":
            return _optional("flat_diameter")
        if field == "Tip Radius":
            return _optional("tip_radius")
        return match.group(0)

    return _TOKEN_RE.sub(_replace, template).strip()


class AspireRelationalParser(BaseParser):
    """Parser for Aspire 12 ``.vtdb`` SQLite tool databases."""

    format_name = "Aspire 12"

    def supported_extensions(self) -> frozenset[str]:
        return frozenset({".vtdb"})

    def parse(self, path: Path) -> list[IntermediateTool]:
        self._check_file(path)
        logger.info("Parsing %s database: %s", self.format_name, path)

        uri = f"{path.resolve().as_uri()}?mode=ro"
        try:
            conn = sqlite3.connect(uri, uri=True)
        except sqlite3.Error as e:
            raise ParseError(f"Failed to open {path.name}: {e}") from e

        try:
            tools = self.parse_connection(conn)
        finally:
            conn.close()

        logger.info(
            "Parsed %s: %d tools (%d compatible)",
            path.name,
            len(tools),
            sum(1 for t in tools if t.compatible),
        )
        return tools

    def parse_connection(self, conn: sqlite3.Connection) -> list[IntermediateTool]:
        """Read every tool with an assigned material from an open database."""
        try:
            cursor = conn.execute(_TOOL_QUERY)
            columns = [d[0] for d in cursor.description]
            rows = [dict(zip(columns, values, strict=True)) for values in cursor.fetchall()]
        except sqlite3.Error as e:
            raise ParseError(f"Failed to query {self.format_name} tool database: {e}") from e

        return [self._row_to_tool(row) for row in rows]

    def _row_to_tool(self, row: dict[str, Any]) -> IntermediateTool:
        metric = row["units"] != _UNITS_IMPERIAL
        tool_type = row["tool_type"]
        name = resolve_name_format(row["name_format"], row)

        # Form tools are recognized from the display name or the tree label.
        label = " ".join(part for part in (name, row["tree_name"]) if part)
        canonical = map_aspire_type(tool_type, label)

        rate_units = row["rate_units"]
        feed_rate = rate_to_per_sec(row["feed_rate"] or 0.0, rate_units, metric)
        plunge_rate = rate_to_per_sec(row["plunge_rate"] or 0.0, rate_units, metric)

        return IntermediateTool(
            name=name,
            tool_type=canonical,
            source_type=aspire_type_name(tool_type),
            diameter=row["diameter"] or 0.0,
            flute_count=row["num_flutes"] or 2,
            included_angle=row["included_angle"] or 0.0,
            length=row["flute_length"] or 0.0,
            notes=row["notes"] or "",
            feed_rate=feed_rate,
            plunge_rate=plunge_rate,
            pass_depth=row["stepdown"] or 0.0,
            step_over=row["stepover"] or 0.0,
            spindle_speed=row["spindle_speed"] or 0.0,
            tip_radius=row["tip_radius"] or 0.0,
            metric_tool=metric,
            category=row["material_name"] or "Default",
        )
