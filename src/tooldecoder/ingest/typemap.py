"""Source tool type → canonical ToolType tables for every supported format.

A lookup that finds no entry means the tool is incompatible with the target
database; every ``map_*`` function then returns ``None``.
"""

from __future__ import annotations

import re

from tooldecoder.types import ToolType

__all__ = [
    "CARVECO_TOOL_MARKERS",
    "aspire_binary_type_name",
    "aspire_type_name",
    "carveco_marker_from_name",
    "carveco_type_name",
    "estlcam_type_name",
    "map_aspire_binary_type",
    "map_aspire_type",
    "map_carveco_type",
    "map_estlcam_type",
]

# Form tools share one code; only roundovers have a canonical shape.
_FORM_TOOL = 8
_ROUNDOVER = "roundover"

# ---------------------------------------------------------------------------
# Aspire relational database (.vtdb): tool_geometry.tool_type
# ---------------------------------------------------------------------------

_ASPIRE_TYPES: dict[int, ToolType] = {
    0: ToolType.BALL_MILL,
    1: ToolType.END_MILL,
    3: ToolType.V_BIT,
    6: ToolType.DRILL,
    9: ToolType.SCRIBE,  # Diamond Drag
}

_ASPIRE_TYPE_NAMES: dict[int, str] = {
    0: "Ball Nose",
    1: "End Mill",
    3: "V-Bit",
    4: "Engraving/Tapered",
    5: "Tapered Ball Nose",
    6: "Drill",
    8: "Form Tool",
    9: "Diamond Drag",
}

# ---------------------------------------------------------------------------
# Aspire binary library (.tool): header subtype
# ---------------------------------------------------------------------------

_ASPIRE_BINARY_TYPES: dict[int, ToolType] = {
    0: ToolType.BALL_MILL,
    1: ToolType.END_MILL,
    2: ToolType.END_MILL,  # Radiused End Mill
    3: ToolType.V_BIT,
    6: ToolType.DRILL,
    9: ToolType.SCRIBE,
}

_ASPIRE_BINARY_TYPE_NAMES: dict[int, str] = {
    0: "Ball Nose",
    1: "End Mill",
    2: "Radiused End Mill",
    3: "V-Bit",
    4: "Engraving",
    6: "Drill",
    8: "Form Tool",
    9: "Diamond Drag",
}

# ---------------------------------------------------------------------------
# CarveCo (.tdb): tpmDB_*Tool markers
# ---------------------------------------------------------------------------

CARVECO_TOOL_MARKERS: tuple[str, ...] = (
    "tpmDB_SlotDrillTool",
    "tpmDB_BallnoseTool",
    "tpmDB_FlatConicalTool",
    "tpmDB_RadiusedConicalTool",
    "tpmDB_VBitTool",
    "tpmDB_OgeeTool",
    "tpmDB_RomanOgeeTool",
    "tpmDB_RoundoverTool",
    "tpmDB_RaisedPanelCoveTool",
    "tpmDB_RaisedPanelStraightTool",
    "tpmDB_RaisedPanelOgeeTool",
)

_CARVECO_TYPES: dict[str, ToolType] = {
    "tpmDB_SlotDrillTool": ToolType.END_MILL,
    "tpmDB_BallnoseTool": ToolType.BALL_MILL,
    "tpmDB_VBitTool": ToolType.V_BIT,
    "tpmDB_RoundoverTool": ToolType.ROUND_OVER,
}

# Order matters: "Conical Rad" must win over the broader "Conical", and
# "Ogee" is tested before "Roman Ogee".
_CARVECO_NAME_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bEnd\s*Mill\b", re.IGNORECASE), "tpmDB_SlotDrillTool"),
    (re.compile(r"\bSlot\s*Drill\b", re.IGNORECASE), "tpmDB_SlotDrillTool"),
    (re.compile(r"\bBall\s*Nos[ea]\b", re.IGNORECASE), "tpmDB_BallnoseTool"),
    (re.compile(r"\bV[- ]?Bit\b", re.IGNORECASE), "tpmDB_VBitTool"),
    (re.compile(r"\bRoundover\b", re.IGNORECASE), "tpmDB_RoundoverTool"),
    (re.compile(r"\bOgee\b", re.IGNORECASE), "tpmDB_OgeeTool"),
    (re.compile(r"\bRoman\s*Ogee\b", re.IGNORECASE), "tpmDB_RomanOgeeTool"),
    (re.compile(r"\bConical\s*Flat\b", re.IGNORECASE), "tpmDB_FlatConicalTool"),
    (re.compile(r"\bConical\s*Rad\b", re.IGNORECASE), "tpmDB_RadiusedConicalTool"),
    (re.compile(r"\bConical\b", re.IGNORECASE), "tpmDB_FlatConicalTool"),
    (re.compile(r"\bDrill\b", re.IGNORECASE), "tpmDB_SlotDrillTool"),  # drills cut as end mills
    (re.compile(r"\bBurr\b", re.IGNORECASE), "tpmDB_SlotDrillTool"),
    (re.compile(r"\bDished\s*Panel|Panel\s*Raiser\b", re.IGNORECASE), "tpmDB_RaisedPanelCoveTool"),
    (re.compile(r"\bBevel\s*Panel\b", re.IGNORECASE), "tpmDB_RaisedPanelStraightTool"),
    (re.compile(r"\bRaised\s*Panel\b", re.IGNORECASE), "tpmDB_RaisedPanelOgeeTool"),
    (re.compile(r"\bVeining\b", re.IGNORECASE), "tpmDB_FlatConicalTool"),
    (re.compile(r"\btaper\b", re.IGNORECASE), "tpmDB_RadiusedConicalTool"),
]

# ---------------------------------------------------------------------------
# ESTLcam (.tl): German "Type" tags
# ---------------------------------------------------------------------------

_ESTLCAM_TYPES: dict[str, ToolType] = {
    "Normal": ToolType.END_MILL,
    "Radius": ToolType.END_MILL,  # corner radius comes from R_Edge
    "Kugel": ToolType.BALL_MILL,
    "Bohrer": ToolType.DRILL,
    "Fase": ToolType.V_BIT,  # chamfer
    "Gravur": ToolType.V_BIT,  # engraving
}

_ESTLCAM_TYPE_NAMES: dict[str, str] = {
    "Normal": "End Mill",
    "Radius": "Radiused End Mill",
    "Kugel": "Ball Nose",
    "Kegel": "Tapered/Conical",
    "Gravur": "Engraving",
    "Bohrer": "Drill",
    "Fase": "Chamfer",
    "T_Slot": "T-Slot",
    "Gewinde": "Threading",
    "Profil": "Form/Profile",
    "Laser": "Laser",
}


def _map_form_tool(label: str | None) -> ToolType | None:
    if label and _ROUNDOVER in label.lower():
        return ToolType.ROUND_OVER
    return None


def map_aspire_type(tool_type: int, label: str | None) -> ToolType | None:
    """Map an Aspire database tool_type; form tools resolve through *label*."""
    if tool_type == _FORM_TOOL:
        return _map_form_tool(label)
    return _ASPIRE_TYPES.get(tool_type)


def aspire_type_name(tool_type: int) -> str:
    return _ASPIRE_TYPE_NAMES.get(tool_type, f"Unknown ({tool_type})")


def map_aspire_binary_type(subtype: int, name: str | None) -> ToolType | None:
    """Map an Aspire binary subtype; form tools resolve through *name*."""
    if subtype == _FORM_TOOL:
        return _map_form_tool(name)
    return _ASPIRE_BINARY_TYPES.get(subtype)


def aspire_binary_type_name(subtype: int) -> str:
    return _ASPIRE_BINARY_TYPE_NAMES.get(subtype, f"Unknown ({subtype})")


def map_carveco_type(marker: str | None) -> ToolType | None:
    if marker is None:
        return None
    return _CARVECO_TYPES.get(marker)


def carveco_type_name(marker: str | None) -> str:
    """Human-readable CarveCo type, e.g. ``tpmDB_FlatConicalTool`` → ``FlatConical``."""
    if marker is None:
        return "Unknown"
    return marker.replace("tpmDB_", "").replace("Tool", "")


def carveco_marker_from_name(name: str) -> str | None:
    """Guess a CarveCo type marker from a tool name; first matching pattern wins."""
    for pattern, marker in _CARVECO_NAME_PATTERNS:
        if pattern.search(name):
            return marker
    return None


def map_estlcam_type(tag: str) -> ToolType | None:
    return _ESTLCAM_TYPES.get(tag)


def estlcam_type_name(tag: str) -> str:
    return _ESTLCAM_TYPE_NAMES.get(tag, f"Unknown ({tag})")
