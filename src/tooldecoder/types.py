"""Data contracts for tooldecoder.

Frozen dataclasses that flow between stages:
  file bytes → list[IntermediateTool] → ConversionResult
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "ConversionResult",
    "ConversionStats",
    "IntermediateTool",
    "TargetDocument",
    "ToolType",
]

# category → braced UUID → target record
TargetDocument = dict[str, dict[str, dict[str, Any]]]


class ToolType(str, Enum):
    """Canonical tool shapes understood by the target tool database."""

    END_MILL = "End Mill"
    BALL_MILL = "Ball Mill"
    V_BIT = "V-Bit"
    DRILL = "Drill"
    SCRIBE = "Scribe"
    ROUND_OVER = "Round-over"


@dataclass(frozen=True)
class IntermediateTool:
    """Format-agnostic tool record produced by every parser.

    Numeric geometry is in mm (rates in mm/sec) when ``metric_tool`` is true,
    otherwise in inches (rates in in/sec). ``tool_type`` is ``None`` for
    tools the target format cannot represent.
    """

    name: str
    tool_type: ToolType | None
    source_type: str
    diameter: float = 0.0
    flute_count: int = 0
    included_angle: float = 0.0
    length: float = 0.0
    notes: str = ""
    feed_rate: float = 0.0
    plunge_rate: float = 0.0
    pass_depth: float = 0.0
    step_over: float = 0.0
    spindle_speed: float = 0.0
    tip_radius: float = 0.0
    metric_tool: bool = False
    category: str = "Default"
    operation: str = ""

    @property
    def compatible(self) -> bool:
        """True when the tool maps onto a canonical type."""
        return self.tool_type is not None


@dataclass(frozen=True)
class ConversionStats:
    """Aggregate counts for one conversion."""

    total: int = 0
    compatible: int = 0
    incompatible: int = 0

    @classmethod
    def from_tools(cls, tools: list[IntermediateTool]) -> ConversionStats:
        compatible = sum(1 for t in tools if t.compatible)
        return cls(total=len(tools), compatible=compatible, incompatible=len(tools) - compatible)


@dataclass(frozen=True)
class ConversionResult:
    """Target document plus the statistics of the conversion that built it."""

    document: TargetDocument = field(default_factory=dict)
    stats: ConversionStats = field(default_factory=ConversionStats)
