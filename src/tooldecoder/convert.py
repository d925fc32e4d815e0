"""Converter from intermediate tools to the target tool database document.

The document groups tools by category; inside a category each tool is keyed
by a fresh braced UUID and carries a running ``Index`` starting at 0.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from tooldecoder.config import ConverterDefaults, OutputConfig
from tooldecoder.exceptions import ConvertError
from tooldecoder.types import ConversionResult, ConversionStats, IntermediateTool, TargetDocument

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "RAMP_RATE_FACTOR",
    "TARGET_FIELDS",
    "braced_uuid",
    "convert_tools",
    "dump_document",
    "load_document",
    "output_path_for",
    "save_document",
]

logger = logging.getLogger(__name__)

TARGET_FIELDS: tuple[str, ...] = (
    "Category",
    "Diameter",
    "FeedRate",
    "FluteCount",
    "IncludedAngle",
    "Index",
    "Length",
    "MetricTool",
    "Name",
    "Notes",
    "PassDepth",
    "PlungeRate",
    "Radius",
    "RampAngle",
    "RampRate",
    "SpindleSpeed",
    "StepOver",
    "TipLength",
    "ToolSpecURL",
    "Type",
    "Vendor",
)

RAMP_RATE_FACTOR = 0.8
_DEFAULT_CATEGORY = "Default"
_DEFAULT_INDENT = OutputConfig.indent


def braced_uuid() -> str:
    """Return a random UUID in braces, e.g. ``{1b4e28ba-2fa1-11d2-883f-0016d3cca427}``."""
    return f"{{{uuid.uuid4()}}}"


def _target_record(
    tool: IntermediateTool,
    category: str,
    index: int,
    defaults: ConverterDefaults,
) -> dict[str, Any]:
    ramp_rate = defaults.ramp_rate
    if ramp_rate is None:
        ramp_rate = tool.feed_rate * RAMP_RATE_FACTOR

    return {
        "Category": category,
        "Diameter": tool.diameter,
        "FeedRate": tool.feed_rate,
        "FluteCount": tool.flute_count or 2,
        "IncludedAngle": tool.included_angle,
        "Index": index,
        "Length": tool.length,
        "MetricTool": tool.metric_tool,
        "Name": tool.name,
        "Notes": tool.notes,
        "PassDepth": tool.pass_depth,
        "PlungeRate": tool.plunge_rate,
        "Radius": tool.tip_radius,
        "RampAngle": defaults.ramp_angle,
        "RampRate": ramp_rate,
        "SpindleSpeed": tool.spindle_speed,
        "StepOver": tool.step_over,
        "TipLength": defaults.tip_length,
        "ToolSpecURL": defaults.tool_spec_url,
        "Type": tool.tool_type.value if tool.tool_type is not None else "",
        "Vendor": defaults.vendor,
    }


def convert_tools(
    tools: list[IntermediateTool],
    defaults: ConverterDefaults | None = None,
    *,
    new_id: Callable[[], str] = braced_uuid,
) -> ConversionResult:
    """Fold intermediate tools into a target document.

    Incompatible tools are counted but left out. Numeric fields are copied
    as-is; each tool is already expressed in the unit system its
    ``metric_tool`` flag declares.

    Args:
        tools: Parser output in source order.
        defaults: Values for fields the sources never supply.
        new_id: Identifier factory, one call per emitted tool.

    Returns:
        ConversionResult with the document and {total, compatible, incompatible}.
    """
    defaults = defaults or ConverterDefaults()
    document: TargetDocument = {}

    for tool in tools:
        if not tool.compatible:
            continue
        category = tool.category or _DEFAULT_CATEGORY
        group = document.setdefault(category, {})
        group[new_id()] = _target_record(tool, category, len(group), defaults)

    stats = ConversionStats.from_tools(tools)
    logger.info(
        "Converted %d of %d tools into %d categories (%d incompatible)",
        stats.compatible,
        stats.total,
        len(document),
        stats.incompatible,
    )
    return ConversionResult(document=document, stats=stats)


def dump_document(document: TargetDocument, indent: int = _DEFAULT_INDENT) -> str:
    """Serialize a target document to JSON text."""
    return json.dumps(document, indent=indent, ensure_ascii=False, allow_nan=False)


def save_document(document: TargetDocument, path: Path, indent: int = _DEFAULT_INDENT) -> None:
    """Write a target document to *path*."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dump_document(document, indent) + "\n", encoding="utf-8")
        logger.info("Saved tool database to %s", path)
    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to save tool database to %s: %s", path, e)
        raise ConvertError(f"Failed to save tool database to {path}: {e}") from e


def load_document(path: Path) -> TargetDocument:
    """Read a target document written by :func:`save_document`."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load tool database from %s: %s", path, e)
        raise ConvertError(f"Failed to load tool database from {path}: {e}") from e

    if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
        raise ConvertError(f"Not a tool database document: {path}")
    return data


def output_path_for(source: Path, extension: str = OutputConfig.extension) -> Path:
    """Default output location: the source path with the target extension."""
    return source.with_suffix(extension)
