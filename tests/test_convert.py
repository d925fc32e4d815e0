"""Tests for tooldecoder.convert — target document construction and I/O."""

from __future__ import annotations

import itertools
import json
import re
from typing import TYPE_CHECKING

import pytest

from tooldecoder.config import ConverterDefaults
from tooldecoder.convert import (
    TARGET_FIELDS,
    braced_uuid,
    convert_tools,
    dump_document,
    load_document,
    output_path_for,
    save_document,
)
from tooldecoder.exceptions import ConvertError
from tooldecoder.types import ConversionStats, ToolType

if TYPE_CHECKING:
    from pathlib import Path

_BRACED_UUID = re.compile(r"^\{[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\}$")


def _sequential_ids():
    counter = itertools.count(1)
    return lambda: f"{{id-{next(counter)}}}"


class TestBracedUuid:
    def test_format(self):
        assert _BRACED_UUID.match(braced_uuid())

    def test_unique(self):
        assert len({braced_uuid() for _ in range(100)}) == 100


class TestConvertTools:
    def test_record_has_exactly_target_fields(self, make_tool):
        result = convert_tools([make_tool()])
        (record,) = result.document["Default"].values()
        assert set(record) == set(TARGET_FIELDS)
        assert len(TARGET_FIELDS) == 21

    def test_field_values(self, make_tool):
        tool = make_tool(
            "6mm Flat",
            tool_type=ToolType.END_MILL,
            diameter=6.0,
            feed_rate=20.0,
            plunge_rate=5.0,
            pass_depth=2.0,
            step_over=2.4,
            spindle_speed=18000.0,
            included_angle=0.0,
            length=22.0,
            tip_radius=0.5,
            notes="upcut",
            metric_tool=True,
            category="Aluminum",
        )
        record = convert_tools([tool], new_id=_sequential_ids()).document["Aluminum"]["{id-1}"]
        assert record == {
            "Category": "Aluminum",
            "Diameter": 6.0,
            "FeedRate": 20.0,
            "FluteCount": 2,
            "IncludedAngle": 0.0,
            "Index": 0,
            "Length": 22.0,
            "MetricTool": True,
            "Name": "6mm Flat",
            "Notes": "upcut",
            "PassDepth": 2.0,
            "PlungeRate": 5.0,
            "Radius": 0.5,
            "RampAngle": 22.5,
            "RampRate": pytest.approx(16.0),
            "SpindleSpeed": 18000.0,
            "StepOver": 2.4,
            "TipLength": 0.0,
            "ToolSpecURL": "",
            "Type": "End Mill",
            "Vendor": "",
        }

    def test_keys_are_braced_uuids(self, make_tool):
        result = convert_tools([make_tool(), make_tool()])
        assert all(_BRACED_UUID.match(key) for key in result.document["Default"])

    def test_incompatible_tools_excluded_but_counted(self, make_tool):
        tools = [make_tool(), make_tool(tool_type=None), make_tool(tool_type=ToolType.DRILL)]
        result = convert_tools(tools)
        assert sum(len(group) for group in result.document.values()) == 2
        assert result.stats == ConversionStats(total=3, compatible=2, incompatible=1)

    def test_index_is_contiguous_per_category(self, make_tool):
        tools = [
            make_tool("a", category="MDF"),
            make_tool("b", category="Oak"),
            make_tool("c", category="MDF", tool_type=None),
            make_tool("d", category="MDF"),
            make_tool("e", category="Oak"),
        ]
        document = convert_tools(tools).document
        assert [r["Index"] for r in document["MDF"].values()] == [0, 1]
        assert [r["Name"] for r in document["MDF"].values()] == ["a", "d"]
        assert [r["Index"] for r in document["Oak"].values()] == [0, 1]

    def test_category_field_matches_group(self, make_tool):
        document = convert_tools([make_tool(category="Plastics")]).document
        for category, group in document.items():
            assert all(r["Category"] == category for r in group.values())

    def test_empty_category_falls_back_to_default(self, make_tool):
        assert list(convert_tools([make_tool(category="")]).document) == ["Default"]

    def test_zero_flutes_become_two(self, make_tool):
        (record,) = convert_tools([make_tool(flute_count=0)]).document["Default"].values()
        assert record["FluteCount"] == 2

    def test_overrides(self, make_tool):
        defaults = ConverterDefaults(
            ramp_angle=10.0,
            ramp_rate=3.0,
            vendor="Amana",
            tool_spec_url="https://example.com/46200",
            tip_length=0.5,
        )
        (record,) = convert_tools([make_tool()], defaults).document["Default"].values()
        assert record["RampAngle"] == 10.0
        assert record["RampRate"] == 3.0
        assert record["Vendor"] == "Amana"
        assert record["ToolSpecURL"] == "https://example.com/46200"
        assert record["TipLength"] == 0.5

    def test_values_are_not_unit_converted(self, make_tool):
        tool = make_tool(diameter=0.25, feed_rate=1.5, metric_tool=False)
        (record,) = convert_tools([tool]).document["Default"].values()
        assert record["Diameter"] == 0.25
        assert record["FeedRate"] == 1.5
        assert record["MetricTool"] is False

    def test_empty_input(self):
        result = convert_tools([])
        assert result.document == {}
        assert result.stats.total == 0

    def test_only_incompatible_input(self, make_tool):
        result = convert_tools([make_tool(tool_type=None)])
        assert result.document == {}
        assert result.stats.incompatible == 1


class TestDocumentIO:
    def test_dump_uses_four_space_indent(self, make_tool):
        text = dump_document(convert_tools([make_tool()]).document)
        assert '\n    "Default": {' in text

    def test_round_trip(self, tmp_path: Path, make_tool):
        document = convert_tools([make_tool("a"), make_tool("b", category="MDF")]).document
        path = tmp_path / "out" / "library.tools"
        save_document(document, path)
        assert load_document(path) == document

    def test_non_ascii_names_survive(self, tmp_path: Path, make_tool):
        document = convert_tools([make_tool("90° Fase")]).document
        path = tmp_path / "library.tools"
        save_document(document, path)
        (record,) = load_document(path)["Default"].values()
        assert record["Name"] == "90° Fase"

    def test_dump_rejects_non_finite_values(self, make_tool):
        document = convert_tools([make_tool(step_over=float("nan"))]).document
        with pytest.raises(ValueError):
            dump_document(document)

    def test_save_non_finite_values_raises_convert_error(self, tmp_path: Path, make_tool):
        document = convert_tools([make_tool(plunge_rate=float("inf"))]).document
        path = tmp_path / "library.tools"
        with pytest.raises(ConvertError):
            save_document(document, path)
        assert not path.exists()

    def test_load_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.tools"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConvertError):
            load_document(path)

    def test_load_wrong_shape(self, tmp_path: Path):
        path = tmp_path / "list.tools"
        path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        with pytest.raises(ConvertError, match="Not a tool database"):
            load_document(path)

    def test_load_missing_file(self, tmp_path: Path):
        with pytest.raises(ConvertError):
            load_document(tmp_path / "missing.tools")

    def test_output_path_for(self, tmp_path: Path):
        assert output_path_for(tmp_path / "lib.vtdb") == tmp_path / "lib.tools"
        assert output_path_for(tmp_path / "lib.tl", ".json") == tmp_path / "lib.json"
