# SPDX-License-Identifier: MIT
"""Tests for document loading, JSON schema checks and the file-level API."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from schematic_rules import api
from schematic_rules.engine import EvaluationConfig, Verdict
from schematic_rules.model import (
    ComponentDocument,
    ComponentValidationError,
    PatternPackDocument,
    PatternValidationError,
    SchematicDocument,
    load_document,
    validate_against_json_schema,
)
from schematic_rules.schematic import SchematicValidationError
from schematic_rules.serialization import canonical_digest, canonical_json_dumps


def _write_yaml(path: Path, data: dict[str, Any]) -> Path:
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    return path


class TestLoadDocument:
    def test_yaml(self, fixtures_dir: Path) -> None:
        data = load_document(fixtures_dir / "tps62130.yaml")
        assert data["component"] == "TPS62130"

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "pack.json"
        path.write_text(json.dumps({"pack": "empty"}), encoding="utf-8")
        assert load_document(path) == {"pack": "empty"}

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "board.txt"
        path.write_text("name: x\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported file extension"):
            load_document(path)

    def test_root_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="must contain a mapping"):
            load_document(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_document(tmp_path / "absent.yaml")


class TestJsonSchema:
    @pytest.mark.parametrize(
        ("name", "model"),
        [
            ("tps62130.yaml", ComponentDocument),
            ("power_pack.yaml", PatternPackDocument),
            ("board_lga8.yaml", SchematicDocument),
            ("board_bga64.yaml", SchematicDocument),
        ],
    )
    def test_fixtures_are_schema_valid(self, fixtures_dir: Path, name: str, model) -> None:
        assert validate_against_json_schema(load_document(fixtures_dir / name), model) == []

    def test_numeric_physical_pin_is_a_schema_error(self, component_doc: dict[str, Any]) -> None:
        component_doc["packages"]["lga8"]["power.vdd.main"] = [2]
        errors = validate_against_json_schema(component_doc, ComponentDocument)
        assert len(errors) == 1
        assert errors[0].startswith("packages.lga8.power.vdd.main.0:")

    def test_object_nodes_are_schema_valid(self) -> None:
        document = {
            "instances": [{"ref": "C1", "category": "capacitor"}],
            "nets": [{"name": "N", "nodes": [{"ref": "C1", "pin": "1"}, "C1:2"]}],
        }
        assert validate_against_json_schema(document, SchematicDocument) == []


class TestApiLoaders:
    def test_component_strict_rejects_numbers(self, tmp_path: Path, component_doc: dict[str, Any]) -> None:
        component_doc["packages"]["lga8"]["power.vdd.main"] = [2]
        path = _write_yaml(tmp_path / "part.yaml", component_doc)
        assert api.load_component_file(path).packages["lga8"]["power.vdd.main"] == ("2",)
        with pytest.raises(ComponentValidationError):
            api.load_component_file(path, strict=True)

    def test_pack_strict_rejects_unknown_field(self, tmp_path: Path, pack_doc: dict[str, Any]) -> None:
        pack_doc["owner"] = "power team"
        path = _write_yaml(tmp_path / "pack.yaml", pack_doc)
        with pytest.raises(PatternValidationError) as excinfo:
            api.load_pattern_pack_file(path, strict=True)
        assert excinfo.value.pack == "power-basics"

    def test_pack_duplicate_pattern_names(self, tmp_path: Path, pack_doc: dict[str, Any]) -> None:
        pack_doc["patterns"][1]["name"] = pack_doc["patterns"][0]["name"]
        path = _write_yaml(tmp_path / "pack.yaml", pack_doc)
        with pytest.raises(PatternValidationError, match="duplicate pattern name"):
            api.load_pattern_pack_file(path)

    def test_schematic_file_takes_categories_from_models(self, fixtures_dir: Path) -> None:
        model = api.load_component_file(fixtures_dir / "tps62130.yaml")
        graph = api.load_schematic_file(fixtures_dir / "board_lga8.yaml", [model], strict=True)
        assert graph.name == "buck-demo"
        assert graph.find_instance("U1").category == "regulator"

    def test_schematic_strict_rejects_unknown_field(self, tmp_path: Path, board_doc) -> None:
        document = board_doc()
        document["revision"] = 3
        path = _write_yaml(tmp_path / "board.yaml", document)
        with pytest.raises(SchematicValidationError):
            api.load_schematic_file(path, strict=True)

    def test_check_files(self, fixtures_dir: Path) -> None:
        report = api.check_files(
            [fixtures_dir / "tps62130.yaml"],
            fixtures_dir / "board_lga8.yaml",
            [fixtures_dir / "power_pack.yaml"],
            EvaluationConfig.from_yaml(fixtures_dir / "config.yaml"),
            strict=True,
        )
        assert report.complete
        assert [d.verdict for d in report] == [
            Verdict.VIOLATED,
            Verdict.SATISFIED,
            Verdict.VIOLATED,
            Verdict.VIOLATED,
            Verdict.SATISFIED,
        ]

    def test_compile_and_render_exports(self) -> None:
        assert api.render_rule(api.compile_rule("cap(47u+)")) == "cap(>=47uF)"


class TestCanonicalJson:
    def test_sorted_compact_and_unicode(self) -> None:
        assert canonical_json_dumps({"b": 1, "a": "10kΩ"}) == '{"a":"10kΩ","b":1}'

    def test_nan_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            canonical_json_dumps({"x": float("nan")})

    def test_digest_ignores_key_order(self) -> None:
        assert canonical_digest({"a": 1, "b": 2}) == canonical_digest({"b": 2, "a": 1})
