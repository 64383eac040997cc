# SPDX-License-Identifier: MIT
"""Tests for capacitor and pull-resistor evidence search."""

from __future__ import annotations

from typing import Any

import pytest

from schematic_rules.engine import Diagnostic, EvaluationConfig, Severity, Verdict, evaluate
from schematic_rules.model import load_component_model
from schematic_rules.rules import RuleCompiler


def _diagnostic(
    component_doc: dict[str, Any],
    board: dict[str, Any],
    make_graph,
    compiler: RuleCompiler,
    uid: str,
    config: EvaluationConfig | None = None,
) -> Diagnostic:
    model = load_component_model(component_doc, compiler=compiler)
    report = evaluate([model], [], make_graph(board, model), config, compiler=compiler)
    (diagnostic,) = [d for d in report if d.scope_id == f"U1/{uid}"]
    return diagnostic


def _instance(board: dict[str, Any], ref: str) -> dict[str, Any]:
    return next(inst for inst in board["instances"] if inst["ref"] == ref)


def _net(board: dict[str, Any], name: str) -> dict[str, Any]:
    return next(net for net in board["nets"] if net["name"] == name)


class TestCapacitance:
    def test_satisfied_summary_lists_evidence(self, component_doc, board_doc, make_graph, compiler) -> None:
        diagnostic = _diagnostic(component_doc, board_doc(), make_graph, compiler, "power.vin.main")
        assert diagnostic.verdict is Verdict.SATISFIED
        assert diagnostic.severity is Severity.INFO
        assert diagnostic.net == "VIN"
        assert diagnostic.evidence_summary == (
            "100nF found, 100nF required on net VIN at U1 power.vin.main [lga8 pin 1]; counted C1 100nF"
        )

    def test_capacitance_is_summed(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        board["instances"] += [
            {"ref": "C3", "category": "capacitor", "value": "47n"},
            {"ref": "C4", "category": "capacitor", "value": "47n"},
        ]
        _net(board, "VDD")["nodes"] += ["C3:1", "C4:1"]
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vdd.main")
        assert diagnostic.verdict is Verdict.SATISFIED
        assert "94nF found" in diagnostic.evidence_summary

    @pytest.mark.parametrize(("tolerance", "verdict"), [(0.2, Verdict.SATISFIED), (0.1, Verdict.VIOLATED)])
    def test_nominal_value_uses_configured_tolerance(
        self, component_doc, board_doc, make_graph, compiler, tolerance: float, verdict: Verdict
    ) -> None:
        board = board_doc()
        board["instances"].append({"ref": "C3", "category": "capacitor", "value": "82n"})
        _net(board, "VDD")["nodes"].append("C3:1")
        config = EvaluationConfig(capacitance_tolerance=tolerance)
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vdd.main", config)
        assert diagnostic.verdict is verdict

    def test_empty_net_is_a_firm_failure(self, component_doc, board_doc, make_graph, compiler) -> None:
        diagnostic = _diagnostic(component_doc, board_doc(), make_graph, compiler, "power.vdd.main")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert diagnostic.severity is Severity.ERROR
        assert diagnostic.evidence_summary.startswith("no capacitance found, 100nF required on net VDD")

    def test_flexible_failure_is_a_warning(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        _net(board, "VIN")["nodes"].remove("C1:1")
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vin.main")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert diagnostic.severity is Severity.WARNING

    def test_purpose_mismatch_is_excluded(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        _instance(board, "C1")["purpose"] = "bulk"
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vin.main")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert "excluded C1 (purpose bulk)" in diagnostic.evidence_summary

    @pytest.mark.parametrize(("match_any", "verdict"), [(True, Verdict.SATISFIED), (False, Verdict.VIOLATED)])
    def test_untagged_capacitors_follow_config(
        self, component_doc, board_doc, make_graph, compiler, match_any: bool, verdict: Verdict
    ) -> None:
        board = board_doc()
        del _instance(board, "C1")["purpose"]
        config = EvaluationConfig(untagged_capacitors_match_any_purpose=match_any)
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vin.main", config)
        assert diagnostic.verdict is verdict

    @pytest.mark.parametrize(("max_dist", "verdict"), [("1mm", Verdict.VIOLATED), ("5mm", Verdict.SATISFIED)])
    def test_max_dist_uses_placement(
        self, component_doc, board_doc, make_graph, compiler, max_dist: str, verdict: Verdict
    ) -> None:
        component_doc["pins"]["power.vin.main"]["rules"] = [f"cap(100n, max_dist={max_dist})"]
        diagnostic = _diagnostic(component_doc, board_doc(), make_graph, compiler, "power.vin.main")
        assert diagnostic.verdict is verdict
        if verdict is Verdict.VIOLATED:
            assert "excluded C1 (2mm away)" in diagnostic.evidence_summary

    @pytest.mark.parametrize(("policy", "verdict"), [("accept", Verdict.SATISFIED), ("reject", Verdict.VIOLATED)])
    def test_unknown_distance_policy(
        self, component_doc, board_doc, make_graph, compiler, policy: str, verdict: Verdict
    ) -> None:
        component_doc["pins"]["power.vin.main"]["rules"] = ["cap(100n, max_dist=1mm)"]
        board = board_doc()
        del _instance(board, "C1")["position"]
        config = EvaluationConfig(unknown_distance_policy=policy)
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vin.main", config)
        assert diagnostic.verdict is verdict

    def test_unconnected_anchor(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        board["nets"].remove(_net(board, "VDD"))
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "power.vdd.main")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert "power.vdd.main [lga8 pin 2] is not connected to any net" in diagnostic.evidence_summary

    def test_split_pin_is_violated_not_raised(self, component_doc, board_doc, make_graph, compiler) -> None:
        component_doc["pins"]["ground.gnd.main"]["rules"] = ["cap(1u)"]
        board = board_doc()
        _net(board, "GND")["nodes"].remove("U1:9")
        board["nets"].append({"name": "AGND", "nodes": ["U1:9"]})
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "ground.gnd.main")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert "split across nets GND, AGND" in diagnostic.evidence_summary


class TestPull:
    def test_pull_up_found(self, component_doc, board_doc, make_graph, compiler) -> None:
        diagnostic = _diagnostic(component_doc, board_doc(), make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.SATISFIED
        assert diagnostic.net == "SDA"
        assert diagnostic.evidence_summary.startswith("R1 4.7kΩ bridges SDA to VDDIO")

    def test_resistance_out_of_range(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        _instance(board, "R1")["value"] = "22k"
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert diagnostic.severity is Severity.ERROR
        assert "R1 22kΩ between SDA and VDDIO do not satisfy <=10kΩ" in diagnostic.evidence_summary

    def test_missing_resistor(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        _net(board, "VDDIO")["nodes"].remove("R1:2")
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert diagnostic.evidence_summary.startswith("no resistor between SDA and VDDIO")

    def test_pull_down(self, component_doc, board_doc, make_graph, compiler) -> None:
        component_doc["pins"]["signal.i2c.sda"]["rules"] = ["pull(down, ground.gnd.main, 4.7k)"]
        board = board_doc()
        _net(board, "VDDIO")["nodes"].remove("R1:2")
        _net(board, "GND")["nodes"].append("R1:2")
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.SATISFIED

    def test_wrong_target_role_is_invalid_even_with_resistor(
        self, component_doc, board_doc, make_graph, compiler
    ) -> None:
        component_doc["pins"]["signal.i2c.sda"]["rules"] = ["pull(up, ground.gnd.main, <=10k)!"]
        board = board_doc()
        _net(board, "VDDIO")["nodes"].remove("R1:2")
        _net(board, "GND")["nodes"].append("R1:2")
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.INVALID_TARGET
        assert diagnostic.severity is Severity.ERROR
        assert "has role ground, expected power" in diagnostic.evidence_summary

    def test_target_must_be_a_pin_of_the_component(
        self, component_doc, board_doc, make_graph, compiler
    ) -> None:
        component_doc["pins"]["signal.i2c.sda"]["rules"] = ["pull(up, power.vcc.main, 10k)"]
        diagnostic = _diagnostic(component_doc, board_doc(), make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.INVALID_TARGET
        assert diagnostic.severity is Severity.WARNING

    def test_anchor_tied_to_target(self, component_doc, board_doc, make_graph, compiler) -> None:
        board = board_doc()
        _net(board, "VDDIO")["nodes"].append("U1:5")
        diagnostic = _diagnostic(component_doc, board, make_graph, compiler, "signal.i2c.sda")
        assert diagnostic.verdict is Verdict.VIOLATED
        assert "tied directly to VDDIO" in diagnostic.evidence_summary
