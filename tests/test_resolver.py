# SPDX-License-Identifier: MIT
"""Tests for package -> PinUID resolution."""

from __future__ import annotations

from typing import Any

import pytest

from schematic_rules.model import ComponentModel, load_component_model
from schematic_rules.resolver import PackageResolutionError, resolve
from schematic_rules.rules import RuleCompiler


class TestResolve:
    def test_forward_and_reverse_maps(self, regulator: ComponentModel) -> None:
        pins = resolve(regulator, "lga8")
        assert pins.package == "lga8"
        assert pins.physical("ground.gnd.main") == ("4", "9")
        assert pins.physical_to_pin["9"] == "ground.gnd.main"
        assert pins.physical_to_pin["5"] == "signal.i2c.sda"
        assert pins.unmapped == ()

    def test_packages_share_semantics(self, regulator: ComponentModel) -> None:
        lga = resolve(regulator, "lga8")
        bga = resolve(regulator, "bga64")
        assert set(lga.pin_to_physical) == set(bga.pin_to_physical)
        assert bga.physical_to_pin["D5"] == lga.physical_to_pin["5"]

    def test_describe_names_physical_pins(self, regulator: ComponentModel) -> None:
        assert resolve(regulator, "bga64").describe("ground.gnd.main") == "ground.gnd.main [bga64 pin C3, C4]"

    def test_absent_package_fails_locally(self, regulator: ComponentModel) -> None:
        with pytest.raises(PackageResolutionError) as excinfo:
            resolve(regulator, "qfn16")
        assert excinfo.value.component == "TPS62130"
        assert excinfo.value.available == ["bga64", "lga8"]

    def test_missing_package_name(self, regulator: ComponentModel) -> None:
        with pytest.raises(PackageResolutionError):
            resolve(regulator, None)

    def test_unmapped_rule_bearing_pin_is_reported(
        self, component_doc: dict[str, Any], compiler: RuleCompiler
    ) -> None:
        sot = dict(component_doc["packages"]["lga8"])
        del sot["signal.i2c.sda"]
        del sot["power.vddio.main"]
        component_doc["packages"]["sot23"] = sot
        model = load_component_model(component_doc, compiler=compiler)
        pins = resolve(model, "sot23")
        # VDDIO carries no rules, so only SDA is unresolved.
        assert pins.unmapped == ("signal.i2c.sda",)
        assert not pins.is_mapped("signal.i2c.sda")
        assert pins.is_mapped("power.vdd.main")
        assert pins.describe("signal.i2c.sda") == "signal.i2c.sda (unmapped in sot23)"
