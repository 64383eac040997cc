# SPDX-License-Identifier: MIT
"""Tests for the rule language: parsing, kind validation, rendering and memoization."""

from __future__ import annotations

import threading
from decimal import Decimal

import pytest

from schematic_rules.rules import (
    CapRequirement,
    CompileError,
    PullDirection,
    PullRequirement,
    Purpose,
    RuleCompiler,
    compile_rule,
    parse_rule,
    render_rule,
)
from schematic_rules.rules.syntax import tokenize
from schematic_rules.units import Comparison


class TestParser:
    def test_tokens_carry_offsets(self) -> None:
        tokens = list(tokenize("cap(0.1u)!"))
        assert [(t.type, t.value, t.offset) for t in tokens] == [
            ("IDENT", "cap", 0),
            ("LPAREN", "(", 3),
            ("MAGNITUDE", "0.1u", 4),
            ("RPAREN", ")", 8),
            ("BANG", "!", 9),
            ("END", "", 10),
        ]

    def test_named_and_positional_arguments(self) -> None:
        call = parse_rule("pull(up, to = power.vddio.main, r=<=10k)")
        assert call.kind == "pull"
        assert call.firm is False
        assert [arg.name for arg in call.args] == [None, "to", "r"]
        assert [arg.value.type for arg in call.args] == ["ident", "pin", "magnitude"]
        assert call.args[2].value.bound.comparison is Comparison.AT_MOST

    @pytest.mark.parametrize(
        ("text", "offset", "message"),
        [
            ("", 0, "Empty rule text"),
            ("cap(0.1u", 8, "Expected ',' or ')'"),
            ("cap 0.1u)", 4, "Expected '('"),
            ("cap(0.1u)!!", 10, "Unexpected trailing"),
            ("cap(0.1u) extra", 10, "Unexpected trailing"),
            ("cap(#)", 4, "Unexpected character"),
            ("cap(<10u)", 4, "Expected '<=' comparator"),
            ("pull(up, power..vdd, 1k)", 9, "Malformed pin identifier"),
            ("cap(,)", 4, "Expected an argument value"),
        ],
    )
    def test_syntax_errors_report_offset(self, text: str, offset: int, message: str) -> None:
        with pytest.raises(CompileError) as excinfo:
            parse_rule(text)
        assert excinfo.value.offset == offset
        assert message in excinfo.value.message


class TestKindValidation:
    def test_cap_atom(self, compiler: RuleCompiler) -> None:
        atom = compiler.compile("cap(47u+, purpose=bulk, max_dist=5mm)!")
        assert isinstance(atom, CapRequirement)
        assert atom.firm is True
        assert atom.value.comparison is Comparison.AT_LEAST
        assert atom.value.target.value == Decimal("4.7e-5")
        assert atom.value.target.unit == "F"
        assert atom.purpose is Purpose.BULK
        assert atom.max_dist is not None and atom.max_dist.value == Decimal("0.005")

    def test_pull_atom_with_aliases(self, compiler: RuleCompiler) -> None:
        atom = compiler.compile("pull(dir=down, to=ground.gnd.main, resistance=4.7k)")
        assert isinstance(atom, PullRequirement)
        assert atom.direction is PullDirection.DOWN
        assert atom.target == "ground.gnd.main"
        assert atom.resistance.target.unit == "Ω"
        assert atom.firm is False

    @pytest.mark.parametrize(
        ("text", "offset", "message"),
        [
            ("foo(1u)", 0, "Unknown rule kind 'foo'"),
            ("cap(1u, 2u)", 8, "at most 1 positional"),
            ("cap(value=1u, 2u)", 14, "Positional argument follows"),
            ("cap(1u, value=2u)", 8, "multiple values"),
            ("cap(1u, size=2u)", 8, "unknown argument 'size'"),
            ("cap(purpose=bulk)", 0, "missing required argument(s): value"),
            ("cap(1u, purpose=huge)", 16, "purpose must be one of"),
            ("cap(10kΩ)", 4, "capacitance"),
            ("cap(bulk)", 4, "value must be a magnitude"),
            ("cap(1u, max_dist=>=5mm)", 17, "does not accept an at-least"),
            ("pull(sideways, power.vdd.main, 10k)", 5, "direction must be one of"),
            ("pull(up, vdd, 10k)", 9, "must be a pin identifier"),
            ("pull(up, power.vdd.main)", 0, "missing required argument(s): value"),
            ("pull(up, power.vdd.main, 10uF)", 25, "resistance"),
        ],
    )
    def test_kind_errors_are_scoped_to_the_rule(
        self, compiler: RuleCompiler, text: str, offset: int, message: str
    ) -> None:
        with pytest.raises(CompileError) as excinfo:
            compiler.compile(text)
        assert excinfo.value.offset == offset
        assert message in excinfo.value.message
        assert excinfo.value.text == text

    def test_non_positive_max_dist_rejected(self, compiler: RuleCompiler) -> None:
        with pytest.raises(CompileError, match="max_dist must be positive"):
            compiler.compile("cap(1u, max_dist=0mm)")


class TestCanonicalRendering:
    @pytest.mark.parametrize(
        ("text", "canonical"),
        [
            ("cap(0.1u)!", "cap(100nF)!"),
            ("cap( 0.1u ,purpose = decoupling , max_dist=5mm )!", "cap(100nF, purpose=decoupling, max_dist=5mm)!"),
            ("cap(1u, max_dist=1000mm)", "cap(1uF, max_dist=1000mm)"),
            ("cap(47u+)", "cap(>=47uF)"),
            ("cap(>=47uF)", "cap(>=47uF)"),
            ("pull(up, power.vddio.main, <=10k)!", "pull(up, power.vddio.main, <=10kΩ)!"),
            ("pull(dir=down, to=ground.gnd.main, r=4.7kohm)", "pull(down, ground.gnd.main, 4.7kΩ)"),
        ],
    )
    def test_canonical_text(self, compiler: RuleCompiler, text: str, canonical: str) -> None:
        assert render_rule(compiler.compile(text)) == canonical

    @pytest.mark.parametrize(
        "text",
        [
            "cap(0.1u)!",
            "cap(10u+, purpose=bulk, max_dist=1cm)",
            "cap(1u, max_dist=1000mm)",
            "cap(1u, max_dist=2.5in)",
            "cap(<=2.2n, purpose=ref)!",
            "pull(up, power.vddio.main, <=10k)!",
            "pull(down, ground.gnd.main, >=1M)",
        ],
    )
    def test_render_compile_is_idempotent(self, compiler: RuleCompiler, text: str) -> None:
        once = compiler.compile(text).render()
        twice = compiler.compile(once).render()
        assert once == twice
        assert compiler.compile(once) == compiler.compile(text)

    def test_firmness_changes_only_the_marker(self, compiler: RuleCompiler) -> None:
        flexible = compiler.compile("cap(1u)")
        firm = flexible.with_firmness(True)
        assert firm.render() == "cap(1uF)!"
        assert firm.body() == flexible.body()
        assert flexible.firm is False


class TestMemoization:
    def test_same_text_returns_same_atom(self, compiler: RuleCompiler) -> None:
        first = compiler.compile("cap(0.1u)!")
        assert compiler.compile("cap(0.1u)!") is first
        assert compiler.cache_size() == 1

    def test_failures_are_cached(self, compiler: RuleCompiler) -> None:
        first = compiler.try_compile("cap(")
        second = compiler.try_compile("cap(")
        assert isinstance(first, CompileError)
        assert second == first
        assert second is not first
        assert compiler.cache_size() == 1

    def test_repeated_failures_do_not_accumulate_tracebacks(self, compiler: RuleCompiler) -> None:
        depths = []
        for _ in range(3):
            error = compiler.try_compile("bogus(1u)")
            assert isinstance(error, CompileError)
            depth = 0
            tb = error.__traceback__
            while tb is not None:
                depth += 1
                tb = tb.tb_next
            depths.append(depth)
        assert len(set(depths)) == 1

    def test_sibling_rules_compile_after_a_failure(self, compiler: RuleCompiler) -> None:
        results = [compiler.try_compile(text) for text in ("cap(1u)", "cap(oops", "cap(2u)")]
        assert isinstance(results[0], CapRequirement)
        assert isinstance(results[1], CompileError)
        assert isinstance(results[2], CapRequirement)

    def test_concurrent_compiles_agree(self, compiler: RuleCompiler) -> None:
        atoms: list[object] = []
        lock = threading.Lock()

        def worker() -> None:
            atom = compiler.compile("pull(up, power.vdd.main, 10k)")
            with lock:
                atoms.append(atom)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len({id(atom) for atom in atoms}) == 1

    def test_module_level_compile_uses_session_compiler(self) -> None:
        assert compile_rule("cap(3.3u)") is compile_rule("cap(3.3u)")
