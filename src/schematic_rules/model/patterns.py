"""Pattern definitions: condition trees and actions.

Patterns are immutable once built. Conditions know how to test themselves
against an evaluation scope (see :class:`schematic_rules.engine.patterns.PatternScope`);
actions are applied by the pattern engine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from pydantic import ValidationError

from ..rules.atoms import RuleAtom
from ..rules.compiler import RuleCompiler, get_default_compiler
from ..rules.syntax import CompileError
from ..units import Bound
from .documents import (
    ActionDocument,
    ConditionDocument,
    PatternDocument,
    PatternPackDocument,
    format_validation_errors,
)

if TYPE_CHECKING:
    from ..engine.patterns import PatternScope


class PatternScopeKind(str, Enum):
    PIN = "pin"
    NET = "net"
    COMPONENT = "component"


class PatternValidationError(ValueError):
    """Raised when a pattern pack document is invalid.

    Attributes:
        pack: Pack name (or "<unknown>" when it could not be read).
        errors: List of validation error messages.
    """

    def __init__(self, pack: str, errors: list[str]) -> None:
        self.pack = pack
        self.errors = errors
        super().__init__(f"Pattern pack {pack!r} failed validation with {len(errors)} error(s): {errors}")


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThisComponent:
    """True for the instance under evaluation."""

    def holds(self, scope: PatternScope) -> bool:
        return True

    def describe(self) -> str:
        return "this_component"


@dataclass(frozen=True)
class Exists:
    """Some other instance of ``category`` (optionally on a net, with a value) exists."""

    category: str
    on_net: str | None = None
    value: Bound | None = None

    def holds(self, scope: PatternScope) -> bool:
        if self.on_net is None:
            candidates = scope.query.all_instances()
        else:
            net = scope.net_for(self.on_net)
            if net is None:
                return False
            candidates = scope.query.components_on_net(net)
        tolerance = scope.config.value_tolerance
        return any(
            index != scope.instance_index and scope.query.matches(index, self.category, self.value, tolerance)
            for index in candidates
        )

    def describe(self) -> str:
        parts = [f"component={self.category}"]
        if self.on_net is not None:
            parts.append(f"on_net={self.on_net}")
        if self.value is not None:
            parts.append(f"value={self.value.render()}")
        return f"exists{{{', '.join(parts)}}}"


@dataclass(frozen=True)
class CategoryIs:
    category: str

    def holds(self, scope: PatternScope) -> bool:
        return scope.instance.category.casefold() == self.category.casefold()

    def describe(self) -> str:
        return f"category={self.category}"


@dataclass(frozen=True)
class ModelIs:
    component: str

    def holds(self, scope: PatternScope) -> bool:
        return scope.instance.model == self.component

    def describe(self) -> str:
        return f"model={self.component}"


@dataclass(frozen=True)
class HasPin:
    pin_uid: str

    def holds(self, scope: PatternScope) -> bool:
        return scope.pins is not None and scope.pins.is_mapped(self.pin_uid)

    def describe(self) -> str:
        return f"has_pin={self.pin_uid}"


@dataclass(frozen=True)
class Connected:
    pin_uid: str

    def holds(self, scope: PatternScope) -> bool:
        return scope.net_for(self.pin_uid) is not None

    def describe(self) -> str:
        return f"connected={self.pin_uid}"


Condition = Union[ThisComponent, Exists, CategoryIs, ModelIs, HasPin, Connected]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bind:
    """Resolve symbolic ``key`` to ``rule``.

    ``rule`` holds the compile error instead when the rule text is invalid.
    ``firm`` overrides the rule text's own firmness when not None.
    """

    key: str
    rule: RuleAtom | CompileError
    text: str
    firm: bool | None = None

    def resolved(self) -> RuleAtom:
        assert isinstance(self.rule, RuleAtom)
        if self.firm is None:
            return self.rule
        return self.rule.with_firmness(self.firm)


@dataclass(frozen=True)
class Require:
    """Introduce a new rule anchored at ``on`` (or the pattern anchor)."""

    rule: RuleAtom | CompileError
    text: str
    on: str | None = None
    firm: bool | None = None

    def resolved(self) -> RuleAtom:
        assert isinstance(self.rule, RuleAtom)
        if self.firm is None:
            return self.rule
        return self.rule.with_firmness(self.firm)


@dataclass(frozen=True)
class Escalate:
    """Raise matching rules on ``on`` (or the pattern anchor) to firm."""

    rule: RuleAtom | CompileError
    text: str
    on: str | None = None


Action = Union[Bind, Require, Escalate]


@dataclass(frozen=True)
class Pattern:
    """A conditional requirement.

    Attributes:
        name: Pattern name, used in diagnostics.
        scope: Addressing unit of diagnostics the pattern introduces.
        anchor: PinUID the pattern is anchored to (required for pin/net scope).
        conditions: Conjunction of primitives; empty means always true.
        actions: Applied in order when every condition holds.
        source: Owning component id (part-scoped) or pack name (global).
        part_scoped: True when declared inside a component definition.
    """

    name: str
    scope: PatternScopeKind
    anchor: str | None
    conditions: tuple[Condition, ...]
    actions: tuple[Action, ...]
    source: str
    part_scoped: bool = False

    @property
    def qualified_name(self) -> str:
        return f"{self.source}/{self.name}"

    def describe(self) -> str:
        if not self.conditions:
            return "always"
        return " and ".join(condition.describe() for condition in self.conditions)


@dataclass(frozen=True)
class PatternPack:
    """An independently declared, explicitly enabled set of global patterns."""

    name: str
    patterns: tuple[Pattern, ...]
    description: str = ""


def build_conditions(document: ConditionDocument) -> tuple[Condition, ...]:
    conditions: list[Condition] = []
    if document.this_component:
        conditions.append(ThisComponent())
    if document.category is not None:
        conditions.append(CategoryIs(document.category))
    if document.model is not None:
        conditions.append(ModelIs(document.model))
    if document.has_pin is not None:
        conditions.append(HasPin(document.has_pin))
    if document.connected is not None:
        conditions.append(Connected(document.connected))
    for exists in document.exists:
        conditions.append(Exists(exists.component, exists.on_net, exists.value))
    return tuple(conditions)


def build_action(document: ActionDocument, compiler: RuleCompiler) -> Action:
    firm = None if document.severity is None else document.severity == "firm"
    if document.escalate is not None:
        return Escalate(compiler.try_compile(document.escalate), document.escalate, document.on)
    assert document.require is not None
    rule = compiler.try_compile(document.require)
    if document.bind is not None:
        return Bind(document.bind, rule, document.require, firm)
    return Require(rule, document.require, document.on, firm)


def build_pattern(
    document: PatternDocument,
    *,
    source: str,
    part_scoped: bool,
    compiler: RuleCompiler,
) -> Pattern:
    return Pattern(
        name=document.name,
        scope=PatternScopeKind(document.scope),
        anchor=document.anchor,
        conditions=build_conditions(document.when),
        actions=tuple(build_action(action, compiler) for action in document.then),
        source=source,
        part_scoped=part_scoped,
    )


def check_pattern_anchors(pattern: Pattern) -> list[str]:
    """Return errors for actions that have nothing to anchor to."""
    errors: list[str] = []
    for index, action in enumerate(pattern.actions):
        if isinstance(action, (Require, Escalate)) and action.on is None and pattern.anchor is None:
            errors.append(
                f"patterns.{pattern.name}.then.{index}: component-scoped action needs 'on' or a pattern anchor"
            )
    return errors


def load_pattern_pack(
    document: Mapping[str, Any] | PatternPackDocument,
    compiler: RuleCompiler | None = None,
) -> PatternPack:
    """Validate a pattern pack document and build a :class:`PatternPack`.

    Raises:
        PatternValidationError: If the document fails validation.
    """
    compiler = compiler or get_default_compiler()
    if isinstance(document, PatternPackDocument):
        parsed = document
    else:
        try:
            parsed = PatternPackDocument.model_validate(dict(document))
        except ValidationError as exc:
            name = str(document.get("pack", "<unknown>"))
            raise PatternValidationError(name, format_validation_errors(exc)) from exc

    patterns = tuple(
        build_pattern(pattern, source=parsed.pack, part_scoped=False, compiler=compiler) for pattern in parsed.patterns
    )
    errors: list[str] = []
    seen: set[str] = set()
    for pattern in patterns:
        if pattern.name in seen:
            errors.append(f"patterns.{pattern.name}: duplicate pattern name")
        seen.add(pattern.name)
        errors.extend(check_pattern_anchors(pattern))
    if errors:
        raise PatternValidationError(parsed.pack, errors)
    return PatternPack(name=parsed.pack, patterns=patterns, description=parsed.description)
