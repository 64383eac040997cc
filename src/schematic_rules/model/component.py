"""Normalized, immutable component models.

:func:`load_component_model` turns a component definition document into a
:class:`ComponentModel`. Structural problems (unknown roles, packages naming
unknown pins, dangling references) fail the load with
:class:`ComponentValidationError`. Rule text that does not compile does *not*
fail the load: the pin keeps an :class:`InvalidRule` source so sibling rules
and other components are unaffected.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from pydantic import ValidationError

from ..rules.atoms import RuleAtom
from ..rules.compiler import RuleCompiler, get_default_compiler
from ..rules.syntax import CompileError
from ..units import Magnitude, coerce_unit
from .documents import ComponentDocument, PinDocument, SymbolicRuleDocument, format_validation_errors
from .patterns import Bind, Escalate, Pattern, Require, build_pattern, check_pattern_anchors

logger = logging.getLogger(__name__)


class PinRole(str, Enum):
    POWER = "power"
    GROUND = "ground"
    IO = "io"
    ANALOG = "analog"
    CLOCK = "clock"
    CONFIG = "config"
    PROTECTION = "protection"


class PinDirection(str, Enum):
    INPUT = "input"
    OUTPUT = "output"
    BIDIRECTIONAL = "bidirectional"
    PASSIVE = "passive"


class ComponentValidationError(ValueError):
    """Raised when a component definition fails validation.

    Attributes:
        component: Component identifier (or "<unknown>").
        errors: List of validation error messages.
    """

    def __init__(self, component: str, errors: list[str]) -> None:
        self.component = component
        self.errors = errors
        super().__init__(f"Component {component!r} failed validation with {len(errors)} error(s): {errors}")


@dataclass(frozen=True)
class VoltageEnvelope:
    nominal: Magnitude | None = None
    abs_min: Magnitude | None = None
    abs_max: Magnitude | None = None
    relative_to: str | None = None


@dataclass(frozen=True)
class DirectRule:
    """Immediately enforceable rule."""

    atom: RuleAtom
    text: str


@dataclass(frozen=True)
class SymbolicRule:
    """Named placeholder, enforceable only once a pattern binds it."""

    key: str


@dataclass(frozen=True)
class InvalidRule:
    """Rule text that failed to compile."""

    text: str
    error: CompileError


RuleSource = Union[DirectRule, SymbolicRule, InvalidRule]


@dataclass(frozen=True)
class PinSpec:
    uid: str
    role: PinRole
    direction: PinDirection
    names: tuple[str, ...] = ()
    voltage: VoltageEnvelope | None = None
    rules: tuple[RuleSource, ...] = ()
    tags: tuple[str, ...] = ()
    description: str = ""

    @property
    def has_rules(self) -> bool:
        return bool(self.rules)


@dataclass(frozen=True, eq=False)
class ComponentModel:
    """A component definition ready for evaluation.

    Attributes:
        component: Component identifier.
        category: Component category (e.g. ``regulator``, ``mcu``).
        packages: Package name -> PinUID -> ordered physical pin ids.
        pins: PinUID -> :class:`PinSpec`, in document order.
        patterns: Part-scoped patterns, in declaration order.
    """

    component: str
    category: str
    packages: Mapping[str, Mapping[str, tuple[str, ...]]]
    pins: Mapping[str, PinSpec]
    patterns: tuple[Pattern, ...] = ()
    _symbolic: Mapping[str, tuple[str, ...]] = field(default_factory=dict, repr=False, compare=False)

    def pin(self, uid: str) -> PinSpec | None:
        return self.pins.get(uid)

    def pin_order(self) -> tuple[str, ...]:
        return tuple(self.pins)

    def symbolic_keys(self) -> Mapping[str, tuple[str, ...]]:
        """Symbolic key -> PinUIDs declaring it, in document order."""
        return self._symbolic

    def compile_errors(self) -> list[tuple[str, InvalidRule]]:
        return [(pin.uid, source) for pin in self.pins.values() for source in pin.rules if isinstance(source, InvalidRule)]


def load_component_model(
    document: Mapping[str, Any] | ComponentDocument,
    compiler: RuleCompiler | None = None,
) -> ComponentModel:
    """Validate a component definition and build a :class:`ComponentModel`.

    Args:
        document: Component definition mapping (or an already parsed document).
        compiler: Rule compiler; defaults to the session-wide compiler so rule
            text shared across components is compiled once.

    Raises:
        ComponentValidationError: If the document fails validation.
    """
    compiler = compiler or get_default_compiler()
    if isinstance(document, ComponentDocument):
        parsed = document
    else:
        try:
            parsed = ComponentDocument.model_validate(dict(document))
        except ValidationError as exc:
            name = str(document.get("component", "<unknown>"))
            raise ComponentValidationError(name, format_validation_errors(exc)) from exc

    errors: list[str] = []
    pins: dict[str, PinSpec] = {}
    symbolic: dict[str, list[str]] = {}
    for uid, pin_doc in parsed.pins.items():
        pin, pin_errors = _build_pin(uid, pin_doc, compiler)
        errors.extend(pin_errors)
        pins[uid] = pin
        for source in pin.rules:
            if isinstance(source, SymbolicRule):
                symbolic.setdefault(source.key, []).append(uid)

    for uid, pin in pins.items():
        if pin.voltage is not None and pin.voltage.relative_to is not None and pin.voltage.relative_to not in pins:
            errors.append(f"pins.{uid}.voltage.relative_to: unknown PinUID {pin.voltage.relative_to!r}")

    packages: dict[str, Mapping[str, tuple[str, ...]]] = {}
    for package_name, mapping in parsed.packages.items():
        seen_physical: dict[str, str] = {}
        for uid, physical_ids in mapping.items():
            if uid not in pins:
                errors.append(f"packages.{package_name}.{uid}: PinUID is not declared under pins")
            if not physical_ids:
                errors.append(f"packages.{package_name}.{uid}: needs at least one physical pin")
            for physical in physical_ids:
                owner = seen_physical.setdefault(physical, uid)
                if owner != uid:
                    errors.append(
                        f"packages.{package_name}.{uid}: physical pin {physical!r} already assigned to {owner!r}"
                    )
        packages[package_name] = MappingProxyType({uid: tuple(ids) for uid, ids in mapping.items()})

    patterns = tuple(
        build_pattern(pattern, source=parsed.component, part_scoped=True, compiler=compiler)
        for pattern in parsed.patterns
    )
    errors.extend(_check_part_patterns(patterns, pins, symbolic))

    if errors:
        raise ComponentValidationError(parsed.component, errors)

    model = ComponentModel(
        component=parsed.component,
        category=parsed.category,
        packages=MappingProxyType(packages),
        pins=MappingProxyType(pins),
        patterns=patterns,
        _symbolic=MappingProxyType({key: tuple(uids) for key, uids in symbolic.items()}),
    )
    invalid = model.compile_errors()
    if invalid:
        logger.warning("Component %s has %d rule(s) that failed to compile", model.component, len(invalid))
    return model


def _build_pin(uid: str, document: PinDocument, compiler: RuleCompiler) -> tuple[PinSpec, list[str]]:
    errors: list[str] = []
    rules: list[RuleSource] = []
    for entry in document.rules:
        if isinstance(entry, SymbolicRuleDocument):
            rules.append(SymbolicRule(entry.symbolic))
            continue
        compiled = compiler.try_compile(entry)
        if isinstance(compiled, CompileError):
            rules.append(InvalidRule(entry, compiled))
        else:
            rules.append(DirectRule(compiled, entry))

    voltage = None
    if document.voltage is not None:
        try:
            voltage = VoltageEnvelope(
                nominal=_volts(document.voltage.nominal),
                abs_min=_volts(document.voltage.abs_min),
                abs_max=_volts(document.voltage.abs_max),
                relative_to=document.voltage.relative_to,
            )
        except ValueError as exc:
            errors.append(f"pins.{uid}.voltage: {exc}")

    pin = PinSpec(
        uid=uid,
        role=PinRole(document.role),
        direction=PinDirection(document.direction),
        names=tuple(document.names),
        voltage=voltage,
        rules=tuple(rules),
        tags=tuple(document.tags),
        description=document.description,
    )
    return pin, errors


def _volts(value: Magnitude | None) -> Magnitude | None:
    return None if value is None else coerce_unit(value, "V")


def _check_part_patterns(
    patterns: tuple[Pattern, ...],
    pins: Mapping[str, PinSpec],
    symbolic: Mapping[str, list[str]],
) -> list[str]:
    errors: list[str] = []
    seen: set[str] = set()
    for pattern in patterns:
        prefix = f"patterns.{pattern.name}"
        if pattern.name in seen:
            errors.append(f"{prefix}: duplicate pattern name")
        seen.add(pattern.name)
        if pattern.anchor is not None and pattern.anchor not in pins:
            errors.append(f"{prefix}.anchor: unknown PinUID {pattern.anchor!r}")
        for condition in pattern.conditions:
            for attr in ("on_net", "pin_uid"):
                ref = getattr(condition, attr, None)
                if ref is not None and ref not in pins:
                    errors.append(f"{prefix}.when: unknown PinUID {ref!r}")
        for index, action in enumerate(pattern.actions):
            if isinstance(action, Bind) and action.key not in symbolic:
                errors.append(f"{prefix}.then.{index}: binds undeclared symbolic key {action.key!r}")
            if isinstance(action, (Require, Escalate)) and action.on is not None and action.on not in pins:
                errors.append(f"{prefix}.then.{index}.on: unknown PinUID {action.on!r}")
        errors.extend(check_pattern_anchors(pattern))
    return errors
