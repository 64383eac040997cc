"""Rule-kind registry.

Each rule kind is one :class:`RuleKind` entry: the parameter signature used to
bind and type-check arguments, a builder producing the typed atom, and the
evidence evaluator used by the engine. Adding a kind means registering one
entry; nothing else branches on the kind name.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from ..units import Bound, Comparison, coerce_unit
from .atoms import CapRequirement, PullDirection, PullRequirement, Purpose, RuleAtom
from .syntax import CompileError, RawArg, RawValue, RuleCall

if TYPE_CHECKING:
    from ..engine.evidence import EvidenceContext, Finding

ParameterType = Literal["bound", "magnitude", "enum", "pin"]

Builder = Callable[[Mapping[str, Any], bool], RuleAtom]
EvidenceEvaluator = Callable[[Any, "EvidenceContext"], "Finding"]


@dataclass(frozen=True)
class Parameter:
    """One argument slot of a rule kind.

    Attributes:
        name: Canonical argument name.
        type: ``bound`` (comparator allowed), ``magnitude`` (no comparator),
            ``enum`` (bare identifier from ``choices``) or ``pin`` (PinUID).
        unit: Base unit magnitudes are coerced to.
        choices: Allowed identifiers for ``enum`` parameters.
        required: Whether the argument must be given.
        positional: Whether the argument may be given without a name.
        aliases: Alternative names accepted for the argument.
    """

    name: str
    type: ParameterType
    unit: str = ""
    choices: tuple[str, ...] = ()
    required: bool = True
    positional: bool = True
    aliases: tuple[str, ...] = ()
    comparisons: tuple[Comparison, ...] = tuple(Comparison)


@dataclass(frozen=True)
class RuleKind:
    name: str
    parameters: tuple[Parameter, ...]
    build: Builder
    evaluate: EvidenceEvaluator | None = None

    def compile(self, call: RuleCall) -> RuleAtom:
        """Bind and type-check ``call`` arguments, then build the atom.

        Raises:
            CompileError: On wrong argument count, names, types, units or
                enum values.
        """
        bound = self._bind(call)
        try:
            return self.build(bound, call.firm)
        except ValueError as exc:
            raise CompileError(str(exc), call.kind_offset, call.text) from exc

    def _bind(self, call: RuleCall) -> dict[str, Any]:
        by_name: dict[str, Parameter] = {}
        for param in self.parameters:
            by_name[param.name] = param
            for alias in param.aliases:
                by_name[alias] = param
        positional = [param for param in self.parameters if param.positional]

        values: dict[str, Any] = {}
        seen_named = False
        position = 0
        for arg in call.args:
            if arg.name is None:
                if seen_named:
                    raise CompileError("Positional argument follows a named argument", arg.offset, call.text)
                if position >= len(positional):
                    raise CompileError(
                        f"{self.name}() takes at most {len(positional)} positional argument(s)",
                        arg.offset,
                        call.text,
                    )
                param = positional[position]
                position += 1
            else:
                seen_named = True
                param = by_name.get(arg.name)
                if param is None:
                    raise CompileError(f"{self.name}() got an unknown argument {arg.name!r}", arg.offset, call.text)
            if param.name in values:
                raise CompileError(f"{self.name}() got multiple values for {param.name!r}", arg.offset, call.text)
            values[param.name] = _convert(param, arg, call)

        missing = [param.name for param in self.parameters if param.required and param.name not in values]
        if missing:
            raise CompileError(
                f"{self.name}() missing required argument(s): {', '.join(missing)}",
                call.kind_offset,
                call.text,
            )
        return values


def _convert(param: Parameter, arg: RawArg, call: RuleCall) -> Any:
    value: RawValue = arg.value
    if param.type == "enum":
        if value.type != "ident" or value.text not in param.choices:
            raise CompileError(
                f"{param.name} must be one of {', '.join(param.choices)}, got {value.text!r}",
                value.offset,
                call.text,
            )
        return value.text
    if param.type == "pin":
        if value.type != "pin":
            raise CompileError(
                f"{param.name} must be a pin identifier like 'power.vdd.main', got {value.text!r}",
                value.offset,
                call.text,
            )
        return value.text
    if value.type != "magnitude" or value.bound is None:
        raise CompileError(f"{param.name} must be a magnitude, got {value.text!r}", value.offset, call.text)
    bound = value.bound
    if bound.comparison not in param.comparisons:
        label = bound.comparison.value.replace("_", "-")
        article = "an" if label[0] in "aeiou" else "a"
        raise CompileError(
            f"{param.name} does not accept {article} {label} bound",
            value.offset,
            call.text,
        )
    try:
        target = coerce_unit(bound.target, param.unit) if param.unit else bound.target
    except ValueError as exc:
        raise CompileError(str(exc), value.offset, call.text) from exc
    if param.type == "magnitude":
        return target
    return Bound(target, bound.comparison)


@dataclass
class RuleRegistry:
    """Mapping from kind name to :class:`RuleKind`."""

    kinds: dict[str, RuleKind] = field(default_factory=dict)

    def register(self, kind: RuleKind) -> None:
        if kind.name in self.kinds:
            raise ValueError(f"Rule kind already registered: {kind.name!r}")
        self.kinds[kind.name] = kind

    def get(self, name: str) -> RuleKind | None:
        return self.kinds.get(name)

    def evaluator_for(self, atom: RuleAtom) -> EvidenceEvaluator | None:
        kind = self.kinds.get(atom.kind)
        return kind.evaluate if kind is not None else None

    def names(self) -> Iterable[str]:
        return sorted(self.kinds)

    def compile(self, call: RuleCall) -> RuleAtom:
        kind = self.kinds.get(call.kind)
        if kind is None:
            known = ", ".join(self.names())
            raise CompileError(f"Unknown rule kind {call.kind!r} (known: {known})", call.kind_offset, call.text)
        return kind.compile(call)


def _build_cap(args: Mapping[str, Any], firm: bool) -> CapRequirement:
    purpose = args.get("purpose")
    max_dist = args.get("max_dist")
    if max_dist is not None and max_dist.value <= 0:
        raise ValueError("max_dist must be positive")
    return CapRequirement(
        firm=firm,
        value=args["value"],
        purpose=Purpose(purpose) if purpose is not None else None,
        max_dist=max_dist,
    )


def _build_pull(args: Mapping[str, Any], firm: bool) -> PullRequirement:
    return PullRequirement(
        firm=firm,
        direction=PullDirection(args["direction"]),
        target=args["target"],
        resistance=args["value"],
    )


CAP_PARAMETERS = (
    Parameter("value", "bound", unit="F"),
    Parameter(
        "purpose",
        "enum",
        choices=tuple(purpose.value for purpose in Purpose),
        required=False,
        positional=False,
    ),
    Parameter(
        "max_dist",
        "magnitude",
        unit="m",
        required=False,
        positional=False,
        comparisons=(Comparison.NOMINAL, Comparison.AT_MOST),
    ),
)

PULL_PARAMETERS = (
    Parameter("direction", "enum", choices=tuple(direction.value for direction in PullDirection), aliases=("dir",)),
    Parameter("target", "pin", aliases=("to",)),
    Parameter("value", "bound", unit="Ω", aliases=("r", "resistance")),
)


def default_registry() -> RuleRegistry:
    """Build a registry holding the base ``cap`` and ``pull`` kinds."""
    from ..engine.evidence import evaluate_cap, evaluate_pull

    registry = RuleRegistry()
    registry.register(RuleKind("cap", CAP_PARAMETERS, _build_cap, evaluate_cap))
    registry.register(RuleKind("pull", PULL_PARAMETERS, _build_pull, evaluate_pull))
    return registry
