"""Pattern engine: turns one instance's declared rules into a rule plan.

Layers are applied in a fixed order:

1. direct pin rules,
2. part-scoped patterns of the instance's model, in declaration order,
3. enabled global pattern packs, in caller order,
4. heuristic defaults from the evaluation config (unclaimed keys only).

Binds go through a :class:`BindLedger`; the first claim for a key wins and
later different claims become ``conflicting-bind`` diagnostics. Escalations
are collected and applied when the plan is materialized, so their effect does
not depend on the order patterns ran in.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..model.component import ComponentModel, DirectRule, InvalidRule, SymbolicRule
from ..model.patterns import Bind, Escalate, Pattern, PatternPack, PatternScopeKind, Require
from ..resolver import ResolvedPins
from ..rules.atoms import RuleAtom
from ..rules.compiler import RuleCompiler
from ..rules.syntax import CompileError
from ..schematic.graph import Instance
from ..schematic.queries import GraphQuery, GraphTopologyError
from .bindings import BindLedger, ClaimStatus
from .config import EvaluationConfig
from .diagnostics import Diagnostic, Severity, Verdict, failure_severity, make_diagnostic

logger = logging.getLogger(__name__)

HEURISTIC_ORIGIN = "heuristic"

# Sequence groups within one scope.
_PIN_RULES = 0
_REQUIRED = 1
_ESCALATIONS = 2
_ACTION_ERRORS = 3


@dataclass
class PatternScope:
    """What a condition may look at while evaluating one instance."""

    query: GraphQuery
    instance_index: int
    model: ComponentModel
    pins: ResolvedPins
    config: EvaluationConfig

    @property
    def instance(self) -> Instance:
        return self.query.instance(self.instance_index)

    def net_for(self, uid: str) -> int | None:
        """Net of ``uid`` on this instance; None when unconnected or split."""
        try:
            return self.query.net_of(self.instance_index, uid, self.pins)
        except GraphTopologyError as exc:
            logger.debug("Treating %s as unconnected: %s", uid, exc)
            return None


@dataclass(frozen=True)
class PlannedRule:
    """A concrete rule ready for evidence evaluation.

    Attributes:
        uid: Anchor PinUID.
        atom: Resolved atom (escalations already applied).
        scope_kind: Addressing unit of the resulting diagnostic.
        scope_label: PinUID or net name (empty for component scope).
        sequence: Declaration order within the scope.
        origin: ``pin``, a pattern's qualified name, or ``heuristic``.
    """

    uid: str
    atom: RuleAtom
    scope_kind: str
    scope_label: str
    sequence: tuple[int, ...]
    origin: str


@dataclass
class InstancePlan:
    instance_index: int
    ref: str
    rules: list[PlannedRule] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


@dataclass
class _Required:
    uid: str
    atom: RuleAtom
    scope_kind: str
    scope_label: str
    origin: str


@dataclass
class _Escalation:
    uid: str
    atom: RuleAtom
    text: str
    origin: str
    matched: bool = False


class PatternEngine:
    """Apply the pattern layers for one instance at a time.

    The engine holds no per-instance state, so a single engine can plan
    several instances concurrently.
    """

    def __init__(
        self,
        packs: Sequence[PatternPack],
        config: EvaluationConfig,
        compiler: RuleCompiler,
    ) -> None:
        self.packs = tuple(packs)
        self.config = config
        self.compiler = compiler

    def plan(self, scope: PatternScope) -> InstancePlan:
        """Resolve symbolic rules, apply pattern actions and list concrete rules."""
        run = _PlanRun(scope, self)
        run.apply_patterns(scope.model.patterns)
        for pack in self.packs:
            run.apply_patterns(pack.patterns)
        run.apply_heuristics()
        return run.materialize()


class _PlanRun:
    """Mutable working state of one :meth:`PatternEngine.plan` call."""

    def __init__(self, scope: PatternScope, engine: PatternEngine) -> None:
        self.scope = scope
        self.engine = engine
        self.instance = scope.instance
        self.ledger = BindLedger()
        self.required: list[_Required] = []
        self.escalations: list[_Escalation] = []
        self.diagnostics: list[Diagnostic] = []
        self._action_errors = 0

    # -- pattern layers ------------------------------------------------------

    def apply_patterns(self, patterns: Sequence[Pattern]) -> None:
        for pattern in patterns:
            if not self._applies(pattern):
                continue
            logger.debug("Pattern %s matched %s", pattern.qualified_name, self.instance.ref)
            for action in pattern.actions:
                if isinstance(action, Bind):
                    self._bind(pattern, action)
                elif isinstance(action, Require):
                    self._require(pattern, action)
                elif isinstance(action, Escalate):
                    self._escalate(pattern, action)

    def _applies(self, pattern: Pattern) -> bool:
        model = self.scope.model
        if pattern.part_scoped and pattern.source != model.component:
            return False
        if pattern.anchor is not None and model.pin(pattern.anchor) is None:
            # Global patterns only apply to components that have their anchor pin.
            return False
        return all(condition.holds(self.scope) for condition in pattern.conditions)

    def _bind(self, pattern: Pattern, action: Bind) -> None:
        if isinstance(action.rule, CompileError):
            self._invalid_action(pattern, action.text, action.rule)
            return
        declaring = self.scope.model.symbolic_keys().get(action.key)
        if not declaring:
            logger.debug(
                "Pattern %s binds %r which %s does not declare",
                pattern.qualified_name,
                action.key,
                self.scope.model.component,
            )
            return
        self._claim(action.key, action.resolved(), pattern.qualified_name)

    def _claim(self, key: str, atom: RuleAtom, origin: str) -> None:
        result = self.ledger.claim(key, atom, origin)
        if result.status is not ClaimStatus.CONFLICT:
            return
        assert result.rejected is not None
        winner, rejected = result.winner, result.rejected
        uid, position = self._symbolic_position(key)
        severity = Severity.ERROR if (winner.atom.firm or rejected.atom.firm) else Severity.WARNING
        conflicts_so_far = sum(1 for d in self.diagnostics if d.verdict is Verdict.CONFLICTING_BIND)
        self.diagnostics.append(
            make_diagnostic(
                instance_index=self.scope.instance_index,
                ref=self.instance.ref,
                scope_kind=PatternScopeKind.PIN.value,
                scope_label=uid,
                sequence=(_PIN_RULES, position, 1 + conflicts_so_far),
                rule_text=rejected.atom.render(),
                verdict=Verdict.CONFLICTING_BIND,
                severity=severity,
                summary=(
                    f"symbolic key {key!r} already bound to {winner.atom.render()} by {winner.origin}; "
                    f"rejected {rejected.atom.render()} from {rejected.origin}"
                ),
                pin=uid,
                origin=rejected.origin,
            )
        )

    def _symbolic_position(self, key: str) -> tuple[str, int]:
        uid = self.scope.model.symbolic_keys()[key][0]
        for position, source in enumerate(self.scope.model.pins[uid].rules):
            if isinstance(source, SymbolicRule) and source.key == key:
                return uid, position
        return uid, 0

    def _target(self, pattern: Pattern, on: str | None, text: str) -> str | None:
        uid = on or pattern.anchor
        if uid is not None and self.scope.model.pin(uid) is not None:
            return uid
        self._action_error(
            pattern,
            text,
            Verdict.INVALID_TARGET,
            Severity.WARNING,
            f"{uid} is not a pin of {self.scope.model.component}",
        )
        return None

    def _require(self, pattern: Pattern, action: Require) -> None:
        if isinstance(action.rule, CompileError):
            self._invalid_action(pattern, action.text, action.rule)
            return
        uid = self._target(pattern, action.on, action.text)
        if uid is None:
            return
        scope_kind = pattern.scope.value
        if pattern.scope is PatternScopeKind.COMPONENT:
            label = ""
        elif pattern.scope is PatternScopeKind.NET:
            net = self.scope.net_for(uid)
            label = self.scope.query.net_name(net) if net is not None else uid
        else:
            label = uid
        self.required.append(_Required(uid, action.resolved(), scope_kind, label, pattern.qualified_name))

    def _escalate(self, pattern: Pattern, action: Escalate) -> None:
        if isinstance(action.rule, CompileError):
            self._invalid_action(pattern, action.text, action.rule)
            return
        uid = self._target(pattern, action.on, action.text)
        if uid is None:
            return
        self.escalations.append(_Escalation(uid, action.rule, action.text, pattern.qualified_name))

    def _invalid_action(self, pattern: Pattern, text: str, error: CompileError) -> None:
        self._action_error(pattern, text, Verdict.INVALID_RULE, Severity.ERROR, str(error))

    def _action_error(self, pattern: Pattern, text: str, verdict: Verdict, severity: Severity, summary: str) -> None:
        self._action_errors += 1
        self.diagnostics.append(
            make_diagnostic(
                instance_index=self.scope.instance_index,
                ref=self.instance.ref,
                scope_kind=PatternScopeKind.COMPONENT.value,
                scope_label="",
                sequence=(_ACTION_ERRORS, self._action_errors),
                rule_text=text,
                verdict=verdict,
                severity=severity,
                summary=f"pattern {pattern.qualified_name}: {summary}",
                origin=pattern.qualified_name,
            )
        )

    def apply_heuristics(self) -> None:
        defaults = self.engine.config.heuristic_defaults
        for key in self.scope.model.symbolic_keys():
            if key not in defaults or self.ledger.is_claimed(key):
                continue
            compiled = self.engine.compiler.try_compile(defaults[key])
            if isinstance(compiled, CompileError):
                self._action_errors += 1
                self.diagnostics.append(
                    make_diagnostic(
                        instance_index=self.scope.instance_index,
                        ref=self.instance.ref,
                        scope_kind=PatternScopeKind.COMPONENT.value,
                        scope_label="",
                        sequence=(_ACTION_ERRORS, self._action_errors),
                        rule_text=defaults[key],
                        verdict=Verdict.INVALID_RULE,
                        severity=Severity.ERROR,
                        summary=f"heuristic default for {key!r}: {compiled}",
                        origin=HEURISTIC_ORIGIN,
                    )
                )
                continue
            self.ledger.claim(key, compiled, HEURISTIC_ORIGIN)

    # -- materialization -------------------------------------------------------

    def materialize(self) -> InstancePlan:
        plan = InstancePlan(self.scope.instance_index, self.instance.ref)
        plan.diagnostics.extend(self.diagnostics)
        model = self.scope.model

        for uid, pin in model.pins.items():
            for position, source in enumerate(pin.rules):
                sequence = (_PIN_RULES, position, 0)
                if isinstance(source, DirectRule):
                    self._plan_rule(plan, uid, source.atom, "pin", uid, sequence, "pin")
                elif isinstance(source, SymbolicRule):
                    claim = self.ledger.get(source.key)
                    if claim is None:
                        plan.diagnostics.append(self._unresolved_symbolic(uid, source.key, sequence))
                    else:
                        self._plan_rule(plan, uid, claim.atom, "pin", uid, sequence, claim.origin)
                elif isinstance(source, InvalidRule):
                    plan.diagnostics.append(self._invalid_rule(uid, source, sequence))

        for counter, required in enumerate(self.required):
            self._plan_rule(
                plan,
                required.uid,
                required.atom,
                required.scope_kind,
                required.scope_label,
                (_REQUIRED, counter),
                required.origin,
            )

        for counter, escalation in enumerate(self.escalations):
            if escalation.matched:
                continue
            plan.diagnostics.append(
                make_diagnostic(
                    instance_index=self.scope.instance_index,
                    ref=self.instance.ref,
                    scope_kind=PatternScopeKind.PIN.value,
                    scope_label=escalation.uid,
                    sequence=(_ESCALATIONS, counter),
                    rule_text=escalation.text,
                    verdict=Verdict.INVALID_TARGET,
                    severity=Severity.WARNING,
                    summary=f"escalation from {escalation.origin} matches no rule on {escalation.uid}",
                    pin=escalation.uid,
                    origin=escalation.origin,
                )
            )
        return plan

    def _plan_rule(
        self,
        plan: InstancePlan,
        uid: str,
        atom: RuleAtom,
        scope_kind: str,
        scope_label: str,
        sequence: tuple[int, ...],
        origin: str,
    ) -> None:
        atom = self._escalated(uid, atom)
        if not self.scope.pins.is_mapped(uid):
            plan.diagnostics.append(
                make_diagnostic(
                    instance_index=self.scope.instance_index,
                    ref=self.instance.ref,
                    scope_kind=scope_kind,
                    scope_label=scope_label,
                    sequence=sequence,
                    rule_text=atom.render(),
                    verdict=Verdict.UNRESOLVED_PACKAGE,
                    severity=failure_severity(atom.firm),
                    summary=f"{uid} has no physical pin in package {self.scope.pins.package}",
                    pin=uid,
                    origin=origin,
                )
            )
            return
        plan.rules.append(PlannedRule(uid, atom, scope_kind, scope_label, sequence, origin))

    def _escalated(self, uid: str, atom: RuleAtom) -> RuleAtom:
        escalate = False
        for escalation in self.escalations:
            if escalation.uid == uid and escalation.atom.body() == atom.body():
                escalation.matched = True
                escalate = True
        if escalate and not atom.firm:
            return atom.with_firmness(True)
        return atom

    def _unresolved_symbolic(self, uid: str, key: str, sequence: tuple[int, ...]) -> Diagnostic:
        return make_diagnostic(
            instance_index=self.scope.instance_index,
            ref=self.instance.ref,
            scope_kind=PatternScopeKind.PIN.value,
            scope_label=uid,
            sequence=sequence,
            rule_text=f"${key}",
            verdict=Verdict.UNRESOLVED_SYMBOLIC,
            severity=Severity(self.engine.config.unresolved_symbolic_severity),
            summary=f"symbolic requirement {key!r} declared on {uid} was never bound",
            pin=uid,
        )

    def _invalid_rule(self, uid: str, source: InvalidRule, sequence: tuple[int, ...]) -> Diagnostic:
        return make_diagnostic(
            instance_index=self.scope.instance_index,
            ref=self.instance.ref,
            scope_kind=PatternScopeKind.PIN.value,
            scope_label=uid,
            sequence=sequence,
            rule_text=source.text,
            verdict=Verdict.INVALID_RULE,
            severity=Severity.ERROR,
            summary=str(source.error),
            pin=uid,
        )
