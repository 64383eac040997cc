"""Evaluation pass orchestration.

:func:`evaluate` plans and evaluates every modelled instance of a schematic,
optionally across worker threads, and returns an :class:`EvaluationReport`
with diagnostics in emission order. Inputs are treated as read-only for the
whole pass. Only cancellation (explicit or by timeout) stops a pass early; a
cancelled pass keeps the diagnostics of instances that finished and lists the
rest as skipped.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..model.component import ComponentModel, DirectRule, InvalidRule, SymbolicRule
from ..model.patterns import PatternPack, PatternScopeKind
from ..resolver import PackageResolutionError, ResolvedPins, resolve
from ..rules.compiler import RuleCompiler, get_default_compiler
from ..schematic.graph import SchematicGraph
from ..schematic.queries import GraphQuery
from ..serialization import canonical_digest
from .config import EvaluationConfig
from .diagnostics import (
    Diagnostic,
    Severity,
    Verdict,
    count_by_severity,
    failure_severity,
    make_diagnostic,
    sort_diagnostics,
)
from .evidence import EvidenceContext
from .patterns import PatternEngine, PatternScope, PlannedRule

logger = logging.getLogger(__name__)


class EvaluationCancelled(RuntimeError):
    """Raised inside a worker when the pass has been cancelled."""


class CancellationToken:
    """Cooperative cancellation flag with an optional monotonic deadline."""

    def __init__(self, deadline: float | None = None, *, _event: threading.Event | None = None) -> None:
        self._event = _event or threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, timeout_s: float) -> CancellationToken:
        return cls(time.monotonic() + timeout_s)

    def limited(self, timeout_s: float) -> CancellationToken:
        """Token sharing this token's flag with a deadline no later than ``timeout_s`` from now."""
        deadline = time.monotonic() + timeout_s
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return CancellationToken(deadline, _event=self._event)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise EvaluationCancelled("evaluation pass cancelled")


@dataclass(frozen=True)
class EvaluationReport:
    """Ordered diagnostics of one pass.

    Attributes:
        diagnostics: Diagnostics in emission order.
        complete: False when the pass was cancelled before every instance
            finished.
        skipped_instances: Refs of instances whose diagnostics were dropped
            by cancellation, in declaration order.
    """

    diagnostics: tuple[Diagnostic, ...]
    complete: bool = True
    skipped_instances: tuple[str, ...] = ()

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.diagnostics)

    def __len__(self) -> int:
        return len(self.diagnostics)

    def __getitem__(self, index: int) -> Diagnostic:
        return self.diagnostics[index]

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.diagnostics)

    def for_instance(self, ref: str) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.instance == ref]

    def to_payload(self) -> dict[str, Any]:
        return {
            "complete": self.complete,
            "skipped_instances": list(self.skipped_instances),
            "summary": count_by_severity(self.diagnostics),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }

    def digest(self) -> str:
        return canonical_digest(self.to_payload())


def evaluate(
    models: Mapping[str, ComponentModel] | Iterable[ComponentModel],
    patterns_enabled: Sequence[PatternPack],
    schematic: SchematicGraph,
    config: EvaluationConfig | None = None,
    *,
    cancel_token: CancellationToken | None = None,
    compiler: RuleCompiler | None = None,
) -> EvaluationReport:
    """Evaluate every modelled instance of ``schematic``.

    Args:
        models: Component models, keyed by component id or as a sequence.
        patterns_enabled: Global pattern packs, highest priority first.
        schematic: Read-only schematic graph.
        config: Tolerances and policies; defaults to :class:`EvaluationConfig`.
        cancel_token: Token the caller may cancel from another thread.
        compiler: Compiler used for heuristic defaults and evaluator lookup.

    Returns:
        An :class:`EvaluationReport` with diagnostics in deterministic order.

    Raises:
        ValueError: If two models share a component id.
    """
    config = config or EvaluationConfig()
    compiler = compiler or get_default_compiler()
    model_map = _model_map(models)
    token = cancel_token or CancellationToken()
    if config.timeout_s is not None:
        token = token.limited(config.timeout_s)

    pass_ = _Pass(
        query=GraphQuery(schematic),
        models=model_map,
        engine=PatternEngine(patterns_enabled, config, compiler),
        config=config,
        compiler=compiler,
        token=token,
    )
    indices = list(range(len(schematic.instances)))
    finished: dict[int, list[Diagnostic]] = {}
    skipped: set[int] = set()

    if config.max_workers == 1:
        for index in indices:
            try:
                finished[index] = pass_.evaluate_instance(index)
            except EvaluationCancelled:
                skipped.add(index)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            future_map = {executor.submit(pass_.evaluate_instance, index): index for index in indices}
            for future in concurrent.futures.as_completed(future_map):
                index = future_map[future]
                try:
                    finished[index] = future.result()
                except EvaluationCancelled:
                    skipped.add(index)

    diagnostics = sort_diagnostics(d for index in sorted(finished) for d in finished[index])
    skipped_refs = tuple(schematic.instances[index].ref for index in sorted(skipped))
    report = EvaluationReport(tuple(diagnostics), complete=not skipped, skipped_instances=skipped_refs)
    if skipped:
        logger.warning(
            "Evaluation of %s cancelled: %d of %d instance(s) skipped",
            schematic.name or "<schematic>",
            len(skipped),
            len(indices),
        )
    counts = count_by_severity(diagnostics)
    logger.info(
        "Evaluated %d instance(s): %d error(s), %d warning(s), %d info",
        len(finished),
        counts["error"],
        counts["warning"],
        counts["info"],
    )
    return report


def _model_map(models: Mapping[str, ComponentModel] | Iterable[ComponentModel]) -> dict[str, ComponentModel]:
    if isinstance(models, Mapping):
        return dict(models)
    result: dict[str, ComponentModel] = {}
    for model in models:
        if model.component in result:
            raise ValueError(f"Duplicate component model: {model.component!r}")
        result[model.component] = model
    return result


@dataclass
class _Pass:
    query: GraphQuery
    models: Mapping[str, ComponentModel]
    engine: PatternEngine
    config: EvaluationConfig
    compiler: RuleCompiler
    token: CancellationToken

    def evaluate_instance(self, index: int) -> list[Diagnostic]:
        self.token.raise_if_cancelled()
        instance = self.query.instance(index)
        if instance.model is None:
            return []
        model = self.models.get(instance.model)
        if model is None:
            return [
                make_diagnostic(
                    instance_index=index,
                    ref=instance.ref,
                    scope_kind=PatternScopeKind.COMPONENT.value,
                    scope_label="",
                    sequence=(0,),
                    rule_text="",
                    verdict=Verdict.UNRESOLVED_PACKAGE,
                    severity=Severity.ERROR,
                    summary=f"no component model {instance.model!r} is loaded",
                )
            ]

        package = instance.package
        if package is None and len(model.packages) == 1:
            package = next(iter(model.packages))
        try:
            pins = resolve(model, package)
        except PackageResolutionError as exc:
            return self._package_failure(index, model, exc)

        plan = self.engine.plan(PatternScope(self.query, index, model, pins, self.config))
        diagnostics = list(plan.diagnostics)
        for rule in plan.rules:
            self.token.raise_if_cancelled()
            diagnostics.append(self._evaluate_rule(index, model, pins, rule))
        logger.debug("Instance %s produced %d diagnostic(s)", instance.ref, len(diagnostics))
        return diagnostics

    def _evaluate_rule(self, index: int, model: ComponentModel, pins: ResolvedPins, rule: PlannedRule) -> Diagnostic:
        ref = self.query.instance(index).ref
        evaluator = self.compiler.registry.evaluator_for(rule.atom)
        common = dict(
            instance_index=index,
            ref=ref,
            scope_kind=rule.scope_kind,
            scope_label=rule.scope_label,
            sequence=rule.sequence,
            rule_text=rule.atom.render(),
            pin=rule.uid,
            origin=rule.origin,
        )
        if evaluator is None:
            return make_diagnostic(
                verdict=Verdict.INVALID_RULE,
                severity=Severity.ERROR,
                summary=f"no evidence evaluator registered for rule kind {rule.atom.kind!r}",
                **common,
            )
        context = EvidenceContext(self.query, index, model, pins, rule.uid, self.config)
        try:
            finding = evaluator(rule.atom, context)
        except EvaluationCancelled:
            raise
        except Exception as exc:
            logger.exception("Evidence evaluator for %s failed on %s", rule.atom.render(), ref)
            return make_diagnostic(
                verdict=Verdict.VIOLATED,
                severity=failure_severity(rule.atom.firm),
                summary=f"evidence evaluator for rule kind {rule.atom.kind!r} failed: {exc}",
                **common,
            )
        if finding.verdict is Verdict.SATISFIED:
            severity = Severity.INFO
        else:
            severity = failure_severity(rule.atom.firm)
        return make_diagnostic(
            verdict=finding.verdict,
            severity=severity,
            summary=finding.summary,
            net=finding.net,
            **common,
        )

    def _package_failure(self, index: int, model: ComponentModel, exc: PackageResolutionError) -> list[Diagnostic]:
        ref = self.query.instance(index).ref
        diagnostics: list[Diagnostic] = []
        for uid, pin in model.pins.items():
            for position, source in enumerate(pin.rules):
                if isinstance(source, InvalidRule):
                    verdict, severity, text = Verdict.INVALID_RULE, Severity.ERROR, source.text
                    summary = str(source.error)
                elif isinstance(source, DirectRule):
                    verdict, severity, text = Verdict.UNRESOLVED_PACKAGE, failure_severity(source.atom.firm), source.atom.render()
                    summary = str(exc)
                elif isinstance(source, SymbolicRule):
                    verdict, severity, text = Verdict.UNRESOLVED_PACKAGE, Severity.WARNING, f"${source.key}"
                    summary = str(exc)
                else:
                    continue
                diagnostics.append(
                    make_diagnostic(
                        instance_index=index,
                        ref=ref,
                        scope_kind=PatternScopeKind.PIN.value,
                        scope_label=uid,
                        sequence=(0, position, 0),
                        rule_text=text,
                        verdict=verdict,
                        severity=severity,
                        summary=summary,
                        pin=uid,
                    )
                )
        if not diagnostics:
            diagnostics.append(
                make_diagnostic(
                    instance_index=index,
                    ref=ref,
                    scope_kind=PatternScopeKind.COMPONENT.value,
                    scope_label="",
                    sequence=(0,),
                    rule_text="",
                    verdict=Verdict.UNRESOLVED_PACKAGE,
                    severity=Severity.WARNING,
                    summary=str(exc),
                )
            )
        logger.warning("Skipping rules of %s: %s", ref, exc)
        return diagnostics
