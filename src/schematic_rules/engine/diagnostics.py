"""Diagnostic records and their deterministic ordering.

Diagnostics are the only product of an evaluation pass. They are immutable,
and :func:`sort_diagnostics` orders them by instance declaration order, then
scope (PinUID or net name, lexicographic), then rule declaration order within
the scope, so equal inputs always yield byte-identical sequences.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Verdict(str, Enum):
    SATISFIED = "satisfied"
    VIOLATED = "violated"
    UNRESOLVED_SYMBOLIC = "unresolved-symbolic"
    CONFLICTING_BIND = "conflicting-bind"
    INVALID_TARGET = "invalid-target"
    INVALID_RULE = "invalid-rule"
    UNRESOLVED_PACKAGE = "unresolved-package"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


def failure_severity(firm: bool) -> Severity:
    """Severity of a failed rule: error iff firm, otherwise warning."""
    return Severity.ERROR if firm else Severity.WARNING


@dataclass(frozen=True)
class Diagnostic:
    """One explained verdict.

    Attributes:
        rule_text: Canonical rule text (or the raw text of a rule that did
            not compile, or the symbolic key as ``$key``).
        scope_kind: ``pin``, ``net`` or ``component``.
        scope_id: Instance ref, plus ``/PinUID`` or ``/net`` when narrower.
        verdict: Outcome.
        severity: error, warning or info.
        evidence_summary: Human-readable explanation of the evidence.
        instance: Instance ref.
        pin: Anchor PinUID, when there is one.
        net: Anchor net name, when known.
        origin: Where the rule came from (``pin``, a pattern, ``heuristic``).
    """

    rule_text: str
    scope_kind: str
    scope_id: str
    verdict: Verdict
    severity: Severity
    evidence_summary: str
    instance: str
    pin: str | None = None
    net: str | None = None
    origin: str = "pin"
    sort_key: tuple[Any, ...] = field(default=(), compare=False, repr=False)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_text": self.rule_text,
            "scope_kind": self.scope_kind,
            "scope_id": self.scope_id,
            "verdict": self.verdict.value,
            "severity": self.severity.value,
            "evidence_summary": self.evidence_summary,
            "instance": self.instance,
            "pin": self.pin,
            "net": self.net,
            "origin": self.origin,
        }

    def format(self) -> str:
        return f"{self.severity.value.upper():7} {self.scope_id}: {self.rule_text} -> {self.verdict.value}: {self.evidence_summary}"


def make_diagnostic(
    *,
    instance_index: int,
    ref: str,
    scope_kind: str,
    scope_label: str,
    sequence: tuple[int, ...],
    rule_text: str,
    verdict: Verdict,
    severity: Severity,
    summary: str,
    pin: str | None = None,
    net: str | None = None,
    origin: str = "pin",
) -> Diagnostic:
    """Build a diagnostic with its ordering key.

    ``scope_label`` is the PinUID or net name the diagnostic is addressed to,
    or empty for component scope.
    """
    scope_id = f"{ref}/{scope_label}" if scope_label else ref
    return Diagnostic(
        rule_text=rule_text,
        scope_kind=scope_kind,
        scope_id=scope_id,
        verdict=verdict,
        severity=severity,
        evidence_summary=summary,
        instance=ref,
        pin=pin,
        net=net,
        origin=origin,
        sort_key=(instance_index, scope_label, sequence),
    )


def sort_diagnostics(diagnostics: Iterable[Diagnostic]) -> list[Diagnostic]:
    return sorted(diagnostics, key=lambda d: d.sort_key)


def count_by_severity(diagnostics: Iterable[Diagnostic]) -> dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for diagnostic in diagnostics:
        counts[diagnostic.severity.value] += 1
    return counts
