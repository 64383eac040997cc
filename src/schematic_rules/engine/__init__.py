"""Pattern engine, evidence evaluation and diagnostics."""

from .bindings import BindLedger, Claim, ClaimResult, ClaimStatus
from .config import EvaluationConfig, EvaluationConfigError
from .diagnostics import Diagnostic, Severity, Verdict, failure_severity, sort_diagnostics
from .evaluator import CancellationToken, EvaluationCancelled, EvaluationReport, evaluate
from .evidence import EvidenceContext, Finding, evaluate_cap, evaluate_pull
from .patterns import InstancePlan, PatternEngine, PatternScope, PlannedRule

__all__ = [
    "BindLedger",
    "CancellationToken",
    "Claim",
    "ClaimResult",
    "ClaimStatus",
    "Diagnostic",
    "EvaluationCancelled",
    "EvaluationConfig",
    "EvaluationConfigError",
    "EvaluationReport",
    "EvidenceContext",
    "Finding",
    "InstancePlan",
    "PatternEngine",
    "PatternScope",
    "PlannedRule",
    "Severity",
    "Verdict",
    "evaluate",
    "evaluate_cap",
    "evaluate_pull",
    "failure_severity",
    "sort_diagnostics",
]
