"""Rule language: atoms, parser, kind registry and memoized compiler."""

from .atoms import CapRequirement, PullDirection, PullRequirement, Purpose, RuleAtom
from .compiler import RuleCompiler, compile_rule, get_default_compiler, render_rule
from .registry import Parameter, RuleKind, RuleRegistry, default_registry
from .syntax import CompileError, RuleCall, parse_rule

__all__ = [
    "CapRequirement",
    "CompileError",
    "Parameter",
    "PullDirection",
    "PullRequirement",
    "Purpose",
    "RuleAtom",
    "RuleCall",
    "RuleCompiler",
    "RuleKind",
    "RuleRegistry",
    "compile_rule",
    "default_registry",
    "get_default_compiler",
    "parse_rule",
    "render_rule",
]
