"""schematic-rules: pin rule and pattern checking for electronic schematics.

Component authors describe a part's pins by stable semantic identity
(``domain.function.qualifier``), independent of package, and attach
requirements in a compact rule language such as ``cap(100n)!`` or
``pull(up, power.vddio.main, <=10k)``. Patterns add conditional,
topology-dependent requirements on top.

Public API
----------
- :func:`compile_rule` - Compile one line of rule text to a typed atom
- :func:`load_component_model` - Validate a component definition
- :func:`load_pattern_pack` - Validate a global pattern pack
- :func:`load_schematic` - Build the read-only schematic graph
- :func:`evaluate` - Run one evaluation pass and collect diagnostics

Example
-------
>>> from pathlib import Path
>>> from schematic_rules import load_component_file, load_schematic_file, evaluate
>>> model = load_component_file(Path("tps62130.yaml"))
>>> graph = load_schematic_file(Path("board.yaml"), [model])
>>> report = evaluate([model], [], graph)
>>> [d.verdict for d in report]
"""

from __future__ import annotations

from schematic_rules.api import (
    check_files,
    compile_rule,
    evaluate,
    load_component_file,
    load_component_model,
    load_pattern_pack,
    load_pattern_pack_file,
    load_schematic,
    load_schematic_file,
    render_rule,
)
from schematic_rules.engine import (
    CancellationToken,
    Diagnostic,
    EvaluationConfig,
    EvaluationReport,
    Severity,
    Verdict,
)
from schematic_rules.model import ComponentModel, ComponentValidationError, PatternPack, PatternValidationError
from schematic_rules.resolver import PackageResolutionError, ResolvedPins, resolve
from schematic_rules.rules import CompileError, RuleAtom
from schematic_rules.schematic import SchematicGraph, SchematicValidationError

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "compile_rule",
    "render_rule",
    "load_component_model",
    "load_component_file",
    "load_pattern_pack",
    "load_pattern_pack_file",
    "load_schematic",
    "load_schematic_file",
    "resolve",
    "evaluate",
    "check_files",
    # Core types
    "CancellationToken",
    "ComponentModel",
    "Diagnostic",
    "EvaluationConfig",
    "EvaluationReport",
    "PatternPack",
    "ResolvedPins",
    "RuleAtom",
    "SchematicGraph",
    "Severity",
    "Verdict",
    # Errors
    "CompileError",
    "ComponentValidationError",
    "PackageResolutionError",
    "PatternValidationError",
    "SchematicValidationError",
]
