"""Public API helpers: document loading and the evaluation entry point."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from .engine.config import EvaluationConfig
from .engine.evaluator import CancellationToken, EvaluationReport, evaluate
from .model.component import ComponentModel, ComponentValidationError, load_component_model
from .model.documents import (
    ComponentDocument,
    PatternPackDocument,
    SchematicDocument,
    load_document,
    validate_against_json_schema,
)
from .model.patterns import PatternPack, PatternValidationError, load_pattern_pack
from .rules.compiler import RuleCompiler, compile_rule, render_rule
from .schematic.graph import SchematicGraph, SchematicValidationError, build_schematic

logger = logging.getLogger(__name__)


def load_component_file(path: Path | str, *, strict: bool = False, compiler: RuleCompiler | None = None) -> ComponentModel:
    """Load a component definition from a YAML/JSON file.

    With ``strict=True`` the raw document is first checked against the JSON
    schema, so numbers where strings are expected are rejected instead of
    coerced.

    Raises:
        ComponentValidationError: If the document fails validation.
    """
    data = load_document(path)
    if strict:
        errors = validate_against_json_schema(data, ComponentDocument)
        if errors:
            raise ComponentValidationError(str(data.get("component", "<unknown>")), errors)
    model = load_component_model(data, compiler=compiler)
    logger.debug("Loaded component %s from %s", model.component, path)
    return model


def load_pattern_pack_file(path: Path | str, *, strict: bool = False, compiler: RuleCompiler | None = None) -> PatternPack:
    """Load a global pattern pack from a YAML/JSON file.

    Raises:
        PatternValidationError: If the document fails validation.
    """
    data = load_document(path)
    if strict:
        errors = validate_against_json_schema(data, PatternPackDocument)
        if errors:
            raise PatternValidationError(str(data.get("pack", "<unknown>")), errors)
    return load_pattern_pack(data, compiler=compiler)


def load_schematic(
    document: Mapping[str, Any] | SchematicDocument,
    models: Iterable[ComponentModel] = (),
) -> SchematicGraph:
    """Build a schematic graph, taking instance categories from ``models``."""
    categories = {model.component: model.category for model in models}
    return build_schematic(document, categories)


def load_schematic_file(
    path: Path | str,
    models: Iterable[ComponentModel] = (),
    *,
    strict: bool = False,
) -> SchematicGraph:
    """Load a schematic from a YAML/JSON file.

    Raises:
        SchematicValidationError: If the document fails validation.
    """
    data = load_document(path)
    if strict:
        errors = validate_against_json_schema(data, SchematicDocument)
        if errors:
            raise SchematicValidationError(errors)
    return load_schematic(data, models)


def check_files(
    component_paths: Sequence[Path | str],
    schematic_path: Path | str,
    pack_paths: Sequence[Path | str] = (),
    config: EvaluationConfig | None = None,
    *,
    strict: bool = False,
    cancel_token: CancellationToken | None = None,
) -> EvaluationReport:
    """Load every input document and run one evaluation pass.

    Packs are enabled in the order given, highest priority first.
    """
    models = [load_component_file(path, strict=strict) for path in component_paths]
    packs = [load_pattern_pack_file(path, strict=strict) for path in pack_paths]
    schematic = load_schematic_file(schematic_path, models, strict=strict)
    return evaluate(models, packs, schematic, config, cancel_token=cancel_token)


__all__ = [
    "check_files",
    "compile_rule",
    "evaluate",
    "load_component_file",
    "load_component_model",
    "load_pattern_pack",
    "load_pattern_pack_file",
    "load_schematic",
    "load_schematic_file",
    "render_rule",
]
