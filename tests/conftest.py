# SPDX-License-Identifier: MIT
"""Pytest configuration and shared fixtures for the test suite.

This module provides:
- Paths to the YAML fixture documents
- Fresh, deep-copied component / schematic / pack documents per test
- Builders for loaded models, graphs and a private rule compiler
"""
from __future__ import annotations

import copy
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from schematic_rules.model import ComponentModel, load_component_model
from schematic_rules.rules import RuleCompiler
from schematic_rules.schematic import SchematicGraph, build_schematic

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TESTS_DIR = Path(__file__).resolve().parent
FIXTURES_DIR = TESTS_DIR / "fixtures"
COMPONENT_PATH = FIXTURES_DIR / "tps62130.yaml"
BOARD_PATHS = {
    "lga8": FIXTURES_DIR / "board_lga8.yaml",
    "bga64": FIXTURES_DIR / "board_bga64.yaml",
}
PACK_PATH = FIXTURES_DIR / "power_pack.yaml"
CONFIG_PATH = FIXTURES_DIR / "config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


_COMPONENT = _read_yaml(COMPONENT_PATH)
_BOARDS = {package: _read_yaml(path) for package, path in BOARD_PATHS.items()}
_PACK = _read_yaml(PACK_PATH)


# ---------------------------------------------------------------------------
# Environment Setup
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest environment for determinism."""
    for key, value in {"LC_ALL": "C", "LANG": "C", "TZ": "UTC"}.items():
        os.environ.setdefault(key, value)


# ---------------------------------------------------------------------------
# Fixtures: Documents
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def component_doc() -> dict[str, Any]:
    """Fresh copy of the TPS62130 component definition."""
    return copy.deepcopy(_COMPONENT)


@pytest.fixture
def board_doc() -> Callable[[str], dict[str, Any]]:
    """Factory returning a fresh copy of the demo board for a package."""

    def _board(package: str = "lga8") -> dict[str, Any]:
        return copy.deepcopy(_BOARDS[package])

    return _board


@pytest.fixture
def pack_doc() -> dict[str, Any]:
    return copy.deepcopy(_PACK)


# ---------------------------------------------------------------------------
# Fixtures: Loaded objects
# ---------------------------------------------------------------------------


@pytest.fixture
def compiler() -> RuleCompiler:
    """A private compiler so memo state never leaks between tests."""
    return RuleCompiler()


@pytest.fixture
def regulator(component_doc: dict[str, Any], compiler: RuleCompiler) -> ComponentModel:
    return load_component_model(component_doc, compiler=compiler)


@pytest.fixture
def make_graph() -> Callable[..., SchematicGraph]:
    """Build a graph from a schematic mapping, taking categories from models."""

    def _make(document: dict[str, Any], *models: ComponentModel) -> SchematicGraph:
        return build_schematic(document, {model.component: model.category for model in models})

    return _make

