"""Evaluation parameters.

An :class:`EvaluationConfig` is passed explicitly into every evaluation
pass; nothing is read from process-wide state, so concurrent passes with
different settings cannot interfere.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

SEVERITY_NAMES = ("error", "warning", "info")
DISTANCE_POLICIES = ("accept", "reject")


class EvaluationConfigError(ValueError):
    """Raised when evaluation configuration is invalid."""


@dataclass(frozen=True)
class EvaluationConfig:
    """Tolerances and policies for one evaluation pass.

    Attributes:
        capacitance_tolerance: Relative band for nominal ``cap`` values.
        resistance_tolerance: Relative band for nominal ``pull`` resistances.
        value_tolerance: Relative band for nominal values in pattern conditions.
        unresolved_symbolic_severity: Severity of ``unresolved-symbolic``
            diagnostics.
        untagged_capacitors_match_any_purpose: Whether capacitors without a
            purpose tag count toward purpose-filtered requirements.
        unknown_distance_policy: ``accept`` or ``reject`` capacitors whose
            distance cannot be estimated when ``max_dist`` is given.
        heuristic_defaults: Symbolic key -> rule text used for keys no
            pattern bound.
        max_workers: Worker threads; 1 evaluates serially.
        timeout_s: Pass deadline in seconds, or None.
    """

    capacitance_tolerance: float = 0.2
    resistance_tolerance: float = 0.05
    value_tolerance: float = 0.1
    unresolved_symbolic_severity: str = "info"
    untagged_capacitors_match_any_purpose: bool = True
    unknown_distance_policy: str = "accept"
    heuristic_defaults: Mapping[str, str] = field(default_factory=dict)
    max_workers: int = 1
    timeout_s: float | None = None

    def __post_init__(self) -> None:
        for name in ("capacitance_tolerance", "resistance_tolerance", "value_tolerance"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EvaluationConfigError(f"{name} must be a number")
            if not 0 <= value < 1:
                raise EvaluationConfigError(f"{name} must be in [0, 1), got {value}")
            object.__setattr__(self, name, float(value))
        if self.unresolved_symbolic_severity not in SEVERITY_NAMES:
            raise EvaluationConfigError(
                f"unresolved_symbolic_severity must be one of {', '.join(SEVERITY_NAMES)}, "
                f"got {self.unresolved_symbolic_severity!r}"
            )
        if self.unknown_distance_policy not in DISTANCE_POLICIES:
            raise EvaluationConfigError(
                f"unknown_distance_policy must be one of {', '.join(DISTANCE_POLICIES)}, "
                f"got {self.unknown_distance_policy!r}"
            )
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise EvaluationConfigError("max_workers must be an int >= 1")
        if self.timeout_s is not None:
            if isinstance(self.timeout_s, bool) or not isinstance(self.timeout_s, (int, float)) or self.timeout_s <= 0:
                raise EvaluationConfigError("timeout_s must be a positive number or null")
        if not isinstance(self.heuristic_defaults, Mapping):
            raise EvaluationConfigError("heuristic_defaults must be a mapping of symbolic key to rule text")
        for key, text in self.heuristic_defaults.items():
            if not isinstance(key, str) or not isinstance(text, str):
                raise EvaluationConfigError("heuristic_defaults keys and values must be strings")
        object.__setattr__(self, "heuristic_defaults", MappingProxyType(dict(self.heuristic_defaults)))

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["heuristic_defaults"] = dict(self.heuristic_defaults)
        return data

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> EvaluationConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise EvaluationConfigError(f"evaluation config has unknown keys: {unknown}")
        return cls(**dict(data))

    @classmethod
    def from_yaml(cls, path: Path | str) -> EvaluationConfig:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"evaluation config not found: {path}")
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise EvaluationConfigError(f"Invalid YAML in {path}: {e}") from e
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise EvaluationConfigError(f"Config must be a mapping, got {type(payload).__name__}")
        return cls.from_mapping(payload)
