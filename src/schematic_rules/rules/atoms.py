"""Compiled rule atoms.

A rule atom is the typed, immutable form of one line of rule text. The set of
kinds is closed per registry (see :mod:`schematic_rules.rules.registry`); the
two base kinds are ``cap`` and ``pull``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import ClassVar

from ..units import Bound, Magnitude


class Purpose(str, Enum):
    """What a required capacitor is for."""

    DECOUPLING = "decoupling"
    BULK = "bulk"
    REF = "ref"


class PullDirection(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class RuleAtom:
    """Base class for compiled requirements.

    Attributes:
        firm: True when failure is an error (``!`` suffix); flexible rules
            only produce warnings.
    """

    kind: ClassVar[str] = ""

    firm: bool

    def arguments(self) -> list[str]:
        """Return canonical argument texts in declaration order."""
        raise NotImplementedError

    def body(self) -> str:
        """Canonical text without the firmness marker."""
        return f"{self.kind}({', '.join(self.arguments())})"

    def render(self) -> str:
        """Canonical text; compiling it yields an equal atom."""
        return self.body() + ("!" if self.firm else "")

    def with_firmness(self, firm: bool) -> RuleAtom:
        return replace(self, firm=firm)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class CapRequirement(RuleAtom):
    """Capacitance required on the anchor net."""

    kind: ClassVar[str] = "cap"

    value: Bound
    purpose: Purpose | None = None
    max_dist: Magnitude | None = None

    def arguments(self) -> list[str]:
        args = [self.value.render()]
        if self.purpose is not None:
            args.append(f"purpose={self.purpose.value}")
        if self.max_dist is not None:
            args.append(f"max_dist={self.max_dist.render()}")
        return args


@dataclass(frozen=True)
class PullRequirement(RuleAtom):
    """A pull resistor from the anchor net to the net of ``target``."""

    kind: ClassVar[str] = "pull"

    direction: PullDirection
    target: str
    resistance: Bound

    def arguments(self) -> list[str]:
        return [self.direction.value, self.target, self.resistance.render()]
