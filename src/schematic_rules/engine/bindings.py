"""Single-writer ledger for symbolic-key bindings."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum

from ..rules.atoms import RuleAtom


class ClaimStatus(str, Enum):
    WON = "won"
    # Same content as the winning claim; dropped silently.
    DUPLICATE = "duplicate"
    # Different content; first time this content was rejected for the key.
    CONFLICT = "conflict"
    # Different content already reported as a conflict.
    REPEATED_CONFLICT = "repeated-conflict"


@dataclass(frozen=True)
class Claim:
    key: str
    atom: RuleAtom
    origin: str


@dataclass(frozen=True)
class ClaimResult:
    status: ClaimStatus
    winner: Claim
    rejected: Claim | None = None


class BindLedger:
    """Compare-and-set map from symbolic key to its bound rule.

    The first claim for a key wins. Later claims never replace it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claims: dict[str, Claim] = {}
        self._rejected: dict[str, list[RuleAtom]] = {}

    def claim(self, key: str, atom: RuleAtom, origin: str) -> ClaimResult:
        candidate = Claim(key, atom, origin)
        with self._lock:
            winner = self._claims.setdefault(key, candidate)
            if winner is candidate:
                return ClaimResult(ClaimStatus.WON, winner)
            if winner.atom == atom:
                return ClaimResult(ClaimStatus.DUPLICATE, winner, candidate)
            rejected = self._rejected.setdefault(key, [])
            if atom in rejected:
                return ClaimResult(ClaimStatus.REPEATED_CONFLICT, winner, candidate)
            rejected.append(atom)
            return ClaimResult(ClaimStatus.CONFLICT, winner, candidate)

    def get(self, key: str) -> Claim | None:
        with self._lock:
            return self._claims.get(key)

    def is_claimed(self, key: str) -> bool:
        with self._lock:
            return key in self._claims

    def bound(self) -> dict[str, RuleAtom]:
        with self._lock:
            return {key: claim.atom for key, claim in self._claims.items()}
