"""Memoized rule compilation.

Rule text repeats heavily across component definitions, so every compiler
keeps a cache keyed by exact source text. Failures are cached too: a text
that failed once fails identically every time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace

from .atoms import RuleAtom
from .registry import RuleRegistry, default_registry
from .syntax import CompileError, parse_rule

logger = logging.getLogger(__name__)

# Session-wide compiler (lazy initialized)
_default_compiler: RuleCompiler | None = None
_default_lock = threading.Lock()


@dataclass
class RuleCompiler:
    """Compile rule text to atoms using ``registry``, memoized by text."""

    registry: RuleRegistry = field(default_factory=default_registry)
    _cache: dict[str, RuleAtom | CompileError] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def compile(self, text: str) -> RuleAtom:
        """Compile one line of rule text.

        Raises:
            CompileError: If the text is malformed or fails kind validation.
        """
        with self._lock:
            cached = self._cache.get(text)
        if cached is None:
            cached = self._compile_uncached(text)
            with self._lock:
                cached = self._cache.setdefault(text, cached)
        if isinstance(cached, CompileError):
            # Cached errors are never raised themselves; each caller gets its own copy.
            raise replace(cached)
        return cached

    def try_compile(self, text: str) -> RuleAtom | CompileError:
        """Compile ``text`` returning the error instead of raising."""
        try:
            return self.compile(text)
        except CompileError as exc:
            return exc

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def _compile_uncached(self, text: str) -> RuleAtom | CompileError:
        try:
            atom = self.registry.compile(parse_rule(text))
        except CompileError as exc:
            logger.debug("Rule %r failed to compile: %s", text, exc)
            return replace(exc)
        logger.debug("Compiled rule %r -> %s", text, atom.render())
        return atom


def get_default_compiler() -> RuleCompiler:
    """Return the session-wide compiler, creating it on first use."""
    global _default_compiler
    with _default_lock:
        if _default_compiler is None:
            _default_compiler = RuleCompiler()
        return _default_compiler


def compile_rule(text: str, compiler: RuleCompiler | None = None) -> RuleAtom:
    """Compile ``text`` with ``compiler`` or the session-wide compiler."""
    return (compiler or get_default_compiler()).compile(text)


def render_rule(atom: RuleAtom) -> str:
    """Render ``atom`` to canonical rule text."""
    return atom.render()
