"""SI magnitudes for rule arguments and schematic values.

Magnitudes are kept as exact ``Decimal`` values in base units so that
rendering and re-parsing never drifts. Accepted spellings:

  - ``"0.1u"``, ``"100nF"``, ``"4.7k"``, ``"10kohm"``, ``"22uH"``, ``"5mm"``
  - a trailing ``+`` meaning "at least" (``"47u+"``)
  - a leading comparator ``<=`` / ``>=`` (``"<=10k"``)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated

from pydantic import PlainValidator, WithJsonSchema

_MAGNITUDE_RE = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))\s*([^\s\d+]*)\s*(\+?)\s*$")
_BOUND_RE = re.compile(r"^\s*(<=|>=)?\s*(.*?)\s*$")

_PREFIX_SCALES: dict[str, Decimal] = {
    "p": Decimal("1e-12"),
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "µ": Decimal("1e-6"),
    "μ": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "k": Decimal("1e3"),
    "K": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
}

_BASE_UNITS: dict[str, str] = {
    "F": "F",
    "H": "H",
    "Ω": "Ω",
    "ohm": "Ω",
    "Ohm": "Ω",
    "R": "Ω",
    "V": "V",
    "A": "A",
    "Hz": "Hz",
    "m": "m",
}

# Length spellings that are not a plain prefix + "m".
_LENGTH_UNITS: dict[str, Decimal] = {
    "mil": Decimal("0.0000254"),
    "in": Decimal("0.0254"),
}

# Engineering prefixes used when rendering, largest first.
_RENDER_PREFIXES: tuple[tuple[int, str], ...] = (
    (9, "G"),
    (6, "M"),
    (3, "k"),
    (0, ""),
    (-3, "m"),
    (-6, "u"),
    (-9, "n"),
    (-12, "p"),
)

UNIT_NAMES: dict[str, str] = {
    "F": "capacitance",
    "H": "inductance",
    "Ω": "resistance",
    "V": "voltage",
    "A": "current",
    "Hz": "frequency",
    "m": "length",
}

_MAGNITUDE_JSON_SCHEMA = {
    "type": "string",
    "pattern": r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)\s*[A-Za-zµμΩ]*\s*$",
    "title": "Magnitude",
    "description": "Number with optional SI prefix and unit, e.g. '100nF', '4.7k', '22uH'.",
}


class Comparison(str, Enum):
    """How a measured magnitude is compared against a target."""

    NOMINAL = "nominal"
    AT_LEAST = "at_least"
    AT_MOST = "at_most"


@dataclass(frozen=True, slots=True)
class Magnitude:
    """An exact quantity in base units; ``unit`` is empty when not stated."""

    value: Decimal
    unit: str = ""

    def with_unit(self, unit: str) -> Magnitude:
        return Magnitude(self.value, unit)

    def render(self) -> str:
        if self.unit == "m":
            # A bare "m" suffix parses as milli, so lengths always render in millimetres.
            return f"{_plain(_normalize(self.value.scaleb(3)))}mm"
        return f"{format_engineering(self.value)}{self.unit}"

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True, slots=True)
class Bound:
    """A target magnitude plus the comparison used against measured values."""

    target: Magnitude
    comparison: Comparison = Comparison.NOMINAL

    def satisfied_by(self, measured: Decimal, tolerance: float = 0.0) -> bool:
        target = self.target.value
        if self.comparison is Comparison.AT_LEAST:
            return measured >= target
        if self.comparison is Comparison.AT_MOST:
            return measured <= target
        band = abs(target) * Decimal(str(tolerance))
        return abs(measured - target) <= band

    def with_unit(self, unit: str) -> Bound:
        return Bound(self.target.with_unit(unit), self.comparison)

    def render(self) -> str:
        text = self.target.render()
        if self.comparison is Comparison.AT_LEAST:
            return f">={text}"
        if self.comparison is Comparison.AT_MOST:
            return f"<={text}"
        return text

    def __str__(self) -> str:
        return self.render()


def parse_magnitude(text: str) -> tuple[Magnitude, bool]:
    """Parse ``text`` into a magnitude.

    Returns the magnitude and whether a trailing ``+`` ("at least") was given.

    Raises:
        ValueError: If the number is malformed or the unit suffix is unknown.
    """
    if not isinstance(text, str):
        raise ValueError(f"Unsupported magnitude value: {text!r}")
    match = _MAGNITUDE_RE.match(text)
    if not match:
        raise ValueError(f"Magnitude must be formatted like '100n', '4.7kΩ' or '47uF+', got {text!r}")
    number_text, suffix, plus = match.groups()
    try:
        number = Decimal(number_text)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid numeric value in magnitude: {number_text!r}") from exc
    scale, unit = _split_suffix(suffix)
    return Magnitude(_normalize(number * scale), unit), plus == "+"


def parse_bound(text: str) -> Bound:
    """Parse an optionally comparator-prefixed magnitude into a ``Bound``.

    ``"<=10k"`` is at-most, ``">=10uH"`` and ``"47u+"`` are at-least, a bare
    magnitude is nominal.
    """
    if not isinstance(text, str):
        raise ValueError(f"Unsupported bound value: {text!r}")
    match = _BOUND_RE.match(text)
    comparator, rest = match.groups() if match else (None, text)
    magnitude, at_least = parse_magnitude(rest)
    if comparator and at_least:
        raise ValueError(f"Bound {text!r} mixes a comparator with a '+' suffix.")
    if comparator == "<=":
        return Bound(magnitude, Comparison.AT_MOST)
    if comparator == ">=" or at_least:
        return Bound(magnitude, Comparison.AT_LEAST)
    return Bound(magnitude, Comparison.NOMINAL)


def coerce_unit(magnitude: Magnitude, unit: str) -> Magnitude:
    """Attach ``unit`` to a unit-less magnitude, or check an explicit one.

    Raises:
        ValueError: If the magnitude carries a different unit.
    """
    if not magnitude.unit:
        return magnitude.with_unit(unit)
    if magnitude.unit != unit:
        expected = UNIT_NAMES.get(unit, unit)
        raise ValueError(f"Expected a {expected} value in {unit}, got {magnitude.render()}")
    return magnitude


def format_engineering(value: Decimal) -> str:
    """Render ``value`` with an engineering SI prefix, e.g. ``Decimal('1e-7')`` -> ``'100n'``."""
    if value == 0:
        return "0"
    magnitude = abs(value)
    for exponent, prefix in _RENDER_PREFIXES:
        scale = Decimal(1).scaleb(exponent)
        if magnitude >= scale or exponent == _RENDER_PREFIXES[-1][0]:
            mantissa = _normalize(value / scale)
            return f"{_plain(mantissa)}{prefix}"
    raise AssertionError("unreachable")


def _split_suffix(suffix: str) -> tuple[Decimal, str]:
    if not suffix:
        return Decimal(1), ""
    if suffix in _LENGTH_UNITS:
        return _LENGTH_UNITS[suffix], "m"
    if suffix in _BASE_UNITS:
        # "m" alone is milli, not metres; metres need a prefix or a length unit.
        if suffix == "m":
            return _PREFIX_SCALES["m"], ""
        return Decimal(1), _BASE_UNITS[suffix]
    if suffix in _PREFIX_SCALES:
        return _PREFIX_SCALES[suffix], ""
    prefix, rest = suffix[0], suffix[1:]
    if prefix in _PREFIX_SCALES and rest in _BASE_UNITS:
        return _PREFIX_SCALES[prefix], _BASE_UNITS[rest]
    if suffix == "cm":
        return Decimal("0.01"), "m"
    raise ValueError(f"Unknown unit suffix: {suffix!r}")


def _normalize(value: Decimal) -> Decimal:
    normalized = value.normalize()
    # normalize() turns 100 into 1E+2; quantize back to an integer exponent.
    if normalized == normalized.to_integral_value():
        return normalized.quantize(Decimal(1))
    return normalized


def _plain(value: Decimal) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _parse_magnitude_field(value: object) -> Magnitude | None:
    if value is None or isinstance(value, Magnitude):
        return value
    if isinstance(value, bool):
        raise ValueError("Magnitude does not accept boolean values.")
    if isinstance(value, (int, float)):
        return Magnitude(_normalize(Decimal(str(value))))
    magnitude, at_least = parse_magnitude(str(value))
    if at_least:
        raise ValueError(f"A component value cannot carry a '+' suffix: {value!r}")
    return magnitude


def _parse_bound_field(value: object) -> Bound | None:
    if value is None or isinstance(value, Bound):
        return value
    return parse_bound(str(value))


MagnitudeField = Annotated[Magnitude, PlainValidator(_parse_magnitude_field), WithJsonSchema(_MAGNITUDE_JSON_SCHEMA)]
BoundField = Annotated[
    Bound,
    PlainValidator(_parse_bound_field),
    WithJsonSchema(
        {
            "type": "string",
            "title": "Bound",
            "description": "Magnitude optionally prefixed with '<=' or '>=' or suffixed with '+'.",
        }
    ),
]
