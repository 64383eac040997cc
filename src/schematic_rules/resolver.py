"""Package resolution: physical pin ids <-> semantic PinUIDs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .model.component import ComponentModel


class PackageResolutionError(ValueError):
    """Raised when a component model has no package with the requested name."""

    def __init__(self, component: str, package: str | None, available: list[str]) -> None:
        self.component = component
        self.package = package
        self.available = available
        super().__init__(
            f"Component {component!r} has no package {package!r} (available: {', '.join(available) or 'none'})"
        )


@dataclass(frozen=True, eq=False)
class ResolvedPins:
    """UID-indexed view of one component model in one package.

    Attributes:
        component: Component id.
        package: Package name.
        pin_to_physical: PinUID -> physical pin ids, in package order.
        physical_to_pin: Physical pin id -> PinUID.
        unmapped: Rule-bearing PinUIDs with no mapping in this package.
    """

    component: str
    package: str
    pin_to_physical: Mapping[str, tuple[str, ...]]
    physical_to_pin: Mapping[str, str]
    unmapped: tuple[str, ...] = ()

    def is_mapped(self, uid: str) -> bool:
        return bool(self.pin_to_physical.get(uid))

    def physical(self, uid: str) -> tuple[str, ...]:
        return self.pin_to_physical.get(uid, ())

    def describe(self, uid: str) -> str:
        """``uid`` followed by its physical ids, used in evidence summaries."""
        ids = self.physical(uid)
        if not ids:
            return f"{uid} (unmapped in {self.package})"
        return f"{uid} [{self.package} pin {', '.join(ids)}]"


def resolve(model: ComponentModel, package: str | None) -> ResolvedPins:
    """Map ``model``'s PinUIDs to physical ids for ``package``.

    A rule-bearing PinUID without a mapping does not fail resolution; it is
    listed in :attr:`ResolvedPins.unmapped` so its rules can be reported as
    unresolved for this package.

    Raises:
        PackageResolutionError: If ``package`` is not defined by ``model``.
    """
    mapping = model.packages.get(package) if package is not None else None
    if mapping is None:
        raise PackageResolutionError(model.component, package, sorted(model.packages))

    reverse: dict[str, str] = {}
    for uid, physical_ids in mapping.items():
        for physical in physical_ids:
            reverse[physical] = uid

    unmapped = tuple(uid for uid, pin in model.pins.items() if pin.has_rules and not mapping.get(uid))
    return ResolvedPins(
        component=model.component,
        package=package,
        pin_to_physical=MappingProxyType(dict(mapping)),
        physical_to_pin=MappingProxyType(reverse),
        unmapped=unmapped,
    )
