"""Schematic graph held as flat, index-addressed collections.

Instances and nets live in tuples and reference each other by index, so
cyclic net topologies need no special handling and the whole graph can be
shared read-only across worker threads.

Nets that share an endpoint are the same electrical node; they are merged
with union-find while building, keeping the first declared name.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from ..model.documents import SchematicDocument, format_validation_errors
from ..units import Magnitude, coerce_unit

logger = logging.getLogger(__name__)

# Passive categories whose bare values get an implied unit.
_CATEGORY_UNITS: dict[str, str] = {
    "capacitor": "F",
    "resistor": "Ω",
    "inductor": "H",
    "ferrite": "Ω",
}


class SchematicValidationError(ValueError):
    """Raised when a schematic document is structurally invalid.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Schematic failed validation with {len(errors)} error(s): {errors}")


@dataclass(frozen=True)
class Instance:
    """One placed component.

    Attributes:
        index: Position in :attr:`SchematicGraph.instances` (declaration order).
        ref: Reference designator, e.g. ``U1``.
        model: Component model id, or None for bare passives.
        package: Chosen package name for modelled instances.
        category: Category (explicit, or taken from the model when loaded).
        value: Nominal value in base units, if any.
        purpose: Purpose tag for capacitors (decoupling/bulk/ref).
        position_mm: Placement hint used for distance estimates.
    """

    index: int
    ref: str
    category: str
    model: str | None = None
    package: str | None = None
    value: Magnitude | None = None
    purpose: str | None = None
    position_mm: tuple[float, float] | None = None


@dataclass(frozen=True)
class Net:
    index: int
    name: str
    endpoints: tuple[tuple[int, str], ...]
    aliases: tuple[str, ...] = ()


@dataclass(frozen=True, eq=False)
class SchematicGraph:
    """Read-only schematic: instances, nets and the endpoint -> net index."""

    name: str
    instances: tuple[Instance, ...]
    nets: tuple[Net, ...]
    _net_by_endpoint: Mapping[tuple[int, str], int] = field(default_factory=dict, repr=False)
    _instance_by_ref: Mapping[str, int] = field(default_factory=dict, repr=False)

    def instance(self, index: int) -> Instance:
        return self.instances[index]

    def find_instance(self, ref: str) -> Instance | None:
        index = self._instance_by_ref.get(ref)
        return None if index is None else self.instances[index]

    def net_at(self, instance_index: int, physical_pin: str) -> int | None:
        return self._net_by_endpoint.get((instance_index, physical_pin))

    def pins_of(self, instance_index: int) -> list[tuple[str, int]]:
        """Connected (physical pin, net index) pairs of an instance."""
        return [
            (pin, net)
            for (owner, pin), net in self._net_by_endpoint.items()
            if owner == instance_index
        ]


class _UnionFind:
    """Union-find over net indices, always keeping the lowest index as root."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, x: int) -> int:
        while self.parent[x] != x:
            self.parent[x] = self.parent[self.parent[x]]
            x = self.parent[x]
        return x

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        low, high = sorted((root_a, root_b))
        self.parent[high] = low


def build_schematic(
    document: Mapping[str, Any] | SchematicDocument,
    categories: Mapping[str, str] | None = None,
) -> SchematicGraph:
    """Validate a schematic document and build the arena graph.

    Args:
        document: Schematic mapping or parsed document.
        categories: Component model id -> category, used for instances that
            name a model but no explicit category.

    Raises:
        SchematicValidationError: On schema errors, duplicate refs, or nodes
            naming unknown instances.
    """
    if isinstance(document, SchematicDocument):
        parsed = document
    else:
        try:
            parsed = SchematicDocument.model_validate(dict(document))
        except ValidationError as exc:
            raise SchematicValidationError(format_validation_errors(exc)) from exc

    categories = categories or {}
    errors: list[str] = []
    instances: list[Instance] = []
    by_ref: dict[str, int] = {}
    for position, doc in enumerate(parsed.instances):
        if doc.ref in by_ref:
            errors.append(f"instances.{position}: duplicate ref {doc.ref!r}")
            continue
        category = doc.category or (categories.get(doc.model, "") if doc.model else "")
        value = doc.value
        unit = _CATEGORY_UNITS.get(category.casefold())
        if value is not None and unit is not None:
            try:
                value = coerce_unit(value, unit)
            except ValueError as exc:
                errors.append(f"instances.{position}.value: {exc}")
        index = len(instances)
        by_ref[doc.ref] = index
        instances.append(
            Instance(
                index=index,
                ref=doc.ref,
                category=category,
                model=doc.model,
                package=doc.package,
                value=value,
                purpose=doc.purpose,
                position_mm=doc.position,
            )
        )

    raw_endpoints: list[list[tuple[int, str]]] = []
    for position, net_doc in enumerate(parsed.nets):
        endpoints: list[tuple[int, str]] = []
        for node in net_doc.nodes:
            index = by_ref.get(node.ref)
            if index is None:
                errors.append(f"nets.{position}.{net_doc.name}: unknown instance {node.ref!r}")
                continue
            endpoints.append((index, node.pin))
        raw_endpoints.append(endpoints)

    if errors:
        raise SchematicValidationError(errors)

    uf = _UnionFind(len(parsed.nets))
    first_owner: dict[tuple[int, str], int] = {}
    for net_index, endpoints in enumerate(raw_endpoints):
        for endpoint in endpoints:
            owner = first_owner.setdefault(endpoint, net_index)
            if owner != net_index:
                logger.debug(
                    "Merging net %s into %s via shared endpoint %s:%s",
                    parsed.nets[net_index].name,
                    parsed.nets[owner].name,
                    instances[endpoint[0]].ref,
                    endpoint[1],
                )
                uf.union(owner, net_index)

    roots: dict[int, int] = {}
    merged_endpoints: list[list[tuple[int, str]]] = []
    merged_names: list[list[str]] = []
    for net_index, net_doc in enumerate(parsed.nets):
        root = uf.find(net_index)
        if root not in roots:
            roots[root] = len(merged_endpoints)
            merged_endpoints.append([])
            merged_names.append([])
        slot = roots[root]
        merged_names[slot].append(net_doc.name)
        for endpoint in raw_endpoints[net_index]:
            if endpoint not in merged_endpoints[slot]:
                merged_endpoints[slot].append(endpoint)

    nets = tuple(
        Net(index=i, name=names[0], endpoints=tuple(endpoints), aliases=tuple(names[1:]))
        for i, (names, endpoints) in enumerate(zip(merged_names, merged_endpoints))
    )
    net_by_endpoint = {endpoint: net.index for net in nets for endpoint in net.endpoints}
    return SchematicGraph(
        name=parsed.name,
        instances=tuple(instances),
        nets=nets,
        _net_by_endpoint=MappingProxyType(net_by_endpoint),
        _instance_by_ref=MappingProxyType(by_ref),
    )
