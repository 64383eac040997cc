"""Read-only queries over a :class:`SchematicGraph`.

Nothing here mutates the graph, so one :class:`GraphQuery` can be shared by
every worker thread of an evaluation pass.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from ..units import Bound, Magnitude
from .graph import Instance, SchematicGraph

if TYPE_CHECKING:
    from ..resolver import ResolvedPins


class GraphTopologyError(ValueError):
    """Raised when a PinUID's physical pins land on more than one net."""

    def __init__(self, ref: str, uid: str, nets: list[str]) -> None:
        self.ref = ref
        self.uid = uid
        self.nets = nets
        super().__init__(f"{ref}.{uid} is split across nets {', '.join(nets)}")


class GraphQuery:
    """Deterministic traversal primitives for one schematic."""

    def __init__(self, graph: SchematicGraph) -> None:
        self.graph = graph
        members: list[list[int]] = [[] for _ in graph.nets]
        for net in graph.nets:
            for instance_index, _ in net.endpoints:
                if instance_index not in members[net.index]:
                    members[net.index].append(instance_index)
        self._members = tuple(tuple(m) for m in members)

    def all_instances(self) -> range:
        return range(len(self.graph.instances))

    def instance(self, index: int) -> Instance:
        return self.graph.instances[index]

    def net_name(self, net: int) -> str:
        return self.graph.nets[net].name

    def components_on_net(self, net: int) -> tuple[int, ...]:
        """Instance indices with at least one pin on ``net``, in endpoint order."""
        return self._members[net]

    def nets_of_instance(self, index: int) -> list[int]:
        return sorted({net for _, net in self.graph.pins_of(index)})

    def net_of_physical(self, index: int, physical_pin: str) -> int | None:
        return self.graph.net_at(index, physical_pin)

    def net_of(self, index: int, uid: str, pins: ResolvedPins) -> int | None:
        """Net of PinUID ``uid`` on instance ``index``.

        Returns None when none of the mapped physical pins is connected.

        Raises:
            GraphTopologyError: If the physical pins sit on different nets.
        """
        nets: list[int] = []
        for physical in pins.physical(uid):
            net = self.graph.net_at(index, physical)
            if net is not None and net not in nets:
                nets.append(net)
        if not nets:
            return None
        if len(nets) > 1:
            raise GraphTopologyError(self.instance(index).ref, uid, [self.net_name(n) for n in nets])
        return nets[0]

    def value_of(self, index: int) -> Magnitude | None:
        return self.graph.instances[index].value

    def matches(self, index: int, category: str, value: Bound | None = None, tolerance: float = 0.0) -> bool:
        """Whether instance ``index`` has ``category`` and a value satisfying ``value``."""
        instance = self.graph.instances[index]
        if instance.category.casefold() != category.casefold():
            return False
        if value is None:
            return True
        measured = instance.value
        if measured is None:
            return False
        if measured.unit and value.target.unit and measured.unit != value.target.unit:
            return False
        return value.satisfied_by(measured.value, tolerance)

    def distance(self, a: int, b: int) -> Decimal | None:
        """Manhattan distance in metres between two placed instances, or None."""
        pos_a = self.graph.instances[a].position_mm
        pos_b = self.graph.instances[b].position_mm
        if pos_a is None or pos_b is None:
            return None
        manhattan_mm = abs(pos_a[0] - pos_b[0]) + abs(pos_a[1] - pos_b[1])
        return Decimal(str(manhattan_mm)) / Decimal(1000)
