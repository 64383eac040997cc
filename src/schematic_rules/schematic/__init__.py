"""Arena schematic graph and its read-only query layer."""

from .graph import Instance, Net, SchematicGraph, SchematicValidationError, build_schematic
from .queries import GraphQuery, GraphTopologyError

__all__ = [
    "GraphQuery",
    "GraphTopologyError",
    "Instance",
    "Net",
    "SchematicGraph",
    "SchematicValidationError",
    "build_schematic",
]
