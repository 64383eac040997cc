"""Component models, pattern definitions and their input documents."""

from .component import (
    ComponentModel,
    ComponentValidationError,
    DirectRule,
    InvalidRule,
    PinDirection,
    PinRole,
    PinSpec,
    RuleSource,
    SymbolicRule,
    VoltageEnvelope,
    load_component_model,
)
from .documents import (
    ComponentDocument,
    PatternPackDocument,
    SchematicDocument,
    load_document,
    validate_against_json_schema,
)
from .patterns import (
    Bind,
    CategoryIs,
    Connected,
    Escalate,
    Exists,
    HasPin,
    ModelIs,
    Pattern,
    PatternPack,
    PatternScopeKind,
    PatternValidationError,
    Require,
    ThisComponent,
    load_pattern_pack,
)

__all__ = [
    "Bind",
    "CategoryIs",
    "ComponentDocument",
    "ComponentModel",
    "ComponentValidationError",
    "Connected",
    "DirectRule",
    "Escalate",
    "Exists",
    "HasPin",
    "InvalidRule",
    "ModelIs",
    "Pattern",
    "PatternPack",
    "PatternPackDocument",
    "PatternScopeKind",
    "PatternValidationError",
    "PinDirection",
    "PinRole",
    "PinSpec",
    "Require",
    "RuleSource",
    "SchematicDocument",
    "SymbolicRule",
    "ThisComponent",
    "VoltageEnvelope",
    "load_component_model",
    "load_document",
    "load_pattern_pack",
    "validate_against_json_schema",
]
