"""Input document schemas.

Component definitions, pattern packs and schematics arrive as plain
mappings (usually YAML). These pydantic models are the load-time contract:
unknown fields, unknown roles/directions and malformed magnitudes are all
rejected here, before the engine sees anything.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, WithJsonSchema, field_validator, model_validator

from ..units import BoundField, MagnitudeField

PIN_UID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z0-9_]+){2,}$")

PinRoleLiteral = Literal["power", "ground", "io", "analog", "clock", "config", "protection"]
PinDirectionLiteral = Literal["input", "output", "bidirectional", "passive"]
PatternScopeLiteral = Literal["pin", "net", "component"]
FirmnessLiteral = Literal["firm", "flexible"]
PurposeLiteral = Literal["decoupling", "bulk", "ref"]


class _DocumentBase(BaseModel):
    model_config = ConfigDict(extra="forbid", coerce_numbers_to_str=True)


def _check_pin_uid(value: str) -> str:
    if not PIN_UID_RE.match(value):
        raise ValueError(f"PinUID must look like 'domain.function.qualifier', got {value!r}")
    return value


PinUIDField = Annotated[str, BeforeValidator(lambda v: _check_pin_uid(str(v)) if v is not None else v)]


class VoltageDocument(_DocumentBase):
    nominal: MagnitudeField | None = None
    abs_min: MagnitudeField | None = None
    abs_max: MagnitudeField | None = None
    relative_to: PinUIDField | None = None


class SymbolicRuleDocument(_DocumentBase):
    symbolic: str = Field(..., min_length=1)


def _expand_symbolic_shorthand(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("$"):
        return {"symbolic": value[1:]}
    return value


RuleEntry = Annotated[Union[SymbolicRuleDocument, str], BeforeValidator(_expand_symbolic_shorthand)]


class PinDocument(_DocumentBase):
    names: list[str] = Field(default_factory=list)
    role: PinRoleLiteral
    direction: PinDirectionLiteral
    voltage: VoltageDocument | None = None
    rules: list[RuleEntry] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    description: str = ""


class ExistsDocument(_DocumentBase):
    component: str = Field(..., min_length=1, description="Component category to look for")
    on_net: PinUIDField | None = None
    value: BoundField | None = None


class ConditionDocument(_DocumentBase):
    """Conjunction of condition primitives; every key given must hold."""

    this_component: bool | None = None
    exists: list[ExistsDocument] = Field(default_factory=list)
    category: str | None = None
    model: str | None = None
    has_pin: PinUIDField | None = None
    connected: PinUIDField | None = None

    @field_validator("exists", mode="before")
    @classmethod
    def _single_exists(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return [value]
        return value

    @field_validator("this_component")
    @classmethod
    def _this_component_true(cls, value: bool | None) -> bool | None:
        if value is False:
            raise ValueError("this_component only accepts true")
        return value


class ActionDocument(_DocumentBase):
    bind: str | None = Field(default=None, min_length=1)
    require: str | None = Field(default=None, min_length=1)
    escalate: str | None = Field(default=None, min_length=1)
    on: PinUIDField | None = None
    severity: FirmnessLiteral | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> ActionDocument:
        if self.escalate is not None:
            if self.bind is not None or self.require is not None:
                raise ValueError("escalate cannot be combined with bind or require")
            if self.severity == "flexible":
                raise ValueError("escalate can only raise severity to firm")
        elif self.require is None:
            raise ValueError("action needs 'require' (optionally with 'bind') or 'escalate'")
        if self.bind is not None and self.on is not None:
            raise ValueError("bind actions are anchored by the symbolic key, not 'on'")
        return self


class PatternDocument(_DocumentBase):
    name: str = Field(..., min_length=1)
    scope: PatternScopeLiteral = "component"
    anchor: PinUIDField | None = None
    when: ConditionDocument = Field(default_factory=ConditionDocument)
    then: list[ActionDocument] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _anchor_for_scope(self) -> PatternDocument:
        if self.scope in ("pin", "net") and self.anchor is None:
            raise ValueError(f"{self.scope}-scoped pattern {self.name!r} needs an anchor PinUID")
        return self


class ComponentDocument(_DocumentBase):
    component: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    packages: dict[str, dict[PinUIDField, list[str]]] = Field(..., min_length=1)
    pins: dict[PinUIDField, PinDocument]
    patterns: list[PatternDocument] = Field(default_factory=list)


class PatternPackDocument(_DocumentBase):
    pack: str = Field(..., min_length=1)
    description: str = ""
    patterns: list[PatternDocument] = Field(default_factory=list)


def _parse_node(value: Any) -> Any:
    if isinstance(value, str):
        ref, sep, pin = value.rpartition(":")
        if not sep or not ref or not pin:
            raise ValueError(f"Net node must be written 'REF:PIN', got {value!r}")
        return {"ref": ref, "pin": pin}
    return value


class NodeDocument(_DocumentBase):
    ref: str = Field(..., min_length=1)
    pin: str = Field(..., min_length=1)


_NODE_JSON_SCHEMA = {
    "title": "Node",
    "description": "Net endpoint, either 'REF:PIN' or {ref, pin}.",
    "anyOf": [
        {"type": "string", "pattern": r"^.+:.+$"},
        {
            "type": "object",
            "properties": {
                "ref": {"type": "string", "minLength": 1},
                "pin": {"type": "string", "minLength": 1},
            },
            "required": ["ref", "pin"],
            "additionalProperties": False,
        },
    ],
}

NodeEntry = Annotated[NodeDocument, BeforeValidator(_parse_node), WithJsonSchema(_NODE_JSON_SCHEMA)]


class InstanceDocument(_DocumentBase):
    ref: str = Field(..., min_length=1)
    model: str | None = None
    package: str | None = None
    category: str | None = None
    value: MagnitudeField | None = None
    purpose: PurposeLiteral | None = None
    position: tuple[float, float] | None = Field(default=None, description="Placement hint in millimetres")

    @model_validator(mode="after")
    def _model_or_category(self) -> InstanceDocument:
        if self.model is None and self.category is None:
            raise ValueError(f"instance {self.ref!r} needs a model or a category")
        if self.package is not None and self.model is None:
            raise ValueError(f"instance {self.ref!r} names a package but no model")
        return self


class NetDocument(_DocumentBase):
    name: str = Field(..., min_length=1)
    nodes: list[NodeEntry] = Field(default_factory=list)


class SchematicDocument(_DocumentBase):
    name: str = ""
    instances: list[InstanceDocument] = Field(default_factory=list)
    nets: list[NetDocument] = Field(default_factory=list)


def load_document(path: Path | str) -> dict[str, Any]:
    """Read a YAML or JSON document into a mapping.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the suffix is unsupported or the root is not a mapping.
        yaml.YAMLError: If YAML parsing fails.
        json.JSONDecodeError: If JSON parsing fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")

    if suffix in (".yaml", ".yml"):
        import yaml

        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError(f"Unsupported file extension: {suffix}. Use .yaml, .yml, or .json")

    if not isinstance(data, dict):
        raise ValueError(f"Document {path} must contain a mapping, got {type(data).__name__}")
    return data


def validate_against_json_schema(data: dict[str, Any], model: type[BaseModel]) -> list[str]:
    """Validate ``data`` against the JSON Schema generated for ``model``.

    Uses jsonschema Draft 2020-12 so documents can be checked with the same
    schema outside Python.

    Returns:
        List of validation error messages (empty if valid).
    """
    from jsonschema import Draft202012Validator

    validator = Draft202012Validator(model.model_json_schema())
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        errors.append(f"{path}: {error.message}")
    return errors


def format_validation_errors(exc: Exception) -> list[str]:
    """Flatten a pydantic ``ValidationError`` into ``path: message`` lines."""
    errors = getattr(exc, "errors", None)
    if not callable(errors):
        return [str(exc)]
    lines = []
    for error in errors():
        path = ".".join(str(p) for p in error.get("loc", ())) or "(root)"
        lines.append(f"{path}: {error.get('msg', '')}")
    return lines
