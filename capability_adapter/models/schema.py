# capability_adapter/models/schema.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SchemaKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ENUMERATION = "enumeration"
    UNKNOWN = "unknown"


PRIMITIVE_KINDS = frozenset({SchemaKind.STRING, SchemaKind.INTEGER, SchemaKind.NUMBER, SchemaKind.BOOLEAN})


class SchemaNode(BaseModel):
    """
    One node of a structured input description.

    Exactly one ``kind`` per node. ``properties``/``required_names`` only on
    objects, ``items`` only on arrays, ``allowed_values`` only on enumerations.
    """

    model_config = ConfigDict(frozen=True)

    kind: SchemaKind
    properties: Dict[str, "SchemaNode"] = Field(default_factory=dict)
    required_names: Tuple[str, ...] = ()
    items: Optional["SchemaNode"] = None
    allowed_values: Tuple[Any, ...] = ()
    has_default: bool = False
    default_value: Any = None
    description: Optional[str] = None
    nullable: bool = False

    @model_validator(mode="after")
    def _check_shape(self) -> "SchemaNode":
        if self.kind is not SchemaKind.OBJECT and (self.properties or self.required_names):
            raise ValueError(f"{self.kind.value} node cannot carry properties")
        missing = [n for n in self.required_names if n not in self.properties]
        if missing:
            raise ValueError(f"required names without a property: {missing}")
        if self.kind is not SchemaKind.ARRAY and self.items is not None:
            raise ValueError(f"{self.kind.value} node cannot carry items")
        if self.kind is SchemaKind.ENUMERATION and not self.allowed_values:
            raise ValueError("enumeration node needs at least one allowed value")
        if self.kind is not SchemaKind.ENUMERATION and self.allowed_values:
            raise ValueError(f"{self.kind.value} node cannot carry allowed values")
        return self

    @classmethod
    def any(cls, description: Optional[str] = None) -> "SchemaNode":
        return cls(kind=SchemaKind.UNKNOWN, description=description)

    def required(self) -> List[str]:
        return list(self.required_names)


SchemaNode.model_rebuild()
