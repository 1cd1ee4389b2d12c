# capability_adapter/schemas/converter.py
"""
Turns a provider's input description into a runtime validator.

Two stages:
  1. parse  - raw mapping (JSON-Schema keywords or the kind/requiredNames
              spelling) -> SchemaNode tree. Total: a malformed field becomes an
              ``unknown`` node plus a diagnostic, siblings are unaffected.
  2. build  - SchemaNode -> Validator. Defaults are filled in first, then the
              value is checked against a normalized JSON Schema rendered from
              the tree (jsonschema, Draft 2020-12).

Extra object fields are never rejected (providers drift; we stay permissive).
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from capability_adapter.errors import SchemaError, ValidationError, ValidationErrorKind
from capability_adapter.models.schema import PRIMITIVE_KINDS, SchemaKind, SchemaNode
from capability_adapter.results import Err, Ok, Result

log = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


class _Missing:
    _instance: Optional["_Missing"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

_KIND_ALIASES: Dict[str, SchemaKind] = {
    "string": SchemaKind.STRING,
    "str": SchemaKind.STRING,
    "integer": SchemaKind.INTEGER,
    "int": SchemaKind.INTEGER,
    "number": SchemaKind.NUMBER,
    "float": SchemaKind.NUMBER,
    "boolean": SchemaKind.BOOLEAN,
    "bool": SchemaKind.BOOLEAN,
    "object": SchemaKind.OBJECT,
    "array": SchemaKind.ARRAY,
    "enumeration": SchemaKind.ENUMERATION,
    "enum": SchemaKind.ENUMERATION,
}


# ─────────────────────────────────────────────────────────────
# Stage 1: raw document -> SchemaNode
# ─────────────────────────────────────────────────────────────
class _SchemaParser:
    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self.diagnostics: List[str] = []
        self._active: set[int] = set()

    def _diag(self, path: str, msg: str) -> None:
        self.diagnostics.append(f"{path}: {msg}")

    def parse(self, doc: Any, path: str = "$", depth: int = 0) -> SchemaNode:
        try:
            return self._parse(doc, path, depth)
        except Exception as e:
            self._diag(path, f"degraded to any ({e.__class__.__name__}: {e})")
            return SchemaNode.any()

    def _parse(self, doc: Any, path: str, depth: int) -> SchemaNode:
        if not isinstance(doc, Mapping):
            self._diag(path, f"expected a schema object, got {type(doc).__name__}")
            return SchemaNode.any()
        if depth > self.max_depth:
            self._diag(path, f"nesting deeper than {self.max_depth}")
            return SchemaNode.any()
        if id(doc) in self._active:
            self._diag(path, "self-referencing schema")
            return SchemaNode.any()

        self._active.add(id(doc))
        try:
            return self._parse_mapping(doc, path, depth)
        finally:
            self._active.discard(id(doc))

    def _common(self, doc: Mapping, path: str) -> Dict[str, Any]:
        description = doc.get("description")
        if description is not None and not isinstance(description, str):
            self._diag(path, "non-string description ignored")
            description = None
        out: Dict[str, Any] = {"description": description}
        if "defaultValue" in doc:
            out.update(has_default=True, default_value=doc["defaultValue"])
        elif "default" in doc:
            out.update(has_default=True, default_value=doc["default"])
        if doc.get("nullable") is True:
            out["nullable"] = True
        return out

    def _parse_mapping(self, doc: Mapping, path: str, depth: int) -> SchemaNode:
        common = self._common(doc, path)

        allowed = doc["allowedValues"] if "allowedValues" in doc else doc.get("enum")
        if allowed is None and "const" in doc:
            allowed = [doc["const"]]
        if allowed is not None:
            if isinstance(allowed, (list, tuple)) and len(allowed) > 0:
                return SchemaNode(kind=SchemaKind.ENUMERATION, allowed_values=tuple(allowed), **common)
            self._diag(path, "enumeration without allowed values")
            return SchemaNode(kind=SchemaKind.UNKNOWN, **common)

        raw_kind = doc["kind"] if "kind" in doc else doc.get("type")
        if isinstance(raw_kind, (list, tuple)):
            concrete = [t for t in raw_kind if t != "null"]
            if len(concrete) < len(raw_kind):
                common["nullable"] = True
            if len(concrete) != 1:
                self._diag(path, f"union type {list(raw_kind)!r} treated as any")
                return SchemaNode(kind=SchemaKind.UNKNOWN, **common)
            raw_kind = concrete[0]

        if raw_kind is None:
            if "properties" in doc:
                raw_kind = "object"
            elif "items" in doc:
                raw_kind = "array"
            else:
                return SchemaNode(kind=SchemaKind.UNKNOWN, **common)

        if not isinstance(raw_kind, str):
            self._diag(path, f"kind must be a string, got {type(raw_kind).__name__}")
            return SchemaNode(kind=SchemaKind.UNKNOWN, **common)

        kind = _KIND_ALIASES.get(raw_kind.strip().lower())
        if kind is None:
            self._diag(path, f"unrecognized kind {raw_kind!r}")
            return SchemaNode(kind=SchemaKind.UNKNOWN, **common)
        if kind is SchemaKind.ENUMERATION:
            self._diag(path, "enumeration without allowed values")
            return SchemaNode(kind=SchemaKind.UNKNOWN, **common)

        if kind in PRIMITIVE_KINDS:
            return SchemaNode(kind=kind, **common)
        if kind is SchemaKind.OBJECT:
            return self._parse_object(doc, path, depth, common)
        return self._parse_array(doc, path, depth, common)

    def _parse_object(self, doc: Mapping, path: str, depth: int, common: Dict[str, Any]) -> SchemaNode:
        props_raw = doc.get("properties")
        if props_raw is None:
            props_raw = {}
        elif not isinstance(props_raw, Mapping):
            self._diag(path, "properties is not a mapping; ignored")
            props_raw = {}

        properties: Dict[str, SchemaNode] = {}
        for name, sub in props_raw.items():
            if not isinstance(name, str):
                self._diag(path, f"non-string property name {name!r} ignored")
                continue
            properties[name] = self.parse(sub, f"{path}.{name}", depth + 1)

        req_raw = doc["requiredNames"] if "requiredNames" in doc else doc.get("required")
        if req_raw is None:
            req_raw = []
        elif not isinstance(req_raw, (list, tuple, set, frozenset)):
            self._diag(path, "required is not a list; ignored")
            req_raw = []

        required: List[str] = []
        for n in req_raw:
            if isinstance(n, str) and n in properties:
                if n not in required:
                    required.append(n)
            else:
                self._diag(path, f"required name {n!r} has no property; ignored")

        return SchemaNode(
            kind=SchemaKind.OBJECT,
            properties=properties,
            required_names=tuple(required),
            **common,
        )

    def _parse_array(self, doc: Mapping, path: str, depth: int, common: Dict[str, Any]) -> SchemaNode:
        items_raw = doc.get("items")
        items: Optional[SchemaNode] = None
        if isinstance(items_raw, Mapping):
            if items_raw:
                items = self.parse(items_raw, f"{path}[]", depth + 1)
        elif items_raw is not None:
            self._diag(path, "items is not a schema object; array of any")
        if items is not None and items.kind is SchemaKind.UNKNOWN and not items.has_default:
            items = None
        return SchemaNode(kind=SchemaKind.ARRAY, items=items, **common)


def parse_schema(document: Any, *, max_depth: int = DEFAULT_MAX_DEPTH) -> Tuple[SchemaNode, List[str]]:
    """Parse a raw input description. Never raises; returns the tree and its diagnostics."""
    parser = _SchemaParser(max_depth=max_depth)
    node = parser.parse(document)
    return node, parser.diagnostics


# ─────────────────────────────────────────────────────────────
# Stage 2: SchemaNode -> Validator
# ─────────────────────────────────────────────────────────────
def to_json_schema(node: Optional[SchemaNode]) -> Dict[str, Any]:
    """Normalized JSON Schema for a node (no additionalProperties restrictions)."""
    if node is None:
        return {}
    if node.kind is SchemaKind.ENUMERATION:
        out: Dict[str, Any] = {"enum": list(node.allowed_values)}
    elif node.kind is SchemaKind.UNKNOWN:
        return {}
    elif node.kind in PRIMITIVE_KINDS:
        out = {"type": node.kind.value}
    elif node.kind is SchemaKind.OBJECT:
        out = {
            "type": "object",
            "properties": {name: to_json_schema(child) for name, child in node.properties.items()},
        }
        if node.required_names:
            out["required"] = list(node.required_names)
    else:
        out = {"type": "array"}
        if node.items is not None:
            out["items"] = to_json_schema(node.items)
    if node.nullable:
        return {"anyOf": [out, {"type": "null"}]}
    return out


def _fill_defaults(node: SchemaNode, value: Any) -> Any:
    if value is MISSING:
        return copy.deepcopy(node.default_value) if node.has_default else MISSING
    if node.kind is SchemaKind.OBJECT and isinstance(value, dict):
        out = dict(value)
        for name, child in node.properties.items():
            filled = _fill_defaults(child, out.get(name, MISSING))
            if filled is not MISSING:
                out[name] = filled
        return out
    if node.kind is SchemaKind.ARRAY and node.items is not None and isinstance(value, list):
        return [_fill_defaults(node.items, v) for v in value]
    return value


_REQUIRED_MSG = re.compile(r"^'(?P<name>.+)' is a required property")


def _error_kind(err) -> ValidationErrorKind:
    if err.validator in ("anyOf", "oneOf") and err.context:
        return _error_kind(best_match(err.context))
    if err.validator == "enum":
        return ValidationErrorKind.ENUM_MISMATCH
    if err.validator == "type":
        return ValidationErrorKind.TYPE_MISMATCH
    if err.validator == "required":
        return ValidationErrorKind.MISSING_REQUIRED
    return ValidationErrorKind.CONSTRAINT


def _error_path(err) -> str:
    parts = [str(p) for p in err.absolute_path]
    if err.validator == "required":
        m = _REQUIRED_MSG.match(err.message)
        if m:
            parts.append(m.group("name"))
    return "/".join(parts)


class Validator:
    """
    Checks and normalizes one value against a converted schema.

    Calling it returns ``Ok(normalized)`` or ``Err(ValidationError)``; it never
    raises. ``MISSING`` stands for an absent value so defaults can apply.
    """

    def __init__(self, node: Optional[SchemaNode] = None, diagnostics: Sequence[str] = ()):
        self._node = node
        self._diagnostics = tuple(diagnostics)
        self._json_schema = to_json_schema(node)
        self._checker = Draft202012Validator(self._json_schema)

    @property
    def node(self) -> Optional[SchemaNode]:
        return self._node

    @property
    def diagnostics(self) -> Tuple[str, ...]:
        return self._diagnostics

    @property
    def json_schema(self) -> Dict[str, Any]:
        return copy.deepcopy(self._json_schema)

    @property
    def is_permissive(self) -> bool:
        return not self._json_schema

    def __call__(self, value: Any = MISSING) -> Result[Any, ValidationError]:
        node = self._node
        if node is None:
            return Ok(None if value is MISSING else value)

        filled = _fill_defaults(node, value)
        if filled is MISSING:
            if node.kind is SchemaKind.UNKNOWN:
                return Ok(None)
            return Err(ValidationError(
                "a value is required",
                kind=ValidationErrorKind.MISSING_REQUIRED,
            ))

        errors = list(self._checker.iter_errors(filled))
        if not errors:
            return Ok(filled)

        issues = [
            {"path": _error_path(e), "kind": _error_kind(e).value, "message": e.message}
            for e in errors
        ]
        primary = best_match(errors)
        path = _error_path(primary)
        where = f" at '{path}'" if path else ""
        return Err(ValidationError(
            f"{primary.message}{where}",
            kind=_error_kind(primary),
            path=path,
            issues=issues,
        ))


def convert(
    document: Any = None,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    name: Optional[str] = None,
) -> Validator:
    """
    Build a Validator for an input description.

    ``None`` gives a permissive validator. A ``SchemaNode`` is used as is. A
    mapping is parsed; malformed parts degrade to any-value with a logged
    diagnostic. Anything that is not a mapping at the root is not a schema
    document and raises ``SchemaError``.
    """
    if document is None:
        return Validator(None)
    if isinstance(document, SchemaNode):
        return Validator(document)
    if not isinstance(document, Mapping):
        raise SchemaError(
            f"input description must be an object, got {type(document).__name__}",
            details={"operation": name} if name else None,
        )

    node, diagnostics = parse_schema(document, max_depth=max_depth)
    for d in diagnostics:
        log.warning("schema %s degraded: %s", name or "<anonymous>", d)
    return Validator(node, diagnostics)
