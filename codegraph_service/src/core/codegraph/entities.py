# codegraph_service/src/core/codegraph/entities.py
"""
Code graph entity model.

Parsed entities arrive from an external parser as loosely shaped records.
They are validated here into ParsedEntity, a closed tagged variant keyed by
EntityKind, before anything touches the store.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from src.core.errors import MalformedEntityError


class EntityKind(str, Enum):
    FILE = "File"
    FUNCTION = "Function"
    CLASS = "Class"
    COMPONENT = "Component"
    HOOK = "Hook"
    MODULE = "Module"
    EXPORTED_ITEM = "ExportedItem"
    INTERFACE = "Interface"
    STYLED_ELEMENT = "StyledElement"

    @classmethod
    def _missing_(cls, value):
        # Accept "function", "FUNCTION", "exported_item", "exported-item" ...
        if isinstance(value, str):
            folded = value.replace("_", "").replace("-", "").lower()
            for member in cls:
                if member.value.lower() == folded:
                    return member
        return None


class EdgeType(str, Enum):
    CONTAINS = "CONTAINS"
    IMPORTS = "IMPORTS"
    EXPORTS = "EXPORTS"
    CALLS = "CALLS"
    INSTANTIATES = "INSTANTIATES"
    EXTENDS = "EXTENDS"
    IMPLEMENTS = "IMPLEMENTS"
    USES = "USES"
    STYLES = "STYLES"


class EntityKey(NamedTuple):
    """Identity of an entity inside one scope."""

    kind: EntityKind
    name: str

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "name": self.name}

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass(frozen=True)
class Scope:
    """(project, branch) isolation boundary."""

    project: str
    branch: str

    @property
    def key(self) -> str:
        return f"{self.project}:{self.branch}"

    @classmethod
    def from_key(cls, scope_key: str) -> "Scope":
        project, _, branch = scope_key.partition(":")
        return cls(project=project, branch=branch)

    def as_dict(self) -> dict:
        return {"project": self.project, "branch": self.branch, "scope_key": self.key}

    def __str__(self) -> str:
        return self.key


# Which declared reference fields each kind may carry.
REFERENCE_FIELDS: Dict[str, frozenset] = {
    "file_path": frozenset({
        EntityKind.FUNCTION,
        EntityKind.CLASS,
        EntityKind.COMPONENT,
        EntityKind.INTERFACE,
        EntityKind.HOOK,
        EntityKind.EXPORTED_ITEM,
        EntityKind.STYLED_ELEMENT,
    }),
    "imports": frozenset({EntityKind.FILE}),
    "exports": frozenset({EntityKind.FILE}),
    "styles": frozenset({EntityKind.FILE}),
    "calls": frozenset({EntityKind.FUNCTION, EntityKind.COMPONENT, EntityKind.HOOK}),
    "instantiates": frozenset({EntityKind.FUNCTION, EntityKind.COMPONENT, EntityKind.HOOK}),
    "extends": frozenset({EntityKind.CLASS, EntityKind.COMPONENT, EntityKind.INTERFACE}),
    "implements": frozenset({EntityKind.CLASS, EntityKind.COMPONENT}),
    "hooks": frozenset({EntityKind.FILE, EntityKind.COMPONENT, EntityKind.FUNCTION, EntityKind.HOOK}),
}


class ImportRef(BaseModel):
    """One import statement: module specifier plus the bindings it brings in."""

    source: str = Field(min_length=1)
    names: List[str] = Field(default_factory=list)


class ExportRef(BaseModel):
    name: str = Field(min_length=1)
    export_type: Literal["default", "named"] = "named"


class ParsedEntity(BaseModel):
    """
    Parser output for a single structural element.

    ``body`` is the canonical text used for change detection. Reference lists
    are materialized as edges by the relationship builder.
    """

    model_config = ConfigDict(extra="forbid")

    kind: EntityKind
    name: str = ""
    body: Optional[str] = None
    path: Optional[str] = None
    language: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    file_path: Optional[str] = None
    imports: List[ImportRef] = Field(default_factory=list)
    exports: List[ExportRef] = Field(default_factory=list)
    calls: List[str] = Field(default_factory=list)
    instantiates: List[str] = Field(default_factory=list)
    extends: List[str] = Field(default_factory=list)
    implements: List[str] = Field(default_factory=list)
    hooks: List[str] = Field(default_factory=list)
    styles: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_shape(self) -> "ParsedEntity":
        if self.kind == EntityKind.FILE:
            # A file is identified by its path.
            if not self.name and self.path:
                self.name = self.path
            if not self.path:
                self.path = self.name or None
        if not self.name or not self.name.strip():
            raise ValueError(f"{self.kind.value} entity has no name")

        for field_name, allowed in REFERENCE_FIELDS.items():
            if getattr(self, field_name) and self.kind not in allowed:
                raise ValueError(f"{self.kind.value} entities cannot declare '{field_name}'")
        if self.file_path is not None and not self.file_path.strip():
            raise ValueError("file_path must not be blank")
        for field_name in ("calls", "instantiates", "extends", "implements", "hooks", "styles"):
            if any(not target or not target.strip() for target in getattr(self, field_name)):
                raise ValueError(f"'{field_name}' contains a blank name")
        return self

    @property
    def key(self) -> EntityKey:
        return EntityKey(self.kind, self.name)


def coerce_entities(items: Iterable[Any]) -> List[ParsedEntity]:
    """
    Validate a batch of parser records.

    Raises MalformedEntityError for the first offending record; the caller
    rejects the whole batch.
    """
    entities: List[ParsedEntity] = []
    for index, item in enumerate(items):
        if isinstance(item, ParsedEntity):
            entities.append(item)
            continue
        if not isinstance(item, dict):
            raise MalformedEntityError(
                f"expected a mapping, got {type(item).__name__}", index=index
            )
        try:
            entities.append(ParsedEntity.model_validate(item))
        except ValidationError as exc:
            identity = (item.get("kind"), item.get("name") or item.get("path"))
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'entity'}: {err['msg']}"
                for err in exc.errors()
            )
            raise MalformedEntityError(reasons, index=index, identity=identity) from exc
    return entities
