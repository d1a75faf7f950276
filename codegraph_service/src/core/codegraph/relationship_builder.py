# codegraph_service/src/core/codegraph/relationship_builder.py
"""
Relationship Builder

Derive typed edges from the reference lists the parser attached to each
entity and upsert them into the scope:

- file_path     -> CONTAINS / USES / EXPORTS / STYLES from the File
- imports       -> IMPORTS File -> Module   (properties: imports)
- exports       -> EXPORTS File -> ExportedItem (properties: export_type)
- calls         -> CALLS -> Function
- instantiates  -> INSTANTIATES -> Class
- extends       -> EXTENDS -> Class (Interface for interfaces)
- implements    -> IMPLEMENTS -> Interface
- hooks         -> USES -> Hook
- styles        -> STYLES -> StyledElement

Endpoints that do not exist yet are created as placeholders, so an edge is
never written without both nodes in the same scope. Re-deriving an edge is
a no-op unless its properties changed.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple
import logging

from src.core.codegraph.entities import EdgeType, EntityKey, EntityKind, ParsedEntity, Scope
from src.core.codegraph.upsert_engine import EntityUpsertEngine
from src.core.graph_persistence import GraphStore
from src.core.models_v2.base import utcnow

logger = logging.getLogger(__name__)

# Edge from the declaring file, by kind of the declared entity.
FILE_EDGE_BY_KIND: Dict[EntityKind, EdgeType] = {
    EntityKind.FUNCTION: EdgeType.CONTAINS,
    EntityKind.CLASS: EdgeType.CONTAINS,
    EntityKind.COMPONENT: EdgeType.CONTAINS,
    EntityKind.INTERFACE: EdgeType.CONTAINS,
    EntityKind.HOOK: EdgeType.USES,
    EntityKind.EXPORTED_ITEM: EdgeType.EXPORTS,
    EntityKind.STYLED_ELEMENT: EdgeType.STYLES,
}

# Simple name lists: field -> (edge type, target kind)
NAME_REFERENCES: Dict[str, Tuple[EdgeType, EntityKind]] = {
    "calls": (EdgeType.CALLS, EntityKind.FUNCTION),
    "instantiates": (EdgeType.INSTANTIATES, EntityKind.CLASS),
    "extends": (EdgeType.EXTENDS, EntityKind.CLASS),
    "implements": (EdgeType.IMPLEMENTS, EntityKind.INTERFACE),
    "hooks": (EdgeType.USES, EntityKind.HOOK),
    "styles": (EdgeType.STYLES, EntityKind.STYLED_ELEMENT),
}

EdgeIdentity = Tuple[EdgeType, EntityKey, EntityKey]


@dataclass
class EdgeSpec:
    edge_type: EdgeType
    source: EntityKey
    target: EntityKey
    properties: dict = field(default_factory=dict)

    @property
    def identity(self) -> EdgeIdentity:
        return (self.edge_type, self.source, self.target)

    def to_dict(self) -> dict:
        return {
            "type": self.edge_type.value,
            "source": self.source.as_dict(),
            "target": self.target.as_dict(),
            "properties": dict(self.properties),
        }


@dataclass
class EdgeUpsertReport:
    created: List[EdgeSpec] = field(default_factory=list)
    updated: List[EdgeSpec] = field(default_factory=list)
    unchanged: List[EdgeSpec] = field(default_factory=list)

    @property
    def edges(self) -> List[EdgeSpec]:
        return self.created + self.updated + self.unchanged

    def to_dict(self) -> dict:
        return {
            "edges": [edge.to_dict() for edge in self.edges],
            "counts": {
                "created": len(self.created),
                "updated": len(self.updated),
                "unchanged": len(self.unchanged),
            },
        }


class RelationshipBuilder:
    """
    Derive edges from parsed entities and upsert them in batches.
    """

    def __init__(self, store: GraphStore):
        self._store = store
        self._nodes = EntityUpsertEngine(store)

    # ----------------------------
    # Derivation (pure)
    # ----------------------------
    def derive(self, entities: Sequence[ParsedEntity]) -> List[EdgeSpec]:
        """Edge specs declared by the entities, merged by edge identity."""
        specs: Dict[EdgeIdentity, EdgeSpec] = {}

        def add(edge_type: EdgeType, source: EntityKey, target: EntityKey, properties=None):
            spec = EdgeSpec(edge_type, source, target, dict(properties or {}))
            existing = specs.get(spec.identity)
            if existing is None:
                specs[spec.identity] = spec
            elif edge_type == EdgeType.IMPORTS:
                # Two import statements of one module: union of bindings.
                merged = list(existing.properties.get("imports", []))
                for name in spec.properties.get("imports", []):
                    if name not in merged:
                        merged.append(name)
                existing.properties["imports"] = merged
            else:
                existing.properties.update(spec.properties)

        for entity in entities:
            source = entity.key

            if entity.file_path and entity.kind in FILE_EDGE_BY_KIND:
                file_key = EntityKey(EntityKind.FILE, entity.file_path)
                add(FILE_EDGE_BY_KIND[entity.kind], file_key, source)

            for ref in entity.imports:
                add(
                    EdgeType.IMPORTS,
                    source,
                    EntityKey(EntityKind.MODULE, ref.source),
                    {"imports": list(ref.names)},
                )

            for ref in entity.exports:
                add(
                    EdgeType.EXPORTS,
                    source,
                    EntityKey(EntityKind.EXPORTED_ITEM, ref.name),
                    {"export_type": ref.export_type},
                )

            for field_name, (edge_type, target_kind) in NAME_REFERENCES.items():
                if field_name == "extends" and entity.kind == EntityKind.INTERFACE:
                    target_kind = EntityKind.INTERFACE
                for target_name in getattr(entity, field_name):
                    add(edge_type, source, EntityKey(target_kind, target_name))

        return list(specs.values())

    # ----------------------------
    # Persistence
    # ----------------------------
    def derive_and_upsert(self, scope: Scope, entities: Sequence[ParsedEntity]) -> EdgeUpsertReport:
        return self.upsert_edges(scope, self.derive(entities))

    def upsert_edges(self, scope: Scope, specs: Sequence[EdgeSpec]) -> EdgeUpsertReport:
        report = EdgeUpsertReport()
        if not specs:
            return report

        endpoint_keys = {spec.source for spec in specs} | {spec.target for spec in specs}
        nodes = self._nodes.ensure_placeholders(scope, endpoint_keys)
        node_ids = {key: node.id for key, node in nodes.items()}

        existing = {
            (edge.edge_type, edge.source_id, edge.target_id): edge
            for edge in self._store.fetch_edges_from(scope, (node_ids[spec.source] for spec in specs))
        }

        now = utcnow()
        inserts: List[dict] = []
        updates: List[dict] = []
        for spec in specs:
            source_id = node_ids[spec.source]
            target_id = node_ids[spec.target]
            edge = existing.get((spec.edge_type.value, source_id, target_id))
            if edge is None:
                inserts.append({
                    "scope_key": scope.key,
                    "edge_type": spec.edge_type.value,
                    "source_id": source_id,
                    "target_id": target_id,
                    "properties": dict(spec.properties),
                    "created_at": now,
                    "updated_at": now,
                })
                report.created.append(spec)
            elif (edge.properties or {}) != spec.properties:
                updates.append({
                    "edge_id": edge.id,
                    "new_properties": dict(spec.properties),
                    "new_updated_at": now,
                })
                report.updated.append(spec)
            else:
                report.unchanged.append(spec)

        self._store.insert_edges(inserts)
        self._store.update_edge_properties(updates)
        logger.info(
            f"Upserted {len(specs)} relationships in {scope.key}: "
            f"{len(report.created)} created, {len(report.updated)} updated, "
            f"{len(report.unchanged)} unchanged"
        )
        return report
