# codegraph_service/src/core/codegraph/upsert_engine.py
"""
Entity Upsert Engine

Merges a batch of parsed entities into one scope by (scope, kind, name):

- absent            -> insert, created_at = updated_at = now; if another
                       writer inserted it meanwhile, this write replaces
                       theirs and is reported as updated
- present, changed  -> update body/attributes and updated_at
- present, same     -> no write

The whole batch costs one read, one insert and one update statement
(plus the scope registration), independent of batch size.

Placeholders: an edge may point at an entity that has not been indexed yet
(a base class from another file, an imported module). ensure_placeholders()
materializes such targets with body = NULL so the edge can be written now;
a later upsert of the real entity fills the node in place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Sequence
import logging

from src.core.codegraph.entities import EntityKey, ParsedEntity, Scope
from src.core.graph_persistence import GraphStore
from src.core.models_v2.base import utcnow
from src.core.models_v2.graph_node import GraphNode

logger = logging.getLogger(__name__)


@dataclass
class UpsertReport:
    created: List[EntityKey] = field(default_factory=list)
    updated: List[EntityKey] = field(default_factory=list)
    unchanged: List[EntityKey] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "created": [key.as_dict() for key in self.created],
            "updated": [key.as_dict() for key in self.updated],
            "unchanged": [key.as_dict() for key in self.unchanged],
            "counts": {
                "created": len(self.created),
                "updated": len(self.updated),
                "unchanged": len(self.unchanged),
            },
        }


def dedupe_entities(entities: Iterable[ParsedEntity]) -> List[ParsedEntity]:
    """Keep the last occurrence of each identity key, in first-seen order."""
    by_key: Dict[EntityKey, ParsedEntity] = {}
    for entity in entities:
        if entity.key in by_key:
            logger.debug(f"Duplicate entity {entity.key} in batch; last occurrence wins")
        by_key[entity.key] = entity
    return list(by_key.values())


class EntityUpsertEngine:
    """
    Batched, idempotent node writer for one GraphStore.
    """

    def __init__(self, store: GraphStore):
        self._store = store

    def upsert(self, scope: Scope, entities: Sequence[ParsedEntity]) -> UpsertReport:
        report = UpsertReport()
        batch = dedupe_entities(entities)
        self._store.ensure_scope(scope)
        if not batch:
            return report

        batch_keys = [entity.key for entity in batch]
        existing = self._store.fetch_nodes(scope, batch_keys)
        now = utcnow()
        inserts: List[dict] = []
        updates: List[dict] = []

        for entity in batch:
            node = existing.get(entity.key)
            if node is None:
                inserts.append(self._insert_row(scope, entity, now))
                report.created.append(entity.key)
            elif node.is_placeholder or self._differs(node, entity):
                updates.append(self._update_row(node, entity, now))
                report.updated.append(entity.key)
            else:
                report.unchanged.append(entity.key)

        raced = self._store.upsert_nodes(inserts)
        if raced:
            # Written by another writer after our read; ours replaced it.
            logger.debug(f"{len(raced)} entities in {scope.key} were written concurrently")
            report.created = [key for key in report.created if key not in raced]
            report.updated.extend(key for key in batch_keys if key in raced)
        self._store.update_nodes(updates)
        logger.info(
            f"Upserted {len(batch)} entities into {scope.key}: "
            f"{len(report.created)} created, {len(report.updated)} updated, "
            f"{len(report.unchanged)} unchanged"
        )
        return report

    def ensure_placeholders(self, scope: Scope, keys: Iterable[EntityKey]) -> Dict[EntityKey, GraphNode]:
        """
        Make sure a node exists for every key; missing ones are inserted as
        placeholders. Returns key -> node for all requested keys.
        """
        wanted = set(keys)
        if not wanted:
            return {}
        self._store.ensure_scope(scope)
        nodes = self._store.fetch_nodes(scope, wanted)
        missing = sorted(wanted - set(nodes), key=lambda key: (key.kind.value, key.name))
        if missing:
            now = utcnow()
            self._store.insert_nodes([self._placeholder_row(scope, key, now) for key in missing])
            nodes = self._store.fetch_nodes(scope, wanted)
            logger.debug(f"Created {len(missing)} placeholder nodes in {scope.key}")
        return nodes

    # ----------------------------
    # Row builders
    # ----------------------------
    @staticmethod
    def _differs(node: GraphNode, entity: ParsedEntity) -> bool:
        return (
            node.body != entity.body
            or node.path != entity.path
            or node.language != entity.language
            or (node.attributes or {}) != entity.attributes
        )

    @staticmethod
    def _insert_row(scope: Scope, entity: ParsedEntity, now: datetime) -> dict:
        return {
            "scope_key": scope.key,
            "kind": entity.kind.value,
            "name": entity.name,
            "body": entity.body,
            "path": entity.path,
            "language": entity.language,
            "attributes": dict(entity.attributes),
            "is_placeholder": False,
            "created_at": now,
            "updated_at": now,
        }

    @staticmethod
    def _update_row(node: GraphNode, entity: ParsedEntity, now: datetime) -> dict:
        return {
            "node_id": node.id,
            "new_body": entity.body,
            "new_path": entity.path,
            "new_language": entity.language,
            "new_attributes": dict(entity.attributes),
            "new_is_placeholder": False,
            # Clock skew between writers must not push updated_at below created_at.
            "new_updated_at": max(now, _as_comparable(node.created_at, now)),
        }

    @staticmethod
    def _placeholder_row(scope: Scope, key: EntityKey, now: datetime) -> dict:
        return {
            "scope_key": scope.key,
            "kind": key.kind.value,
            "name": key.name,
            "body": None,
            "path": None,
            "language": None,
            "attributes": {},
            "is_placeholder": True,
            "created_at": now,
            "updated_at": now,
        }


def _as_comparable(value: datetime, reference: datetime) -> datetime:
    """SQLite returns naive datetimes; align tz-awareness with ``reference``."""
    if value is None:
        return reference
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.replace(tzinfo=reference.tzinfo)
    return value
