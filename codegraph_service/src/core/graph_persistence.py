"""
Graph Persistence Layer: GraphStore

Batched primitives for reading and writing the code graph through one
SQLAlchemy session. Every method issues a fixed number of statements no
matter how many nodes or edges it handles; callers build their algorithms
on top of these so that indexing N entities costs O(1) round trips.

Indexed entities are written with "INSERT ... ON CONFLICT DO UPDATE" on
PostgreSQL and SQLite, so concurrent writers of the same identity converge on
the last write. Placeholders, scopes and edges use "ON CONFLICT DO NOTHING".
A placeholder therefore never overwrites an indexed body.

Requires:
- SQLAlchemy ORM models: GraphScope, GraphNode, GraphEdge
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set
import logging

from sqlalchemy import bindparam, delete, func, insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.codegraph.entities import EntityKey, EntityKind, Scope
from src.core.errors import GraphStoreError, StoreUnavailableError
from src.core.models_v2.graph_edge import GraphEdge
from src.core.models_v2.graph_node import GraphNode
from src.core.models_v2.graph_scope import GraphScope

logger = logging.getLogger(__name__)

_UNAVAILABLE = (OperationalError, InterfaceError, DisconnectionError)


def node_key(node: GraphNode) -> EntityKey:
    return EntityKey(EntityKind(node.kind), node.name)


class GraphStore:
    """
    Session-bound access to the graph tables.
    Ensures deterministic, batched upserts for nodes and edges.
    """

    def __init__(self, session: Session):
        self._session = session

    # -----------------------------
    # Transaction boundary
    # -----------------------------
    @contextmanager
    def transaction(self) -> Iterator["GraphStore"]:
        """
        One atomic unit of work. Commits on success; on failure rolls back
        and re-raises as an engine error.
        """
        try:
            yield self
            self._session.commit()
        except _UNAVAILABLE as e:
            logger.error(f"Graph store unavailable: {e}")
            self._session.rollback()
            raise StoreUnavailableError(str(e)) from e
        except SQLAlchemyError as e:
            logger.error(f"Graph store error: {e}")
            self._session.rollback()
            raise GraphStoreError(str(e)) from e
        except Exception:
            self._session.rollback()
            raise

    @contextmanager
    def reading(self) -> Iterator["GraphStore"]:
        """Read-only unit of work; maps store failures like transaction()."""
        try:
            yield self
        except _UNAVAILABLE as e:
            logger.error(f"Graph store unavailable: {e}")
            raise StoreUnavailableError(str(e)) from e
        except SQLAlchemyError as e:
            logger.error(f"Graph store error: {e}")
            raise GraphStoreError(str(e)) from e
        finally:
            self._session.rollback()

    # -----------------------------
    # Scopes
    # -----------------------------
    def ensure_scope(self, scope: Scope) -> bool:
        """Register the scope if needed. Returns True when a new row was written."""
        result = self._insert_ignore(
            GraphScope,
            {"scope_key": scope.key, "project": scope.project, "branch": scope.branch},
            ["scope_key"],
        )
        return bool(result.rowcount and result.rowcount > 0)

    def list_scopes(self, project: Optional[str] = None) -> List[GraphScope]:
        query = self._session.query(GraphScope)
        if project is not None:
            query = query.filter(GraphScope.project == project)
        return query.order_by(GraphScope.project, GraphScope.branch).all()

    def count_nodes_by_kind(self, scope_keys: Sequence[str]) -> Dict[str, Dict[str, int]]:
        """scope_key -> {kind: count}, placeholders excluded."""
        counts: Dict[str, Dict[str, int]] = {key: {} for key in scope_keys}
        if not scope_keys:
            return counts
        rows = (
            self._session.query(GraphNode.scope_key, GraphNode.kind, func.count(GraphNode.id))
            .filter(GraphNode.scope_key.in_(list(scope_keys)), GraphNode.is_placeholder.is_(False))
            .group_by(GraphNode.scope_key, GraphNode.kind)
            .all()
        )
        for scope_key, kind, count in rows:
            counts[scope_key][kind] = count
        return counts

    def count_edges(self, scope_keys: Sequence[str]) -> Dict[str, int]:
        counts: Dict[str, int] = {key: 0 for key in scope_keys}
        if not scope_keys:
            return counts
        rows = (
            self._session.query(GraphEdge.scope_key, func.count(GraphEdge.id))
            .filter(GraphEdge.scope_key.in_(list(scope_keys)))
            .group_by(GraphEdge.scope_key)
            .all()
        )
        for scope_key, count in rows:
            counts[scope_key] = count
        return counts

    def clear_scope(self, scope: Scope) -> int:
        """Delete every edge and node of the scope. Returns deleted node count."""
        self._session.execute(delete(GraphEdge).where(GraphEdge.scope_key == scope.key))
        result = self._session.execute(delete(GraphNode).where(GraphNode.scope_key == scope.key))
        return result.rowcount or 0

    def delete_scope(self, scope: Scope) -> int:
        deleted = self.clear_scope(scope)
        self._session.execute(delete(GraphScope).where(GraphScope.scope_key == scope.key))
        return deleted

    # -----------------------------
    # Nodes
    # -----------------------------
    def fetch_nodes(self, scope: Scope, keys: Iterable[EntityKey]) -> Dict[EntityKey, GraphNode]:
        """
        Batched read of the nodes matching any of the identity keys.
        One statement: filter by scope and name, then by kind in memory.
        """
        wanted = set(keys)
        if not wanted:
            return {}
        names = sorted({key.name for key in wanted})
        rows = (
            self._session.query(GraphNode)
            .filter(GraphNode.scope_key == scope.key, GraphNode.name.in_(names))
            .execution_options(populate_existing=True)
            .all()
        )
        found: Dict[EntityKey, GraphNode] = {}
        for node in rows:
            key = node_key(node)
            if key in wanted:
                found[key] = node
        return found

    def fetch_scope_nodes(self, scope: Scope) -> List[GraphNode]:
        return (
            self._session.query(GraphNode)
            .filter(GraphNode.scope_key == scope.key)
            .order_by(GraphNode.id)
            .all()
        )

    def fetch_nodes_in_scopes(
        self, scopes: Sequence[Scope], include_placeholders: bool = False
    ) -> List[GraphNode]:
        query = self._session.query(GraphNode).filter(
            GraphNode.scope_key.in_([scope.key for scope in scopes])
        )
        if not include_placeholders:
            query = query.filter(GraphNode.is_placeholder.is_(False))
        return query.order_by(GraphNode.kind, GraphNode.name).all()

    def insert_nodes(self, rows: List[dict]) -> None:
        """
        Batched insert of placeholder rows; identities that already exist are
        skipped so a placeholder never overwrites an indexed body.
        """
        if not rows:
            return
        self._insert_ignore(GraphNode, rows, ["scope_key", "kind", "name"])
        logger.debug(f"Inserted up to {len(rows)} GraphNode rows")

    def upsert_nodes(self, rows: List[dict]) -> Set[EntityKey]:
        """
        Batched insert of indexed entities. An identity written concurrently
        by another writer is overwritten (last writer wins), keeping its
        created_at. Returns the keys that turned out to exist already.
        """
        if not rows:
            return set()
        table = GraphNode.__table__
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(table)
        elif dialect == "sqlite":
            stmt = sqlite_insert(table)
        else:
            self._session.execute(insert(table), rows)
            return set()

        stmt = stmt.on_conflict_do_update(
            index_elements=["scope_key", "kind", "name"],
            set_={
                "body": stmt.excluded.body,
                "path": stmt.excluded.path,
                "language": stmt.excluded.language,
                "attributes": stmt.excluded.attributes,
                "is_placeholder": stmt.excluded.is_placeholder,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(table.c.kind, table.c.name, table.c.created_at)
        result = self._session.execute(stmt, rows)

        written_at = {(row["kind"], row["name"]): row["created_at"] for row in rows}
        existing: Set[EntityKey] = set()
        for kind, name, created_at in result:
            if not _same_instant(created_at, written_at[(kind, name)]):
                existing.add(EntityKey(EntityKind(kind), name))
        logger.debug(f"Upserted {len(rows)} GraphNode rows ({len(existing)} already present)")
        return existing

    def update_nodes(self, rows: List[dict]) -> None:
        """
        Batched update by primary key. Each row carries ``node_id`` plus the
        new body, path, language, attributes, is_placeholder and updated_at.
        """
        if not rows:
            return
        table = GraphNode.__table__
        stmt = (
            update(table)
            .where(table.c.id == bindparam("node_id"))
            .values(
                body=bindparam("new_body"),
                path=bindparam("new_path"),
                language=bindparam("new_language"),
                attributes=bindparam("new_attributes"),
                is_placeholder=bindparam("new_is_placeholder"),
                updated_at=bindparam("new_updated_at"),
            )
        )
        self._session.execute(stmt, rows)
        logger.debug(f"Updated {len(rows)} GraphNode rows")

    # -----------------------------
    # Edges
    # -----------------------------
    def fetch_edges_from(self, scope: Scope, source_ids: Iterable[int]) -> List[GraphEdge]:
        ids = sorted(set(source_ids))
        if not ids:
            return []
        return (
            self._session.query(GraphEdge)
            .filter(GraphEdge.scope_key == scope.key, GraphEdge.source_id.in_(ids))
            .execution_options(populate_existing=True)
            .all()
        )

    def fetch_scope_edges(self, scope: Scope) -> List[GraphEdge]:
        return (
            self._session.query(GraphEdge)
            .filter(GraphEdge.scope_key == scope.key)
            .order_by(GraphEdge.id)
            .all()
        )

    def insert_edges(self, rows: List[dict]) -> None:
        if not rows:
            return
        self._insert_ignore(GraphEdge, rows, ["scope_key", "edge_type", "source_id", "target_id"])
        logger.debug(f"Inserted up to {len(rows)} GraphEdge rows")

    def update_edge_properties(self, rows: List[dict]) -> None:
        """Batched update of ``properties`` by edge id (keys: edge_id, new_properties, new_updated_at)."""
        if not rows:
            return
        table = GraphEdge.__table__
        stmt = (
            update(table)
            .where(table.c.id == bindparam("edge_id"))
            .values(
                properties=bindparam("new_properties"),
                updated_at=bindparam("new_updated_at"),
            )
        )
        self._session.execute(stmt, rows)
        logger.debug(f"Updated properties of {len(rows)} GraphEdge rows")

    # -----------------------------
    # Helpers
    # -----------------------------
    def _insert_ignore(self, model, rows, conflict_columns: List[str]):
        table = model.__table__
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(table).on_conflict_do_nothing(index_elements=conflict_columns)
        elif dialect == "sqlite":
            stmt = sqlite_insert(table).on_conflict_do_nothing(index_elements=conflict_columns)
        else:
            stmt = insert(table)
        return self._session.execute(stmt, rows)


def _same_instant(left: datetime, right: datetime) -> bool:
    """Compare datetimes whether or not the backend kept their timezone."""

    def as_naive_utc(value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    return as_naive_utc(left) == as_naive_utc(right)
