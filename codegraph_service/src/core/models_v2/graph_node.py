# codegraph_service/src/core/models_v2/graph_node.py
"""
GraphNode

One structural code element (file, function, class, ...) inside a scope.
Identity is (scope_key, kind, name).
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from src.core.models_v2.base import Base, utcnow


class GraphNode(Base):
    __tablename__ = "graph_nodes"
    __table_args__ = (
        UniqueConstraint("scope_key", "kind", "name", name="uq_graph_nodes_identity"),
        Index("idx_graph_nodes_scope_name", "scope_key", "name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope_key = Column(String(512), ForeignKey("graph_scopes.scope_key"), nullable=False)
    kind = Column(String(32), nullable=False)
    name = Column(String(1024), nullable=False)
    body = Column(Text, nullable=True)
    path = Column(String(1024), nullable=True)
    language = Column(String(64), nullable=True)
    attributes = Column(JSON, nullable=False, default=dict)
    is_placeholder = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<GraphNode {self.scope_key} {self.kind}:{self.name}>"
