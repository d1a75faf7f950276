# codegraph_service/src/core/models_v2/graph_edge.py
"""
GraphEdge

Directed, typed relationship between two nodes of the same scope.
Identity is (scope_key, edge_type, source_id, target_id).
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from src.core.models_v2.base import Base, utcnow


class GraphEdge(Base):
    __tablename__ = "graph_edges"
    __table_args__ = (
        UniqueConstraint(
            "scope_key", "edge_type", "source_id", "target_id", name="uq_graph_edges_identity"
        ),
        Index("idx_graph_edges_scope_type", "scope_key", "edge_type"),
        Index("idx_graph_edges_target", "target_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope_key = Column(String(512), ForeignKey("graph_scopes.scope_key"), nullable=False)
    edge_type = Column(String(32), nullable=False)
    source_id = Column(Integer, ForeignKey("graph_nodes.id"), nullable=False)
    target_id = Column(Integer, ForeignKey("graph_nodes.id"), nullable=False)
    properties = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<GraphEdge {self.scope_key} {self.source_id}-[{self.edge_type}]->{self.target_id}>"
