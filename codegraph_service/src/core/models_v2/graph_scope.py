# codegraph_service/src/core/models_v2/graph_scope.py
"""
GraphScope

Registration row for a (project, branch) isolation scope. Nodes and edges
reference it through scope_key.
"""

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from src.core.models_v2.base import Base, utcnow


class GraphScope(Base):
    __tablename__ = "graph_scopes"
    __table_args__ = (
        UniqueConstraint("project", "branch", name="uq_graph_scopes_project_branch"),
    )

    scope_key = Column(String(512), primary_key=True)
    project = Column(String(255), nullable=False, index=True)
    branch = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<GraphScope {self.scope_key}>"
