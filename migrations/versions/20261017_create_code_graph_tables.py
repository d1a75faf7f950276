"""create code graph tables: graph_scopes, graph_nodes, graph_edges

Revision ID: 20261017_codegraph
Revises:
Create Date: 2026-10-17

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261017_codegraph"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # 1. Scopes: one row per (project, branch)
    op.create_table(
        "graph_scopes",
        sa.Column("scope_key", sa.String(512), primary_key=True),
        sa.Column("project", sa.String(255), nullable=False),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project", "branch", name="uq_graph_scopes_project_branch"),
    )
    op.create_index("ix_graph_scopes_project", "graph_scopes", ["project"])

    # 2. Nodes, unique per (scope_key, kind, name)
    op.create_table(
        "graph_nodes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("scope_key", sa.String(512), sa.ForeignKey("graph_scopes.scope_key"), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("name", sa.String(1024), nullable=False),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("path", sa.String(1024), nullable=True),
        sa.Column("language", sa.String(64), nullable=True),
        sa.Column("attributes", sa.JSON, nullable=False),
        sa.Column("is_placeholder", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("scope_key", "kind", "name", name="uq_graph_nodes_identity"),
    )
    op.create_index("idx_graph_nodes_scope_name", "graph_nodes", ["scope_key", "name"])

    # 3. Edges, unique per (scope_key, edge_type, source_id, target_id)
    op.create_table(
        "graph_edges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("scope_key", sa.String(512), sa.ForeignKey("graph_scopes.scope_key"), nullable=False),
        sa.Column("edge_type", sa.String(32), nullable=False),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("graph_nodes.id"), nullable=False),
        sa.Column("target_id", sa.Integer, sa.ForeignKey("graph_nodes.id"), nullable=False),
        sa.Column("properties", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "scope_key", "edge_type", "source_id", "target_id", name="uq_graph_edges_identity"
        ),
    )
    op.create_index("idx_graph_edges_scope_type", "graph_edges", ["scope_key", "edge_type"])
    op.create_index("idx_graph_edges_target", "graph_edges", ["target_id"])


def downgrade():
    # 1. Drop indexes
    op.drop_index("idx_graph_edges_target", table_name="graph_edges")
    op.drop_index("idx_graph_edges_scope_type", table_name="graph_edges")
    op.drop_index("idx_graph_nodes_scope_name", table_name="graph_nodes")
    op.drop_index("ix_graph_scopes_project", table_name="graph_scopes")

    # 2. Drop tables, edges first
    op.drop_table("graph_edges")
    op.drop_table("graph_nodes")
    op.drop_table("graph_scopes")
