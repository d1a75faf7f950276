import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.codegraph.engine import CodeGraphEngine
from src.core.models_v2.base import Base
from src.core.models_v2.graph_edge import GraphEdge
from src.core.models_v2.graph_node import GraphNode
from src.core.models_v2.graph_scope import GraphScope  # noqa: F401  (registers the table)


@pytest.fixture
def db_engine():
    """
    In-memory SQLite database shared by every session of one test.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def graph_engine(session_factory):
    return CodeGraphEngine(session_factory)


@pytest.fixture
def statement_counter(db_engine):
    """
    Counts DBAPI round trips (one per cursor execute / executemany).
    """
    counter = {"count": 0}

    def _count(conn, cursor, statement, parameters, context, executemany):
        counter["count"] += 1

    event.listen(db_engine, "before_cursor_execute", _count)
    yield counter
    event.remove(db_engine, "before_cursor_execute", _count)


@pytest.fixture
def nodes(session_factory):
    """
    Return the nodes of a scope (optionally filtered by kind/name) from a fresh session.
    """

    def _nodes(scope_key, kind=None, name=None):
        with session_factory() as session:
            query = session.query(GraphNode).filter(GraphNode.scope_key == scope_key)
            if kind is not None:
                query = query.filter(GraphNode.kind == kind)
            if name is not None:
                query = query.filter(GraphNode.name == name)
            return query.order_by(GraphNode.id).all()

    return _nodes


@pytest.fixture
def edges(session_factory):
    """
    Return (edge_type, source name, target name, properties) tuples of a scope.
    """

    def _edges(scope_key, edge_type=None):
        with session_factory() as session:
            by_id = {
                node.id: node.name
                for node in session.query(GraphNode).filter(GraphNode.scope_key == scope_key)
            }
            query = session.query(GraphEdge).filter(GraphEdge.scope_key == scope_key)
            if edge_type is not None:
                query = query.filter(GraphEdge.edge_type == edge_type)
            return [
                (edge.edge_type, by_id[edge.source_id], by_id[edge.target_id], edge.properties)
                for edge in query.order_by(GraphEdge.id)
            ]

    return _edges

