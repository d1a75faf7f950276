# codegraph_service/src/core/codegraph/relationship_analyzer.py
"""
Relationship Analyzer

Read-only, depth-bounded traversal of one scope.

The scope's nodes and edges are loaded with two queries; traversal then runs
in memory as a breadth-first search with a visited set keyed by node id, so
cycles (mutual calls, circular imports) terminate and each node is reported
once.
"""

from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional
import logging

from src.core.codegraph.entities import EdgeType, EntityKey, Scope
from src.core.config import DEFAULT_MAX_DEPTH, MAX_DEPTH, MIN_DEPTH
from src.core.errors import DepthOutOfRangeError, InvalidAnalysisTypeError
from src.core.graph_persistence import GraphStore, node_key

logger = logging.getLogger(__name__)


class AnalysisType(str, Enum):
    ALL = "all"
    FUNCTION_CALLS = "function-calls"
    CLASS_INHERITANCE = "class-inheritance"
    IMPORTS = "imports"
    DEPENDENCIES = "dependencies"


EDGE_TYPES_BY_ANALYSIS: Dict[AnalysisType, FrozenSet[EdgeType]] = {
    AnalysisType.ALL: frozenset(EdgeType),
    AnalysisType.FUNCTION_CALLS: frozenset({EdgeType.CALLS}),
    AnalysisType.CLASS_INHERITANCE: frozenset({EdgeType.EXTENDS, EdgeType.IMPLEMENTS}),
    AnalysisType.IMPORTS: frozenset({EdgeType.IMPORTS}),
    AnalysisType.DEPENDENCIES: frozenset({EdgeType.INSTANTIATES, EdgeType.USES}),
}


def parse_analysis_type(value) -> AnalysisType:
    if isinstance(value, AnalysisType):
        return value
    try:
        return AnalysisType(value)
    except ValueError:
        allowed = ", ".join(member.value for member in AnalysisType)
        raise InvalidAnalysisTypeError(f"unknown analysis type {value!r} (expected one of: {allowed})")


def check_depth(max_depth) -> int:
    if isinstance(max_depth, bool) or not isinstance(max_depth, int):
        raise DepthOutOfRangeError(max_depth, MIN_DEPTH, MAX_DEPTH)
    if not MIN_DEPTH <= max_depth <= MAX_DEPTH:
        raise DepthOutOfRangeError(max_depth, MIN_DEPTH, MAX_DEPTH)
    return max_depth


@dataclass
class TraversedEdge:
    edge_type: EdgeType
    source: EntityKey
    target: EntityKey
    depth: int
    properties: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.edge_type.value,
            "source": self.source.as_dict(),
            "target": self.target.as_dict(),
            "depth": self.depth,
            "properties": dict(self.properties),
        }


@dataclass
class RelationshipReport:
    scope: Scope
    analysis_type: AnalysisType
    element_name: Optional[str]
    max_depth: int
    node_counts: Dict[str, int] = field(default_factory=dict)
    edge_counts: Dict[str, int] = field(default_factory=dict)
    edges: List[TraversedEdge] = field(default_factory=list)
    visited: List[EntityKey] = field(default_factory=list)
    orphans: List[EntityKey] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scope": self.scope.as_dict(),
            "analysis_type": self.analysis_type.value,
            "element_name": self.element_name,
            "max_depth": self.max_depth,
            "node_counts": dict(self.node_counts),
            "edge_counts": dict(self.edge_counts),
            "edges": [edge.to_dict() for edge in self.edges],
            "visited": [key.as_dict() for key in self.visited],
            "orphans": [key.as_dict() for key in self.orphans],
        }


class RelationshipAnalyzer:
    def __init__(self, store: GraphStore):
        self._store = store

    def analyze(
        self,
        scope: Scope,
        analysis_type=AnalysisType.ALL,
        element_name: Optional[str] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> RelationshipReport:
        analysis = parse_analysis_type(analysis_type)
        depth_limit = check_depth(max_depth)
        edge_types = {edge_type.value for edge_type in EDGE_TYPES_BY_ANALYSIS[analysis]}

        nodes = {node.id: node for node in self._store.fetch_scope_nodes(scope)}
        all_edges = self._store.fetch_scope_edges(scope)

        report = RelationshipReport(
            scope=scope,
            analysis_type=analysis,
            element_name=element_name,
            max_depth=depth_limit,
        )
        report.node_counts = dict(Counter(node.kind for node in nodes.values()))

        touched = set()
        adjacency = defaultdict(list)
        for edge in all_edges:
            touched.add(edge.source_id)
            touched.add(edge.target_id)
            if edge.edge_type in edge_types:
                adjacency[edge.source_id].append(edge)
                if edge.target_id != edge.source_id:
                    adjacency[edge.target_id].append(edge)

        report.orphans = [node_key(node) for node_id, node in nodes.items() if node_id not in touched]

        if element_name is None:
            starts = list(nodes)
        else:
            starts = [node_id for node_id, node in nodes.items() if node.name == element_name]
            if not starts:
                logger.info(f"Element {element_name!r} not found in {scope.key}")

        visited_order: List[int] = []
        visited = set()
        traversed: Dict[int, TraversedEdge] = {}
        queue = deque()
        for node_id in starts:
            visited.add(node_id)
            visited_order.append(node_id)
            queue.append((node_id, 0))

        while queue:
            node_id, depth = queue.popleft()
            if depth >= depth_limit:
                continue
            for edge in adjacency.get(node_id, ()):
                if edge.id not in traversed:
                    traversed[edge.id] = TraversedEdge(
                        edge_type=EdgeType(edge.edge_type),
                        source=node_key(nodes[edge.source_id]),
                        target=node_key(nodes[edge.target_id]),
                        depth=depth + 1,
                        properties=dict(edge.properties or {}),
                    )
                neighbour = edge.target_id if edge.source_id == node_id else edge.source_id
                if neighbour not in visited:
                    visited.add(neighbour)
                    visited_order.append(neighbour)
                    queue.append((neighbour, depth + 1))

        report.edges = list(traversed.values())
        report.visited = [node_key(nodes[node_id]) for node_id in visited_order]
        report.edge_counts = dict(Counter(edge.edge_type.value for edge in report.edges))

        logger.info(
            f"Analyzed {scope.key} ({analysis.value}, depth {depth_limit}): "
            f"{len(report.edges)} relationships, {len(report.orphans)} orphans"
        )
        return report
