# codegraph_service/src/core/codegraph/scope_resolver.py
"""
Context Resolver

Maps (project, branch) to a scope and manages scope lifecycle:
create, list, clear, delete and branch comparison.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

from src.core.codegraph.branch_comparator import BranchComparator, BranchComparison
from src.core.codegraph.entities import Scope
from src.core.config import DEFAULT_BRANCH
from src.core.errors import InvalidScopeError
from src.core.graph_persistence import GraphStore

logger = logging.getLogger(__name__)


def resolve_scope(project: str, branch: Optional[str] = None) -> Scope:
    """
    Deterministically build the scope for a project/branch pair.
    ``branch`` falls back to the configured default branch.
    """
    if not isinstance(project, str) or not project.strip():
        raise InvalidScopeError("project name is required")
    if ":" in project:
        raise InvalidScopeError(f"project name must not contain ':' ({project!r})")
    if branch is None:
        branch = DEFAULT_BRANCH
    if not isinstance(branch, str) or not branch.strip():
        raise InvalidScopeError("branch name must not be blank")
    return Scope(project=project.strip(), branch=branch.strip())


@dataclass
class ScopeSummary:
    scope: Scope
    entity_counts: Dict[str, int] = field(default_factory=dict)
    edge_count: int = 0
    created: bool = False

    @property
    def total_entities(self) -> int:
        return sum(self.entity_counts.values())

    def to_dict(self) -> dict:
        return {
            "project": self.scope.project,
            "branch": self.scope.branch,
            "scope_key": self.scope.key,
            "entity_counts": dict(self.entity_counts),
            "total_entities": self.total_entities,
            "edge_count": self.edge_count,
            "created": self.created,
        }


class ContextResolver:
    """Scope lifecycle operations over one GraphStore."""

    def __init__(self, store: GraphStore):
        self._store = store

    def create(self, scope: Scope) -> ScopeSummary:
        created = self._store.ensure_scope(scope)
        summary = self._summaries([scope])[0]
        summary.created = created
        if created:
            logger.info(f"Created scope {scope.key}")
        else:
            logger.info(f"Scope {scope.key} already exists with {summary.total_entities} entities")
        return summary

    def list(self, project: Optional[str] = None) -> List[ScopeSummary]:
        scopes = [Scope(row.project, row.branch) for row in self._store.list_scopes(project)]
        return self._summaries(scopes)

    def clear(self, scope: Scope) -> int:
        cleared = self._store.clear_scope(scope)
        logger.info(f"Cleared {cleared} entities from scope {scope.key}")
        return cleared

    def delete(self, scope: Scope) -> int:
        deleted = self._store.delete_scope(scope)
        logger.info(f"Deleted scope {scope.key} and {deleted} entities")
        return deleted

    def compare_branches(self, source: Scope, target: Scope) -> BranchComparison:
        if source.project != target.project:
            raise InvalidScopeError(
                f"cannot compare branches of different projects ({source.key} vs {target.key})"
            )
        return BranchComparator(self._store).compare(source, target)

    def _summaries(self, scopes: List[Scope]) -> List[ScopeSummary]:
        keys = [scope.key for scope in scopes]
        node_counts = self._store.count_nodes_by_kind(keys)
        edge_counts = self._store.count_edges(keys)
        return [
            ScopeSummary(
                scope=scope,
                entity_counts=node_counts.get(scope.key, {}),
                edge_count=edge_counts.get(scope.key, 0),
            )
            for scope in scopes
        ]
