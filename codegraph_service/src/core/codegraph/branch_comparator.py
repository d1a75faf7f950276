# codegraph_service/src/core/codegraph/branch_comparator.py
"""
Branch Comparator

Set difference between two scopes by (kind, name). Presence only: an
element in both scopes is "common" even when its body differs; those are
additionally listed under ``changed``.
"""

from dataclasses import dataclass, field
from typing import Dict, List
import logging

from src.core.codegraph.entities import EntityKey, Scope
from src.core.codegraph.normalization import bodies_match
from src.core.graph_persistence import GraphStore, node_key

logger = logging.getLogger(__name__)


@dataclass
class BranchComparison:
    source: Scope
    target: Scope
    common: List[EntityKey] = field(default_factory=list)
    only_source: List[EntityKey] = field(default_factory=list)
    only_target: List[EntityKey] = field(default_factory=list)
    changed: List[EntityKey] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "source": self.source.as_dict(),
            "target": self.target.as_dict(),
            "common": [key.as_dict() for key in self.common],
            "only_source": [key.as_dict() for key in self.only_source],
            "only_target": [key.as_dict() for key in self.only_target],
            "changed": [key.as_dict() for key in self.changed],
        }


def _sort_key(key: EntityKey):
    return (key.kind.value, key.name)


class BranchComparator:
    def __init__(self, store: GraphStore):
        self._store = store

    def compare(self, source: Scope, target: Scope) -> BranchComparison:
        source_bodies: Dict[EntityKey, str] = {}
        target_bodies: Dict[EntityKey, str] = {}
        languages: Dict[EntityKey, str] = {}
        for node in self._store.fetch_nodes_in_scopes([source, target]):
            if node.language:
                languages.setdefault(node_key(node), node.language)
            if node.scope_key == source.key:
                source_bodies[node_key(node)] = node.body
            if node.scope_key == target.key:
                target_bodies[node_key(node)] = node.body

        common = sorted(set(source_bodies) & set(target_bodies), key=_sort_key)
        comparison = BranchComparison(
            source=source,
            target=target,
            common=common,
            only_source=sorted(set(source_bodies) - set(target_bodies), key=_sort_key),
            only_target=sorted(set(target_bodies) - set(source_bodies), key=_sort_key),
            changed=[
                key
                for key in common
                if not bodies_match(source_bodies[key], target_bodies[key], languages.get(key))
            ],
        )
        logger.info(
            f"Compared {source.key} with {target.key}: {len(comparison.common)} common, "
            f"{len(comparison.only_source)} only in {source.branch}, "
            f"{len(comparison.only_target)} only in {target.branch}"
        )
        return comparison
