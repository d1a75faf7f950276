# codegraph_service/src/core/codegraph/engine.py
"""
CodeGraphEngine

Entry point for every code graph operation. Each call is an independent unit
of work: it opens its own session, runs inside one store transaction (write
path) or one read scope (read path), and closes the session.

Every operation takes an explicit project; branch defaults to the configured
default branch.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union
import logging

from sqlalchemy.orm import sessionmaker

from src.core.codebase.repo_indexer import RepoIndexer, RepoIndexReport
from src.core.codegraph.branch_comparator import BranchComparison
from src.core.codegraph.differential_validator import (
    ClassificationReport,
    DifferentialValidator,
    FileValidationReport,
)
from src.core.codegraph.entities import Scope, coerce_entities
from src.core.codegraph.relationship_analyzer import (
    AnalysisType,
    RelationshipAnalyzer,
    RelationshipReport,
    check_depth,
    parse_analysis_type,
)
from src.core.codegraph.relationship_builder import EdgeUpsertReport, RelationshipBuilder
from src.core.codegraph.scope_resolver import ContextResolver, ScopeSummary, resolve_scope
from src.core.codegraph.upsert_engine import EntityUpsertEngine, UpsertReport
from src.core.config import DEFAULT_MAX_DEPTH
from src.core.database_session import get_sessionmaker
from src.core.graph_persistence import GraphStore

logger = logging.getLogger(__name__)


@dataclass
class IndexReport:
    scope: Scope
    entities: UpsertReport
    relationships: Optional[EdgeUpsertReport] = None

    def to_dict(self) -> dict:
        return {
            "scope": self.scope.as_dict(),
            "entities": self.entities.to_dict(),
            "relationships": self.relationships.to_dict() if self.relationships else None,
        }


class CodeGraphEngine:
    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = get_sessionmaker()
        return self._session_factory

    # -----------------------------
    # Units of work
    # -----------------------------
    @contextmanager
    def _write(self) -> Iterator[GraphStore]:
        with self.session_factory() as session:
            store = GraphStore(session)
            with store.transaction():
                yield store

    @contextmanager
    def _read(self) -> Iterator[GraphStore]:
        with self.session_factory() as session:
            store = GraphStore(session)
            with store.reading():
                yield store

    # -----------------------------
    # Write path
    # -----------------------------
    def upsert_entities(
        self,
        project: str,
        entities: Sequence[Any],
        branch: Optional[str] = None,
        derive_relationships: bool = True,
    ) -> IndexReport:
        """
        Upsert a batch of parsed entities and, in the same transaction,
        derive and upsert their relationships.
        """
        scope = resolve_scope(project, branch)
        batch = coerce_entities(entities)
        with self._write() as store:
            entity_report = EntityUpsertEngine(store).upsert(scope, batch)
            relationship_report = None
            if derive_relationships:
                relationship_report = RelationshipBuilder(store).derive_and_upsert(scope, batch)
        return IndexReport(scope=scope, entities=entity_report, relationships=relationship_report)

    def derive_relationships(
        self, project: str, entities: Sequence[Any], branch: Optional[str] = None
    ) -> EdgeUpsertReport:
        scope = resolve_scope(project, branch)
        batch = coerce_entities(entities)
        with self._write() as store:
            return RelationshipBuilder(store).derive_and_upsert(scope, batch)

    # -----------------------------
    # Read path
    # -----------------------------
    def classify_candidates(
        self, project: str, candidates: Sequence[Any], branch: Optional[str] = None
    ) -> ClassificationReport:
        scope = resolve_scope(project, branch)
        batch = coerce_entities(candidates)
        with self._read() as store:
            return DifferentialValidator(store).classify(scope, batch)

    def validate_file(
        self,
        project: str,
        file_path: str,
        candidates: Sequence[Any],
        branch: Optional[str] = None,
    ) -> FileValidationReport:
        scope = resolve_scope(project, branch)
        batch = coerce_entities(candidates)
        with self._read() as store:
            return DifferentialValidator(store).validate_file(scope, file_path, batch)

    def analyze_relationships(
        self,
        project: str,
        branch: Optional[str] = None,
        analysis_type: Union[str, AnalysisType] = AnalysisType.ALL,
        element_name: Optional[str] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> RelationshipReport:
        scope = resolve_scope(project, branch)
        analysis = parse_analysis_type(analysis_type)
        check_depth(max_depth)
        with self._read() as store:
            return RelationshipAnalyzer(store).analyze(scope, analysis, element_name, max_depth)

    def compare_branches(
        self,
        project: str,
        source_branch: str,
        target_branch: str,
        target_project: Optional[str] = None,
    ) -> BranchComparison:
        source = resolve_scope(project, source_branch)
        target = resolve_scope(target_project if target_project is not None else project, target_branch)
        with self._read() as store:
            return ContextResolver(store).compare_branches(source, target)

    # -----------------------------
    # Scope lifecycle
    # -----------------------------
    def create_scope(self, project: str, branch: Optional[str] = None) -> ScopeSummary:
        scope = resolve_scope(project, branch)
        with self._write() as store:
            return ContextResolver(store).create(scope)

    def list_scopes(self, project: Optional[str] = None) -> List[ScopeSummary]:
        with self._read() as store:
            return ContextResolver(store).list(project)

    def clear_scope(self, project: str, branch: Optional[str] = None) -> int:
        scope = resolve_scope(project, branch)
        with self._write() as store:
            return ContextResolver(store).clear(scope)

    def delete_scope(self, project: str, branch: Optional[str] = None) -> int:
        scope = resolve_scope(project, branch)
        with self._write() as store:
            return ContextResolver(store).delete(scope)

    # -----------------------------
    # Repository indexing
    # -----------------------------
    def index_repository(
        self, project: str, repo_root: Union[str, Path], branch: Optional[str] = None
    ) -> RepoIndexReport:
        return RepoIndexer(self).index(project, Path(repo_root), branch=branch)
