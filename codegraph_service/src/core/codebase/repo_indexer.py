# codegraph_service/src/core/codebase/repo_indexer.py
"""
RepoIndexer

Walk a repository, extract Python entities, and index them into one scope.

Each file is indexed in its own engine call (one transaction, batched
queries). References to entities defined in files that have not been
indexed yet become placeholders and are filled in when those files are
reached, so file order does not matter.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
import logging

from src.core.extractors.python_extractor import PythonASTExtractor

logger = logging.getLogger(__name__)


@dataclass
class RepoIndexReport:
    project: str
    branch: Optional[str]
    files_indexed: List[str] = field(default_factory=list)
    files_skipped: Dict[str, str] = field(default_factory=dict)
    entities_created: int = 0
    entities_updated: int = 0
    entities_unchanged: int = 0
    relationships_created: int = 0

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "branch": self.branch,
            "files_indexed": list(self.files_indexed),
            "files_skipped": dict(self.files_skipped),
            "entities": {
                "created": self.entities_created,
                "updated": self.entities_updated,
                "unchanged": self.entities_unchanged,
            },
            "relationships_created": self.relationships_created,
        }


class RepoIndexer:
    """
    Walk repository, invoke extractors, and upsert each file's entities.
    """

    def __init__(self, engine):
        self.engine = engine

    def index(self, project: str, repo_root: Path, branch: Optional[str] = None) -> RepoIndexReport:
        repo_root = Path(repo_root)
        if not repo_root.is_dir():
            raise ValueError(f"Repository root does not exist: {repo_root}")

        report = RepoIndexReport(project=project, branch=branch)
        for file_path in self._walk_repo(repo_root):
            relative_path = file_path.relative_to(repo_root).as_posix()
            extractor = self._select_extractor(relative_path)
            if extractor is None:
                continue

            try:
                source = file_path.read_text(encoding="utf-8")
                entities = extractor.extract(source)
            except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as exc:
                logger.warning(f"Skipping {relative_path}: {exc}")
                report.files_skipped[relative_path] = str(exc)
                continue

            result = self.engine.upsert_entities(project, entities, branch=branch)
            report.files_indexed.append(relative_path)
            report.entities_created += len(result.entities.created)
            report.entities_updated += len(result.entities.updated)
            report.entities_unchanged += len(result.entities.unchanged)
            if result.relationships is not None:
                report.relationships_created += len(result.relationships.created)

        logger.info(
            f"Indexed {len(report.files_indexed)} files from {repo_root} into {project} "
            f"({len(report.files_skipped)} skipped)"
        )
        return report

    # ----------------------------
    # Helpers
    # ----------------------------
    def _walk_repo(self, repo_root: Path):
        """Walk repository and yield Python files only, skipping hidden directories."""
        for path in sorted(repo_root.rglob("*.py")):
            if any(part.startswith(".") for part in path.relative_to(repo_root).parts):
                continue
            yield path

    def _select_extractor(self, relative_path: str):
        """Return appropriate extractor for the file."""
        if relative_path.endswith(".py"):
            return PythonASTExtractor(relative_path=relative_path)
        return None
