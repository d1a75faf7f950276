# codegraph_service/src/core/codegraph/differential_validator.py
"""
Differential Validator

Classifies candidate elements against an indexed scope:

- NEW       no indexed element with the same (kind, name)
- MATCHING  indexed, and the normalized bodies are equal
- MODIFIED  indexed, but the normalized bodies differ

All candidates are resolved with a single batched read. Nothing is written;
callers decide separately whether to index the candidates.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence
import logging

from src.core.codegraph.entities import EntityKey, EntityKind, ParsedEntity, Scope
from src.core.codegraph.normalization import bodies_match
from src.core.graph_persistence import GraphStore

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    NEW = "NEW"
    MATCHING = "MATCHING"
    MODIFIED = "MODIFIED"


@dataclass
class CandidateResult:
    name: str
    kind: EntityKind
    status: Classification
    existing_body: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"name": self.name, "kind": self.kind.value, "status": self.status.value}
        if self.existing_body is not None:
            data["existing_body"] = self.existing_body
        return data


@dataclass
class ClassificationReport:
    scope: Scope
    results: List[CandidateResult] = field(default_factory=list)

    def count(self, status: Classification) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def counts(self) -> dict:
        return {status.value: self.count(status) for status in Classification}

    def to_dict(self) -> dict:
        return {
            "scope": self.scope.as_dict(),
            "results": [result.to_dict() for result in self.results],
            "counts": self.counts,
        }


@dataclass
class FileValidationReport:
    file_path: str
    file_exists: bool
    classification: ClassificationReport

    @property
    def status(self) -> str:
        if not self.file_exists:
            return "new file"
        if self.classification.count(Classification.MODIFIED):
            return "modified"
        if self.classification.count(Classification.NEW):
            return "updated"
        return "unchanged"

    def to_dict(self) -> dict:
        data = self.classification.to_dict()
        data.update({
            "file_path": self.file_path,
            "file_exists": self.file_exists,
            "status": self.status,
        })
        return data


class DifferentialValidator:
    def __init__(self, store: GraphStore):
        self._store = store

    def classify(self, scope: Scope, candidates: Sequence[ParsedEntity]) -> ClassificationReport:
        return self._classify(scope, candidates, extra_keys=[])[0]

    def validate_file(
        self, scope: Scope, file_path: str, candidates: Sequence[ParsedEntity]
    ) -> FileValidationReport:
        """
        Classify the elements of one file and report whether the file itself
        has been indexed. Still one read.
        """
        file_key = EntityKey(EntityKind.FILE, file_path)
        elements = [candidate for candidate in candidates if candidate.key != file_key]
        report, found = self._classify(scope, elements, extra_keys=[file_key])
        file_node = found.get(file_key)
        file_exists = file_node is not None and not file_node.is_placeholder
        result = FileValidationReport(file_path=file_path, file_exists=file_exists, classification=report)
        logger.info(f"Validated {file_path} against {scope.key}: {result.status}")
        return result

    def _classify(self, scope: Scope, candidates: Sequence[ParsedEntity], extra_keys: List[EntityKey]):
        keys = [candidate.key for candidate in candidates] + list(extra_keys)
        found = self._store.fetch_nodes(scope, keys)

        report = ClassificationReport(scope=scope)
        for candidate in candidates:
            node = found.get(candidate.key)
            # A placeholder is only referenced, never indexed.
            if node is None or node.is_placeholder:
                status = Classification.NEW
                existing_body = None
            else:
                existing_body = node.body
                if bodies_match(node.body, candidate.body, candidate.language or node.language):
                    status = Classification.MATCHING
                else:
                    status = Classification.MODIFIED
            logger.debug(f"{candidate.key} in {scope.key}: {status.value}")
            report.results.append(
                CandidateResult(
                    name=candidate.name,
                    kind=candidate.kind,
                    status=status,
                    existing_body=existing_body,
                )
            )

        logger.info(
            f"Classified {len(candidates)} candidates against {scope.key}: "
            f"{report.count(Classification.NEW)} new, "
            f"{report.count(Classification.MATCHING)} matching, "
            f"{report.count(Classification.MODIFIED)} modified"
        )
        return report, found
