"""
API Endpoints for the Code Graph

Provides:
- POST   /v1/codegraph/entities:          upsert parsed entities (+ relationships)
- POST   /v1/codegraph/relationships:     derive and upsert relationships only
- POST   /v1/codegraph/classify:          NEW / MATCHING / MODIFIED per candidate
- POST   /v1/codegraph/validate-file:     classify one file's elements
- POST   /v1/codegraph/analyze:           depth-bounded relationship analysis
- POST   /v1/codegraph/compare-branches:  structural diff of two branches
- POST   /v1/codegraph/index-repo:        index a local Python repository
- GET    /v1/codegraph/scopes:            list scopes
- POST   /v1/codegraph/scopes:            create a scope
- POST   /v1/codegraph/scopes/clear:      clear a scope's entities
- DELETE /v1/codegraph/scopes:            delete a scope

Integrates:
- CodeGraphEngine for every operation (one transaction per request)
"""

from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.core.codegraph.engine import CodeGraphEngine
from src.core.config import DEFAULT_MAX_DEPTH
from src.core.errors import (
    DepthOutOfRangeError,
    GraphStoreError,
    InvalidAnalysisTypeError,
    InvalidScopeError,
    MalformedEntityError,
    StoreUnavailableError,
)

router = APIRouter(tags=["codegraph"])
logger = logging.getLogger(__name__)


def get_engine() -> CodeGraphEngine:
    return CodeGraphEngine()


# -----------------------------
# Request / Response Models
# -----------------------------
class ScopeRequest(BaseModel):
    project: str
    branch: Optional[str] = None


class IndexRequest(ScopeRequest):
    entities: List[Dict[str, Any]]
    derive_relationships: bool = True


class DeriveRequest(ScopeRequest):
    entities: List[Dict[str, Any]]


class ClassifyRequest(ScopeRequest):
    candidates: List[Dict[str, Any]]
    verbose: bool = False


class ValidateFileRequest(ClassifyRequest):
    file_path: str


class AnalyzeRequest(ScopeRequest):
    analysis_type: str = "all"
    element_name: Optional[str] = None
    max_depth: int = DEFAULT_MAX_DEPTH


class CompareBranchesRequest(BaseModel):
    project: str
    source_branch: str
    target_branch: str
    target_project: Optional[str] = None


class RepoIndexRequest(ScopeRequest):
    local_path: str


class ScopeActionResponse(BaseModel):
    project: str
    branch: Optional[str] = None
    affected_entities: int = Field(default=0, ge=0)


# -----------------------------
# Error mapping
# -----------------------------
def _call(operation, *args, **kwargs):
    try:
        return operation(*args, **kwargs)
    except (InvalidScopeError, MalformedEntityError, DepthOutOfRangeError, InvalidAnalysisTypeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except StoreUnavailableError as exc:
        logger.error(f"❌ Graph store unavailable: {exc}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Graph store unavailable")
    except GraphStoreError as exc:
        logger.error(f"❌ Graph store error: {exc}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Graph store error")


def _strip_bodies(payload: dict) -> dict:
    for result in payload.get("results", []):
        result.pop("existing_body", None)
    return payload


# -----------------------------
# Write path
# -----------------------------
@router.post("/entities")
def upsert_entities(request: IndexRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    report = _call(
        engine.upsert_entities,
        request.project,
        request.entities,
        branch=request.branch,
        derive_relationships=request.derive_relationships,
    )
    return report.to_dict()


@router.post("/relationships")
def derive_relationships(request: DeriveRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    report = _call(engine.derive_relationships, request.project, request.entities, branch=request.branch)
    return report.to_dict()


@router.post("/index-repo")
def index_repo(request: RepoIndexRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    try:
        report = _call(engine.index_repository, request.project, request.local_path, branch=request.branch)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.info(f"✅ Repo indexing completed: {request.project} ({len(report.files_indexed)} files)")
    return report.to_dict()


# -----------------------------
# Read path
# -----------------------------
@router.post("/classify")
def classify(request: ClassifyRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    report = _call(engine.classify_candidates, request.project, request.candidates, branch=request.branch)
    payload = report.to_dict()
    return payload if request.verbose else _strip_bodies(payload)


@router.post("/validate-file")
def validate_file(request: ValidateFileRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    report = _call(
        engine.validate_file,
        request.project,
        request.file_path,
        request.candidates,
        branch=request.branch,
    )
    payload = report.to_dict()
    return payload if request.verbose else _strip_bodies(payload)


@router.post("/analyze")
def analyze(request: AnalyzeRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    report = _call(
        engine.analyze_relationships,
        request.project,
        branch=request.branch,
        analysis_type=request.analysis_type,
        element_name=request.element_name,
        max_depth=request.max_depth,
    )
    return report.to_dict()


@router.post("/compare-branches")
def compare_branches(request: CompareBranchesRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    comparison = _call(
        engine.compare_branches,
        request.project,
        request.source_branch,
        request.target_branch,
        target_project=request.target_project,
    )
    return comparison.to_dict()


# -----------------------------
# Scope lifecycle
# -----------------------------
@router.get("/scopes")
def list_scopes(
    project: Optional[str] = Query(default=None),
    engine: CodeGraphEngine = Depends(get_engine),
) -> List[dict]:
    return [summary.to_dict() for summary in _call(engine.list_scopes, project)]


@router.post("/scopes", status_code=status.HTTP_201_CREATED)
def create_scope(request: ScopeRequest, engine: CodeGraphEngine = Depends(get_engine)) -> dict:
    summary = _call(engine.create_scope, request.project, branch=request.branch)
    return summary.to_dict()


@router.post("/scopes/clear", response_model=ScopeActionResponse)
def clear_scope(request: ScopeRequest, engine: CodeGraphEngine = Depends(get_engine)) -> ScopeActionResponse:
    cleared = _call(engine.clear_scope, request.project, branch=request.branch)
    return ScopeActionResponse(project=request.project, branch=request.branch, affected_entities=cleared)


@router.delete("/scopes", response_model=ScopeActionResponse)
def delete_scope(
    project: str = Query(...),
    branch: Optional[str] = Query(default=None),
    engine: CodeGraphEngine = Depends(get_engine),
) -> ScopeActionResponse:
    deleted = _call(engine.delete_scope, project, branch=branch)
    return ScopeActionResponse(project=project, branch=branch, affected_entities=deleted)
