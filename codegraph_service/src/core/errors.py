# codegraph_service/src/core/errors.py
"""
Error taxonomy for the code graph engine.

Every failure surfaces to the caller as one of these types; nothing is
logged-and-continued.
"""

from typing import Optional


class CodeGraphError(Exception):
    """Base class for all engine errors."""


class InvalidScopeError(CodeGraphError, ValueError):
    """Malformed project/branch or a comparison across projects."""


class MalformedEntityError(CodeGraphError, ValueError):
    """An entity or candidate in a batch is missing identity fields or is inconsistent.

    The whole batch is rejected; ``index`` and ``identity`` point at the offender.
    """

    def __init__(self, message: str, index: Optional[int] = None, identity: Optional[tuple] = None):
        self.index = index
        self.identity = identity
        detail = message
        if index is not None:
            detail = f"entity #{index}: {detail}"
        if identity is not None:
            detail = f"{detail} (identity={identity})"
        super().__init__(detail)


class DepthOutOfRangeError(CodeGraphError, ValueError):
    def __init__(self, depth, minimum: int, maximum: int):
        self.depth = depth
        super().__init__(f"max_depth must be between {minimum} and {maximum}, got {depth}")


class InvalidAnalysisTypeError(CodeGraphError, ValueError):
    pass


class StoreUnavailableError(CodeGraphError):
    """The graph store could not be reached. Not retried internally."""


class GraphStoreError(CodeGraphError):
    """Any other failure reported by the graph store."""
