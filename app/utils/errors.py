# =============================================
# File: app/utils/errors.py
# Purpose: Recommendation pipeline error taxonomy
# =============================================
from __future__ import annotations


class RecommendationError(RuntimeError):
    """Base error for the recommendation pipeline; `kind` is machine-readable."""
    kind = "internal"


class IndexNotInitializedError(RecommendationError):
    kind = "uninitialized_index"

    def __init__(self, message: str = "Vector store not initialized") -> None:
        super().__init__(message)


class NoCandidatesError(RecommendationError):
    kind = "no_candidates"

    def __init__(self, message: str = "No available drills found") -> None:
        super().__init__(message)


class InsufficientCandidatesError(RecommendationError):
    kind = "insufficient_candidates"

    def __init__(self, found: int, minimum: int = 3) -> None:
        super().__init__(f"Insufficient candidates for a block: {found} < {minimum}")
        self.found = found
        self.minimum = minimum
