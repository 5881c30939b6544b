"""Join key discovery."""

from crossmodel.core.joins.candidates import (
    DEFAULT_MAX_SUGGESTIONS,
    DEFAULT_MIN_CONFIDENCE,
    JoinCandidateGenerator,
    levenshtein,
    normalize_column_name,
    similarity,
)

__all__ = [
    "DEFAULT_MAX_SUGGESTIONS",
    "DEFAULT_MIN_CONFIDENCE",
    "JoinCandidateGenerator",
    "levenshtein",
    "normalize_column_name",
    "similarity",
]
