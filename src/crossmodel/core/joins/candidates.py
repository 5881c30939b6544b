"""Join key discovery between two tables.

Suggestions come from three tiers, always ranked in this order:

1. the join catalog (joins users confirmed before, still valid for the
   current table structure),
2. declared foreign keys,
3. name and type heuristics.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from crossmodel.core.catalog.schema_hash import generate_table_hash
from crossmodel.core.catalog.types import are_compatible
from crossmodel.core.models.join_catalog import (
    JoinCatalogEntry,
    JoinSuggestion,
    JoinType,
    SuggestionSource,
)
from crossmodel.core.models.metadata import ColumnMetadata, TableMetadata

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 60
DEFAULT_MAX_SUGGESTIONS = 10

CatalogLookup = Callable[[TableMetadata, TableMetadata], Sequence[JoinCatalogEntry]]

_KEY_SUFFIXES = ("_id", "_key", "_code")


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """``1 - distance / max(len)``; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest


def normalize_column_name(name: str) -> str:
    """Lowercase, drop one key suffix (``_id``, ``_key``, ``_code``) and underscores."""
    lowered = name.lower()
    for suffix in _KEY_SUFFIXES:
        if lowered.endswith(suffix) and len(lowered) > len(suffix):
            lowered = lowered[: -len(suffix)]
            break
    return lowered.replace("_", "")


def singular(table_name: str) -> str:
    lowered = table_name.lower()
    if lowered.endswith("ies") and len(lowered) > 3:
        return lowered[:-3] + "y"
    if lowered.endswith("s") and not lowered.endswith("ss"):
        return lowered[:-1]
    return lowered


@dataclass
class _Candidate:
    suggestion: JoinSuggestion
    distance: int
    left_ordinal: int
    right_ordinal: int

    def rank(self) -> tuple[int, int, int, int, int]:
        tier = {
            SuggestionSource.CATALOG: 0,
            SuggestionSource.FOREIGN_KEY: 1,
            SuggestionSource.HEURISTIC: 2,
        }[self.suggestion.source]
        return (
            tier,
            -self.suggestion.confidence,
            self.distance,
            self.left_ordinal,
            self.right_ordinal,
        )


class JoinCandidateGenerator:
    """Proposes join keys between two tables.

    Args:
        catalog_lookup: Returns catalog entries recorded for a table pair, in
            either orientation, ordered by usage. Without it the catalog tier
            is skipped.
        min_confidence: Suggestions scoring below this are dropped.
        max_suggestions: Maximum number of suggestions returned.
    """

    def __init__(
        self,
        catalog_lookup: CatalogLookup | None = None,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> None:
        self.catalog_lookup = catalog_lookup
        self.min_confidence = min_confidence
        self.max_suggestions = max_suggestions

    def get_combined_suggestions(
        self,
        left_table: TableMetadata,
        right_table: TableMetadata,
    ) -> list[JoinSuggestion]:
        """Rank join candidates between two tables.

        Args:
            left_table: Current metadata of the left table.
            right_table: Current metadata of the right table.

        Returns:
            Suggestions ordered catalog first, then foreign keys, then
            heuristics; within a tier by confidence, edit distance and column
            position. Empty if either table has no columns.
        """
        if not left_table.columns or not right_table.columns:
            return []

        candidates = self._catalog_candidates(left_table, right_table)
        candidates.extend(self._foreign_key_candidates(left_table, right_table))
        candidates.extend(self._heuristic_candidates(left_table, right_table))

        seen: set[tuple[str, str]] = set()
        ranked: list[JoinSuggestion] = []
        for candidate in sorted(candidates, key=_Candidate.rank):
            suggestion = candidate.suggestion
            pair = (suggestion.left_column_name.lower(), suggestion.right_column_name.lower())
            if pair in seen:
                continue
            seen.add(pair)
            if suggestion.confidence < self.min_confidence:
                continue
            ranked.append(suggestion)
        return ranked[: self.max_suggestions]

    # -------------------------------------------------------------------------
    # Tiers
    # -------------------------------------------------------------------------

    def _suggestion(
        self,
        left_table: TableMetadata,
        left: ColumnMetadata,
        right_table: TableMetadata,
        right: ColumnMetadata,
        confidence: int,
        source: SuggestionSource,
        reason: str,
        join_type: JoinType = JoinType.INNER,
        usage_count: int = 0,
        distance: int = 0,
    ) -> _Candidate:
        return _Candidate(
            suggestion=JoinSuggestion(
                left_data_source_id=left_table.data_source_id,
                left_schema_name=left_table.schema_name,
                left_table_name=left_table.table_name,
                left_column_name=left.column_name,
                right_data_source_id=right_table.data_source_id,
                right_schema_name=right_table.schema_name,
                right_table_name=right_table.table_name,
                right_column_name=right.column_name,
                suggested_join_type=join_type,
                confidence=confidence,
                source=source,
                reason=reason,
                usage_count=usage_count,
            ),
            distance=distance,
            left_ordinal=left.ordinal_position,
            right_ordinal=right.ordinal_position,
        )

    def _catalog_candidates(
        self,
        left_table: TableMetadata,
        right_table: TableMetadata,
    ) -> list[_Candidate]:
        if self.catalog_lookup is None:
            return []

        left_hash = generate_table_hash(left_table)
        right_hash = generate_table_hash(right_table)
        candidates = []
        for entry in self.catalog_lookup(left_table, right_table):
            reversed_entry = not (
                entry.left_data_source_id == left_table.data_source_id
                and entry.left_table_name.lower() == left_table.table_name.lower()
            )
            if reversed_entry:
                left_column_name, right_column_name = entry.right_column_name, entry.left_column_name
                stored_left, stored_right = entry.right_schema_hash, entry.left_schema_hash
                join_type = JoinType(entry.join_type).mirrored()
            else:
                left_column_name, right_column_name = entry.left_column_name, entry.right_column_name
                stored_left, stored_right = entry.left_schema_hash, entry.right_schema_hash
                join_type = JoinType(entry.join_type)

            # A table whose structure changed since the join was confirmed
            # invalidates the entry
            if (stored_left is not None and stored_left != left_hash) or (
                stored_right is not None and stored_right != right_hash
            ):
                logger.debug(f"Skipping stale catalog entry {entry.id}")
                continue

            left = left_table.get_column(left_column_name)
            right = right_table.get_column(right_column_name)
            if left is None or right is None:
                continue

            candidates.append(
                self._suggestion(
                    left_table,
                    left,
                    right_table,
                    right,
                    confidence=100,
                    source=SuggestionSource.CATALOG,
                    reason=f"Confirmed join, used {entry.usage_count} time(s)",
                    join_type=join_type,
                    usage_count=entry.usage_count,
                    # Keeps the lookup's usage ordering within the tier
                    distance=len(candidates),
                )
            )
        return candidates

    def _foreign_key_candidates(
        self,
        left_table: TableMetadata,
        right_table: TableMetadata,
    ) -> list[_Candidate]:
        if left_table.data_source_id != right_table.data_source_id:
            return []

        candidates = []
        for left in left_table.columns:
            ref = left.reference
            if ref is None or ref.foreign_table.lower() != right_table.table_name.lower():
                continue
            if ref.foreign_schema and ref.foreign_schema != right_table.schema_name:
                continue
            right = right_table.get_column(ref.foreign_column)
            if right is not None:
                candidates.append(
                    self._suggestion(
                        left_table, left, right_table, right, 100,
                        SuggestionSource.FOREIGN_KEY,
                        f"Foreign key {left_table.table_name}.{left.column_name} "
                        f"references {right_table.table_name}.{right.column_name}",
                    )
                )
        for right in right_table.columns:
            ref = right.reference
            if ref is None or ref.foreign_table.lower() != left_table.table_name.lower():
                continue
            if ref.foreign_schema and ref.foreign_schema != left_table.schema_name:
                continue
            left = left_table.get_column(ref.foreign_column)
            if left is not None:
                candidates.append(
                    self._suggestion(
                        left_table, left, right_table, right, 100,
                        SuggestionSource.FOREIGN_KEY,
                        f"Foreign key {right_table.table_name}.{right.column_name} "
                        f"references {left_table.table_name}.{left.column_name}",
                    )
                )
        return candidates

    def _heuristic_candidates(
        self,
        left_table: TableMetadata,
        right_table: TableMetadata,
    ) -> list[_Candidate]:
        left_key = f"{singular(left_table.table_name)}_id"
        right_key = f"{singular(right_table.table_name)}_id"

        candidates = []
        for left in left_table.columns:
            for right in right_table.columns:
                if not are_compatible(left.type_tag, right.type_tag):
                    continue
                left_name, right_name = left.column_name.lower(), right.column_name.lower()
                left_norm = normalize_column_name(left_name)
                right_norm = normalize_column_name(right_name)
                distance = levenshtein(left_norm, right_norm)

                if left_name == right_name or (left_norm and left_norm == right_norm):
                    confidence, reason = 95, "Matching column names"
                elif (left_name == right_key and right_name == "id") or (
                    right_name == left_key and left_name == "id"
                ):
                    confidence, reason = 90, "Table key naming convention"
                else:
                    score = round(similarity(left_norm, right_norm) * 100)
                    confidence, reason = score, f"Similar column names ({score}%)"

                candidates.append(
                    self._suggestion(
                        left_table, left, right_table, right, confidence,
                        SuggestionSource.HEURISTIC, reason,
                        distance=distance,
                    )
                )
        return candidates
