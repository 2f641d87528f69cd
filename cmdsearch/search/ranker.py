"""
Command Catalog Similarity Ranker

Brute-force cosine scoring of candidate vectors against a query vector.
The catalog is small enough that no approximate index is needed.

Functions:
    rank_candidates — Score, threshold, sort and truncate candidates

Rules:
    - Ordering is score descending, ties by ascending command id
    - A vector of the wrong length raises DimensionMismatch; it is a sign of
      corrupt storage and is never skipped silently
    - Empty candidate input is a valid, empty result
"""

from collections.abc import Mapping, Sequence
from typing import Any, Optional

from cmdsearch.errors import DimensionMismatch
from cmdsearch.search.vectors import cosine_similarity


def rank_candidates(
    query_vector: Sequence[float],
    candidate_vectors: Mapping[int, Sequence[float]],
    threshold: float,
    limit: int,
    metadata: Optional[Mapping[int, dict[str, Any]]] = None,
) -> list[dict[str, Any]]:
    """
    Rank candidates by cosine similarity to ``query_vector``.

    Args:
        query_vector: Embedding of the query text.
        candidate_vectors: Mapping of command id → stored vector.
        threshold: Minimum score kept (inclusive).
        limit: Maximum number of results.
        metadata: Optional display fields per command id, merged into each
            result.  Candidates without metadata get only ``id`` and ``score``.

    Returns:
        List of dicts with ``id``, ``score`` and any metadata fields.

    Raises:
        DimensionMismatch: If a candidate vector differs in length from the
            query vector.
    """
    if limit <= 0 or not candidate_vectors:
        return []

    scored: list[tuple[float, int]] = []
    for record_id, vector in candidate_vectors.items():
        if len(vector) != len(query_vector):
            raise DimensionMismatch(
                expected=len(query_vector), actual=len(vector), record_id=record_id
            )
        score = cosine_similarity(query_vector, vector)
        if score >= threshold:
            scored.append((score, record_id))

    scored.sort(key=lambda item: (-item[0], item[1]))

    results = []
    for score, record_id in scored[:limit]:
        fields = dict(metadata.get(record_id, {})) if metadata else {}
        fields["id"] = record_id
        fields["score"] = score
        results.append(fields)
    return results
