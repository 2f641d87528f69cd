"""
Command Catalog Hybrid Search Module

Answers natural-language lookups by combining lexical candidate filtering
with cosine similarity over stored command embeddings.

Functions:
    search_commands   — Keyword filter → embedding lookup → cosine ranking
    advanced_search   — search_commands plus structured metadata filters

Pipeline:
    1. Extract keywords from the query
    2. Filter candidate ids through the FTS index (falls back to all active)
    3. Embed the query text (runs concurrently with step 2)
    4. Load candidate vectors and rank by cosine similarity

Rules:
    - Never return results below the score threshold
    - Never log embedding vectors — only metadata
    - Empty list is a valid response when no results meet threshold
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional

import structlog
from sqlalchemy.orm import Session

from cmdsearch.config import settings
from cmdsearch.db import dal
from cmdsearch.errors import ValidationError
from cmdsearch.search.candidates import filter_candidates
from cmdsearch.search.embeddings import embed_single
from cmdsearch.search.keywords import extract_keywords
from cmdsearch.search.ranker import rank_candidates
from cmdsearch.search.store import get_embeddings

logger = structlog.get_logger(__name__)

_METADATA_FILTERS = ("category", "device", "mode", "impact")


def _check_params(query: str, limit: int, threshold: float) -> None:
    if not query or not query.strip():
        raise ValidationError("Query parameter is required")
    if limit < 1:
        raise ValidationError(f"limit ({limit}) must be at least 1")
    if limit > settings.SEARCH_MAX_LIMIT:
        raise ValidationError(
            f"limit ({limit}) exceeds maximum ({settings.SEARCH_MAX_LIMIT})"
        )
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(f"score_threshold ({threshold}) must be within [0, 1]")


def _ranked_search(
    query: str,
    db: Session,
    client,
    limit: int,
    threshold: float,
) -> list[dict[str, Any]]:
    start_time = time.time()
    tokens = extract_keywords(query, settings.KEYWORD_MIN_LENGTH)

    # The provider call is the only blocking step; overlap it with the FTS query
    with ThreadPoolExecutor(max_workers=1) as pool:
        query_future = pool.submit(embed_single, query, client)
        candidate_ids = filter_candidates(tokens, db)
        query_vector = query_future.result()

    vectors = get_embeddings(candidate_ids, db)
    metadata = dal.get_search_metadata(vectors.keys(), db=db)
    results = rank_candidates(query_vector, vectors, threshold, limit, metadata)

    logger.info(
        "search_commands",
        query=query[:100],
        keywords=tokens,
        candidate_count=len(candidate_ids),
        scored_count=len(vectors),
        result_count=len(results),
        threshold=threshold,
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return results


def search_commands(
    query: str,
    db: Session,
    client,
    limit: Optional[int] = None,
    threshold: Optional[float] = None,
) -> list[dict[str, Any]]:
    """
    Rank commands by semantic similarity to ``query``.

    Args:
        query: Natural-language lookup text.
        db: SQLAlchemy session.
        client: Embedding provider client.
        limit: Max results.  Defaults to SEARCH_DEFAULT_LIMIT.
        threshold: Minimum cosine score.  Defaults to SEARCH_SIMILARITY_THRESHOLD.

    Returns:
        List of dicts with id, name, description, arguments, category, mode,
        type, device, impact and score; best first.

    Raises:
        ValidationError: On an empty query or out-of-range limit/threshold.
        RetrievalUnavailable: If the query cannot be embedded.
        DimensionMismatch: If a stored vector has the wrong length.
    """
    if limit is None:
        limit = settings.SEARCH_DEFAULT_LIMIT
    if threshold is None:
        threshold = settings.SEARCH_SIMILARITY_THRESHOLD
    _check_params(query, limit, threshold)
    return _ranked_search(query, db, client, limit, threshold)


def advanced_search(
    query: str,
    db: Session,
    client,
    filters: Optional[dict[str, Any]] = None,
    limit: int = 10,
    threshold: Optional[float] = None,
) -> list[dict[str, Any]]:
    """
    Semantic search narrowed by structured metadata.

    Ranks ``limit * ADVANCED_SEARCH_OVERFETCH`` results first and then drops
    those that do not match ``filters`` (category, device, mode, impact,
    version).  Matching commands ranked beyond the over-fetch window are
    not considered, so fewer than ``limit`` results can come back.
    """
    filters = {k: v for k, v in (filters or {}).items() if v is not None}
    if threshold is None:
        threshold = settings.SEARCH_SIMILARITY_THRESHOLD
    _check_params(query, limit, threshold)

    window = limit * settings.ADVANCED_SEARCH_OVERFETCH
    results = _ranked_search(query, db, client, window, threshold)

    for key in _METADATA_FILTERS:
        if key in filters:
            results = [r for r in results if r.get(key) == filters[key]]

    if "version" in filters:
        matching = dal.filter_ids_by_version([r["id"] for r in results], filters["version"], db=db)
        results = [r for r in results if r["id"] in matching]

    logger.info(
        "advanced_search",
        query=query[:100],
        filter_keys=sorted(filters.keys()),
        window=window,
        result_count=min(len(results), limit),
    )
    return results[:limit]
