"""
Command Catalog Embedding Generation

Centralized module for all embedding-provider calls and embedding text
construction.  This is the ONLY module that talks to the provider.

The provider is any OpenAI-compatible ``/embeddings`` endpoint; the default
configuration points at a local Ollama server.

Functions:
    get_embedding_client           — Build a provider client from settings
    build_command_embedding_text   — Searchable text of a command
    embed_texts                    — Batch-embed a list of texts
    embed_single                   — Convenience wrapper to embed one text

Rules:
    - Every provider failure (unreachable, timeout, error status, malformed
      payload) is raised as RetrievalUnavailable with the cause chained
    - Never log embedding vectors — only metadata
    - No DB access in this module — callers resolve DB data before calling
    - No retries here — the caller decides whether to retry
"""

import math
import time
from typing import Optional

import openai
import structlog

from cmdsearch.config import settings
from cmdsearch.errors import RetrievalUnavailable

logger = structlog.get_logger(__name__)


def get_embedding_client() -> openai.OpenAI:
    """Create a provider client from settings, with the request timeout applied."""
    return openai.OpenAI(
        base_url=settings.EMBEDDING_BASE_URL,
        api_key=settings.EMBEDDING_API_KEY,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
        max_retries=settings.EMBEDDING_MAX_RETRIES,
    )


def build_command_embedding_text(name: str, description: Optional[str]) -> str:
    """
    Build the text string to embed for a command.

    Only the name and description are embedded; structured metadata is
    matched lexically and filtered, never embedded.
    """
    return f"{name} {description or ''}".strip()


def _validate_vectors(vectors: list, expected_count: int) -> list[list[float]]:
    """Reject responses that do not hold one finite, same-length vector per text."""
    if len(vectors) != expected_count:
        raise RetrievalUnavailable(
            f"Embedding provider returned {len(vectors)} vectors for {expected_count} texts"
        )

    checked: list[list[float]] = []
    dimensions = settings.EMBEDDING_DIMENSIONS
    for vector in vectors:
        if not isinstance(vector, (list, tuple)) or not vector:
            raise RetrievalUnavailable("Embedding provider returned an empty or non-list vector")
        try:
            values = [float(v) for v in vector]
        except (TypeError, ValueError) as exc:
            raise RetrievalUnavailable("Embedding provider returned non-numeric components") from exc
        if not all(math.isfinite(v) for v in values):
            raise RetrievalUnavailable("Embedding provider returned non-finite components")
        if dimensions is None:
            dimensions = len(values)
        if len(values) != dimensions:
            raise RetrievalUnavailable(
                f"Embedding provider returned {len(values)} dimensions, expected {dimensions}"
            )
        checked.append(values)
    return checked


def embed_texts(texts: list[str], client) -> list[list[float]]:
    """
    Embed a list of texts with batching.

    Splits texts into batches of settings.EMBEDDING_BATCH_SIZE and makes
    one API call per batch.  Returns vectors in input order.

    Args:
        texts: List of strings to embed.
        client: An openai.OpenAI client instance (or compatible object).

    Returns:
        List of embedding vectors, same length and order as ``texts``.

    Raises:
        RetrievalUnavailable: On any provider or payload failure.
    """
    if not texts:
        return []

    batch_size = settings.EMBEDDING_BATCH_SIZE
    all_embeddings: list[list[float]] = []
    start_time = time.time()

    for i in range(0, len(texts), batch_size):
        batch = texts[i : i + batch_size]

        try:
            response = client.embeddings.create(
                input=batch,
                model=settings.EMBEDDING_MODEL,
            )
        except openai.OpenAIError as exc:
            logger.error(
                "embedding_provider_error",
                error_type=type(exc).__name__,
                error=str(exc),
                batch_size=len(batch),
            )
            raise RetrievalUnavailable(f"Embedding provider failed: {exc}") from exc

        try:
            items = sorted(response.data, key=lambda item: item.index)
            raw_vectors = [item.embedding for item in items]
        except (AttributeError, TypeError) as exc:
            raise RetrievalUnavailable("Embedding provider returned a malformed response") from exc

        all_embeddings.extend(_validate_vectors(raw_vectors, len(batch)))

    elapsed = time.time() - start_time

    # Log metadata only, never the vectors
    logger.info(
        "embeddings_generated",
        text_count=len(texts),
        batch_count=(len(texts) + batch_size - 1) // batch_size,
        dimensions=len(all_embeddings[0]),
        elapsed_seconds=round(elapsed, 3),
    )

    return all_embeddings


def embed_single(text: str, client) -> list[float]:
    """
    Embed a single text string.  Convenience wrapper around embed_texts.

    Used at query time and for single-command indexing.
    """
    return embed_texts([text], client)[0]
