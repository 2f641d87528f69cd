"""
Command Catalog Embedding Store

Persists one vector per command in ``command_embeddings``, keyed by the
command id.

Functions:
    put_embedding     — Upsert a command's vector
    get_embedding     — Point lookup, None when absent
    get_embeddings    — Batch lookup; absent ids are omitted from the result
    delete_embedding  — Remove a command's vector
    embedding_ids     — Ids of every stored vector

Rules:
    - Vectors go through encode_vector/decode_vector, never through text
    - Functions do not commit; the caller owns the transaction
    - Never log embedding vectors — only metadata
"""

from collections.abc import Iterable, Sequence
from typing import Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from cmdsearch.db.models import CommandEmbedding
from cmdsearch.search.vectors import decode_vector, encode_vector

logger = structlog.get_logger(__name__)

# SQLite's default bound-parameter ceiling is 999 on older builds
_IN_CHUNK_SIZE = 500


def put_embedding(record_id: int, vector: Sequence[float], db: Session) -> None:
    """
    Upsert the vector for ``record_id`` using INSERT ... ON CONFLICT DO UPDATE.
    """
    blob = encode_vector(vector)
    stmt = sqlite_insert(CommandEmbedding).values(
        command_id=record_id,
        embedding=blob,
        dimensions=len(vector),
    ).on_conflict_do_update(
        index_elements=["command_id"],
        set_={
            "embedding": blob,
            "dimensions": len(vector),
            "updated_at": func.now(),
        },
    )
    db.execute(stmt)
    logger.debug("embedding_stored", record_id=record_id, dimensions=len(vector))


def get_embedding(record_id: int, db: Session) -> Optional[list[float]]:
    """Return the stored vector for ``record_id`` or None."""
    blob = db.execute(
        select(CommandEmbedding.embedding).where(CommandEmbedding.command_id == record_id)
    ).scalar_one_or_none()
    if blob is None:
        return None
    return decode_vector(blob)


def get_embeddings(record_ids: Iterable[int], db: Session) -> dict[int, list[float]]:
    """
    Batch lookup of vectors by id.

    Returns:
        Mapping of id → vector.  Ids without a stored vector are omitted.
    """
    ids = list(dict.fromkeys(record_ids))
    found: dict[int, list[float]] = {}
    for start in range(0, len(ids), _IN_CHUNK_SIZE):
        chunk = ids[start : start + _IN_CHUNK_SIZE]
        rows = db.execute(
            select(CommandEmbedding.command_id, CommandEmbedding.embedding)
            .where(CommandEmbedding.command_id.in_(chunk))
        ).all()
        for row in rows:
            found[row.command_id] = decode_vector(row.embedding)
    return found


def delete_embedding(record_id: int, db: Session) -> bool:
    """Delete the vector for ``record_id``.  Returns True if one existed."""
    result = db.execute(
        delete(CommandEmbedding).where(CommandEmbedding.command_id == record_id)
    )
    return result.rowcount > 0


def embedding_ids(db: Session) -> list[int]:
    """Ids of all stored vectors, ascending."""
    return list(
        db.execute(
            select(CommandEmbedding.command_id).order_by(CommandEmbedding.command_id)
        ).scalars().all()
    )
