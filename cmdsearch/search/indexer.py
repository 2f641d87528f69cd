"""
Command Catalog Indexer Module

Derives each command's embedding from its current (name, description) and
persists it through the embedding store.  Calls embeddings.py for all
provider interactions — never calls the provider directly.

Functions:
    index_command           — Embed and upsert one command's vector
    rebuild_embedding       — Re-embed one command by id
    rebuild_all_embeddings  — Re-embed every command, collecting failures

Rules:
    - A failed embedding never deletes the previous vector
    - One command's failure never aborts a full rebuild
    - Provider calls may run on a worker pool; store writes stay on the
      calling thread's session
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cmdsearch.config import settings
from cmdsearch.db import dal
from cmdsearch.errors import NotFoundError, RetrievalUnavailable
from cmdsearch.search.embeddings import build_command_embedding_text, embed_single
from cmdsearch.search.store import put_embedding

logger = structlog.get_logger(__name__)


class _RebuildTally:
    """Success/failure counters shared by rebuild workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.success_count = 0
        self.failures: list[dict[str, Any]] = []

    def succeeded(self) -> None:
        with self._lock:
            self.success_count += 1

    def failed(self, record_id: int, reason: str) -> None:
        with self._lock:
            self.failures.append({"id": record_id, "reason": reason})

    def summary(self, total: int) -> dict[str, Any]:
        with self._lock:
            failures = sorted(self.failures, key=lambda f: f["id"])
            return {
                "total": total,
                "success_count": self.success_count,
                "failure_count": len(failures),
                "failures": failures,
            }


def index_command(
    record_id: int,
    name: str,
    description: Optional[str],
    db: Session,
    client,
) -> None:
    """
    Embed ``name + " " + description`` and upsert it for ``record_id``.

    The new vector is committed immediately.

    Raises:
        RetrievalUnavailable: If the provider fails; ``record_id`` is set on
            the exception and the previous vector (if any) is untouched.
    """
    start_time = time.time()
    text = build_command_embedding_text(name, description)

    try:
        vector = embed_single(text, client)
    except RetrievalUnavailable as exc:
        exc.record_id = record_id
        logger.error("index_command_embedding_failed", record_id=record_id, error=str(exc))
        raise

    put_embedding(record_id, vector, db)
    db.commit()

    logger.info(
        "index_command_complete",
        record_id=record_id,
        text_length=len(text),
        elapsed_seconds=round(time.time() - start_time, 3),
    )


def rebuild_embedding(record_id: int, db: Session, client) -> None:
    """
    Regenerate one command's vector from its current name and description.

    Raises:
        NotFoundError: If the command does not exist.
        RetrievalUnavailable: If the provider fails.
    """
    command = dal.get_command(record_id, db=db)
    if command is None:
        raise NotFoundError(record_id)
    index_command(record_id, command["name"], command["description"], db, client)
    logger.info("rebuild_embedding_complete", record_id=record_id, name=command["name"])


def _embed_source(source: dict[str, Any], client) -> list[float]:
    return embed_single(
        build_command_embedding_text(source["name"], source["description"]),
        client,
    )


def rebuild_all_embeddings(
    db: Session,
    client,
    workers: Optional[int] = None,
) -> dict[str, Any]:
    """
    Regenerate every command's vector.

    Sequential when ``workers`` (default REBUILD_WORKERS) is 1.  With more
    workers, provider calls run on a bounded thread pool and each finished
    vector is written on this thread, so the session is never shared.

    Returns:
        Dict with total, success_count, failure_count and failures
        (list of {id, reason}).  Failed commands keep their previous vector.
    """
    start_time = time.time()
    workers = workers or settings.REBUILD_WORKERS
    sources = dal.get_embedding_sources(db=db)
    tally = _RebuildTally()

    def _store(record_id: int, vector: list[float]) -> None:
        try:
            put_embedding(record_id, vector, db)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            tally.failed(record_id, f"store write failed: {exc}")
            logger.error("rebuild_embedding_store_failed", record_id=record_id, error=str(exc))
            return
        tally.succeeded()

    if workers <= 1:
        for source in sources:
            try:
                vector = _embed_source(source, client)
            except RetrievalUnavailable as exc:
                tally.failed(source["id"], str(exc))
                logger.error("rebuild_embedding_failed", record_id=source["id"], error=str(exc))
                continue
            _store(source["id"], vector)
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(_embed_source, source, client): source["id"]
                for source in sources
            }
            for future in as_completed(futures):
                record_id = futures[future]
                try:
                    vector = future.result()
                except RetrievalUnavailable as exc:
                    tally.failed(record_id, str(exc))
                    logger.error("rebuild_embedding_failed", record_id=record_id, error=str(exc))
                    continue
                _store(record_id, vector)

    summary = tally.summary(total=len(sources))
    logger.info(
        "rebuild_all_embeddings_complete",
        total=summary["total"],
        success_count=summary["success_count"],
        failure_count=summary["failure_count"],
        workers=workers,
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return summary
