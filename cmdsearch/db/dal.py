"""
Command Catalog Data Access Layer (DAL)

The single module where all command-table queries live.  Embedding rows are
handled by ``cmdsearch.search.store`` and the FTS index is only ever read by
``cmdsearch.search.candidates``.

Every public function:
    - Accepts a SQLAlchemy ``Session`` as the keyword argument ``db``.
    - Logs the function name and wall-clock execution time (ms) via structlog.
    - Returns plain Python dicts (never SQLAlchemy model instances).
    - Raises ``ValueError`` (or a ``CatalogError``) for invalid inputs.
    - Raises ``RuntimeError`` for unexpected database errors.
    - Does not commit; the caller owns the transaction.
"""

from __future__ import annotations

import re
import time
from collections.abc import Iterable
from typing import Any, Optional

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from cmdsearch.db.models import Command, CommandEmbedding
from cmdsearch.errors import CatalogError

logger = structlog.get_logger(__name__)

# Request field name → ORM attribute name, where they differ
_FIELD_TO_ATTR = {"type": "command_type"}

# Columns copied into search results
_SEARCH_FIELDS = ("name", "description", "arguments", "category", "mode", "type", "device", "impact")


# ── Helpers ────────────────────────────────────────────────────────────────

def _command_to_dict(row: Command) -> dict[str, Any]:
    """Convert a Command ORM instance to a plain dict."""
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "arguments": list(row.arguments or []),
        "category": row.category,
        "version": row.version,
        "keywords": row.keywords,
        "mode": row.mode,
        "type": row.command_type,
        "device": row.device,
        "executable": bool(row.executable),
        "impact": row.impact,
        "related_ids": list(row.related_ids or []),
        "deprecated": bool(row.deprecated),
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def _to_columns(fields: dict[str, Any]) -> dict[str, Any]:
    return {_FIELD_TO_ATTR.get(key, key): value for key, value in fields.items()}


def _timed(fn_name: str, start: float) -> None:
    """Log elapsed time in milliseconds."""
    elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.debug("dal_query", function=fn_name, elapsed_ms=elapsed_ms)


# ── Record CRUD ────────────────────────────────────────────────────────────


def insert_command(fields: dict[str, Any], *, db: Session) -> dict[str, Any]:
    """
    Insert a command row and flush so its id is assigned.

    ``fields`` uses request field names (``type``, not ``command_type``).
    The FTS index row is written by the insert trigger.
    """
    start = time.perf_counter()
    try:
        row = Command(**_to_columns(fields))
        db.add(row)
        db.flush()
        db.refresh(row)
        return _command_to_dict(row)
    except (ValueError, CatalogError):
        raise
    except Exception as exc:
        raise RuntimeError(f"insert_command failed: {exc}") from exc
    finally:
        _timed("insert_command", start)


def get_command(record_id: int, *, db: Session) -> Optional[dict[str, Any]]:
    """Return one command as a dict, or None."""
    start = time.perf_counter()
    try:
        row = db.get(Command, record_id)
        return _command_to_dict(row) if row is not None else None
    except Exception as exc:
        raise RuntimeError(f"get_command failed: {exc}") from exc
    finally:
        _timed("get_command", start)


def find_command_id(name: str, category: str, *, db: Session) -> Optional[int]:
    """Id of the first command with this exact (name, category), or None."""
    start = time.perf_counter()
    try:
        return db.execute(
            select(Command.id)
            .where(Command.name == name)
            .where(Command.category == category)
            .order_by(Command.id)
            .limit(1)
        ).scalar_one_or_none()
    except Exception as exc:
        raise RuntimeError(f"find_command_id failed: {exc}") from exc
    finally:
        _timed("find_command_id", start)


def update_command(
    record_id: int,
    changes: dict[str, Any],
    *,
    db: Session,
) -> Optional[dict[str, Any]]:
    """
    Apply a partial update.  Only keys present in ``changes`` are written.

    Returns the updated command, or None when the id does not exist.
    """
    start = time.perf_counter()
    try:
        row = db.get(Command, record_id)
        if row is None:
            return None
        for attr, value in _to_columns(changes).items():
            if not hasattr(Command, attr):
                raise ValueError(f"Unknown command field: '{attr}'")
            setattr(row, attr, value)
        db.flush()
        db.refresh(row)
        return _command_to_dict(row)
    except (ValueError, CatalogError):
        raise
    except Exception as exc:
        raise RuntimeError(f"update_command failed: {exc}") from exc
    finally:
        _timed("update_command", start)


def delete_command(record_id: int, *, db: Session) -> bool:
    """
    Delete a command.  Its embedding goes with it through the ORM
    delete-orphan cascade and the ON DELETE CASCADE foreign key.

    Returns False when the id does not exist.
    """
    start = time.perf_counter()
    try:
        row = db.get(Command, record_id)
        if row is None:
            return False
        db.delete(row)
        db.flush()
        return True
    except Exception as exc:
        raise RuntimeError(f"delete_command failed: {exc}") from exc
    finally:
        _timed("delete_command", start)


def list_commands(filters: Optional[dict[str, Any]] = None, *, db: Session) -> list[dict[str, Any]]:
    """
    List commands ordered by (category, name).

    Exact filters: category, mode, device, version, deprecated.
    Post filters: ``regex`` (searched in the name; an invalid pattern is
    logged and ignored) and ``keyword`` (case-insensitive substring of the
    keyword tags).
    """
    start = time.perf_counter()
    filters = filters or {}
    try:
        stmt = select(Command)
        for key in ("category", "mode", "device", "version"):
            if filters.get(key):
                stmt = stmt.where(getattr(Command, key) == filters[key])
        if filters.get("deprecated") is not None:
            stmt = stmt.where(Command.deprecated.is_(bool(filters["deprecated"])))
        stmt = stmt.order_by(Command.category, Command.name, Command.id)

        results = [_command_to_dict(r) for r in db.execute(stmt).scalars().all()]

        if filters.get("regex"):
            try:
                pattern = re.compile(filters["regex"])
            except re.error as exc:
                logger.warning("list_commands_invalid_regex", regex=filters["regex"], error=str(exc))
            else:
                results = [r for r in results if pattern.search(r["name"])]

        if filters.get("keyword"):
            needle = filters["keyword"].lower()
            results = [r for r in results if r["keywords"] and needle in r["keywords"].lower()]

        return results
    except Exception as exc:
        raise RuntimeError(f"list_commands failed: {exc}") from exc
    finally:
        _timed("list_commands", start)


# ── Search support ─────────────────────────────────────────────────────────


def get_search_metadata(record_ids: Iterable[int], *, db: Session) -> dict[int, dict[str, Any]]:
    """Display fields for search results, keyed by command id."""
    start = time.perf_counter()
    ids = list(record_ids)
    try:
        if not ids:
            return {}
        rows = db.execute(select(Command).where(Command.id.in_(ids))).scalars().all()
        metadata = {}
        for row in rows:
            full = _command_to_dict(row)
            metadata[row.id] = {key: full[key] for key in _SEARCH_FIELDS}
        return metadata
    except Exception as exc:
        raise RuntimeError(f"get_search_metadata failed: {exc}") from exc
    finally:
        _timed("get_search_metadata", start)


def filter_ids_by_version(record_ids: Iterable[int], version: str, *, db: Session) -> set[int]:
    """Subset of ``record_ids`` whose version equals ``version``."""
    ids = list(record_ids)
    if not ids:
        return set()
    return set(
        db.execute(
            select(Command.id).where(Command.id.in_(ids)).where(Command.version == version)
        ).scalars().all()
    )


def get_embedding_sources(*, db: Session) -> list[dict[str, Any]]:
    """(id, name, description) of every command, ascending by id."""
    start = time.perf_counter()
    try:
        rows = db.execute(
            select(Command.id, Command.name, Command.description).order_by(Command.id)
        ).all()
        return [{"id": r.id, "name": r.name, "description": r.description} for r in rows]
    except Exception as exc:
        raise RuntimeError(f"get_embedding_sources failed: {exc}") from exc
    finally:
        _timed("get_embedding_sources", start)


# ── Maintenance ────────────────────────────────────────────────────────────


def group_duplicates(*, db: Session) -> list[dict[str, Any]]:
    """
    Every (name, category) shared by more than one command.

    Ordered by group size descending, then category and name.
    """
    start = time.perf_counter()
    try:
        count = func.count(Command.id).label("count")
        groups = db.execute(
            select(Command.name, Command.category, count)
            .group_by(Command.name, Command.category)
            .having(func.count(Command.id) > 1)
            .order_by(count.desc(), Command.category, Command.name)
        ).all()

        duplicates = []
        for group in groups:
            ids = db.execute(
                select(Command.id)
                .where(Command.name == group.name)
                .where(Command.category == group.category)
                .order_by(Command.id)
            ).scalars().all()
            duplicates.append({
                "name": group.name,
                "category": group.category,
                "count": group.count,
                "ids": list(ids),
            })
        return duplicates
    except Exception as exc:
        raise RuntimeError(f"group_duplicates failed: {exc}") from exc
    finally:
        _timed("group_duplicates", start)


def commands_missing_embeddings(*, db: Session) -> list[dict[str, Any]]:
    """Commands with no row in command_embeddings."""
    start = time.perf_counter()
    try:
        rows = db.execute(
            select(Command.id, Command.name)
            .outerjoin(CommandEmbedding, CommandEmbedding.command_id == Command.id)
            .where(CommandEmbedding.command_id.is_(None))
            .order_by(Command.id)
        ).all()
        return [{"id": r.id, "name": r.name} for r in rows]
    except Exception as exc:
        raise RuntimeError(f"commands_missing_embeddings failed: {exc}") from exc
    finally:
        _timed("commands_missing_embeddings", start)


def orphaned_embedding_ids(*, db: Session) -> list[int]:
    """Embedding rows whose command no longer exists."""
    start = time.perf_counter()
    try:
        return list(
            db.execute(
                select(CommandEmbedding.command_id)
                .outerjoin(Command, Command.id == CommandEmbedding.command_id)
                .where(Command.id.is_(None))
                .order_by(CommandEmbedding.command_id)
            ).scalars().all()
        )
    except Exception as exc:
        raise RuntimeError(f"orphaned_embedding_ids failed: {exc}") from exc
    finally:
        _timed("orphaned_embedding_ids", start)


def commands_missing_required_fields(*, db: Session) -> list[dict[str, Any]]:
    """Commands with an empty or NULL name or category."""
    start = time.perf_counter()
    try:
        rows = db.execute(
            select(Command.id, Command.name, Command.category)
            .where(
                or_(
                    Command.name.is_(None),
                    func.trim(Command.name) == "",
                    Command.category.is_(None),
                    func.trim(Command.category) == "",
                )
            )
            .order_by(Command.id)
        ).all()
        return [{"id": r.id, "name": r.name, "category": r.category} for r in rows]
    except Exception as exc:
        raise RuntimeError(f"commands_missing_required_fields failed: {exc}") from exc
    finally:
        _timed("commands_missing_required_fields", start)


def list_categories(*, db: Session) -> list[dict[str, Any]]:
    """Distinct categories with their command counts, alphabetically."""
    start = time.perf_counter()
    try:
        rows = db.execute(
            select(Command.category, func.count(Command.id).label("count"))
            .where(Command.category.is_not(None))
            .group_by(Command.category)
            .order_by(Command.category)
        ).all()
        return [{"category": r.category, "count": r.count} for r in rows]
    except Exception as exc:
        raise RuntimeError(f"list_categories failed: {exc}") from exc
    finally:
        _timed("list_categories", start)


def rename_category(old_name: str, new_name: str, *, db: Session) -> int:
    """Move every command in ``old_name`` to ``new_name``.  Returns the row count."""
    start = time.perf_counter()
    try:
        result = db.execute(
            update(Command)
            .where(Command.category == old_name)
            .values(category=new_name, updated_at=func.now())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
    except Exception as exc:
        raise RuntimeError(f"rename_category failed: {exc}") from exc
    finally:
        _timed("rename_category", start)
