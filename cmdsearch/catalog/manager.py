"""
Command Catalog Consistency Manager

Keeps command rows, their embeddings and the FTS index consistent across
create, update and delete, and reports on catalog health.

Functions:
    add_command           — Duplicate check, insert, embed
    bulk_add_commands     — add_command over a list, per-item outcome
    update_command        — Partial update; re-embed when name/description change
    delete_command        — Delete a command and its embedding
    rename_category       — Move commands between categories
    export_commands       — Filtered listing for transfer to another catalog
    import_commands       — Load exported commands, skipping or updating duplicates
    find_duplicates       — (name, category) groups with more than one member
    validate_integrity    — Missing embeddings, orphaned embeddings, invalid rows
    assert_integrity      — validate_integrity that raises on any issue

Rules:
    - The FTS index follows the commands table through triggers only
    - A command row is committed before its embedding is requested, so a
      provider failure never loses the catalog entry
    - Embeddings are only regenerated when searchable text changes
"""

from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from cmdsearch.db import dal
from cmdsearch.errors import (
    CatalogError,
    DuplicateError,
    IntegrityViolation,
    NotFoundError,
    RetrievalUnavailable,
    ValidationError,
)
from cmdsearch.schemas import CommandCreate, CommandUpdate
from cmdsearch.search.indexer import index_command
from cmdsearch.search.store import delete_embedding

logger = structlog.get_logger(__name__)

_SEARCHABLE_FIELDS = ("name", "description")
_NON_NULLABLE_FIELDS = ("name", "category", "arguments", "executable", "related_ids", "deprecated")


def _first_error(exc: PydanticValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


def _coerce_create(payload: Union[CommandCreate, dict[str, Any]]) -> CommandCreate:
    if isinstance(payload, CommandCreate):
        return payload
    try:
        return CommandCreate.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def _coerce_update(payload: Union[CommandUpdate, dict[str, Any]]) -> CommandUpdate:
    if isinstance(payload, CommandUpdate):
        return payload
    try:
        return CommandUpdate.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


# ── Create / update / delete ───────────────────────────────────────────────


def add_command(
    payload: Union[CommandCreate, dict[str, Any]],
    db: Session,
    client,
) -> dict[str, Any]:
    """
    Create a command and its embedding.

    Returns:
        Dict with id, name and category of the new command.

    Raises:
        ValidationError: Missing or invalid fields.
        DuplicateError: (name, category) already exists; carries existing_id.
        RetrievalUnavailable: The row was saved but could not be embedded;
            ``record_id`` names it so the caller can call rebuild_embedding.
    """
    command = _coerce_create(payload)

    existing_id = dal.find_command_id(command.name, command.category, db=db)
    if existing_id is not None:
        logger.info(
            "add_command_duplicate",
            name=command.name,
            category=command.category,
            existing_id=existing_id,
        )
        raise DuplicateError(existing_id, command.name, command.category)

    created = dal.insert_command(command.model_dump(), db=db)
    db.commit()

    index_command(created["id"], created["name"], created["description"], db, client)

    logger.info("command_added", record_id=created["id"], name=created["name"])
    return {"id": created["id"], "name": created["name"], "category": created["category"]}


def _item_name(item: Any) -> Optional[str]:
    return item.get("name") if isinstance(item, dict) else getattr(item, "name", None)


def _add_each(items: list[Any], db: Session, client, update_existing: bool) -> dict[str, list]:
    results: dict[str, list] = {"added": [], "skipped": [], "errors": []}
    if update_existing:
        results["updated"] = []

    for item in items:
        name = _item_name(item)
        try:
            try:
                results["added"].append(add_command(item, db, client))
            except DuplicateError as exc:
                if not update_existing:
                    results["skipped"].append({
                        "name": exc.name,
                        "category": exc.category,
                        "reason": str(exc),
                        "existing_id": exc.existing_id,
                    })
                    continue
                updated = update_command(exc.existing_id, item, db, client)
                results["updated"].append(
                    {"id": updated["id"], "name": updated["name"], "category": updated["category"]}
                )
        except RetrievalUnavailable as exc:
            # The row exists; only its embedding is missing
            results["errors"].append({"name": name, "error": str(exc), "id": exc.record_id})
        except CatalogError as exc:
            db.rollback()
            results["errors"].append({"name": name, "error": str(exc), "id": None})

    return results


def bulk_add_commands(items: list[Any], db: Session, client) -> dict[str, list]:
    """
    Add many commands.  Each item succeeds, is skipped as a duplicate, or is
    reported as an error; no item stops the batch.

    Returns:
        Dict with added [{id, name, category}], skipped [{name, category,
        reason, existing_id}] and errors [{name, error, id}].
    """
    results = _add_each(items, db, client, update_existing=False)

    logger.info(
        "bulk_add_complete",
        added=len(results["added"]),
        skipped=len(results["skipped"]),
        errors=len(results["errors"]),
    )
    return results


def update_command(
    record_id: int,
    payload: Union[CommandUpdate, dict[str, Any]],
    db: Session,
    client,
) -> dict[str, Any]:
    """
    Apply a partial update.  Absent fields are left unchanged.

    When the update changes the name or description, the embedding is
    regenerated from the post-update values; other changes never touch it.

    Returns:
        The updated command.

    Raises:
        ValidationError: No fields supplied, or a non-nullable field set to null.
        NotFoundError: Unknown id.
        RetrievalUnavailable: The update was saved but re-embedding failed.
    """
    changes = _coerce_update(payload).changes()
    if not changes:
        raise ValidationError("No fields to update")
    for field in _NON_NULLABLE_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field}: must not be null")

    before = dal.get_command(record_id, db=db)
    if before is None:
        raise NotFoundError(record_id)

    after = dal.update_command(record_id, changes, db=db)
    db.commit()

    text_changed = any(before[f] != after[f] for f in _SEARCHABLE_FIELDS)
    if text_changed:
        index_command(record_id, after["name"], after["description"], db, client)

    logger.info(
        "command_updated",
        record_id=record_id,
        fields=sorted(changes.keys()),
        reembedded=text_changed,
    )
    return after


def delete_command(record_id: int, db: Session) -> None:
    """
    Delete a command and its embedding.

    The embedding row is removed explicitly as well as through the
    foreign-key cascade, so databases opened without foreign-key
    enforcement do not accumulate orphans.

    Raises:
        NotFoundError: Unknown id.
    """
    if dal.get_command(record_id, db=db) is None:
        raise NotFoundError(record_id)

    delete_embedding(record_id, db)
    dal.delete_command(record_id, db=db)
    db.commit()
    logger.info("command_deleted", record_id=record_id)


def rename_category(old_name: str, new_name: str, db: Session) -> int:
    """Rename a category.  Embeddings are unaffected; the FTS index follows."""
    if not new_name or not new_name.strip():
        raise ValidationError("new_name must not be empty")
    updated = dal.rename_category(old_name, new_name.strip(), db=db)
    db.commit()
    logger.info("category_renamed", old_name=old_name, new_name=new_name, updated=updated)
    return updated


# ── Export / import ────────────────────────────────────────────────────────

# Bookkeeping fields present in an export that a create payload does not take
_EXPORT_ONLY_FIELDS = ("id", "created_at", "updated_at")


def export_commands(db: Session, filters: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
    """Every command matching ``filters`` (as dal.list_commands), as plain dicts."""
    commands = dal.list_commands(filters, db=db)
    logger.info("commands_exported", count=len(commands), filters=filters or {})
    return commands


def import_commands(
    items: list[Any],
    db: Session,
    client,
    skip_duplicates: bool = True,
) -> dict[str, list]:
    """
    Load commands, typically the output of export_commands.

    Items go through the same path as bulk_add_commands.  With
    ``skip_duplicates`` an existing (name, category) is left alone and
    reported under skipped; otherwise it is updated in place from the item
    and reported under updated.

    Returns:
        Dict with added, skipped, updated and errors lists.
    """
    cleaned = [
        {k: v for k, v in item.items() if k not in _EXPORT_ONLY_FIELDS} if isinstance(item, dict) else item
        for item in items
    ]
    results = _add_each(cleaned, db, client, update_existing=not skip_duplicates)
    results.setdefault("updated", [])

    logger.info(
        "commands_imported",
        skip_duplicates=skip_duplicates,
        added=len(results["added"]),
        skipped=len(results["skipped"]),
        updated=len(results["updated"]),
        errors=len(results["errors"]),
    )
    return results


# ── Health reports ─────────────────────────────────────────────────────────


def find_duplicates(db: Session) -> list[dict[str, Any]]:
    """Every (name, category) group with more than one command, with its ids."""
    duplicates = dal.group_duplicates(db=db)
    logger.info("find_duplicates", group_count=len(duplicates))
    return duplicates


def validate_integrity(db: Session) -> dict[str, Any]:
    """
    Check that commands, embeddings and required fields are consistent.

    Returns:
        Dict with missing_embeddings (commands without a vector),
        orphaned_embeddings (vector ids without a command), invalid_records
        (empty name or category), total_issues and valid.
    """
    missing = dal.commands_missing_embeddings(db=db)
    orphaned = dal.orphaned_embedding_ids(db=db)
    invalid = dal.commands_missing_required_fields(db=db)

    total = len(missing) + len(orphaned) + len(invalid)
    report = {
        "valid": total == 0,
        "total_issues": total,
        "missing_embeddings": missing,
        "orphaned_embeddings": orphaned,
        "invalid_records": invalid,
    }

    if total:
        logger.warning(
            "integrity_issues_found",
            missing_embeddings=len(missing),
            orphaned_embeddings=len(orphaned),
            invalid_records=len(invalid),
        )
    else:
        logger.info("integrity_check_passed")
    return report


def assert_integrity(db: Session) -> dict[str, Any]:
    """validate_integrity, raising IntegrityViolation when any issue is found."""
    report = validate_integrity(db)
    if not report["valid"]:
        raise IntegrityViolation(report)
    return report
