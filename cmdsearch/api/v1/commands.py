"""
Command Catalog API Router

REST endpoints for hybrid command search, catalog maintenance and
embedding consistency.

Mount point: /api/v1

Endpoints:
    POST   /commands/search             — Hybrid semantic search
    POST   /commands/search/advanced    — Search with metadata filters
    POST   /commands                    — Add a command (409 on duplicate)
    POST   /commands/bulk               — Add many commands
    GET    /commands                    — List commands with filters
    GET    /commands/export             — Export commands as JSON
    POST   /commands/import             — Import exported commands
    GET    /commands/{id}               — Get one command
    PUT    /commands/{id}               — Partial update
    DELETE /commands/{id}               — Delete a command and its embedding
    GET    /categories                  — Categories with counts
    POST   /categories/rename           — Rename a category
    POST   /embeddings/rebuild          — Rebuild every embedding
    POST   /embeddings/rebuild/{id}     — Rebuild one embedding
    GET    /maintenance/duplicates      — Duplicate (name, category) groups
    GET    /maintenance/integrity       — Integrity report

Rules:
    - 400 invalid input, 404 unknown id, 409 duplicate, 503 provider down
    - Log endpoint name, params, and response time via structlog
"""

import time
from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from cmdsearch.catalog import manager
from cmdsearch.db import dal
from cmdsearch.db.session import get_db
from cmdsearch.errors import (
    CatalogError,
    DimensionMismatch,
    DuplicateError,
    IntegrityViolation,
    NotFoundError,
    RetrievalUnavailable,
    ValidationError,
)
from cmdsearch.schemas import (
    AdvancedSearchRequest,
    BulkAddRequest,
    CommandCreate,
    CommandUpdate,
    ImportRequest,
    RenameCategoryRequest,
    SearchRequest,
)
from cmdsearch.search import indexer
from cmdsearch.search.embeddings import get_embedding_client
from cmdsearch.search.search import advanced_search, search_commands

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Commands"])


# ── Helpers ────────────────────────────────────────────────────────────────

def _raise_http(exc: CatalogError) -> None:
    """Translate a catalog failure into the matching HTTP error."""
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, DuplicateError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": f"{exc}. Use PUT /commands/{exc.existing_id} to modify it.",
                "existing_id": exc.existing_id,
                "name": exc.name,
                "category": exc.category,
            },
        )
    if isinstance(exc, RetrievalUnavailable):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": str(exc), "record_id": exc.record_id},
        )
    if isinstance(exc, IntegrityViolation):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": str(exc), "report": exc.report},
        )
    if isinstance(exc, DimensionMismatch):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ── Search ─────────────────────────────────────────────────────────────────

@router.post("/commands/search", summary="Search commands by natural language query")
def search_commands_endpoint(
    request: SearchRequest,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    start_time = time.time()
    log = logger.bind(endpoint="search_commands", query=request.query[:100])
    try:
        results = search_commands(
            query=request.query,
            db=db,
            client=client,
            limit=request.limit,
            threshold=request.score_threshold,
        )
    except CatalogError as exc:
        log.error("search_commands_error", error=str(exc))
        _raise_http(exc)

    log.info(
        "search_commands_response",
        result_count=len(results),
        elapsed_seconds=round(time.time() - start_time, 3),
    )
    return {"query": request.query, "results": results, "count": len(results)}


@router.post("/commands/search/advanced", summary="Search commands with metadata filters")
def advanced_search_endpoint(
    request: AdvancedSearchRequest,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    filters = request.model_dump(
        include={"category", "device", "mode", "version", "impact"}, exclude_none=True
    )
    try:
        results = advanced_search(
            query=request.query,
            db=db,
            client=client,
            filters=filters,
            limit=request.limit,
            threshold=request.score_threshold,
        )
    except CatalogError as exc:
        logger.error("advanced_search_error", error=str(exc))
        _raise_http(exc)
    return {"query": request.query, "filters": filters, "results": results, "count": len(results)}


# ── Commands ───────────────────────────────────────────────────────────────

@router.post("/commands", status_code=status.HTTP_201_CREATED, summary="Add a command")
def add_command_endpoint(
    command: CommandCreate,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    try:
        created = manager.add_command(command, db, client)
    except CatalogError as exc:
        _raise_http(exc)
    return {"status": "success", **created}


@router.post("/commands/bulk", summary="Add many commands")
def bulk_add_endpoint(
    request: BulkAddRequest,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    results = manager.bulk_add_commands(request.commands, db, client)
    return {
        **results,
        "added_count": len(results["added"]),
        "skipped_count": len(results["skipped"]),
        "error_count": len(results["errors"]),
    }


@router.get("/commands", summary="List commands")
def list_commands_endpoint(
    category: Optional[str] = Query(None),
    mode: Optional[str] = Query(None),
    device: Optional[str] = Query(None),
    version: Optional[str] = Query(None),
    deprecated: Optional[bool] = Query(None),
    regex: Optional[str] = Query(None, description="Regular expression searched in the command name"),
    keyword: Optional[str] = Query(None, description="Substring of the keyword tags"),
    db: Session = Depends(get_db),
):
    filters = {
        "category": category,
        "mode": mode,
        "device": device,
        "version": version,
        "deprecated": deprecated,
        "regex": regex,
        "keyword": keyword,
    }
    commands = dal.list_commands(filters, db=db)
    return {"commands": commands, "count": len(commands)}


@router.get("/commands/export", summary="Export commands as JSON")
def export_commands_endpoint(
    category: Optional[str] = Query(None),
    mode: Optional[str] = Query(None),
    device: Optional[str] = Query(None),
    version: Optional[str] = Query(None),
    deprecated: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
):
    filters = {
        key: value
        for key, value in {
            "category": category,
            "mode": mode,
            "device": device,
            "version": version,
            "deprecated": deprecated,
        }.items()
        if value is not None
    }
    commands = manager.export_commands(db, filters)
    return {"status": "success", "commands": commands, "count": len(commands), "filters": filters}


@router.post("/commands/import", summary="Import commands from an export")
def import_commands_endpoint(
    request: ImportRequest,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    results = manager.import_commands(
        request.commands, db, client, skip_duplicates=request.skip_duplicates
    )
    return {
        "status": "success",
        "message": (
            f"Import complete: {len(results['added'])} added, {len(results['skipped'])} skipped, "
            f"{len(results['updated'])} updated, {len(results['errors'])} errors"
        ),
        "results": results,
    }


@router.get("/commands/{command_id}", summary="Get a command")
def get_command_endpoint(command_id: int, db: Session = Depends(get_db)):
    command = dal.get_command(command_id, db=db)
    if command is None:
        _raise_http(NotFoundError(command_id))
    return command


@router.put("/commands/{command_id}", summary="Update a command")
def update_command_endpoint(
    command_id: int,
    changes: CommandUpdate,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    try:
        updated = manager.update_command(command_id, changes, db, client)
    except CatalogError as exc:
        _raise_http(exc)
    return {"status": "success", "command": updated}


@router.delete("/commands/{command_id}", summary="Delete a command")
def delete_command_endpoint(command_id: int, db: Session = Depends(get_db)):
    try:
        manager.delete_command(command_id, db)
    except CatalogError as exc:
        _raise_http(exc)
    return {"status": "success", "id": command_id}


# ── Categories ─────────────────────────────────────────────────────────────

@router.get("/categories", summary="List categories")
def list_categories_endpoint(db: Session = Depends(get_db)):
    categories = dal.list_categories(db=db)
    return {"categories": categories, "count": len(categories)}


@router.post("/categories/rename", summary="Rename a category")
def rename_category_endpoint(request: RenameCategoryRequest, db: Session = Depends(get_db)):
    try:
        updated = manager.rename_category(request.old_name, request.new_name, db)
    except CatalogError as exc:
        _raise_http(exc)
    return {"old_name": request.old_name, "new_name": request.new_name, "updated": updated}


# ── Embeddings ─────────────────────────────────────────────────────────────

@router.post("/embeddings/rebuild", summary="Rebuild every embedding")
def rebuild_all_endpoint(
    workers: Optional[int] = Body(None, embed=True, ge=1, le=16),
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    return indexer.rebuild_all_embeddings(db, client, workers=workers)


@router.post("/embeddings/rebuild/{command_id}", summary="Rebuild one embedding")
def rebuild_one_endpoint(
    command_id: int,
    db: Session = Depends(get_db),
    client=Depends(get_embedding_client),
):
    try:
        indexer.rebuild_embedding(command_id, db, client)
    except CatalogError as exc:
        _raise_http(exc)
    return {"status": "success", "id": command_id}


# ── Maintenance ────────────────────────────────────────────────────────────

@router.get("/maintenance/duplicates", summary="Find duplicate commands")
def find_duplicates_endpoint(db: Session = Depends(get_db)):
    duplicates = manager.find_duplicates(db)
    return {"duplicates": duplicates, "count": len(duplicates)}


@router.get("/maintenance/integrity", summary="Validate catalog integrity")
def validate_integrity_endpoint(
    strict: bool = Query(False, description="Respond 500 when any issue is found"),
    db: Session = Depends(get_db),
):
    try:
        if strict:
            return manager.assert_integrity(db)
        return manager.validate_integrity(db)
    except CatalogError as exc:
        _raise_http(exc)
