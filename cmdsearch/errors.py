"""
Command Catalog Error Taxonomy

Typed failures raised by the catalog, search and embedding layers.  Each
exception carries the context a caller needs to act on it (record id,
conflicting id, underlying cause via ``__cause__``).

Classes:
    CatalogError          — base class for every catalog failure
    ValidationError       — missing or invalid required field
    DuplicateError        — (name, category) already present
    NotFoundError         — unknown record identifier
    RetrievalUnavailable  — embedding provider unreachable, erroring or timed out
    DimensionMismatch     — stored vector length differs from the query vector
    IntegrityViolation    — structural inconsistency found by validation
"""

from typing import Any, Optional


class CatalogError(Exception):
    """Base class for command catalog failures."""


class ValidationError(CatalogError, ValueError):
    """A required field is missing or a field value is invalid."""


class DuplicateError(CatalogError):
    """A record with the same (name, category) already exists."""

    def __init__(self, existing_id: int, name: str, category: str):
        self.existing_id = existing_id
        self.name = name
        self.category = category
        super().__init__(
            f"Command '{name}' already exists in category '{category}' "
            f"with ID {existing_id}"
        )


class NotFoundError(CatalogError, LookupError):
    """No record exists with the given identifier."""

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Command with ID {record_id} not found")


class RetrievalUnavailable(CatalogError, RuntimeError):
    """
    The embedding provider could not produce a vector.

    ``record_id`` is set when the failure happened after a record write
    succeeded (create, update) so the caller can retry the embedding step
    with ``rebuild_embedding``.
    """

    def __init__(self, message: str, record_id: Optional[int] = None):
        self.record_id = record_id
        super().__init__(message)


class DimensionMismatch(CatalogError, ValueError):
    """Two vectors compared for similarity have different lengths."""

    def __init__(self, expected: int, actual: int, record_id: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        self.record_id = record_id
        where = f" for command {record_id}" if record_id is not None else ""
        super().__init__(
            f"Vector dimension mismatch{where}: expected {expected}, got {actual}"
        )


class IntegrityViolation(CatalogError, RuntimeError):
    """Integrity validation found missing, orphaned or invalid rows."""

    def __init__(self, report: dict[str, Any]):
        self.report = report
        super().__init__(
            f"Catalog integrity check failed with {report.get('total_issues', 0)} issue(s)"
        )
