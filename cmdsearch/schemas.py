"""
Command Catalog Schemas

Pydantic models for command payloads and search requests, shared by the
catalog manager and the REST router.

``CommandUpdate`` has one optional slot per mutable attribute.  Only the
fields a caller actually sent are applied (``model_fields_set``), so an
absent field means "unchanged" while an explicit null clears a nullable
field.
"""

from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from cmdsearch.config import settings

Mode = Literal["clish", "expert"]
CommandType = Literal["config", "query"]
Device = Literal["firewall", "management"]
Impact = Literal["low", "medium", "high", "critical"]


class ArgumentSpec(BaseModel):
    args: str = Field(..., description="Argument text, e.g. 'state'")
    description: Optional[str] = Field(None, description="What the argument does")


def _join_keywords(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v).strip() for v in value if str(v).strip())
    return value


def _require_text(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
    return value


RequiredText = Annotated[str, BeforeValidator(_require_text)]
KeywordTags = Annotated[Optional[str], BeforeValidator(_join_keywords)]


class CommandCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: RequiredText = Field(..., min_length=1, max_length=255, description="Command line, e.g. 'cphaprob'")
    description: Optional[str] = None
    arguments: list[ArgumentSpec] = Field(default_factory=list)
    category: RequiredText = Field(..., min_length=1, max_length=100)
    version: Optional[str] = None
    keywords: KeywordTags = Field(None, description="Comma-joined keyword tags")
    mode: Optional[Mode] = None
    type: Optional[CommandType] = None
    device: Optional[Device] = None
    executable: bool = False
    impact: Optional[Impact] = None
    related_ids: list[int] = Field(default_factory=list)
    deprecated: bool = False


class CommandUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[RequiredText] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    arguments: Optional[list[ArgumentSpec]] = None
    category: Optional[RequiredText] = Field(None, min_length=1, max_length=100)
    version: Optional[str] = None
    keywords: KeywordTags = None
    mode: Optional[Mode] = None
    type: Optional[CommandType] = None
    device: Optional[Device] = None
    executable: Optional[bool] = None
    impact: Optional[Impact] = None
    related_ids: Optional[list[int]] = None
    deprecated: Optional[bool] = None

    def changes(self) -> dict[str, Any]:
        """Fields the caller supplied, with nested models dumped to plain data."""
        return self.model_dump(exclude_unset=True)


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000, description="Natural language query")
    limit: int = Field(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=settings.SEARCH_MAX_LIMIT)
    score_threshold: float = Field(settings.SEARCH_SIMILARITY_THRESHOLD, ge=0.0, le=1.0)


class AdvancedSearchRequest(SearchRequest):
    limit: int = Field(10, ge=1, le=settings.SEARCH_MAX_LIMIT)
    category: Optional[str] = None
    device: Optional[Device] = None
    mode: Optional[Mode] = None
    version: Optional[str] = None
    impact: Optional[Impact] = None


class BulkAddRequest(BaseModel):
    # Items are validated one by one so a bad item is reported, not fatal
    commands: list[dict[str, Any]] = Field(..., min_length=1)


class RenameCategoryRequest(BaseModel):
    old_name: str = Field(..., min_length=1)
    new_name: str = Field(..., min_length=1, max_length=100)



class ImportRequest(BaseModel):
    commands: list[dict[str, Any]] = Field(..., min_length=1)
    skip_duplicates: bool = Field(True, description="False updates existing (name, category) in place")
