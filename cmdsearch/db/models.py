"""
Command Catalog Database Models

SQLAlchemy 2.x ORM models for the command catalog and its derived artifacts.

Tables:
    1. commands            - One row per operator command variant
    2. command_embeddings  - One vector per command (cascade-deleted with it)

Derived index:
    - commands_fts - FTS5 external-content table over (name, description,
      keywords, category).  Kept in lockstep with ``commands`` by triggers,
      never written directly.

Column encodings:
    - commands.arguments   JSON array of {"args": str, "description": str}
    - commands.related_ids JSON array of command ids (not FK-checked)
    - command_embeddings.embedding  raw float64 components, native byte order
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# Closed enums shared with the request schemas
MODES = ("clish", "expert")
COMMAND_TYPES = ("config", "query")
DEVICES = ("firewall", "management")
IMPACTS = ("low", "medium", "high", "critical")


def enum_check(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IS NULL OR {column} IN ({quoted})"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# =============================================================================
# Table 1: commands
# =============================================================================
class Command(Base):
    """
    One record per operator command variant.

    (name, category) is checked for uniqueness before insert by the catalog
    manager rather than by a constraint, so that pre-existing duplicates can
    still be loaded and reported by ``find_duplicates``.
    """
    __tablename__ = "commands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    arguments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    keywords: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mode: Mapped[Optional[str]] = mapped_column(
        String(10), CheckConstraint(enum_check("mode", MODES)), nullable=True
    )
    command_type: Mapped[Optional[str]] = mapped_column(
        "type", String(10), CheckConstraint(enum_check("type", COMMAND_TYPES)), nullable=True
    )
    device: Mapped[Optional[str]] = mapped_column(
        String(20), CheckConstraint(enum_check("device", DEVICES)), nullable=True
    )
    executable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    impact: Mapped[Optional[str]] = mapped_column(
        String(10), CheckConstraint(enum_check("impact", IMPACTS)), nullable=True
    )
    related_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    deprecated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    embedding: Mapped[Optional["CommandEmbedding"]] = relationship(
        "CommandEmbedding",
        back_populates="command",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_commands_name_category", "name", "category"),
        Index("idx_commands_category", "category"),
        Index("idx_commands_mode", "mode"),
        Index("idx_commands_device", "device"),
        Index("idx_commands_deprecated", "deprecated"),
    )


# =============================================================================
# Table 2: command_embeddings
# =============================================================================
class CommandEmbedding(Base):
    """
    One embedding vector per command, owned one-to-one.

    The row is removed with its command (ON DELETE CASCADE plus ORM
    delete-orphan), and never shared between commands.
    """
    __tablename__ = "command_embeddings"

    command_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commands.id", ondelete="CASCADE"), primary_key=True
    )
    embedding: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    dimensions: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    command: Mapped["Command"] = relationship("Command", back_populates="embedding")


# =============================================================================
# FTS5 text index (SQLite only)
# =============================================================================
# External-content FTS5 rows must be removed with the special 'delete'
# command carrying the old column values.
FTS_DDL_STATEMENTS = (
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS commands_fts USING fts5(
        name, description, keywords, category,
        content='commands', content_rowid='id'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commands_fts_ai AFTER INSERT ON commands BEGIN
        INSERT INTO commands_fts(rowid, name, description, keywords, category)
        VALUES (new.id, new.name, new.description, new.keywords, new.category);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commands_fts_ad AFTER DELETE ON commands BEGIN
        INSERT INTO commands_fts(commands_fts, rowid, name, description, keywords, category)
        VALUES ('delete', old.id, old.name, old.description, old.keywords, old.category);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS commands_fts_au AFTER UPDATE ON commands BEGIN
        INSERT INTO commands_fts(commands_fts, rowid, name, description, keywords, category)
        VALUES ('delete', old.id, old.name, old.description, old.keywords, old.category);
        INSERT INTO commands_fts(rowid, name, description, keywords, category)
        VALUES (new.id, new.name, new.description, new.keywords, new.category);
    END
    """,
)

for _statement in FTS_DDL_STATEMENTS:
    event.listen(
        Command.__table__,
        "after_create",
        DDL(_statement).execute_if(dialect="sqlite"),
    )

event.listen(
    Command.__table__,
    "before_drop",
    DDL("DROP TABLE IF EXISTS commands_fts").execute_if(dialect="sqlite"),
)
