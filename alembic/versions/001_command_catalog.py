"""
001 - Command Catalog

Create the command catalog, its embedding table and the FTS5 text index.

Tables:
    1. commands
    2. command_embeddings (FK → commands, ON DELETE CASCADE)

Virtual table:
    - commands_fts — external-content FTS5 index, synced by triggers

The FTS statements are shared with the ORM metadata hook in
cmdsearch.db.models so both creation paths build the same index.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

from cmdsearch.db.models import (
    COMMAND_TYPES,
    DEVICES,
    FTS_DDL_STATEMENTS,
    IMPACTS,
    MODES,
    enum_check,
)

# Revision identifiers
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create tables, indexes, FTS index and sync triggers."""

    # =========================================================================
    # Table 1: commands
    # =========================================================================
    op.create_table(
        "commands",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("arguments", sa.JSON(), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("version", sa.String(50), nullable=True),
        sa.Column("keywords", sa.Text(), nullable=True),
        sa.Column("mode", sa.String(10), nullable=True),
        sa.Column("type", sa.String(10), nullable=True),
        sa.Column("device", sa.String(20), nullable=True),
        sa.Column("executable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("impact", sa.String(10), nullable=True),
        sa.Column("related_ids", sa.JSON(), nullable=False),
        sa.Column("deprecated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(enum_check("mode", MODES), name="ck_commands_mode"),
        sa.CheckConstraint(enum_check("type", COMMAND_TYPES), name="ck_commands_type"),
        sa.CheckConstraint(enum_check("device", DEVICES), name="ck_commands_device"),
        sa.CheckConstraint(enum_check("impact", IMPACTS), name="ck_commands_impact"),
    )
    op.create_index("idx_commands_name_category", "commands", ["name", "category"])
    op.create_index("idx_commands_category", "commands", ["category"])
    op.create_index("idx_commands_mode", "commands", ["mode"])
    op.create_index("idx_commands_device", "commands", ["device"])
    op.create_index("idx_commands_deprecated", "commands", ["deprecated"])

    # =========================================================================
    # Table 2: command_embeddings
    # =========================================================================
    op.create_table(
        "command_embeddings",
        sa.Column("command_id", sa.Integer(), nullable=False),
        sa.Column("embedding", sa.LargeBinary(), nullable=False),
        sa.Column("dimensions", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("command_id"),
        sa.ForeignKeyConstraint(
            ["command_id"],
            ["commands.id"],
            name="fk_command_embeddings_command_id",
            ondelete="CASCADE",
        ),
    )

    # =========================================================================
    # FTS5 index + triggers
    # =========================================================================
    for statement in FTS_DDL_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    """Drop triggers, the FTS index and both tables."""
    op.execute("DROP TRIGGER IF EXISTS commands_fts_au")
    op.execute("DROP TRIGGER IF EXISTS commands_fts_ad")
    op.execute("DROP TRIGGER IF EXISTS commands_fts_ai")
    op.execute("DROP TABLE IF EXISTS commands_fts")
    op.drop_table("command_embeddings")
    op.drop_index("idx_commands_deprecated", table_name="commands")
    op.drop_index("idx_commands_device", table_name="commands")
    op.drop_index("idx_commands_mode", table_name="commands")
    op.drop_index("idx_commands_category", table_name="commands")
    op.drop_index("idx_commands_name_category", table_name="commands")
    op.drop_table("commands")
