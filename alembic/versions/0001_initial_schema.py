"""Initial schema.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Extensions
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # ── workspaces ──
    op.create_table(
        "workspaces",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("owner_id", postgresql.UUID, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("workspaces_owner_idx", "workspaces", ["owner_id"])

    # ── files ──
    op.create_table(
        "files",
        sa.Column("id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("owner_id", postgresql.UUID, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("mime_type", sa.Text),
        sa.Column("size_bytes", sa.BigInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("storage_path", sa.Text, nullable=False, server_default=""),
        sa.Column("token_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_files_owner_name", "files", ["owner_id", "name"])
    # Orphan sweeps look for rows whose upload never finished
    op.execute("CREATE INDEX files_orphan_idx ON files (created_at) WHERE storage_path = ''")

    # ── file_workspaces ──
    op.create_table(
        "file_workspaces",
        sa.Column("file_id", postgresql.UUID, sa.ForeignKey("files.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("workspace_id", postgresql.UUID, sa.ForeignKey("workspaces.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("owner_id", postgresql.UUID, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("file_workspaces_workspace_idx", "file_workspaces", ["workspace_id"])
    op.create_unique_constraint(
        "uq_file_workspaces_owner_workspace_name",
        "file_workspaces",
        ["owner_id", "workspace_id", "name"],
    )

    # ── audit_log ──
    op.create_table(
        "audit_log",
        sa.Column("audit_id", postgresql.UUID, primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("owner_id", postgresql.UUID),
        sa.Column("action", sa.Text, nullable=False),
        sa.Column("target_type", sa.Text),
        sa.Column("target_id", postgresql.UUID),
        sa.Column("detail", sa.JSON, nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.execute("CREATE INDEX audit_created_idx ON audit_log (created_at DESC)")


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("file_workspaces")
    op.drop_table("files")
    op.drop_table("workspaces")
